"""
Background Expiry Sweeper
=========================

Runs every ``SWEEP_INTERVAL_SECONDS`` (default 60 s).

Deadlines (pickup time, trip start, invitation TTL) are also enforced when
rows are read, so a skipped cycle only delays cleanup; it never lets a
stale row through.

Concurrency safety
------------------
* **Redis distributed lock** ensures only one instance sweeps at a time
  across multiple API processes.  A held lock skips the cycle.

Per cycle
---------
1. Expire REQUESTED / MATCHED requests past their pickup time.
2. Expire trips past start + grace; lock OPEN trips inside the cutoff.
3. Expire PENDING invitations past ``expires_at``.
4. Publish view invalidations for whatever changed.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

from pickup_coord.config import settings
from pickup_coord.domain import clock
from pickup_coord.infrastructure import events
from pickup_coord.infrastructure.database import async_session_factory
from pickup_coord.infrastructure.locks import DistributedLock
from pickup_coord.infrastructure.redis_client import get_redis
from pickup_coord.services import expiry
from pickup_coord.services.common import policy

logger = logging.getLogger(__name__)

LOCK_NAME = "expiry_sweeper"

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_sweeper() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info("Expiry sweeper started (interval=%ds)", settings.sweep_interval_seconds)


async def stop_sweeper() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Expiry sweeper stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    """Periodic loop: run a sweep cycle then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_sweep_cycle()
        except Exception:
            logger.exception("Unhandled error in sweep cycle")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.sweep_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass


async def run_sweep_cycle(
    now: Optional[datetime] = None, session_factory=None
) -> Optional[expiry.SweepReport]:
    """Execute one sweep.  ``None`` when another process holds the lock."""
    redis = await get_redis()
    lock = DistributedLock(redis, LOCK_NAME, ttl_seconds=60)

    if not await lock.acquire():
        logger.debug("Lock held by another worker, skipping cycle")
        return None

    report = expiry.SweepReport()
    try:
        async with (session_factory or async_session_factory)() as session:
            report = await expiry.sweep(session, now or clock.now(), policy)
            await session.commit()
            await events.publish_pending(session, redis)
        if report.total:
            logger.info(
                "Sweep: %d request(s) expired, %d trip(s) locked, "
                "%d trip(s) expired, %d invitation(s) expired",
                report.requests_expired,
                report.trips_locked,
                report.trips_expired,
                report.invitations_expired,
            )
    except Exception:
        logger.exception("Error in sweep cycle")
    finally:
        await lock.release()

    return report
