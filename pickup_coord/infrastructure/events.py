"""
Post-commit event publishing.

Mutations record two kinds of events on the session while they run:

* **Invalidations** -- view paths the rendering layer must treat as stale
  (``/trips``, ``/my`` ...), published as one JSON list on
  ``views:invalidate``.
* **Broadcasts**    -- row-change / chat payloads published on
  ``realtime:<topic>``.

Nothing is sent until the transaction commits, and publishing is
fire-and-forget: a Redis failure is logged, never raised to the caller.

A service may commit part of its work early (deadline expiry does, so the
expiry stands even when the operation that found it fails).  It then calls
``mark_committed`` and those events survive a later ``discard``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

INVALIDATE_CHANNEL = "views:invalidate"

_PATHS = "pickup_coord.invalidate"
_BROADCASTS = "pickup_coord.broadcast"
_COMMITTED_PATHS = "pickup_coord.invalidate.committed"
_COMMITTED_BROADCASTS = "pickup_coord.broadcast.committed"


def invalidate(session: AsyncSession, *paths: str) -> None:
    session.info.setdefault(_PATHS, set()).update(paths)


def broadcast(session: AsyncSession, topic: str, payload: dict[str, Any]) -> None:
    session.info.setdefault(_BROADCASTS, []).append((topic, payload))


def pending(session: AsyncSession) -> tuple[set[str], list[tuple[str, dict]]]:
    """Events recorded so far, committed or not (read-only view, used by tests)."""
    info = session.info
    return (
        set(info.get(_COMMITTED_PATHS, set())) | set(info.get(_PATHS, set())),
        list(info.get(_COMMITTED_BROADCASTS, [])) + list(info.get(_BROADCASTS, [])),
    )


def mark_committed(session: AsyncSession) -> None:
    """Everything recorded so far belongs to a committed transaction."""
    session.info.setdefault(_COMMITTED_PATHS, set()).update(
        session.info.pop(_PATHS, set())
    )
    session.info.setdefault(_COMMITTED_BROADCASTS, []).extend(
        session.info.pop(_BROADCASTS, [])
    )


def discard(session: AsyncSession) -> None:
    """Drop events of the rolled-back transaction; committed ones stay."""
    session.info.pop(_PATHS, None)
    session.info.pop(_BROADCASTS, None)


async def publish_pending(session: AsyncSession, redis: aioredis.Redis) -> None:
    """Publish and clear everything recorded on *session*."""
    mark_committed(session)
    paths = session.info.pop(_COMMITTED_PATHS, set())
    broadcasts = session.info.pop(_COMMITTED_BROADCASTS, [])
    if not paths and not broadcasts:
        return
    try:
        if paths:
            await redis.publish(INVALIDATE_CHANNEL, json.dumps(sorted(paths)))
        for topic, payload in broadcasts:
            await redis.publish(
                f"realtime:{topic}", json.dumps(payload, default=str)
            )
    except RedisError:
        logger.exception(
            "Event publish failed (%d paths, %d broadcasts dropped)",
            len(paths),
            len(broadcasts),
        )
