"""
Pickup time slots.

A slot is the one-hour bucket a pickup time falls into, keyed as
``YYYY-MM-DD-HH`` (e.g. 2026-01-07 15:30 -> ``"2026-01-07-15"``).  Providers
are capped on how many accepted riders they hold per slot.
"""

from __future__ import annotations

from datetime import datetime, timedelta


def slot_key(pickup_time: datetime) -> str:
    return pickup_time.strftime("%Y-%m-%d-%H")


def slot_bounds(pickup_time: datetime) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` range of the slot containing *pickup_time*."""
    start = pickup_time.replace(minute=0, second=0, microsecond=0)
    return start, start + timedelta(hours=1)


def same_day(a: datetime, b: datetime) -> bool:
    return a.date() == b.date()
