"""Time helpers.

All persisted timestamps are naive UTC. Entitlement arithmetic uses whole
``timedelta(days=...)`` steps so expiry is exact to the millisecond.
"""
from datetime import datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def add_days(start: datetime, days: int) -> datetime:
    return start + timedelta(days=days)


def epoch_millis(moment: datetime) -> int:
    return int(moment.replace(tzinfo=timezone.utc).timestamp() * 1000)
