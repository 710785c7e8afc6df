"""Decide whether a source is due for a check."""

from __future__ import annotations

from datetime import datetime, timedelta, tzinfo

from ..config import DailyAt, Every, RefreshRule, WeeklyAt


def _latest_occurrence(now: datetime, hour: int, minute: int, weekday: int | None) -> datetime:
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if weekday is None:
        if candidate > now:
            candidate -= timedelta(days=1)
        return candidate
    candidate -= timedelta(days=(now.weekday() - weekday) % 7)
    if candidate > now:
        candidate -= timedelta(days=7)
    return candidate


def is_due(now: int, last_update: int | None, rule: RefreshRule, tz: tzinfo | None = None) -> bool:
    """Return True when ``rule`` says a source checked at ``last_update`` must be checked at ``now``.

    Timestamps are Unix seconds. Daily and weekly rules are evaluated in ``tz``,
    or in naive local time when omitted. The occurrence is built on the wall
    clock and converted back with the UTC offset in force at that moment, so
    it stays at the configured hour across DST changes. Pass a ``zoneinfo``
    zone rather than a fixed offset to keep that property.
    """

    if last_update is None:
        return True
    if isinstance(rule, Every):
        return now - last_update >= rule.hours * 3600
    current = datetime.fromtimestamp(now, tz=tz)
    if isinstance(rule, DailyAt):
        occurrence = _latest_occurrence(current, rule.hour, rule.minute, None)
    elif isinstance(rule, WeeklyAt):
        occurrence = _latest_occurrence(current, rule.hour, rule.minute, rule.weekday.index)
    else:
        raise TypeError(f"Unknown refresh rule: {rule!r}")
    return last_update < occurrence.timestamp()


__all__ = ["is_due"]
