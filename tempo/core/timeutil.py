from __future__ import annotations
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Optional


def parse_iso(ts: Any, default_tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values take `default_tz` (UTC when unset)."""
    if isinstance(ts, datetime):
        dt = ts
    elif isinstance(ts, str) and ts.strip():
        s = ts.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except Exception:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=default_tz or timezone.utc)
    return dt


def parse_date(v: Any) -> Optional[date]:
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    if isinstance(v, str) and v.strip():
        try:
            return date.fromisoformat(v.strip()[:10])
        except Exception:
            return None
    return None


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt is not None else None


def now_in(tz) -> datetime:
    return datetime.now(tz)


def minutes_between(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


def ceil_to_step(dt: datetime, step_minutes: int) -> datetime:
    """Smallest step-aligned time (counted from local midnight) at or after dt."""
    midnight = dt.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = (dt - midnight).total_seconds()
    step_s = step_minutes * 60
    steps = int(elapsed // step_s)
    if steps * step_s < elapsed:
        steps += 1
    return midnight + timedelta(seconds=steps * step_s)


def at_local_time(day: date, hh: int, mm: int, tz) -> datetime:
    return datetime(day.year, day.month, day.day, hh, mm, tzinfo=tz)


def parse_hhmm(s: str) -> tuple[int, int]:
    hh, mm = s.split(":")
    return int(hh), int(mm)
