from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from tempo.core.timeutil import at_local_time, ceil_to_step


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and self.end > other.start

    def expanded(self, minutes: int) -> "Interval":
        if not minutes:
            return self
        pad = timedelta(minutes=minutes)
        return Interval(self.start - pad, self.end + pad)


@dataclass(frozen=True)
class CandidateSlot:
    start_at: datetime
    end_at: datetime
    label: str = ""


def has_overlap(candidate: Interval, busy: Iterable[Interval]) -> bool:
    return any(candidate.overlaps(b) for b in busy)


def slot_label(start: datetime, now: datetime) -> str:
    diff_days = (start.date() - now.date()).days
    if diff_days == 0:
        day_name = "Today"
    elif diff_days == 1:
        day_name = "Tomorrow"
    else:
        day_name = start.strftime("%a")

    time_of_day = "Morning"
    if start.hour >= 12:
        time_of_day = "Afternoon"
    if start.hour >= 17:
        time_of_day = "Evening"
    return f"{day_name} {time_of_day}"


def find_candidate_slots(
    busy: Iterable[Interval],
    now: datetime,
    duration_minutes: int,
    *,
    days_ahead: int = 7,
    day_start_hour: int = 9,
    day_end_hour: int = 20,
    step_minutes: int = 30,
    max_results: int = 6,
) -> List[CandidateSlot]:
    if duration_minutes <= 0 or step_minutes <= 0 or max_results <= 0:
        return []
    busy_windows = list(busy)
    tz = now.tzinfo
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)
    out: List[CandidateSlot] = []

    for day_offset in range(days_ahead + 1):
        if len(out) >= max_results:
            break
        day = now.date() + timedelta(days=day_offset)
        start = at_local_time(day, day_start_hour, 0, tz)
        day_end = at_local_time(day, day_end_hour, 0, tz) if day_end_hour < 24 else at_local_time(day, 0, 0, tz) + timedelta(days=1)

        if day_offset == 0 and now > start:
            start = max(start, ceil_to_step(now, step_minutes))

        while start < day_end and len(out) < max_results:
            end = start + duration
            if end > day_end:
                break
            if not has_overlap(Interval(start, end), busy_windows):
                out.append(CandidateSlot(start_at=start, end_at=end, label=slot_label(start, now)))
            start = start + step

    return out


def first_clear_slot(
    anchor: datetime,
    duration_minutes: int,
    busy: Iterable[Interval],
    *,
    buffer_minutes: int = 0,
    step_minutes: int = 15,
    max_steps: int = 7 * 24 * 4,
) -> Optional[Interval]:
    """Scan forward from anchor; `busy` is expected to be pre-expanded by its own buffers."""
    busy_windows = list(busy)
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)
    start = anchor
    for _ in range(max_steps):
        candidate = Interval(start, start + duration)
        if not has_overlap(candidate.expanded(buffer_minutes), busy_windows):
            return candidate
        start = start + step
    return None
