from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from tempo.core.timeutil import at_local_time, parse_hhmm

EnergyClass = Literal["deep", "shallow"]


@dataclass(frozen=True)
class EnergyProfile:
    peak_start: str = "09:00"
    peak_end: str = "12:00"
    slump_start: str = "13:00"
    slump_end: str = "16:00"


DEEP_KEYWORDS = ("study", "build", "code", "write", "project", "design", "assignment", "report")
SHALLOW_KEYWORDS = (
    "email", "emails", "admin", "call", "calls", "slack", "message", "messages",
    "errand", "errands", "groceries",
)

_DEFAULT_PROFILE = EnergyProfile()


def default_energy_profile() -> EnergyProfile:
    return _DEFAULT_PROFILE


def classify_energy(title: str) -> EnergyClass:
    lower = (title or "").lower()
    if any(k in lower for k in DEEP_KEYWORDS):
        return "deep"
    if any(k in lower for k in SHALLOW_KEYWORDS):
        return "shallow"
    # unmatched titles stay out of peak hours
    return "shallow"


def window_start(base: datetime, hhmm: str) -> datetime:
    """`hhmm` on base's calendar day, in base's timezone."""
    hh, mm = parse_hhmm(hhmm)
    return at_local_time(base.date(), hh, mm, base.tzinfo)


def is_within_window(ts: datetime, start_hhmm: str, end_hhmm: str) -> bool:
    minutes = ts.hour * 60 + ts.minute
    sh, sm = parse_hhmm(start_hhmm)
    eh, em = parse_hhmm(end_hhmm)
    return sh * 60 + sm <= minutes < eh * 60 + em
