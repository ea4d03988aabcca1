from __future__ import annotations
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from tempo.auto_commit.policy import route
from tempo.config import Config
from tempo.core.errors import ProposalInvalid
from tempo.core.ledger import Ledger, record
from tempo.core.timeutil import ceil_to_step, minutes_between
from tempo.core.types import Commitment, ConflictRecord, PipelineResult, Proposal, SchedulingIntent
from tempo.planning.conflicts import busy_intervals, find_conflicts
from tempo.planning.energy import EnergyProfile, classify_energy, default_energy_profile, window_start
from tempo.planning.slots import find_candidate_slots, first_clear_slot

logger = logging.getLogger(__name__)

BIAS_STEP_MINUTES = 15
BIAS_MAX_STEPS = 7 * 24 * 4


def normalize_intent(intent: SchedulingIntent, cfg: Config) -> Proposal:
    start = intent.fixed_start_at
    end = intent.fixed_end_at
    duration = intent.duration_minutes if intent.duration_minutes and intent.duration_minutes > 0 else None
    if start is not None and (end is None or end <= start):
        end = start + timedelta(minutes=duration or cfg.default_event_minutes)
    if start is None:
        end = None
    if start is not None and end is not None:
        duration = minutes_between(start, end)
    return Proposal(
        id=intent.id or str(uuid.uuid4()),
        type=intent.kind,
        title=(intent.title or "").strip(),
        notes=intent.notes,
        location=intent.location,
        due_date=intent.due_date,
        start_at=start,
        end_at=end,
        is_anchor=intent.is_anchor,
        confidence=intent.confidence,
        duration_minutes=duration,
        source_task_id=intent.source_task_id,
    )


def _as_commitment(p: Proposal, committed_id: str) -> Commitment:
    return Commitment(id=committed_id, title=p.title, start_at=p.start_at, end_at=p.end_at,
                      due_date=p.due_date, is_anchor=p.is_anchor, kind=p.type)


class ProposalPipeline:
    def __init__(self, cfg: Config, coordinator, ledger: Optional[Ledger] = None,
                 title_refiner: Optional[Callable[[str], Optional[str]]] = None):
        self.cfg = cfg
        self.coordinator = coordinator
        self.ledger = ledger
        self.title_refiner = title_refiner

    def expand(self, intent: SchedulingIntent, commitments: Sequence[Commitment], now: datetime) -> List[Proposal]:
        base = normalize_intent(intent, self.cfg)
        if base.type != "event" or base.start_at is not None:
            return [base]

        duration = base.duration_minutes or self.cfg.default_event_minutes
        # windowDays counts today as day 1
        days_ahead = max(0, intent.window_days - 1) if intent.window_days else self.cfg.commitments_window_days
        busy = busy_intervals(commitments, self.cfg.buffer_minutes, pad=self.cfg.buffer_minutes)
        slots = find_candidate_slots(
            busy, now, duration,
            days_ahead=days_ahead,
            day_start_hour=self.cfg.slot_day_start_hour,
            day_end_hour=self.cfg.slot_day_end_hour,
            step_minutes=self.cfg.slot_step_minutes,
            max_results=max(1, self.cfg.candidate_count),
        )
        if not slots:
            logger.info("no free slot for %r, falling back to manual entry", base.title)
            return [base]
        out = []
        for s in slots:
            notes = f"{s.label}\n{base.notes}" if base.notes else s.label
            out.append(replace(base, id=str(uuid.uuid4()), start_at=s.start_at, end_at=s.end_at,
                               duration_minutes=duration, notes=notes))
        return out

    def process(self, intents: Iterable[SchedulingIntent], commitments: Sequence[Commitment], now: datetime) -> PipelineResult:
        working = list(commitments)
        proposals: List[Proposal] = []
        for intent in intents:
            proposals.extend(self.expand(intent, working, now))

        auto: List[Proposal] = []
        pending: List[Proposal] = []
        failures: List[str] = []
        for p in proposals:
            if not route(p, working, self.cfg):
                pending.append(p)
                continue
            try:
                committed_id = self.coordinator.commit(p)
            except ProposalInvalid as e:
                failures.append(f"{p.id}: {e}")
                pending.append(p)
                continue
            auto.append(p)
            record(self.ledger, "auto_commit", proposal_id=p.id, id=committed_id, title=p.title)
            if p.is_timed:
                working.append(_as_commitment(p, committed_id))
            if self.title_refiner is not None:
                self.coordinator.start_title_patch(committed_id, p.type, p.title, self.title_refiner)

        conflicts = find_conflicts(pending, working, self.cfg.buffer_minutes)
        return PipelineResult(auto_committed=auto, pending_confirmation=pending, conflicts=conflicts, failures=failures)


def find_biased_slot(
    proposal: Proposal,
    commitments: Sequence[Commitment],
    now: datetime,
    *,
    buffer_minutes: int = 0,
    default_minutes: int = 60,
    profile: Optional[EnergyProfile] = None,
) -> Optional[Proposal]:
    """Next clear slot anchored on the energy profile; None when the 7-day scan finds nothing."""
    profile = profile or default_energy_profile()
    hhmm = profile.peak_start if classify_energy(proposal.title) == "deep" else profile.slump_start
    anchor = window_start(now, hhmm)
    if anchor < now:
        anchor = ceil_to_step(now, BIAS_STEP_MINUTES)

    duration = proposal.effective_minutes(default_minutes)
    if duration <= 0:
        duration = default_minutes
    busy = busy_intervals(commitments, buffer_minutes, exclude_id=proposal.id)
    slot = first_clear_slot(anchor, duration, busy, buffer_minutes=buffer_minutes,
                            step_minutes=BIAS_STEP_MINUTES, max_steps=BIAS_MAX_STEPS)
    if slot is None:
        return None
    return replace(proposal, start_at=slot.start, end_at=slot.end, duration_minutes=duration)


def change_duration(
    proposals: Sequence[Proposal],
    proposal_id: str,
    minutes: int,
    commitments: Sequence[Commitment],
    buffer_minutes: int = 0,
) -> Tuple[List[Proposal], List[ConflictRecord]]:
    """Re-time one proposal from the current list and recheck only that proposal."""
    if minutes <= 0:
        raise ProposalInvalid("Duration must be positive.", proposal_id=proposal_id)
    current = next((p for p in proposals if p.id == proposal_id), None)
    if current is None:
        raise ProposalInvalid("Unknown proposal.", proposal_id=proposal_id)

    end = current.start_at + timedelta(minutes=minutes) if current.start_at is not None else None
    updated = replace(current, duration_minutes=minutes, end_at=end)
    out = [updated if p.id == proposal_id else p for p in proposals]
    return out, find_conflicts([updated], commitments, buffer_minutes)
