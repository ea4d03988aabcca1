from __future__ import annotations
import logging
from typing import Iterable, List, Optional, Sequence

from tempo.core.errors import PolicyViolation
from tempo.core.ledger import Ledger, record
from tempo.core.types import Commitment, ConflictRecord, Proposal
from tempo.planning.slots import Interval

logger = logging.getLogger(__name__)


def commitment_interval(c: Commitment, default_buffer: int = 0) -> Optional[Interval]:
    if not c.is_timed:
        return None
    buf = c.buffer_minutes if c.buffer_minutes is not None else default_buffer
    return Interval(c.start_at, c.end_at).expanded(buf)  # type: ignore[arg-type]


def busy_intervals(commitments: Iterable[Commitment], buffer_minutes: int = 0, exclude_id: Optional[str] = None,
                   pad: int = 0) -> List[Interval]:
    out: List[Interval] = []
    for c in commitments:
        if exclude_id and c.id == exclude_id:
            continue
        iv = commitment_interval(c, buffer_minutes)
        if iv is not None:
            out.append(iv.expanded(pad))
    return out


def first_conflict(proposal: Proposal, commitments: Sequence[Commitment], buffer_minutes: int = 0) -> Optional[Commitment]:
    if proposal.start_at is None or proposal.end_at is None:
        return None
    candidate = Interval(proposal.start_at, proposal.end_at).expanded(buffer_minutes)
    for c in commitments:
        if c.id == proposal.id:
            continue
        iv = commitment_interval(c, buffer_minutes)
        if iv is not None and candidate.overlaps(iv):
            return c
    return None


def find_conflicts(proposals: Iterable[Proposal], commitments: Sequence[Commitment], buffer_minutes: int = 0) -> List[ConflictRecord]:
    out: List[ConflictRecord] = []
    for p in proposals:
        hit = first_conflict(p, commitments, buffer_minutes)
        if hit is not None:
            out.append(ConflictRecord(proposal_id=p.id, conflicting_commitment_id=hit.id))
    return out


def resolve_replace(
    proposal: Proposal,
    commitment: Commitment,
    store,
    conflicts: Sequence[ConflictRecord] = (),
    ledger: Optional[Ledger] = None,
) -> List[ConflictRecord]:
    """Delete the conflicting commitment; return the conflict list without its record."""
    if commitment.is_anchor:
        record(ledger, "policy_violation", proposal_id=proposal.id, commitment_id=commitment.id)
        raise PolicyViolation(f"'{commitment.title}' is an anchor and cannot be replaced", commitment_id=commitment.id)

    if commitment.kind == "task":
        store.delete_task(commitment.id)
    else:
        store.delete_event(commitment.id)
    logger.info("replaced %s %s for proposal %s", commitment.kind, commitment.id, proposal.id)
    record(ledger, "replace", proposal_id=proposal.id, commitment_id=commitment.id)
    return [
        c for c in conflicts
        if not (c.proposal_id == proposal.id and c.conflicting_commitment_id == commitment.id)
    ]
