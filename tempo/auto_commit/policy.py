from __future__ import annotations
from typing import Sequence

from tempo.config import Config
from tempo.core.types import Commitment, Proposal
from tempo.planning.conflicts import first_conflict


def can_auto_commit(proposal: Proposal, has_conflict: bool, cfg: Config) -> bool:
    if not cfg.auto_commit:
        return False
    if proposal.type != "task":
        return False
    if proposal.is_anchor:
        return False
    if proposal.effective_minutes(cfg.default_task_minutes) > cfg.auto_commit_max_minutes:
        return False
    if has_conflict:
        return False
    return True


def route(proposal: Proposal, commitments: Sequence[Commitment], cfg: Config) -> bool:
    hit = first_conflict(proposal, commitments, cfg.buffer_minutes)
    return can_auto_commit(proposal, hit is not None, cfg)
