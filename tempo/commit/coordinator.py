from __future__ import annotations
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from tempo.config import Config
from tempo.core.errors import ProposalInvalid
from tempo.core.ledger import Ledger, record
from tempo.core.types import CommitResult, Proposal, UndoEntry

logger = logging.getLogger(__name__)

MIN_EVENT_MINUTES = 15


@dataclass(frozen=True)
class CommitPayload:
    kind: str
    title: str
    notes: Optional[str] = None
    location: Optional[str] = None
    due_date: Any = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    is_anchor: bool = False


def build_commit_payload(proposal: Proposal, default_event_minutes: int = 60) -> CommitPayload:
    title = (proposal.title or "").strip()
    if proposal.type == "task":
        if not title:
            raise ProposalInvalid("Cannot save task: missing title.", proposal_id=proposal.id)
        return CommitPayload(kind="task", title=title, notes=proposal.notes, due_date=proposal.due_date, is_anchor=proposal.is_anchor)

    if proposal.start_at is None:
        raise ProposalInvalid("Cannot schedule event: missing start time.", proposal_id=proposal.id)
    start = proposal.start_at
    end = proposal.end_at or start + timedelta(minutes=default_event_minutes)
    if end <= start:
        end = start + timedelta(minutes=MIN_EVENT_MINUTES)
    return CommitPayload(
        kind="event",
        title=title or "Untitled Event",
        notes=proposal.notes,
        location=proposal.location,
        start_at=start,
        end_at=end,
        is_anchor=proposal.is_anchor,
    )


class TitlePatch:
    """Detached best-effort title rewrite for an already committed item."""

    def __init__(self, store, kind: str, item_id: str, title: str, refine: Callable[[str], Optional[str]],
                 ledger: Optional[Ledger] = None):
        self.store = store
        self.kind = kind
        self.item_id = item_id
        self.title = title
        self.refine = refine
        self.ledger = ledger
        self.cancelled = threading.Event()
        self.applied: Optional[str] = None
        self._thread = threading.Thread(target=self._run, name=f"title-patch-{item_id}", daemon=True)

    def start(self) -> "TitlePatch":
        self._thread.start()
        return self

    def cancel(self) -> None:
        self.cancelled.set()

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)

    def _run(self) -> None:
        try:
            new_title = self.refine(self.title)
        except Exception as e:
            logger.warning("title refine failed for %s: %s", self.item_id, e)
            return
        new_title = (new_title or "").strip()
        if self.cancelled.is_set() or not new_title or new_title == self.title:
            return
        try:
            if self.store.update_title(self.kind, self.item_id, new_title):
                self.applied = new_title
                record(self.ledger, "title_patch", id=self.item_id, title=new_title)
        except Exception as e:
            logger.warning("title patch failed for %s: %s", self.item_id, e)


class CommitCoordinator:
    def __init__(self, store, cfg: Config, ledger: Optional[Ledger] = None, clock: Callable[[], float] = time.monotonic):
        self.store = store
        self.cfg = cfg
        self.ledger = ledger
        self.clock = clock
        self._undo: Optional[UndoEntry] = None
        self._patches: Dict[str, TitlePatch] = {}
        self._lock = threading.Lock()

    @property
    def undo_entry(self) -> Optional[UndoEntry]:
        entry = self._undo
        if entry is None or self._expired(entry):
            return None
        return entry

    def _expired(self, entry: UndoEntry) -> bool:
        return self.clock() - entry.created_at >= self.cfg.undo_ttl_s

    def commit(self, proposal: Proposal) -> str:
        payload = build_commit_payload(proposal, self.cfg.default_event_minutes)

        snapshot: Optional[Dict[str, Any]] = None
        if payload.kind == "event" and proposal.source_task_id:
            snapshot = self.store.get_task(proposal.source_task_id)
            if snapshot is None:
                raise ProposalInvalid("Source task no longer exists.", proposal_id=proposal.id)
            task_notes = snapshot.get("notes") or ""
            notes = f"(Scheduled Task)\n{task_notes}\n{proposal.notes or ''}".strip()
            committed_id = self.store.create_event(
                title=snapshot.get("title") or payload.title, start_at=payload.start_at, end_at=payload.end_at,
                location=payload.location, notes=notes, is_anchor=payload.is_anchor,
            )
            self.store.delete_task(proposal.source_task_id)
            kind = "task-to-event"
        elif payload.kind == "event":
            committed_id = self.store.create_event(
                title=payload.title, start_at=payload.start_at, end_at=payload.end_at,
                location=payload.location, notes=payload.notes, is_anchor=payload.is_anchor,
            )
            kind = "created-event"
        else:
            committed_id = self.store.create_task(
                title=payload.title, notes=payload.notes, due_date=payload.due_date, is_anchor=payload.is_anchor,
            )
            kind = "created-task"

        with self._lock:
            prev = self._undo
            self._undo = UndoEntry(action_kind=kind, committed_id=committed_id, created_at=self.clock(), compensating_snapshot=snapshot)
            # only the latest commit is undoable, so only its patch needs a handle
            if prev is not None:
                self._patches.pop(prev.committed_id, None)
        logger.info("committed %s %s (%s)", kind, committed_id, payload.title)
        record(self.ledger, "commit", action=kind, id=committed_id, proposal_id=proposal.id)
        return committed_id

    def commit_batch(self, proposals: Sequence[Proposal]) -> List[CommitResult]:
        """Commit independently; a failure leaves earlier commits in place."""
        out: List[CommitResult] = []
        for p in proposals:
            try:
                out.append(CommitResult("ok", self.commit(p)))
            except ProposalInvalid as e:
                record(self.ledger, "commit_fail", proposal_id=p.id, reason=str(e))
                out.append(CommitResult("fail", None, str(e)))
        return out

    def undo(self) -> bool:
        with self._lock:
            entry = self._undo
            self._undo = None
        if entry is None:
            return False
        if self._expired(entry):
            logger.info("undo window expired for %s", entry.committed_id)
            return False

        with self._lock:
            patch = self._patches.pop(entry.committed_id, None)
        if patch is not None:
            patch.cancel()

        if entry.action_kind == "created-task":
            self.store.delete_task(entry.committed_id)
        else:
            self.store.delete_event(entry.committed_id)
        if entry.action_kind == "task-to-event" and entry.compensating_snapshot:
            self.store.restore_task(entry.compensating_snapshot)

        logger.info("undid %s %s", entry.action_kind, entry.committed_id)
        record(self.ledger, "undo", action=entry.action_kind, id=entry.committed_id)
        return True

    def start_title_patch(self, committed_id: str, kind: str, title: str, refine: Callable[[str], Optional[str]]) -> TitlePatch:
        patch = TitlePatch(self.store, kind, committed_id, title, refine, ledger=self.ledger)
        with self._lock:
            current = self._undo
            if current is not None and current.committed_id == committed_id:
                self._patches[committed_id] = patch
        return patch.start()
