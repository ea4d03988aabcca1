from __future__ import annotations
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

from tempo.config import Config
from tempo.core.errors import InterpreterMalformed, InterpreterTimeout, NotFound, SessionBusy
from tempo.core.ledger import Ledger, record
from tempo.core.timeutil import now_in
from tempo.core.types import ChatMessage, Commitment, ConflictRecord, PipelineResult, Proposal, SchedulingIntent, SessionState
from tempo.llm.interpreter import build_request
from tempo.llm.schemas import InterpreterRequest, InterpreterResponse
from tempo.pipeline.proposals import ProposalPipeline, change_duration, find_biased_slot
from tempo.planning.conflicts import find_conflicts, resolve_replace
from tempo.planning.energy import EnergyProfile, default_energy_profile
from tempo.session.store import DebouncedWriter, SessionStore, session_blob
from tempo.stores.preferences import Preferences, PreferencesStore

logger = logging.getLogger(__name__)

REPHRASE = "Sorry, I didn't catch that. Could you rephrase your request?"
TIMEOUT_TEXT = "The scheduler is taking too long to respond. Please try again."


class SupportsInterpret(Protocol):
    def interpret(self, request: InterpreterRequest) -> InterpreterResponse:
        ...


@dataclass(frozen=True)
class TurnResult:
    reply: str
    mode: str
    status: str
    auto_committed: List[Proposal] = field(default_factory=list)
    pending: List[Proposal] = field(default_factory=list)
    conflicts: List[ConflictRecord] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    error: Optional[str] = None


def rephrase_response() -> InterpreterResponse:
    return InterpreterResponse(
        assistant_text=REPHRASE,
        mode="followup",
        follow_up_question=REPHRASE,
        awaiting_fields=["message"],
    )


def apply_followup(state: SessionState, resp: InterpreterResponse) -> None:
    """Idle/AwaitingClarification -> AwaitingClarification."""
    pending: Dict[str, Any] = dict(state.pending_intent or {})
    for k, v in (resp.updated_intent or {}).items():
        if v is not None:
            pending[k] = v
    state.pending_intent = pending or None
    state.awaiting_fields = list(resp.awaiting_fields) or ["details"]
    state.last_question = resp.follow_up_question or resp.assistant_text or None
    state.last_proposals = None


def apply_resolved(state: SessionState) -> None:
    """Any state -> Idle, keeping proposals and the last message id."""
    state.pending_intent = None
    state.awaiting_fields = []
    state.last_question = None


class SchedulerSession:
    """One conversation: interpreter turns, proposal bookkeeping and the commit affordances."""

    def __init__(
        self,
        cfg: Config,
        interpreter: SupportsInterpret,
        pipeline: ProposalPipeline,
        store,
        session_store: Optional[SessionStore] = None,
        ledger: Optional[Ledger] = None,
        now_fn: Optional[Callable[[], datetime]] = None,
        preferences: Optional[Preferences] = None,
        preferences_store: Optional[PreferencesStore] = None,
    ):
        self._base_cfg = cfg
        self.cfg = cfg
        self.interpreter = interpreter
        self.pipeline = pipeline
        self.store = store
        self.session_store = session_store
        self.ledger = ledger
        self.now_fn = now_fn or (lambda: now_in(self.cfg.tz))
        self.preferences: Optional[Preferences] = None
        self.preferences_store = preferences_store
        self.state = SessionState()
        self.messages: List[ChatMessage] = []
        self.conflicts: List[ConflictRecord] = []
        self._inflight = threading.Lock()
        self._writer: Optional[DebouncedWriter] = None
        if session_store is not None:
            self._writer = DebouncedWriter(session_store.save_blob, cfg.session_debounce_ms / 1000.0)
        self._apply_preferences(preferences)

    def _apply_preferences(self, prefs: Optional[Preferences]) -> None:
        self.preferences = prefs
        self.cfg = prefs.apply(self._base_cfg) if prefs is not None else self._base_cfg
        self.pipeline.cfg = self.cfg
        self.coordinator.cfg = self.cfg

    def set_preferences(self, prefs: Preferences) -> None:
        self._apply_preferences(prefs)
        if self.preferences_store is not None:
            self.preferences_store.save(prefs)
        logger.info("preferences updated (tz=%s, buffer=%d)", self.cfg.timezone, self.cfg.buffer_minutes)

    @property
    def energy_profile(self) -> EnergyProfile:
        return self.preferences.energy_profile() if self.preferences is not None else default_energy_profile()

    @property
    def coordinator(self):
        return self.pipeline.coordinator

    @property
    def busy(self) -> bool:
        return self._inflight.locked()

    def restore(self) -> bool:
        if self.session_store is None:
            return False
        loaded = self.session_store.load()
        if loaded is None:
            return False
        self.state, self.messages = loaded
        return True

    def flush(self) -> None:
        if self._writer is not None:
            self._writer.flush()

    def _persist(self) -> None:
        if self._writer is not None:
            self._writer.schedule(session_blob(self.state, self.messages))

    def _say(self, role: str, text: str) -> ChatMessage:
        msg = ChatMessage(id=str(uuid.uuid4()), role=role, text=text, created_at=self.now_fn().isoformat())
        self.messages.append(msg)
        return msg

    def _window(self, now: datetime) -> List[Commitment]:
        return self.store.commitments_window(now, self.cfg.commitments_window_days)

    def send(self, text: str) -> TurnResult:
        if not self._inflight.acquire(blocking=False):
            raise SessionBusy("A scheduling request is already in progress.")
        try:
            return self._turn(text)
        finally:
            self._inflight.release()

    def _turn(self, text: str) -> TurnResult:
        text = (text or "").strip()
        if not text:
            return TurnResult(reply="", mode="noop", status=self.state.status)

        thread = list(self.messages)
        user_msg = self._say("user", text)
        now = self.now_fn()
        commitments = self._window(now)
        request = build_request(text, now, self.cfg, self.state, thread, commitments,
                                self.preferences.to_json() if self.preferences is not None else None)

        try:
            resp = self.interpreter.interpret(request)
        except InterpreterTimeout as e:
            logger.warning("interpreter gave up: %s", e)
            record(self.ledger, "interpreter_timeout", message_id=user_msg.id, error=e.code)
            self._say("assistant", TIMEOUT_TEXT)
            self._persist()
            return TurnResult(reply=TIMEOUT_TEXT, mode="error", status=self.state.status, error=e.code)
        except InterpreterMalformed as e:
            logger.warning("discarding malformed interpreter response: %s", e)
            record(self.ledger, "interpreter_malformed", message_id=user_msg.id)
            resp = rephrase_response()

        self.state.last_user_message_id = user_msg.id
        if resp.mode == "followup":
            apply_followup(self.state, resp)
            self.conflicts = []
            reply = resp.follow_up_question or resp.assistant_text or "Could you tell me a bit more?"
            self._say("assistant", reply)
            record(self.ledger, "turn", mode="followup", awaiting=self.state.awaiting_fields)
            self._persist()
            return TurnResult(reply=reply, mode="followup", status=self.state.status)

        return self._resolve(resp.mode, resp.assistant_text, resp.intents(self.cfg.tz), commitments, now)

    def _resolve(self, mode: str, text: str, intents: List[SchedulingIntent], commitments: List[Commitment],
                 now: datetime) -> TurnResult:
        apply_resolved(self.state)
        result: PipelineResult = self.pipeline.process(intents, commitments, now)
        self.state.last_proposals = list(result.pending_confirmation)
        self.conflicts = list(result.conflicts)

        reply = text or "Here's what I've got."
        if result.auto_committed:
            reply = f"{reply}\nSaved: " + ", ".join(p.title for p in result.auto_committed)
        self._say("assistant", reply)
        record(self.ledger, "turn", mode=mode, auto=len(result.auto_committed),
               pending=len(result.pending_confirmation), conflicts=len(result.conflicts))
        self._persist()
        return TurnResult(
            reply=reply,
            mode=mode,
            status=self.state.status,
            auto_committed=list(result.auto_committed),
            pending=list(result.pending_confirmation),
            conflicts=list(result.conflicts),
            failures=list(result.failures),
        )

    def schedule_task(self, task_id: str) -> TurnResult:
        """Offer event slots for an existing task; confirming one converts the task."""
        if not self._inflight.acquire(blocking=False):
            raise SessionBusy("A scheduling request is already in progress.")
        try:
            task = self.store.get_task(task_id)
            if task is None:
                raise NotFound("Unknown task.", task_id=task_id)
            title = str(task.get("title") or "").strip()
            minutes = self.cfg.default_task_minutes
            user_msg = self._say("user", f"Schedule task: \"{title}\". Duration: {minutes} minutes.")
            self.state.last_user_message_id = user_msg.id
            intent = SchedulingIntent(kind="event", title=title, duration_minutes=minutes,
                                      window_days=self.cfg.commitments_window_days,
                                      is_anchor=bool(task.get("isAnchor") or False), source_task_id=task_id)
            now = self.now_fn()
            return self._resolve("proposal", "Here are some free slots for it.", [intent], self._window(now), now)
        finally:
            self._inflight.release()

    def reset(self) -> None:
        self.state = SessionState()
        self.messages = []
        self.conflicts = []
        if self._writer is not None:
            self._writer.cancel()
        if self.session_store is not None:
            self.session_store.clear()

    def proposal(self, proposal_id: str) -> Proposal:
        for p in self.state.last_proposals or []:
            if p.id == proposal_id:
                return p
        raise NotFound("Unknown proposal.", proposal_id=proposal_id)

    def _set_proposals(self, proposals: List[Proposal]) -> None:
        self.state.last_proposals = proposals
        self._persist()

    def confirm(self, proposal_id: str) -> str:
        """Completion callback of the hold-to-confirm gesture."""
        p = self.proposal(proposal_id)
        committed_id = self.coordinator.commit(p)
        self._say("assistant", f"Saved: {p.title}")
        # a converted task is gone, so its other slot offers are too
        consumed = p.source_task_id
        remaining = [q for q in self.state.last_proposals or []
                     if q.id != proposal_id and not (consumed and q.source_task_id == consumed)]
        kept = {q.id for q in remaining}
        self.conflicts = [c for c in self.conflicts if c.proposal_id in kept]
        self._set_proposals(remaining)
        return committed_id

    def reschedule(self, proposal_id: str) -> Optional[Proposal]:
        p = self.proposal(proposal_id)
        now = self.now_fn()
        commitments = self._window(now)
        moved = find_biased_slot(p, commitments, now, buffer_minutes=self.cfg.buffer_minutes,
                                 default_minutes=self.cfg.default_event_minutes, profile=self.energy_profile)
        if moved is None:
            logger.info("no slot found for proposal %s", proposal_id)
            return None
        self._set_proposals([moved if q.id == proposal_id else q for q in self.state.last_proposals or []])
        others = [c for c in self.conflicts if c.proposal_id != proposal_id]
        self.conflicts = others + find_conflicts([moved], commitments, self.cfg.buffer_minutes)
        return moved

    def replace(self, proposal_id: str, commitment_id: str) -> List[ConflictRecord]:
        p = self.proposal(proposal_id)
        now = self.now_fn()
        commitment = next((c for c in self._window(now) if c.id == commitment_id), None)
        if commitment is None:
            raise NotFound("Unknown commitment.", commitment_id=commitment_id)
        self.conflicts = resolve_replace(p, commitment, self.store, self.conflicts, ledger=self.ledger)
        return self.conflicts

    def change_duration(self, proposal_id: str, minutes: int) -> Proposal:
        self.proposal(proposal_id)
        commitments = self._window(self.now_fn())
        proposals, found = change_duration(self.state.last_proposals or [], proposal_id, minutes, commitments,
                                           self.cfg.buffer_minutes)
        self._set_proposals(proposals)
        self.conflicts = [c for c in self.conflicts if c.proposal_id != proposal_id] + found
        return next(p for p in proposals if p.id == proposal_id)

    def undo(self) -> bool:
        done = self.coordinator.undo()
        if done:
            self._say("assistant", "Undone.")
            self._persist()
        return done

    def snapshot(self) -> Dict[str, Any]:
        entry = self.coordinator.undo_entry
        return {
            "status": self.state.status,
            "state": self.state.to_dict(),
            "messages": [m.to_dict() for m in self.messages],
            "conflicts": [{"proposalId": c.proposal_id, "commitmentId": c.conflicting_commitment_id} for c in self.conflicts],
            "undo": {"action": entry.action_kind, "id": entry.committed_id} if entry is not None else None,
            "busy": self.busy,
            "preferences": self.preferences.to_json() if self.preferences is not None else {},
        }
