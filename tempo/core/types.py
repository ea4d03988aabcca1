from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Any, Dict, List, Literal, Optional

from tempo.core.timeutil import minutes_between, parse_date, parse_iso, to_iso

ProposalType = Literal["task", "event"]
ActionKind = Literal["created-task", "created-event", "task-to-event"]

IDLE = "idle"
AWAITING_CLARIFICATION = "awaiting_clarification"


def _pick(d: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        v = d.get(k)
        if v is not None and v != "":
            return v
    return None


def _opt_int(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(v)
    except Exception:
        return None


@dataclass(frozen=True)
class Commitment:
    id: str
    title: str
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    due_date: Optional[date] = None
    is_anchor: bool = False
    kind: ProposalType = "event"
    buffer_minutes: Optional[int] = None

    @property
    def is_timed(self) -> bool:
        return self.start_at is not None and self.end_at is not None and self.end_at > self.start_at


@dataclass(frozen=True)
class SchedulingIntent:
    kind: ProposalType = "task"
    title: str = ""
    duration_minutes: Optional[int] = None
    location: Optional[str] = None
    fixed_start_at: Optional[datetime] = None
    fixed_end_at: Optional[datetime] = None
    window_days: Optional[int] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    is_anchor: bool = False
    id: Optional[str] = None
    source_task_id: Optional[str] = None
    confidence: Optional[float] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any], tz: Optional[tzinfo] = None) -> "SchedulingIntent":
        """Build from interpreter output; accepts intent keys and proposal keys.

        Offsetless timestamps are read in `tz`, the user's zone.
        """
        conf = _pick(d, "confidence")
        kind = str(_pick(d, "kind", "type") or "task").strip().lower()
        return cls(
            kind="event" if kind == "event" else "task",
            title=str(_pick(d, "title") or "").strip(),
            duration_minutes=_opt_int(_pick(d, "durationMinutes", "duration_minutes")),
            location=_pick(d, "location"),
            fixed_start_at=parse_iso(_pick(d, "fixedStartAt", "startAt", "fixed_start_at", "start_at"), tz),
            fixed_end_at=parse_iso(_pick(d, "fixedEndAt", "endAt", "fixed_end_at", "end_at"), tz),
            window_days=_opt_int(_pick(d, "windowDays", "window_days")),
            due_date=parse_date(_pick(d, "dueDate", "due_date")),
            notes=_pick(d, "notes"),
            is_anchor=bool(_pick(d, "isAnchor", "is_anchor") or False),
            id=_pick(d, "id"),
            source_task_id=_pick(d, "sourceTaskId", "source_task_id"),
            confidence=float(conf) if isinstance(conf, (int, float)) and not isinstance(conf, bool) else None,
        )


@dataclass(frozen=True)
class Proposal:
    id: str
    type: ProposalType
    title: str
    notes: Optional[str] = None
    location: Optional[str] = None
    due_date: Optional[date] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    confidence: Optional[float] = None
    is_anchor: bool = False
    duration_minutes: Optional[int] = None
    source_task_id: Optional[str] = None

    @property
    def is_timed(self) -> bool:
        return self.start_at is not None and self.end_at is not None

    def effective_minutes(self, default: int) -> int:
        if self.start_at is not None and self.end_at is not None:
            return minutes_between(self.start_at, self.end_at)
        return self.duration_minutes if self.duration_minutes is not None else default

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "notes": self.notes,
            "location": self.location,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "startAt": to_iso(self.start_at),
            "endAt": to_iso(self.end_at),
            "confidence": self.confidence,
            "isAnchor": self.is_anchor,
            "durationMinutes": self.duration_minutes,
            "sourceTaskId": self.source_task_id,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Proposal":
        conf = d.get("confidence")
        return cls(
            id=str(d.get("id") or ""),
            type="event" if d.get("type") == "event" else "task",
            title=str(d.get("title") or ""),
            notes=d.get("notes"),
            location=d.get("location"),
            due_date=parse_date(d.get("dueDate")),
            start_at=parse_iso(d.get("startAt")),
            end_at=parse_iso(d.get("endAt")),
            confidence=float(conf) if isinstance(conf, (int, float)) else None,
            is_anchor=bool(d.get("isAnchor") or False),
            duration_minutes=_opt_int(d.get("durationMinutes")),
            source_task_id=d.get("sourceTaskId"),
        )


@dataclass(frozen=True)
class ConflictRecord:
    proposal_id: str
    conflicting_commitment_id: str


@dataclass(frozen=True)
class UndoEntry:
    action_kind: ActionKind
    committed_id: str
    created_at: float
    compensating_snapshot: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ChatMessage:
    id: str
    role: Literal["user", "assistant"]
    text: str
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "role": self.role, "text": self.text, "createdAt": self.created_at}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ChatMessage":
        return cls(
            id=str(d["id"]),
            role="user" if d.get("role") == "user" else "assistant",
            text=str(d.get("text") or ""),
            created_at=str(d.get("createdAt") or ""),
        )


@dataclass
class SessionState:
    pending_intent: Optional[Dict[str, Any]] = None
    awaiting_fields: List[str] = field(default_factory=list)
    last_question: Optional[str] = None
    last_proposals: Optional[List[Proposal]] = None
    last_user_message_id: Optional[str] = None

    @property
    def status(self) -> str:
        return AWAITING_CLARIFICATION if self.awaiting_fields else IDLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pendingIntent": self.pending_intent,
            "awaitingFields": list(self.awaiting_fields),
            "lastQuestion": self.last_question,
            "lastProposals": [p.to_dict() for p in self.last_proposals] if self.last_proposals is not None else None,
            "lastUserMessageId": self.last_user_message_id,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SessionState":
        pending = d.get("pendingIntent")
        proposals = d.get("lastProposals")
        return cls(
            pending_intent=dict(pending) if isinstance(pending, dict) else None,
            awaiting_fields=[str(f) for f in (d.get("awaitingFields") or [])],
            last_question=d.get("lastQuestion"),
            last_proposals=[Proposal.from_dict(p) for p in proposals] if isinstance(proposals, list) else None,
            last_user_message_id=d.get("lastUserMessageId"),
        )


@dataclass(frozen=True)
class PipelineResult:
    auto_committed: List[Proposal] = field(default_factory=list)
    pending_confirmation: List[Proposal] = field(default_factory=list)
    conflicts: List[ConflictRecord] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class CommitResult:
    status: Literal["ok", "fail"]
    committed_id: Optional[str] = None
    note: str = ""
