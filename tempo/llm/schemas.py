from __future__ import annotations
from datetime import tzinfo
from typing import Any, Dict, List, Literal, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from tempo.core.types import SchedulingIntent

Mode = Literal["followup", "intent", "proposal"]


class IntentJSON(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    kind: Literal["task", "event"] = Field("task", validation_alias=AliasChoices("kind", "type"))
    title: str = ""
    duration_minutes: Optional[int] = Field(None, ge=1, le=24 * 60, validation_alias=AliasChoices("durationMinutes", "duration_minutes"))
    location: Optional[str] = None
    fixed_start_at: Optional[str] = Field(None, validation_alias=AliasChoices("fixedStartAt", "startAt"))
    fixed_end_at: Optional[str] = Field(None, validation_alias=AliasChoices("fixedEndAt", "endAt"))
    window_days: Optional[int] = Field(None, ge=1, le=60, validation_alias=AliasChoices("windowDays", "window_days"))
    due_date: Optional[str] = Field(None, validation_alias=AliasChoices("dueDate", "due_date"))
    notes: Optional[str] = None
    is_anchor: bool = Field(False, validation_alias=AliasChoices("isAnchor", "is_anchor"))
    id: Optional[str] = None
    source_task_id: Optional[str] = Field(None, validation_alias=AliasChoices("sourceTaskId", "source_task_id"))
    confidence: Optional[float] = Field(None, ge=0, le=1)

    @field_validator("kind", mode="before")
    @classmethod
    def _kind(cls, v: Any) -> Any:
        return "event" if str(v or "").strip().lower() == "event" else "task"

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("is_anchor", mode="before")
    @classmethod
    def _anchor(cls, v: Any) -> Any:
        return False if v is None else v

    @field_validator("id", "source_task_id", mode="before")
    @classmethod
    def _ident(cls, v: Any) -> Any:
        return str(v) if v is not None and v != "" else None

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return min(1.0, max(0.0, float(v)))
        return None

    def to_intent(self, tz: Optional[tzinfo] = None) -> SchedulingIntent:
        return SchedulingIntent.from_dict(self.model_dump(), tz)


class InterpreterResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    assistant_text: str = Field("", validation_alias=AliasChoices("assistantText", "assistant_text"))
    mode: Mode
    follow_up_question: Optional[str] = Field(None, validation_alias=AliasChoices("followUpQuestion", "follow_up_question"))
    awaiting_fields: List[str] = Field(default_factory=list, validation_alias=AliasChoices("awaitingFields", "awaiting_fields"))
    updated_intent: Optional[Dict[str, Any]] = Field(None, validation_alias=AliasChoices("updatedIntent", "pendingIntent"))
    intent: Optional[IntentJSON] = None
    proposals: List[IntentJSON] = Field(default_factory=list)

    @field_validator("assistant_text", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("mode", mode="before")
    @classmethod
    def _mode(cls, v: Any) -> Any:
        return str(v).strip().lower() if v is not None else v

    @field_validator("awaiting_fields", "proposals", mode="before")
    @classmethod
    def _none_list(cls, v: Any) -> Any:
        return [] if v is None else v

    def intents(self, tz: Optional[tzinfo] = None) -> List[SchedulingIntent]:
        if self.proposals:
            return [p.to_intent(tz) for p in self.proposals]
        if self.intent is not None:
            return [self.intent.to_intent(tz)]
        return []


class InterpreterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    now_iso: str = Field(serialization_alias="nowIso")
    timezone: str
    preferences: Dict[str, Any] = Field(default_factory=dict)
    conversation_thread: List[Dict[str, Any]] = Field(default_factory=list, serialization_alias="conversationThread")
    session_state: Dict[str, Any] = Field(default_factory=dict, serialization_alias="sessionState")
    commitments_window: List[Dict[str, Any]] = Field(default_factory=list, serialization_alias="commitmentsWindow")
