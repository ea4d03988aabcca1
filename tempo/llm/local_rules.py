from __future__ import annotations
from datetime import timedelta
from typing import Any, Dict, Optional

from tempo.core.timeutil import parse_iso
from tempo.llm.sanitize import clean_title
from tempo.llm.schemas import InterpreterRequest, InterpreterResponse

PREFIXES = ("i need to", "i have to", "remind me to")


class LocalRulesInterpreter:
    """Offline interpreter: every message becomes a task, with a due date from simple keywords."""

    def interpret(self, request: InterpreterRequest) -> InterpreterResponse:
        now = parse_iso(request.now_iso)
        pending = (request.session_state or {}).get("pendingIntent") or {}

        title = request.message.strip()
        lower = title.lower()
        for prefix in PREFIXES:
            if lower.startswith(prefix):
                title = title[len(prefix):].strip()
                break
        title = clean_title(title)
        if title:
            title = title[0].upper() + title[1:]

        due: Optional[str] = None
        lower_title = title.lower()
        if now is not None:
            if "today" in lower_title:
                due = now.date().isoformat()
            elif "tomorrow" in lower_title:
                due = (now + timedelta(days=1)).date().isoformat()
            elif "this week" in lower_title:
                due = (now + timedelta(days=3)).date().isoformat()

        if not title and not pending.get("title"):
            return InterpreterResponse(
                assistant_text="What should I add?",
                mode="followup",
                follow_up_question="What should I add?",
                awaiting_fields=["title"],
                updated_intent={"kind": "task"},
            )

        intent: Dict[str, Any] = {**pending, "kind": pending.get("kind") or "task"}
        if title:
            intent["title"] = title
        if due:
            intent["dueDate"] = due
        return InterpreterResponse.model_validate({
            "assistantText": "I can add this as a task. Want me to save it?",
            "mode": "intent",
            "intent": intent,
        })
