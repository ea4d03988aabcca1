from __future__ import annotations
import json
import logging
import socket
import urllib.error
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from pydantic import ValidationError

from tempo.config import Config
from tempo.core.errors import InterpreterMalformed, InterpreterTimeout, InterpreterUnavailable
from tempo.core.timeutil import to_iso
from tempo.core.types import ChatMessage, Commitment, SessionState
from tempo.llm import promptlib
from tempo.llm.providers.http import maybe_json
from tempo.llm.sanitize import clean_title, sanitize_untrusted_text
from tempo.llm.schemas import InterpreterRequest, InterpreterResponse
from tempo.llm.types import LLM, LLMResponse

logger = logging.getLogger(__name__)


def _is_timeout(e: BaseException) -> bool:
    if isinstance(e, (TimeoutError, socket.timeout)):
        return True
    if isinstance(e, urllib.error.URLError) and isinstance(e.reason, (TimeoutError, socket.timeout)):
        return True
    return False


def _commitment_json(c: Commitment) -> Dict[str, Any]:
    return {
        "id": c.id,
        "title": c.title,
        "kind": c.kind,
        "startAt": to_iso(c.start_at),
        "endAt": to_iso(c.end_at),
        "dueDate": c.due_date.isoformat() if c.due_date else None,
        "isAnchor": c.is_anchor,
    }


def build_request(
    message: str,
    now: datetime,
    cfg: Config,
    state: SessionState,
    thread: Sequence[ChatMessage] = (),
    commitments: Sequence[Commitment] = (),
    preferences: Optional[Dict[str, Any]] = None,
) -> InterpreterRequest:
    turns = list(thread)[-cfg.thread_turns:] if cfg.thread_turns > 0 else []
    prefs = {
        "defaultEventMinutes": cfg.default_event_minutes,
        "defaultTaskMinutes": cfg.default_task_minutes,
        "bufferBetweenEventsMinutes": cfg.buffer_minutes,
        **(preferences or {}),
    }
    return InterpreterRequest(
        message=sanitize_untrusted_text(message, 2000),
        now_iso=now.isoformat(),
        timezone=cfg.timezone,
        preferences=prefs,
        conversation_thread=[{"role": m.role, "text": sanitize_untrusted_text(m.text, 2000)} for m in turns],
        session_state=state.to_dict(),
        commitments_window=[_commitment_json(c) for c in commitments],
    )


def parse_response(resp: LLMResponse) -> InterpreterResponse:
    js = resp.json if resp.json is not None else maybe_json(resp.text, True)
    if js is None:
        raise InterpreterMalformed("interpreter returned non-JSON output")
    try:
        return InterpreterResponse.model_validate(js)
    except ValidationError as e:
        raise InterpreterMalformed(f"interpreter response failed validation: {e.error_count()} errors") from e


class Interpreter:
    """LLM-backed interpreter: one bounded call, retried on timeout."""

    def __init__(self, llm: LLM, cfg: Config):
        self.llm = llm
        self.cfg = cfg

    def _complete(self, *, system: str, user: str, json_mode: bool) -> LLMResponse:
        attempts = 1 + max(0, self.cfg.interpreter_retries)
        last: Optional[BaseException] = None
        for attempt in range(1, attempts + 1):
            try:
                return self.llm.complete(system=system, user=user, json_mode=json_mode, timeout=self.cfg.interpreter_timeout_s)
            except Exception as e:
                if not _is_timeout(e) and not isinstance(e, (urllib.error.URLError, ConnectionError)):
                    raise InterpreterMalformed(f"interpreter call failed: {e}") from e
                last = e
                logger.warning("interpreter call failed (attempt %d/%d): %s", attempt, attempts, e)
        if last is not None and not _is_timeout(last):
            raise InterpreterUnavailable(str(last))
        raise InterpreterTimeout(f"no interpreter response after {attempts} attempts")

    def interpret(self, request: InterpreterRequest) -> InterpreterResponse:
        payload = json.dumps(request.model_dump(by_alias=True), ensure_ascii=False, default=str)
        resp = self._complete(
            system=promptlib.system_scheduler(request.now_iso, request.timezone),
            user=promptlib.user_scheduler(payload),
            json_mode=True,
        )
        return parse_response(resp)

    def refine_title(self, title: str) -> Optional[str]:
        resp = self._complete(system=promptlib.system_title_cleanup(), user=promptlib.user_title_cleanup(title), json_mode=False)
        cleaned = clean_title(resp.text)
        return cleaned or None
