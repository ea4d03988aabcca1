from __future__ import annotations
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from tempo.core.jsonio import atomic_write_json, read_json_dict
from tempo.core.types import ChatMessage, SessionState

logger = logging.getLogger(__name__)

SESSION_FILE = "scheduler_session_v1.json"


class SessionStore:
    def __init__(self, data_dir: str):
        self.path = Path(data_dir) / SESSION_FILE

    def load(self) -> Optional[Tuple[SessionState, List[ChatMessage]]]:
        blob = read_json_dict(self.path)
        if not blob:
            return None
        try:
            state = SessionState.from_dict(blob.get("state") or {})
            messages = [ChatMessage.from_dict(m) for m in blob.get("messages") or []]
        except Exception as e:
            logger.warning("discarding unreadable session blob: %s", e)
            return None
        return state, messages

    def save_blob(self, blob: Dict[str, Any]) -> None:
        atomic_write_json(self.path, blob)

    def save(self, state: SessionState, messages: List[ChatMessage]) -> None:
        self.save_blob(session_blob(state, messages))

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


def session_blob(state: SessionState, messages: List[ChatMessage]) -> Dict[str, Any]:
    return {"messages": [m.to_dict() for m in messages], "state": state.to_dict()}


class DebouncedWriter:
    """Coalesces rapid writes into one after a quiet period; failures are logged, not raised."""

    def __init__(self, write: Callable[[Dict[str, Any]], None], delay_s: float = 0.5):
        self.write = write
        self.delay_s = delay_s
        self._timer: Optional[threading.Timer] = None
        self._pending: Optional[Dict[str, Any]] = None
        self._lock = threading.Lock()

    def schedule(self, blob: Dict[str, Any]) -> None:
        with self._lock:
            self._pending = blob
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay_s, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> None:
        with self._lock:
            blob = self._pending
            self._pending = None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        if blob is None:
            return
        try:
            self.write(blob)
        except Exception as e:
            logger.warning("session persist failed: %s", e)

    def cancel(self) -> None:
        with self._lock:
            self._pending = None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
