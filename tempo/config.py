from __future__ import annotations
from dataclasses import dataclass
from datetime import timezone, tzinfo
import os

from zoneinfo import ZoneInfo


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y", "on")


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except Exception:
        return default


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except Exception:
        return default


@dataclass(frozen=True)
class Config:
    llm_provider: str = ""
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.1"
    timezone: str = "UTC"
    data_dir: str = "artifacts"
    default_event_minutes: int = 60
    default_task_minutes: int = 30
    buffer_minutes: int = 0
    auto_commit: bool = True
    auto_commit_max_minutes: int = 60
    undo_ttl_s: float = 5.0
    interpreter_timeout_s: float = 60.0
    interpreter_retries: int = 1
    session_debounce_ms: int = 500
    commitments_window_days: int = 7
    thread_turns: int = 10
    slot_day_start_hour: int = 9
    slot_day_end_hour: int = 20
    slot_step_minutes: int = 30
    slot_max_results: int = 6
    candidate_count: int = 3
    hold_to_confirm_ms: int = 700
    title_cleanup: bool = False
    calendar_backend: str = "local"
    google_client_secret: str = "secrets/client_secret.json"
    google_token_path: str = "secrets/tokens/gcal_token.json"
    google_calendar_id: str = "primary"

    @property
    def tz(self) -> tzinfo:
        if not self.timezone:
            return timezone.utc
        try:
            return ZoneInfo(self.timezone)
        except Exception:
            return timezone.utc


def load_config() -> Config:
    return Config(
        llm_provider=(os.getenv("TEMPO_LLM_PROVIDER") or "").strip().lower(),
        ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
        ollama_model=os.getenv("OLLAMA_MODEL", "llama3.1"),
        timezone=(os.getenv("TEMPO_TIMEZONE") or "UTC").strip(),
        data_dir=os.getenv("TEMPO_DATA_DIR", "artifacts"),
        default_event_minutes=_get_int("TEMPO_DEFAULT_EVENT_MINUTES", 60),
        default_task_minutes=_get_int("TEMPO_DEFAULT_TASK_MINUTES", 30),
        buffer_minutes=_get_int("TEMPO_BUFFER_MINUTES", 0),
        auto_commit=_get_bool("TEMPO_AUTO_COMMIT", True),
        auto_commit_max_minutes=_get_int("TEMPO_AUTO_COMMIT_MAX_MINUTES", 60),
        undo_ttl_s=_get_float("TEMPO_UNDO_TTL_S", 5.0),
        interpreter_timeout_s=_get_float("TEMPO_INTERPRETER_TIMEOUT_S", 60.0),
        interpreter_retries=_get_int("TEMPO_INTERPRETER_RETRIES", 1),
        session_debounce_ms=_get_int("TEMPO_SESSION_DEBOUNCE_MS", 500),
        commitments_window_days=_get_int("TEMPO_WINDOW_DAYS", 7),
        thread_turns=_get_int("TEMPO_THREAD_TURNS", 10),
        slot_day_start_hour=_get_int("TEMPO_DAY_START_HOUR", 9),
        slot_day_end_hour=_get_int("TEMPO_DAY_END_HOUR", 20),
        slot_step_minutes=_get_int("TEMPO_SLOT_STEP_MINUTES", 30),
        slot_max_results=_get_int("TEMPO_SLOT_MAX_RESULTS", 6),
        candidate_count=_get_int("TEMPO_CANDIDATE_COUNT", 3),
        hold_to_confirm_ms=_get_int("TEMPO_HOLD_TO_CONFIRM_MS", 700),
        title_cleanup=_get_bool("TEMPO_TITLE_CLEANUP", False),
        calendar_backend=(os.getenv("TEMPO_CALENDAR_BACKEND") or "local").strip().lower(),
        google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET", "secrets/client_secret.json"),
        google_token_path=os.getenv("GOOGLE_TOKEN_PATH", "secrets/tokens/gcal_token.json"),
        google_calendar_id=os.getenv("GOOGLE_CALENDAR_ID", "primary"),
    )
