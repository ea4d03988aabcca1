from __future__ import annotations
import re
from typing import Optional

# lines that try to steer the interpreter are dropped before the text reaches it
_STEERING = re.compile(
    r"ignore (all|any|previous) instructions|system prompt|developer message|exfiltrate",
    re.IGNORECASE,
)
_QUOTES = " \"'`.“”‘’"

MESSAGE_MAX_CHARS = 2000
TITLE_MAX_CHARS = 200


def sanitize_untrusted_text(s: Optional[str], max_chars: int = MESSAGE_MAX_CHARS) -> str:
    text = (s or "").strip()
    clipped = len(text) > max_chars
    if clipped:
        text = text[:max_chars]
    kept = [line for line in text.splitlines() if not _STEERING.search(line)]
    if clipped:
        kept.append("…[truncated]")
    return "\n".join(kept).strip()


def clean_title(s: Optional[str]) -> str:
    """One-line title: steering lines dropped, whitespace collapsed, quotes and trailing dot stripped."""
    text = sanitize_untrusted_text(s, TITLE_MAX_CHARS * 2)
    if text.endswith("…[truncated]"):
        text = text[: -len("…[truncated]")]
    return " ".join(text.split()).strip(_QUOTES)[:TITLE_MAX_CHARS]
