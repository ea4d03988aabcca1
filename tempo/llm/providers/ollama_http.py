from __future__ import annotations
from typing import Any, Dict, Optional
from ..types import LLMResponse
from .http import maybe_json, post_json


class OllamaHTTP:
    def __init__(self, base_url: str, model: str):
        self.base_url = base_url.rstrip("/")
        self.model = model

    def complete(self, *, system: str, user: str, json_mode: bool = False, timeout: Optional[float] = None) -> LLMResponse:
        payload: Dict[str, Any] = {"model": self.model, "system": system, "prompt": user, "stream": False}
        if json_mode:
            payload["format"] = "json"
        data = post_json(f"{self.base_url}/api/generate", payload, {}, timeout or 120)
        text = (data.get("response") or "").strip()
        return LLMResponse(text=text, json=maybe_json(text, json_mode), model=self.model, usage=None)
