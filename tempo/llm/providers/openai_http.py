from __future__ import annotations
from typing import Any, Dict, Optional
from ..types import LLMResponse
from .http import maybe_json, post_json


class OpenAIHTTP:
    def __init__(self, api_key: str, base_url: str, model: str):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model

    def complete(self, *, system: str, user: str, json_mode: bool = False, timeout: Optional[float] = None) -> LLMResponse:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "system", "content": system}, {"role": "user", "content": user}],
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        data = post_json(f"{self.base_url}/v1/chat/completions", payload,
                         {"Authorization": f"Bearer {self.api_key}"}, timeout or 60)
        choices = data.get("choices") or [{}]
        text = (((choices[0] or {}).get("message") or {}).get("content") or "").strip()
        return LLMResponse(text=text, json=maybe_json(text, json_mode), model=self.model, usage=data.get("usage"))
