from __future__ import annotations
from typing import Any, Dict, Optional
from ..types import LLMResponse
from .http import maybe_json, post_json


class AnthropicHTTP:
    def __init__(self, api_key: str, base_url: str, model: str):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model

    def complete(self, *, system: str, user: str, json_mode: bool = False, timeout: Optional[float] = None) -> LLMResponse:
        if json_mode:
            system = system + "\nRespond with a single JSON object and nothing else."
        payload: Dict[str, Any] = {"model": self.model, "max_tokens": 1200, "system": system,
                                   "messages": [{"role": "user", "content": user}]}
        data = post_json(f"{self.base_url}/v1/messages", payload,
                         {"x-api-key": self.api_key, "anthropic-version": "2023-06-01"}, timeout or 60)
        text = "".join(c.get("text", "") for c in data.get("content", []) if c.get("type") == "text").strip()
        return LLMResponse(text=text, json=maybe_json(text, json_mode), model=self.model, usage=data.get("usage"))
