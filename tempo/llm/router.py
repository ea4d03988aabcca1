from __future__ import annotations
import os
from typing import Optional
from tempo.config import Config
from .types import LLM
from .providers.ollama_http import OllamaHTTP
from .providers.openai_http import OpenAIHTTP
from .providers.anthropic_http import AnthropicHTTP


def build_llm(cfg: Config, provider: Optional[str] = None, model: Optional[str] = None) -> Optional[LLM]:
    provider = (provider or cfg.llm_provider or "").strip().lower()
    if not provider or provider == "local":
        return None
    if provider == "ollama":
        return OllamaHTTP(cfg.ollama_base_url, model or cfg.ollama_model)
    if provider == "openai":
        k = os.getenv("OPENAI_API_KEY")
        if not k:
            return None
        return OpenAIHTTP(k, os.getenv("OPENAI_BASE_URL", "https://api.openai.com"), model or os.getenv("OPENAI_MODEL", "gpt-4o"))
    if provider == "anthropic":
        k = os.getenv("ANTHROPIC_API_KEY")
        if not k:
            return None
        return AnthropicHTTP(k, os.getenv("ANTHROPIC_API_BASE_URL", "https://api.anthropic.com"), model or os.getenv("ANTHROPIC_MODEL", "claude-3-5-sonnet-latest"))
    return None
