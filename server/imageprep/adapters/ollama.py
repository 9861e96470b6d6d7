"""Ollama adapter: the OpenAI adapter pointed at Ollama's /v1 endpoint."""

from imageprep.adapters.openai import OpenAIAdapter
from imageprep.config import OLLAMA_API_KEY, OLLAMA_URL, OPENAI_API_KEY


def _normalize_ollama_base_url(url: str) -> str:
    """Append the /v1 suffix Ollama serves its OpenAI-compatible API under.

        http://localhost:11434    -> http://localhost:11434/v1
        http://localhost:11434/v1/ -> http://localhost:11434/v1
    """
    base = url.rstrip("/")
    return base if base.endswith("/v1") else f"{base}/v1"


class OllamaAdapter(OpenAIAdapter):
    """Local vision model served by Ollama (e.g. llava, qwen2.5vl)."""

    name = "ollama"

    def __init__(self, url: str | None = None, api_key: str | None = None):
        super().__init__(
            base_url=_normalize_ollama_base_url(url or OLLAMA_URL),
            api_key=api_key or OLLAMA_API_KEY or OPENAI_API_KEY or "not-required",
        )
