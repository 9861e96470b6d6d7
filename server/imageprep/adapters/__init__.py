"""Vision model adapters."""

from imageprep.adapters.base import VisionAdapter
from imageprep.config import VISION_PROVIDER


def get_adapter() -> VisionAdapter:
    """Return the adapter for the configured vision provider."""
    if VISION_PROVIDER == "openai":
        from imageprep.adapters.openai import OpenAIAdapter

        return OpenAIAdapter()

    from imageprep.adapters.ollama import OllamaAdapter

    return OllamaAdapter()


__all__ = ["VisionAdapter", "get_adapter"]
