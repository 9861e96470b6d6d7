import math
import os
from dataclasses import dataclass

# LLM provider settings
OLLAMA_URL = os.environ.get("OLLAMA_URL", "http://localhost:11434")
OLLAMA_API_KEY = os.environ.get("OLLAMA_API_KEY", "")

OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")

VISION_MODEL = os.environ.get("VISION_MODEL", "gpt-4o-mini")
VISION_MAX_OUTPUT_TOKENS = int(os.environ.get("VISION_MAX_OUTPUT_TOKENS", "1000"))


def resolve_vision_provider() -> str:
    """Resolve the vision provider from environment variables.

    Returns:
        Provider name: 'ollama' or 'openai'

    Raises:
        ValueError: If VISION_PROVIDER is set to an invalid value
    """
    raw = os.environ.get("VISION_PROVIDER", "auto").strip().lower()
    if raw in ("ollama", "openai"):
        return raw
    if raw == "auto":
        if os.environ.get("OPENAI_API_KEY"):
            return "openai"
        return "ollama"
    raise ValueError(f"Invalid VISION_PROVIDER: {raw}")


VISION_PROVIDER = resolve_vision_provider()

# Upload budgets
DEFAULT_MAX_UPLOAD_MB = 10.0
DEFAULT_MAX_FILE_MB = 2.0
MAX_FILES = 10


def to_bytes(megabytes: float) -> int:
    return round(megabytes * 1024 * 1024)


def payload_too_large_hint(max_upload_mb: float) -> str:
    return f"Try smaller files or fewer images (max {max_upload_mb:g} MB total)"


def _positive_mb(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if value > 0 and math.isfinite(value):
        return value
    return default


@dataclass(frozen=True)
class UploadLimitConfig:
    max_upload_mb: float
    max_upload_bytes: int
    max_file_mb: float
    max_file_bytes: int
    hint: str


def resolve_upload_limits() -> UploadLimitConfig:
    """Resolve the per-request and per-file image budgets.

    Non-numeric or non-positive MAX_UPLOAD_MB / MAX_FILE_MB values fall back
    to the defaults (10 MB total, 2 MB per file).
    """
    max_upload_mb = _positive_mb("MAX_UPLOAD_MB", DEFAULT_MAX_UPLOAD_MB)
    max_file_mb = _positive_mb("MAX_FILE_MB", DEFAULT_MAX_FILE_MB)
    return UploadLimitConfig(
        max_upload_mb=max_upload_mb,
        max_upload_bytes=to_bytes(max_upload_mb),
        max_file_mb=max_file_mb,
        max_file_bytes=to_bytes(max_file_mb),
        hint=payload_too_large_hint(max_upload_mb),
    )


# Batch settings
BATCH_CONCURRENCY = int(os.environ.get("BATCH_CONCURRENCY", "3"))
MAX_RETRIES = int(os.environ.get("MAX_RETRIES", "2"))
RETRY_BASE_DELAY = float(os.environ.get("RETRY_BASE_DELAY", "1.0"))

# History log
MAX_HISTORY_ENTRIES = 50

# Server settings
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "5000"))
