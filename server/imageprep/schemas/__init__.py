"""Request, response and model-output schemas."""

from imageprep.schemas.batch import (
    BatchResponse,
    GenerateRequest,
    GenerationOptions,
    ImageItem,
    ImageMetrics,
    ImagePayload,
    ItemFailure,
)
from imageprep.schemas.result import (
    ALT_MAX_CHARS,
    LANGUAGES,
    MAX_KEYWORDS_USED,
    MAX_TAGS,
    PLACEMENT_HINTS,
    TONES,
    ImageResult,
    Language,
    PlacementHint,
    Tone,
)

__all__ = [
    "ALT_MAX_CHARS",
    "LANGUAGES",
    "MAX_KEYWORDS_USED",
    "MAX_TAGS",
    "PLACEMENT_HINTS",
    "TONES",
    "BatchResponse",
    "GenerateRequest",
    "GenerationOptions",
    "ImageItem",
    "ImageMetrics",
    "ImagePayload",
    "ImageResult",
    "ItemFailure",
    "Language",
    "PlacementHint",
    "Tone",
]
