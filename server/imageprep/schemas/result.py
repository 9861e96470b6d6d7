"""SEO metadata result schema returned by the vision model."""

from typing import Literal, get_args

from pydantic import BaseModel, Field

PlacementHint = Literal["hero", "how-it-works", "feature", "sidebar", "cta-near", "gallery"]
Language = Literal["en", "ja"]
Tone = Literal["neutral", "friendly", "professional"]

PLACEMENT_HINTS: tuple[str, ...] = get_args(PlacementHint)
LANGUAGES: tuple[str, ...] = get_args(Language)
TONES: tuple[str, ...] = get_args(Tone)

# Character budget for alt text, per language
ALT_MAX_CHARS = {"en": 140, "ja": 120}
MAX_KEYWORDS_USED = 2
MAX_TAGS = 10


class ImageResult(BaseModel):
    """SEO metadata generated for one image."""

    alt: str
    keywords_used: list[str] = Field(max_length=MAX_KEYWORDS_USED)
    tags: list[str] = Field(max_length=MAX_TAGS)
    placement_hint: PlacementHint


SYSTEM_PROMPT = (
    "You generate SEO-friendly ALT text and layout hints from images. "
    "Return STRICT JSON only that conforms to the given schema. "
    "Avoid uncertain guesses (no private attributes). "
    "Use user-provided keywords only when natural."
)

# Prompt template for per-image generation
PROMPT = """Analyze this image (filename: {filename}) and generate:

Language: {lang}
{tone_line}{keywords_line}

Return STRICT JSON with this structure:
{{
  "alt": "SEO-friendly ALT text (max {max_chars} chars for {lang})",
  "keywords_used": ["keyword1", "keyword2"],
  "tags": ["tag1", "tag2"],
  "placement_hint": {placement_choices}
}}

placement_hint must be exactly one of: {placement_list}
keywords_used must contain 0-2 items from the provided keywords list ONLY when they fit naturally
tags must be up to 10 descriptive content tags
alt must be concise and under {max_chars} characters"""

STRICT_SUFFIX = "\n\nIMPORTANT: Return ONLY valid JSON, no additional text."
