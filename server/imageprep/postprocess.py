"""Hard limits applied to model output after schema validation."""

from imageprep.schemas import ALT_MAX_CHARS, MAX_KEYWORDS_USED, MAX_TAGS, ImageResult

# A whitespace cut is only used when it keeps at least this share of the budget
_MIN_KEEP_RATIO = 0.8


def max_alt_chars(lang: str) -> int:
    return ALT_MAX_CHARS.get(lang, ALT_MAX_CHARS["en"])


def trim_alt_text(text: str, max_length: int) -> str:
    """Cut ``text`` to ``max_length`` characters, preferring a whitespace boundary.

    The last whitespace at or before the budget is used when it falls within
    the final 20% of the budget; otherwise the text is cut hard.
    """
    if len(text) <= max_length:
        return text

    # one past the budget so a space right after the last kept character counts
    window = text[: max_length + 1]
    boundary = max(window.rfind(" "), window.rfind("\n"), window.rfind("\t"), window.rfind("　"))
    if boundary > max_length * _MIN_KEEP_RATIO:
        return window[:boundary].rstrip()
    return text[:max_length]


def normalize_result(result: ImageResult, lang: str) -> ImageResult:
    """Enforce the alt budget and the keyword/tag caps on a validated result."""
    return result.model_copy(
        update={
            "alt": trim_alt_text(result.alt, max_alt_chars(lang)),
            "keywords_used": list(result.keywords_used[:MAX_KEYWORDS_USED]),
            "tags": list(result.tags[:MAX_TAGS]),
        }
    )
