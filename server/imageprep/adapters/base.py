"""Vision adapter interface and shared prompt construction."""

from abc import ABC, abstractmethod

from imageprep.postprocess import max_alt_chars
from imageprep.schemas import GenerationOptions, ImagePayload, ImageResult
from imageprep.schemas.result import PLACEMENT_HINTS, PROMPT, STRICT_SUFFIX


def build_prompt(filename: str, options: GenerationOptions, strict: bool = False) -> str:
    """Build the per-image user instruction.

    ``strict`` appends an extra demand for bare JSON, used when a previous
    attempt returned something unusable.
    """
    tone_line = f"Tone: {options.tone}. " if options.tone else ""
    keywords_line = (
        f"SEO keywords (use 0-2 if they fit naturally): {', '.join(options.keywords)}. "
        if options.keywords
        else ""
    )
    prompt = PROMPT.format(
        filename=filename,
        lang=options.lang,
        tone_line=tone_line,
        keywords_line=keywords_line,
        max_chars=max_alt_chars(options.lang),
        placement_choices=" | ".join(f'"{hint}"' for hint in PLACEMENT_HINTS),
        placement_list=", ".join(PLACEMENT_HINTS),
    )
    if strict:
        prompt += STRICT_SUFFIX
    return prompt


class VisionAdapter(ABC):
    """Generates SEO metadata for a single image."""

    name = "base"

    @abstractmethod
    async def generate(
        self, image: ImagePayload, options: GenerationOptions, strict: bool = False
    ) -> ImageResult:
        """Return a validated, normalized result for one image.

        Raises:
            TransportError: The model endpoint failed
            ParseError: The model output was not JSON
            ResultValidationError: The JSON did not match the result schema
        """

    @abstractmethod
    async def is_available(self) -> bool:
        """Check whether the model endpoint answers."""
