"""OpenAI adapter for image SEO metadata generation."""

import json
import logging
import re

import openai
from pydantic import ValidationError

from imageprep.adapters.base import VisionAdapter, build_prompt
from imageprep.config import (
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
    VISION_MAX_OUTPUT_TOKENS,
    VISION_MODEL,
)
from imageprep.errors import ParseError, ResultValidationError, TransportError
from imageprep.postprocess import normalize_result
from imageprep.schemas import GenerationOptions, ImagePayload, ImageResult
from imageprep.schemas.result import SYSTEM_PROMPT

logger = logging.getLogger(__name__)

_OPENAI_HOST = "api.openai.com"


class OpenAIAdapter(VisionAdapter):
    """GPT vision adapter."""

    name = "openai"

    def __init__(self, base_url: str | None = None, api_key: str | None = None):
        base_url = base_url or OPENAI_BASE_URL
        api_key = api_key or OPENAI_API_KEY
        if not api_key and _OPENAI_HOST in base_url:
            raise ValueError("OPENAI_API_KEY is required when using the OpenAI API")

        self.client = openai.AsyncOpenAI(base_url=base_url, api_key=api_key or "not-required")
        self.model = VISION_MODEL
        self.max_tokens = VISION_MAX_OUTPUT_TOKENS

    async def generate(
        self, image: ImagePayload, options: GenerationOptions, strict: bool = False
    ) -> ImageResult:
        """Describe one image with GPT Vision and validate the answer."""
        prompt = build_prompt(image.filename, options, strict=strict)

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {"type": "image_url", "image_url": {"url": image.data_url}},
                        ],
                    },
                ],
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            raise TransportError(f"Vision model request failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ParseError("No response from AI model")

        parsed = self._parse_json_content(content)
        if parsed is None:
            raise ParseError("Invalid JSON response from AI model")

        try:
            result = ImageResult.model_validate(parsed)
        except ValidationError as e:
            raise ResultValidationError(
                f"AI model response does not match the result schema: {e.error_count()} error(s)"
            ) from e

        return normalize_result(result, options.lang)

    async def is_available(self) -> bool:
        """Check if the OpenAI API is available."""
        try:
            await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": "test"}],
                max_tokens=5,
            )
            return True
        except openai.OpenAIError as e:
            logger.warning(f"OpenAI availability check failed: {e}")
            return False

    def _parse_json_content(self, content: str | None) -> dict | None:
        """Parse a JSON object from model output using three-stage extraction.

        Stages:
        1. Direct parse of stripped content
        2. Extract from fenced markdown blocks (```json {...}```)
        3. Substring between first { and last }

        Returns:
            Parsed dict or None on all failures
        """
        if not content:
            return None

        stripped = content.strip()

        # Stage 1: direct parse
        try:
            return _as_object(json.loads(stripped))
        except json.JSONDecodeError:
            pass

        # Stage 2: fenced markdown block
        match = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", stripped, re.DOTALL)
        if match:
            try:
                return _as_object(json.loads(match.group(1)))
            except json.JSONDecodeError:
                pass

        # Stage 3: first { to last }
        start = stripped.find("{")
        end = stripped.rfind("}")
        if start >= 0 and end > start:
            try:
                return _as_object(json.loads(stripped[start : end + 1]))
            except json.JSONDecodeError:
                pass

        return None


def _as_object(value: object) -> dict:
    if not isinstance(value, dict):
        raise ResultValidationError("AI model response is not a JSON object")
    return value
