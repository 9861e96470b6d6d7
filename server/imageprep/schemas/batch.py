"""HTTP request and response bodies for batch generation."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from imageprep.config import MAX_FILES
from imageprep.schemas.result import ImageResult, Language, Tone


class ImageMetrics(BaseModel):
    width: int = Field(ge=0)
    height: int = Field(ge=0)
    bytes: int = Field(ge=0)


class ImagePayload(BaseModel):
    """One image as submitted by the client."""

    model_config = ConfigDict(populate_by_name=True)

    data_url: str = Field(alias="dataUrl")
    filename: str
    sha256: str
    metrics: ImageMetrics


class GenerationOptions(BaseModel):
    """Options shared by every image of a batch."""

    lang: Language
    tone: Tone | None = None
    keywords: list[str] | None = None

    @field_validator("keywords")
    @classmethod
    def _strip_keywords(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return [kw.strip() for kw in value if kw.strip()]


class GenerateRequest(GenerationOptions):
    images: list[ImagePayload] = Field(min_length=1, max_length=MAX_FILES)

    def options(self) -> GenerationOptions:
        return GenerationOptions(lang=self.lang, tone=self.tone, keywords=self.keywords)


class ImageItem(BaseModel):
    filename: str
    sha256: str
    metrics: ImageMetrics
    result: ImageResult


class ItemFailure(BaseModel):
    filename: str
    sha256: str
    message: str


class BatchResponse(BaseModel):
    generated_at: str
    lang: Language
    items: list[ImageItem] = Field(default_factory=list)
    failures: list[ItemFailure] = Field(default_factory=list)
