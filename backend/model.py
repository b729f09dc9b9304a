# backend/model.py
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field

from config.settings import settings


class ModelVariant(str, Enum):
    KLEIN_9B = "9b"
    KLEIN_4B = "4b"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ModelVariant":
        # Anything other than "4b" targets the default 9B endpoint
        if value == cls.KLEIN_4B.value:
            return cls.KLEIN_4B
        return cls.KLEIN_9B


def endpoint_for(variant: ModelVariant) -> str:
    if variant is ModelVariant.KLEIN_4B:
        return settings.BFL_API_4B
    return settings.BFL_API_9B


class InlineImage(BaseModel):
    kind: Literal["inline"] = "inline"
    data: str  # base64, forwarded as-is


class SourceUrlImage(BaseModel):
    kind: Literal["url"] = "url"
    url: str


ReferenceImage = Annotated[Union[InlineImage, SourceUrlImage], Field(discriminator="kind")]


class GenerateRequest(BaseModel):
    """Body of POST /api/generate, as sent by the frontend."""

    prompt: Optional[str] = None
    apiKey: Optional[str] = None
    image: Optional[str] = None
    imageUrl: Optional[str] = None
    variant: Optional[str] = None

    @property
    def model_variant(self) -> ModelVariant:
        return ModelVariant.parse(self.variant)

    @property
    def reference(self) -> Optional[ReferenceImage]:
        # Inline payload wins when both are sent
        if self.image:
            return InlineImage(data=self.image)
        if self.imageUrl:
            return SourceUrlImage(url=self.imageUrl)
        return None


class ProviderPayload(BaseModel):
    prompt: str
    width: int = settings.IMAGE_WIDTH
    height: int = settings.IMAGE_HEIGHT
    prompt_upsampling: bool = False
    input_image: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class SubmissionOutcome(BaseModel):
    sample: Optional[str] = None
    polling_url: Optional[str] = None


class PollStatus:
    PENDING = "Pending"
    READY = "Ready"


class PollResult(BaseModel):
    sample: Optional[str] = None


class PollOutcome(BaseModel):
    status: Optional[str] = None
    result: Optional[PollResult] = None
    error: Optional[Any] = None
    message: Optional[Any] = None
    detail: Optional[Any] = None

    @property
    def sample(self) -> Optional[str]:
        return self.result.sample if self.result else None


class GenerationResult(BaseModel):
    url: Optional[str] = None
    error: Optional[str] = None
    status_code: int = Field(default=200, exclude=True)

    @classmethod
    def success(cls, url: str) -> "GenerationResult":
        return cls(url=url, status_code=200)

    @classmethod
    def failure(cls, error: str, status_code: int) -> "GenerationResult":
        return cls(error=error, status_code=status_code)

    @property
    def ok(self) -> bool:
        return self.url is not None

    def body(self) -> Dict[str, str]:
        if self.url is not None:
            return {"url": self.url}
        return {"error": self.error or ""}
