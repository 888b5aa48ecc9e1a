"""
Image Proxy Data Models

Contains:
- OutputFormat: supported encoder targets
- TransformParameters: normalized resize/format/quality/grayscale request
- CachedImage: immutable encoded image held by either cache tier
- CacheTier: which pipeline stage produced a response
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidParameters

DEFAULT_QUALITY = 85
MIN_QUALITY = 1
MAX_QUALITY = 100


class OutputFormat(str, Enum):
    """Encoder targets. Values double as canonical file extensions."""
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"

    @property
    def content_type(self) -> str:
        return f"image/{self.value}"

    @property
    def extensions(self) -> Tuple[str, ...]:
        """File extensions that name this format (canonical first)."""
        if self is OutputFormat.JPEG:
            return ("jpeg", "jpg", "jpe")
        return (self.value,)

    @property
    def pil_format(self) -> str:
        return self.value.upper()


class TransformParameters(BaseModel):
    """
    Requested transform for one source image.

    Accepts both the long field names and the short query aliases
    (w, h, fm, q, gray). Quality outside [1, 100] is clamped.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    width: Optional[int] = Field(
        None, gt=0, validation_alias=AliasChoices("width", "w"),
        description="Target box width in pixels",
    )
    height: Optional[int] = Field(
        None, gt=0, validation_alias=AliasChoices("height", "h"),
        description="Target box height in pixels",
    )
    format: OutputFormat = Field(
        OutputFormat.JPEG, validation_alias=AliasChoices("format", "fm"),
        description="Output format: jpeg, png, webp",
    )
    quality: int = Field(
        DEFAULT_QUALITY, validation_alias=AliasChoices("quality", "q"),
        description="Encoder quality (1-100, clamped)",
    )
    grayscale: bool = Field(
        False, validation_alias=AliasChoices("grayscale", "gray"),
        description="Convert to grayscale after resizing",
    )

    @field_validator("format", mode="before")
    @classmethod
    def _normalize_format(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            if value == "jpg":
                return OutputFormat.JPEG.value
        return value

    @field_validator("quality")
    @classmethod
    def _clamp_quality(cls, value: int) -> int:
        return max(MIN_QUALITY, min(MAX_QUALITY, value))

    @property
    def resizes(self) -> bool:
        return self.width is not None or self.height is not None

    @property
    def is_default(self) -> bool:
        """True when applying these parameters means "serve the original"."""
        return (
            not self.resizes
            and self.format is OutputFormat.JPEG
            and self.quality == DEFAULT_QUALITY
            and not self.grayscale
        )

    @classmethod
    def from_query(cls, query: Optional[Mapping[str, Any]]) -> "TransformParameters":
        """
        Build parameters from a raw query mapping.

        Empty values are treated as absent, unknown keys are ignored.

        Raises:
            InvalidParameters: if any value fails validation.
        """
        cleaned = {
            key: value
            for key, value in (query or {}).items()
            if value is not None and value != ""
        }
        try:
            return cls.model_validate(cleaned)
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                for err in e.errors()
            )
            raise InvalidParameters(f"Invalid transform parameters: {details}") from e


@dataclass(frozen=True)
class CachedImage:
    """Encoded image bytes plus MIME type. Never mutated after creation."""
    data: bytes
    content_type: str

    @property
    def size_bytes(self) -> int:
        return len(self.data)


class CacheTier(str, Enum):
    """Pipeline stage that produced a response."""
    MEMORY = "memory"
    DURABLE = "durable"
    TRANSFORM = "transform"

    @property
    def header_value(self) -> str:
        return {
            CacheTier.MEMORY: "HIT-MEMORY",
            CacheTier.DURABLE: "HIT-DURABLE",
            CacheTier.TRANSFORM: "MISS",
        }[self]
