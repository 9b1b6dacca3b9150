"""Wrap generation schemas (request, provider outcomes, artifact, aggregate failure)."""

from __future__ import annotations

import base64
import io
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from PIL import Image
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationInfo, field_validator, model_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ProviderId(str, Enum):
    OPENAI = "openai"
    GEMINI = "gemini"
    REPLICATE = "replicate"
    HUGGINGFACE = "huggingface"


def sniff_image_mime(data: bytes) -> str:
    """Return the mime type Pillow detects for `data`.

    Raises ValueError when the bytes do not decode as an image.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            image_format = img.format or ""
            img.verify()
    except Exception as exc:
        raise ValueError(f"bytes are not a decodable image ({type(exc).__name__}: {exc})") from exc
    return Image.MIME.get(image_format.upper(), "image/png")


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

class TemplateImage(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: bytes = Field(repr=False)
    mime_type: str = Field(default="", validate_default=True)

    @field_validator("data")
    @classmethod
    def _data_must_decode(cls, value: bytes) -> bytes:
        sniff_image_mime(value)
        return value

    @field_validator("mime_type")
    @classmethod
    def _fill_generic_mime_type(cls, value: str, info: ValidationInfo) -> str:
        data = info.data.get("data")
        clean = str(value or "").strip().lower()
        if data is not None and not clean.startswith("image/"):
            return sniff_image_mime(data)
        return clean

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"


class AutoMode(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["auto"] = "auto"


class ExplicitProvider(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["explicit"] = "explicit"
    provider: ProviderId


GenerationMode = Annotated[Union[AutoMode, ExplicitProvider], Field(discriminator="kind")]


def parse_mode(value: str | None) -> AutoMode | ExplicitProvider:
    """Map a CLI/HTTP provider selector ("auto" or a provider id) to a mode."""
    key = str(value or "").strip().lower()
    if key in ("", "auto"):
        return AutoMode()
    try:
        return ExplicitProvider(provider=ProviderId(key))
    except ValueError:
        known = ", ".join(["auto"] + [p.value for p in ProviderId])
        raise ValueError(f"Unknown provider '{value}'. Available: {known}") from None


class GenerationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    template_image: TemplateImage
    prompt: str
    mode: GenerationMode = Field(default_factory=AutoMode)

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        clean = str(value or "").strip()
        if not clean:
            raise ValueError("prompt must not be empty")
        return clean


class ProviderCredential(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: ProviderId
    token: SecretStr

    def secret(self) -> str:
        return self.token.get_secret_value()


# ---------------------------------------------------------------------------
# Provider payloads and outcomes
# ---------------------------------------------------------------------------

class InlineImagePayload(BaseModel):
    """Image returned in the response body, either raw bytes or base64 text."""

    kind: Literal["inline"] = "inline"
    data: bytes | None = Field(default=None, repr=False)
    base64_data: str | None = Field(default=None, repr=False)
    mime_type: str = "image/png"

    @model_validator(mode="after")
    def _exactly_one_source(self) -> "InlineImagePayload":
        if (self.data is None) == (self.base64_data is None):
            raise ValueError("inline payload needs exactly one of data / base64_data")
        return self


class RemoteImagePayload(BaseModel):
    """Image that must be fetched from a URL (http(s) or data: URL)."""

    kind: Literal["remote"] = "remote"
    url: str


RawPayload = Annotated[Union[InlineImagePayload, RemoteImagePayload], Field(discriminator="kind")]


class Success(BaseModel):
    kind: Literal["success"] = "success"
    payload: RawPayload
    model: str = ""


class RetryableFailure(BaseModel):
    kind: Literal["retryable"] = "retryable"
    reason: str
    suggested_wait_ms: int | None = None


class TerminalFailure(BaseModel):
    kind: Literal["terminal"] = "terminal"
    reason: str


Outcome = Annotated[Union[Success, RetryableFailure, TerminalFailure], Field(discriminator="kind")]


class GenerationAttempt(BaseModel):
    provider: ProviderId
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    outcome: Outcome
    retry_count: int = 0


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class Artifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: bytes = Field(repr=False)
    mime_type: str
    provider: ProviderId
    model: str = ""

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


class ProviderFailure(BaseModel):
    provider: ProviderId
    reason: str


class AggregateFailure(BaseModel):
    reasons: list[ProviderFailure] = Field(default_factory=list)

    @property
    def providers(self) -> list[ProviderId]:
        return [row.provider for row in self.reasons]

    @property
    def message(self) -> str:
        if not self.reasons:
            return (
                "No image generation provider is configured. "
                "Configure at least one provider API key and try again."
            )
        details = "; ".join(f"{row.provider.value}: {row.reason}" for row in self.reasons)
        return f"All image generation providers failed. {details}"


GenerationResult = Union[Artifact, AggregateFailure]
