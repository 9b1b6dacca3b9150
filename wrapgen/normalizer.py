"""Turn a provider's raw success payload into the canonical Artifact."""

from __future__ import annotations

import base64
import binascii
import logging
from pathlib import PurePosixPath
from urllib.parse import unquote, urlparse

import httpx

from schemas.wrap_generation import (
    Artifact,
    InlineImagePayload,
    ProviderId,
    RawPayload,
    sniff_image_mime,
)

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/png"

_EXTENSION_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}


class ArtifactError(Exception):
    """The payload could not be decoded or fetched into image bytes."""


def mime_from_url(url: str) -> str:
    suffix = PurePosixPath(unquote(urlparse(url).path)).suffix.lower()
    return _EXTENSION_MIME_TYPES.get(suffix, DEFAULT_MIME_TYPE)


def _image_content_type(header: str | None) -> str:
    value = str(header or "").split(";", 1)[0].strip().lower()
    return value if value.startswith("image/") else ""


def decode_data_url(url: str) -> tuple[bytes, str]:
    """`data:<mime>;base64,<payload>` -> (bytes, mime)."""
    header, sep, encoded = url.partition(",")
    if not sep or not header.startswith("data:") or ";base64" not in header:
        raise ArtifactError("unsupported data URL (expected base64 encoding)")
    mime_type = _image_content_type(header[len("data:"):].split(";", 1)[0]) or DEFAULT_MIME_TYPE
    return _b64decode(encoded), mime_type


def _b64decode(text: str) -> bytes:
    try:
        return base64.b64decode("".join(text.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ArtifactError(f"invalid base64 image data: {exc}") from exc


class ArtifactNormalizer:
    def __init__(self, http_client: httpx.AsyncClient, *, timeout_seconds: float = 120.0):
        self._http = http_client
        self._timeout = timeout_seconds

    async def normalize(self, payload: RawPayload, *, provider: ProviderId, model: str = "") -> Artifact:
        if isinstance(payload, InlineImagePayload):
            data, mime_type = self._decode_inline(payload)
        elif payload.url.startswith("data:"):
            data, mime_type = decode_data_url(payload.url)
        else:
            data, mime_type = await self._fetch(payload.url)

        try:
            sniff_image_mime(data)
        except ValueError as exc:
            raise ArtifactError(f"provider output is not an image: {exc}") from exc

        logger.info("Artifact ready: provider=%s model=%s mime=%s bytes=%d", provider.value, model, mime_type, len(data))
        return Artifact(data=data, mime_type=mime_type, provider=provider, model=model)

    def _decode_inline(self, payload: InlineImagePayload) -> tuple[bytes, str]:
        declared = _image_content_type(payload.mime_type)
        if payload.data is not None:
            return payload.data, declared or DEFAULT_MIME_TYPE
        text = str(payload.base64_data or "").strip()
        if text.startswith("data:"):
            data, data_mime = decode_data_url(text)
            return data, data_mime
        return _b64decode(text), declared or DEFAULT_MIME_TYPE

    async def _fetch(self, url: str) -> tuple[bytes, str]:
        try:
            response = await self._http.get(url, follow_redirects=True, timeout=self._timeout)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ArtifactError(f"could not download generated image: {exc}") from exc
        if response.status_code >= 400:
            raise ArtifactError(f"could not download generated image: HTTP {response.status_code}")
        body = response.content
        if not body:
            raise ArtifactError("generated image download was empty")
        mime_type = _image_content_type(response.headers.get("content-type")) or mime_from_url(url)
        return body, mime_type
