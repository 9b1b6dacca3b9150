"""Gemini adapter: multimodal image edit (template + theme in, wrapped template out)."""

from __future__ import annotations

import logging
from typing import Any, Callable, Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from prompts.wrap_design import SYSTEM_INSTRUCTION, build_edit_prompt
from schemas.wrap_generation import (
    InlineImagePayload,
    Outcome,
    ProviderId,
    Success,
    TemplateImage,
    TerminalFailure,
)
from wrapgen.providers import ModelUnavailable, classify_status, format_reason, try_models

logger = logging.getLogger(__name__)


def _default_client(api_key: str, timeout_seconds: float) -> genai.Client:
    # HttpOptions.timeout is in milliseconds
    return genai.Client(api_key=api_key, http_options=types.HttpOptions(timeout=int(timeout_seconds * 1000)))


async def _close_client(client: Any) -> None:
    aclose = getattr(getattr(client, "aio", None), "aclose", None)
    if aclose is not None:
        await aclose()


def _response_parts(response: Any) -> list[Any]:
    parts: list[Any] = []
    candidates = getattr(response, "candidates", None) or []
    for candidate in candidates:
        content = getattr(candidate, "content", None) if candidate is not None else None
        parts.extend(getattr(content, "parts", None) or [])
    return parts


def _first_inline_image(response: Any) -> tuple[bytes, str] | None:
    for part in _response_parts(response):
        inline_data = getattr(part, "inline_data", None)
        data = getattr(inline_data, "data", None) if inline_data is not None else None
        if data:
            mime_type = str(getattr(inline_data, "mime_type", "") or "image/png")
            return bytes(data), mime_type
    return None


def _first_text(response: Any) -> str:
    for part in _response_parts(response):
        text = str(getattr(part, "text", "") or "").strip()
        if text:
            return text
    return ""


class GeminiImageEditAdapter:
    provider_id = ProviderId.GEMINI

    def __init__(
        self,
        *,
        models: Sequence[str],
        client_factory: Callable[[str, float], Any] | None = None,
        timeout_seconds: float = 120.0,
    ):
        self._models = tuple(models)
        self._timeout = timeout_seconds
        self._client_factory = client_factory or _default_client

    async def submit_generation(self, image: TemplateImage, prompt: str, credential: str) -> Outcome:
        client = self._client_factory(credential, self._timeout)
        contents = [
            types.Part.from_bytes(data=image.data, mime_type=image.mime_type),
            types.Part.from_text(text=build_edit_prompt(prompt)),
        ]
        generation_config = types.GenerateContentConfig(
            system_instruction=SYSTEM_INSTRUCTION,
            response_modalities=["TEXT", "IMAGE"],
            temperature=0.7,
            top_p=0.95,
            top_k=40,
        )
        try:
            return await try_models(
                self.provider_id,
                self._models,
                lambda model: self._edit(client, model, contents, generation_config),
            )
        finally:
            await _close_client(client)

    async def _edit(
        self,
        client: Any,
        model: str,
        contents: list[Any],
        generation_config: types.GenerateContentConfig,
    ) -> Outcome | ModelUnavailable:
        try:
            response = await client.aio.models.generate_content(
                model=model,
                contents=contents,
                config=generation_config,
            )
        except genai_errors.APIError as exc:
            body = exc.details if isinstance(exc.details, dict) else {"message": exc.message}
            return classify_status(self.provider_id, model, int(exc.code or 0), body)
        except httpx.HTTPError as exc:
            return TerminalFailure(reason=format_reason(self.provider_id, model, f"request failed: {exc}"))

        inline = _first_inline_image(response)
        if inline is not None:
            data, mime_type = inline
            logger.info("Gemini [%s]: image returned (%d bytes, %s)", model, len(data), mime_type)
            return Success(payload=InlineImagePayload(data=data, mime_type=mime_type), model=model)

        text = _first_text(response)
        if text:
            logger.warning("Gemini [%s]: text-only reply instead of an image: %.120s", model, text)
            return TerminalFailure(reason=format_reason(self.provider_id, model, "model replied with text instead of an image"))
        return TerminalFailure(reason=format_reason(self.provider_id, model, "response contained no image data"))
