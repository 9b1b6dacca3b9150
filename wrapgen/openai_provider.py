"""OpenAI adapter: GPT vision reads the template, DALL·E paints the wrap.

DALL·E does not accept an input image, so a vision model first turns the
template + theme into a detailed design description. If every vision model
fails for a non-transient reason the theme itself is used as the
description, matching the behaviour users saw before.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Sequence

import httpx
from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from prompts.wrap_design import build_image_prompt, build_vision_prompt
from schemas.wrap_generation import (
    InlineImagePayload,
    Outcome,
    ProviderId,
    RemoteImagePayload,
    RetryableFailure,
    Success,
    TemplateImage,
    TerminalFailure,
)
from wrapgen.providers import ModelUnavailable, classify_status, format_reason, try_models

logger = logging.getLogger(__name__)

_IMAGE_SIZE = "1024x1024"
_VISION_MAX_TOKENS = 1000


class OpenAIVisionAdapter:
    provider_id = ProviderId.OPENAI

    def __init__(
        self,
        *,
        vision_models: Sequence[str],
        image_models: Sequence[str],
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 120.0,
    ):
        self._vision_models = tuple(vision_models)
        self._image_models = tuple(image_models)
        self._http_client = http_client
        self._timeout = timeout_seconds

    @asynccontextmanager
    async def _open_client(self, credential: str) -> AsyncIterator[AsyncOpenAI]:
        # max_retries=0: the shared retry policy owns retries.
        if self._http_client is not None:
            yield AsyncOpenAI(
                api_key=credential,
                http_client=self._http_client,
                max_retries=0,
                timeout=self._timeout,
            )
            return
        async with AsyncOpenAI(api_key=credential, max_retries=0, timeout=self._timeout) as client:
            yield client

    async def submit_generation(self, image: TemplateImage, prompt: str, credential: str) -> Outcome:
        async with self._open_client(credential) as client:
            description = await try_models(
                self.provider_id,
                self._vision_models,
                lambda model: self._describe(client, model, image, prompt),
            )
            if isinstance(description, RetryableFailure):
                return description
            if isinstance(description, TerminalFailure):
                logger.warning("OpenAI vision analysis failed; generating from the theme alone: %s", description.reason)
                description = prompt

            image_prompt = build_image_prompt(description)
            return await try_models(
                self.provider_id,
                self._image_models,
                lambda model: self._generate(client, model, image_prompt),
            )

    async def _describe(
        self,
        client: AsyncOpenAI,
        model: str,
        image: TemplateImage,
        prompt: str,
    ) -> str | RetryableFailure | TerminalFailure | ModelUnavailable:
        try:
            response = await client.chat.completions.create(
                model=model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": build_vision_prompt(prompt)},
                            {"type": "image_url", "image_url": {"url": image.to_data_url()}},
                        ],
                    }
                ],
                max_tokens=_VISION_MAX_TOKENS,
            )
        except APIStatusError as exc:
            return self._classify(model, exc)
        except APIConnectionError as exc:
            return TerminalFailure(reason=format_reason(self.provider_id, model, f"connection failed: {exc}"))

        choices = response.choices or []
        content = choices[0].message.content if choices and choices[0].message else ""
        description = str(content or "").strip()
        logger.info("OpenAI vision [%s]: design description %d chars", model, len(description))
        return description or prompt

    async def _generate(
        self,
        client: AsyncOpenAI,
        model: str,
        image_prompt: str,
    ) -> Outcome | ModelUnavailable:
        try:
            response = await client.images.generate(
                model=model,
                prompt=image_prompt,
                n=1,
                size=_IMAGE_SIZE,
                response_format="b64_json",
            )
        except APIStatusError as exc:
            return self._classify(model, exc)
        except APIConnectionError as exc:
            return TerminalFailure(reason=format_reason(self.provider_id, model, f"connection failed: {exc}"))

        rows = response.data or []
        first = rows[0] if rows else None
        b64_json = str(getattr(first, "b64_json", "") or "").strip()
        url = str(getattr(first, "url", "") or "").strip()
        if b64_json:
            return Success(payload=InlineImagePayload(base64_data=b64_json, mime_type="image/png"), model=model)
        if url:
            return Success(payload=RemoteImagePayload(url=url), model=model)
        return TerminalFailure(reason=format_reason(self.provider_id, model, "response missing both b64_json and url"))

    def _classify(self, model: str, exc: APIStatusError) -> RetryableFailure | TerminalFailure | ModelUnavailable:
        body = exc.body if isinstance(exc.body, dict) else {}
        if str(body.get("code") or "") == "model_not_found":
            return ModelUnavailable(model=model, reason=str(body.get("message") or "model_not_found"))
        return classify_status(
            self.provider_id,
            model,
            exc.status_code,
            body or exc.message,
            exc.response.headers,
        )
