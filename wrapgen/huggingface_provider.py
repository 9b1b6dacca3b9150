"""Hugging Face inference adapter (text-to-image diffusion models).

The inference API takes only text, so the template is described through the
prompt rather than sent. Cold models answer 503 with an `estimated_time`,
which the shared retry policy waits out.
"""

from __future__ import annotations

import logging
from typing import Sequence

import httpx

from prompts.wrap_design import build_text_to_image_prompt
from schemas.wrap_generation import (
    InlineImagePayload,
    Outcome,
    ProviderId,
    Success,
    TemplateImage,
    TerminalFailure,
)
from wrapgen.providers import ModelUnavailable, classify_response, format_reason, try_models

logger = logging.getLogger(__name__)


class HuggingFaceAdapter:
    provider_id = ProviderId.HUGGINGFACE

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        models: Sequence[str],
        api_url: str,
        timeout_seconds: float = 120.0,
    ):
        self._http = http_client
        self._models = tuple(models)
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout_seconds

    async def submit_generation(self, image: TemplateImage, prompt: str, credential: str) -> Outcome:
        text_prompt = build_text_to_image_prompt(prompt)
        return await try_models(
            self.provider_id,
            self._models,
            lambda model: self._run_model(model, text_prompt, credential),
        )

    async def _run_model(self, model: str, text_prompt: str, credential: str) -> Outcome | ModelUnavailable:
        logger.info("Hugging Face: trying model %s", model)
        try:
            response = await self._http.post(
                f"{self._api_url}/{model}",
                headers={"Authorization": f"Bearer {credential}", "Accept": "image/png"},
                json={
                    "inputs": text_prompt,
                    "parameters": {"num_inference_steps": 20, "guidance_scale": 7.5},
                },
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            return TerminalFailure(reason=format_reason(self.provider_id, model, f"request failed: {exc}"))

        if response.status_code != 200:
            return classify_response(self.provider_id, model, response)

        content_type = str(response.headers.get("content-type") or "").split(";", 1)[0].strip().lower()
        if not content_type.startswith("image/") or not response.content:
            return TerminalFailure(
                reason=format_reason(self.provider_id, model, f"response contained no image (content-type: {content_type or 'none'})")
            )
        return Success(payload=InlineImagePayload(data=response.content, mime_type=content_type), model=model)
