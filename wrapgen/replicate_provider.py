"""Replicate adapter: submit a prediction, poll it to completion, return the output URL.

Model ids are either `owner/name` (official models endpoint) or
`owner/name:version` (versioned predictions endpoint). Polling uses a fixed
interval with no growth and gives up after `max_polls` status checks.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence

import httpx

from prompts.wrap_design import build_text_to_image_prompt
from schemas.wrap_generation import (
    Outcome,
    ProviderId,
    RemoteImagePayload,
    Success,
    TemplateImage,
    TerminalFailure,
)
from wrapgen.providers import ModelUnavailable, classify_response, format_reason, response_json, try_models

logger = logging.getLogger(__name__)

_RUNNING_STATES = {"starting", "processing"}
_FAILED_STATES = {"failed", "canceled"}


def _first_output_url(output: Any) -> str:
    if isinstance(output, str):
        return output.strip()
    if isinstance(output, list):
        for row in output:
            if isinstance(row, str) and row.strip():
                return row.strip()
    return ""


class ReplicatePredictionAdapter:
    provider_id = ProviderId.REPLICATE

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        models: Sequence[str],
        api_url: str,
        poll_interval_seconds: float = 1.0,
        max_polls: int = 120,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        timeout_seconds: float = 120.0,
    ):
        self._http = http_client
        self._models = tuple(models)
        self._api_url = api_url.rstrip("/")
        self._poll_interval = poll_interval_seconds
        self._max_polls = max_polls
        self._sleep = sleep
        self._timeout = timeout_seconds

    async def submit_generation(self, image: TemplateImage, prompt: str, credential: str) -> Outcome:
        headers = {"Authorization": f"Bearer {credential}", "Content-Type": "application/json"}
        text_prompt = build_text_to_image_prompt(prompt)
        return await try_models(
            self.provider_id,
            self._models,
            lambda model: self._run_model(model, text_prompt, headers),
        )

    def _submission(self, model: str, text_prompt: str) -> tuple[str, dict[str, Any]]:
        name, _, version = model.partition(":")
        if version:
            return f"{self._api_url}/predictions", {
                "version": version,
                "input": {
                    "prompt": text_prompt,
                    "image_dimensions": "1024x1024",
                    "num_outputs": 1,
                    "num_inference_steps": 50,
                    "guidance_scale": 7.5,
                },
            }
        return f"{self._api_url}/models/{name}/predictions", {
            "input": {"prompt": text_prompt, "num_outputs": 1},
        }

    async def _run_model(self, model: str, text_prompt: str, headers: dict[str, str]) -> Outcome | ModelUnavailable:
        url, body = self._submission(model, text_prompt)
        try:
            response = await self._http.post(url, headers=headers, json=body, timeout=self._timeout)
        except httpx.HTTPError as exc:
            return TerminalFailure(reason=format_reason(self.provider_id, model, f"request failed: {exc}"))

        if response.status_code not in (200, 201, 202):
            return classify_response(self.provider_id, model, response)

        prediction = response_json(response)
        if not isinstance(prediction, dict) or not prediction.get("id"):
            return TerminalFailure(reason=format_reason(self.provider_id, model, "no prediction id returned"))

        logger.info("Replicate [%s]: prediction %s started", model, prediction["id"])
        return await self._poll(model, prediction, headers)

    async def _poll(self, model: str, prediction: dict[str, Any], headers: dict[str, str]) -> Outcome:
        urls = prediction.get("urls") if isinstance(prediction.get("urls"), dict) else {}
        status_url = str(urls.get("get") or f"{self._api_url}/predictions/{prediction['id']}")
        status = str(prediction.get("status") or "starting")
        polls = 0

        while True:
            if status == "succeeded":
                output_url = _first_output_url(prediction.get("output"))
                if not output_url:
                    return TerminalFailure(reason=format_reason(self.provider_id, model, "prediction succeeded without output"))
                return Success(payload=RemoteImagePayload(url=output_url), model=model)
            if status in _FAILED_STATES:
                detail = str(prediction.get("error") or "no error detail")
                return TerminalFailure(reason=format_reason(self.provider_id, model, f"prediction {status}: {detail}"))
            if status not in _RUNNING_STATES:
                return TerminalFailure(reason=format_reason(self.provider_id, model, f"unexpected prediction status '{status}'"))
            if polls >= self._max_polls:
                return TerminalFailure(
                    reason=format_reason(self.provider_id, model, f"timed out after {polls} status checks")
                )

            await self._sleep(self._poll_interval)
            polls += 1

            try:
                poll_response = await self._http.get(status_url, headers=headers, timeout=self._timeout)
            except httpx.HTTPError as exc:
                logger.warning("Replicate [%s]: poll error (will retry): %s", model, exc)
                continue
            if poll_response.status_code == 429 or poll_response.status_code >= 500:
                logger.warning("Replicate [%s]: poll returned HTTP %d (will retry)", model, poll_response.status_code)
                continue
            if poll_response.status_code != 200:
                return TerminalFailure(
                    reason=format_reason(self.provider_id, model, f"status check failed: HTTP {poll_response.status_code}")
                )

            data = response_json(poll_response)
            if not isinstance(data, dict):
                continue
            prediction = data
            new_status = str(prediction.get("status") or status)
            if new_status != status:
                logger.info("Replicate [%s]: status=%s (poll %d)", model, new_status, polls)
            status = new_status
