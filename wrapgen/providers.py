"""Provider adapter contract plus the HTTP failure classification every adapter shares.

Classification table (applies to raw HTTP backends and to SDK errors that
carry a status code):

  - 429            -> RetryableFailure, wait from Retry-After
  - 503            -> RetryableFailure, wait from body `estimated_time` or Retry-After
  - 404 / 410      -> ModelUnavailable (adapter advances to its next model)
  - other statuses -> TerminalFailure with the backend's own error message
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Iterable, Literal, Mapping, Protocol

import httpx
from pydantic import BaseModel

from schemas.wrap_generation import (
    Outcome,
    ProviderId,
    RetryableFailure,
    TemplateImage,
    TerminalFailure,
)

logger = logging.getLogger(__name__)

_MAX_REASON_CHARS = 300


class ProviderAdapter(Protocol):
    provider_id: ProviderId

    async def submit_generation(self, image: TemplateImage, prompt: str, credential: str) -> Outcome:
        """Run one generation against the backend and return a classified outcome."""


class ModelUnavailable(BaseModel):
    """A backend answered "no such model" for one entry of an adapter's model list."""

    kind: Literal["model_unavailable"] = "model_unavailable"
    model: str
    reason: str


def format_reason(provider: ProviderId, model: str, message: str) -> str:
    """Provider-labelled, length-capped failure text."""
    msg = " ".join(str(message or "").split()) or "unknown error"
    if len(msg) > _MAX_REASON_CHARS:
        msg = msg[:_MAX_REASON_CHARS] + "..."
    label = f"{provider.value}/{model}" if model else provider.value
    return f"[{label}] {msg}"


def extract_error_message(body: Any) -> str:
    """Pull a readable message out of the error shapes the backends use."""
    if isinstance(body, Mapping):
        error = body.get("error")
        if isinstance(error, Mapping):
            return str(error.get("message") or error.get("status") or "").strip()
        if isinstance(error, str) and error.strip():
            return error.strip()
        for key in ("message", "detail", "title"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return ""
    if isinstance(body, str):
        return body.strip()
    return ""


def parse_retry_after(value: str | None) -> int | None:
    """Retry-After header (delta-seconds or HTTP date) -> milliseconds."""
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        return max(0, int(float(raw) * 1000))
    except (ValueError, OverflowError):
        pass
    try:
        when = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    delta = (when - datetime.now(timezone.utc)).total_seconds()
    return max(0, int(delta * 1000))


def _estimated_wait_ms(body: Any) -> int | None:
    if not isinstance(body, Mapping):
        return None
    raw = body.get("estimated_time")
    try:
        return max(0, int(float(raw) * 1000)) if raw is not None else None
    except (TypeError, ValueError, OverflowError):
        return None


def classify_status(
    provider: ProviderId,
    model: str,
    status_code: int,
    body: Any = None,
    headers: Mapping[str, str] | None = None,
) -> RetryableFailure | TerminalFailure | ModelUnavailable:
    """Map a non-success status code to an outcome (see module docstring)."""
    headers = headers or {}
    message = extract_error_message(body) or f"HTTP {status_code}"
    if status_code == 429:
        return RetryableFailure(
            reason=format_reason(provider, model, f"rate limited: {message}"),
            suggested_wait_ms=parse_retry_after(headers.get("retry-after")),
        )
    if status_code == 503:
        wait_ms = _estimated_wait_ms(body)
        if wait_ms is None:
            wait_ms = parse_retry_after(headers.get("retry-after"))
        return RetryableFailure(
            reason=format_reason(provider, model, f"model loading / unavailable: {message}"),
            suggested_wait_ms=wait_ms,
        )
    if status_code in (404, 410):
        return ModelUnavailable(model=model, reason=f"HTTP {status_code}: {message}")
    return TerminalFailure(reason=format_reason(provider, model, f"HTTP {status_code}: {message}"))


def response_json(response: httpx.Response) -> Any:
    """Parsed JSON body, or the raw text when the body is not JSON."""
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text


def classify_response(
    provider: ProviderId,
    model: str,
    response: httpx.Response,
) -> RetryableFailure | TerminalFailure | ModelUnavailable:
    return classify_status(provider, model, response.status_code, response_json(response), response.headers)


async def try_models(
    provider: ProviderId,
    models: Iterable[str],
    attempt: Callable[[str], Awaitable[Any]],
) -> Any:
    """Run `attempt(model)` over `models` in order.

    A ModelUnavailable result moves on to the next model. Any other result is
    returned as soon as it is produced. When every model is unavailable the
    adapter reports a TerminalFailure naming the models it tried.
    """
    tried: list[str] = []
    for model in models:
        result = await attempt(model)
        if isinstance(result, ModelUnavailable):
            logger.warning("%s: model %s unavailable (%s); trying next model", provider.value, model, result.reason)
            tried.append(model)
            continue
        return result
    if not tried:
        return TerminalFailure(reason=format_reason(provider, "", "no models configured"))
    return TerminalFailure(reason=format_reason(provider, "", f"no available model (tried: {', '.join(tried)})"))
