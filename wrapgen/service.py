"""Generation entry point and provider wiring.

`generate()` is what the CLI and HTTP layers call. It validates the
template + theme, builds an orchestrator from configuration, and returns an
Artifact or an AggregateFailure. Credentials and priority come from the
values `config` loaded at startup unless the caller passes its own; nothing
below this module touches the environment.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Mapping, Sequence

import httpx

import config
from schemas.wrap_generation import (
    AutoMode,
    ExplicitProvider,
    GenerationRequest,
    GenerationResult,
    ProviderCredential,
    ProviderId,
    TemplateImage,
    parse_mode,
)
from wrapgen.gemini_provider import GeminiImageEditAdapter
from wrapgen.huggingface_provider import HuggingFaceAdapter
from wrapgen.normalizer import ArtifactNormalizer
from wrapgen.openai_provider import OpenAIVisionAdapter
from wrapgen.orchestrator import GenerationOrchestrator
from wrapgen.providers import ProviderAdapter
from wrapgen.replicate_provider import ReplicatePredictionAdapter
from wrapgen.retry import RetryPolicy

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def build_provider_adapters(
    http_client: httpx.AsyncClient,
    *,
    sleep: Sleep = asyncio.sleep,
) -> dict[ProviderId, ProviderAdapter]:
    return {
        ProviderId.OPENAI: OpenAIVisionAdapter(
            vision_models=config.OPENAI_VISION_MODELS,
            image_models=config.OPENAI_IMAGE_MODELS,
            http_client=http_client,
            timeout_seconds=config.HTTP_TIMEOUT_SECONDS,
        ),
        ProviderId.GEMINI: GeminiImageEditAdapter(
            models=config.GEMINI_IMAGE_MODELS,
            timeout_seconds=config.HTTP_TIMEOUT_SECONDS,
        ),
        ProviderId.REPLICATE: ReplicatePredictionAdapter(
            http_client=http_client,
            models=config.REPLICATE_MODELS,
            api_url=config.REPLICATE_API_URL,
            poll_interval_seconds=config.REPLICATE_POLL_INTERVAL_SECONDS,
            max_polls=config.REPLICATE_MAX_POLLS,
            sleep=sleep,
            timeout_seconds=config.HTTP_TIMEOUT_SECONDS,
        ),
        ProviderId.HUGGINGFACE: HuggingFaceAdapter(
            http_client=http_client,
            models=config.HUGGINGFACE_MODELS,
            api_url=config.HUGGINGFACE_API_URL,
            timeout_seconds=config.HTTP_TIMEOUT_SECONDS,
        ),
    }


def build_orchestrator(
    http_client: httpx.AsyncClient,
    *,
    credentials: Mapping[ProviderId, ProviderCredential] | None = None,
    priority: Sequence[ProviderId] | None = None,
    sleep: Sleep = asyncio.sleep,
) -> GenerationOrchestrator:
    if credentials is None:
        credentials = config.PROVIDER_CREDENTIALS
    if priority is None:
        priority = config.PROVIDER_PRIORITY
    return GenerationOrchestrator(
        adapters=build_provider_adapters(http_client, sleep=sleep),
        credentials=credentials,
        priority=priority,
        normalizer=ArtifactNormalizer(http_client, timeout_seconds=config.HTTP_TIMEOUT_SECONDS),
        retry_policy=RetryPolicy(
            max_attempts=config.RETRY_MAX_ATTEMPTS,
            max_wait_ms=config.RETRY_MAX_WAIT_MS,
            default_wait_ms=config.RETRY_DEFAULT_WAIT_MS,
        ),
        sleep=sleep,
    )


async def generate(
    image: bytes,
    mime_type: str,
    prompt: str,
    mode: str | AutoMode | ExplicitProvider = "auto",
    *,
    credentials: Mapping[ProviderId, ProviderCredential] | None = None,
    priority: Sequence[ProviderId] | None = None,
    http_client: httpx.AsyncClient | None = None,
    timeout_seconds: float | None = None,
) -> GenerationResult:
    """Generate a wrap design for `image` + `prompt`.

    Raises pydantic ValidationError / ValueError for an undecodable image, a
    blank prompt, or an unknown provider selector. Every provider-side
    failure comes back as an AggregateFailure instead.
    """
    request = GenerationRequest(
        template_image=TemplateImage(data=image, mime_type=mime_type),
        prompt=prompt,
        mode=parse_mode(mode) if isinstance(mode, str) else mode,
    )
    if timeout_seconds is None:
        timeout_seconds = config.GENERATION_TIMEOUT_SECONDS

    if http_client is not None:
        orchestrator = build_orchestrator(http_client, credentials=credentials, priority=priority)
        return await orchestrator.generate(request, timeout_seconds=timeout_seconds)

    async with httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_SECONDS) as client:
        orchestrator = build_orchestrator(client, credentials=credentials, priority=priority)
        return await orchestrator.generate(request, timeout_seconds=timeout_seconds)
