"""Provider fallback orchestrator.

Providers are tried strictly one after another (paid providers cost money,
and the first success ends the request). Each provider call runs inside the
shared retry policy; a terminal failure is recorded and the next candidate
is tried. The caller always gets back either one Artifact or one
AggregateFailure listing every provider attempted, in attempt order.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Mapping, Sequence

from schemas.wrap_generation import (
    AggregateFailure,
    Artifact,
    AutoMode,
    ExplicitProvider,
    GenerationAttempt,
    GenerationRequest,
    GenerationResult,
    Outcome,
    ProviderCredential,
    ProviderFailure,
    ProviderId,
    Success,
    TerminalFailure,
)
from wrapgen.normalizer import ArtifactError, ArtifactNormalizer
from wrapgen.providers import ProviderAdapter, format_reason
from wrapgen.retry import RetryPolicy

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "not configured"


class GenerationOrchestrator:
    def __init__(
        self,
        *,
        adapters: Mapping[ProviderId, ProviderAdapter],
        credentials: Mapping[ProviderId, ProviderCredential],
        priority: Sequence[ProviderId],
        normalizer: ArtifactNormalizer,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._adapters = dict(adapters)
        self._credentials = dict(credentials)
        self._priority = list(dict.fromkeys(priority))
        self._normalizer = normalizer
        self._retry = retry_policy or RetryPolicy()
        self._sleep = sleep

    def is_configured(self, provider: ProviderId) -> bool:
        return provider in self._adapters and provider in self._credentials

    def plan(self, mode: AutoMode | ExplicitProvider) -> list[ProviderId]:
        """Ordered candidate list for `mode`; unconfigured providers are left out."""
        if isinstance(mode, ExplicitProvider):
            return [mode.provider] if self.is_configured(mode.provider) else []
        return [provider for provider in self._priority if self.is_configured(provider)]

    async def generate(
        self,
        request: GenerationRequest,
        *,
        timeout_seconds: float | None = None,
    ) -> GenerationResult:
        mode = request.mode
        if isinstance(mode, ExplicitProvider) and not self.is_configured(mode.provider):
            logger.warning("Provider %s requested but not configured", mode.provider.value)
            return AggregateFailure(reasons=[ProviderFailure(provider=mode.provider, reason=NOT_CONFIGURED)])

        candidates = self.plan(mode)
        if not candidates:
            logger.error("No image generation provider is configured; nothing to try")
            return AggregateFailure()

        logger.info("Generation plan: %s", " -> ".join(p.value for p in candidates))
        attempts: list[GenerationAttempt] = []
        run = self._run_candidates(request, candidates, attempts)
        if timeout_seconds is None:
            return await run
        try:
            return await asyncio.wait_for(run, timeout=timeout_seconds)
        except asyncio.TimeoutError:
            reasons = [ProviderFailure(provider=a.provider, reason=a.outcome.reason) for a in attempts]
            if len(attempts) < len(candidates):
                in_flight = candidates[len(attempts)]
                reasons.append(
                    ProviderFailure(
                        provider=in_flight,
                        reason=format_reason(in_flight, "", f"timed out after {timeout_seconds:g}s"),
                    )
                )
            logger.error("Generation timed out after %.1fs", timeout_seconds)
            return AggregateFailure(reasons=reasons)

    async def _run_candidates(
        self,
        request: GenerationRequest,
        candidates: list[ProviderId],
        attempts: list[GenerationAttempt],
    ) -> GenerationResult:
        for provider in candidates:
            attempt, artifact = await self._attempt(provider, request)
            attempts.append(attempt)
            if artifact is not None:
                logger.info(
                    "Generation succeeded with %s (model=%s, retries=%d)",
                    provider.value,
                    artifact.model,
                    attempt.retry_count,
                )
                return artifact
            logger.warning("Provider %s failed: %s", provider.value, attempt.outcome.reason)

        logger.error("All %d provider(s) failed", len(attempts))
        return AggregateFailure(
            reasons=[ProviderFailure(provider=a.provider, reason=a.outcome.reason) for a in attempts]
        )

    async def _attempt(
        self,
        provider: ProviderId,
        request: GenerationRequest,
    ) -> tuple[GenerationAttempt, Artifact | None]:
        adapter = self._adapters[provider]
        credential = self._credentials[provider].secret()
        started_at = datetime.now(timezone.utc)
        calls = 0

        async def _call() -> Outcome:
            nonlocal calls
            calls += 1
            return await adapter.submit_generation(request.template_image, request.prompt, credential)

        logger.info("Trying provider %s", provider.value)
        try:
            outcome = await self._retry.with_retry(_call, sleep=self._sleep, label=provider.value)
        except Exception as exc:
            logger.exception("Provider %s raised unexpectedly", provider.value)
            outcome = TerminalFailure(reason=format_reason(provider, "", f"unexpected error: {exc}"))

        artifact: Artifact | None = None
        if isinstance(outcome, Success):
            try:
                artifact = await self._normalizer.normalize(outcome.payload, provider=provider, model=outcome.model)
            except ArtifactError as exc:
                outcome = TerminalFailure(reason=format_reason(provider, outcome.model, str(exc)))

        attempt = GenerationAttempt(
            provider=provider,
            started_at=started_at,
            outcome=outcome,
            retry_count=max(0, calls - 1),
        )
        return attempt, artifact
