"""Shared retry/backoff policy applied around every provider call.

Only RetryableFailure outcomes are retried (rate limits, cold models).
TerminalFailure and Success pass straight through. When attempts run out
while the backend is still transient, the last reason is kept and the
outcome becomes terminal so the orchestrator can move on.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt

from schemas.wrap_generation import Outcome, RetryableFailure, TerminalFailure

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    max_wait_ms: int = 30_000
    default_wait_ms: int = 2_000

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def wait_seconds(self, outcome: RetryableFailure) -> float:
        """min(suggested ?? default, max), in seconds."""
        wait_ms = outcome.suggested_wait_ms if outcome.suggested_wait_ms is not None else self.default_wait_ms
        return max(0, min(wait_ms, self.max_wait_ms)) / 1000

    async def with_retry(
        self,
        call: Callable[[], Awaitable[Outcome]],
        *,
        sleep: Sleep = asyncio.sleep,
        label: str = "provider",
    ) -> Outcome:
        """Invoke `call` until it stops returning RetryableFailure or attempts run out."""

        def _wait(retry_state: RetryCallState) -> float:
            return self.wait_seconds(retry_state.outcome.result())

        def _log_retry(retry_state: RetryCallState) -> None:
            outcome = retry_state.outcome.result()
            logger.warning(
                "%s: attempt %d/%d not ready (%s); retrying in %.1fs",
                label,
                retry_state.attempt_number,
                self.max_attempts,
                outcome.reason,
                retry_state.next_action.sleep if retry_state.next_action else 0.0,
            )

        def _exhausted(retry_state: RetryCallState) -> TerminalFailure:
            last = retry_state.outcome.result()
            logger.warning("%s: giving up after %d attempts", label, retry_state.attempt_number)
            return TerminalFailure(
                reason=f"retries exhausted after {retry_state.attempt_number} attempts: {last.reason}"
            )

        retrying = AsyncRetrying(
            sleep=sleep,
            stop=stop_after_attempt(self.max_attempts),
            wait=_wait,
            retry=retry_if_result(lambda outcome: isinstance(outcome, RetryableFailure)),
            before_sleep=_log_retry,
            retry_error_callback=_exhausted,
        )
        return await retrying(call)
