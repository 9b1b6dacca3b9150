from __future__ import annotations

import asyncio
import io
import json
import unittest

import httpx
from PIL import Image

from schemas.wrap_generation import RemoteImagePayload, RetryableFailure, Success, TemplateImage, TerminalFailure
from wrapgen.replicate_provider import ReplicatePredictionAdapter

API_URL = "https://replicate.example.com/v1"
STATUS_URL = f"{API_URL}/predictions/p1"


def png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), (0, 0, 0)).save(buf, format="PNG")
    return buf.getvalue()


TEMPLATE = TemplateImage(data=png_bytes(), mime_type="image/png")


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def prediction(status: str, **extra) -> dict:
    return {"id": "p1", "status": status, "urls": {"get": STATUS_URL}, **extra}


def run_adapter(handler, *, models=("black-forest-labs/flux-schnell",), max_polls=5):
    seen: list[httpx.Request] = []
    sleep = RecordingSleep()

    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(_record)) as client:
            adapter = ReplicatePredictionAdapter(
                http_client=client,
                models=models,
                api_url=API_URL,
                poll_interval_seconds=1.0,
                max_polls=max_polls,
                sleep=sleep,
            )
            return await adapter.submit_generation(TEMPLATE, "tiger stripes", "r8-token")

    return asyncio.run(_run()), seen, sleep


def scripted_polls(*polls):
    """Submit answers `starting`; each GET returns the next scripted response."""
    remaining = list(polls)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(201, json=prediction("starting"))
        return remaining.pop(0)

    return handler


class ReplicateAdapterTests(unittest.TestCase):
    def test_official_model_posts_to_models_endpoint_and_polls_to_success(self):
        handler = scripted_polls(
            httpx.Response(200, json=prediction("processing")),
            httpx.Response(200, json=prediction("succeeded", output=["https://cdn.example.com/out.png"])),
        )

        outcome, seen, sleep = run_adapter(handler)

        self.assertIsInstance(outcome, Success)
        self.assertIsInstance(outcome.payload, RemoteImagePayload)
        self.assertEqual(outcome.payload.url, "https://cdn.example.com/out.png")
        self.assertEqual(outcome.model, "black-forest-labs/flux-schnell")

        submit = seen[0]
        self.assertEqual(str(submit.url), f"{API_URL}/models/black-forest-labs/flux-schnell/predictions")
        self.assertEqual(submit.headers["authorization"], "Bearer r8-token")
        self.assertIn("tiger stripes", json.loads(submit.content)["input"]["prompt"])
        self.assertEqual([str(r.url) for r in seen[1:]], [STATUS_URL, STATUS_URL])
        self.assertEqual(sleep.calls, [1.0, 1.0])

    def test_versioned_model_posts_version_to_predictions(self):
        handler = scripted_polls(httpx.Response(200, json=prediction("succeeded", output="https://cdn.example.com/a.webp")))

        outcome, seen, _ = run_adapter(handler, models=("stability-ai/stable-diffusion:abc123",))

        self.assertIsInstance(outcome, Success)
        self.assertEqual(outcome.payload.url, "https://cdn.example.com/a.webp")
        submit = seen[0]
        self.assertEqual(str(submit.url), f"{API_URL}/predictions")
        body = json.loads(submit.content)
        self.assertEqual(body["version"], "abc123")
        self.assertEqual(body["input"]["num_outputs"], 1)

    def test_failed_prediction_is_terminal_with_error(self):
        handler = scripted_polls(httpx.Response(200, json=prediction("failed", error="NSFW content detected")))

        outcome, _, _ = run_adapter(handler)

        self.assertIsInstance(outcome, TerminalFailure)
        self.assertIn("prediction failed: NSFW content detected", outcome.reason)

    def test_poll_bound_gives_up_after_max_polls(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(201, json=prediction("starting"))
            return httpx.Response(200, json=prediction("processing"))

        outcome, seen, sleep = run_adapter(handler, max_polls=3)

        self.assertIsInstance(outcome, TerminalFailure)
        self.assertIn("timed out after 3 status checks", outcome.reason)
        self.assertEqual(len(seen), 4)
        self.assertEqual(len(sleep.calls), 3)

    def test_transient_poll_error_keeps_polling(self):
        handler = scripted_polls(
            httpx.Response(502, text="bad gateway"),
            httpx.Response(200, json=prediction("succeeded", output=["https://cdn.example.com/x.png"])),
        )

        outcome, seen, _ = run_adapter(handler)

        self.assertIsInstance(outcome, Success)
        self.assertEqual(len(seen), 3)

    def test_submit_rate_limit_is_retryable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, json={"detail": "Request was throttled."}, headers={"retry-after": "2"})

        outcome, seen, _ = run_adapter(handler)

        self.assertIsInstance(outcome, RetryableFailure)
        self.assertEqual(outcome.suggested_wait_ms, 2_000)
        self.assertIn("throttled", outcome.reason)
        self.assertEqual(len(seen), 1)

    def test_unknown_model_falls_through(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST" and "missing/model" in request.url.path:
                return httpx.Response(404, json={"detail": "Not found."})
            if request.method == "POST":
                return httpx.Response(201, json=prediction("succeeded", output=["https://cdn.example.com/y.png"]))
            raise AssertionError("no polling expected")

        outcome, seen, _ = run_adapter(handler, models=("missing/model", "black-forest-labs/flux-schnell"))

        self.assertIsInstance(outcome, Success)
        self.assertEqual(outcome.model, "black-forest-labs/flux-schnell")
        self.assertEqual(len(seen), 2)


if __name__ == "__main__":
    unittest.main()
