from __future__ import annotations

import asyncio
import io
import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

from google.genai import errors as genai_errors
from PIL import Image

from schemas.wrap_generation import InlineImagePayload, RetryableFailure, Success, TemplateImage, TerminalFailure
from wrapgen.gemini_provider import GeminiImageEditAdapter, _default_client


def png_bytes(color=(255, 255, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), color).save(buf, format="PNG")
    return buf.getvalue()


TEMPLATE = TemplateImage(data=png_bytes(), mime_type="image/png")


def response_with_parts(*parts):
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))])


def image_part(data: bytes, mime_type: str = "image/png"):
    return SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type=mime_type), text=None)


def text_part(text: str):
    return SimpleNamespace(inline_data=None, text=text)


def api_error(code: int, message: str, status: str):
    cls = genai_errors.ClientError if code < 500 else genai_errors.ServerError
    return cls(code, {"error": {"code": code, "message": message, "status": status}})


def make_adapter(side_effect, models=("gemini-image-a", "gemini-image-b"), timeout_seconds=45.0):
    generate_content = AsyncMock(side_effect=side_effect)
    client = SimpleNamespace(
        aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate_content), aclose=AsyncMock())
    )
    factory = Mock(return_value=client)
    adapter = GeminiImageEditAdapter(models=models, client_factory=factory, timeout_seconds=timeout_seconds)
    return adapter, generate_content, factory


class GeminiAdapterTests(unittest.TestCase):
    def test_inline_image_is_returned_as_success(self):
        out = png_bytes((255, 0, 0))
        adapter, generate_content, factory = make_adapter([response_with_parts(text_part("Here you go"), image_part(out))])

        outcome = asyncio.run(adapter.submit_generation(TEMPLATE, "racing stripes", "g-key"))

        self.assertIsInstance(outcome, Success)
        self.assertIsInstance(outcome.payload, InlineImagePayload)
        self.assertEqual(outcome.payload.data, out)
        self.assertEqual(outcome.model, "gemini-image-a")
        factory.assert_called_once_with("g-key", 45.0)

        kwargs = generate_content.await_args.kwargs
        self.assertEqual(kwargs["model"], "gemini-image-a")
        self.assertEqual(kwargs["config"].response_modalities, ["TEXT", "IMAGE"])
        template_part, prompt_part = kwargs["contents"]
        self.assertEqual(template_part.inline_data.data, TEMPLATE.data)
        self.assertIn("racing stripes", prompt_part.text)

    def test_missing_model_falls_through_to_next(self):
        out = png_bytes((0, 255, 0))
        adapter, generate_content, _ = make_adapter(
            [
                api_error(404, "models/gemini-image-a is not found", "NOT_FOUND"),
                response_with_parts(image_part(out, "image/jpeg")),
            ]
        )

        outcome = asyncio.run(adapter.submit_generation(TEMPLATE, "racing stripes", "g-key"))

        self.assertIsInstance(outcome, Success)
        self.assertEqual(outcome.model, "gemini-image-b")
        self.assertEqual(outcome.payload.mime_type, "image/jpeg")
        self.assertEqual(generate_content.await_count, 2)

    def test_text_only_reply_is_terminal(self):
        adapter, _, _ = make_adapter([response_with_parts(text_part("I cannot edit images of vehicles."))])

        outcome = asyncio.run(adapter.submit_generation(TEMPLATE, "racing stripes", "g-key"))

        self.assertIsInstance(outcome, TerminalFailure)
        self.assertIn("text instead of an image", outcome.reason)

    def test_empty_response_is_terminal(self):
        adapter, _, _ = make_adapter([SimpleNamespace(candidates=[])])

        outcome = asyncio.run(adapter.submit_generation(TEMPLATE, "racing stripes", "g-key"))

        self.assertIsInstance(outcome, TerminalFailure)
        self.assertIn("no image data", outcome.reason)

    def test_quota_exhausted_is_retryable(self):
        adapter, generate_content, _ = make_adapter([api_error(429, "Resource has been exhausted", "RESOURCE_EXHAUSTED")])

        outcome = asyncio.run(adapter.submit_generation(TEMPLATE, "racing stripes", "g-key"))

        self.assertIsInstance(outcome, RetryableFailure)
        self.assertIn("Resource has been exhausted", outcome.reason)
        self.assertEqual(generate_content.await_count, 1)

    def test_invalid_key_is_terminal(self):
        adapter, _, _ = make_adapter([api_error(400, "API key not valid. Please pass a valid API key.", "INVALID_ARGUMENT")])

        outcome = asyncio.run(adapter.submit_generation(TEMPLATE, "racing stripes", "g-key"))

        self.assertIsInstance(outcome, TerminalFailure)
        self.assertIn("API key not valid", outcome.reason)

    def test_client_is_closed_after_each_call(self):
        adapter, _, factory = make_adapter(
            [
                response_with_parts(image_part(png_bytes())),
                api_error(503, "The model is overloaded", "UNAVAILABLE"),
            ]
        )

        asyncio.run(adapter.submit_generation(TEMPLATE, "racing stripes", "g-key"))
        asyncio.run(adapter.submit_generation(TEMPLATE, "racing stripes", "g-key"))

        self.assertEqual(factory.return_value.aio.aclose.await_count, 2)

    def test_default_client_carries_request_timeout(self):
        with patch("wrapgen.gemini_provider.genai.Client") as fake_client:
            _default_client("g-key", 30.0)

        kwargs = fake_client.call_args.kwargs
        self.assertEqual(kwargs["api_key"], "g-key")
        self.assertEqual(kwargs["http_options"].timeout, 30000)


if __name__ == "__main__":
    unittest.main()
