from __future__ import annotations

import asyncio
import io
import unittest

import httpx
from PIL import Image

import config
from schemas.wrap_generation import ProviderId
from wrapgen.templates import TemplateError, fetch_template_image, get_vehicle, list_vehicles


def png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), (255, 255, 255)).save(buf, format="PNG")
    return buf.getvalue()


def fetch(vehicle_id: str, handler):
    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fetch_template_image(get_vehicle(vehicle_id), client)

    return asyncio.run(_run())


class VehicleCatalogTests(unittest.TestCase):
    def test_catalog_lookup_and_filter(self):
        vehicle = get_vehicle("ModelY-2025-Premium")
        self.assertEqual(vehicle.name, "Model Y (2025+) Premium")
        self.assertEqual(vehicle.category, "modely")
        self.assertTrue(vehicle.template_url.endswith("/modely-2025-premium/template.png"))

        self.assertEqual(len(list_vehicles()), 9)
        self.assertEqual({v.category for v in list_vehicles("model3")}, {"model3"})
        self.assertEqual([v.id for v in list_vehicles("cybertruck")], ["cybertruck"])

    def test_unknown_vehicle_raises_key_error_listing_ids(self):
        with self.assertRaises(KeyError) as ctx:
            get_vehicle("roadster")
        self.assertIn("cybertruck", ctx.exception.args[0])

    def test_fetch_template_image(self):
        body = png_bytes()

        def handler(request: httpx.Request) -> httpx.Response:
            self.assertTrue(str(request.url).endswith("/cybertruck/template.png"))
            return httpx.Response(200, content=body, headers={"content-type": "text/plain; charset=utf-8"})

        template = fetch("cybertruck", handler)

        self.assertEqual(template.data, body)
        self.assertEqual(template.mime_type, "image/png")

    def test_fetch_template_errors(self):
        with self.assertRaises(TemplateError):
            fetch("model3", lambda r: httpx.Response(404, text="404: Not Found"))
        with self.assertRaises(TemplateError):
            fetch("model3", lambda r: httpx.Response(200, text="<html>oops</html>"))


class ConfigTests(unittest.TestCase):
    def test_parse_priority_dedupes_and_keeps_order(self):
        self.assertEqual(
            config.parse_priority("huggingface, OpenAI,huggingface,,replicate"),
            [ProviderId.HUGGINGFACE, ProviderId.OPENAI, ProviderId.REPLICATE],
        )

    def test_parse_priority_rejects_unknown_provider(self):
        with self.assertRaises(ValueError):
            config.parse_priority("openai,deepseek")

    def test_default_priority_is_paid_first(self):
        self.assertEqual(
            config.parse_priority(config.DEFAULT_PROVIDER_PRIORITY),
            [ProviderId.OPENAI, ProviderId.GEMINI, ProviderId.REPLICATE, ProviderId.HUGGINGFACE],
        )

    def test_load_provider_credentials_skips_blank_keys_and_uses_alias(self):
        credentials = config.load_provider_credentials(
            {
                "OPENAI_API_KEY": "  ",
                "GEMINI_API_KEY": "g-key",
                "REPLICATE_API_TOKEN": "r8-key",
            }
        )

        self.assertEqual(set(credentials), {ProviderId.GEMINI, ProviderId.REPLICATE})
        self.assertEqual(credentials[ProviderId.GEMINI].secret(), "g-key")

    def test_google_key_wins_over_gemini_alias(self):
        credentials = config.load_provider_credentials({"GOOGLE_API_KEY": "primary", "GEMINI_API_KEY": "alias"})
        self.assertEqual(credentials[ProviderId.GEMINI].secret(), "primary")


if __name__ == "__main__":
    unittest.main()
