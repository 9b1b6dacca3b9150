"""Wrap Studio: Web Server.

FastAPI backend for the wrap designer front end. Exposes the vehicle
template catalog, the provider configuration, and wrap generation.

Usage:
    python server.py
    # Then POST to http://localhost:8000/api/generate
"""

from __future__ import annotations

import base64
import binascii
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

import httpx
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

import config
from schemas.wrap_generation import AggregateFailure, ProviderId, TemplateImage, parse_mode
from wrapgen.normalizer import ArtifactError, decode_data_url
from wrapgen.service import generate
from wrapgen.templates import TemplateError, fetch_template_image, get_vehicle, list_vehicles

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def _check_api_keys() -> list[str]:
    """Check which image provider keys are configured. Returns list of warnings."""
    credentials = config.PROVIDER_CREDENTIALS
    warnings = [
        f"{' / '.join(names)} is not set ({provider.value} disabled)"
        for provider, names in config.CREDENTIAL_ENV_VARS.items()
        if provider not in credentials
    ]
    if not credentials:
        warnings.insert(0, "No image provider key is set; every generate request will fail!")
    return warnings


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

http_state: dict[str, Any] = {"client": None}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    key_warnings = _check_api_keys()
    if key_warnings:
        logger.warning("=" * 60)
        logger.warning("API KEY WARNINGS:")
        for w in key_warnings:
            logger.warning("  • %s", w)
        logger.warning("Copy .env.example to .env and add your keys:")
        logger.warning("  cp .env.example .env")
        logger.warning("=" * 60)
    else:
        logger.info("API keys: all providers configured")

    http_state["client"] = httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_SECONDS)

    yield

    # Shutdown
    client = http_state["client"]
    http_state["client"] = None
    if client is not None:
        await client.aclose()


app = FastAPI(title="Wrap Studio", version="1.0.0", lifespan=lifespan)


# ---------------------------------------------------------------------------
# Catalog / configuration
# ---------------------------------------------------------------------------

@app.get("/api/providers")
async def api_providers():
    """Provider priority and which providers have a key."""
    credentials = config.PROVIDER_CREDENTIALS
    priority = config.PROVIDER_PRIORITY
    return {
        "priority": [p.value for p in priority],
        "providers": [
            {
                "id": provider.value,
                "configured": provider in credentials,
                "in_priority": provider in priority,
            }
            for provider in ProviderId
        ],
    }


@app.get("/api/vehicles")
async def api_vehicles(category: Optional[str] = None):
    """List the vehicle template catalog."""
    return {
        "vehicles": [
            {**vehicle.model_dump(), "template_url": vehicle.template_url}
            for vehicle in list_vehicles(category)
        ]
    }


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

class GenerateRequest(BaseModel):
    prompt: str
    image: Optional[str] = None  # base64 or data: URL
    mime_type: str = ""
    vehicle_id: Optional[str] = None
    provider: str = "auto"
    timeout_seconds: Optional[float] = None


def _decode_upload(req: GenerateRequest) -> TemplateImage:
    raw = str(req.image or "").strip()
    if raw.startswith("data:"):
        data, mime_type = decode_data_url(raw)
        return TemplateImage(data=data, mime_type=req.mime_type or mime_type)
    return TemplateImage(data=base64.b64decode(raw, validate=True), mime_type=req.mime_type)


@app.post("/api/generate")
async def api_generate(req: GenerateRequest):
    """Generate a wrap design. Returns the image as a data URL."""
    if not req.image and not req.vehicle_id:
        return JSONResponse({"error": "Provide either image or vehicle_id"}, status_code=400)

    try:
        parse_mode(req.provider)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    client = http_state["client"]
    if client is not None:
        return await _generate_response(req, client)
    # Outside the lifespan (e.g. a bare ASGI mount): one client per request
    async with httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_SECONDS) as client:
        return await _generate_response(req, client)


async def _generate_response(req: GenerateRequest, client: httpx.AsyncClient):
    try:
        if req.image:
            template = _decode_upload(req)
        else:
            template = await fetch_template_image(get_vehicle(req.vehicle_id), client)
    except KeyError as e:
        return JSONResponse({"error": e.args[0] if e.args else str(e)}, status_code=404)
    except TemplateError as e:
        logger.warning("Template download failed: %s", e)
        return JSONResponse({"error": str(e)}, status_code=502)
    except (ArtifactError, ValueError, binascii.Error) as e:
        return JSONResponse({"error": f"Invalid template image: {e}"}, status_code=400)

    try:
        result = await generate(
            template.data,
            template.mime_type,
            req.prompt,
            req.provider,
            http_client=client,
            timeout_seconds=req.timeout_seconds,
        )
    except ValidationError as e:
        return JSONResponse({"error": f"Invalid request: {e.errors()[0].get('msg', str(e))}"}, status_code=400)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    if isinstance(result, AggregateFailure):
        return JSONResponse(
            {
                "error": result.message,
                "failures": [{"provider": row.provider.value, "reason": row.reason} for row in result.reasons],
            },
            status_code=502,
        )

    return {
        "image": result.to_data_url(),
        "mime_type": result.mime_type,
        "provider": result.provider.value,
        "model": result.model,
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn
    print("\n  Wrap Studio API")
    print("  http://localhost:8000\n")
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
