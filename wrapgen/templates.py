"""Vehicle template catalog (Tesla custom-wrap templates) and template download."""

from __future__ import annotations

import logging
from typing import Literal

import httpx
from pydantic import BaseModel, ValidationError

from schemas.wrap_generation import TemplateImage

logger = logging.getLogger(__name__)

TEMPLATE_BASE_URL = "https://raw.githubusercontent.com/teslamotors/custom-wraps/master"

VehicleCategory = Literal["cybertruck", "model3", "modely"]


class VehicleTemplate(BaseModel):
    id: str
    name: str
    category: VehicleCategory
    year: str = ""
    variant: Literal["", "base", "premium", "performance", "standard"] = ""

    @property
    def template_url(self) -> str:
        return f"{TEMPLATE_BASE_URL}/{self.id}/template.png"


class TemplateError(Exception):
    """A catalog template could not be downloaded or is not an image."""


VEHICLE_TEMPLATES: tuple[VehicleTemplate, ...] = (
    VehicleTemplate(id="cybertruck", name="Cybertruck", category="cybertruck"),
    VehicleTemplate(id="model3", name="Model 3", category="model3"),
    VehicleTemplate(
        id="model3-2024-base",
        name="Model 3 (2024+) Standard & Premium",
        category="model3",
        year="2024",
        variant="base",
    ),
    VehicleTemplate(
        id="model3-2024-performance",
        name="Model 3 (2024+) Performance",
        category="model3",
        year="2024",
        variant="performance",
    ),
    VehicleTemplate(id="modely", name="Model Y", category="modely"),
    VehicleTemplate(
        id="modely-2025-base",
        name="Model Y (2025+) Standard",
        category="modely",
        year="2025",
        variant="base",
    ),
    VehicleTemplate(
        id="modely-2025-premium",
        name="Model Y (2025+) Premium",
        category="modely",
        year="2025",
        variant="premium",
    ),
    VehicleTemplate(
        id="modely-2025-performance",
        name="Model Y (2025+) Performance",
        category="modely",
        year="2025",
        variant="performance",
    ),
    VehicleTemplate(id="modely-l", name="Model Y L", category="modely"),
)

_BY_ID = {vehicle.id: vehicle for vehicle in VEHICLE_TEMPLATES}


def get_vehicle(vehicle_id: str) -> VehicleTemplate:
    key = str(vehicle_id or "").strip().lower()
    try:
        return _BY_ID[key]
    except KeyError:
        raise KeyError(f"Unknown vehicle '{vehicle_id}'. Available: {', '.join(_BY_ID)}") from None


def list_vehicles(category: str | None = None) -> list[VehicleTemplate]:
    if not category:
        return list(VEHICLE_TEMPLATES)
    wanted = category.strip().lower()
    return [vehicle for vehicle in VEHICLE_TEMPLATES if vehicle.category == wanted]


async def fetch_template_image(
    vehicle: VehicleTemplate,
    http_client: httpx.AsyncClient,
    *,
    timeout_seconds: float = 30.0,
) -> TemplateImage:
    url = vehicle.template_url
    logger.info("Downloading template for %s: %s", vehicle.id, url)
    try:
        response = await http_client.get(url, follow_redirects=True, timeout=timeout_seconds)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise TemplateError(f"Could not download template for {vehicle.id}: {exc}") from exc

    content_type = str(response.headers.get("content-type") or "").split(";", 1)[0].strip()
    try:
        return TemplateImage(data=response.content, mime_type=content_type)
    except ValidationError as exc:
        raise TemplateError(f"Template for {vehicle.id} is not a valid image") from exc
