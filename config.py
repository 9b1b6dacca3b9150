"""Wrap Studio configuration: provider credentials, model lists, retry and poll bounds."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from dotenv import load_dotenv

from schemas.wrap_generation import ProviderCredential, ProviderId

load_dotenv()

ROOT_DIR = Path(__file__).parent
OUTPUT_DIR = Path(os.getenv("WRAP_OUTPUT_DIR", str(ROOT_DIR / "outputs")))


def _csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in str(value or "").split(",") if part.strip())


def _optional_float(value: str | None) -> float | None:
    raw = str(value or "").strip()
    return float(raw) if raw else None


# ---------------------------------------------------------------------------
# Provider API Keys
#
# Env var(s) holding each provider's credential, first non-empty wins.
# ---------------------------------------------------------------------------
CREDENTIAL_ENV_VARS: dict[ProviderId, tuple[str, ...]] = {
    ProviderId.OPENAI: ("OPENAI_API_KEY",),
    ProviderId.GEMINI: ("GOOGLE_API_KEY", "GEMINI_API_KEY"),
    ProviderId.HUGGINGFACE: ("HUGGINGFACE_API_KEY",),
    ProviderId.REPLICATE: ("REPLICATE_API_TOKEN",),
}

# ---------------------------------------------------------------------------
# Provider priority for "auto" mode
#
# Highest quality first, free services last. Override with e.g.
#   WRAP_PROVIDER_PRIORITY=huggingface,replicate,openai
# ---------------------------------------------------------------------------
DEFAULT_PROVIDER_PRIORITY = "openai,gemini,replicate,huggingface"
WRAP_PROVIDER_PRIORITY = os.getenv("WRAP_PROVIDER_PRIORITY", DEFAULT_PROVIDER_PRIORITY)

# ---------------------------------------------------------------------------
# Model lists (tried in order; an unavailable model falls through to the next)
# ---------------------------------------------------------------------------
OPENAI_VISION_MODELS = _csv(os.getenv("OPENAI_VISION_MODELS", "gpt-4o,gpt-4-turbo"))
OPENAI_IMAGE_MODELS = _csv(os.getenv("OPENAI_IMAGE_MODELS", "dall-e-3,dall-e-2"))
GEMINI_IMAGE_MODELS = _csv(
    os.getenv(
        "GEMINI_IMAGE_MODELS",
        "gemini-2.5-flash-image,gemini-2.5-flash-image-preview,gemini-2.0-flash-preview-image-generation",
    )
)
HUGGINGFACE_MODELS = _csv(
    os.getenv(
        "HUGGINGFACE_MODELS",
        "stabilityai/stable-diffusion-xl-base-1.0,"
        "stabilityai/stable-diffusion-2-1,"
        "runwayml/stable-diffusion-v1-5,"
        "CompVis/stable-diffusion-v1-4",
    )
)
REPLICATE_MODELS = _csv(
    os.getenv(
        "REPLICATE_MODELS",
        "black-forest-labs/flux-schnell,"
        "stability-ai/stable-diffusion:db21e45d3f7023abc2a46ee38a23973f6dce16bb082a930b0c49861f96d1e5bf",
    )
)

# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
HUGGINGFACE_API_URL = os.getenv(
    "HUGGINGFACE_API_URL", "https://router.huggingface.co/hf-inference/models"
).rstrip("/")
REPLICATE_API_URL = os.getenv("REPLICATE_API_URL", "https://api.replicate.com/v1").rstrip("/")

# ---------------------------------------------------------------------------
# Retry / polling / timeouts
# ---------------------------------------------------------------------------
RETRY_MAX_ATTEMPTS = int(os.getenv("RETRY_MAX_ATTEMPTS", "3"))
RETRY_DEFAULT_WAIT_MS = int(os.getenv("RETRY_DEFAULT_WAIT_MS", "2000"))
RETRY_MAX_WAIT_MS = int(os.getenv("RETRY_MAX_WAIT_MS", "30000"))

REPLICATE_POLL_INTERVAL_SECONDS = float(os.getenv("REPLICATE_POLL_INTERVAL_SECONDS", "1.0"))
REPLICATE_MAX_POLLS = int(os.getenv("REPLICATE_MAX_POLLS", "120"))

HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "120"))
# Unset means no overall bound on a generate() call.
GENERATION_TIMEOUT_SECONDS = _optional_float(os.getenv("GENERATION_TIMEOUT_SECONDS"))

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def parse_priority(value: str | None = None) -> list[ProviderId]:
    """Turn a comma list of provider ids into an ordered, de-duplicated list.

    Raises ValueError for unknown provider ids so a typo in the env does not
    silently drop a provider from the plan.
    """
    raw = WRAP_PROVIDER_PRIORITY if value is None else value
    order: list[ProviderId] = []
    for token in _csv(raw):
        try:
            provider = ProviderId(token.lower())
        except ValueError:
            known = ", ".join(p.value for p in ProviderId)
            raise ValueError(f"Unknown provider '{token}' in priority list. Known: {known}") from None
        if provider not in order:
            order.append(provider)
    return order


def load_provider_credentials(environ: Mapping[str, str] | None = None) -> dict[ProviderId, ProviderCredential]:
    """Return credentials for every provider that has a non-empty key.

    Providers without a key are simply absent from the result.
    """
    env = os.environ if environ is None else environ
    credentials: dict[ProviderId, ProviderCredential] = {}
    for provider, names in CREDENTIAL_ENV_VARS.items():
        for name in names:
            token = str(env.get(name) or "").strip()
            if token:
                credentials[provider] = ProviderCredential(provider=provider, token=token)
                break
    return credentials


# ---------------------------------------------------------------------------
# Loaded once at import; the generation core never re-reads the environment.
# ---------------------------------------------------------------------------
PROVIDER_CREDENTIALS = load_provider_credentials()
PROVIDER_PRIORITY = parse_priority()
