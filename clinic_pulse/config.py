"""Settings for Clinic Pulse, read once at import time.

Values come from the process environment (a local ``.env`` is loaded
first).  When deployed on AWS, a required value that is missing from the
environment is looked up in SSM Parameter Store under
``/clinic-pulse/<NAME>``.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


def _get_ssm_parameter(name: str) -> str | None:
    """Read ``/clinic-pulse/<name>`` from SSM, or ``None`` when it cannot be read."""
    try:
        import boto3  # noqa: PLC0415 - only needed on AWS

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/clinic-pulse/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("No SSM value for %s", name)
        return None


def _require_env(name: str) -> str:
    """Resolve a mandatory setting or raise ``OSError`` naming it."""
    value = os.getenv(name)
    # .env.example placeholders start with "your_"
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Clinic Pulse cannot start without {name}. "
        f"Add it to the environment or .env, or to SSM at /clinic-pulse/{name}."
    )


# ── Model tiers ─────────────────────────────────────────────────────
ANTHROPIC_API_KEY: str = _require_env("ANTHROPIC_API_KEY")

# Requests pick "fast" (the default) or "primary"
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5")
FAST_MODEL_NAME: str = os.getenv("FAST_MODEL_NAME", "claude-haiku-4-5")
PRIMARY_MAX_TOKENS: int = int(os.getenv("PRIMARY_MAX_TOKENS", "8192"))
FAST_MAX_TOKENS: int = int(os.getenv("FAST_MAX_TOKENS", "4096"))

# ── Scheduling store ────────────────────────────────────────────────
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./clinic_pulse.db")

# Zip code for day-level weather (briefings, campaigns)
DEFAULT_WEATHER_ZIP: str = os.getenv("DEFAULT_WEATHER_ZIP", "10001")

# Finished risk generation runs stay pollable this long
PROGRESS_TTL_SECONDS: int = int(os.getenv("PROGRESS_TTL_SECONDS", "3600"))

# ── Dashboard API ───────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "3001"))
# Dashboard dev servers (CRA and Vite)
CORS_ORIGINS: list[str] = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if origin.strip()
]
