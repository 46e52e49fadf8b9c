"""Centralized configuration for the Vapi → Square booking connector.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/vapi-square/<VARIABLE_NAME>``.

Unlike a typical service, a missing Square secret does not stop the process
from starting: the webhook must keep answering Vapi with a well-formed
result, so the orchestrator reports the gap per request instead.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))

SSM_PREFIX = "/vapi-square"


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415 - lazy import, only needed on AWS

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"{SSM_PREFIX}/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _resolve_secret(name: str) -> str:
    """Return a secret from env-var or SSM, or ``""`` when it is not set."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    return ""


# ── Square ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SquareSettings:
    """Immutable deployment configuration injected into the client and
    the orchestrator."""

    token: str = ""
    location_id: str = ""
    service_variation_id: str = ""
    team_member_id: str = ""
    base_url: str = "https://connect.squareup.com"
    api_version: str = "2024-06-25"
    timeout_seconds: float = 15.0

    def missing(self) -> list[str]:
        """Names of the required secrets that are unset."""
        required = {
            "SQUARE_TOKEN": self.token,
            "SQUARE_LOCATION_ID": self.location_id,
            "SQUARE_SERVICE_ID": self.service_variation_id,
            "SQUARE_TEAM_ID": self.team_member_id,
        }
        return [name for name, value in required.items() if not value]


def load_square_settings() -> SquareSettings:
    """Build :class:`SquareSettings` from the deployment environment."""
    return SquareSettings(
        token=_resolve_secret("SQUARE_TOKEN"),
        location_id=_resolve_secret("SQUARE_LOCATION_ID"),
        service_variation_id=_resolve_secret("SQUARE_SERVICE_ID"),
        team_member_id=_resolve_secret("SQUARE_TEAM_ID"),
        base_url=os.getenv("SQUARE_BASE_URL", "https://connect.squareup.com"),
        api_version=os.getenv("SQUARE_API_VERSION", "2024-06-25"),
        timeout_seconds=float(os.getenv("SQUARE_TIMEOUT_SECONDS", "15")),
    )


# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
