# app/api/dependencies/internal_auth.py
import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException, status

from app.core.config import get_settings

logger = logging.getLogger(__name__)

OPEN_ENVIRONMENTS = ("local", "test")


def _reject_bad_key(provided: Optional[str], expected: str) -> None:
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        logger.warning("Rejected /internal request: invalid or missing X-Internal-Api-Key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing internal API key.",
        )


async def verify_internal_api_key(
    internal_api_key: Optional[str] = Header(
        default=None,
        alias="X-Internal-Api-Key",
        description="Internal API key required for the poller trigger/status endpoints outside local/test.",
    ),
) -> None:
    """
    Guards `/internal/run-poll` and `/internal/poller-status`.

    Rules
    -----
    - APP_ENV in ("local", "test"):
        - If INTERNAL_API_KEY is not set -> no auth enforced (convenient for local dev).
        - If INTERNAL_API_KEY is set      -> header must match the configured key.
    - Any other APP_ENV (dev/stage/prod):
        - INTERNAL_API_KEY must be set, otherwise 500 (misconfiguration).
        - Header must be present and match INTERNAL_API_KEY, otherwise 401.
    """
    settings = get_settings()
    env = (settings.APP_ENV or "local").lower()
    expected = getattr(settings, "INTERNAL_API_KEY", None)

    # Local / test: optional, but enforce if key is configured
    if env in OPEN_ENVIRONMENTS:
        if not expected:
            # No key configured => manual poll trigger is open in local/test
            return

        # Key configured => enforce it
        _reject_bad_key(internal_api_key, expected)
        return

    # Non-local (dev / stage / prod): key must exist and must match
    if not expected:
        # Misconfigured environment: fail fast instead of silently exposing the poller
        logger.error("INTERNAL_API_KEY missing in APP_ENV=%s; refusing /internal request", env)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="INTERNAL_API_KEY not configured for this environment.",
        )

    _reject_bad_key(internal_api_key, expected)
