# app/api/routes/health.py
from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.schemas.poller import PollerState
from app.services.appointment_poller import get_appointment_poller_if_built


router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """
    Response schema for the health check endpoint.
    """

    status: str = Field(
        ...,
        description="Overall health status of the Appointment Relay service.",
        example="ok",
    )
    app_name: str = Field(
        ...,
        description="Human-friendly name of the running application.",
        example="Appointment Relay",
    )
    environment: str = Field(
        ...,
        description="Current deployment environment (local/dev/stage/prod).",
        example="local",
    )
    poller_state: PollerState = Field(
        ...,
        description="Whether the BuilderPrime appointment poller is currently scheduled.",
        example="POLLING",
    )
    timestamp_utc: datetime = Field(
        ...,
        description="Server-side timestamp (UTC) at which this health check was generated.",
        example="2025-01-01T10:30:00Z",
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check for Appointment Relay service",
    description=(
        "Lightweight endpoint to verify that the service is up and responding.\n\n"
        "Typical use-cases:\n"
        "- Container / VM health probes\n"
        "- Uptime monitoring & alerting\n"
        "- Quick smoke-test after deployments\n"
    ),
    responses={
        200: {
            "description": "Service is healthy and responding as expected.",
            "content": {
                "application/json": {
                    "example": {
                        "status": "ok",
                        "app_name": "Appointment Relay",
                        "environment": "local",
                        "poller_state": "POLLING",
                        "timestamp_utc": "2025-01-01T10:30:00Z",
                    }
                }
            },
        }
    },
)
async def health_check() -> HealthResponse:
    """
    Returns the current health status of the service.

    Does not call BuilderPrime or GroupMe, so it stays reliable while those
    are degraded.
    """
    settings = get_settings()
    poller = get_appointment_poller_if_built()
    return HealthResponse(
        status="ok",
        app_name=settings.APP_NAME,
        environment=settings.APP_ENV,
        poller_state=poller.state if poller is not None else PollerState.IDLE,
        timestamp_utc=datetime.now(tz=timezone.utc),
    )
