# app/api/routes/internal.py
from http import HTTPStatus

from fastapi import APIRouter, Depends, HTTPException

from app.api.dependencies.internal_auth import verify_internal_api_key
from app.schemas.poller import PollCycleSummary, PollerStatus
from app.services.appointment_poller import AppointmentPoller, get_appointment_poller
from app.services.crm_client import CrmClientError

router = APIRouter(
    prefix="/internal",
    tags=["Internal"],
    dependencies=[Depends(verify_internal_api_key)],
)


def get_poller() -> AppointmentPoller:
    """
    Dependency returning the shared poller, or 503 when BuilderPrime is not
    configured.
    """
    try:
        return get_appointment_poller()
    except CrmClientError as exc:
        raise HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail=str(exc),
        )


@router.post(
    "/run-poll",
    response_model=PollCycleSummary,
    status_code=HTTPStatus.OK,
    summary="Run one appointment poll cycle immediately",
    description=(
        "Executes a single BuilderPrime poll cycle outside the regular schedule and "
        "returns its summary.\n\n"
        "Uses the same notified-id set as the background poller, so meetings already "
        "announced are never posted twice. Protected via the `X-Internal-Api-Key` "
        "header when configured."
    ),
    responses={
        200: {
            "description": "Cycle executed. A summary is returned.",
            "content": {
                "application/json": {
                    "example": {
                        "started_at": "2025-11-14T09:05:00-05:00",
                        "cutoff": "2025-11-14T00:00:00-05:00",
                        "chunks_requested": 4,
                        "meetings_fetched": 37,
                        "new_meetings": 1,
                        "delivered_ids": [4211],
                        "failed_ids": [],
                    }
                }
            },
        },
        401: {"description": "Missing or invalid internal API key (if configured)."},
        503: {"description": "BuilderPrime credentials are not configured."},
    },
)
async def run_poll(
    poller: AppointmentPoller = Depends(get_poller),
) -> PollCycleSummary:
    return await poller.run_cycle()


@router.get(
    "/poller-status",
    response_model=PollerStatus,
    status_code=HTTPStatus.OK,
    summary="Current state of the appointment poller",
    responses={
        401: {"description": "Missing or invalid internal API key (if configured)."},
        503: {"description": "BuilderPrime credentials are not configured."},
    },
)
async def poller_status(
    poller: AppointmentPoller = Depends(get_poller),
) -> PollerStatus:
    return poller.status()
