# app/api/routes/webhooks.py
import logging
from http import HTTPStatus

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.schemas.webhook import WebhookAck, WebhookEvent
from app.services.groupme_notifier import GroupMeError, GroupMeNotifier, get_groupme_notifier
from app.services.webhook_handler import handle_builderprime_webhook

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/webhook/builderprime",
    tags=["Webhooks"],
)


@router.post(
    "",
    response_model=WebhookAck,
    status_code=HTTPStatus.OK,
    summary="Receive a BuilderPrime webhook",
    description=(
        "Maps a BuilderPrime event (`lead.created`, `appointment.scheduled`, "
        "`project.updated`, `estimate.sent`) to a GroupMe message and posts it.\n\n"
        "Unknown event types are acknowledged and ignored. Delivery failures "
        "return 500 so BuilderPrime can surface them."
    ),
    responses={
        500: {"description": "The GroupMe post failed."},
    },
)
async def receive_builderprime_webhook(
    event: WebhookEvent,
    notifier: GroupMeNotifier = Depends(get_groupme_notifier),
):
    logger.info("Received BuilderPrime webhook: %s", event.event)
    try:
        await handle_builderprime_webhook(event, notifier)
    except GroupMeError as exc:
        logger.error("Error processing BuilderPrime webhook: %s", exc)
        return JSONResponse(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(exc)},
        )
    return WebhookAck()


@router.get(
    "/test",
    summary="Check that the BuilderPrime webhook endpoint is reachable",
)
async def webhook_test() -> dict:
    return {
        "message": "BuilderPrime webhook endpoint is active",
        "endpoint": "/webhook/builderprime",
    }
