# app/api/routes/groupme.py
import logging
from http import HTTPStatus

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from app.schemas.webhook import GroupMeSendRequest, GroupMeSendResponse
from app.services.groupme_notifier import GroupMeError, GroupMeNotifier, get_groupme_notifier

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/groupme",
    tags=["GroupMe"],
)


@router.post(
    "/send",
    response_model=GroupMeSendResponse,
    status_code=HTTPStatus.OK,
    summary="Manually post a message to the GroupMe channel",
    description="Testing aid: forwards `message` through the same notifier the poller uses.",
    responses={
        400: {"description": "Message is missing or empty."},
        500: {"description": "The GroupMe post failed."},
    },
)
async def send_message(
    payload: GroupMeSendRequest,
    notifier: GroupMeNotifier = Depends(get_groupme_notifier),
):
    if not payload.message or not payload.message.strip():
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail="Message is required")

    try:
        result = await notifier.send_message(payload.message)
    except GroupMeError as exc:
        logger.error("Error sending GroupMe message: %s", exc)
        return JSONResponse(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(exc)},
        )

    return GroupMeSendResponse(skipped=bool(result.get("skipped")))


@router.get(
    "/test",
    summary="Check that the GroupMe endpoint is reachable and configured",
)
async def groupme_test(
    notifier: GroupMeNotifier = Depends(get_groupme_notifier),
) -> dict:
    return {
        "message": "GroupMe API endpoint is active",
        "botId": "configured" if notifier.is_configured else "not configured",
    }
