# app/services/webhook_handler.py
import logging
from typing import Any, Callable, Dict, Mapping, Optional

from app.schemas.webhook import WebhookEvent
from app.services.groupme_notifier import GroupMeNotifier
from app.services.message_formatter import (
    format_appointment_scheduled,
    format_estimate_sent,
    format_new_lead,
    format_project_update,
)

logger = logging.getLogger(__name__)

EVENT_FORMATTERS: Dict[str, Callable[[Mapping[str, Any]], str]] = {
    "lead.created": format_new_lead,
    "appointment.scheduled": format_appointment_scheduled,
    "project.updated": format_project_update,
    "estimate.sent": format_estimate_sent,
}


async def handle_builderprime_webhook(
    event: WebhookEvent,
    notifier: GroupMeNotifier,
) -> Optional[str]:
    """
    Turn a BuilderPrime webhook into a GroupMe message and send it.

    Stateless: no retry, no ordering, no dedup. Unknown event tags are
    logged and dropped.

    Returns
    -------
    str | None
        The message that was handed to the notifier, or None when the event
        was not handled.

    GroupMeError from the notifier propagates to the caller.
    """
    formatter = EVENT_FORMATTERS.get(event.event or "")
    if formatter is None:
        logger.info("Unhandled BuilderPrime event type: %s", event.event)
        return None

    logger.info("Processing BuilderPrime webhook event %s", event.event)
    message = formatter(event.data)
    await notifier.send_message(message)
    return message
