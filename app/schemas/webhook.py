from typing import Any

from pydantic import BaseModel, Field


class WebhookEvent(BaseModel):
    """
    Inbound BuilderPrime webhook payload.

    `data` is loosely structured; each event type reads the keys it knows
    about and falls back to placeholders for the rest.
    """

    event: str | None = Field(None, description="Event tag, e.g. 'lead.created'.", example="lead.created")
    data: dict[str, Any] = Field(default_factory=dict)


class WebhookAck(BaseModel):
    success: bool = True
    message: str = "Webhook received"


class GroupMeSendRequest(BaseModel):
    message: str | None = Field(None, description="Text to post into the GroupMe channel.")


class GroupMeSendResponse(BaseModel):
    success: bool = True
    message: str = "Message sent to GroupMe"
    skipped: bool = False
