from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class PollerState(str, Enum):
    """
    Lifecycle states of the appointment poller.
    """

    IDLE = "IDLE"
    POLLING = "POLLING"


class PollCycleSummary(BaseModel):
    """
    Outcome of a single poll cycle.
    """

    started_at: datetime = Field(..., description="Clock time at which the cycle began.")
    cutoff: datetime = Field(
        ...,
        description="Midnight of the current day; meetings created before it are ignored.",
        example="2025-11-14T00:00:00-05:00",
    )
    chunks_requested: int = Field(
        ...,
        description="Number of meetings queries issued to cover the horizon.",
        example=4,
    )
    meetings_fetched: int = Field(
        ...,
        description="Total meeting records returned across all chunks.",
        example=37,
    )
    new_meetings: int = Field(
        ...,
        description="Meetings created today that had not been notified yet.",
        example=2,
    )
    delivered_ids: list[int] = Field(
        default_factory=list,
        description="Meeting ids delivered and recorded as notified in this cycle.",
    )
    failed_ids: list[int] = Field(
        default_factory=list,
        description="Meeting ids whose delivery failed; they are retried next cycle.",
    )


class PollerStatus(BaseModel):
    """
    Public snapshot of the poller returned by /internal/poller-status.
    """

    state: PollerState = Field(..., example="POLLING")
    interval_seconds: int = Field(..., example=120)
    notified_count: int = Field(
        ...,
        description="Number of meeting ids notified since process start.",
        example=12,
    )
    last_cycle: PollCycleSummary | None = None
