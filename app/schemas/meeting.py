from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator


def epoch_ms_to_datetime(value):
    """
    Convert a BuilderPrime epoch-milliseconds value into an aware UTC datetime.

    Non-numeric values are passed through so pydantic can still parse ISO
    strings or datetimes.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return value


class MeetingRecord(BaseModel):
    """
    One scheduled appointment as returned by the BuilderPrime meetings API.

    Staff fields describe the employee who owns the calendar slot, which is
    not necessarily the person who set the appointment. Attribution goes
    through `client_id` and the client roster.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int = Field(..., description="Stable BuilderPrime meeting id; dedup identity key.")
    title: str | None = Field(None, description="Free-text meeting title.")
    start_time: datetime | None = Field(
        None,
        alias="startDateTime",
        description="Scheduled start of the meeting (UTC).",
    )
    created_time: datetime | None = Field(
        None,
        alias="createdDate",
        description="When the meeting was created in the CRM (UTC).",
    )
    staff_first_name: str | None = Field(None, alias="employeeFirstName")
    staff_last_name: str | None = Field(None, alias="employeeLastName")
    client_first_name: str | None = Field(None, alias="clientFirstName")
    client_last_name: str | None = Field(None, alias="clientLastName")
    meeting_type_label: str | None = Field(None, alias="meetingTypeName")
    location: str | None = None
    opportunity_id: int | None = Field(None, alias="opportunityId")
    client_id: int | None = Field(
        None,
        alias="clientId",
        description="Foreign key into the client roster, used for lead-setter lookups.",
    )

    @field_validator("start_time", "created_time", mode="before")
    @classmethod
    def _parse_epoch_ms(cls, value):
        return epoch_ms_to_datetime(value)


class MeetingsEnvelope(BaseModel):
    """
    Response wrapper of the meetings endpoint.

    `data` is kept as raw dicts so one malformed record does not discard
    the whole page.
    """

    model_config = ConfigDict(extra="ignore")

    success: bool = False
    data: list[dict] | None = None
    errors: list[dict] | None = None
