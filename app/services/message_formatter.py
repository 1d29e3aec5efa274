# app/services/message_formatter.py
from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Any, Mapping, Optional

from app.schemas.meeting import MeetingRecord

UNKNOWN_CSR = "Unknown CSR"
UNKNOWN_CUSTOMER = "Unknown Customer"

# Separators BuilderPrime puts between the customer name and the
# appointment description in meeting titles, e.g. "Jane Doe - Estimate".
TITLE_SEPARATORS = (" - ", " – ", " — ", " | ", ": ")

MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def customer_name_from_title(title: Optional[str]) -> str:
    """
    Derive a customer name from a meeting title by cutting at the first
    known separator. Returns an empty string when nothing usable remains.
    """
    text = _clean(title)
    if not text:
        return ""

    cut = len(text)
    for sep in TITLE_SEPARATORS:
        idx = text.find(sep)
        if idx != -1 and idx < cut:
            cut = idx
    return text[:cut].strip(" -–—|:")


def customer_display_name(meeting: MeetingRecord) -> str:
    """
    Customer name used in notifications.

    Order: both client names, then the title-derived name, then whichever
    single client name exists, then a fixed placeholder.
    """
    first = _clean(meeting.client_first_name)
    last = _clean(meeting.client_last_name)
    if first and last:
        return f"{first} {last}"

    from_title = customer_name_from_title(meeting.title)
    if from_title:
        return from_title

    return first or last or UNKNOWN_CUSTOMER


def format_start(start: Optional[datetime], tz: Optional[tzinfo] = None) -> tuple[str, str]:
    """
    Return (date, time) strings such as ("November 14, 2025", "2:30 PM").

    Rendered in `tz`, or the process local zone when `tz` is None.
    """
    if start is None:
        return "TBD", "TBD"

    local = start.astimezone(tz)
    date_str = f"{MONTH_NAMES[local.month - 1]} {local.day}, {local.year}"
    hour = local.hour % 12 or 12
    time_str = f"{hour}:{local.minute:02d} {'AM' if local.hour < 12 else 'PM'}"
    return date_str, time_str


def format_meeting_message(
    meeting: MeetingRecord,
    setter_name: Optional[str],
    tz: Optional[tzinfo] = None,
) -> str:
    """
    Build the single-line GroupMe notification for a newly set appointment.
    """
    csr_name = _clean(setter_name) or UNKNOWN_CSR
    customer = customer_display_name(meeting)
    date_str, time_str = format_start(meeting.start_time, tz)

    message = f"📅 Appointment Set by {csr_name}: {customer} - {date_str} @ {time_str}"

    meeting_type = _clean(meeting.meeting_type_label)
    if meeting_type:
        message += f" - {meeting_type}"

    location = _clean(meeting.location)
    if location:
        message += f" - Location: {location}"

    return message


# ---------------------------------------------------------------------------
# Webhook event messages
# ---------------------------------------------------------------------------

def _pick(data: Mapping[str, Any], *keys: str, default: str) -> str:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return str(value)
    return default


def format_new_lead(lead: Mapping[str, Any]) -> str:
    return "\n".join(
        [
            "🎉 New Lead Alert!",
            "",
            f"Name: {_pick(lead, 'name', default='Unknown')}",
            f"Email: {_pick(lead, 'email', default='Not provided')}",
            f"Phone: {_pick(lead, 'phone', default='Not provided')}",
            f"Source: {_pick(lead, 'source', default='Unknown')}",
            f"Service: {_pick(lead, 'service', default='Not specified')}",
            "",
            "👉 Check BuilderPrime for full details!",
        ]
    )


def format_appointment_scheduled(appointment: Mapping[str, Any]) -> str:
    csr = _pick(appointment, "csr", "created_by", default="CSR")
    customer = _pick(appointment, "customer_name", "customer", default="Unknown")
    date_str = _pick(appointment, "date", "start_date", default="TBD")
    time_str = _pick(appointment, "time", "start_time", default="TBD")
    kind = _pick(appointment, "type", "appointment_type", default="General")

    message = f"📅 Appointment Set by {csr}: {customer} - {date_str} @ {time_str} - {kind}"
    notes = _pick(appointment, "notes", default="")
    if notes:
        message += f" - Notes: {notes}"
    return message


def format_project_update(project: Mapping[str, Any]) -> str:
    return "\n".join(
        [
            "📋 Project Update",
            "",
            f"Project: {_pick(project, 'name', default='Unknown')}",
            f"Status: {_pick(project, 'status', default='Unknown')}",
            f"Customer: {_pick(project, 'customer_name', default='Unknown')}",
            "",
            "👉 View details in BuilderPrime",
        ]
    )


def format_estimate_sent(estimate: Mapping[str, Any]) -> str:
    return "\n".join(
        [
            "💰 Estimate Sent!",
            "",
            f"Customer: {_pick(estimate, 'customer_name', default='Unknown')}",
            f"Amount: ${_pick(estimate, 'amount', default='TBD')}",
            f"Project: {_pick(estimate, 'project_name', default='Unknown')}",
            "",
            "🤞 Fingers crossed for this one!",
        ]
    )
