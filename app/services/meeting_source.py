# app/services/meeting_source.py
import logging
from datetime import datetime

from pydantic import ValidationError

from app.schemas.meeting import MeetingRecord, MeetingsEnvelope
from app.services.crm_client import CrmClient, CrmClientError

logger = logging.getLogger(__name__)

MEETINGS_PATH = "/meetings/v1"


def to_epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


class MeetingSource:
    """
    Fetches scheduled meetings from BuilderPrime for a start-time window.

    BuilderPrime silently rejects windows wider than roughly 31 days, so
    callers are expected to chunk longer horizons themselves.
    """

    def __init__(self, crm_client: CrmClient, page_limit: int = 100) -> None:
        self.crm = crm_client
        self.page_limit = page_limit

    async def fetch_meetings(
        self,
        window_start: datetime,
        window_end: datetime,
    ) -> list[MeetingRecord]:
        """
        Return meetings whose start time falls in [window_start, window_end].

        Any failure (transport, non-success envelope, malformed payload) is
        logged and yields an empty list, so one bad window never aborts the
        rest of a poll cycle.
        """
        params = {
            "start-date-from": to_epoch_ms(window_start),
            "start-date-to": to_epoch_ms(window_end),
            "limit": self.page_limit,
        }

        try:
            payload = await self.crm.get_json(MEETINGS_PATH, params=params)
        except CrmClientError as exc:
            logger.error(
                "Error fetching BuilderPrime meetings %s -> %s: %s",
                window_start.isoformat(),
                window_end.isoformat(),
                exc,
            )
            return []

        try:
            envelope = MeetingsEnvelope.model_validate(payload)
        except ValidationError as exc:
            logger.error("Unexpected BuilderPrime meetings payload: %s", exc)
            return []

        if not envelope.success or envelope.data is None:
            logger.error("BuilderPrime API error: %s", envelope.errors)
            return []

        meetings: list[MeetingRecord] = []
        for raw in envelope.data:
            try:
                meetings.append(MeetingRecord.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Skipping malformed meeting record %r: %s", raw.get("id"), exc)

        if len(meetings) >= self.page_limit:
            logger.warning(
                "Meetings window %s -> %s hit the page limit (%d); results may be truncated",
                window_start.isoformat(),
                window_end.isoformat(),
                self.page_limit,
            )

        return meetings
