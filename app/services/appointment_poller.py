# app/services/appointment_poller.py
from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, time, timedelta, timezone, tzinfo
from functools import partial
from typing import Callable, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import Settings, get_settings
from app.schemas.meeting import MeetingRecord
from app.schemas.poller import PollCycleSummary, PollerState, PollerStatus
from app.services.crm_client import get_crm_client
from app.services.groupme_notifier import GroupMeError, GroupMeNotifier, get_groupme_notifier
from app.services.meeting_source import MeetingSource
from app.services.message_formatter import format_meeting_message
from app.services.party_resolver import PartyResolver

logger = logging.getLogger(__name__)

POLL_JOB_ID = "builderprime_appointment_poll"


class NotifiedSet:
    """
    In-memory record of meeting ids that have already been announced.

    Lives for the lifetime of the process only; a restart forgets it.
    """

    def __init__(self, ids: Iterable[int] = ()) -> None:
        self._ids = set(ids)

    def __contains__(self, meeting_id: object) -> bool:
        return meeting_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, meeting_id: int) -> None:
        self._ids.add(meeting_id)


def start_of_day(now: datetime) -> datetime:
    """
    Midnight of `now`'s calendar day.

    A naive `now` is read as process local time and the offset is looked up
    for midnight itself, so a DST change later in the day does not shift the
    cutoff. Zone-aware values (ZoneInfo) resolve their own midnight offset.
    """
    midnight = datetime.combine(now.date(), time.min)
    if now.tzinfo is None:
        return midnight.astimezone()
    return midnight.replace(tzinfo=now.tzinfo)


def build_windows(
    start: datetime,
    horizon_days: int,
    chunk_days: int,
) -> List[Tuple[datetime, datetime]]:
    """
    Split [start, start + horizon_days] into consecutive windows of at most
    `chunk_days`. Each window starts exactly where the previous one ended;
    the last one is clipped to the horizon.
    """
    if chunk_days <= 0:
        raise ValueError("chunk_days must be positive")
    if horizon_days <= 0:
        return []

    end = start + timedelta(days=horizon_days)
    step = timedelta(days=chunk_days)
    windows: List[Tuple[datetime, datetime]] = []
    for i in range(math.ceil(horizon_days / chunk_days)):
        window_start = start + step * i
        windows.append((window_start, min(window_start + step, end)))
    return windows


def select_new_meetings(
    meetings: Iterable[MeetingRecord],
    cutoff: datetime,
    notified: NotifiedSet,
) -> List[MeetingRecord]:
    """
    Keep meetings created at or after `cutoff` that were not notified yet.

    Discovery order is preserved. A meeting returned by two adjacent
    windows is kept once.
    """
    selected: List[MeetingRecord] = []
    seen: set[int] = set()
    for meeting in meetings:
        if meeting.id in seen:
            continue
        seen.add(meeting.id)
        if meeting.created_time is None or meeting.created_time < cutoff:
            continue
        if meeting.id in notified:
            continue
        selected.append(meeting)
    return selected


def _local_now() -> datetime:
    # Naive local time; start_of_day resolves the offset at midnight.
    return datetime.now()


class AppointmentPoller:
    """
    Periodically announces newly created BuilderPrime appointments in GroupMe.

    Lifecycle
    ---------
    IDLE --start()--> POLLING --stop()--> IDLE

    A second `start()` while POLLING is ignored so that accidental double
    invocation never produces two timers. `stop()` only prevents future
    cycles; a cycle already running finishes normally.

    Each cycle
    ----------
    1) Compute today's midnight from the clock.
    2) Query the forward horizon in chunks (one request per chunk, in order).
    3) Keep meetings created today whose id has not been notified.
    4) For each, in discovery order: resolve setter, format, deliver, then
       record the id. A failed delivery leaves the id unrecorded so the
       meeting is retried next cycle.
    """

    def __init__(
        self,
        meeting_source: MeetingSource,
        party_resolver: PartyResolver,
        notifier: GroupMeNotifier,
        *,
        interval_seconds: int = 120,
        horizon_days: int = 120,
        chunk_days: int = 30,
        notified: Optional[NotifiedSet] = None,
        clock: Optional[Callable[[], datetime]] = None,
        display_tz: Optional[tzinfo] = None,
    ) -> None:
        self.meeting_source = meeting_source
        self.party_resolver = party_resolver
        self.notifier = notifier
        self.interval_seconds = interval_seconds
        self.horizon_days = horizon_days
        self.chunk_days = chunk_days
        self.notified = notified if notified is not None else NotifiedSet()
        self.display_tz = display_tz
        self._clock = clock or _local_now

        self._state = PollerState.IDLE
        self._scheduler: Optional[AsyncIOScheduler] = None
        # Shared by scheduled and manually triggered cycles; the scheduler's
        # max_instances only covers its own job.
        self._cycle_lock = asyncio.Lock()
        self.last_cycle: Optional[PollCycleSummary] = None

    @property
    def state(self) -> PollerState:
        return self._state

    def status(self) -> PollerStatus:
        return PollerStatus(
            state=self._state,
            interval_seconds=self.interval_seconds,
            notified_count=len(self.notified),
            last_cycle=self.last_cycle,
        )

    # --- Lifecycle ---

    def start(self) -> bool:
        """
        Begin polling: run one cycle right away, then every `interval_seconds`.

        Must be called from within a running event loop. Returns False when
        polling was already active.
        """
        if self._state is PollerState.POLLING:
            logger.warning("Appointment polling already running")
            return False

        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler()

        # max_instances=1 keeps cycles strictly sequential: a tick that fires
        # while the previous cycle is still running is skipped.
        self._scheduler.add_job(
            self._scheduled_cycle,
            IntervalTrigger(seconds=self.interval_seconds),
            id=POLL_JOB_ID,
            name="Poll BuilderPrime for new appointments",
            next_run_time=datetime.now(tz=timezone.utc),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        if not self._scheduler.running:
            self._scheduler.start()

        self._state = PollerState.POLLING
        logger.info("Starting BuilderPrime polling (every %ss)", self.interval_seconds)
        return True

    def stop(self) -> bool:
        """
        Stop scheduling new cycles. Returns False when polling was not active.
        """
        if self._state is PollerState.IDLE:
            logger.info("Appointment polling is not running")
            return False

        if self._scheduler is not None and self._scheduler.get_job(POLL_JOB_ID) is not None:
            self._scheduler.remove_job(POLL_JOB_ID)

        self._state = PollerState.IDLE
        logger.info("Stopped BuilderPrime polling")
        return True

    def shutdown(self) -> None:
        """
        Stop polling and tear down the scheduler. Used on application shutdown.
        """
        self.stop()
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None

    # --- Poll cycle ---

    async def _scheduled_cycle(self) -> None:
        try:
            await self.run_cycle()
        except Exception:
            logger.exception("Error polling BuilderPrime")

    async def run_cycle(self) -> PollCycleSummary:
        """
        Execute one poll cycle and return what it did.

        Cycles never overlap: a call made while another cycle is running
        waits for it to finish, then sees its notified ids.
        """
        async with self._cycle_lock:
            return await self._run_cycle()

    async def _run_cycle(self) -> PollCycleSummary:
        now = self._clock()
        cutoff = start_of_day(now)
        if now.tzinfo is None:
            now = now.astimezone()
        logger.info("Polling BuilderPrime for new appointments...")

        windows = build_windows(cutoff, self.horizon_days, self.chunk_days)
        fetched: List[MeetingRecord] = []
        for window_start, window_end in windows:
            fetched.extend(await self.meeting_source.fetch_meetings(window_start, window_end))

        new_meetings = select_new_meetings(fetched, cutoff, self.notified)
        logger.info(
            "Found %d new appointments created today (after %s) out of %d fetched",
            len(new_meetings),
            cutoff.isoformat(),
            len(fetched),
        )

        summary = PollCycleSummary(
            started_at=now,
            cutoff=cutoff,
            chunks_requested=len(windows),
            meetings_fetched=len(fetched),
            new_meetings=len(new_meetings),
        )

        for meeting in new_meetings:
            if await self.notify_meeting(meeting):
                summary.delivered_ids.append(meeting.id)
            else:
                summary.failed_ids.append(meeting.id)

        self.last_cycle = summary
        return summary

    async def notify_meeting(self, meeting: MeetingRecord) -> bool:
        """
        Resolve, format, deliver and record a single meeting.

        Returns True once the id has been recorded as notified. Any failure
        leaves the id unrecorded and never stops the remaining meetings.
        """
        try:
            setter_name = await self.party_resolver.resolve(meeting.client_id)
            message = format_meeting_message(meeting, setter_name, tz=self.display_tz)
            await self.notifier.send_message(message)
        except GroupMeError as exc:
            logger.error("Failed to post appointment %s; will retry next cycle: %s", meeting.id, exc)
            return False
        except Exception:
            logger.exception("Unexpected error notifying appointment %s; will retry next cycle", meeting.id)
            return False

        self.notified.add(meeting.id)
        logger.info("Posted appointment %s to GroupMe: %s", meeting.id, meeting.title)
        return True


def build_appointment_poller(settings: Optional[Settings] = None) -> AppointmentPoller:
    """
    Wire an AppointmentPoller from settings.

    Raises CrmClientError when BuilderPrime credentials are missing.
    """
    settings = settings or get_settings()
    crm_client = get_crm_client()

    zone = ZoneInfo(settings.POLL_TIMEZONE) if settings.POLL_TIMEZONE else None
    clock = partial(datetime.now, tz=zone) if zone is not None else None

    return AppointmentPoller(
        meeting_source=MeetingSource(crm_client, page_limit=settings.MEETINGS_PAGE_LIMIT),
        party_resolver=PartyResolver(
            crm_client,
            ttl_seconds=settings.ROSTER_TTL_SECONDS,
            page_limit=settings.ROSTER_PAGE_LIMIT,
        ),
        notifier=get_groupme_notifier(),
        interval_seconds=settings.POLL_INTERVAL_SECONDS,
        horizon_days=settings.POLL_HORIZON_DAYS,
        chunk_days=settings.POLL_CHUNK_DAYS,
        clock=clock,
        display_tz=zone,
    )


_poller_instance: Optional[AppointmentPoller] = None


def get_appointment_poller() -> AppointmentPoller:
    """
    Process-wide poller, built on first use.
    """
    global _poller_instance
    if _poller_instance is None:
        _poller_instance = build_appointment_poller()
    return _poller_instance


def get_appointment_poller_if_built() -> Optional[AppointmentPoller]:
    return _poller_instance
