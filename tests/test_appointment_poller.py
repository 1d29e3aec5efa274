# tests/test_appointment_poller.py
import asyncio
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from app.schemas.meeting import MeetingRecord
from app.schemas.poller import PollerState
from app.services.appointment_poller import (
    AppointmentPoller,
    NotifiedSet,
    build_windows,
    select_new_meetings,
    start_of_day,
)
from fakes import FakeMeetingSource, FakeNotifier, FakePartyResolver, meeting_payload

NOW = datetime(2025, 11, 14, 9, 30, tzinfo=timezone.utc)
TODAY = datetime(2025, 11, 14, tzinfo=timezone.utc)
NEXT_WEEK = datetime(2025, 11, 21, 14, 0, tzinfo=timezone.utc)


def _meeting(meeting_id: int, created: datetime, client_id=None, **overrides) -> MeetingRecord:
    return MeetingRecord.model_validate(
        meeting_payload(meeting_id, created, NEXT_WEEK, client_id=client_id, **overrides)
    )


def _poller(source, resolver=None, notifier=None, **kwargs) -> AppointmentPoller:
    return AppointmentPoller(
        meeting_source=source,
        party_resolver=resolver or FakePartyResolver(),
        notifier=notifier or FakeNotifier(),
        clock=lambda: NOW,
        display_tz=timezone.utc,
        **kwargs,
    )


# --- Pure helpers ---

def test_start_of_day_keeps_timezone():
    eastern = timezone(timedelta(hours=-5))
    now = datetime(2025, 11, 14, 23, 10, tzinfo=eastern)

    assert start_of_day(now) == datetime(2025, 11, 14, tzinfo=eastern)


def test_build_windows_covers_horizon_without_gaps():
    windows = build_windows(TODAY, horizon_days=120, chunk_days=30)

    assert len(windows) == 4
    assert windows[0][0] == TODAY
    assert windows[-1][1] == TODAY + timedelta(days=120)
    for (_, prev_end), (next_start, _) in zip(windows, windows[1:]):
        assert prev_end == next_start
    assert all(end - start <= timedelta(days=30) for start, end in windows)


def test_build_windows_clips_last_chunk():
    windows = build_windows(TODAY, horizon_days=100, chunk_days=31)

    assert len(windows) == 4
    assert windows[-1] == (TODAY + timedelta(days=93), TODAY + timedelta(days=100))


def test_select_new_meetings_uses_creation_date_boundary():
    late_yesterday = _meeting(1, TODAY - timedelta(minutes=1))
    at_midnight = _meeting(2, TODAY)

    selected = select_new_meetings([late_yesterday, at_midnight], TODAY, NotifiedSet())

    assert [m.id for m in selected] == [2]


def test_select_new_meetings_filters_on_created_not_start():
    created_today_far_future = _meeting(
        1, TODAY + timedelta(hours=8), startDateTime=int((TODAY + timedelta(days=90)).timestamp() * 1000)
    )
    created_yesterday_for_today = _meeting(
        2, TODAY - timedelta(days=1), startDateTime=int((TODAY + timedelta(hours=10)).timestamp() * 1000)
    )

    selected = select_new_meetings(
        [created_today_far_future, created_yesterday_for_today], TODAY, NotifiedSet()
    )

    assert [m.id for m in selected] == [1]


def test_select_new_meetings_skips_notified_and_repeated_ids():
    first = _meeting(1, NOW)
    second = _meeting(2, NOW)
    third = _meeting(3, NOW)

    selected = select_new_meetings([third, first, second, third], TODAY, NotifiedSet([2]))

    assert [m.id for m in selected] == [3, 1]


# --- Poll cycle ---

@pytest.mark.asyncio
async def test_cycle_queries_each_chunk_once():
    source = FakeMeetingSource([])
    poller = _poller(source)

    summary = await poller.run_cycle()

    assert summary.chunks_requested == 4
    assert source.windows == build_windows(TODAY, 120, 30)


@pytest.mark.asyncio
async def test_cycle_aggregates_meetings_across_chunks():
    source = FakeMeetingSource(
        per_window=[
            [_meeting(1, NOW)],
            [],
            [_meeting(2, NOW), _meeting(3, TODAY - timedelta(days=2))],
            [_meeting(4, NOW)],
        ]
    )
    notifier = FakeNotifier()
    poller = _poller(source, notifier=notifier)

    summary = await poller.run_cycle()

    assert summary.meetings_fetched == 4
    assert summary.new_meetings == 3
    assert summary.delivered_ids == [1, 2, 4]
    assert len(notifier.sent) == 3


@pytest.mark.asyncio
async def test_new_meeting_is_attributed_to_lead_setter_and_notified_once():
    meeting = _meeting(42, datetime(2025, 11, 14, 9, 0, tzinfo=timezone.utc), client_id=7)
    source = FakeMeetingSource([meeting])
    resolver = FakePartyResolver({7: "Sam Lee"})
    notifier = FakeNotifier()
    poller = _poller(source, resolver=resolver, notifier=notifier)

    first = await poller.run_cycle()

    assert first.delivered_ids == [42]
    assert 42 in poller.notified
    assert resolver.lookups == [7]
    assert len(notifier.sent) == 1
    assert notifier.sent[0].startswith("📅 Appointment Set by Sam Lee: Customer 42")

    source.windows.clear()
    second = await poller.run_cycle()

    assert second.new_meetings == 0
    assert second.delivered_ids == []
    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_unresolved_setter_uses_unknown_csr():
    source = FakeMeetingSource([_meeting(5, NOW, client_id=99)])
    notifier = FakeNotifier()
    poller = _poller(source, notifier=notifier)

    await poller.run_cycle()

    assert notifier.sent[0].startswith("📅 Appointment Set by Unknown CSR: ")


@pytest.mark.asyncio
async def test_failed_delivery_is_retried_next_cycle():
    source = FakeMeetingSource(
        [
            _meeting(1, NOW, title="Failing Customer - Estimate"),
            _meeting(2, NOW, title="Working Customer - Estimate"),
        ]
    )
    notifier = FakeNotifier(fail_on="Failing Customer")
    poller = _poller(source, notifier=notifier)

    first = await poller.run_cycle()

    assert first.failed_ids == [1]
    assert first.delivered_ids == [2]
    assert 1 not in poller.notified
    assert 2 in poller.notified

    notifier.fail_on = None
    source.windows.clear()
    second = await poller.run_cycle()

    assert second.delivered_ids == [1]
    assert 1 in poller.notified
    assert sum("Failing Customer" in text for text in notifier.attempts) == 2
    assert sum("Working Customer" in text for text in notifier.sent) == 1


@pytest.mark.asyncio
async def test_unexpected_notifier_error_does_not_stop_remaining_meetings():
    class BrokenOnceNotifier(FakeNotifier):
        async def send_message(self, text):
            self.attempts.append(text)
            if len(self.attempts) == 1:
                raise RuntimeError("connection pool exhausted")
            self.sent.append(text)
            return {}

    source = FakeMeetingSource(
        [
            _meeting(1, NOW, title="First Customer - Estimate"),
            _meeting(2, NOW, title="Second Customer - Estimate"),
        ]
    )
    notifier = BrokenOnceNotifier()
    poller = _poller(source, notifier=notifier)

    summary = await poller.run_cycle()

    assert summary.failed_ids == [1]
    assert summary.delivered_ids == [2]
    assert 1 not in poller.notified
    assert 2 in poller.notified
    assert len(notifier.sent) == 1
    assert "Second Customer" in notifier.sent[0]
    assert poller.last_cycle is summary


@pytest.mark.asyncio
async def test_skipped_delivery_counts_as_notified():
    class SkippingNotifier(FakeNotifier):
        async def send_message(self, text):
            self.attempts.append(text)
            return {"skipped": True}

    source = FakeMeetingSource([_meeting(1, NOW)])
    poller = _poller(source, notifier=SkippingNotifier(configured=False))

    summary = await poller.run_cycle()

    assert summary.delivered_ids == [1]
    assert 1 in poller.notified


@pytest.mark.asyncio
async def test_scheduled_cycle_swallows_unexpected_errors():
    class ExplodingSource(FakeMeetingSource):
        async def fetch_meetings(self, window_start, window_end):
            raise RuntimeError("boom")

    poller = _poller(ExplodingSource())

    await poller._scheduled_cycle()

    assert poller.last_cycle is None


@pytest.mark.asyncio
async def test_status_reports_last_cycle():
    source = FakeMeetingSource([_meeting(1, NOW)])
    poller = _poller(source, interval_seconds=60)

    await poller.run_cycle()
    status = poller.status()

    assert status.state is PollerState.IDLE
    assert status.interval_seconds == 60
    assert status.notified_count == 1
    assert status.last_cycle.delivered_ids == [1]


# --- Lifecycle ---

@pytest.mark.asyncio
async def test_start_is_guarded_and_stop_returns_to_idle():
    poller = _poller(FakeMeetingSource([]))

    assert poller.state is PollerState.IDLE
    assert poller.start() is True
    assert poller.state is PollerState.POLLING

    assert poller.start() is False
    assert len(poller._scheduler.get_jobs()) == 1

    assert poller.stop() is True
    assert poller.state is PollerState.IDLE
    assert poller._scheduler.get_jobs() == []
    assert poller._scheduler.running

    assert poller.stop() is False
    poller.shutdown()
    assert poller._scheduler is None


@pytest.mark.asyncio
async def test_poller_can_restart_after_stop():
    poller = _poller(FakeMeetingSource([]))

    poller.start()
    poller.stop()

    assert poller.start() is True
    assert len(poller._scheduler.get_jobs()) == 1
    poller.shutdown()
    assert poller.state is PollerState.IDLE


@pytest.mark.asyncio
async def test_overlapping_cycles_deliver_a_meeting_once():
    class SlowNotifier(FakeNotifier):
        async def send_message(self, text):
            self.attempts.append(text)
            await asyncio.sleep(0.05)
            self.sent.append(text)
            return {}

    class FirstWindowSource(FakeMeetingSource):
        async def fetch_meetings(self, window_start, window_end):
            self.windows.append((window_start, window_end))
            return [_meeting(42, NOW)] if window_start == TODAY else []

    notifier = SlowNotifier()
    poller = _poller(FirstWindowSource(), notifier=notifier)

    first, second = await asyncio.gather(poller.run_cycle(), poller.run_cycle())

    assert len(notifier.sent) == 1
    assert sorted(first.delivered_ids + second.delivered_ids) == [42]
    assert 42 in poller.notified


# --- Day boundary ---

def test_start_of_day_uses_midnight_offset_on_dst_change():
    new_york = ZoneInfo("America/New_York")
    morning = datetime(2025, 3, 9, 9, 0, tzinfo=new_york)

    cutoff = start_of_day(morning)

    assert cutoff == datetime(2025, 3, 9, tzinfo=new_york)
    assert cutoff.utcoffset() == timedelta(hours=-5)
    assert morning.utcoffset() == timedelta(hours=-4)


@pytest.mark.asyncio
async def test_meeting_created_before_local_midnight_on_dst_day_is_rejected():
    new_york = ZoneInfo("America/New_York")
    late_saturday = _meeting(1, datetime(2025, 3, 8, 23, 30, tzinfo=new_york))
    early_sunday = _meeting(2, datetime(2025, 3, 9, 0, 30, tzinfo=new_york))
    notifier = FakeNotifier()
    poller = AppointmentPoller(
        meeting_source=FakeMeetingSource([late_saturday, early_sunday]),
        party_resolver=FakePartyResolver(),
        notifier=notifier,
        clock=lambda: datetime(2025, 3, 9, 9, 0, tzinfo=new_york),
        display_tz=new_york,
    )

    summary = await poller.run_cycle()

    assert summary.cutoff == datetime(2025, 3, 9, 5, 0, tzinfo=timezone.utc)
    assert summary.delivered_ids == [2]
    assert 1 not in poller.notified


@pytest.mark.asyncio
async def test_naive_clock_yields_zone_aware_cutoff():
    poller = AppointmentPoller(
        meeting_source=FakeMeetingSource([]),
        party_resolver=FakePartyResolver(),
        notifier=FakeNotifier(),
        clock=lambda: datetime(2025, 11, 14, 9, 30),
    )

    summary = await poller.run_cycle()

    assert summary.cutoff.tzinfo is not None
    assert summary.cutoff == datetime(2025, 11, 14).astimezone()
    assert summary.started_at.tzinfo is not None
