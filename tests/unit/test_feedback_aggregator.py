"""Unit tests for FeedbackAggregator: counting, rehydration and cooldown lifecycle."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from propertylens.interfaces.feedback_provider import IFeedbackProvider
from propertylens.models.feedback import (
    Polarity,
    SectionFeedbackEvent,
    StarRatingEvent,
    TriggerReason,
    TriggerRecord,
    TriggerStatus,
)
from propertylens.providers.feedback.sqlite_feedback_provider import SQLiteFeedbackProvider
from propertylens.services.feedback_aggregator import FeedbackAggregator
from tests.conftest import FakeWallClock


def _negative(
    section_id: str = "valuation", user_id: str | None = None, session_id: str = "abc"
) -> SectionFeedbackEvent:
    return SectionFeedbackEvent(
        session_id=session_id, section_id=section_id, polarity=Polarity.NEGATIVE, user_id=user_id
    )


def _positive(section_id: str = "valuation") -> SectionFeedbackEvent:
    return SectionFeedbackEvent(session_id="abc", section_id=section_id, polarity=Polarity.POSITIVE)


async def _open_trigger(
    store: SQLiteFeedbackProvider, aggregator: FeedbackAggregator, wall_clock: FakeWallClock
) -> str:
    assert await aggregator.claim_cooldown("abc", "t1")
    await store.add_trigger(
        TriggerRecord(
            trigger_id="t1",
            session_id="abc",
            triggered_at=wall_clock(),
            reason=TriggerReason.NEGATIVE_SECTION_RATIO,
        )
    )
    return "t1"


# ======================================================================
# Recording
# ======================================================================


class TestRecording:
    @pytest.mark.asyncio
    async def test_section_feedback_counted_per_section(
        self, aggregator: FeedbackAggregator
    ) -> None:
        await aggregator.record(_negative())
        await aggregator.record(_positive())
        aggregate = await aggregator.record(_negative("location"))

        assert aggregate.sections["valuation"].negative == 1
        assert aggregate.sections["valuation"].positive == 1
        assert aggregate.sections["location"].negative == 1
        assert aggregate.total_negative == 2

    @pytest.mark.asyncio
    async def test_star_ratings_average(self, aggregator: FeedbackAggregator) -> None:
        await aggregator.record(StarRatingEvent(session_id="abc", rating=1, user_id="u1"))
        aggregate = await aggregator.record(StarRatingEvent(session_id="abc", rating=4))

        assert aggregate.ratings == [1, 4]
        assert aggregate.average_rating == pytest.approx(2.5)
        assert aggregate.low_rating_users == 1

    @pytest.mark.asyncio
    async def test_events_persisted_with_receipt_time(
        self,
        aggregator: FeedbackAggregator,
        feedback_provider: SQLiteFeedbackProvider,
        wall_clock: FakeWallClock,
    ) -> None:
        await aggregator.record(_negative())

        stored = await feedback_provider.list_section_feedback(session_id="abc")
        assert len(stored) == 1
        assert stored[0].recorded_at == wall_clock()

    @pytest.mark.asyncio
    async def test_distinct_negative_users(self, aggregator: FeedbackAggregator) -> None:
        await aggregator.record(_negative(user_id="u1"))
        await aggregator.record(_negative(user_id="u1"))
        aggregate = await aggregator.record(_negative())

        assert aggregate.sections["valuation"].negative == 3
        assert aggregate.sections["valuation"].negative_users == 2

    @pytest.mark.asyncio
    async def test_concurrent_records_all_counted(self, aggregator: FeedbackAggregator) -> None:
        await asyncio.gather(*(aggregator.record(_negative()) for _ in range(15)))

        aggregate = await aggregator.aggregate_for("abc")
        assert aggregate.sections["valuation"].negative == 15

    @pytest.mark.asyncio
    async def test_failed_write_not_counted(self, wall_clock: FakeWallClock) -> None:
        store = MagicMock(spec=IFeedbackProvider)
        store.list_triggers = AsyncMock(return_value=[])
        store.list_section_feedback = AsyncMock(return_value=[])
        store.list_star_ratings = AsyncMock(return_value=[])
        store.add_section_feedback = AsyncMock(side_effect=OSError("disk full"))
        aggregator = FeedbackAggregator(store=store, clock=wall_clock)

        with pytest.raises(OSError):
            await aggregator.record(_negative())

        assert (await aggregator.aggregate_for("abc")).sections == {}


# ======================================================================
# Rehydration
# ======================================================================


class TestRehydration:
    @pytest.mark.asyncio
    async def test_restart_rebuilds_aggregate(
        self,
        aggregator: FeedbackAggregator,
        feedback_provider: SQLiteFeedbackProvider,
        wall_clock: FakeWallClock,
    ) -> None:
        await aggregator.record(_negative())
        await aggregator.record(StarRatingEvent(session_id="abc", rating=2))

        restarted = FeedbackAggregator(store=feedback_provider, clock=wall_clock)
        aggregate = await restarted.aggregate_for("abc")

        assert aggregate.sections["valuation"].negative == 1
        assert aggregate.ratings == [2]

    @pytest.mark.asyncio
    async def test_events_outside_window_ignored(
        self, feedback_provider: SQLiteFeedbackProvider, wall_clock: FakeWallClock
    ) -> None:
        old = FeedbackAggregator(store=feedback_provider, clock=wall_clock)
        await old.record(_negative())

        wall_clock.advance(days=15)
        restarted = FeedbackAggregator(store=feedback_provider, clock=wall_clock)
        aggregate = await restarted.aggregate_for("abc")

        assert aggregate.sections == {}

    @pytest.mark.asyncio
    async def test_open_trigger_restored_as_cooldown(
        self,
        aggregator: FeedbackAggregator,
        feedback_provider: SQLiteFeedbackProvider,
        wall_clock: FakeWallClock,
    ) -> None:
        await _open_trigger(feedback_provider, aggregator, wall_clock)

        restarted = FeedbackAggregator(store=feedback_provider, clock=wall_clock)
        aggregate = await restarted.aggregate_for("abc")

        assert aggregate.cooldown_active
        assert aggregate.active_trigger_id == "t1"

    @pytest.mark.asyncio
    async def test_closed_window_starts_after_resolution(
        self,
        aggregator: FeedbackAggregator,
        feedback_provider: SQLiteFeedbackProvider,
        wall_clock: FakeWallClock,
    ) -> None:
        await aggregator.record(_negative())
        await _open_trigger(feedback_provider, aggregator, wall_clock)
        wall_clock.advance(minutes=1)
        await aggregator.note_session_status("abc", "analyzing")
        wall_clock.advance(minutes=5)
        await aggregator.note_session_status("abc", "completed")
        wall_clock.advance(minutes=1)
        await aggregator.record(_positive())

        restarted = FeedbackAggregator(store=feedback_provider, clock=wall_clock)
        aggregate = await restarted.aggregate_for("abc")

        assert aggregate.sections["valuation"].negative == 0
        assert aggregate.sections["valuation"].positive == 1
        assert not aggregate.cooldown_active


# ======================================================================
# Cooldown marker
# ======================================================================


class TestCooldown:
    @pytest.mark.asyncio
    async def test_claim_is_test_and_set(self, aggregator: FeedbackAggregator) -> None:
        results = await asyncio.gather(
            *(aggregator.claim_cooldown("abc", f"t{i}") for i in range(10))
        )

        assert results.count(True) == 1
        aggregate = await aggregator.aggregate_for("abc")
        assert aggregate.cooldown_active

    @pytest.mark.asyncio
    async def test_release_only_by_owner(self, aggregator: FeedbackAggregator) -> None:
        assert await aggregator.claim_cooldown("abc", "t1")

        await aggregator.release_cooldown("abc", "someone-else")
        assert (await aggregator.aggregate_for("abc")).cooldown_active

        await aggregator.release_cooldown("abc", "t1")
        assert not (await aggregator.aggregate_for("abc")).cooldown_active

    @pytest.mark.asyncio
    async def test_release_keeps_aggregates(self, aggregator: FeedbackAggregator) -> None:
        await aggregator.record(_negative())
        await aggregator.claim_cooldown("abc", "t1")
        await aggregator.release_cooldown("abc", "t1")

        assert (await aggregator.aggregate_for("abc")).sections["valuation"].negative == 1

    @pytest.mark.asyncio
    async def test_run_then_terminal_closes_window(
        self,
        aggregator: FeedbackAggregator,
        feedback_provider: SQLiteFeedbackProvider,
        wall_clock: FakeWallClock,
    ) -> None:
        await aggregator.record(_negative())
        await _open_trigger(feedback_provider, aggregator, wall_clock)

        assert await aggregator.note_session_status("abc", "completed") is None
        assert await aggregator.note_session_status("abc", "analyzing") is None
        assert await aggregator.note_session_status("abc", "completed") == "t1"

        aggregate = await aggregator.aggregate_for("abc")
        assert not aggregate.cooldown_active
        assert aggregate.sections == {}
        assert aggregate.window_started_at == wall_clock()
        records = await feedback_provider.list_triggers("abc")
        assert records[0].status is TriggerStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_untracked_session_status_ignored(self, aggregator: FeedbackAggregator) -> None:
        assert await aggregator.note_session_status("never-seen", "completed") is None
        assert aggregator.tracked_sessions == 0

    @pytest.mark.asyncio
    async def test_stale_cooldown_expires(
        self,
        aggregator: FeedbackAggregator,
        feedback_provider: SQLiteFeedbackProvider,
        wall_clock: FakeWallClock,
    ) -> None:
        await aggregator.record(_negative())
        await _open_trigger(feedback_provider, aggregator, wall_clock)

        wall_clock.advance(hours=25)
        aggregate = await aggregator.aggregate_for("abc")

        assert not aggregate.cooldown_active
        assert aggregate.sections == {}
        records = await feedback_provider.list_triggers("abc")
        assert records[0].status is TriggerStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_terminal_without_observed_run_keeps_cooldown(
        self,
        aggregator: FeedbackAggregator,
        feedback_provider: SQLiteFeedbackProvider,
        wall_clock: FakeWallClock,
    ) -> None:
        await aggregator.record(_negative())
        await _open_trigger(feedback_provider, aggregator, wall_clock)

        wall_clock.advance(minutes=10)
        assert await aggregator.note_session_status("abc", "completed") is None
        assert await aggregator.note_session_status("abc", "degraded") is None

        aggregate = await aggregator.aggregate_for("abc")
        assert aggregate.cooldown_active
        assert aggregate.sections["valuation"].negative == 1
        records = await feedback_provider.list_triggers("abc")
        assert records[0].status is TriggerStatus.TRIGGERED


# ======================================================================
# Memory bound
# ======================================================================


class TestMemoryBound:
    @pytest.mark.asyncio
    async def test_reading_unknown_sessions_does_not_track_them(
        self, aggregator: FeedbackAggregator
    ) -> None:
        for i in range(500):
            aggregate = await aggregator.aggregate_for(f"unknown-{i}")
            assert aggregate.sections == {}

        assert aggregator.tracked_sessions == 0

    @pytest.mark.asyncio
    async def test_idle_sessions_evicted_and_rebuilt(
        self, feedback_provider: SQLiteFeedbackProvider, wall_clock: FakeWallClock
    ) -> None:
        aggregator = FeedbackAggregator(
            store=feedback_provider, clock=wall_clock, max_tracked_sessions=2
        )
        await aggregator.record(_negative())
        await aggregator.record(_negative())
        for i in range(5):
            await aggregator.record(_negative(session_id=f"other-{i}"))

        assert aggregator.tracked_sessions == 2
        aggregate = await aggregator.record(_negative())
        assert aggregate.sections["valuation"].negative == 3

    @pytest.mark.asyncio
    async def test_open_cooldown_survives_eviction(
        self, feedback_provider: SQLiteFeedbackProvider, wall_clock: FakeWallClock
    ) -> None:
        aggregator = FeedbackAggregator(
            store=feedback_provider, clock=wall_clock, max_tracked_sessions=2
        )
        await aggregator.record(_negative())
        await _open_trigger(feedback_provider, aggregator, wall_clock)
        for i in range(5):
            await aggregator.record(_negative(session_id=f"other-{i}"))

        assert aggregator.tracked_sessions == 3
        assert await aggregator.note_session_status("abc", "analyzing") is None
        assert await aggregator.note_session_status("abc", "completed") == "t1"
        assert not (await aggregator.aggregate_for("abc")).cooldown_active

    @pytest.mark.asyncio
    async def test_reading_session_with_open_trigger_tracks_it(
        self,
        aggregator: FeedbackAggregator,
        feedback_provider: SQLiteFeedbackProvider,
        wall_clock: FakeWallClock,
    ) -> None:
        await _open_trigger(feedback_provider, aggregator, wall_clock)
        restarted = FeedbackAggregator(store=feedback_provider, clock=wall_clock)

        assert (await restarted.aggregate_for("abc")).cooldown_active
        assert restarted.tracked_sessions == 1
        assert await restarted.note_session_status("abc", "analyzing") is None
        assert await restarted.note_session_status("abc", "error") == "t1"
