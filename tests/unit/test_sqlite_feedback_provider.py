"""Unit tests for SQLiteFeedbackProvider.

Runs against a temporary database file so the real data directory is
never touched.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from propertylens.models.feedback import (
    Polarity,
    SectionFeedbackEvent,
    StarRatingEvent,
    TriggerReason,
    TriggerRecord,
    TriggerStatus,
)
from propertylens.providers.feedback.sqlite_feedback_provider import SQLiteFeedbackProvider

_T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)  # noqa: UP017


def _section(
    session_id: str = "abc",
    section_id: str = "valuation",
    polarity: Polarity = Polarity.NEGATIVE,
    recorded_at: datetime = _T0,
    user_id: str | None = None,
) -> SectionFeedbackEvent:
    return SectionFeedbackEvent(
        session_id=session_id,
        section_id=section_id,
        polarity=polarity,
        timestamp=recorded_at,
        recorded_at=recorded_at,
        user_id=user_id,
    )


# ─── Initialization ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_provider_name(feedback_provider: SQLiteFeedbackProvider) -> None:
    assert feedback_provider.get_provider_name() == "sqlite_feedback"


@pytest.mark.asyncio
async def test_double_initialize_is_idempotent(feedback_provider: SQLiteFeedbackProvider) -> None:
    await feedback_provider.initialize()


# ─── Section feedback ─────────────────────────────────────────────


@pytest.mark.asyncio
async def test_section_feedback_round_trip_preserves_fields(
    feedback_provider: SQLiteFeedbackProvider,
) -> None:
    await feedback_provider.add_section_feedback(_section(user_id="u1"))

    events = await feedback_provider.list_section_feedback(session_id="abc")

    assert len(events) == 1
    assert events[0].polarity is Polarity.NEGATIVE
    assert events[0].user_id == "u1"
    assert events[0].recorded_at == _T0


@pytest.mark.asyncio
async def test_section_feedback_filters(feedback_provider: SQLiteFeedbackProvider) -> None:
    await feedback_provider.add_section_feedback(_section())
    await feedback_provider.add_section_feedback(_section(section_id="location"))
    await feedback_provider.add_section_feedback(_section(session_id="other"))

    assert len(await feedback_provider.list_section_feedback()) == 3
    assert len(await feedback_provider.list_section_feedback(session_id="abc")) == 2
    only = await feedback_provider.list_section_feedback(session_id="abc", section_id="location")
    assert [e.section_id for e in only] == ["location"]


@pytest.mark.asyncio
async def test_since_filter_uses_recorded_at(feedback_provider: SQLiteFeedbackProvider) -> None:
    await feedback_provider.add_section_feedback(_section(recorded_at=_T0 - timedelta(days=20)))
    await feedback_provider.add_section_feedback(_section(recorded_at=_T0))

    recent = await feedback_provider.list_section_feedback(
        session_id="abc", since=_T0 - timedelta(days=14)
    )

    assert len(recent) == 1
    assert recent[0].recorded_at == _T0


@pytest.mark.asyncio
async def test_section_summary(feedback_provider: SQLiteFeedbackProvider) -> None:
    await feedback_provider.add_section_feedback(_section())
    await feedback_provider.add_section_feedback(_section(polarity=Polarity.POSITIVE))
    await feedback_provider.add_section_feedback(
        _section(section_id="location", polarity=Polarity.POSITIVE)
    )

    summary = await feedback_provider.get_section_summary()

    assert summary["total"] == 3
    assert summary["positive"] == 2
    assert summary["negative"] == 1
    assert summary["by_section"]["valuation"] == {"positive": 1, "negative": 1, "total": 2}


@pytest.mark.asyncio
async def test_section_summary_empty(feedback_provider: SQLiteFeedbackProvider) -> None:
    summary = await feedback_provider.get_section_summary()
    assert summary == {"total": 0, "positive": 0, "negative": 0, "by_section": {}}


# ─── Star ratings ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_star_ratings_by_session(feedback_provider: SQLiteFeedbackProvider) -> None:
    for rating in (1, 2):
        await feedback_provider.add_star_rating(
            StarRatingEvent(session_id="abc", rating=rating, recorded_at=_T0)
        )
    await feedback_provider.add_star_rating(
        StarRatingEvent(session_id="other", rating=5, recorded_at=_T0)
    )

    ratings = await feedback_provider.list_star_ratings(session_id="abc")

    assert [r.rating for r in ratings] == [1, 2]


# ─── Trigger records ──────────────────────────────────────────────


@pytest.mark.asyncio
async def test_trigger_lifecycle(feedback_provider: SQLiteFeedbackProvider) -> None:
    record = TriggerRecord(
        trigger_id="t1",
        session_id="abc",
        triggered_at=_T0,
        reason=TriggerReason.NEGATIVE_SECTION_RATIO,
        details={"sectionId": "valuation", "negativeFeedbackCount": 3},
    )
    await feedback_provider.add_trigger(record)

    stored = await feedback_provider.list_triggers("abc")
    assert stored[0].status is TriggerStatus.TRIGGERED
    assert stored[0].details == {"sectionId": "valuation", "negativeFeedbackCount": 3}
    assert stored[0].resolved_at is None

    resolved_at = _T0 + timedelta(minutes=5)
    await feedback_provider.resolve_trigger("t1", TriggerStatus.COMPLETED, resolved_at)

    stored = await feedback_provider.list_triggers()
    assert stored[0].status is TriggerStatus.COMPLETED
    assert stored[0].resolved_at == resolved_at


@pytest.mark.asyncio
async def test_list_triggers_filters_by_session(feedback_provider: SQLiteFeedbackProvider) -> None:
    for trigger_id, session_id in (("t1", "abc"), ("t2", "other")):
        await feedback_provider.add_trigger(
            TriggerRecord(
                trigger_id=trigger_id,
                session_id=session_id,
                triggered_at=_T0,
                reason=TriggerReason.LOW_AVERAGE_RATING,
            )
        )

    assert [r.trigger_id for r in await feedback_provider.list_triggers("abc")] == ["t1"]
    assert len(await feedback_provider.list_triggers()) == 2
