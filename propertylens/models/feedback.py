"""Feedback, aggregate and trigger models.

Feedback events are immutable and append-only.  Aggregates are derived
from them incrementally by the FeedbackAggregator; trigger records are
written once per qualifying threshold crossing by the TriggerEvaluator.

All models use camelCase aliases so they can be dumped straight into API
responses (``model_dump(by_alias=True)``) while Python code keeps
snake_case attribute names.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_CAMEL = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class Polarity(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    POSITIVE = "positive"
    NEGATIVE = "negative"


ANONYMOUS_USER = "anonymous"
LOW_RATING_MAX = 2


class SectionFeedbackEvent(BaseModel):
    """A thumbs up/down on one report section."""

    model_config = _CAMEL

    session_id: str = Field(min_length=1)
    section_id: str = Field(min_length=1)
    polarity: Polarity
    # Client-supplied time of the click; defaults to receipt time.
    timestamp: datetime = Field(default_factory=utc_now)
    user_id: str | None = None
    # Server receipt time, used for accumulation windows.
    recorded_at: datetime = Field(default_factory=utc_now)


class StarRatingEvent(BaseModel):
    """An overall 1–5 star rating for a session's report."""

    model_config = _CAMEL

    session_id: str = Field(min_length=1)
    rating: int = Field(ge=1, le=5)
    timestamp: datetime = Field(default_factory=utc_now)
    user_id: str | None = None
    recorded_at: datetime = Field(default_factory=utc_now)


class SectionTally(BaseModel):
    """Positive/negative counts for one section within the current window."""

    model_config = _CAMEL

    section_id: str
    positive: int = 0
    negative: int = 0
    negative_users: int = Field(
        default=0, description="Distinct users behind the negative votes"
    )

    @property
    def total(self) -> int:
        return self.positive + self.negative

    @property
    def negative_ratio(self) -> float:
        return self.negative / self.total if self.total else 0.0


class FeedbackAggregate(BaseModel):
    """Point-in-time copy of a session's rolling feedback aggregate.

    ``cooldown_active`` is the trigger cooldown marker: ``True`` once a
    trigger has fired for the current accumulation window.
    """

    model_config = _CAMEL

    session_id: str
    sections: dict[str, SectionTally] = Field(default_factory=dict)
    ratings: list[int] = Field(default_factory=list)
    average_rating: float | None = None
    low_rating_users: int = 0
    window_started_at: datetime | None = None
    cooldown_active: bool = False
    active_trigger_id: str | None = None
    cooldown_since: datetime | None = None

    @property
    def total_positive(self) -> int:
        return sum(t.positive for t in self.sections.values())

    @property
    def total_negative(self) -> int:
        return sum(t.negative for t in self.sections.values())

    @property
    def low_rating_count(self) -> int:
        return sum(1 for r in self.ratings if r <= LOW_RATING_MAX)


class TriggerReason(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    NEGATIVE_SECTION_RATIO = "negative_section_ratio"
    LOW_AVERAGE_RATING = "low_average_rating"


class TriggerStatus(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    TRIGGERED = "triggered"
    COMPLETED = "completed"
    EXPIRED = "expired"
    FAILED = "failed"


class TriggerRecord(BaseModel):
    """One feedback-triggered re-analysis request."""

    model_config = _CAMEL

    trigger_id: str
    session_id: str
    triggered_at: datetime = Field(default_factory=utc_now)
    reason: TriggerReason
    details: dict[str, Any] = Field(default_factory=dict)
    status: TriggerStatus = TriggerStatus.TRIGGERED
    resolved_at: datetime | None = None


class TriggerOutcome(BaseModel):
    """Result of evaluating a session after a feedback event was recorded.

    ``skipped_reason`` explains an inactive outcome (``below_threshold``,
    ``cooldown``, ``session_not_stable``, ``session_unavailable``,
    ``engine_failure``) and is for logging only.
    """

    model_config = _CAMEL

    activated: bool
    details: TriggerRecord | None = None
    skipped_reason: str | None = None
