"""Domain models: session snapshots, cache entries, feedback and triggers."""

from propertylens.models.feedback import (
    FeedbackAggregate,
    Polarity,
    SectionFeedbackEvent,
    SectionTally,
    StarRatingEvent,
    TriggerOutcome,
    TriggerReason,
    TriggerRecord,
    TriggerStatus,
)
from propertylens.models.session import (
    CacheEntry,
    SessionSnapshot,
    SessionStatus,
    project_basic,
)

__all__ = [
    "CacheEntry",
    "FeedbackAggregate",
    "Polarity",
    "SectionFeedbackEvent",
    "SectionTally",
    "SessionSnapshot",
    "SessionStatus",
    "StarRatingEvent",
    "TriggerOutcome",
    "TriggerReason",
    "TriggerRecord",
    "TriggerStatus",
    "project_basic",
]
