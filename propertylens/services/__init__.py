"""Business-logic services: session caching, feedback aggregation, triggers."""

from propertylens.services.feedback_aggregator import FeedbackAggregator
from propertylens.services.session_cache import SessionCache, SessionLookup, SnapshotSource
from propertylens.services.trigger_evaluator import TriggerEvaluator, TriggerPolicy
from propertylens.services.ttl_policy import ttl_for_status

__all__ = [
    "FeedbackAggregator",
    "SessionCache",
    "SessionLookup",
    "SnapshotSource",
    "TriggerEvaluator",
    "TriggerPolicy",
    "ttl_for_status",
]
