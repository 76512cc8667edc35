"""Feedback persistence providers.

SQLiteFeedbackProvider stores section thumbs, star ratings and trigger
records in data/feedback.db.  The stored events are used to:
    1. Rebuild per-session aggregates after a restart
    2. Serve the global feedback statistics endpoints
    3. Keep an audit trail of every feedback-triggered re-analysis
"""

from propertylens.providers.feedback.sqlite_feedback_provider import SQLiteFeedbackProvider

__all__ = ["SQLiteFeedbackProvider"]
