"""Pydantic request/response schemas for the PropertyLens coordinator API.

# ─── HOW SCHEMAS WORK (Junior Developer Guide) ────────────────────────
#
# These models define the *shape* of every HTTP request and response body.
# The browser client speaks camelCase JSON (``sessionId``), so every model
# uses ``alias_generator=to_camel``: Python code reads ``body.session_id``
# while the wire format stays ``sessionId``.  FastAPI serialises
# response_model output by alias, so responses come out camelCase too.
#
# Invalid request bodies are answered with 400 (not FastAPI's default
# 422) by the handler in middleware.py, using FIELD_ERROR_MESSAGES below
# for the human-readable ``error`` string.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from propertylens.models.feedback import Polarity

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)

# Request field alias → message returned in the 400 ``error`` field.
FIELD_ERROR_MESSAGES: dict[str, str] = {
    "sessionId": "sessionId is required",
    "sectionId": "sectionId is required",
    "feedback": 'feedback must be "positive" or "negative"',
    "overallRating": "overallRating must be 1, 2, 3, 4, or 5",
    "timestamp": "timestamp must be an ISO 8601 date-time",
    "userId": "userId must be a string",
    "userContext": "userContext must be a string",
}


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class SectionFeedbackRequest(BaseModel):
    """Thumbs up/down on one report section."""

    model_config = _CAMEL

    session_id: str = Field(..., min_length=1)
    section_id: str = Field(..., min_length=1)
    feedback: Polarity
    timestamp: datetime | None = None
    user_id: str | None = None


class StarRatingRequest(BaseModel):
    """Overall 1–5 star rating for a session's report."""

    model_config = _CAMEL

    session_id: str = Field(..., min_length=1)
    overall_rating: Annotated[int, Field(strict=True, ge=1, le=5)]
    timestamp: datetime | None = None
    user_id: str | None = None


class StartAnalysisRequest(BaseModel):
    """Optional body for a manual (re)start of a session's analysis."""

    model_config = _CAMEL

    user_context: str | None = Field(default=None, max_length=2000)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class SectionFeedbackData(BaseModel):
    model_config = _CAMEL

    session_id: str
    section_id: str
    feedback: Polarity
    timestamp: datetime
    trigger_activated: bool
    trigger_details: dict[str, Any] | None = None


class StarRatingData(BaseModel):
    model_config = _CAMEL

    session_id: str
    overall_rating: int
    timestamp: datetime
    trigger_activated: bool
    trigger_details: dict[str, Any] | None = None


class SectionFeedbackResponse(BaseModel):
    """Response after submitting section feedback."""

    success: bool = True
    message: str
    data: SectionFeedbackData


class StarRatingResponse(BaseModel):
    """Response after submitting a star rating."""

    success: bool = True
    message: str
    data: StarRatingData


class FeedbackQueryResponse(BaseModel):
    """Generic ``{success, data}`` envelope for the feedback read endpoints."""

    success: bool = True
    message: str | None = None
    data: dict[str, Any] | None = None


class HealthResponse(BaseModel):
    """Application health check response."""

    model_config = _CAMEL

    status: str
    version: str
    cache_entries: int
    in_flight_fetches: int
    tracked_feedback_sessions: int


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
