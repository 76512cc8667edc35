"""Abstract base class for feedback and trigger persistence.

Defines the contract for durably appending section feedback, star ratings
and trigger records.  Implementations may use SQLite (local), PostgreSQL,
or any other storage backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from propertylens.models.feedback import (
    SectionFeedbackEvent,
    StarRatingEvent,
    TriggerRecord,
    TriggerStatus,
)


class IFeedbackProvider(ABC):
    """Contract for feedback event persistence services.

    Events are append-only: there is no update or delete operation.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indices if they don't exist.  Called at startup."""

    @abstractmethod
    async def add_section_feedback(self, event: SectionFeedbackEvent) -> None:
        """Append a section thumbs up/down event."""

    @abstractmethod
    async def add_star_rating(self, event: StarRatingEvent) -> None:
        """Append a star rating event."""

    @abstractmethod
    async def list_section_feedback(
        self,
        session_id: str | None = None,
        section_id: str | None = None,
        since: datetime | None = None,
    ) -> list[SectionFeedbackEvent]:
        """Return section feedback, oldest first, optionally filtered.

        Parameters
        ----------
        session_id:
            Restrict to one session.
        section_id:
            Restrict to one section (normally combined with *session_id*).
        since:
            Only events recorded at or after this instant.
        """

    @abstractmethod
    async def list_star_ratings(
        self,
        session_id: str | None = None,
        since: datetime | None = None,
    ) -> list[StarRatingEvent]:
        """Return star ratings, oldest first, optionally filtered."""

    @abstractmethod
    async def get_section_summary(self) -> dict[str, Any]:
        """Return global section-feedback totals.

        Returns
        -------
        dict
            ``total``, ``positive``, ``negative`` and ``by_section``
            (section ID → ``{positive, negative, total}``).
        """

    @abstractmethod
    async def add_trigger(self, record: TriggerRecord) -> None:
        """Persist a newly created trigger record."""

    @abstractmethod
    async def resolve_trigger(
        self,
        trigger_id: str,
        status: TriggerStatus,
        resolved_at: datetime,
    ) -> None:
        """Mark a trigger record as completed or expired."""

    @abstractmethod
    async def list_triggers(self, session_id: str | None = None) -> list[TriggerRecord]:
        """Return trigger records, oldest first, optionally for one session."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
