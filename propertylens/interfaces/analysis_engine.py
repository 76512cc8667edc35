"""Abstract base class for the Analysis Engine.

The Analysis Engine is the external process that runs property analyses
and is the sole writer of session content.  PropertyLens consumes two of
its operations: reading the authoritative snapshot of a session and
(re)starting a run.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class IAnalysisEngine(ABC):
    """Contract for the Analysis Engine's JSON-over-HTTP surface."""

    @abstractmethod
    async def fetch_session(self, session_id: str) -> dict[str, Any]:
        """Return the authoritative snapshot for *session_id*.

        Raises
        ------
        UpstreamUnavailableError
            On network error, timeout, non-success status or a payload that
            is not a JSON object.
        """

    @abstractmethod
    async def start_analysis(
        self,
        session_id: str,
        user_context: str | None = None,
    ) -> dict[str, Any]:
        """Ask the engine to start a fresh run for *session_id*.

        Parameters
        ----------
        session_id:
            Session to (re)analyse.
        user_context:
            Optional free-text explanation forwarded to the engine, e.g. why
            a feedback trigger requested the run.

        Returns
        -------
        dict
            The engine's JSON response body.

        Raises
        ------
        UpstreamUnavailableError
            When the engine is unreachable or rejects the request.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
