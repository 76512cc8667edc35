"""Custom exception hierarchy for PropertyLens.

All application exceptions inherit from :class:`PropertyLensError`, which
carries an optional ``provider_name`` so error handlers can identify which
external collaborator (e.g. "analysis_engine", "sqlite_feedback") caused
the failure.

    PropertyLensError  (base -- catch-all for any PropertyLens error)
    +-- UpstreamUnavailableError  (Analysis Engine unreachable / non-2xx)
    |   +-- AnalysisEngineError   (engine answered with an error status)
    +-- SessionNotFoundError      (no session anywhere; client side only)
    +-- TriggerEngineError        (engine rejected a feedback-triggered re-run)
    +-- ConfigurationError        (startup / invalid config)

The session read path never lets ``UpstreamUnavailableError`` escape while
any historical snapshot exists; the trigger path converts
``TriggerEngineError`` into an inactive outcome and releases its cooldown.
"""


class PropertyLensError(Exception):
    """Base exception for all PropertyLens errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  ``__str__`` prefixes the provider name in brackets, e.g.
    ``[analysis_engine] Connection refused``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Analysis Engine errors
# ---------------------------------------------------------------------------

class UpstreamUnavailableError(PropertyLensError):
    """Raised when the Analysis Engine cannot be reached or answers badly.

    Covers network errors, timeouts, non-success statuses and payloads that
    fail ingestion validation.  SessionCache catches this to fall back to
    stale cache or the session archive.
    """

    def __init__(
        self,
        message: str = "Analysis Engine is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class AnalysisEngineError(UpstreamUnavailableError):
    """Raised when the Analysis Engine responds with a non-success status."""

    def __init__(
        self,
        message: str = "Analysis Engine returned an error",
        provider_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._status_code = status_code

    @property
    def status_code(self) -> int | None:
        return self._status_code


class SessionNotFoundError(PropertyLensError):
    """Raised by client-side callers when a session does not exist anywhere."""

    def __init__(
        self,
        message: str = "Session not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class TriggerEngineError(PropertyLensError):
    """Raised when the Analysis Engine rejects a feedback-triggered re-run."""

    def __init__(
        self,
        message: str = "Analysis Engine rejected the re-run request",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(PropertyLensError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
