"""Utility modules for PropertyLens.

- **concurrency** -- ``RequestDeduplicator`` (one in-flight fetch per key)
  and ``KeyedLock`` (one asyncio lock per session).
- **errors** -- Domain exception hierarchy rooted at PropertyLensError.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **text_normalizer** -- Spanish mojibake repair for property payloads.
"""

from propertylens.utils.concurrency import KeyedLock, RequestDeduplicator
from propertylens.utils.errors import (
    AnalysisEngineError,
    ConfigurationError,
    PropertyLensError,
    SessionNotFoundError,
    TriggerEngineError,
    UpstreamUnavailableError,
)
from propertylens.utils.logging import configure_logging, get_logger
from propertylens.utils.text_normalizer import fix_property_characters, fix_spanish_characters

__all__ = [
    "AnalysisEngineError",
    "ConfigurationError",
    "KeyedLock",
    "PropertyLensError",
    "RequestDeduplicator",
    "SessionNotFoundError",
    "TriggerEngineError",
    "UpstreamUnavailableError",
    "configure_logging",
    "fix_property_characters",
    "fix_spanish_characters",
    "get_logger",
]
