"""Status-dependent freshness windows for cached session snapshots.

Sessions that are actively progressing must reflect new steps quickly;
finished sessions are immutable in practice and can be cached longer to
absorb polling load.
"""

from __future__ import annotations

from collections.abc import Mapping

from propertylens.models.session import SessionStatus

DEFAULT_TTL_SECONDS: float = 5.0

STATUS_TTL_SECONDS: dict[str, float] = {
    SessionStatus.PENDING.value: 1.0,
    SessionStatus.ANALYZING.value: 3.0,
    SessionStatus.COMPLETED.value: 30.0,
    SessionStatus.DEGRADED.value: 30.0,
}


def ttl_for_status(
    status: str | None,
    overrides: Mapping[str, float] | None = None,
) -> float:
    """Return the freshness window in seconds for a snapshot in *status*.

    ``overrides`` (typically the ``cache.ttl_seconds`` table from
    ``config.yaml``) takes precedence over the built-in table; its
    ``default`` key replaces the fallback for unknown statuses.
    """
    table: Mapping[str, float] = STATUS_TTL_SECONDS
    fallback = DEFAULT_TTL_SECONDS
    if overrides:
        table = {**STATUS_TTL_SECONDS, **overrides}
        fallback = float(overrides.get("default", DEFAULT_TTL_SECONDS))
    if status is None:
        return fallback
    return float(table.get(status, fallback))


def is_fresh(
    age_seconds: float,
    status: str | None,
    overrides: Mapping[str, float] | None = None,
) -> bool:
    """``True`` while a snapshot aged *age_seconds* may be served without revalidation."""
    return age_seconds < ttl_for_status(status, overrides)
