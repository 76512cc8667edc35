"""Session snapshot models.

A *session* is one analysis run owned by the Analysis Engine.  PropertyLens
never writes session content; it only validates, normalises and caches the
snapshots the engine returns.  Snapshots therefore stay plain ``dict``
payloads end to end, and :class:`SessionSnapshot` is used purely as an
ingestion check over the handful of fields the coordinator reads.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SessionStatus(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Lifecycle states reported by the Analysis Engine.

    pending → analyzing → finalizing → completed | degraded | error
    """

    PENDING = "pending"
    ANALYZING = "analyzing"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    ERROR = "error"
    DEGRADED = "degraded"


TERMINAL_STATUSES: frozenset[str] = frozenset(
    {SessionStatus.COMPLETED.value, SessionStatus.DEGRADED.value, SessionStatus.ERROR.value}
)
RUNNING_STATUSES: frozenset[str] = frozenset(
    {SessionStatus.PENDING.value, SessionStatus.ANALYZING.value, SessionStatus.FINALIZING.value}
)
# Statuses for which a report is expected to be present.
REPORT_STATUSES: frozenset[str] = frozenset(
    {SessionStatus.COMPLETED.value, SessionStatus.DEGRADED.value}
)

BASIC_PROPERTY_FIELDS: tuple[str, ...] = ("address", "city", "province", "price", "propertyType")


class SessionSnapshot(BaseModel):
    """Validated view over the fields of an engine snapshot the core relies on.

    Unknown fields are allowed and ignored; the original ``dict`` is what
    gets cached and served.
    """

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    session_id: str = Field(alias="sessionId", min_length=1)
    status: str = Field(min_length=1)
    completed_steps: int | None = Field(default=None, alias="completedSteps", ge=0)
    total_steps: int | None = Field(default=None, alias="totalSteps", ge=0)

    @model_validator(mode="after")
    def _steps_consistent(self) -> SessionSnapshot:
        if (
            self.completed_steps is not None
            and self.total_steps is not None
            and self.completed_steps > self.total_steps
        ):
            msg = (
                f"completedSteps ({self.completed_steps}) exceeds "
                f"totalSteps ({self.total_steps})"
            )
            raise ValueError(msg)
        return self


@dataclass(frozen=True)
class CacheEntry:
    """A full session snapshot plus the monotonic time it was captured.

    Entries are only ever replaced whole, never patched.
    """

    snapshot: dict[str, Any]
    captured_at: float

    @property
    def status(self) -> str:
        return str(self.snapshot.get("status", ""))

    def age(self, now: float) -> float:
        return now - self.captured_at


def project_basic(snapshot: dict[str, Any]) -> dict[str, Any]:
    """Return the restricted summary served for ``basic=true`` reads.

    Keys: ``sessionId, status, property.{address,city,province,price,
    propertyType}, completedSteps, totalSteps, createdAt``.
    """
    prop = snapshot.get("property")
    if not isinstance(prop, dict):
        prop = {}
    return {
        "sessionId": snapshot.get("sessionId"),
        "status": snapshot.get("status"),
        "property": {field: prop.get(field) for field in BASIC_PROPERTY_FIELDS},
        "completedSteps": snapshot.get("completedSteps"),
        "totalSteps": snapshot.get("totalSteps"),
        "createdAt": snapshot.get("createdAt"),
    }
