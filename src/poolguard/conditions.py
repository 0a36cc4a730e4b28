"""Status conditions reported on the owning machine pool.

Conditions follow the Cluster API convention: a named type, a status of
"True"/"False"/"Unknown", and for False a machine-readable reason, a
severity and a human-readable message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol

LIFECYCLE_HOOK_READY = "LifecycleHookReady"

LIFECYCLE_HOOK_CREATION_FAILED = "LifecycleHookCreationFailed"
LIFECYCLE_HOOK_UPDATE_FAILED = "LifecycleHookUpdateFailed"
LIFECYCLE_HOOK_DELETION_FAILED = "LifecycleHookDeletionFailed"


class ConditionStatus(str, Enum):
    """Condition status values."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ConditionSeverity(str, Enum):
    """Severity of a False condition."""

    ERROR = "Error"
    WARNING = "Warning"
    INFO = "Info"
    NONE = ""


@dataclass(frozen=True)
class Condition:
    """A single status condition."""

    type: str
    status: ConditionStatus
    reason: str = ""
    severity: ConditionSeverity = ConditionSeverity.NONE
    message: str = ""
    last_transition_time: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, str]:
        """Serialize in the shape used by resource status."""
        data = {
            "type": self.type,
            "status": self.status.value,
            "lastTransitionTime": self.last_transition_time.isoformat().replace("+00:00", "Z"),
        }
        if self.reason:
            data["reason"] = self.reason
        if self.severity != ConditionSeverity.NONE:
            data["severity"] = self.severity.value
        if self.message:
            data["message"] = self.message
        return data


class ConditionReporter(Protocol):
    """Receives condition updates for the owning resource."""

    def mark_true(self, condition_type: str) -> None: ...

    def mark_false(
        self,
        condition_type: str,
        reason: str,
        severity: ConditionSeverity,
        message: str,
    ) -> None: ...


class ConditionSet:
    """In-memory condition store for one resource.

    Keeps the current condition per type and every update in order, so
    callers can see the outcome of each step of a reconcile.
    """

    def __init__(self) -> None:
        self._conditions: dict[str, Condition] = {}
        self._history: list[Condition] = []

    def _set(self, condition: Condition) -> None:
        current = self._conditions.get(condition.type)
        if (
            current is not None
            and current.status == condition.status
            and current.reason == condition.reason
        ):
            # Status unchanged: keep the original transition time
            condition = Condition(
                type=condition.type,
                status=condition.status,
                reason=condition.reason,
                severity=condition.severity,
                message=condition.message,
                last_transition_time=current.last_transition_time,
            )
        self._conditions[condition.type] = condition
        self._history.append(condition)

    def mark_true(self, condition_type: str) -> None:
        self._set(Condition(type=condition_type, status=ConditionStatus.TRUE))

    def mark_false(
        self,
        condition_type: str,
        reason: str,
        severity: ConditionSeverity,
        message: str,
    ) -> None:
        self._set(
            Condition(
                type=condition_type,
                status=ConditionStatus.FALSE,
                reason=reason,
                severity=severity,
                message=message,
            )
        )

    def get(self, condition_type: str) -> Condition | None:
        return self._conditions.get(condition_type)

    def is_true(self, condition_type: str) -> bool:
        condition = self._conditions.get(condition_type)
        return condition is not None and condition.status == ConditionStatus.TRUE

    @property
    def history(self) -> list[Condition]:
        """Every update in the order it was made."""
        return list(self._history)

    def to_list(self) -> list[dict[str, str]]:
        return [self._conditions[key].to_dict() for key in sorted(self._conditions)]
