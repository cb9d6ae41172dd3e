"""Constants declared for event types, statuses and reset options throughout tctl."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

import temporalio.api.enums.v1

# Substring of a workflow task failure message that marks nondeterminism.
NONDETERMINISTIC_MESSAGE = "nondeterministic"


def _fold(name: str) -> str:
    return name.replace("_", "").lower()


def _wire_names(enum_type: Any, prefix: str) -> Dict[str, str]:
    """Map both spellings of every member of a service enum to its canonical name.

    The service may send ``EVENT_TYPE_WORKFLOW_TASK_COMPLETED`` or the short
    ``WorkflowTaskCompleted``; both map to the former.
    """
    names: Dict[str, str] = {}
    for name in enum_type.keys():
        names[name] = name
        names[_fold(name[len(prefix) :])] = name
    return names


def _canonical_wire_name(names: Dict[str, str], value: str) -> Optional[str]:
    """Return the canonical name of a service enum value, None if unknown."""
    if not value:
        return None
    return names.get(value) or names.get(_fold(value))


def _parse_member(
    enum_cls: Any, names: Dict[str, str], value: str, default: Any
) -> Any:
    # members outside the subset tctl models fall back to the default
    canonical = _canonical_wire_name(names, value)
    if canonical is None:
        return default
    try:
        return enum_cls(canonical)
    except ValueError:
        return default


_EVENT_TYPE_NAMES = _wire_names(temporalio.api.enums.v1.EventType, "EVENT_TYPE_")
_FAILED_CAUSE_NAMES = _wire_names(
    temporalio.api.enums.v1.WorkflowTaskFailedCause, "WORKFLOW_TASK_FAILED_CAUSE_"
)
_EXECUTION_STATUS_NAMES = _wire_names(
    temporalio.api.enums.v1.WorkflowExecutionStatus, "WORKFLOW_EXECUTION_STATUS_"
)


class EventType(str, Enum):
    """History event types that the reset engine inspects.

    Values are the service's canonical enum names. Any other event type is
    parsed as UNSPECIFIED.
    """

    UNSPECIFIED = "EVENT_TYPE_UNSPECIFIED"
    WORKFLOW_EXECUTION_STARTED = "EVENT_TYPE_WORKFLOW_EXECUTION_STARTED"
    WORKFLOW_TASK_SCHEDULED = "EVENT_TYPE_WORKFLOW_TASK_SCHEDULED"
    WORKFLOW_TASK_STARTED = "EVENT_TYPE_WORKFLOW_TASK_STARTED"
    WORKFLOW_TASK_COMPLETED = "EVENT_TYPE_WORKFLOW_TASK_COMPLETED"
    WORKFLOW_TASK_TIMED_OUT = "EVENT_TYPE_WORKFLOW_TASK_TIMED_OUT"
    WORKFLOW_TASK_FAILED = "EVENT_TYPE_WORKFLOW_TASK_FAILED"
    WORKFLOW_EXECUTION_CONTINUED_AS_NEW = (
        "EVENT_TYPE_WORKFLOW_EXECUTION_CONTINUED_AS_NEW"
    )

    @classmethod
    def parse(cls, value: str) -> "EventType":
        """Parse either the canonical name or the short CamelCase form."""
        return _parse_member(cls, _EVENT_TYPE_NAMES, value, cls.UNSPECIFIED)


class WorkflowTaskFailedCause(str, Enum):
    """Workflow task failure causes the safety checks look at."""

    UNSPECIFIED = "WORKFLOW_TASK_FAILED_CAUSE_UNSPECIFIED"
    WORKFLOW_WORKER_UNHANDLED_FAILURE = (
        "WORKFLOW_TASK_FAILED_CAUSE_WORKFLOW_WORKER_UNHANDLED_FAILURE"
    )

    @classmethod
    def parse(cls, value: str) -> "WorkflowTaskFailedCause":
        """Parse either the canonical name or the short CamelCase form."""
        return _parse_member(cls, _FAILED_CAUSE_NAMES, value, cls.UNSPECIFIED)


class WorkflowExecutionStatus(str, Enum):
    """Statuses used for Workflow Executions."""

    UNSPECIFIED = "WORKFLOW_EXECUTION_STATUS_UNSPECIFIED"
    RUNNING = "WORKFLOW_EXECUTION_STATUS_RUNNING"
    COMPLETED = "WORKFLOW_EXECUTION_STATUS_COMPLETED"
    FAILED = "WORKFLOW_EXECUTION_STATUS_FAILED"
    CANCELED = "WORKFLOW_EXECUTION_STATUS_CANCELED"
    TERMINATED = "WORKFLOW_EXECUTION_STATUS_TERMINATED"
    CONTINUED_AS_NEW = "WORKFLOW_EXECUTION_STATUS_CONTINUED_AS_NEW"
    TIMED_OUT = "WORKFLOW_EXECUTION_STATUS_TIMED_OUT"

    @classmethod
    def parse(cls, value: str) -> "WorkflowExecutionStatus":
        """Parse either the canonical name or the short CamelCase form."""
        return _parse_member(cls, _EXECUTION_STATUS_NAMES, value, cls.UNSPECIFIED)


class ResetStrategy(str, Enum):
    """Where in a workflow's history a batch reset rewinds to."""

    LAST_WORKFLOW_TASK = "LastWorkflowTask"
    FIRST_WORKFLOW_TASK = "FirstWorkflowTask"
    LAST_CONTINUED_AS_NEW = "LastContinuedAsNew"
    BAD_BINARY = "BadBinary"

    @classmethod
    def names(cls) -> list[str]:
        """Return the user-facing names accepted on the command line."""
        return [member.value for member in cls]


class ResetReapplyType(str, Enum):
    """Which events after the reset point are reapplied to the new run."""

    ALL = "All"
    SIGNAL = "Signal"
    NONE = "None"

    @property
    def wire_name(self) -> str:
        """Enum name expected by the service."""
        return _REAPPLY_WIRE_NAMES[self]

    @classmethod
    def names(cls) -> list[str]:
        """Return the user-facing names accepted on the command line."""
        return [member.value for member in cls]


_REAPPLY_WIRE_NAMES = {
    ResetReapplyType.ALL: "RESET_REAPPLY_TYPE_ALL_ELIGIBLE",
    ResetReapplyType.SIGNAL: "RESET_REAPPLY_TYPE_SIGNAL",
    ResetReapplyType.NONE: "RESET_REAPPLY_TYPE_NONE",
}
