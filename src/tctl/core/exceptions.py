"""Custom Exceptions used throughout tctl."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Closed set of service error classes, mirroring the service's status codes."""

    INVALID_ARGUMENT = "InvalidArgument"
    NOT_FOUND = "NotFound"
    ALREADY_EXISTS = "AlreadyExists"
    PERMISSION_DENIED = "PermissionDenied"
    FAILED_PRECONDITION = "FailedPrecondition"
    UNAUTHENTICATED = "Unauthenticated"
    RESOURCE_EXHAUSTED = "ResourceExhausted"
    UNAVAILABLE = "Unavailable"
    DEADLINE_EXCEEDED = "DeadlineExceeded"
    INTERNAL = "Internal"
    UNKNOWN = "Unknown"

    @property
    def retryable(self) -> bool:
        """Return True if a request failing with this kind may succeed when re-sent."""
        return self in _RETRYABLE_KINDS


_RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.RESOURCE_EXHAUSTED,
        ErrorKind.UNAVAILABLE,
        ErrorKind.DEADLINE_EXCEEDED,
        ErrorKind.INTERNAL,
        ErrorKind.UNKNOWN,
    }
)


class ConfigError(Exception):
    """No configuration found, or a configuration value could not be used."""

    pass


class ServiceError(Exception):
    """A call to the workflow service failed."""

    def __init__(
        self, kind: ErrorKind, message: str, status_code: Optional[int] = None
    ) -> None:
        """Initialize Exception."""
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    def __str__(self) -> str:
        """Prefix the message with the error kind."""
        return f"{self.kind.value}: {super().__str__()}"


class InvalidRequest(ServiceError):
    """The service rejected the request (4xx)."""

    pass


class InvalidResponse(ServiceError):
    """The service failed to process the request, or could not be reached."""

    pass


class TargetSourceError(Exception):
    """The list of executions to reset could not be produced."""

    pass


class ResetPointError(Exception):
    """No usable reset anchor exists for a workflow execution."""

    kind = ErrorKind.FAILED_PRECONDITION


class NoTaskFoundError(ResetPointError):
    """The history holds no workflow task scheduled or completed event."""

    pass


class NotContinuedError(ResetPointError):
    """The run was not started by continue-as-new."""

    pass


class NoResetPointError(ResetPointError):
    """No auto-reset point qualifies for the bad binary checksum."""

    kind = ErrorKind.INVALID_ARGUMENT


class HistoryFetchError(Exception):
    """A page of event history could not be retrieved."""

    def __init__(self, workflow_id: str, run_id: str, cause: BaseException) -> None:
        """Initialize Exception."""
        super().__init__(
            f"failed to fetch history of workflow {workflow_id}, run {run_id}: {cause}"
        )
        self.workflow_id = workflow_id
        self.run_id = run_id
        self.kind = getattr(cause, "kind", ErrorKind.UNKNOWN)


def error_kind(exception: BaseException) -> ErrorKind:
    """Return the ErrorKind carried by an exception, UNKNOWN if it has none."""
    kind = getattr(exception, "kind", None)
    if isinstance(kind, ErrorKind):
        return kind
    return ErrorKind.UNKNOWN


def is_retryable(exception: BaseException) -> bool:
    """Classify a failure for the per-target retry loop."""
    return error_kind(exception).retryable
