"""WorkflowServiceClient: RPC access to the workflow service for the reset engine.

This module consolidates the four service calls the reset engine needs into a
single explicitly constructed handle, providing:
- Typed response objects decoded from the service's JSON payloads
- Consistent session management
- A protocol the engine depends on, so tests can substitute fakes
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol
from urllib.parse import quote

import aiohttp
import structlog

from tctl.core.configuration import TctlConfig
from tctl.core.constants import (
    EventType,
    ResetReapplyType,
    WorkflowExecutionStatus,
    WorkflowTaskFailedCause,
)
from tctl.core.requester import Requester

logger = structlog.get_logger(__name__)


def _to_int(value: Any) -> int:
    # 64 bit ids are encoded as JSON strings
    if value in (None, ""):
        return 0
    return int(value)


# ──────────────────────────────────────────────────────────────────────────────
# Response Dataclasses
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class WorkflowRef:
    """Identifies one workflow execution; an empty run_id means the current run."""

    workflow_id: str
    run_id: str = ""

    def __str__(self) -> str:
        return f"{self.workflow_id}/{self.run_id or '<current>'}"


@dataclass(frozen=True)
class HistoryEventView:
    """The projection of a history event that reset resolution needs."""

    event_id: int
    event_type: EventType
    scheduled_event_id: Optional[int] = None
    started_event_id: Optional[int] = None
    failure_cause: Optional[WorkflowTaskFailedCause] = None
    failure_message: Optional[str] = None
    continued_from_run_id: Optional[str] = None

    @classmethod
    def from_json(cls, event: dict) -> "HistoryEventView":
        """Decode one event of a GetWorkflowExecutionHistory response."""
        event_type = EventType.parse(event.get("eventType", ""))
        scheduled_event_id = started_event_id = None
        failure_cause = failure_message = continued_from_run_id = None

        if event_type == EventType.WORKFLOW_TASK_COMPLETED:
            attrs = event.get("workflowTaskCompletedEventAttributes") or {}
            scheduled_event_id = _to_int(attrs.get("scheduledEventId"))
            started_event_id = _to_int(attrs.get("startedEventId"))
        elif event_type == EventType.WORKFLOW_TASK_FAILED:
            attrs = event.get("workflowTaskFailedEventAttributes") or {}
            scheduled_event_id = _to_int(attrs.get("scheduledEventId"))
            started_event_id = _to_int(attrs.get("startedEventId"))
            failure_cause = WorkflowTaskFailedCause.parse(attrs.get("cause", ""))
            failure_message = (attrs.get("failure") or {}).get("message")
        elif event_type == EventType.WORKFLOW_EXECUTION_STARTED:
            attrs = event.get("workflowExecutionStartedEventAttributes") or {}
            continued_from_run_id = attrs.get("continuedExecutionRunId") or None

        return cls(
            event_id=_to_int(event.get("eventId")),
            event_type=event_type,
            scheduled_event_id=scheduled_event_id,
            started_event_id=started_event_id,
            failure_cause=failure_cause,
            failure_message=failure_message,
            continued_from_run_id=continued_from_run_id,
        )


@dataclass(frozen=True)
class ResetPoint:
    """An auto-reset point maintained by the service for a worker binary."""

    binary_checksum: str
    first_workflow_task_completed_id: int
    run_id: str = ""
    resettable: bool = True
    expire_time: Optional[str] = None

    @classmethod
    def from_json(cls, point: dict) -> "ResetPoint":
        """Decode one entry of ``autoResetPoints.points``."""
        return cls(
            binary_checksum=point.get("binaryChecksum", ""),
            first_workflow_task_completed_id=_to_int(
                point.get("firstWorkflowTaskCompletedId")
            ),
            run_id=point.get("runId", ""),
            resettable=bool(point.get("resettable", True)),
            expire_time=point.get("expireTime"),
        )


@dataclass(frozen=True)
class ExecutionDescription:
    """Response from describing a workflow execution."""

    workflow_id: str
    current_run_id: str
    status: WorkflowExecutionStatus = WorkflowExecutionStatus.UNSPECIFIED
    close_time: Optional[str] = None
    auto_reset_points: tuple[ResetPoint, ...] = field(default_factory=tuple)

    @property
    def is_open(self) -> bool:
        """True while the run is still executing."""
        return self.status == WorkflowExecutionStatus.RUNNING or not self.close_time

    @classmethod
    def from_json(cls, response: dict) -> "ExecutionDescription":
        """Decode a DescribeWorkflowExecution response."""
        info = response.get("workflowExecutionInfo") or {}
        execution = info.get("execution") or {}
        points = (info.get("autoResetPoints") or {}).get("points") or []
        return cls(
            workflow_id=execution.get("workflowId", ""),
            current_run_id=execution.get("runId", ""),
            status=WorkflowExecutionStatus.parse(info.get("status", "")),
            close_time=info.get("closeTime"),
            auto_reset_points=tuple(ResetPoint.from_json(p) for p in points),
        )


@dataclass(frozen=True)
class HistoryPage:
    """One page of a run's event history."""

    events: list[HistoryEventView]
    next_page_token: Optional[str] = None


@dataclass(frozen=True)
class ScanPage:
    """One page of executions matching a visibility query."""

    refs: list[WorkflowRef]
    next_page_token: Optional[str] = None


# ──────────────────────────────────────────────────────────────────────────────
# Protocol
# ──────────────────────────────────────────────────────────────────────────────


class WorkflowService(Protocol):
    """The protocol class for the RPC capabilities the reset engine consumes."""

    @abstractmethod
    async def describe_execution(
        self, workflow_id: str, run_id: str = ""
    ) -> ExecutionDescription:
        """Describe an execution; an empty run_id describes the current run."""
        raise NotImplementedError

    @abstractmethod
    async def get_history_page(
        self,
        workflow_id: str,
        run_id: str,
        page_token: Optional[str] = None,
        page_size: int = 1000,
    ) -> HistoryPage:
        """Fetch one page of a run's history."""
        raise NotImplementedError

    @abstractmethod
    async def scan_executions(
        self, query: str, page_token: Optional[str] = None, page_size: int = 1000
    ) -> ScanPage:
        """Fetch one page of executions matching a visibility query."""
        raise NotImplementedError

    @abstractmethod
    async def reset_execution(
        self,
        workflow_id: str,
        run_id: str,
        event_id: int,
        reason: str,
        request_id: str,
        reapply_type: ResetReapplyType,
    ) -> str:
        """Reset a run to an event; returns the id of the new run."""
        raise NotImplementedError


# ──────────────────────────────────────────────────────────────────────────────
# WorkflowServiceClient
# ──────────────────────────────────────────────────────────────────────────────


class WorkflowServiceClient:
    """Workflow service access over the service's HTTP API.

    Usage:
        async with WorkflowServiceClient(requester, namespace="default") as client:
            description = await client.describe_execution("wf-1")

    Without the context manager a session is opened on the first call and
    released by ``close``.
    """

    def __init__(
        self,
        requester: Requester,
        namespace: str,
        tenacious: bool = False,
    ) -> None:
        """Initialize the client.

        Args:
            requester: The Requester instance for HTTP communication.
            namespace: Namespace every call is scoped to.
            tenacious: Whether the requester retries transient failures itself.
                The batch engine owns its retry policy and leaves this off.
        """
        self.requester = requester
        self.namespace = namespace
        self.tenacious = tenacious
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_defaults(
        cls, config: Optional[TctlConfig] = None, tenacious: bool = False
    ) -> "WorkflowServiceClient":
        """Build a client from config values."""
        if config is None:
            config = TctlConfig()
        return cls(
            requester=Requester.from_defaults(config),
            namespace=config.get("http", "namespace"),
            tenacious=tenacious,
        )

    async def __aenter__(self) -> "WorkflowServiceClient":
        """Async context manager entry - creates session."""
        self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        """Async context manager exit - closes the session."""
        await self.close()

    async def close(self) -> None:
        """Close the session, if one is open."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _request(
        self, app_route: str, message: dict[str, Any], request_type: str
    ) -> Any:
        session = await self._ensure_session()
        _, content = await self.requester.send_request_async(
            session=session,
            app_route=app_route,
            message=message,
            request_type=request_type,
            tenacious=self.tenacious,
        )
        return content if isinstance(content, dict) else {}

    def _workflow_route(self, workflow_id: str, suffix: str = "") -> str:
        return (
            f"/namespaces/{quote(self.namespace, safe='')}"
            f"/workflows/{quote(workflow_id, safe='')}{suffix}"
        )

    async def describe_execution(
        self, workflow_id: str, run_id: str = ""
    ) -> ExecutionDescription:
        """Describe an execution; an empty run_id describes the current run."""
        response = await self._request(
            app_route=self._workflow_route(workflow_id),
            message={"execution.runId": run_id or None},
            request_type="get",
        )
        return ExecutionDescription.from_json(response)

    async def get_history_page(
        self,
        workflow_id: str,
        run_id: str,
        page_token: Optional[str] = None,
        page_size: int = 1000,
    ) -> HistoryPage:
        """Fetch one page of a run's history."""
        response = await self._request(
            app_route=self._workflow_route(workflow_id, "/history"),
            message={
                "execution.runId": run_id or None,
                "maximumPageSize": page_size,
                "nextPageToken": page_token or None,
            },
            request_type="get",
        )
        events = (response.get("history") or {}).get("events") or []
        return HistoryPage(
            events=[HistoryEventView.from_json(e) for e in events],
            next_page_token=response.get("nextPageToken") or None,
        )

    async def scan_executions(
        self, query: str, page_token: Optional[str] = None, page_size: int = 1000
    ) -> ScanPage:
        """Fetch one page of executions matching a visibility query."""
        response = await self._request(
            app_route=f"/namespaces/{quote(self.namespace, safe='')}/workflows",
            message={
                "query": query,
                "pageSize": page_size,
                "nextPageToken": page_token or None,
            },
            request_type="get",
        )
        refs = []
        for info in response.get("executions") or []:
            execution = info.get("execution") or {}
            refs.append(
                WorkflowRef(
                    workflow_id=execution.get("workflowId", ""),
                    run_id=execution.get("runId", ""),
                )
            )
        return ScanPage(
            refs=refs, next_page_token=response.get("nextPageToken") or None
        )

    async def reset_execution(
        self,
        workflow_id: str,
        run_id: str,
        event_id: int,
        reason: str,
        request_id: str,
        reapply_type: ResetReapplyType,
    ) -> str:
        """Reset a run to an event; returns the id of the new run."""
        logger.debug(
            "Resetting workflow execution",
            workflow_id=workflow_id,
            run_id=run_id,
            event_id=event_id,
        )
        response = await self._request(
            app_route=self._workflow_route(workflow_id, "/reset"),
            message={
                "namespace": self.namespace,
                "workflowExecution": {"workflowId": workflow_id, "runId": run_id},
                "reason": reason,
                "workflowTaskFinishEventId": str(event_id),
                "requestId": request_id,
                "resetReapplyType": reapply_type.wire_name,
            },
            request_type="post",
        )
        return response.get("runId", "")
