"""Unit test configuration.

Unit tests in this directory:
- Do NOT require a running workflow service
- Should run quickly (< 5 seconds for the entire directory)
- Use FakeWorkflowService or mocks for the service
- Focus on testing logic in isolation

Run with: pytest tests/unit/ -x
"""

from __future__ import annotations

from typing import Optional, Sequence

import pytest

from tctl.client.service import (
    ExecutionDescription,
    HistoryEventView,
    HistoryPage,
    ResetPoint,
    ScanPage,
)
from tctl.core.constants import (
    EventType,
    ResetReapplyType,
    WorkflowExecutionStatus,
    WorkflowTaskFailedCause,
)
from tctl.core.exceptions import ErrorKind, ServiceError


class FakeWorkflowService:
    """In-memory WorkflowService that records every call.

    Errors queued in ``failures[method]`` are raised, oldest first, by the
    next calls of that method.
    """

    def __init__(self) -> None:
        self.histories: dict[tuple[str, str], list[HistoryEventView]] = {}
        self.current_runs: dict[str, str] = {}
        self.open_workflows: set[str] = set()
        self.reset_points: dict[tuple[str, str], tuple[ResetPoint, ...]] = {}
        self.scan_pages: list[ScanPage] = []
        self.failures: dict[str, list[BaseException]] = {}
        self.calls: list[tuple] = []
        self.resets: list[dict] = []

    # event builders
    @staticmethod
    def scheduled(event_id: int) -> HistoryEventView:
        return HistoryEventView(event_id, EventType.WORKFLOW_TASK_SCHEDULED)

    @staticmethod
    def started(event_id: int) -> HistoryEventView:
        return HistoryEventView(event_id, EventType.WORKFLOW_TASK_STARTED)

    @staticmethod
    def completed(event_id: int) -> HistoryEventView:
        return HistoryEventView(event_id, EventType.WORKFLOW_TASK_COMPLETED)

    @staticmethod
    def failed(
        event_id: int, cause: Optional[str] = None, message: Optional[str] = None
    ) -> HistoryEventView:
        return HistoryEventView(
            event_id,
            EventType.WORKFLOW_TASK_FAILED,
            failure_cause=WorkflowTaskFailedCause.parse(cause) if cause else None,
            failure_message=message,
        )

    @staticmethod
    def execution_started(
        event_id: int = 1, continued_from: Optional[str] = None
    ) -> HistoryEventView:
        return HistoryEventView(
            event_id,
            EventType.WORKFLOW_EXECUTION_STARTED,
            continued_from_run_id=continued_from,
        )

    def add_run(
        self,
        workflow_id: str,
        run_id: str,
        events: Sequence[HistoryEventView],
        current: bool = True,
        is_open: bool = False,
        reset_points: Sequence[ResetPoint] = (),
    ) -> None:
        self.histories[(workflow_id, run_id)] = list(events)
        self.reset_points[(workflow_id, run_id)] = tuple(reset_points)
        if current:
            self.current_runs[workflow_id] = run_id
            if is_open:
                self.open_workflows.add(workflow_id)

    def fail(self, method: str, *errors: BaseException) -> None:
        self.failures.setdefault(method, []).extend(errors)

    def _maybe_fail(self, method: str) -> None:
        pending = self.failures.get(method)
        if pending:
            raise pending.pop(0)

    def calls_to(self, method: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == method]

    async def describe_execution(
        self, workflow_id: str, run_id: str = ""
    ) -> ExecutionDescription:
        self.calls.append(("describe_execution", workflow_id, run_id))
        self._maybe_fail("describe_execution")
        if workflow_id not in self.current_runs:
            raise ServiceError(ErrorKind.NOT_FOUND, f"workflow {workflow_id} not found")
        current_run_id = self.current_runs[workflow_id]
        is_open = workflow_id in self.open_workflows
        return ExecutionDescription(
            workflow_id=workflow_id,
            current_run_id=current_run_id,
            status=(
                WorkflowExecutionStatus.RUNNING
                if is_open
                else WorkflowExecutionStatus.COMPLETED
            ),
            close_time=None if is_open else "2024-01-01T00:00:00Z",
            auto_reset_points=self.reset_points.get(
                (workflow_id, run_id or current_run_id), ()
            ),
        )

    async def get_history_page(
        self,
        workflow_id: str,
        run_id: str,
        page_token: Optional[str] = None,
        page_size: int = 1000,
    ) -> HistoryPage:
        self.calls.append(("get_history_page", workflow_id, run_id, page_token))
        self._maybe_fail("get_history_page")
        events = self.histories.get((workflow_id, run_id))
        if events is None:
            raise ServiceError(
                ErrorKind.NOT_FOUND, f"run {workflow_id}/{run_id} not found"
            )
        start = int(page_token) if page_token else 0
        end = start + page_size
        next_token = str(end) if end < len(events) else None
        return HistoryPage(events=events[start:end], next_page_token=next_token)

    async def scan_executions(
        self, query: str, page_token: Optional[str] = None, page_size: int = 1000
    ) -> ScanPage:
        self.calls.append(("scan_executions", query, page_token))
        self._maybe_fail("scan_executions")
        index = int(page_token) if page_token else 0
        page = self.scan_pages[index]
        next_token = str(index + 1) if index + 1 < len(self.scan_pages) else None
        return ScanPage(refs=page.refs, next_page_token=next_token)

    async def reset_execution(
        self,
        workflow_id: str,
        run_id: str,
        event_id: int,
        reason: str,
        request_id: str,
        reapply_type: ResetReapplyType,
    ) -> str:
        self.calls.append(("reset_execution", workflow_id, run_id, event_id))
        self._maybe_fail("reset_execution")
        self.resets.append(
            {
                "workflow_id": workflow_id,
                "run_id": run_id,
                "event_id": event_id,
                "reason": reason,
                "request_id": request_id,
                "reapply_type": reapply_type,
            }
        )
        return f"new-{workflow_id}-{len(self.resets)}"


@pytest.fixture
def service() -> FakeWorkflowService:
    """An empty in-memory workflow service."""
    return FakeWorkflowService()


@pytest.fixture
def write_lines(tmp_path):
    """Write lines to a file under tmp_path and return its path."""

    def _write(name: str, lines: Sequence[str]) -> str:
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n")
        return str(path)

    return _write
