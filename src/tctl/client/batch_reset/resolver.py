"""ResetPointResolver: find the run and event a workflow execution is reset to.

Each strategy is a single left-to-right scan (or a constant number of scans)
over a run's history, or a lookup of the service's auto-reset points:

- LastWorkflowTask: the last completed workflow task, or the event after the
  last scheduled one if scheduling follows the last completion.
- FirstWorkflowTask: the first completed workflow task, or the event after the
  first scheduled one if no task ever completed.
- LastContinuedAsNew: the LastWorkflowTask point of the run this run was
  continued from. Only one generation back is resolved.
- BadBinary: the first auto-reset point whose binary checksum is not the bad one.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Sequence

import structlog

from tctl.client.batch_reset.history import (
    HistoryCursorFactory,
    history_cursor_factory,
)
from tctl.client.batch_reset.models import ResetAnchor
from tctl.client.service import ResetPoint, WorkflowRef, WorkflowService
from tctl.core.constants import EventType, ResetStrategy
from tctl.core.exceptions import (
    NoResetPointError,
    NoTaskFoundError,
    NotContinuedError,
)

logger = structlog.get_logger(__name__)


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _expired(point: ResetPoint, now: datetime) -> bool:
    if not point.expire_time:
        return False
    expire_time = _parse_timestamp(point.expire_time)
    return expire_time is not None and now > expire_time


def select_reset_point(
    points: Sequence[ResetPoint],
    bad_binary_checksum: str,
    now: Optional[datetime] = None,
) -> Optional[ResetPoint]:
    """Return the first usable auto-reset point not created by the bad binary.

    Points are ordered most recent first. Points the service flags as not
    resettable, already expired, or without a completed workflow task are
    passed over.
    """
    now = now or datetime.now(timezone.utc)
    for point in points:
        if point.binary_checksum == bad_binary_checksum:
            continue
        if not point.resettable or _expired(point, now):
            continue
        if point.first_workflow_task_completed_id > 0:
            return point
    return None


class ResetPointResolver:
    """Computes a ResetAnchor for a workflow execution.

    Usage:
        resolver = ResetPointResolver(service, ResetStrategy.LAST_WORKFLOW_TASK)
        anchor = await resolver.resolve(WorkflowRef("wf-1", "run-A"))
    """

    def __init__(
        self,
        service: WorkflowService,
        strategy: ResetStrategy,
        bad_binary_checksum: Optional[str] = None,
        cursor_factory: Optional[HistoryCursorFactory] = None,
        page_size: int = 1000,
    ) -> None:
        """Initialize the resolver.

        Args:
            service: Service used for describe calls.
            strategy: Strategy applied to every target.
            bad_binary_checksum: Checksum to avoid, required for BadBinary.
            cursor_factory: Creates history cursors; defaults to cursors over service.
            page_size: Events per history page.
        """
        if strategy == ResetStrategy.BAD_BINARY and not bad_binary_checksum:
            raise ValueError("a bad binary checksum is required for BadBinary")
        self.service = service
        self.strategy = strategy
        self.bad_binary_checksum = bad_binary_checksum
        self.cursor_factory = cursor_factory or history_cursor_factory(service)
        self.page_size = page_size

    async def resolve(self, ref: WorkflowRef) -> ResetAnchor:
        """Resolve the anchor of ``ref``; ``ref.run_id`` must name a concrete run.

        Raises:
            NoTaskFoundError: no workflow task was scheduled or completed.
            NotContinuedError: LastContinuedAsNew on a run not continued from another.
            NoResetPointError: BadBinary found no usable auto-reset point.
            HistoryFetchError: a history page could not be fetched.
        """
        if self.strategy == ResetStrategy.LAST_WORKFLOW_TASK:
            anchor = await self._last_workflow_task(ref.workflow_id, ref.run_id)
        elif self.strategy == ResetStrategy.FIRST_WORKFLOW_TASK:
            anchor = await self._first_workflow_task(ref.workflow_id, ref.run_id)
        elif self.strategy == ResetStrategy.LAST_CONTINUED_AS_NEW:
            anchor = await self._last_continued_as_new(ref.workflow_id, ref.run_id)
        elif self.strategy == ResetStrategy.BAD_BINARY:
            anchor = await self._bad_binary(ref.workflow_id, ref.run_id)
        else:
            raise ValueError(f"reset type is not supported: {self.strategy}")

        logger.debug(
            "Resolved reset point",
            workflow_id=ref.workflow_id,
            run_id=ref.run_id,
            strategy=self.strategy.value,
            anchor_run_id=anchor.anchor_run_id,
            event_id=anchor.event_id,
        )
        return anchor

    async def _last_workflow_task(self, workflow_id: str, run_id: str) -> ResetAnchor:
        candidate = 0
        async for event in self.cursor_factory(workflow_id, run_id, self.page_size):
            if event.event_type == EventType.WORKFLOW_TASK_COMPLETED:
                candidate = event.event_id
            elif event.event_type == EventType.WORKFLOW_TASK_SCHEDULED:
                candidate = event.event_id + 1
        if candidate == 0:
            raise NoTaskFoundError(
                f"unable to find any scheduled or completed task in "
                f"workflow {workflow_id}, run {run_id}"
            )
        return ResetAnchor(anchor_run_id=run_id, event_id=candidate)

    async def _first_workflow_task(self, workflow_id: str, run_id: str) -> ResetAnchor:
        fallback = 0
        async for event in self.cursor_factory(workflow_id, run_id, self.page_size):
            if event.event_type == EventType.WORKFLOW_TASK_COMPLETED:
                return ResetAnchor(anchor_run_id=run_id, event_id=event.event_id)
            if event.event_type == EventType.WORKFLOW_TASK_SCHEDULED and fallback == 0:
                fallback = event.event_id + 1
        if fallback == 0:
            raise NoTaskFoundError(
                f"unable to find any scheduled or completed task in "
                f"workflow {workflow_id}, run {run_id}"
            )
        return ResetAnchor(anchor_run_id=run_id, event_id=fallback)

    async def _last_continued_as_new(
        self, workflow_id: str, run_id: str
    ) -> ResetAnchor:
        first_event = None
        async for event in self.cursor_factory(workflow_id, run_id, 1):
            first_event = event
            break
        if first_event is None or not first_event.continued_from_run_id:
            raise NotContinuedError(
                f"workflow {workflow_id}, run {run_id} was not continued from "
                "another run, cannot get the base run"
            )
        return await self._last_workflow_task(
            workflow_id, first_event.continued_from_run_id
        )

    async def _bad_binary(self, workflow_id: str, run_id: str) -> ResetAnchor:
        checksum = self.bad_binary_checksum
        if not checksum:
            raise ValueError("a bad binary checksum is required for BadBinary")
        description = await self.service.describe_execution(workflow_id, run_id)
        point = select_reset_point(description.auto_reset_points, checksum)
        if point is None:
            raise NoResetPointError(
                f"no auto-reset point with a completed workflow task outside binary "
                f"{checksum} for workflow {workflow_id}, run {run_id}"
            )
        return ResetAnchor(
            anchor_run_id=run_id, event_id=point.first_workflow_task_completed_id
        )


def explicit_anchor(ref: WorkflowRef, event_id: int) -> ResetAnchor:
    """Anchor a reset on ``ref``'s own run at a caller-chosen event."""
    return ResetAnchor(anchor_run_id=ref.run_id, event_id=event_id)
