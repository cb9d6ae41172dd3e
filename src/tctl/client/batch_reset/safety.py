"""SafetyFilter: pre-flight checks that may skip a target before it is reset."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import structlog

from tctl.client.batch_reset.history import (
    HistoryCursorFactory,
    history_cursor_factory,
)
from tctl.client.batch_reset.models import BatchResetConfig
from tctl.client.service import HistoryEventView, WorkflowRef, WorkflowService
from tctl.core.constants import (
    NONDETERMINISTIC_MESSAGE,
    EventType,
    WorkflowTaskFailedCause,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FilterDecision:
    """Result of the safety checks for one target.

    Attributes:
        ref: The target with an empty run id replaced by the current run id.
        current_run_id: Current run of the workflow id.
        skip_reason: Why the target is skipped, None if it passes.
    """

    ref: WorkflowRef
    current_run_id: str
    skip_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.skip_reason is not None


def is_nondeterministic_failure(event: HistoryEventView) -> bool:
    """True if a workflow task failed event reports a nondeterministic failure."""
    return (
        event.failure_cause == WorkflowTaskFailedCause.WORKFLOW_WORKER_UNHANDLED_FAILURE
        or NONDETERMINISTIC_MESSAGE in (event.failure_message or "")
    )


class SafetyFilter:
    """Applies the enabled skip checks to a target using one describe call.

    The checks are independent; a target is skipped if any enabled check
    rejects it:

    - skip_if_base_not_current: the given run is not the current run.
    - skip_if_open: the current run has not closed.
    - non_deterministic_only: the run's last workflow task did not fail with
      a nondeterministic error (requires a full history scan).
    """

    def __init__(
        self,
        service: WorkflowService,
        config: BatchResetConfig,
        cursor_factory: Optional[HistoryCursorFactory] = None,
    ) -> None:
        self.service = service
        self.config = config
        self.cursor_factory = cursor_factory or history_cursor_factory(service)

    async def check(self, ref: WorkflowRef) -> FilterDecision:
        """Describe the target's current run and decide whether to skip it."""
        description = await self.service.describe_execution(ref.workflow_id)
        current_run_id = description.current_run_id
        resolved = WorkflowRef(ref.workflow_id, ref.run_id or current_run_id)

        if (
            self.config.skip_if_base_not_current
            and ref.run_id
            and ref.run_id != current_run_id
        ):
            return FilterDecision(
                resolved,
                current_run_id,
                f"base run is different from current run {current_run_id}",
            )

        if self.config.skip_if_open and description.is_open:
            return FilterDecision(
                resolved, current_run_id, f"current run {current_run_id} is open"
            )

        if self.config.non_deterministic_only:
            if not await self.last_task_failed_nondeterministically(resolved):
                return FilterDecision(
                    resolved,
                    current_run_id,
                    "last workflow task did not fail with a nondeterministic error",
                )

        return FilterDecision(resolved, current_run_id)

    async def last_task_failed_nondeterministically(self, ref: WorkflowRef) -> bool:
        """Scan the run tracking the failed workflow task that no completion followed."""
        pending_failure: Optional[HistoryEventView] = None
        async for event in self.cursor_factory(
            ref.workflow_id, ref.run_id, self.config.history_page_size
        ):
            if event.event_type == EventType.WORKFLOW_TASK_FAILED:
                pending_failure = event
            elif event.event_type == EventType.WORKFLOW_TASK_COMPLETED:
                pending_failure = None

        if pending_failure is not None and is_nondeterministic_failure(pending_failure):
            logger.info(
                "Found nondeterministic workflow",
                workflow_id=ref.workflow_id,
                run_id=ref.run_id,
                failed_event_id=pending_failure.event_id,
            )
            return True
        return False
