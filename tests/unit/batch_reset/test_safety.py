"""Unit tests for SafetyFilter."""

from __future__ import annotations

import pytest

from tctl.client.batch_reset.models import BatchResetConfig
from tctl.client.batch_reset.safety import SafetyFilter, is_nondeterministic_failure
from tctl.client.service import HistoryEventView, WorkflowRef
from tctl.core.constants import ResetStrategy, WorkflowTaskFailedCause
from tctl.core.exceptions import ServiceError

UNHANDLED = WorkflowTaskFailedCause.WORKFLOW_WORKER_UNHANDLED_FAILURE


def _config(**kwargs) -> BatchResetConfig:
    return BatchResetConfig(
        reason="test", strategy=ResetStrategy.LAST_WORKFLOW_TASK, **kwargs
    )


class TestSafetyFilter:
    """Skip checks applied before resolution."""

    @pytest.mark.asyncio
    async def test_no_checks_enabled_passes(self, service) -> None:
        service.add_run("wf-1", "run-A", [], is_open=True)

        decision = await SafetyFilter(service, _config()).check(WorkflowRef("wf-1"))

        assert not decision.skipped
        assert decision.ref == WorkflowRef("wf-1", "run-A")
        assert len(service.calls_to("describe_execution")) == 1
        assert service.calls_to("get_history_page") == []

    @pytest.mark.asyncio
    async def test_base_not_current_skips(self, service) -> None:
        service.add_run("wf-1", "run-A", [], current=False)
        service.add_run("wf-1", "run-B", [])
        safety = SafetyFilter(service, _config(skip_if_base_not_current=True))

        decision = await safety.check(WorkflowRef("wf-1", "run-A"))

        assert decision.skipped
        assert decision.current_run_id == "run-B"

    @pytest.mark.asyncio
    async def test_empty_run_id_is_current(self, service) -> None:
        service.add_run("wf-1", "run-B", [])
        safety = SafetyFilter(service, _config(skip_if_base_not_current=True))

        decision = await safety.check(WorkflowRef("wf-1"))

        assert not decision.skipped
        assert decision.ref.run_id == "run-B"

    @pytest.mark.asyncio
    async def test_open_current_run_skips(self, service) -> None:
        service.add_run("wf-1", "run-A", [], is_open=True)
        safety = SafetyFilter(service, _config(skip_if_open=True))

        decision = await safety.check(WorkflowRef("wf-1", "run-A"))

        assert decision.skipped
        assert "open" in decision.skip_reason

    @pytest.mark.asyncio
    async def test_closed_current_run_passes(self, service) -> None:
        service.add_run("wf-1", "run-A", [])
        safety = SafetyFilter(service, _config(skip_if_open=True))

        decision = await safety.check(WorkflowRef("wf-1", "run-A"))

        assert not decision.skipped

    @pytest.mark.asyncio
    async def test_nondeterministic_failure_passes(self, service) -> None:
        service.add_run(
            "wf-1",
            "run-A",
            [service.scheduled(2), service.started(3), service.failed(4, UNHANDLED)],
        )
        safety = SafetyFilter(service, _config(non_deterministic_only=True))

        decision = await safety.check(WorkflowRef("wf-1", "run-A"))

        assert not decision.skipped

    @pytest.mark.asyncio
    async def test_short_form_unhandled_failure_passes(self, service) -> None:
        failed = HistoryEventView.from_json(
            {
                "eventId": "3",
                "eventType": "WorkflowTaskFailed",
                "workflowTaskFailedEventAttributes": {
                    "cause": "WorkflowWorkerUnhandledFailure"
                },
            }
        )
        service.add_run("wf-1", "run-A", [service.scheduled(2), failed])
        safety = SafetyFilter(service, _config(non_deterministic_only=True))

        decision = await safety.check(WorkflowRef("wf-1", "run-A"))

        assert not decision.skipped

    @pytest.mark.asyncio
    async def test_failure_followed_by_completion_skips(self, service) -> None:
        service.add_run(
            "wf-1",
            "run-A",
            [
                service.scheduled(2),
                service.failed(4, UNHANDLED),
                service.scheduled(5),
                service.completed(7),
            ],
        )
        safety = SafetyFilter(service, _config(non_deterministic_only=True))

        decision = await safety.check(WorkflowRef("wf-1", "run-A"))

        assert decision.skipped

    @pytest.mark.asyncio
    async def test_no_failure_skips(self, service) -> None:
        service.add_run("wf-1", "run-A", [service.scheduled(2), service.completed(4)])
        safety = SafetyFilter(service, _config(non_deterministic_only=True))

        decision = await safety.check(WorkflowRef("wf-1", "run-A"))

        assert decision.skipped

    @pytest.mark.asyncio
    async def test_scans_the_target_run(self, service) -> None:
        service.add_run("wf-1", "run-A", [service.failed(4, UNHANDLED)], current=False)
        service.add_run("wf-1", "run-B", [service.completed(4)])
        safety = SafetyFilter(service, _config(non_deterministic_only=True))

        decision = await safety.check(WorkflowRef("wf-1", "run-A"))

        assert not decision.skipped
        assert {call[2] for call in service.calls_to("get_history_page")} == {"run-A"}

    @pytest.mark.asyncio
    async def test_describe_failure_propagates(self, service) -> None:
        with pytest.raises(ServiceError):
            await SafetyFilter(service, _config()).check(WorkflowRef("missing"))


class TestNondeterministicFailure:
    """Classification of workflow task failed events."""

    def test_unhandled_failure_cause(self, service) -> None:
        assert is_nondeterministic_failure(service.failed(4, UNHANDLED))

    def test_nondeterministic_message(self, service) -> None:
        event = service.failed(
            4, "WORKFLOW_TASK_FAILED_CAUSE_UNSPECIFIED", "nondeterministic workflow"
        )
        assert is_nondeterministic_failure(event)

    def test_other_failure(self, service) -> None:
        event = service.failed(
            4, "WORKFLOW_TASK_FAILED_CAUSE_BAD_SCHEDULE_ACTIVITY_ATTRIBUTES", "bad"
        )
        assert not is_nondeterministic_failure(event)
