"""Unit tests for BatchResetOrchestrator."""

from __future__ import annotations

from typing import AsyncIterator, Iterable
from unittest.mock import AsyncMock, patch

import pytest

from tctl.client.batch_reset.models import (
    BatchResetConfig,
    OutcomeStatus,
    ResetAnchor,
    TargetOutcome,
)
from tctl.client.batch_reset.orchestrator import BatchResetOrchestrator
from tctl.client.batch_reset.targets import TargetSource
from tctl.client.service import WorkflowRef
from tctl.core.constants import ResetReapplyType, ResetStrategy
from tctl.core.exceptions import ErrorKind, ServiceError, TargetSourceError

# ──────────────────────────────────────────────────────────────────────────────
# Fixtures
# ──────────────────────────────────────────────────────────────────────────────


def _config(**kwargs) -> BatchResetConfig:
    options = {
        "reason": "bad deploy",
        "strategy": ResetStrategy.LAST_WORKFLOW_TASK,
        "retry_jitter": 0.0,
    }
    options.update(kwargs)
    return BatchResetConfig(**options)


async def _source(refs: Iterable[WorkflowRef]) -> AsyncIterator[WorkflowRef]:
    for ref in refs:
        yield ref


def _orchestrator(service, config: BatchResetConfig, outcomes: list):
    return BatchResetOrchestrator(
        service, config, reporter=outcomes.append, identity="alice"
    )


def _add_runs(service, count: int) -> list[WorkflowRef]:
    refs = []
    for i in range(count):
        workflow_id, run_id = f"wf-{i}", f"run-{i}"
        service.add_run(
            workflow_id, run_id, [service.scheduled(2), service.completed(4)]
        )
        refs.append(WorkflowRef(workflow_id, run_id))
    return refs


# ──────────────────────────────────────────────────────────────────────────────
# Batch behavior
# ──────────────────────────────────────────────────────────────────────────────


class TestBatch:
    """Outcomes of a whole batch."""

    @pytest.mark.asyncio
    async def test_resets_each_target(self, service) -> None:
        refs = _add_runs(service, 3)
        outcomes: list[TargetOutcome] = []

        result = await _orchestrator(
            service, _config(reapply_type=ResetReapplyType.SIGNAL), outcomes
        ).run(_source(refs))

        assert result.count(OutcomeStatus.RESET) == 3
        assert outcomes == result.outcomes
        assert {r["workflow_id"] for r in service.resets} == {"wf-0", "wf-1", "wf-2"}
        for reset in service.resets:
            assert reset["event_id"] == 4
            assert reset["reason"] == "alice:bad deploy"
            assert reset["reapply_type"] == ResetReapplyType.SIGNAL
        assert len({r["request_id"] for r in service.resets}) == 3

    @pytest.mark.parametrize("parallelism", [1, 3, 8])
    @pytest.mark.asyncio
    async def test_one_outcome_per_target(self, service, parallelism: int) -> None:
        refs = _add_runs(service, 10)
        service.add_run("wf-open", "run-open", [service.scheduled(2)], is_open=True)
        refs.append(WorkflowRef("wf-open", "run-open"))
        refs.append(WorkflowRef("wf-missing", "run-x"))
        outcomes: list[TargetOutcome] = []

        result = await _orchestrator(
            service, _config(parallelism=parallelism, skip_if_open=True), outcomes
        ).run(_source(refs))

        assert len(result.outcomes) == len(refs)
        assert sorted(o.ref.workflow_id for o in outcomes) == sorted(
            ref.workflow_id for ref in refs
        )
        assert result.count(OutcomeStatus.RESET) == 10
        assert result.count(OutcomeStatus.SKIPPED) == 1
        assert result.count(OutcomeStatus.FAILED) == 1
        assert result.failed

    @pytest.mark.parametrize("strategy", list(ResetStrategy))
    @pytest.mark.asyncio
    async def test_dry_run_never_resets(self, service, strategy) -> None:
        refs = []
        for i in range(5):
            service.add_run(
                f"wf-{i}", f"prev-{i}", [service.completed(3)], current=False
            )
            service.add_run(
                f"wf-{i}",
                f"run-{i}",
                [
                    service.execution_started(1, continued_from=f"prev-{i}"),
                    service.scheduled(2),
                ],
            )
            refs.append(WorkflowRef(f"wf-{i}", f"run-{i}"))
        config = _config(
            strategy=strategy, dry_run=True, parallelism=2, bad_binary_checksum="bad"
        )

        result = await _orchestrator(service, config, []).run(_source(refs))

        assert service.calls_to("reset_execution") == []
        assert len(result.outcomes) == 5

    @pytest.mark.asyncio
    async def test_file_scenario(self, service, write_lines) -> None:
        service.add_run("wf-1", "run-A", [service.scheduled(5), service.completed(6)])
        service.add_run("wf-2", "run-current", [service.scheduled(1)])
        path = write_lines("targets.tsv", ["wf-1\trun-A", "wf-2"])
        outcomes: list[TargetOutcome] = []
        orchestrator = _orchestrator(service, _config(dry_run=True), outcomes)

        result = await orchestrator.run(TargetSource(service, input_file=path))

        anchors = {o.ref.workflow_id: o.anchor for o in result.outcomes}
        assert anchors == {
            "wf-1": ResetAnchor("run-A", 6),
            "wf-2": ResetAnchor("run-current", 2),
        }
        assert all(o.status == OutcomeStatus.DRY_RUN for o in outcomes)

    @pytest.mark.asyncio
    async def test_excluded_targets_never_reach_the_workers(
        self, service, write_lines
    ) -> None:
        refs = _add_runs(service, 3)
        lines = [f"{r.workflow_id}\t{r.run_id}" for r in refs]
        path = write_lines("targets.tsv", lines)
        outcomes: list[TargetOutcome] = []
        orchestrator = _orchestrator(service, _config(), outcomes)
        source = TargetSource(
            service,
            input_file=path,
            excluded=frozenset({"wf-1"}),
            on_excluded=orchestrator.report_excluded,
        )

        result = await orchestrator.run(source)

        assert result.count(OutcomeStatus.EXCLUDED) == 1
        assert result.processed == 2
        touched = {call[1] for call in service.calls if call[0] != "scan_executions"}
        assert "wf-1" not in touched

    @pytest.mark.asyncio
    async def test_malformed_line_aborts_after_draining(
        self, service, write_lines
    ) -> None:
        _add_runs(service, 2)
        path = write_lines("targets.csv", ["wf-0,run-0", "wf-1,run-1", ",run-x"])
        orchestrator = _orchestrator(service, _config(parallelism=2), [])

        with pytest.raises(TargetSourceError):
            await orchestrator.run(TargetSource(input_file=path, separator=","))

        assert orchestrator.result.count(OutcomeStatus.RESET) == 2

    @pytest.mark.asyncio
    async def test_runs_once(self, service) -> None:
        orchestrator = _orchestrator(service, _config(), [])
        await orchestrator.run(_source([]))

        with pytest.raises(RuntimeError):
            await orchestrator.run(_source([]))


# ──────────────────────────────────────────────────────────────────────────────
# Per-target retry
# ──────────────────────────────────────────────────────────────────────────────


class TestRetry:
    """Retry policy of a single target."""

    @pytest.mark.asyncio
    async def test_retries_unavailable(self, service) -> None:
        refs = _add_runs(service, 1)
        service.fail(
            "reset_execution",
            ServiceError(ErrorKind.UNAVAILABLE, "unavailable"),
            ServiceError(ErrorKind.UNAVAILABLE, "unavailable"),
        )

        result = await _orchestrator(service, _config(), []).run(_source(refs))

        (outcome,) = result.outcomes
        assert outcome.status == OutcomeStatus.RESET
        assert outcome.attempts == 3
        assert len(service.calls_to("reset_execution")) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_budget(self, service) -> None:
        refs = _add_runs(service, 2)
        service.fail(
            "describe_execution",
            *[ServiceError(ErrorKind.UNAVAILABLE, "unavailable") for _ in range(3)],
        )

        result = await _orchestrator(service, _config(), []).run(_source(refs))

        first, second = result.outcomes
        assert first.status == OutcomeStatus.FAILED
        assert first.attempts == 3
        assert first.error.kind == ErrorKind.UNAVAILABLE
        assert second.status == OutcomeStatus.RESET

    @pytest.mark.asyncio
    async def test_invalid_argument_is_not_retried(self, service) -> None:
        refs = _add_runs(service, 1)
        service.fail(
            "reset_execution", ServiceError(ErrorKind.INVALID_ARGUMENT, "bad event")
        )

        result = await _orchestrator(service, _config(), []).run(_source(refs))

        (outcome,) = result.outcomes
        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.attempts == 1
        assert len(service.calls_to("reset_execution")) == 1

    @pytest.mark.asyncio
    async def test_resolution_error_is_not_retried(self, service) -> None:
        service.add_run("wf-1", "run-A", [service.execution_started(1)])

        result = await _orchestrator(service, _config(), []).run(
            _source([WorkflowRef("wf-1", "run-A")])
        )

        (outcome,) = result.outcomes
        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.attempts == 1
        assert "[ERROR]" in outcome.describe()

    @pytest.mark.asyncio
    async def test_configured_attempt_budget(self, service) -> None:
        refs = _add_runs(service, 1)
        service.fail(
            "reset_execution",
            *[ServiceError(ErrorKind.INTERNAL, "internal") for _ in range(5)],
        )

        result = await _orchestrator(service, _config(max_attempts=5), []).run(
            _source(refs)
        )

        assert result.outcomes[0].attempts == 5
        assert result.failed

    @pytest.mark.asyncio
    async def test_waits_within_retry_jitter(self, service) -> None:
        refs = _add_runs(service, 1)
        service.fail(
            "reset_execution",
            *[ServiceError(ErrorKind.UNAVAILABLE, "unavailable") for _ in range(3)],
        )
        config = _config(max_attempts=4, retry_jitter=1.5)

        with patch("asyncio.sleep", AsyncMock()) as sleep:
            result = await _orchestrator(service, config, []).run(_source(refs))

        assert result.outcomes[0].attempts == 4
        waits = [call.args[0] for call in sleep.await_args_list]
        assert len(waits) == 3
        assert all(0 <= wait <= 1.5 for wait in waits)

    @pytest.mark.asyncio
    async def test_no_wait_without_retry(self, service) -> None:
        refs = _add_runs(service, 1)

        with patch("asyncio.sleep", AsyncMock()) as sleep:
            await _orchestrator(service, _config(retry_jitter=1.5), []).run(
                _source(refs)
            )

        sleep.assert_not_awaited()


# ──────────────────────────────────────────────────────────────────────────────
# Pacing
# ──────────────────────────────────────────────────────────────────────────────


class TestPacing:
    """Pause after each target."""

    @pytest.mark.asyncio
    async def test_pause_within_pacing_jitter(self, service) -> None:
        refs = _add_runs(service, 3)
        config = _config(pacing_jitter=0.5, parallelism=2)

        with patch("asyncio.sleep", AsyncMock()) as sleep:
            result = await _orchestrator(service, config, []).run(_source(refs))

        assert len(result.outcomes) == 3
        pauses = [call.args[0] for call in sleep.await_args_list]
        assert len(pauses) == 3
        assert all(0 <= pause <= 0.5 for pause in pauses)

    @pytest.mark.asyncio
    async def test_no_pause_when_disabled(self, service) -> None:
        refs = _add_runs(service, 3)

        with patch("asyncio.sleep", AsyncMock()) as sleep:
            await _orchestrator(service, _config(pacing_jitter=0.0), []).run(
                _source(refs)
            )

        sleep.assert_not_awaited()
