"""Unit tests for batch reset options and outcomes."""

import pytest

from tctl.client.batch_reset.models import (
    BatchResetConfig,
    BatchResetResult,
    OutcomeStatus,
    ResetAnchor,
    TargetOutcome,
)
from tctl.client.service import WorkflowRef
from tctl.core.constants import ResetStrategy
from tctl.core.exceptions import ConfigError, ErrorKind, ServiceError


class TestBatchResetConfig:
    """Validation at batch start."""

    def test_defaults(self) -> None:
        config = BatchResetConfig(reason="r", strategy=ResetStrategy.LAST_WORKFLOW_TASK)

        assert config.parallelism == 1
        assert config.max_attempts == 3
        assert config.retry_jitter == 2.0
        assert not config.dry_run

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"reason": ""},
            {"strategy": ResetStrategy.BAD_BINARY},
            {"parallelism": 0},
            {"max_attempts": 0},
            {"retry_jitter": -1.0},
            {"pacing_jitter": -0.5},
        ],
    )
    def test_invalid(self, kwargs: dict) -> None:
        options = {"reason": "r", "strategy": ResetStrategy.LAST_WORKFLOW_TASK}
        options.update(kwargs)

        with pytest.raises(ConfigError):
            BatchResetConfig(**options)

    def test_bad_binary_with_checksum(self) -> None:
        config = BatchResetConfig(
            reason="r", strategy=ResetStrategy.BAD_BINARY, bad_binary_checksum="abc"
        )
        assert config.bad_binary_checksum == "abc"


class TestOutcomes:
    """Reporting of terminal outcomes."""

    def test_describe(self) -> None:
        ref = WorkflowRef("wf-1", "run-A")
        anchor = ResetAnchor("run-A", 6)

        assert TargetOutcome(ref, OutcomeStatus.EXCLUDED).describe() == (
            "skip by exclude file: wf-1 run-A"
        )
        assert TargetOutcome(ref, OutcomeStatus.DRY_RUN, anchor=anchor).describe() == (
            "dry run to reset wid: wf-1, rid: run-A to baseRunId: run-A, eventId: 6"
        )
        assert "new runId: run-B" in TargetOutcome(
            ref, OutcomeStatus.RESET, anchor=anchor, new_run_id="run-B"
        ).describe()
        failed = TargetOutcome(
            ref,
            OutcomeStatus.FAILED,
            error=ServiceError(ErrorKind.NOT_FOUND, "gone"),
            attempts=1,
        )
        assert failed.describe().startswith("[ERROR] failed processing: wf-1 run-A")

    def test_result_counts(self) -> None:
        result = BatchResetResult()
        ref = WorkflowRef("wf-1")
        for status in (
            OutcomeStatus.EXCLUDED,
            OutcomeStatus.SKIPPED,
            OutcomeStatus.RESET,
            OutcomeStatus.RESET,
        ):
            result.add(TargetOutcome(ref, status))

        assert result.count(OutcomeStatus.RESET) == 2
        assert result.processed == 3
        assert not result.failed
        assert result.summary().startswith("processed 3 workflow execution(s)")
