"""Configuration, anchors and outcomes of a batch reset."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from tctl.client.service import WorkflowRef
from tctl.core.constants import ResetReapplyType, ResetStrategy
from tctl.core.exceptions import ConfigError


@dataclass(frozen=True)
class BatchResetConfig:
    """Options of one batch reset; built once from user input and shared by all workers.

    Attributes:
        reason: Reason recorded on every reset.
        strategy: How the reset anchor of each target is found.
        skip_if_open: Skip targets whose current run is still open.
        non_deterministic_only: Only reset targets whose last workflow task
            failed with a nondeterministic error.
        skip_if_base_not_current: Skip targets whose given run is not the current run.
        dry_run: Report the resolved anchors without resetting anything.
        bad_binary_checksum: Checksum of the bad worker binary (BadBinary only).
        parallelism: Number of concurrent workers.
        reapply_type: Which events after the anchor are reapplied.
        max_attempts: Attempts per target before it is reported as failed.
        retry_jitter: Upper bound in seconds of the random wait between attempts.
        pacing_jitter: Upper bound in seconds of the random pause after each target.
        queue_size: How far the producer may run ahead of the workers.
        history_page_size: Events per history page.
        scan_page_size: Executions per visibility scan page.
    """

    reason: str
    strategy: ResetStrategy
    skip_if_open: bool = False
    non_deterministic_only: bool = False
    skip_if_base_not_current: bool = False
    dry_run: bool = False
    bad_binary_checksum: Optional[str] = None
    parallelism: int = 1
    reapply_type: ResetReapplyType = ResetReapplyType.ALL
    max_attempts: int = 3
    retry_jitter: float = 2.0
    pacing_jitter: float = 0.0
    queue_size: int = 1000
    history_page_size: int = 1000
    scan_page_size: int = 1000

    def __post_init__(self) -> None:
        """Validate the options before any target is processed."""
        if not self.reason:
            raise ConfigError("reason cannot be empty")
        if self.strategy == ResetStrategy.BAD_BINARY and not self.bad_binary_checksum:
            raise ConfigError(
                "option reset-bad-binary-checksum is required for reset type BadBinary"
            )
        if self.parallelism < 1:
            raise ConfigError(f"parallelism must be at least 1, got {self.parallelism}")
        if self.max_attempts < 1:
            raise ConfigError(
                f"max_attempts must be at least 1, got {self.max_attempts}"
            )
        if self.retry_jitter < 0 or self.pacing_jitter < 0:
            raise ConfigError("jitter bounds cannot be negative")


@dataclass(frozen=True)
class ResetAnchor:
    """The run and event a reset rewinds to."""

    anchor_run_id: str
    event_id: int

    def __post_init__(self) -> None:
        if self.event_id < 1:
            raise ValueError(
                f"reset event id must be at least 1, got {self.event_id} "
                f"for run {self.anchor_run_id}"
            )


class OutcomeStatus(str, Enum):
    """Terminal states of a target."""

    EXCLUDED = "excluded"
    SKIPPED = "skipped"
    DRY_RUN = "dry_run"
    RESET = "reset"
    FAILED = "failed"


@dataclass(frozen=True)
class TargetOutcome:
    """What happened to one target."""

    ref: WorkflowRef
    status: OutcomeStatus
    anchor: Optional[ResetAnchor] = None
    new_run_id: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[BaseException] = None
    attempts: int = 0

    def describe(self) -> str:
        """One line report of the outcome."""
        wid, rid = self.ref.workflow_id, self.ref.run_id
        if self.status == OutcomeStatus.EXCLUDED:
            return f"skip by exclude file: {wid} {rid}"
        if self.status == OutcomeStatus.SKIPPED:
            return f"skip {wid} {rid}: {self.reason}"
        if self.status == OutcomeStatus.DRY_RUN and self.anchor is not None:
            return (
                f"dry run to reset wid: {wid}, rid: {rid} to "
                f"baseRunId: {self.anchor.anchor_run_id}, eventId: {self.anchor.event_id}"
            )
        if self.status == OutcomeStatus.RESET and self.anchor is not None:
            return (
                f"reset wid: {wid}, rid: {rid} to baseRunId: {self.anchor.anchor_run_id}, "
                f"eventId: {self.anchor.event_id}, new runId: {self.new_run_id}"
            )
        return (
            f"[ERROR] failed processing: {wid} {rid} after {self.attempts} "
            f"attempt(s): {self.error}"
        )


@dataclass
class BatchResetResult:
    """Outcomes of a batch, in completion order."""

    outcomes: list[TargetOutcome] = field(default_factory=list)

    def add(self, outcome: TargetOutcome) -> None:
        self.outcomes.append(outcome)

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def processed(self) -> int:
        """Number of targets that reached the workers."""
        return sum(
            1 for outcome in self.outcomes if outcome.status != OutcomeStatus.EXCLUDED
        )

    @property
    def failed(self) -> bool:
        return self.count(OutcomeStatus.FAILED) > 0

    def summary(self) -> str:
        counts = ", ".join(
            f"{status.value}: {self.count(status)}" for status in OutcomeStatus
        )
        return f"processed {self.processed} workflow execution(s) ({counts})"
