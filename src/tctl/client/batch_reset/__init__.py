"""Batch reset of workflow executions.

Public API:
    run_batch_reset: Reset every execution of an input file or query.
    BatchResetConfig: Options of a batch.
    BatchResetResult: Per-target outcomes of a batch.
"""

from tctl.client.batch_reset.history import HistoryCursor, history_cursor_factory
from tctl.client.batch_reset.models import (
    BatchResetConfig,
    BatchResetResult,
    OutcomeStatus,
    ResetAnchor,
    TargetOutcome,
)
from tctl.client.batch_reset.orchestrator import BatchResetOrchestrator, echo_reporter
from tctl.client.batch_reset.resolver import (
    ResetPointResolver,
    explicit_anchor,
    select_reset_point,
)
from tctl.client.batch_reset.run import run_batch_reset, run_batch_reset_async
from tctl.client.batch_reset.safety import FilterDecision, SafetyFilter
from tctl.client.batch_reset.targets import (
    TargetSource,
    load_exclusion_set,
    parse_target_line,
)

__all__ = [
    "BatchResetConfig",
    "BatchResetOrchestrator",
    "BatchResetResult",
    "FilterDecision",
    "HistoryCursor",
    "OutcomeStatus",
    "ResetAnchor",
    "ResetPointResolver",
    "SafetyFilter",
    "TargetOutcome",
    "TargetSource",
    "echo_reporter",
    "explicit_anchor",
    "history_cursor_factory",
    "load_exclusion_set",
    "parse_target_line",
    "run_batch_reset",
    "run_batch_reset_async",
    "select_reset_point",
]
