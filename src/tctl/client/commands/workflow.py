"""Workflow reset commands.

Commands for rewinding workflow executions, including:
- Batch reset of the executions of an input file or visibility query
- Reset of a single execution to an explicit event or a strategy's anchor
"""

import asyncio
import uuid
from pathlib import Path
from typing import Optional, Union

import structlog

from tctl.client.batch_reset import (
    BatchResetConfig,
    BatchResetResult,
    ResetPointResolver,
    explicit_anchor,
    run_batch_reset,
)
from tctl.client.batch_reset.orchestrator import Reporter, current_user
from tctl.client.batch_reset.targets import DEFAULT_SEPARATOR
from tctl.client.service import WorkflowRef, WorkflowService, WorkflowServiceClient
from tctl.core.configuration import TctlConfig
from tctl.core.constants import ResetReapplyType, ResetStrategy
from tctl.core.exceptions import ConfigError

logger = structlog.get_logger(__name__)


def build_batch_reset_config(
    reason: str,
    reset_type: Union[str, ResetStrategy],
    bad_binary_checksum: Optional[str] = None,
    reapply_type: Union[str, ResetReapplyType] = ResetReapplyType.ALL,
    parallelism: Optional[int] = None,
    dry_run: bool = False,
    skip_if_open: bool = False,
    skip_if_base_not_current: bool = False,
    non_deterministic_only: bool = False,
    config: Optional[TctlConfig] = None,
) -> BatchResetConfig:
    """Combine command options with the ``batch_reset`` config section."""
    if config is None:
        config = TctlConfig()
    return BatchResetConfig(
        reason=reason,
        strategy=ResetStrategy(reset_type),
        skip_if_open=skip_if_open,
        non_deterministic_only=non_deterministic_only,
        skip_if_base_not_current=skip_if_base_not_current,
        dry_run=dry_run,
        bad_binary_checksum=bad_binary_checksum or None,
        parallelism=(
            parallelism
            if parallelism is not None
            else config.get_int("batch_reset", "parallelism")
        ),
        reapply_type=ResetReapplyType(reapply_type),
        max_attempts=config.get_int("batch_reset", "max_attempts"),
        retry_jitter=config.get_float("batch_reset", "retry_jitter"),
        pacing_jitter=config.get_float("batch_reset", "pacing_jitter"),
        queue_size=config.get_int("batch_reset", "queue_size"),
        history_page_size=config.get_int("batch_reset", "history_page_size"),
        scan_page_size=config.get_int("batch_reset", "scan_page_size"),
    )


def workflow_reset_batch(
    reason: str,
    reset_type: Union[str, ResetStrategy],
    input_file: Optional[Union[str, Path]] = None,
    query: Optional[str] = None,
    exclude_file: Optional[Union[str, Path]] = None,
    separator: str = DEFAULT_SEPARATOR,
    bad_binary_checksum: Optional[str] = None,
    reapply_type: Union[str, ResetReapplyType] = ResetReapplyType.ALL,
    parallelism: Optional[int] = None,
    dry_run: bool = False,
    skip_if_open: bool = False,
    skip_if_base_not_current: bool = False,
    non_deterministic_only: bool = False,
    config: Optional[TctlConfig] = None,
    service: Optional[WorkflowService] = None,
    reporter: Optional[Reporter] = None,
) -> BatchResetResult:
    """Reset a batch of workflow executions.

    Args:
        reason: Reason recorded on every reset.
        reset_type: One of LastWorkflowTask, FirstWorkflowTask,
            LastContinuedAsNew, BadBinary.
        input_file: File of targets, ``workflowId[<sep>runId]`` per line.
        query: Visibility query selecting the targets.
        exclude_file: File of workflow ids to leave alone.
        separator: Column separator of the input and exclude files.
        bad_binary_checksum: Checksum of the bad binary, BadBinary only.
        reapply_type: Which events after the reset point are reapplied.
        parallelism: Number of concurrent workers, defaults to the
            ``batch_reset.parallelism`` config value.
        dry_run: Report the reset points without resetting.
        skip_if_open: Skip executions whose current run is open.
        skip_if_base_not_current: Skip executions whose given run is not current.
        non_deterministic_only: Only reset executions that failed nondeterministically.
        config: TctlConfig holding the service address and batch tuning.
        service: Service handle, built from config if not provided.
        reporter: Receives every terminal outcome.

    Returns:
        BatchResetResult with one outcome per target.
    """
    if bool(input_file) == bool(query):
        raise ConfigError("must provide exactly one of input file or query")
    if config is None:
        config = TctlConfig()

    batch_config = build_batch_reset_config(
        reason=reason,
        reset_type=reset_type,
        bad_binary_checksum=bad_binary_checksum,
        reapply_type=reapply_type,
        parallelism=parallelism,
        dry_run=dry_run,
        skip_if_open=skip_if_open,
        skip_if_base_not_current=skip_if_base_not_current,
        non_deterministic_only=non_deterministic_only,
        config=config,
    )
    return run_batch_reset(
        batch_config,
        input_file=input_file,
        query=query,
        exclude_file=exclude_file,
        separator=separator,
        service=service,
        reporter=reporter,
        tctl_config=config,
    )


def workflow_reset(
    workflow_id: str,
    reason: str,
    run_id: str = "",
    event_id: Optional[int] = None,
    reset_type: Optional[Union[str, ResetStrategy]] = None,
    bad_binary_checksum: Optional[str] = None,
    reapply_type: Union[str, ResetReapplyType] = ResetReapplyType.ALL,
    config: Optional[TctlConfig] = None,
    service: Optional[WorkflowService] = None,
) -> str:
    """Reset one workflow execution.

    Exactly one of ``event_id`` and ``reset_type`` must be given.

    Returns:
        The run id of the new run.
    """
    if (event_id is None) == (reset_type is None):
        raise ConfigError("must provide exactly one of event id or reset type")
    if not reason:
        raise ConfigError("reason cannot be empty")
    strategy = ResetStrategy(reset_type) if reset_type is not None else None
    if strategy == ResetStrategy.BAD_BINARY and not bad_binary_checksum:
        raise ConfigError(
            "option reset-bad-binary-checksum is required for reset type BadBinary"
        )

    return asyncio.run(
        _workflow_reset_async(
            ref=WorkflowRef(workflow_id, run_id),
            reason=reason,
            event_id=event_id,
            strategy=strategy,
            bad_binary_checksum=bad_binary_checksum,
            reapply_type=ResetReapplyType(reapply_type),
            config=config,
            service=service,
        )
    )


async def _workflow_reset_async(
    ref: WorkflowRef,
    reason: str,
    event_id: Optional[int],
    strategy: Optional[ResetStrategy],
    bad_binary_checksum: Optional[str],
    reapply_type: ResetReapplyType,
    config: Optional[TctlConfig],
    service: Optional[WorkflowService],
) -> str:
    if service is not None:
        return await _reset_one(
            service, ref, reason, event_id, strategy, bad_binary_checksum, reapply_type
        )

    # single shot, so the requester retries transient failures itself
    async with WorkflowServiceClient.from_defaults(config, tenacious=True) as client:
        return await _reset_one(
            client, ref, reason, event_id, strategy, bad_binary_checksum, reapply_type
        )


async def _reset_one(
    service: WorkflowService,
    ref: WorkflowRef,
    reason: str,
    event_id: Optional[int],
    strategy: Optional[ResetStrategy],
    bad_binary_checksum: Optional[str],
    reapply_type: ResetReapplyType,
) -> str:
    if not ref.run_id:
        description = await service.describe_execution(ref.workflow_id)
        ref = WorkflowRef(ref.workflow_id, description.current_run_id)

    if event_id is not None:
        anchor = explicit_anchor(ref, event_id)
    elif strategy is not None:
        resolver = ResetPointResolver(
            service, strategy, bad_binary_checksum=bad_binary_checksum
        )
        anchor = await resolver.resolve(ref)
    else:
        raise ConfigError("must provide exactly one of event id or reset type")

    new_run_id = await service.reset_execution(
        workflow_id=ref.workflow_id,
        run_id=anchor.anchor_run_id,
        event_id=anchor.event_id,
        reason=f"{current_user()}:{reason}",
        request_id=str(uuid.uuid4()),
        reapply_type=reapply_type,
    )
    logger.info(
        "Reset workflow",
        workflow_id=ref.workflow_id,
        run_id=ref.run_id,
        anchor_run_id=anchor.anchor_run_id,
        event_id=anchor.event_id,
        new_run_id=new_run_id,
    )
    return new_run_id
