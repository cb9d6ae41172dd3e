"""Entry points for running a batch reset.

- `run_batch_reset()`: run a batch against an injected service handle
- `run_batch_reset_async()`: the same inside a running event loop
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Union

import structlog

from tctl.client.batch_reset.models import BatchResetConfig, BatchResetResult
from tctl.client.batch_reset.orchestrator import BatchResetOrchestrator, Reporter
from tctl.client.batch_reset.targets import (
    DEFAULT_SEPARATOR,
    TargetSource,
    load_exclusion_set,
)
from tctl.client.service import WorkflowService, WorkflowServiceClient
from tctl.core.configuration import TctlConfig

logger = structlog.get_logger(__name__)


def run_batch_reset(
    config: BatchResetConfig,
    input_file: Optional[Union[str, Path]] = None,
    query: Optional[str] = None,
    exclude_file: Optional[Union[str, Path]] = None,
    separator: str = DEFAULT_SEPARATOR,
    service: Optional[WorkflowService] = None,
    reporter: Optional[Reporter] = None,
    tctl_config: Optional[TctlConfig] = None,
) -> BatchResetResult:
    """Reset every target of an input file or visibility query.

    Args:
        config: Options of the batch.
        input_file: File of targets, one per line. Exclusive with query.
        query: Visibility query selecting the targets. Exclusive with input_file.
        exclude_file: File of workflow ids that are never reset.
        separator: Column separator of the input and exclude files.
        service: Service handle. A WorkflowServiceClient built from
            tctl_config is used and closed if not provided.
        reporter: Receives every terminal outcome.
        tctl_config: Configuration used to build the default service handle.

    Returns:
        BatchResetResult with one outcome per target.

    Raises:
        ConfigError: both or neither of input_file and query were given.
        TargetSourceError: an input file line was malformed or a scan failed.
    """
    return asyncio.run(
        run_batch_reset_async(
            config=config,
            input_file=input_file,
            query=query,
            exclude_file=exclude_file,
            separator=separator,
            service=service,
            reporter=reporter,
            tctl_config=tctl_config,
        )
    )


async def run_batch_reset_async(
    config: BatchResetConfig,
    input_file: Optional[Union[str, Path]] = None,
    query: Optional[str] = None,
    exclude_file: Optional[Union[str, Path]] = None,
    separator: str = DEFAULT_SEPARATOR,
    service: Optional[WorkflowService] = None,
    reporter: Optional[Reporter] = None,
    tctl_config: Optional[TctlConfig] = None,
) -> BatchResetResult:
    """Async implementation of run_batch_reset."""
    excluded = load_exclusion_set(exclude_file, separator)

    if service is not None:
        return await _run(
            service, config, input_file, query, excluded, separator, reporter
        )

    async with WorkflowServiceClient.from_defaults(tctl_config) as client:
        return await _run(
            client, config, input_file, query, excluded, separator, reporter
        )


async def _run(
    service: WorkflowService,
    config: BatchResetConfig,
    input_file: Optional[Union[str, Path]],
    query: Optional[str],
    excluded: frozenset[str],
    separator: str,
    reporter: Optional[Reporter],
) -> BatchResetResult:
    orchestrator = BatchResetOrchestrator(service, config, reporter=reporter)
    source = TargetSource(
        service,
        input_file=input_file,
        query=query,
        separator=separator,
        excluded=excluded,
        on_excluded=orchestrator.report_excluded,
        page_size=config.scan_page_size,
    )
    return await orchestrator.run(source)
