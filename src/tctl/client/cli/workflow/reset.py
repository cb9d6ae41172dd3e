"""Workflow reset command."""

from typing import Optional

import click

from tctl.core.constants import ResetReapplyType, ResetStrategy


@click.command()
@click.option(
    "-w",
    "--workflow-id",
    required=True,
    help="Workflow ID to reset.",
)
@click.option(
    "-r",
    "--run-id",
    default="",
    help="Run ID to reset, defaults to the current run.",
)
@click.option("--reason", required=True, help="Reason for the reset.")
@click.option(
    "--event-id",
    type=click.IntRange(min=1),
    help="Workflow task completed, failed or timed out event to reset to.",
)
@click.option(
    "--reset-type",
    type=click.Choice(ResetStrategy.names()),
    help="Resolve the reset point instead of giving --event-id.",
)
@click.option(
    "--reset-bad-binary-checksum",
    help="Binary checksum to reset away from, required for BadBinary.",
)
@click.option(
    "--reset-reapply-type",
    type=click.Choice(ResetReapplyType.names()),
    default=ResetReapplyType.ALL.value,
    show_default=True,
    help="Which events after the reset point are reapplied.",
)
@click.pass_context
def reset(
    ctx: click.Context,
    workflow_id: str,
    run_id: str,
    reason: str,
    event_id: Optional[int],
    reset_type: Optional[str],
    reset_bad_binary_checksum: Optional[str],
    reset_reapply_type: str,
) -> None:
    r"""Reset a workflow execution to an earlier event.

    The new run re-executes from the reset point. Give either --event-id or
    --reset-type.

    \b
    Examples:
      tctl workflow reset -w wf-1 -r run-A --event-id 12 --reason "bad deploy"
      tctl workflow reset -w wf-1 --reset-type LastWorkflowTask --reason retry
    """
    if (event_id is None) == (reset_type is None):
        raise click.UsageError("must provide exactly one of --event-id or --reset-type")
    if reset_type == ResetStrategy.BAD_BINARY.value and not reset_bad_binary_checksum:
        raise click.UsageError(
            "option --reset-bad-binary-checksum is required for reset type BadBinary"
        )

    from tctl.client.commands.workflow import workflow_reset

    new_run_id = workflow_reset(
        workflow_id=workflow_id,
        run_id=run_id,
        reason=reason,
        event_id=event_id,
        reset_type=reset_type,
        bad_binary_checksum=reset_bad_binary_checksum,
        reapply_type=reset_reapply_type,
        config=ctx.obj["config"] if ctx.obj else None,
    )
    click.echo(f"Reset workflow {workflow_id}, new runId: {new_run_id}")
