"""Workflow reset-batch command."""

from typing import Optional

import click

from tctl.core.constants import ResetReapplyType, ResetStrategy


@click.command("reset-batch")
@click.option(
    "-if",
    "--input-file",
    type=click.Path(exists=True, dir_okay=False),
    help="File of executions to reset, workflowId[<separator>runId] per line.",
)
@click.option(
    "--exclude-file",
    type=click.Path(exists=True, dir_okay=False),
    help="File of workflow ids to exclude, same format as the input file.",
)
@click.option(
    "--input-separator",
    default="\t",
    show_default="tab",
    help="Column separator of the input and exclude files.",
)
@click.option(
    "-q",
    "--query",
    help="Visibility query selecting the executions to reset.",
)
@click.option("--reason", required=True, help="Reason for the reset.")
@click.option(
    "--reset-type",
    required=True,
    type=click.Choice(ResetStrategy.names()),
    help="Where in the history each execution is reset to.",
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
@click.option(
    "--input-parallelism",
    type=click.IntRange(min=1),
    help="Number of executions processed concurrently "
    "[default: batch_reset.parallelism from config].",
)
@click.option(
    "--dry-run", is_flag=True, help="Report the reset points without resetting."
)
@click.option(
    "--skip-current-open",
    is_flag=True,
    help="Skip executions whose current run is still open.",
)
@click.option(
    "--skip-base-is-not-current",
    is_flag=True,
    help="Skip executions whose given run is not the current run.",
)
@click.option(
    "--non-deterministic",
    is_flag=True,
    help="Only reset executions whose last workflow task failed nondeterministically.",
)
@click.pass_context
def reset_batch(
    ctx: click.Context,
    input_file: Optional[str],
    exclude_file: Optional[str],
    input_separator: str,
    query: Optional[str],
    reason: str,
    reset_type: str,
    reset_bad_binary_checksum: Optional[str],
    reset_reapply_type: str,
    input_parallelism: Optional[int],
    dry_run: bool,
    skip_current_open: bool,
    skip_base_is_not_current: bool,
    non_deterministic: bool,
) -> None:
    r"""Reset a batch of workflow executions.

    Targets come from exactly one of an input file or a visibility query.
    Each target is checked, its reset point resolved, and then reset (or only
    reported with --dry-run). Exits with status 1 if any target failed.

    \b
    Examples:
      # Preview resets of the executions listed in a file
      tctl workflow reset-batch -if targets.tsv --reset-type LastWorkflowTask \
        --reason "bad deploy" --dry-run

    \b
      # Reset executions stuck on a bad binary, 8 at a time
      tctl workflow reset-batch -q "ExecutionStatus='Running'" \
        --reset-type BadBinary --reset-bad-binary-checksum abc123 \
        --reason "rollback" --input-parallelism 8
    """
    if bool(input_file) == bool(query):
        raise click.UsageError("must provide exactly one of --input-file or --query")
    if reset_type == ResetStrategy.BAD_BINARY.value and not reset_bad_binary_checksum:
        raise click.UsageError(
            "option --reset-bad-binary-checksum is required for reset type BadBinary"
        )

    from tctl.client.commands.workflow import workflow_reset_batch

    result = workflow_reset_batch(
        reason=reason,
        reset_type=reset_type,
        input_file=input_file,
        query=query,
        exclude_file=exclude_file,
        separator=input_separator,
        bad_binary_checksum=reset_bad_binary_checksum,
        reapply_type=reset_reapply_type,
        parallelism=input_parallelism,
        dry_run=dry_run,
        skip_if_open=skip_current_open,
        skip_if_base_not_current=skip_base_is_not_current,
        non_deterministic_only=non_deterministic,
        config=ctx.obj["config"] if ctx.obj else None,
    )
    click.echo(result.summary())
    if result.failed:
        ctx.exit(1)
