"""Workflow command group for tctl CLI."""

import click

from tctl.client.cli.workflow.reset import reset
from tctl.client.cli.workflow.reset_batch import reset_batch


@click.group()
def workflow() -> None:
    r"""Workflow operations.

    \b
    Commands for resetting workflow executions.

    \b
    Examples:
      tctl workflow reset -w wf-1 -r run-A --reset-type FirstWorkflowTask --reason fix
      tctl workflow reset-batch -q "WorkflowType='Order'" \
        --reset-type LastWorkflowTask --reason fix --input-parallelism 8
    """


# Register workflow subcommands
workflow.add_command(reset)
workflow.add_command(reset_batch)
