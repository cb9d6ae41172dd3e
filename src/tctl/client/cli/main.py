"""Main CLI entry point for tctl."""

import sys
from typing import Any, Dict, Optional

import click

from tctl.client.cli.workflow import workflow
from tctl.core.configuration import TctlConfig


def build_config(
    config_file: Optional[str],
    address: Optional[str],
    namespace: Optional[str],
    context_timeout: Optional[float],
) -> TctlConfig:
    """Build the TctlConfig of one invocation, global options taking precedence."""
    http_overrides: Dict[str, Any] = {}
    if address:
        http_overrides["service_url"] = address
    if namespace:
        http_overrides["namespace"] = namespace
    if context_timeout is not None:
        http_overrides["request_timeout"] = context_timeout
    return TctlConfig(
        filepath=config_file or "",
        dict_config={"http": http_overrides} if http_overrides else None,
    )


@click.group()
@click.option(
    "--address",
    envvar="TEMPORAL_CLI_ADDRESS",
    help="Service address, e.g. http://localhost:7243.",
)
@click.option(
    "-n",
    "--namespace",
    envvar="TEMPORAL_CLI_NAMESPACE",
    help="Namespace of the workflows.",
)
@click.option(
    "--context-timeout",
    type=click.FloatRange(min=0, min_open=True),
    help="Deadline in seconds of each service call.",
)
@click.option(
    "--config-file",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML file overriding the default configuration.",
)
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(
    ctx: click.Context,
    address: Optional[str],
    namespace: Optional[str],
    context_timeout: Optional[float],
    config_file: Optional[str],
    debug: bool,
) -> None:
    r"""tctl workflow reset CLI.

    Rewinds workflow executions to an earlier point in their history so they
    re-execute from there, one at a time or in batches.

    \b
    Examples:
      tctl workflow reset -w wf-1 --event-id 12 --reason "bad deploy"
      tctl workflow reset-batch -if targets.tsv --reset-type LastWorkflowTask \
        --reason "bad deploy" --dry-run

    For more information on a specific command group:
      tctl <group> --help
    """
    from tctl.client.logging import configure_client_logging

    ctx.ensure_object(dict)
    config = build_config(config_file, address, namespace, context_timeout)
    ctx.obj["config"] = config
    ctx.obj["debug"] = debug

    configure_client_logging(debug=debug, config=config)


# Register command groups
cli.add_command(workflow)


@cli.command()
def version() -> None:
    """Show version information."""
    from tctl.client import __version__

    click.echo(f"tctl {__version__}")


def main(args: Optional[list] = None) -> None:
    """Main entry point for the CLI."""
    try:
        cli(args)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
