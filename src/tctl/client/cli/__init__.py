"""tctl CLI - Click-based command line interface."""

from tctl.client.cli.main import cli, main
