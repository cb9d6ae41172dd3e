"""Backend functions behind the CLI commands."""
