"""Logging configuration for the tctl command line client.

Configuration is generated programmatically with support for user overrides
via TctlConfig:

1. Custom file (``logging.client_logconfig_file``) - complete replacement
2. Section overrides (``logging.client.*``) - merged with base
3. Programmatic base: ``generate_component_logconfig("client")``
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from tctl.core.config import configure_component_logging, configure_structlog
from tctl.core.configuration import TctlConfig


def configure_client_logging(
    debug: bool = False, config: Optional[TctlConfig] = None
) -> Dict[str, Any]:
    """Configure stdlib handlers and structlog for the CLI.

    Args:
        debug: Lower the ``tctl`` loggers to DEBUG.
        config: TctlConfig the overrides are read from.

    Returns:
        The logconfig dictionary that was applied.
    """
    logconfig_data = configure_component_logging("client", config)
    configure_structlog(component_name="client")

    if debug:
        for name in ("tctl", "tctl.client"):
            logging.getLogger(name).setLevel(logging.DEBUG)
    return logconfig_data
