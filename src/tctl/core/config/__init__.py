"""tctl core configuration package.

This package contains:
- Programmatic logging configuration for the client component
- User override handling for logging (file and section overrides)
- Shared structlog configuration
"""

from .logconfig_utils import (
    configure_component_logging,
    generate_component_logconfig,
    load_logconfig_with_overrides,
    merge_logconfig_sections,
)
from .structlog_config import configure_structlog

__all__ = [
    "configure_component_logging",
    "configure_structlog",
    "generate_component_logconfig",
    "load_logconfig_with_overrides",
    "merge_logconfig_sections",
]
