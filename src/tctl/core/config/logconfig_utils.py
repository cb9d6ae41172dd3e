"""Utilities for generating logging configurations and applying user overrides.

The base configuration is generated programmatically per component; users can
replace it with a file (``logging.{component}_logconfig_file``) or override
individual formatters, handlers and loggers (``logging.{component}.*``).
"""

import copy
import logging.config
import os
from typing import Any, Dict, Optional

import yaml

from tctl.core.configuration import TctlConfig
from tctl.core.exceptions import ConfigError

_FORMATTERS = {
    "console": "tctl.core.config.formatters.TctlStructlogConsoleFormatter",
    "json": "tctl.core.config.formatters.TctlStructlogJSONFormatter",
}


def generate_component_logconfig(
    component_name: str, level: str = "INFO", json_format: bool = False
) -> Dict[str, Any]:
    """Build the dictConfig for a component's ``tctl.*`` loggers.

    Args:
        component_name: Component name, used as the logger suffix ('client').
        level: Level of the component logger.
        json_format: Render records as JSON instead of console key/value lines.

    Returns:
        Logconfig dictionary ready for logging.config.dictConfig()
    """
    formatter = "json" if json_format else "console"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {name: {"()": path} for name, path in _FORMATTERS.items()},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": formatter,
                "stream": "ext://sys.stderr",
            }
        },
        "loggers": {
            "tctl": {
                "handlers": ["console"],
                "level": level.upper(),
                "propagate": False,
            },
            f"tctl.{component_name}": {
                "level": level.upper(),
            },
        },
    }


def merge_logconfig_sections(
    base_config: Dict[str, Any], overrides: Dict[str, Any]
) -> Dict[str, Any]:
    """Merge logconfig section overrides into base configuration.

    This performs a deep merge, allowing users to override specific formatters,
    handlers, or loggers while preserving the rest of the base configuration.

    Args:
        base_config: Base logconfig dictionary
        overrides: Override sections from TctlConfig

    Returns:
        Merged logconfig dictionary
    """

    def deep_merge_dict(
        base: Dict[str, Any], override: Dict[str, Any]
    ) -> Dict[str, Any]:
        result = base.copy()

        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = deep_merge_dict(result[key], value)
            else:
                result[key] = copy.deepcopy(value)

        return result

    merged = copy.deepcopy(base_config)

    for section_name in ["formatters", "handlers", "loggers"]:
        if section_name in overrides and overrides[section_name]:
            if section_name not in merged:
                merged[section_name] = {}

            merged[section_name] = deep_merge_dict(
                merged[section_name], overrides[section_name]
            )

    return merged


def load_logconfig_with_overrides(
    component_name: str, config: Optional[TctlConfig] = None
) -> Dict[str, Any]:
    """Load a component logconfig with support for user overrides from TctlConfig.

    Supports two types of overrides:
    1. File-based: Custom logconfig file specified in logging.{component}_logconfig_file
    2. Section-based: Override specific sections specified in logging.{component}.*

    Args:
        component_name: Config section name ('client')
        config: TctlConfig instance (creates default if None)

    Returns:
        Fully resolved logconfig dictionary ready for logging.config.dictConfig()
    """
    if config is None:
        config = TctlConfig()

    try:
        custom_file = config.get("logging", f"{component_name}_logconfig_file")
    except ConfigError:
        custom_file = ""
    if custom_file and os.path.exists(custom_file):
        with open(custom_file, "r", encoding="utf-8") as f:
            logconfig_from_file = yaml.safe_load(f)
        # File overrides are complete configurations.
        logconfig_from_file["disable_existing_loggers"] = True
        return logconfig_from_file

    try:
        level = str(config.get("logging", "level"))
    except ConfigError:
        level = "INFO"
    try:
        json_format = config.get_boolean("logging", "json")
    except ConfigError:
        json_format = False

    logconfig_data = generate_component_logconfig(
        component_name, level=level, json_format=json_format
    )

    component_overrides = config.get_section("logging").get(component_name)
    if isinstance(component_overrides, dict) and component_overrides:
        logconfig_data = merge_logconfig_sections(logconfig_data, component_overrides)

    return logconfig_data


def configure_component_logging(
    component_name: str, config: Optional[TctlConfig] = None
) -> Dict[str, Any]:
    """Configure stdlib logging for a tctl component and return the applied config.

    Args:
        component_name: Component name ('client')
        config: TctlConfig instance (creates default if None)
    """
    logconfig_data = load_logconfig_with_overrides(component_name, config)
    logging.config.dictConfig(logconfig_data)
    return logconfig_data
