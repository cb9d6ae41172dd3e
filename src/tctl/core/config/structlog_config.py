"""Shared structlog configuration for tctl.

This module provides structlog configuration that enables:

1. Context variable merging (per-target context bound by the batch engine)
2. Basic stdlib metadata decoration (logger name, level, timestamp) while
   deferring rendering to the stdlib handlers configured by
   :mod:`tctl.core.config.logconfig_utils`
3. Optional component identification in logs
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import structlog


def _create_component_processor(component_name: str) -> Callable:
    """Create a processor that adds component name to all log events.

    Args:
        component_name: Name of the component (e.g., "client")

    Returns:
        Processor function that adds component field to event_dict
    """

    def add_component(
        logger: Any, method_name: str, event_dict: Dict[str, Any]
    ) -> Dict[str, Any]:
        event_dict["component"] = component_name
        return event_dict

    return add_component


def _build_structlog_processor_chain(component_name: Optional[str]) -> List[Callable]:
    processors: List[Callable] = [structlog.contextvars.merge_contextvars]

    if component_name:
        processors.append(_create_component_processor(component_name))

    processors.extend(
        [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.processors.StackInfoRenderer(),
        ]
    )
    processors.append(structlog.stdlib.ProcessorFormatter.wrap_for_formatter)
    return processors


def configure_structlog(component_name: Optional[str] = None) -> None:
    """Configure structlog for tctl components.

    PROCESSOR CHAIN ORDER (after configuration):

    1. merge_contextvars
    2. component processor (optional, when component_name is provided)
    3. filter_by_level (stdlib)
    4. add_logger_name (stdlib)
    5. add_log_level (stdlib)
    6. TimeStamper, StackInfoRenderer
    7. ProcessorFormatter.wrap_for_formatter (stdlib handlers do the rendering)

    Args:
        component_name: Component name to add to all logs (e.g., "client")
    """
    structlog.configure(
        processors=_build_structlog_processor_chain(component_name),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
