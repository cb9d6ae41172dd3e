"""Custom logging formatters for tctl."""

from __future__ import annotations

import logging

import structlog


class TctlStructlogConsoleFormatter(logging.Formatter):
    """Structlog-based console formatter."""

    def __init__(self) -> None:
        """Initialize console formatter with structlog."""
        super().__init__()
        self._structlog_formatter = structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.dev.ConsoleRenderer(colors=False),
            ],
            foreign_pre_chain=[
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            ],
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format using structlog console renderer."""
        return self._structlog_formatter.format(record)


class TctlStructlogJSONFormatter(logging.Formatter):
    """Structlog-based JSON formatter."""

    def __init__(self) -> None:
        """Initialize JSON formatter with structlog."""
        super().__init__()
        self._structlog_formatter = structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
            foreign_pre_chain=[
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
            ],
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format using structlog JSON renderer."""
        return self._structlog_formatter.format(record)
