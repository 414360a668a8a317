"""Structured logging for the ngrok wrapper, built on structlog."""

import logging
import sys

import structlog
from structlog.typing import Processor

# Logger used for raw agent output when ``log_binary`` is enabled.
AGENT_OUTPUT_LOGGER = "ngrok_wrapper.agent"


def _level_number(level: str) -> int:
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown logging level: {level}")
    return log_level


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: str | None = None,
    agent_output_level: str | None = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, render events as JSON lines
        log_file: Optional file path that receives a copy of every record
        agent_output_level: Separate level for raw agent output; None
            follows ``level``

    Raises:
        ValueError: If a level is not a known logging level name
    """
    # Resolve levels before touching any handler
    log_level = _level_number(level)
    agent_level = (
        _level_number(agent_output_level)
        if agent_output_level is not None
        else logging.NOTSET
    )

    # Get root logger and clear existing handlers
    root_logger = logging.getLogger()
    root_logger.handlers = []
    root_logger.setLevel(log_level)

    # Agent output is chatty at debug; it can be tuned on its own
    logging.getLogger(AGENT_OUTPUT_LOGGER).setLevel(agent_level)

    # Add console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(console_handler)

    # Build processor list
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    # JSON lines for collectors, coloured console otherwise
    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Add file handler if specified
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        root_logger.addHandler(file_handler)


# Modules call this at import time; nothing is configured until setup_logging
def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger bound to ``name`` (usually ``__name__``)."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]
