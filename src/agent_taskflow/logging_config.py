"""Root logging setup for the CLI."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_HANDLER_NAME = "agent_taskflow.cli"


def configure_logging(level: str = "WARNING") -> None:
    """Attach one stderr handler to the ``agent_taskflow`` logger tree.

    Stdout is left to command output. Calling it again replaces the handler,
    so it always writes to the current ``sys.stderr``.
    """

    normalized = level.strip().upper()
    if normalized not in VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid log level: {level!r}. Use one of {', '.join(VALID_LOG_LEVELS)}.",
        )
    log_level = getattr(logging, normalized)

    package_logger = logging.getLogger("agent_taskflow")
    package_logger.setLevel(log_level)
    for existing in list(package_logger.handlers):
        if existing.get_name() == _HANDLER_NAME:
            package_logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    package_logger.addHandler(handler)
