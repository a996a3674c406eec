"""Logging setup for the travel request workflow."""

from __future__ import annotations

import sys
from typing import TextIO

from loguru import logger

LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line}"
    " | request={extra[request_id]} actor={extra[actor_id]} - {message}"
)

# Keeps the format valid for records logged outside a bound operation.
logger.configure(extra={"request_id": "-", "actor_id": "-"})


def configure_logging(level: str = "INFO", sink: TextIO | None = None) -> int:
    """Replace existing handlers with a single formatted sink.

    Returns the loguru handler id so callers can remove it again.
    """

    logger.remove()
    return logger.add(
        sink if sink is not None else sys.stderr,
        format=LOG_FORMAT,
        level=level.upper(),
        colorize=False,
    )
