from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from typing import Any

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO", verbose: bool = False) -> logging.Logger:
    """Configure process-wide logging and return the package logger."""
    resolved = logging.DEBUG if verbose else logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logging.basicConfig(
        level=resolved,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )
    logger = logging.getLogger("localactions")
    logger.debug("Logging configured with level %s", logging.getLevelName(resolved))
    return logger


def log_event_hook(logger: logging.Logger) -> Callable[[dict[str, Any]], None]:
    def _hook(event: dict[str, Any]) -> None:
        name = event.get("event", "event")
        details = " ".join(f"{key}={value}" for key, value in event.items() if key != "event")
        logger.debug("%s %s", name, details)

    return _hook
