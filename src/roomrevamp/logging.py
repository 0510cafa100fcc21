from __future__ import annotations

import logging
from typing import Optional, Sequence

from rich.logging import RichHandler

ROOT_LOGGER = "roomrevamp"

# HTTP client libraries log every request at INFO; providers are polled often.
NOISY_LOGGERS = ("httpx", "httpcore")


def _level(name: str) -> int:
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logging(
    level: str = "INFO",
    *,
    logger_name: str = ROOT_LOGGER,
    quiet: Sequence[str] = NOISY_LOGGERS,
) -> logging.Logger:
    """Attach a single Rich handler to the package logger. Safe to call repeatedly."""
    lvl = _level(level)
    logger = logging.getLogger(logger_name)
    logger.setLevel(lvl)
    logger.propagate = False

    handler = next((h for h in logger.handlers if isinstance(h, RichHandler)), None)
    if handler is None:
        handler = RichHandler(rich_tracebacks=True, show_path=False, markup=False)
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        logger.addHandler(handler)
    handler.setLevel(lvl)

    for name in quiet:
        logging.getLogger(name).setLevel(max(lvl, logging.WARNING))
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or ROOT_LOGGER)
