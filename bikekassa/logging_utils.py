"""Mini README: Application-wide logging helpers for Bike Kassa.

Structure:
    * get_logger - factory returning module loggers with baseline configuration.
    * configure_root_logger - install the shared handler and set the level.

Usage:
    Every module creates a ``LOGGER`` with ``get_logger(__name__)``. Ledger
    transitions log at INFO, reads at DEBUG, and collaborator failures
    (storage, remote sync, receipts) at WARNING or with tracebacks. The
    CLI passes ``BIKEKASSA_LOG_LEVEL`` through ``configure_root_logger``;
    the handler itself is installed only once so the web server, the CLI
    and the test-suite never duplicate output.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

_LOGGER_INITIALISED = False


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def configure_root_logger(level: Union[int, str] = logging.INFO) -> None:
    """Configure the root logger once; later calls only adjust the level."""

    global _LOGGER_INITIALISED
    root_logger = logging.getLogger()
    root_logger.setLevel(_resolve_level(level))
    if _LOGGER_INITIALISED:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter(
            "[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.addHandler(handler)
    _LOGGER_INITIALISED = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module-specific logger ensuring a handler is installed."""

    if not _LOGGER_INITIALISED:
        configure_root_logger()
    return logging.getLogger(name)
