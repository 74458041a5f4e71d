"""Logging configuration helpers."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_MAX_BYTES = 1_000_000
LOG_BACKUP_COUNT = 3

# Loggers handed to the Socket.IO client and the HTTP session.
SOCKETIO_LOGGER = "socketio.client"
ENGINEIO_LOGGER = "engineio.client"
NETWORK_LOGGERS = (SOCKETIO_LOGGER, ENGINEIO_LOGGER, "aiohttp.client", "aiohttp.access")


def resolve_level(level: Union[str, int]) -> int:
    """Translate a level name such as ``"warning"`` into its numeric value."""

    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return value


def configure_logging(
    level: Union[str, int] = "INFO",
    *,
    log_path: Optional[Path] = None,
    log_network: bool = False,
) -> None:
    """Configure root logging for the dashboard process.

    Parameters
    ----------
    level:
        Log level name or number.
    log_path:
        Optional file that receives the same records through a size-rotated
        handler.
    log_network:
        When true, Socket.IO handshakes, engine.io packets and HTTP client
        activity are logged at DEBUG; otherwise only their warnings surface.
    """

    logging.captureWarnings(True)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root.setLevel(resolve_level(level))

    network_level = logging.DEBUG if log_network else logging.WARNING
    for name in NETWORK_LOGGERS:
        logging.getLogger(name).setLevel(network_level)
