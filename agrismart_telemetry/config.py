"""Configuration loader for agrismart-telemetry."""

from __future__ import annotations

import os
from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Optional, Tuple

from . import constants
from .logging import resolve_level

BACKOFF_EXPONENTIAL = "exponential"
BACKOFF_FIXED = "fixed"
BACKOFF_STRATEGIES = (BACKOFF_EXPONENTIAL, BACKOFF_FIXED)

HISTORY_MODE_COMBINED = "combined"
HISTORY_MODE_SPLIT = "split"
HISTORY_MODES = (HISTORY_MODE_COMBINED, HISTORY_MODE_SPLIT)


class ConfigError(ValueError):
    """Raised when a configuration value cannot be used."""


@dataclass(slots=True, frozen=True)
class ConnectionConfig:
    url: str = constants.DEFAULT_BACKEND_URL
    transports: Tuple[str, ...] = constants.DEFAULT_TRANSPORTS
    reconnection: bool = True
    reconnection_attempts: Optional[int] = None  # None retries forever
    reconnection_backoff: str = BACKOFF_EXPONENTIAL
    reconnection_delay: float = 1.0
    reconnection_delay_max: float = 30.0
    randomization_factor: float = 0.5
    connect_timeout: float = 5.0

    @property
    def endpoint(self) -> str:
        return self.url.rstrip("/")


@dataclass(slots=True, frozen=True)
class HistoryConfig:
    mode: str = HISTORY_MODE_COMBINED
    combined_path: str = constants.DEFAULT_COMBINED_HISTORY_PATH
    history_path: str = constants.DEFAULT_HISTORY_PATH
    trends_path: str = constants.DEFAULT_TRENDS_PATH
    request_timeout: float = 10.0

    def endpoints(self) -> Tuple[str, ...]:
        if self.mode == HISTORY_MODE_SPLIT:
            return (self.history_path, self.trends_path)
        return (self.combined_path,)


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class AppConfig:
    backend_url: str
    connection: ConnectionConfig
    history: HistoryConfig
    logging: LoggingConfig
    raw: ConfigParser
    path: Path


def _parse_list(value: str, *, default: Iterable[str]) -> Tuple[str, ...]:
    if not value:
        return tuple(default)
    items = tuple(item.strip() for item in value.split(",") if item.strip())
    return items or tuple(default)


def _parse_attempts(value: str) -> Optional[int]:
    text = value.strip().lower()
    if text in ("", "0", "inf", "infinite", "unbounded"):
        return None
    try:
        attempts = int(text)
    except ValueError as exc:
        raise ConfigError(f"Invalid reconnection_attempts: {value!r}") from exc
    if attempts < 0:
        raise ConfigError(f"reconnection_attempts must not be negative: {attempts}")
    return attempts


def _parse_choice(value: str, choices: Tuple[str, ...], option: str) -> str:
    normalized = value.strip().lower()
    if normalized not in choices:
        raise ConfigError(
            f"Invalid {option}: {value!r} (expected one of {', '.join(choices)})"
        )
    return normalized


def load_config(
    path: Optional[Path] = None, *, environ: Optional[Mapping[str, str]] = None
) -> AppConfig:
    """Load configuration from disk, applying defaults where necessary.

    The backend URL may be overridden through ``AGRISMART_BACKEND_URL``; no
    other setting is read from the environment.
    """

    config_path = path or constants.DEFAULT_CONFIG_PATH
    env = os.environ if environ is None else environ

    parser = ConfigParser()
    parser.read_dict(
        {
            "backend": {
                "url": constants.DEFAULT_BACKEND_URL,
            },
            "connection": {
                "transports": ",".join(constants.DEFAULT_TRANSPORTS),
                "reconnection": "true",
                "reconnection_attempts": "",
                "reconnection_backoff": BACKOFF_EXPONENTIAL,
                "reconnection_delay": "1.0",
                "reconnection_delay_max": "30.0",
                "randomization_factor": "0.5",
                "connect_timeout": "5.0",
            },
            "history": {
                "mode": HISTORY_MODE_COMBINED,
                "combined_path": constants.DEFAULT_COMBINED_HISTORY_PATH,
                "history_path": constants.DEFAULT_HISTORY_PATH,
                "trends_path": constants.DEFAULT_TRENDS_PATH,
                "request_timeout": "10.0",
            },
            "logging": {
                "level": "INFO",
                "path": "",
                "log_network": "false",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    env_url = env.get(constants.BACKEND_URL_ENV, "").strip()
    if env_url:
        parser.set("backend", "url", env_url)

    backend_url = parser.get("backend", "url").strip()
    if not backend_url:
        raise ConfigError("backend url must not be empty")

    reconnection_delay = max(
        0.0, parser.getfloat("connection", "reconnection_delay", fallback=1.0)
    )

    connection = ConnectionConfig(
        url=backend_url,
        transports=_parse_list(
            parser.get("connection", "transports"),
            default=constants.DEFAULT_TRANSPORTS,
        ),
        reconnection=parser.getboolean("connection", "reconnection", fallback=True),
        reconnection_attempts=_parse_attempts(
            parser.get("connection", "reconnection_attempts", fallback="")
        ),
        reconnection_backoff=_parse_choice(
            parser.get("connection", "reconnection_backoff"),
            BACKOFF_STRATEGIES,
            "reconnection_backoff",
        ),
        reconnection_delay=reconnection_delay,
        reconnection_delay_max=max(
            reconnection_delay,
            parser.getfloat("connection", "reconnection_delay_max", fallback=30.0),
        ),
        randomization_factor=max(
            0.0,
            min(
                1.0,
                parser.getfloat("connection", "randomization_factor", fallback=0.5),
            ),
        ),
        connect_timeout=max(
            0.1, parser.getfloat("connection", "connect_timeout", fallback=5.0)
        ),
    )

    history = HistoryConfig(
        mode=_parse_choice(parser.get("history", "mode"), HISTORY_MODES, "history mode"),
        combined_path=parser.get("history", "combined_path"),
        history_path=parser.get("history", "history_path"),
        trends_path=parser.get("history", "trends_path"),
        request_timeout=max(
            0.1, parser.getfloat("history", "request_timeout", fallback=10.0)
        ),
    )

    log_level = parser.get("logging", "level", fallback="INFO").strip().upper()
    try:
        resolve_level(log_level)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=log_level,
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    return AppConfig(
        backend_url=backend_url,
        connection=connection,
        history=history,
        logging=logging_config,
        raw=parser,
        path=config_path,
    )
