"""Constants used across the agrismart-telemetry package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "agrismart-telemetry"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".agrismart" / DEFAULT_CONFIG_FILENAME

DEFAULT_BACKEND_URL = "http://localhost:5000"
BACKEND_URL_ENV = "AGRISMART_BACKEND_URL"

DEFAULT_TRANSPORTS = ("polling", "websocket")

EVENT_TELEMETRY_INIT = "telemetry:init"
EVENT_TELEMETRY_UPDATE = "telemetry:update"

ROLLING_HISTORY_CAPACITY = 24

DEFAULT_COMBINED_HISTORY_PATH = "/api/charts/24h"
DEFAULT_HISTORY_PATH = "/api/history"
DEFAULT_TRENDS_PATH = "/api/trends"
