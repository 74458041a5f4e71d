"""Live telemetry synchronization client for the AgriSmart soil node."""

from .app import DashboardApp
from .config import AppConfig, ConfigError, ConnectionConfig, HistoryConfig, load_config
from .connection import ConnectionManager, ConnectionRegistry, ConnectionState
from .core import HistoricalSeries, SeriesPoint, TelemetrySnapshot, TelemetryView, Topic, pump_label
from .history import HistoryLoader, HistoryState, HistoryStatus
from .synchronizer import RollingHistoryBuffer, TelemetrySynchronizer
from .telemetry_normalizer import MalformedMessageError, normalize_payload
from .view import DashboardView, build_dashboard_view, format_reading

__all__ = [
    "AppConfig",
    "ConfigError",
    "ConnectionConfig",
    "ConnectionManager",
    "ConnectionRegistry",
    "ConnectionState",
    "DashboardApp",
    "DashboardView",
    "HistoricalSeries",
    "HistoryConfig",
    "HistoryLoader",
    "HistoryState",
    "HistoryStatus",
    "MalformedMessageError",
    "RollingHistoryBuffer",
    "SeriesPoint",
    "TelemetrySnapshot",
    "TelemetrySynchronizer",
    "TelemetryView",
    "Topic",
    "build_dashboard_view",
    "format_reading",
    "load_config",
    "normalize_payload",
    "pump_label",
]

__version__ = "0.1.0"
