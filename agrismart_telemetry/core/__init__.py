"""Core primitives for agrismart-telemetry."""

from .models import (
    HistoricalSeries,
    PUMP_LABEL_FORCED_OFF,
    PUMP_LABEL_OFF,
    PUMP_LABEL_ON,
    SeriesPoint,
    TelemetrySnapshot,
    TelemetryView,
    Topic,
    pump_label,
)
from .protocols import (
    ConnectionListener,
    PushTransport,
    TransportFactory,
    TransportHandlers,
)

__all__ = [
    "ConnectionListener",
    "HistoricalSeries",
    "PUMP_LABEL_FORCED_OFF",
    "PUMP_LABEL_OFF",
    "PUMP_LABEL_ON",
    "PushTransport",
    "SeriesPoint",
    "TelemetrySnapshot",
    "TelemetryView",
    "Topic",
    "TransportFactory",
    "TransportHandlers",
    "pump_label",
]
