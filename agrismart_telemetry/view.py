"""Presentation-time merge of push telemetry and pulled history."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Mapping, Optional, Tuple

from .core import SeriesPoint, TelemetryView
from .history import HistoryState, HistoryStatus

UNKNOWN_READING = "--"
UNKNOWN_TIME = "--:--"

CHART_LOADING = "loading"
CHART_READY = "ready"
CHART_EMPTY = "empty"
CHART_ERROR = "error"


def format_reading(value: Optional[float], unit: str = "", *, digits: int = 1) -> str:
    """Format a sensor reading, showing ``--`` when the node has none."""

    text = UNKNOWN_READING if value is None else f"{round(value, digits):g}"
    return f"{text} {unit}".rstrip()


@dataclass(frozen=True)
class DashboardView:
    connected: bool
    link_label: str
    soil_pct: int
    soil_raw: int
    air_temp: str
    humidity: str
    soil_temp: str
    pump_label: str
    mode_label: str
    pump_life_minutes: int
    last_seen: str
    sparkline: Tuple[int, ...]
    chart_status: str
    chart_series: Mapping[str, Tuple[SeriesPoint, ...]] = field(default_factory=dict)
    chart_error: Optional[str] = None


def build_dashboard_view(
    telemetry: TelemetryView,
    history: HistoryState,
    *,
    tz: Optional[tzinfo] = None,
) -> DashboardView:
    """Combine the two independently-updated sources into one view.

    Neither source waits on the other: telemetry fields render as soon as a
    message arrives, while the chart reports its own loading or error state.
    """

    snapshot = telemetry.snapshot

    if snapshot.observed_at is None:
        last_seen = UNKNOWN_TIME
    else:
        last_seen = snapshot.observed_at.astimezone(tz).strftime("%H:%M:%S")

    chart_error: Optional[str] = None
    chart_series: Mapping[str, Tuple[SeriesPoint, ...]] = {}
    if history.status in (HistoryStatus.IDLE, HistoryStatus.LOADING):
        chart_status = CHART_LOADING
    elif history.status == HistoryStatus.ERROR:
        chart_status = CHART_ERROR
        chart_error = str(history.error) if history.error is not None else None
    elif history.data is None or history.data.is_empty:
        chart_status = CHART_EMPTY
    else:
        chart_status = CHART_READY
        chart_series = history.data.series

    return DashboardView(
        connected=telemetry.connected,
        link_label="Live" if telemetry.connected else "Offline",
        soil_pct=snapshot.soil_pct,
        soil_raw=snapshot.soil_raw,
        air_temp=format_reading(snapshot.air_temp, "°C"),
        humidity=format_reading(snapshot.humidity, "%"),
        soil_temp=format_reading(snapshot.soil_temp, "°C"),
        pump_label=snapshot.pump_label,
        mode_label=snapshot.mode_label,
        pump_life_minutes=snapshot.pump_life,
        last_seen=last_seen,
        sparkline=telemetry.history,
        chart_status=chart_status,
        chart_series=chart_series,
        chart_error=chart_error,
    )
