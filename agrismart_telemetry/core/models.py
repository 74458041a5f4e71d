"""Domain models for node telemetry and historical series."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Iterator, Mapping, Optional, Sequence, Tuple

PUMP_LABEL_ON = "ON"
PUMP_LABEL_FORCED_OFF = "FORCED OFF"
PUMP_LABEL_OFF = "OFF"


class Topic(str, Enum):
    """Inbound telemetry topics delivered by the push channel."""

    INIT = "init"
    """Full state sent right after (re)connect."""

    UPDATE = "update"
    """Periodic full state broadcast."""


def pump_label(pump_on: bool, manual: bool) -> str:
    """Derive the pump status label.

    A running relay always reads ``ON``, even in manual mode. A stopped pump
    under manual control reads ``FORCED OFF``; otherwise it is ``OFF``.
    """
    if pump_on:
        return PUMP_LABEL_ON
    if manual:
        return PUMP_LABEL_FORCED_OFF
    return PUMP_LABEL_OFF


@dataclass(frozen=True, slots=True)
class TelemetrySnapshot:
    """Latest full state broadcast by the node.

    ``None`` means the node has no reading for that sensor; it is never
    substituted with zero.
    """

    soil_raw: int = 0
    soil_pct: int = 0
    soil_temp: Optional[float] = None
    air_temp: Optional[float] = None
    humidity: Optional[float] = None
    pump_on: bool = False
    manual: bool = False
    pump_life: int = 0
    observed_at: Optional[datetime] = None

    @classmethod
    def initial(cls) -> "TelemetrySnapshot":
        return cls()

    @property
    def pump_label(self) -> str:
        return pump_label(self.pump_on, self.manual)

    @property
    def mode_label(self) -> str:
        return "Manual" if self.manual else "Auto"


@dataclass(frozen=True, slots=True)
class TelemetryView:
    """Read-only view published by the synchronizer.

    The snapshot, the sparkline history and the link flag are swapped in as a
    single object so readers never see them out of step.
    """

    snapshot: TelemetrySnapshot
    history: Tuple[int, ...]
    connected: bool


@dataclass(frozen=True, slots=True)
class SeriesPoint:
    timestamp: datetime
    value: float

    @property
    def epoch_ms(self) -> int:
        return int(self.timestamp.timestamp() * 1000)


@dataclass(frozen=True)
class HistoricalSeries:
    """Immutable set of named series fetched from the pull API."""

    series: Mapping[str, Tuple[SeriesPoint, ...]] = field(default_factory=dict)
    fetched_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        frozen = {
            name: tuple(sorted(points, key=lambda point: point.timestamp))
            for name, points in self.series.items()
        }
        object.__setattr__(self, "series", MappingProxyType(frozen))

    @property
    def fields(self) -> Tuple[str, ...]:
        return tuple(self.series.keys())

    @property
    def is_empty(self) -> bool:
        return not any(self.series.values())

    def __getitem__(self, name: str) -> Tuple[SeriesPoint, ...]:
        return self.series[name]

    def __contains__(self, name: object) -> bool:
        return name in self.series

    def __iter__(self) -> Iterator[str]:
        return iter(self.series)

    def get(self, name: str) -> Sequence[SeriesPoint]:
        return self.series.get(name, ())
