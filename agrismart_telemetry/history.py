"""Pull-based loading of longer-range historical series.

The backend exposes either one combined 24-hour endpoint or a pair of
``history`` and ``trends`` endpoints. Both shapes are normalized into a
:class:`~agrismart_telemetry.core.HistoricalSeries` keyed by field name.
The loader shares no state with the push path and never waits on it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .adapters.history_api import HistoryApiClient, HistoryFetchError
from .config import HistoryConfig
from .core import HistoricalSeries, SeriesPoint

LOGGER = logging.getLogger(__name__)

TIMESTAMP_KEYS = ("timestamp", "ts", "time")

# Epoch values above this are treated as milliseconds.
_EPOCH_MS_THRESHOLD = 1e11


class HistoryStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class HistoryState:
    """Tri-state view of the pull path: loading flag, data and error."""

    status: HistoryStatus = HistoryStatus.IDLE
    data: Optional[HistoricalSeries] = None
    error: Optional[BaseException] = field(default=None, compare=False)

    @property
    def loading(self) -> bool:
        return self.status == HistoryStatus.LOADING


StateCallback = Callable[[HistoryState], None]


def parse_timestamp(value: Any) -> datetime:
    """Parse ISO-8601 text or epoch seconds/milliseconds into an aware datetime."""

    if isinstance(value, bool):
        raise HistoryFetchError(f"invalid timestamp: {value!r}")

    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > _EPOCH_MS_THRESHOLD else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise HistoryFetchError(f"invalid timestamp: {value!r}") from exc

    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise HistoryFetchError(f"invalid timestamp: {value!r}") from exc
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    raise HistoryFetchError(f"invalid timestamp: {value!r}")


def normalize_records(records: Iterable[Any]) -> Dict[str, List[SeriesPoint]]:
    """Split timestamped records into one point list per numeric field.

    Null or non-numeric values are skipped for that field rather than
    recorded as zero.
    """

    series: Dict[str, List[SeriesPoint]] = {}

    for record in records:
        if not isinstance(record, Mapping):
            raise HistoryFetchError(
                f"history record must be an object, got {type(record).__name__}"
            )

        timestamp_value = next(
            (record[key] for key in TIMESTAMP_KEYS if key in record), None
        )
        timestamp = parse_timestamp(timestamp_value)

        for name, value in record.items():
            if name in TIMESTAMP_KEYS:
                continue
            numeric = _numeric(value)
            if numeric is None:
                continue
            series.setdefault(name, []).append(SeriesPoint(timestamp, numeric))

    return series


def _numeric(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return float(value)


class HistoryLoader:
    """Fetches historical series once per view and tracks the load state.

    Concurrent ``load()`` calls share a single in-flight fetch. The loading
    flag is raised before the fetch starts and lowered exactly once when it
    settles, whether it succeeded, failed or was cancelled.
    """

    def __init__(
        self,
        client: HistoryApiClient,
        config: Optional[HistoryConfig] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._client = client
        self._config = config if config is not None else HistoryConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._state = HistoryState()
        self._subscribers: List[StateCallback] = []
        self._inflight: Optional[asyncio.Task[HistoryState]] = None

    @property
    def state(self) -> HistoryState:
        return self._state

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._subscribers.remove(callback)

        return _unsubscribe

    async def load(self) -> HistoryState:
        """Fetch every configured endpoint and publish the outcome.

        Failures are recorded in the returned state rather than raised, and
        previously loaded data is kept untouched when a later load fails.
        """

        if self._inflight is None or self._inflight.done():
            self._set_state(
                HistoryState(status=HistoryStatus.LOADING, data=self._state.data)
            )
            self._inflight = asyncio.create_task(self._run())

        return await asyncio.shield(self._inflight)

    async def cancel(self) -> None:
        """Abort an in-flight load, leaving the loader idle."""

        task = self._inflight
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        # A task cancelled before its first step never reaches _run.
        if self._state.loading:
            self._set_state(
                HistoryState(status=HistoryStatus.IDLE, data=self._state.data)
            )

    async def _run(self) -> HistoryState:
        try:
            series = await self._fetch_all()
        except asyncio.CancelledError:
            self._set_state(
                HistoryState(status=HistoryStatus.IDLE, data=self._state.data)
            )
            raise
        except Exception as exc:
            LOGGER.warning("Historical series fetch failed: %s", exc)
            self._set_state(
                HistoryState(status=HistoryStatus.ERROR, data=self._state.data, error=exc)
            )
        else:
            LOGGER.info(
                "Loaded historical series: %s",
                ", ".join(f"{name}={len(series[name])}" for name in series) or "none",
            )
            self._set_state(HistoryState(status=HistoryStatus.READY, data=series))

        return self._state

    async def _fetch_all(self) -> HistoricalSeries:
        endpoints = self._config.endpoints()
        results = await asyncio.gather(
            *(self._client.fetch_records(path) for path in endpoints),
            return_exceptions=True,
        )

        merged: Dict[str, List[SeriesPoint]] = {}
        for path, result in zip(endpoints, results):
            if isinstance(result, BaseException):
                raise result
            for name, points in normalize_records(result).items():
                if name in merged:
                    LOGGER.debug(
                        "Field %s from %s already loaded; ignoring duplicate", name, path
                    )
                    continue
                merged[name] = points

        return HistoricalSeries(merged, fetched_at=self._clock())

    def _set_state(self, state: HistoryState) -> None:
        self._state = state
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception:
                LOGGER.exception("History subscriber failed")
