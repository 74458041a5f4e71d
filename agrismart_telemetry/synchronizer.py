"""Push-driven telemetry state: current snapshot plus a rolling sparkline."""

from __future__ import annotations

import contextlib
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Iterator, List, Optional, Tuple

from . import constants
from .connection import ConnectionManager
from .core import TelemetrySnapshot, TelemetryView, Topic
from .telemetry_normalizer import MalformedMessageError, normalize_payload

LOGGER = logging.getLogger(__name__)

ViewCallback = Callable[[TelemetryView], None]


class RollingHistoryBuffer:
    """Fixed-capacity FIFO of soil moisture percentages, oldest first."""

    def __init__(self, capacity: int = constants.ROLLING_HISTORY_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._values: Deque[int] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._values.maxlen or 0

    def append(self, value: int) -> None:
        self._values.append(value)

    def values(self) -> Tuple[int, ...]:
        return tuple(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[int]:
        return iter(tuple(self._values))


class TelemetrySynchronizer:
    """Turns the push stream into the current telemetry view.

    The synchronizer registers itself with the connection manager on
    construction and must be closed (or used as a context manager) so the
    registration is released before another synchronizer takes its place.

    Every inbound ``init`` or ``update`` message replaces the snapshot
    wholesale and appends to the rolling history; subscribers are then
    called synchronously with a single :class:`TelemetryView` holding both.
    """

    def __init__(
        self,
        manager: ConnectionManager,
        *,
        capacity: int = constants.ROLLING_HISTORY_CAPACITY,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._manager = manager
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._buffer = RollingHistoryBuffer(capacity)
        self._subscribers: List[ViewCallback] = []
        self._view = TelemetryView(
            snapshot=TelemetrySnapshot.initial(),
            history=(),
            connected=manager.is_connected,
        )
        self._closed = False
        self.messages_received = 0
        self.messages_dropped = 0

        manager.subscribe(self)

    # ------------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------------
    @property
    def current(self) -> TelemetryView:
        return self._view

    @property
    def snapshot(self) -> TelemetrySnapshot:
        return self._view.snapshot

    @property
    def connected(self) -> bool:
        return self._view.connected

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, callback: ViewCallback) -> Callable[[], None]:
        """Register ``callback`` and return a function that removes it."""

        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._subscribers.remove(callback)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._manager.unsubscribe(self)
        self._subscribers.clear()

    def __enter__(self) -> "TelemetrySynchronizer":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # ConnectionListener
    # ------------------------------------------------------------------
    def on_connected(self) -> None:
        self._publish(
            TelemetryView(
                snapshot=self._view.snapshot,
                history=self._view.history,
                connected=True,
            )
        )

    def on_disconnected(self, reason: str) -> None:
        LOGGER.debug("Telemetry link down: %s", reason)
        self._publish(
            TelemetryView(
                snapshot=self._view.snapshot,
                history=self._view.history,
                connected=False,
            )
        )

    def on_message(self, topic: Topic, payload: Any) -> None:
        self.messages_received += 1

        try:
            snapshot = normalize_payload(payload, received_at=self._clock())
        except MalformedMessageError as exc:
            self.messages_dropped += 1
            LOGGER.warning("Dropping malformed %s message: %s", topic.value, exc)
            return

        self._buffer.append(snapshot.soil_pct)
        self._publish(
            TelemetryView(
                snapshot=snapshot,
                history=self._buffer.values(),
                connected=self._view.connected,
            )
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _publish(self, view: TelemetryView) -> None:
        self._view = view
        for callback in list(self._subscribers):
            try:
                callback(view)
            except Exception:
                LOGGER.exception("Telemetry subscriber failed")
