"""Push connection lifecycle and reconnection management.

``ConnectionManager`` owns one logical push channel per backend endpoint and
fans lifecycle transitions and inbound telemetry out to its listeners.
``ConnectionRegistry`` is the process-wide owner that guarantees a single
manager (and therefore a single physical connection) per endpoint.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import random
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .adapters.socketio_transport import SocketIOTransport
from .config import BACKOFF_FIXED, ConnectionConfig
from .core import ConnectionListener, Topic, TransportFactory, TransportHandlers

LOGGER = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Current state of the push connection."""

    DISCONNECTED = "disconnected"
    """No connection; a retry may be pending."""

    CONNECTING = "connecting"
    """A connection attempt is in flight."""

    CONNECTED = "connected"
    """Push channel established."""


def compute_backoff(
    attempt: int,
    config: ConnectionConfig,
    *,
    uniform: Callable[[float, float], float] = random.uniform,
) -> float:
    """Return the delay before reconnection ``attempt`` (1-based)."""

    base = config.reconnection_delay
    if config.reconnection_backoff == BACKOFF_FIXED:
        delay = base
    else:
        delay = min(base * (2 ** max(0, attempt - 1)), config.reconnection_delay_max)

    jitter_ratio = config.randomization_factor
    if jitter_ratio > 0.0 and delay > 0.0:
        jitter = delay * jitter_ratio
        delay = uniform(max(0.0, delay - jitter), delay + jitter)
    return delay


class ConnectionManager:
    """Maintains one push connection and notifies listeners of its activity.

    Failures never propagate to callers. Each dropped connection is reported
    through ``on_disconnected`` and followed by a retry unless reconnection is
    disabled or the configured attempt cap has been used up, in which case the
    manager stays disconnected for good.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        *,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        self.config = config

        factory = SocketIOTransport if transport_factory is None else transport_factory
        self._transport = factory(
            TransportHandlers(
                on_connect=self._handle_connect,
                on_disconnect=self._handle_disconnect,
                on_event=self._handle_event,
            )
        )

        self._listeners: List[ConnectionListener] = []
        self._state = ConnectionState.DISCONNECTED
        self._stop_event = asyncio.Event()
        self._supervisor_task: Optional[asyncio.Task[None]] = None
        self._permanently_disconnected = False
        self._connection_count = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def permanently_disconnected(self) -> bool:
        """True once retries are exhausted or disabled after a loss."""
        return self._permanently_disconnected

    @property
    def connection_count(self) -> int:
        """Number of successful connections established so far."""
        return self._connection_count

    # ------------------------------------------------------------------
    # Subscription surface
    # ------------------------------------------------------------------
    def subscribe(self, listener: ConnectionListener) -> None:
        if listener in self._listeners:
            raise ValueError("Listener already registered")
        self._listeners.append(listener)

    def unsubscribe(self, listener: ConnectionListener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def connect(self) -> "ConnectionManager":
        """Start the supervision loop. Repeated calls are no-ops."""

        if self._supervisor_task is not None and not self._supervisor_task.done():
            return self

        if self._permanently_disconnected:
            LOGGER.warning(
                "Connection to %s was abandoned; not reconnecting", self.config.endpoint
            )
            return self

        self._stop_event.clear()
        self._supervisor_task = asyncio.create_task(self._supervise())
        await asyncio.sleep(0)
        return self

    async def close(self) -> None:
        """Stop retrying and drop the connection."""

        self._stop_event.set()

        try:
            await self._transport.disconnect()
        except Exception:
            LOGGER.debug("Transport disconnect failed during close", exc_info=True)

        if self._supervisor_task is not None:
            self._supervisor_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._supervisor_task
            self._supervisor_task = None

        if self._state != ConnectionState.DISCONNECTED:
            self._handle_disconnect("client shutdown")

    # ------------------------------------------------------------------
    # Supervision
    # ------------------------------------------------------------------
    async def _supervise(self) -> None:
        attempt = 0

        while not self._stop_event.is_set():
            if await self._attempt_connection():
                attempt = 0
                try:
                    await self._transport.wait()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    LOGGER.warning(
                        "Push connection to %s ended with error: %s",
                        self.config.endpoint,
                        exc,
                    )
                if self._state != ConnectionState.DISCONNECTED:
                    self._handle_disconnect("transport closed")

            if self._stop_event.is_set():
                break

            if not self.config.reconnection:
                LOGGER.info(
                    "Automatic reconnection disabled; staying disconnected from %s",
                    self.config.endpoint,
                )
                self._permanently_disconnected = True
                break

            cap = self.config.reconnection_attempts
            if cap is not None and attempt >= cap:
                LOGGER.error(
                    "Giving up on %s after %d reconnection attempts",
                    self.config.endpoint,
                    attempt,
                )
                self._permanently_disconnected = True
                break

            attempt += 1
            delay = compute_backoff(attempt, self.config)
            LOGGER.info(
                "Reconnecting to %s in %.1fs (attempt %d)",
                self.config.endpoint,
                delay,
                attempt,
            )

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass

    async def _attempt_connection(self) -> bool:
        self._state = ConnectionState.CONNECTING
        LOGGER.debug("Connecting to %s", self.config.endpoint)

        try:
            async with asyncio.timeout(self.config.connect_timeout):
                await self._transport.connect(
                    self.config.endpoint,
                    transports=self.config.transports,
                    timeout=self.config.connect_timeout,
                )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.warning("Connection to %s failed: %s", self.config.endpoint, exc)
            try:
                await self._transport.disconnect()
            except Exception:
                LOGGER.debug("Transport cleanup after failed connect raised", exc_info=True)
            if self._state == ConnectionState.CONNECTED:
                self._handle_disconnect("connect failed")
            self._state = ConnectionState.DISCONNECTED
            return False

        if self._state == ConnectionState.CONNECTING:
            self._handle_connect()
        return self._state == ConnectionState.CONNECTED

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------
    def _handle_connect(self) -> None:
        if self._state == ConnectionState.CONNECTED:
            return

        self._state = ConnectionState.CONNECTED
        self._connection_count += 1
        LOGGER.info(
            "Connected to %s (session %s)",
            self.config.endpoint,
            self._transport.session_id,
        )

        for listener in list(self._listeners):
            try:
                listener.on_connected()
            except Exception:
                LOGGER.exception("Connection listener failed on connect")

    def _handle_disconnect(self, reason: str) -> None:
        was_connected = self._state == ConnectionState.CONNECTED
        self._state = ConnectionState.DISCONNECTED
        if not was_connected:
            return

        LOGGER.warning("Disconnected from %s: %s", self.config.endpoint, reason)

        for listener in list(self._listeners):
            try:
                listener.on_disconnected(reason)
            except Exception:
                LOGGER.exception("Connection listener failed on disconnect")

    def _handle_event(self, topic: Topic, payload: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener.on_message(topic, payload)
            except Exception:
                LOGGER.exception("Connection listener failed on %s message", topic.value)


class ConnectionRegistry:
    """Owns every push connection in the process, keyed by endpoint.

    Created by the application at start-up and shut down with it.
    """

    def __init__(self, *, transport_factory: Optional[TransportFactory] = None) -> None:
        self._transport_factory = transport_factory
        self._managers: Dict[str, ConnectionManager] = {}

    async def connect(self, config: ConnectionConfig) -> ConnectionManager:
        """Return the connected manager for ``config.endpoint``, creating it once."""

        key = config.endpoint
        normalized = dataclasses.replace(config, url=key)
        manager = self._managers.get(key)
        if manager is None:
            manager = ConnectionManager(normalized, transport_factory=self._transport_factory)
            self._managers[key] = manager
        elif manager.config != normalized:
            LOGGER.error(
                "Conflicting connection settings for %s; reusing the first configuration",
                key,
            )

        await manager.connect()
        return manager

    def get(self, endpoint: str) -> Optional[ConnectionManager]:
        return self._managers.get(endpoint.rstrip("/"))

    def __len__(self) -> int:
        return len(self._managers)

    async def shutdown(self) -> None:
        """Close every managed connection."""

        managers = list(self._managers.values())
        self._managers.clear()
        for manager in managers:
            await manager.close()
