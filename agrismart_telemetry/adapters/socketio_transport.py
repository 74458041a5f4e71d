"""Socket.IO push transport for the telemetry backend."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

import socketio

from .. import constants
from ..core import Topic, TransportHandlers
from ..logging import ENGINEIO_LOGGER, SOCKETIO_LOGGER

LOGGER = logging.getLogger(__name__)

WIRE_EVENTS: Mapping[str, Topic] = {
    constants.EVENT_TELEMETRY_INIT: Topic.INIT,
    constants.EVENT_TELEMETRY_UPDATE: Topic.UPDATE,
}


class SocketIOTransport:
    """One Socket.IO client connection feeding a ``ConnectionManager``.

    The library's built-in reconnection is turned off; the manager decides
    when and how often to retry.
    """

    def __init__(
        self,
        handlers: TransportHandlers,
        *,
        client: Optional[socketio.AsyncClient] = None,
    ) -> None:
        self._handlers = handlers
        if client is None:
            client = socketio.AsyncClient(
                reconnection=False,
                logger=logging.getLogger(SOCKETIO_LOGGER),
                engineio_logger=logging.getLogger(ENGINEIO_LOGGER),
            )
        self._client = client

        self._client.on("connect", self._on_connect)
        self._client.on("disconnect", self._on_disconnect)
        self._client.on("connect_error", self._on_connect_error)
        for event_name, topic in WIRE_EVENTS.items():
            self._client.on(event_name, self._make_event_handler(topic))

    @property
    def session_id(self) -> Optional[str]:
        return self._client.sid

    async def connect(
        self, url: str, *, transports: Sequence[str], timeout: float
    ) -> None:
        await self._client.connect(
            url,
            transports=list(transports),
            wait_timeout=timeout,
        )

    async def wait(self) -> None:
        await self._client.wait()

    async def disconnect(self) -> None:
        if self._client.connected:
            await self._client.disconnect()

    # ------------------------------------------------------------------
    # Socket.IO event handlers
    # ------------------------------------------------------------------
    async def _on_connect(self) -> None:
        LOGGER.debug("Socket.IO connected (sid=%s)", self._client.sid)
        self._handlers.on_connect()

    async def _on_disconnect(self, reason: Any = None) -> None:
        self._handlers.on_disconnect(str(reason) if reason is not None else "disconnected")

    async def _on_connect_error(self, data: Any = None) -> None:
        message = data.get("message") if isinstance(data, dict) else data
        LOGGER.warning("Socket.IO connect error: %s", message)

    def _make_event_handler(self, topic: Topic):
        async def _handler(payload: Any = None) -> None:
            self._handlers.on_event(topic, payload)

        return _handler
