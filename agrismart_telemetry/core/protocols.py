"""Protocol definitions for the push transport and its listeners."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Sequence

from .models import Topic

ConnectHandler = Callable[[], None]
DisconnectHandler = Callable[[str], None]
EventHandler = Callable[[Topic, Any], None]


@dataclass(frozen=True, slots=True)
class TransportHandlers:
    """Callbacks a transport invokes as the push channel changes."""

    on_connect: ConnectHandler
    on_disconnect: DisconnectHandler
    on_event: EventHandler


class PushTransport(Protocol):
    """Minimal contract for one physical push connection."""

    async def connect(
        self, url: str, *, transports: Sequence[str], timeout: float
    ) -> None:
        """Open the connection, raising on failure."""
        ...

    async def wait(self) -> None:
        """Return once the active connection has ended."""
        ...

    async def disconnect(self) -> None:
        """Close the active connection if there is one."""
        ...

    @property
    def session_id(self) -> Optional[str]:
        ...


TransportFactory = Callable[[TransportHandlers], PushTransport]


class ConnectionListener(Protocol):
    """Receives lifecycle and message notifications from a connection.

    Methods are invoked synchronously and must not block.
    """

    def on_connected(self) -> None:
        ...

    def on_disconnected(self, reason: str) -> None:
        ...

    def on_message(self, topic: Topic, payload: Any) -> None:
        ...
