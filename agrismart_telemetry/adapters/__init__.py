"""Adapter modules for external integrations."""

from .history_api import HistoryApiClient, HistoryFetchError
from .socketio_transport import WIRE_EVENTS, SocketIOTransport

__all__ = [
    "HistoryApiClient",
    "HistoryFetchError",
    "SocketIOTransport",
    "WIRE_EVENTS",
]
