"""Transport layer for client connections."""

from src.palooza.transport.base import ClientChannel, Transport
from src.palooza.transport.websocket_transport import WebSocketChannel, WebSocketTransport

__all__ = [
    "ClientChannel",
    "Transport",
    "WebSocketChannel",
    "WebSocketTransport",
]
