"""Base transport abstraction for client connections.

Defines the interface that transport implementations must provide so the
conversation handler can stay independent of the wire technology.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from src.palooza.transport.websocket_protocol import ServerMessage


class ClientChannel(ABC):
    """One authenticated, bidirectional message channel to a client."""

    @abstractmethod
    async def send_message(self, message: ServerMessage) -> None:
        """Send a server message to the client.

        Sending on a closed channel is a no-op; a conversation may still be
        winding down after the client went away.
        """
        pass

    @abstractmethod
    def receive(self) -> AsyncIterator[str | bytes]:
        """Iterate raw client frames until the channel closes."""
        pass

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the channel. Idempotent."""
        pass

    @property
    @abstractmethod
    def channel_id(self) -> str:
        """Unique channel identifier for logging and tracking."""
        pass

    @property
    @abstractmethod
    def user_id(self) -> str:
        """Authenticated user identifier."""
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the channel is still open."""
        pass


class Transport(ABC):
    """Base transport implementation.

    Manages the lifecycle of a transport server that hands each accepted
    client channel to a connection handler.
    """

    @abstractmethod
    async def start(self) -> None:
        """Start the transport server.

        Raises:
            RuntimeError: If the transport fails to start
            OSError: If port binding fails (for network transports)
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop the transport server and close open channels."""
        pass

    @property
    @abstractmethod
    def transport_type(self) -> str:
        """Transport type identifier (e.g., 'websocket')."""
        pass

    @property
    @abstractmethod
    def is_running(self) -> bool:
        """Check if the transport server is currently running."""
        pass
