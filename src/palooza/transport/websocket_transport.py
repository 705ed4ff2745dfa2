"""WebSocket transport implementation.

Accepts client websocket connections, authenticates them with the bearer
token passed on the connection request, and hands each authenticated
channel to the connection handler.
"""

import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any
from urllib.parse import urlsplit

import websockets
from websockets.asyncio.server import ServerConnection, serve
from websockets.protocol import State

from src.palooza.auth import TokenVerifier, extract_token
from src.palooza.errors import AuthenticationError
from src.palooza.transport.base import ClientChannel, Transport
from src.palooza.transport.websocket_protocol import ServerMessage

logger = logging.getLogger(__name__)

# Application close code for rejected credentials
CLOSE_AUTH_FAILED = 3000
CLOSE_POLICY_VIOLATION = 1008
CLOSE_TRY_AGAIN_LATER = 1013

ConnectionHandler = Callable[[ClientChannel], Awaitable[None]]


class WebSocketChannel(ClientChannel):
    """WebSocket-based client channel.

    Implements the ClientChannel interface for websocket connections,
    handling JSON message serialization.
    """

    def __init__(self, websocket: ServerConnection, channel_id: str, user_id: str) -> None:
        """Initialize WebSocket channel.

        Args:
            websocket: WebSocket connection
            channel_id: Unique channel identifier
            user_id: Authenticated user id
        """
        self._websocket = websocket
        self._channel_id = channel_id
        self._user_id = user_id
        self._connected = True

        logger.info(
            "WebSocket channel initialized",
            extra={
                "channel_id": channel_id,
                "user_id": user_id,
                "remote": websocket.remote_address,
            },
        )

    @property
    def channel_id(self) -> str:
        """Get unique channel identifier."""
        return self._channel_id

    @property
    def user_id(self) -> str:
        """Get authenticated user id."""
        return self._user_id

    @property
    def is_connected(self) -> bool:
        """Check if the channel connection is still active."""
        return self._connected and self._websocket.state == State.OPEN

    async def send_message(self, message: ServerMessage) -> None:
        """Send a server message to the client."""
        if not self.is_connected:
            return

        try:
            await self._websocket.send(message.to_json())
        except websockets.exceptions.ConnectionClosed:
            self._connected = False
            logger.info(
                "Send on closed WebSocket dropped",
                extra={"channel_id": self._channel_id, "type": message.type},
            )

    async def receive(self) -> AsyncIterator[str | bytes]:
        """Yield raw client frames until the connection closes."""
        try:
            async for raw_message in self._websocket:
                yield raw_message
        except websockets.exceptions.ConnectionClosed:
            logger.info(
                "WebSocket connection closed by client",
                extra={"channel_id": self._channel_id},
            )
        finally:
            self._connected = False

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the websocket. Idempotent."""
        if not self._connected:
            return
        self._connected = False

        logger.info(
            "Closing WebSocket channel",
            extra={"channel_id": self._channel_id, "code": code, "reason": reason},
        )

        try:
            await self._websocket.close(code, reason)
        except Exception as e:
            logger.warning(
                "Error during channel close",
                extra={"channel_id": self._channel_id, "error": str(e)},
            )


class WebSocketTransport(Transport):
    """WebSocket transport server.

    Manages WebSocket server lifecycle and runs the connection handler for
    every authenticated client.
    """

    def __init__(
        self,
        handler: ConnectionHandler,
        verifier: TokenVerifier,
        host: str = "0.0.0.0",  # noqa: S104
        port: int = 5001,
        path: str = "/client/socket",
        max_connections: int = 100,
        max_message_bytes: int = 5 * 1024 * 1024,
    ) -> None:
        """Initialize WebSocket transport.

        Args:
            handler: Coroutine run for each authenticated channel
            verifier: Bearer token verifier
            host: Bind host address
            port: Bind port
            path: Endpoint path clients connect to
            max_connections: Maximum concurrent connections
            max_message_bytes: Maximum inbound message size
        """
        self._handler = handler
        self._verifier = verifier
        self._host = host
        self._port = port
        self._path = path
        self._max_connections = max_connections
        self._max_message_bytes = max_message_bytes
        self._server: Any = None  # websockets Server
        self._running = False
        self._channels: dict[str, WebSocketChannel] = {}

        logger.info(
            "WebSocket transport initialized",
            extra={"host": host, "port": port, "path": path, "max_connections": max_connections},
        )

    @property
    def transport_type(self) -> str:
        """Transport type identifier."""
        return "websocket"

    @property
    def is_running(self) -> bool:
        """Check if the transport server is currently running."""
        return self._running

    @property
    def connection_count(self) -> int:
        """Number of open client channels."""
        return len(self._channels)

    async def start(self) -> None:
        """Start the WebSocket server.

        Raises:
            RuntimeError: If the transport fails to start
            OSError: If port binding fails
        """
        if self._running:
            raise RuntimeError("WebSocket transport is already running")

        logger.info("Starting WebSocket server", extra={"host": self._host, "port": self._port})

        try:
            self._server = await serve(
                self._handle_connection,
                self._host,
                self._port,
                max_size=self._max_message_bytes,
            )
            self._running = True

            logger.info(
                "WebSocket server started",
                extra={"host": self._host, "port": self._port},
            )

        except OSError as e:
            logger.error(
                "Failed to bind WebSocket server",
                extra={"host": self._host, "port": self._port, "error": str(e)},
            )
            raise
        except Exception as e:
            logger.error("Failed to start WebSocket server", extra={"error": str(e)})
            raise RuntimeError(f"Failed to start WebSocket transport: {e}") from e

    async def stop(self) -> None:
        """Stop the WebSocket server and close open channels."""
        if not self._running:
            return

        logger.info("Stopping WebSocket server")

        self._running = False

        for channel in list(self._channels.values()):
            await channel.close(1001, "Server shutting down")

        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        logger.info("WebSocket server stopped")

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        """Authenticate an incoming connection and run the handler.

        Args:
            websocket: WebSocket connection
        """
        request = websocket.request
        path = request.path if request is not None else "/"
        headers = request.headers if request is not None else {}

        if urlsplit(path).path != self._path:
            logger.warning("Connection to unknown path rejected", extra={"path": path})
            await websocket.close(CLOSE_POLICY_VIOLATION, "Unknown path")
            return

        if len(self._channels) >= self._max_connections:
            logger.warning(
                "Connection limit reached",
                extra={"max_connections": self._max_connections},
            )
            await websocket.close(CLOSE_TRY_AGAIN_LATER, "Server busy")
            return

        try:
            user_id = await self._verifier.verify(extract_token(path, headers))
        except AuthenticationError as e:
            logger.warning(
                "WebSocket authentication failed",
                extra={"remote": websocket.remote_address, "error": str(e)},
            )
            await websocket.close(CLOSE_AUTH_FAILED, str(e))
            return

        channel_id = f"ws-{uuid.uuid4().hex[:12]}"
        channel = WebSocketChannel(websocket, channel_id, user_id)
        self._channels[channel_id] = channel

        try:
            await self._handler(channel)
        except Exception as e:
            logger.exception(
                "Error in connection handler",
                extra={"channel_id": channel_id, "error": str(e)},
            )
        finally:
            self._channels.pop(channel_id, None)
            await channel.close()
            logger.info("WebSocket connection closed", extra={"channel_id": channel_id})
