"""Client connection handler.

Bridges one ``ClientChannel`` to at most one ``ConversationCoordinator``:
client frames become coordinator commands, and the coordinator's outward
events become wire messages.

Commands:
    start  validate, build the coordinator and open both sessions. A
           validation failure sends an ``error`` frame and closes the channel.
    stop   cooperative wind-down at the next completed turn
    close  immediate teardown of the conversation and the channel

Malformed frames are answered with an ``error`` frame; the channel stays open
unless the frame was a ``start`` command. A conversation that fails to start
reports the error and ends with ``sessionEnd``.
"""

import asyncio
import logging

from src.palooza.audio.codec import encode_pcm
from src.palooza.backend.base import DialogSessionFactory
from src.palooza.config import ConversationConfig
from src.palooza.coordinator import ConversationCoordinator, ConversationListener
from src.palooza.errors import RequestValidationError
from src.palooza.events import (
    AudioChunk,
    ConversationEvent,
    SessionEnded,
    SessionError,
    SessionStarted,
    TranscriptUpdated,
)
from src.palooza.transport.base import ClientChannel
from src.palooza.transport.websocket_protocol import (
    CloseMessage,
    ErrorMessage,
    MediaMessage,
    ServerMessage,
    SessionEndMessage,
    SessionStartMessage,
    StartMessage,
    StopMessage,
    TranscriptMessage,
    parse_client_message,
    validate_start,
)

logger = logging.getLogger(__name__)

ALREADY_STARTED_MESSAGE = "Conversation already started"


class ConversationTracker:
    """Tracks live conversations across all connections."""

    def __init__(self) -> None:
        self._active: dict[str, ConversationCoordinator] = {}
        self.total_started = 0

    def add(self, coordinator: ConversationCoordinator) -> None:
        self._active[coordinator.id] = coordinator
        self.total_started += 1

    def discard(self, coordinator: ConversationCoordinator) -> None:
        self._active.pop(coordinator.id, None)

    @property
    def active_count(self) -> int:
        return len(self._active)

    def active(self) -> list[ConversationCoordinator]:
        return list(self._active.values())


def to_server_message(event: ConversationEvent) -> ServerMessage | None:
    """Map an outward conversation event to its wire message.

    ``TurnCompleted`` stays internal and maps to ``None``.
    """
    if isinstance(event, AudioChunk):
        buffer = event.buffer
        return MediaMessage(
            persona_id=buffer.persona_id,
            transcription_id=buffer.transcription_id,
            data=encode_pcm(buffer.data),
            media_type=buffer.media_type,
        )
    if isinstance(event, TranscriptUpdated):
        return TranscriptMessage(
            persona_id=event.entry.speaker_id,
            transcription_id=event.entry.id,
            text=event.entry.text,
        )
    if isinstance(event, SessionStarted):
        return SessionStartMessage(media_type=event.media_type)
    if isinstance(event, SessionError):
        return ErrorMessage(error=event.message)
    if isinstance(event, SessionEnded):
        return SessionEndMessage()
    return None


class ConversationHandler(ConversationListener):
    """Runs the command loop for one client channel."""

    def __init__(
        self,
        channel: ClientChannel,
        session_factory: DialogSessionFactory,
        config: ConversationConfig | None = None,
        tracker: ConversationTracker | None = None,
    ) -> None:
        """Initialize handler.

        Args:
            channel: Authenticated client channel
            session_factory: Creates the dialog sessions for a conversation
            config: Conversation protocol configuration
            tracker: Shared registry of live conversations
        """
        self._channel = channel
        self._session_factory = session_factory
        self._config = config or ConversationConfig()
        self._tracker = tracker
        self._coordinator: ConversationCoordinator | None = None
        self._start_task: asyncio.Task[None] | None = None

    @property
    def coordinator(self) -> ConversationCoordinator | None:
        return self._coordinator

    async def run(self) -> None:
        """Process client frames until the channel closes."""
        logger.info(
            "Client connected",
            extra={"channel_id": self._channel.channel_id, "user_id": self._channel.user_id},
        )
        try:
            async for raw in self._channel.receive():
                try:
                    await self.handle_frame(raw)
                except Exception as e:
                    logger.exception(
                        "Error handling client frame",
                        extra={"channel_id": self._channel.channel_id, "error": str(e)},
                    )
                    await self._channel.send_message(ErrorMessage(error=str(e)))
                if not self._channel.is_connected:
                    break
        finally:
            await self._shutdown()

    async def handle_frame(self, raw: str | bytes) -> None:
        """Dispatch one client frame."""
        try:
            message = parse_client_message(raw)
        except RequestValidationError as e:
            logger.warning(
                "Malformed client frame",
                extra={
                    "channel_id": self._channel.channel_id,
                    "error": e.message,
                    "terminal": e.terminal,
                },
            )
            await self._channel.send_message(ErrorMessage(error=e.message))
            if e.terminal:
                await self._channel.close()
            return

        logger.debug(
            "Client command",
            extra={"channel_id": self._channel.channel_id, "type": message.type},
        )

        if isinstance(message, StartMessage):
            await self._start(message)
        elif isinstance(message, StopMessage):
            if self._coordinator is not None:
                await self._coordinator.stop()
        elif isinstance(message, CloseMessage):
            if self._coordinator is not None:
                await self._coordinator.close()
            await self._channel.close()

    async def _start(self, message: StartMessage) -> None:
        if self._coordinator is not None:
            await self._channel.send_message(ErrorMessage(error=ALREADY_STARTED_MESSAGE))
            return

        try:
            request = validate_start(message)
        except RequestValidationError as e:
            logger.info(
                "Start request rejected",
                extra={"channel_id": self._channel.channel_id, "error": e.message},
            )
            await self._channel.send_message(ErrorMessage(error=e.message))
            await self._channel.close()
            return

        coordinator = ConversationCoordinator(
            request, self._session_factory, listener=self, config=self._config
        )
        self._coordinator = coordinator
        if self._tracker is not None:
            self._tracker.add(coordinator)

        logger.info(
            "Conversation created",
            extra={
                "channel_id": self._channel.channel_id,
                "conversation_id": coordinator.id,
                "topic": request.topic,
            },
        )
        # Both backends connect in the background so stop/close stay responsive
        self._start_task = asyncio.create_task(
            self._run_start(coordinator), name=f"conversation-start-{coordinator.id}"
        )

    async def _run_start(self, coordinator: ConversationCoordinator) -> None:
        """Start the conversation, reporting an unexpected failure to the client."""
        try:
            await coordinator.start()
        except Exception as e:
            logger.exception(
                "Conversation failed to start",
                extra={
                    "channel_id": self._channel.channel_id,
                    "conversation_id": coordinator.id,
                },
            )
            if coordinator.is_active:
                await self._channel.send_message(ErrorMessage(error=str(e)))
                await coordinator.close()

    async def on_conversation_event(self, event: ConversationEvent) -> None:
        message = to_server_message(event)
        if message is not None:
            await self._channel.send_message(message)

        if isinstance(event, SessionEnded):
            if self._tracker is not None and self._coordinator is not None:
                self._tracker.discard(self._coordinator)
            await self._channel.close()

    async def _shutdown(self) -> None:
        coordinator = self._coordinator
        if coordinator is not None:
            if coordinator.is_active:
                coordinator.set_listener(None)
                await coordinator.close()
            if self._tracker is not None:
                self._tracker.discard(coordinator)

        task, self._start_task = self._start_task, None
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

        logger.info("Client disconnected", extra={"channel_id": self._channel.channel_id})
