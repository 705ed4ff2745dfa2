"""Conversation coordinator.

Drives two dialog sessions (side A bound to ``personas[0]``, side B bound to
``personas[1]``) as one logical conversation:

    - each side's synthesized audio is relayed to the client AND cross-fed
      into the other side's input, so the personas hear each other
    - transcripts are relayed only; they are never cross-fed
    - a turn completing on one side flushes the other side's input
    - once both sides are ready, the first speaker is greeted by name
    - a stop request is cooperative: on the next completed turn the other
      side is asked to wrap up and the backends end the conversation
    - either side ending or failing closes the other; the client sees a
      single ``SessionEnded`` and nothing after it

Thread-safety: This class is NOT thread-safe. Use from a single event loop.
"""

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from enum import Enum

from src.palooza.audio.codec import parse_sample_rate
from src.palooza.audio.recording import build_recording
from src.palooza.backend.base import DialogSession, DialogSessionFactory, SessionListener
from src.palooza.config import ConversationConfig
from src.palooza.events import (
    AudioChunk,
    ConversationEvent,
    SessionEnded,
    SessionError,
    SessionStarted,
    TranscriptUpdated,
    TurnCompleted,
)
from src.palooza.instructions import build_system_instructions
from src.palooza.models import AudioBuffer, ConversationRequest, TranscriptEntry

logger = logging.getLogger(__name__)

IDLE_TIMEOUT_MESSAGE = "Conversation timed out"


class Side(Enum):
    """Conversation side. A holds ``personas[0]``, B holds ``personas[1]``."""

    A = "a"
    B = "b"

    @property
    def other(self) -> "Side":
        return Side.B if self is Side.A else Side.A


class ConversationListener(ABC):
    """Receives the coordinator's outward event stream.

    Emitted events: ``SessionStarted`` (once, after both sides are ready),
    ``TranscriptUpdated``, ``AudioChunk``, ``SessionError`` and a final
    ``SessionEnded``.
    """

    @abstractmethod
    async def on_conversation_event(self, event: ConversationEvent) -> None:
        """Handle one outward conversation event."""
        pass


class ConversationCoordinator(SessionListener):
    """Owns and routes between the two dialog sessions of one conversation."""

    def __init__(
        self,
        request: ConversationRequest,
        session_factory: DialogSessionFactory,
        listener: ConversationListener | None = None,
        config: ConversationConfig | None = None,
    ) -> None:
        """Initialize coordinator and build both sessions.

        Args:
            request: Validated conversation request
            session_factory: Creates the vendor dialog sessions
            listener: Outward event listener (transport adapter)
            config: Conversation protocol configuration
        """
        self.id = str(uuid.uuid4())
        self.request = request
        self.config = config or ConversationConfig()
        self.media_type = session_factory.media_type

        self._listener = listener
        self._first_speaker = Side(self.config.first_speaker)

        instruction_a, instruction_b = build_system_instructions(request)
        self._sessions: dict[Side, DialogSession] = {
            Side.A: session_factory.create_session(request.persona_a, instruction_a),
            Side.B: session_factory.create_session(request.persona_b, instruction_b),
        }
        for session in self._sessions.values():
            session.set_listener(self)

        self._started: dict[Side, bool] = {Side.A: False, Side.B: False}
        self._announced = False
        self._ended = False
        self.request_stop = False

        self.audio_log: list[AudioBuffer] = []
        self._transcript: dict[str, TranscriptEntry] = {}

        self._last_activity = time.monotonic()
        self._watchdog_task: asyncio.Task[None] | None = None

    @property
    def is_active(self) -> bool:
        return not self._ended

    @property
    def sessions(self) -> dict[Side, DialogSession]:
        """Live sessions by side (empty once the conversation ended)."""
        return dict(self._sessions)

    def set_listener(self, listener: ConversationListener | None) -> None:
        self._listener = listener

    def _side_of(self, session: DialogSession) -> Side | None:
        for side, candidate in self._sessions.items():
            if candidate is session:
                return side
        return None

    async def _emit(self, event: ConversationEvent) -> None:
        if self._listener is not None:
            await self._listener.on_conversation_event(event)

    async def start(self) -> None:
        """Open both backend sessions concurrently."""
        logger.info(
            "Starting conversation",
            extra={
                "conversation_id": self.id,
                "persona_a": self.request.persona_a.id,
                "persona_b": self.request.persona_b.id,
                "style": self.request.style.name,
            },
        )
        if self.config.idle_timeout_s is not None:
            self._watchdog_task = asyncio.create_task(
                self._idle_watchdog(self.config.idle_timeout_s),
                name=f"conversation-watchdog-{self.id}",
            )
        sessions = list(self._sessions.values())
        await asyncio.gather(*(session.start() for session in sessions))

    async def stop(self) -> None:
        """Request a cooperative wind-down at the next completed turn."""
        if self._ended:
            return
        logger.info("Conversation stop requested", extra={"conversation_id": self.id})
        self.request_stop = True

    async def close(self) -> None:
        """Tear down both sessions immediately."""
        await self._terminate("client close")

    async def on_session_event(self, session: DialogSession, event: ConversationEvent) -> None:
        """Route one event from a dialog session."""
        if self._ended:
            return
        side = self._side_of(session)
        if side is None:
            logger.debug(
                "Event from released session ignored",
                extra={"conversation_id": self.id, "event": type(event).__name__},
            )
            return

        self._last_activity = time.monotonic()

        if isinstance(event, AudioChunk):
            await self._on_audio(side, event)
        elif isinstance(event, TranscriptUpdated):
            self._transcript[event.entry.id] = event.entry
            await self._emit(event)
        elif isinstance(event, TurnCompleted):
            await self._on_turn_complete(side)
        elif isinstance(event, SessionStarted):
            await self._on_session_start(side)
        elif isinstance(event, SessionError):
            logger.error(
                "Dialog session error",
                extra={"conversation_id": self.id, "side": side.value, "error": event.message},
            )
            await self._emit(event)
            await self._terminate("error")
        elif isinstance(event, SessionEnded):
            await self._terminate(f"session {side.value} ended", ended_side=side)

    async def _on_session_start(self, side: Side) -> None:
        self._started[side] = True
        if self._announced or not all(self._started.values()):
            return

        self._announced = True
        greeted = self._sessions[self._first_speaker]
        greeting = self.config.greeting_template.format(name=greeted.persona.name)
        logger.info(
            "Both sessions ready",
            extra={"conversation_id": self.id, "first_speaker": self._first_speaker.value},
        )
        await greeted.send_message(greeting)
        await self._emit(SessionStarted(media_type=self.media_type))

    async def _on_audio(self, side: Side, event: AudioChunk) -> None:
        await self._emit(event)
        other = self._sessions.get(side.other)
        if other is not None:
            await other.send_audio(event.buffer)
        self.audio_log.append(event.buffer)

    async def _on_turn_complete(self, side: Side) -> None:
        other = self._sessions.get(side.other)
        if other is None:
            return
        await other.flush_audio()
        if self.request_stop:
            self.request_stop = False
            logger.info(
                "Asking other side to wrap up",
                extra={"conversation_id": self.id, "side": side.other.value},
            )
            await other.send_message(self.config.wrap_up_message)

    async def _terminate(self, reason: str, ended_side: Side | None = None) -> None:
        """Close the remaining session(s) and emit one ``SessionEnded``.

        Args:
            reason: Why the conversation ended (logged)
            ended_side: Side whose session already closed itself, if any
        """
        if self._ended:
            return
        self._ended = True

        sessions, self._sessions = self._sessions, {}
        for side, session in sessions.items():
            if side is not ended_side:
                session.set_listener(None)
                await session.close()

        watchdog, self._watchdog_task = self._watchdog_task, None
        if watchdog is not None and watchdog is not asyncio.current_task():
            watchdog.cancel()

        logger.info(
            "Conversation ended",
            extra={
                "conversation_id": self.id,
                "reason": reason,
                "audio_chunks": len(self.audio_log),
                "turns": len(self._transcript),
            },
        )
        await self._emit(SessionEnded())

    async def _idle_watchdog(self, timeout_s: float) -> None:
        while not self._ended:
            remaining = self._last_activity + timeout_s - time.monotonic()
            if remaining > 0:
                await asyncio.sleep(remaining)
                continue
            logger.warning(
                "Conversation idle timeout",
                extra={"conversation_id": self.id, "timeout_s": timeout_s},
            )
            await self._emit(SessionError(message=IDLE_TIMEOUT_MESSAGE))
            await self._terminate("idle timeout")
            return

    def transcript(self) -> list[TranscriptEntry]:
        """Latest entry per turn, in order of first appearance."""
        return list(self._transcript.values())

    def recording(self) -> bytes:
        """The conversation audio log as a WAV file."""
        sample_rate = parse_sample_rate(self.media_type) or 16000
        return build_recording(self.audio_log, sample_rate)
