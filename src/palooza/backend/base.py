"""Dialog session capability interface.

Defines the surface a coordinator needs from a realtime dialog backend:
lifecycle (start/close), text and audio input, and an end-of-utterance
signal. Sessions report back through a ``SessionListener``.
"""

from abc import ABC, abstractmethod

from src.palooza.backend.state import SessionState
from src.palooza.events import ConversationEvent
from src.palooza.models import AudioBuffer, Persona


class SessionListener(ABC):
    """Receives normalized events from a dialog session.

    Events from one session arrive in the order the backend emitted them.
    Handlers run on the event loop and may call back into any session,
    including closing the session that is currently dispatching.
    """

    @abstractmethod
    async def on_session_event(self, session: "DialogSession", event: ConversationEvent) -> None:
        """Handle one event emitted by ``session``."""
        pass


class DialogSession(ABC):
    """One persona's connection to a realtime dialog backend.

    Lifecycle: ``idle → connecting → active ⇄ speaking → closing → closed``,
    with ``error`` reachable from any non-terminal state. A session is never
    reused: once closed it stays closed.
    """

    @property
    @abstractmethod
    def persona(self) -> Persona:
        """Persona this session speaks as."""
        pass

    @property
    @abstractmethod
    def state(self) -> SessionState:
        """Current lifecycle state."""
        pass

    @property
    @abstractmethod
    def media_type(self) -> str:
        """Media type of audio chunks emitted by this session."""
        pass

    @abstractmethod
    def set_listener(self, listener: SessionListener | None) -> None:
        """Register (or clear) the event listener."""
        pass

    @abstractmethod
    async def start(self) -> None:
        """Open the backend connection.

        Emits ``SessionStarted`` once the backend confirms setup. Connection
        failures are reported as ``SessionError`` followed by ``SessionEnded``
        rather than raised.
        """
        pass

    @abstractmethod
    async def send_message(self, text: str) -> None:
        """Inject a text turn into the conversation (fire-and-forget)."""
        pass

    @abstractmethod
    async def send_audio(self, buffer: AudioBuffer) -> None:
        """Stream one audio chunk of the other persona's speech."""
        pass

    @abstractmethod
    async def flush_audio(self) -> None:
        """Signal end of the incoming utterance so the backend may respond."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Tear down the connection and emit ``SessionEnded`` exactly once.

        Idempotent: later calls neither emit nor raise.
        """
        pass


class DialogSessionFactory(ABC):
    """Creates vendor sessions for a persona and its system instruction."""

    @abstractmethod
    def create_session(self, persona: Persona, system_instruction: str) -> DialogSession:
        """Create an idle (not yet started) session."""
        pass

    @property
    @abstractmethod
    def media_type(self) -> str:
        """Media type negotiated with the client for all sessions."""
        pass
