"""Gemini Live dialog session.

Wraps one ``google-genai`` Live connection for exactly one persona and
translates its server messages into normalized conversation events:

    setup_complete                      → SessionStarted
    tool_call(<stop tool>)              → close()
    server_content.output_transcription → TranscriptUpdated (full turn text)
    server_content.model_turn audio     → AudioChunk (24kHz → 16kHz)
    server_content.turn_complete        → TurnCompleted
    server_content.generation_complete  → new turn, or close() when the turn
                                          was empty or leaked the stop tool
                                          name as text
    anything else                       → logged and ignored

The backend sometimes speaks the stop tool's name instead of calling it, so
a transcript containing the tool name ends the conversation the same way a
structured call does. Other leak shapes are not detected.

Thread-safety: This class is NOT thread-safe. Use from a single event loop.
"""

import asyncio
import logging
import random
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from websockets.exceptions import ConnectionClosedOK

from src.palooza.audio.codec import decode_pcm, pcm_media_type
from src.palooza.audio.resampler import AudioResampler
from src.palooza.backend.base import DialogSession, DialogSessionFactory, SessionListener
from src.palooza.backend.state import (
    SessionMetrics,
    SessionState,
    TurnBuffer,
    is_valid_transition,
)
from src.palooza.backend.voices import choose_voice
from src.palooza.config import BackendConfig
from src.palooza.errors import BackendConnectionError
from src.palooza.events import (
    AudioChunk,
    ConversationEvent,
    SessionEnded,
    SessionError,
    SessionStarted,
    TranscriptUpdated,
    TurnCompleted,
)
from src.palooza.models import AudioBuffer, Persona, TranscriptEntry

logger = logging.getLogger(__name__)

STOP_TOOL_DESCRIPTION = "Notify that the conversation has terminated"

CLOSE_NORMAL = 1000


def is_clean_close(error: Exception) -> bool:
    """Whether ``error`` is the SDK's report of a normal closure without a reason.

    Recent ``google-genai`` releases re-raise websocket closures as
    ``APIError`` carrying the close code and reason.
    """
    return (
        isinstance(error, genai_errors.APIError)
        and error.code == CLOSE_NORMAL
        and not error.message
    )


def build_live_config(
    config: BackendConfig, system_instruction: str, voice_name: str
) -> types.LiveConnectConfig:
    """Build the Live connection config for one persona."""
    return types.LiveConnectConfig(
        response_modalities=[types.Modality.AUDIO],
        system_instruction=types.Content(parts=[types.Part(text=system_instruction)]),
        realtime_input_config=types.RealtimeInputConfig(
            automatic_activity_detection=types.AutomaticActivityDetection(
                disabled=False,
                prefix_padding_ms=config.prefix_padding_ms,
                silence_duration_ms=config.silence_duration_ms,
            ),
        ),
        speech_config=types.SpeechConfig(
            voice_config=types.VoiceConfig(
                prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice_name)
            )
        ),
        output_audio_transcription=types.AudioTranscriptionConfig(),
        # Live API takes tool declarations as raw dicts
        tools=[
            {
                "function_declarations": [
                    {
                        "name": config.stop_tool_name,
                        "description": STOP_TOOL_DESCRIPTION,
                        "parameters": {"type": "OBJECT", "properties": {}},
                    }
                ]
            }
        ],
    )


class GeminiLiveSession(DialogSession):
    """Dialog session backed by a Gemini Live connection."""

    def __init__(
        self,
        persona: Persona,
        system_instruction: str,
        client: genai.Client,
        config: BackendConfig,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize an idle session.

        Args:
            persona: Persona this session speaks as
            system_instruction: Behavioral directive for the persona
            client: Shared ``genai.Client``
            config: Backend configuration
            rng: Random source for voice selection (tests pass a seeded one)
        """
        self._persona = persona
        self._system_instruction = system_instruction
        self._client = client
        self._config = config
        self._rng = rng

        self._state = SessionState.IDLE
        self._listener: SessionListener | None = None
        self._connection: Any = None  # async context manager from live.connect()
        self._session: Any = None  # genai AsyncSession
        self._receive_task: asyncio.Task[None] | None = None

        self._turn = TurnBuffer()
        self._resampler = AudioResampler(
            source_rate=config.output_sample_rate,
            target_rate=config.target_sample_rate,
        )
        self._media_type = pcm_media_type(config.target_sample_rate)
        self.voice: str | None = None
        self.metrics = SessionMetrics()

    @property
    def persona(self) -> Persona:
        """Persona this session speaks as."""
        return self._persona

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        return self._state

    @property
    def media_type(self) -> str:
        """Media type of emitted audio chunks."""
        return self._media_type

    @property
    def turn(self) -> TurnBuffer:
        """Transcript buffer of the current turn."""
        return self._turn

    @property
    def is_closed(self) -> bool:
        return self._state in (SessionState.CLOSING, SessionState.CLOSED)

    def set_listener(self, listener: SessionListener | None) -> None:
        self._listener = listener

    def _transition(self, new_state: SessionState) -> None:
        """Transition to a new state with validation.

        Raises:
            ValueError: If transition is invalid
        """
        if not is_valid_transition(self._state, new_state):
            raise ValueError(f"Invalid state transition: {self._state.value} → {new_state.value}")

        old_state = self._state
        self._state = new_state

        logger.debug(
            "Dialog session state transition",
            extra={
                "persona_id": self._persona.id,
                "from_state": old_state.value,
                "to_state": new_state.value,
            },
        )

    async def _emit(self, event: ConversationEvent) -> None:
        if self._listener is not None:
            await self._listener.on_session_event(self, event)

    async def start(self) -> None:
        """Open the Live connection and begin receiving.

        A new voice is drawn from the persona's pool on every start.
        """
        if self._state is not SessionState.IDLE:
            logger.warning(
                "Dialog session already started",
                extra={"persona_id": self._persona.id, "state": self._state.value},
            )
            return

        self._transition(SessionState.CONNECTING)
        self.voice = choose_voice(self._persona.voice, self._config.advanced_mode, self._rng)
        live_config = build_live_config(self._config, self._system_instruction, self.voice)

        logger.info(
            "Connecting to Gemini Live",
            extra={
                "persona_id": self._persona.id,
                "model": self._config.live_model,
                "voice": self.voice,
            },
        )

        try:
            connection, session = await self._connect(live_config)
        except BackendConnectionError as e:
            logger.error(
                "Failed to connect to Gemini Live",
                extra={"persona_id": self._persona.id, "error": str(e)},
            )
            await self._fail(str(e))
            return

        if self.is_closed:
            # close() ran while the connection was being established
            await self._exit_connection(connection)
            return

        self._connection = connection
        self._session = session
        self._receive_task = asyncio.create_task(
            self._receive_loop(), name=f"gemini-receive-{self._persona.id}"
        )

        # The SDK consumes the setup response inside connect()
        await self._on_setup_complete()

    async def _connect(self, live_config: types.LiveConnectConfig) -> tuple[Any, Any]:
        """Open the Live connection.

        Raises:
            BackendConnectionError: If the connection cannot be established
        """
        try:
            connection = self._client.aio.live.connect(
                model=self._config.live_model, config=live_config
            )
            session = await connection.__aenter__()
        except Exception as e:
            raise BackendConnectionError(f"Failed to connect to dialog backend: {e}") from e
        return connection, session

    async def send_message(self, text: str) -> None:
        """Inject a user text turn (greeting, wrap-up cue)."""
        if self._session is None or self.is_closed:
            return
        try:
            await self._session.send_client_content(
                turns=types.Content(role="user", parts=[types.Part(text=text)]),
                turn_complete=True,
            )
        except Exception as e:
            logger.warning(
                "Failed to send text to Gemini Live",
                extra={"persona_id": self._persona.id, "error": str(e)},
            )

    async def send_audio(self, buffer: AudioBuffer) -> None:
        """Stream one chunk of the other persona's speech."""
        if self._session is None or self.is_closed:
            return
        try:
            # The SDK base64-encodes Blob data on the wire
            await self._session.send_realtime_input(
                audio=types.Blob(data=buffer.data, mime_type=buffer.media_type)
            )
        except Exception as e:
            logger.warning(
                "Failed to send audio to Gemini Live",
                extra={"persona_id": self._persona.id, "error": str(e)},
            )

    async def flush_audio(self) -> None:
        """Mark the end of the incoming audio stream."""
        if self._session is None or self.is_closed:
            return
        try:
            await self._session.send_realtime_input(audio_stream_end=True)
        except Exception as e:
            logger.warning(
                "Failed to flush audio to Gemini Live",
                extra={"persona_id": self._persona.id, "error": str(e)},
            )

    async def close(self) -> None:
        """Close the connection and emit ``SessionEnded`` once."""
        if self.is_closed:
            return

        self._transition(SessionState.CLOSING)

        listener, self._listener = self._listener, None
        connection, self._connection = self._connection, None
        self._session = None

        task, self._receive_task = self._receive_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

        if connection is not None:
            await self._exit_connection(connection)

        self._transition(SessionState.CLOSED)
        self.metrics.finalize()

        logger.info(
            "Dialog session closed",
            extra={"persona_id": self._persona.id, **self.metrics.summary()},
        )

        if listener is not None:
            await listener.on_session_event(self, SessionEnded())

    async def _exit_connection(self, connection: Any) -> None:
        try:
            await connection.__aexit__(None, None, None)
        except Exception as e:
            logger.warning(
                "Error closing Gemini Live connection",
                extra={"persona_id": self._persona.id, "error": str(e)},
            )

    async def _fail(self, message: str) -> None:
        """Report a connection-level error and terminate."""
        if self.is_closed:
            return
        self._transition(SessionState.ERROR)
        await self._emit(SessionError(message=message))
        await self.close()

    async def _receive_loop(self) -> None:
        """Dispatch server messages until the connection ends.

        ``AsyncSession.receive()`` stops after each completed turn, so it is
        re-entered until the connection is gone.
        """
        try:
            while self._session is not None and not self.is_closed:
                received = 0
                async for message in self._session.receive():
                    received += 1
                    await self.handle_message(message)
                    if self.is_closed:
                        return
                if received == 0:
                    # receive() yields nothing once the server has hung up
                    logger.info(
                        "Gemini Live stream ended", extra={"persona_id": self._persona.id}
                    )
                    await self.close()
                    return
        except ConnectionClosedOK:
            logger.info("Gemini Live connection closed", extra={"persona_id": self._persona.id})
            await self.close()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self.is_closed:
                return
            if is_clean_close(e):
                logger.info(
                    "Gemini Live connection closed", extra={"persona_id": self._persona.id}
                )
                await self.close()
                return
            logger.error(
                "Gemini Live connection error",
                extra={"persona_id": self._persona.id, "error": str(e)},
            )
            await self._fail(f"Dialog backend connection error: {e}")

    async def handle_message(self, message: types.LiveServerMessage) -> None:
        """Translate one server message into normalized events."""
        if self.is_closed:
            return

        if message.setup_complete is not None:
            await self._on_setup_complete()
            return

        if message.tool_call is not None and message.tool_call.function_calls:
            names = [call.name for call in message.tool_call.function_calls]
            logger.info(
                "Received tool call",
                extra={"persona_id": self._persona.id, "functions": names},
            )
            if self._config.stop_tool_name in names:
                logger.info(
                    "Conversation stopped by backend", extra={"persona_id": self._persona.id}
                )
                await self.close()
            return

        content = message.server_content
        if content is None:
            logger.debug(
                "Unhandled Gemini Live message",
                extra={"persona_id": self._persona.id, "message": repr(message)[:200]},
            )
            return

        handled = False

        if content.output_transcription is not None and content.output_transcription.text:
            await self._on_transcription(content.output_transcription.text)
            handled = True

        if content.model_turn is not None and content.model_turn.parts:
            await self._on_model_turn(content.model_turn.parts)
            handled = True

        if content.turn_complete and not self.is_closed:
            await self._on_turn_complete()
            handled = True

        if content.generation_complete and not self.is_closed:
            await self._on_generation_complete()
            handled = True

        if not handled:
            logger.debug(
                "Unhandled Gemini Live server content",
                extra={"persona_id": self._persona.id, "content": repr(content)[:200]},
            )

    async def _on_setup_complete(self) -> None:
        if self._state is not SessionState.CONNECTING:
            return
        self._transition(SessionState.ACTIVE)
        logger.info("Gemini Live session ready", extra={"persona_id": self._persona.id})
        await self._emit(SessionStarted(media_type=self._media_type))

    def _mark_speaking(self) -> None:
        if self._state is SessionState.ACTIVE:
            self._transition(SessionState.SPEAKING)

    async def _on_transcription(self, delta: str) -> None:
        self._mark_speaking()
        text = self._turn.append(delta)
        self.metrics.record_transcript()
        entry = TranscriptEntry(
            id=self._turn.turn_id,
            speaker_id=self._persona.id,
            text=text,
            timestamp=self._turn.created_at,
        )
        await self._emit(TranscriptUpdated(entry=entry))

    async def _on_model_turn(self, parts: list[types.Part]) -> None:
        for part in parts:
            data = part.inline_data.data if part.inline_data is not None else None
            if not data:
                logger.debug("Received part without audio", extra={"persona_id": self._persona.id})
                continue

            raw = data if isinstance(data, bytes) else decode_pcm(data)
            resampled = self._resampler.process(raw)
            self._mark_speaking()
            self.metrics.record_audio(len(resampled))
            await self._emit(
                AudioChunk(
                    buffer=AudioBuffer(
                        persona_id=self._persona.id,
                        transcription_id=self._turn.turn_id,
                        data=resampled,
                        media_type=self._media_type,
                    )
                )
            )
            if self.is_closed:
                return

    async def _on_turn_complete(self) -> None:
        # The turn buffer survives until generation completes; late
        # transcription corrections still belong to this turn.
        self.metrics.record_turn()
        logger.debug(
            "Turn complete",
            extra={"persona_id": self._persona.id, "turn_id": self._turn.turn_id},
        )
        await self._emit(TurnCompleted(persona_id=self._persona.id))

    async def _on_generation_complete(self) -> None:
        if self._turn.is_blank or self._config.stop_tool_name in self._turn.text:
            logger.info(
                "Generation ended the conversation",
                extra={
                    "persona_id": self._persona.id,
                    "empty_turn": self._turn.is_blank,
                },
            )
            await self.close()
            return

        self._turn.reset()
        if self._state is SessionState.SPEAKING:
            self._transition(SessionState.ACTIVE)


class GeminiSessionFactory(DialogSessionFactory):
    """Creates ``GeminiLiveSession`` instances sharing one ``genai.Client``."""

    def __init__(self, config: BackendConfig, client: genai.Client | None = None) -> None:
        """Initialize the factory.

        Args:
            config: Backend configuration
            client: Optional pre-built client (tests inject a mock)

        Raises:
            ConfigurationError: If no API key is configured and no client is given
        """
        self._config = config
        self._client = client if client is not None else genai.Client(
            api_key=config.require_api_key()
        )

    @property
    def client(self) -> genai.Client:
        return self._client

    @property
    def media_type(self) -> str:
        return pcm_media_type(self._config.target_sample_rate)

    def create_session(self, persona: Persona, system_instruction: str) -> GeminiLiveSession:
        return GeminiLiveSession(persona, system_instruction, self._client, self._config)
