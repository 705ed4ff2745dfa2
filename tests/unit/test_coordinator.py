"""Unit tests for the conversation coordinator.

Drives the coordinator with in-memory sessions and checks routing:
greeting, cross-feed, cooperative stop and paired teardown.
"""

import asyncio

import pytest
from fakes import FakeSession, FakeSessionFactory

from src.palooza.audio.recording import WAV_HEADER_SIZE
from src.palooza.config import ConversationConfig
from src.palooza.coordinator import (
    IDLE_TIMEOUT_MESSAGE,
    ConversationCoordinator,
    ConversationListener,
    Side,
)
from src.palooza.events import (
    AudioChunk,
    ConversationEvent,
    SessionEnded,
    SessionError,
    SessionStarted,
    TranscriptUpdated,
    TurnCompleted,
)
from src.palooza.models import AudioBuffer, ConversationRequest, Persona, TranscriptEntry

MEDIA_TYPE = "audio/pcm;rate=16000"
WRAP_UP = "Unfortunately our time is up we need to wrap up this conversation."


class RecordingListener(ConversationListener):
    """Collects outward events."""

    def __init__(self) -> None:
        self.events: list[ConversationEvent] = []

    async def on_conversation_event(self, event: ConversationEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list[ConversationEvent]:
        return [event for event in self.events if isinstance(event, event_type)]


def _audio(persona_id: str, turn: str = "t1", data: bytes = b"\x01\x00\x02\x00") -> AudioChunk:
    return AudioChunk(
        buffer=AudioBuffer(
            persona_id=persona_id, transcription_id=turn, data=data, media_type=MEDIA_TYPE
        )
    )


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def coordinator(
    conversation_request: ConversationRequest,
    session_factory: FakeSessionFactory,
    listener: RecordingListener,
) -> ConversationCoordinator:
    return ConversationCoordinator(conversation_request, session_factory, listener)


def _sides(session_factory: FakeSessionFactory) -> tuple[FakeSession, FakeSession]:
    side_a, side_b = session_factory.sessions
    return side_a, side_b


async def _start_both(side_a: FakeSession, side_b: FakeSession) -> None:
    await side_a.emit(SessionStarted(media_type=MEDIA_TYPE))
    await side_b.emit(SessionStarted(media_type=MEDIA_TYPE))


class TestCoordinatorSetup:
    """Test session construction and start."""

    def test_sessions_bound_to_persona_order(
        self, coordinator: ConversationCoordinator, session_factory: FakeSessionFactory
    ) -> None:
        """Test side A holds personas[0] and side B holds personas[1]."""
        side_a, side_b = _sides(session_factory)
        assert side_a.persona.id == "ada"
        assert side_b.persona.id == "max"
        assert coordinator.sessions == {Side.A: side_a, Side.B: side_b}

    def test_sessions_receive_instructions(
        self, coordinator: ConversationCoordinator, session_factory: FakeSessionFactory
    ) -> None:
        side_a, side_b = _sides(session_factory)
        assert side_a.system_instruction.startswith("You are Ada")
        assert side_b.system_instruction.startswith("You are Max")

    def test_coordinator_listens_to_both(
        self, coordinator: ConversationCoordinator, session_factory: FakeSessionFactory
    ) -> None:
        for session in session_factory.sessions:
            assert session.listener is coordinator

    @pytest.mark.asyncio
    async def test_start_opens_both_sessions(
        self, coordinator: ConversationCoordinator, session_factory: FakeSessionFactory
    ) -> None:
        await coordinator.start()
        assert all(session.started for session in session_factory.sessions)


class TestSessionStart:
    """Test the combined session start and greeting."""

    @pytest.mark.asyncio
    async def test_no_session_start_until_both_ready(
        self,
        coordinator: ConversationCoordinator,
        session_factory: FakeSessionFactory,
        listener: RecordingListener,
    ) -> None:
        """Test one side starting alone announces nothing."""
        side_a, side_b = _sides(session_factory)
        await side_a.emit(SessionStarted(media_type=MEDIA_TYPE))

        assert listener.events == []
        assert side_a.sent_messages == []
        assert side_b.sent_messages == []

    @pytest.mark.asyncio
    async def test_single_session_start_after_both(
        self,
        coordinator: ConversationCoordinator,
        session_factory: FakeSessionFactory,
        listener: RecordingListener,
    ) -> None:
        """Test exactly one outward SessionStarted with the media type."""
        side_a, side_b = _sides(session_factory)
        await _start_both(side_a, side_b)
        await side_a.emit(SessionStarted(media_type=MEDIA_TYPE))

        assert listener.events == [SessionStarted(media_type=MEDIA_TYPE)]

    @pytest.mark.asyncio
    async def test_greeting_sent_to_side_b_only(
        self,
        coordinator: ConversationCoordinator,
        session_factory: FakeSessionFactory,
    ) -> None:
        """Test the default first speaker is greeted by name."""
        side_a, side_b = _sides(session_factory)
        await _start_both(side_a, side_b)

        assert side_b.sent_messages == ["Hello, Max!"]
        assert side_a.sent_messages == []

    @pytest.mark.asyncio
    async def test_greeting_follows_first_speaker_policy(
        self,
        conversation_request: ConversationRequest,
        session_factory: FakeSessionFactory,
        listener: RecordingListener,
    ) -> None:
        """Test first_speaker="a" greets side A."""
        ConversationCoordinator(
            conversation_request,
            session_factory,
            listener,
            config=ConversationConfig(first_speaker="a"),
        )
        side_a, side_b = _sides(session_factory)
        await _start_both(side_a, side_b)

        assert side_a.sent_messages == ["Hello, Ada!"]
        assert side_b.sent_messages == []


class TestRouting:
    """Test audio cross-feed, transcripts and turn handling."""

    @pytest.mark.asyncio
    async def test_audio_relayed_and_cross_fed(
        self,
        coordinator: ConversationCoordinator,
        session_factory: FakeSessionFactory,
        listener: RecordingListener,
    ) -> None:
        """Test audio goes to the client and to the other side, never back."""
        side_a, side_b = _sides(session_factory)
        chunk = _audio("ada", "t1")

        await side_a.emit(chunk)

        assert listener.events == [chunk]
        assert side_b.sent_audio == [chunk.buffer]
        assert side_a.sent_audio == []
        assert coordinator.audio_log == [chunk.buffer]
        assert coordinator.audio_log[0].transcription_id == "t1"

    @pytest.mark.asyncio
    async def test_cross_feed_precedes_log_append(
        self,
        coordinator: ConversationCoordinator,
        session_factory: FakeSessionFactory,
    ) -> None:
        """Test the other side receives audio before it is logged."""
        side_a, side_b = _sides(session_factory)
        log_sizes: list[int] = []

        async def send_audio(buffer: AudioBuffer) -> None:
            log_sizes.append(len(coordinator.audio_log))

        side_b.send_audio = send_audio  # type: ignore[method-assign]

        await side_a.emit(_audio("ada", "t1"))

        assert log_sizes == [0]
        assert len(coordinator.audio_log) == 1

    @pytest.mark.asyncio
    async def test_same_persona_both_sides(
        self,
        ada: Persona,
        conversation_request: ConversationRequest,
        session_factory: FakeSessionFactory,
        listener: RecordingListener,
    ) -> None:
        """Test sides are told apart by session, not persona id."""
        request = ConversationRequest(
            personas=(ada, ada), style=conversation_request.style, topic="mirrors"
        )
        ConversationCoordinator(request, session_factory, listener)
        side_a, side_b = _sides(session_factory)

        await side_b.emit(_audio("ada", "t9"))

        assert side_a.sent_audio and side_a.sent_audio[0].transcription_id == "t9"
        assert side_b.sent_audio == []

    @pytest.mark.asyncio
    async def test_transcript_relayed_not_cross_fed(
        self,
        coordinator: ConversationCoordinator,
        session_factory: FakeSessionFactory,
        listener: RecordingListener,
    ) -> None:
        side_a, side_b = _sides(session_factory)
        event = TranscriptUpdated(entry=TranscriptEntry(id="t1", speaker_id="ada", text="Hi"))

        await side_a.emit(event)

        assert listener.events == [event]
        assert side_b.calls == []

    @pytest.mark.asyncio
    async def test_transcript_keeps_latest_per_turn(
        self,
        coordinator: ConversationCoordinator,
        session_factory: FakeSessionFactory,
    ) -> None:
        side_a, side_b = _sides(session_factory)
        await side_a.emit(
            TranscriptUpdated(entry=TranscriptEntry(id="t1", speaker_id="ada", text="Hi"))
        )
        await side_b.emit(
            TranscriptUpdated(entry=TranscriptEntry(id="t2", speaker_id="max", text="Hey"))
        )
        await side_a.emit(
            TranscriptUpdated(entry=TranscriptEntry(id="t1", speaker_id="ada", text="Hi Max"))
        )

        transcript = coordinator.transcript()
        assert [(entry.id, entry.text) for entry in transcript] == [
            ("t1", "Hi Max"),
            ("t2", "Hey"),
        ]

    @pytest.mark.asyncio
    async def test_turn_complete_flushes_other_side(
        self,
        coordinator: ConversationCoordinator,
        session_factory: FakeSessionFactory,
        listener: RecordingListener,
    ) -> None:
        """Test turn completion flushes the other side and stays internal."""
        side_a, side_b = _sides(session_factory)

        await side_a.emit(TurnCompleted(persona_id="ada"))

        assert side_b.flush_count == 1
        assert side_a.flush_count == 0
        assert side_b.sent_messages == []
        assert listener.events == []

    @pytest.mark.asyncio
    async def test_stop_wraps_up_on_next_turn(
        self,
        coordinator: ConversationCoordinator,
        session_factory: FakeSessionFactory,
    ) -> None:
        """Test a stop request cues the other side once."""
        side_a, side_b = _sides(session_factory)
        await coordinator.stop()
        assert coordinator.request_stop is True

        await side_a.emit(TurnCompleted(persona_id="ada"))

        assert side_b.calls == [("flush_audio", None), ("send_message", WRAP_UP)]
        assert coordinator.request_stop is False

        await side_b.emit(TurnCompleted(persona_id="max"))
        assert side_a.sent_messages == []


class TestTeardown:
    """Test paired teardown and event suppression."""

    @pytest.mark.asyncio
    async def test_session_end_closes_other_side(
        self,
        coordinator: ConversationCoordinator,
        session_factory: FakeSessionFactory,
        listener: RecordingListener,
    ) -> None:
        """Test one side ending closes the other with one SessionEnded."""
        side_a, side_b = _sides(session_factory)

        await side_a.close()

        assert side_b.close_count == 1
        assert listener.events == [SessionEnded()]
        assert not coordinator.is_active
        assert coordinator.sessions == {}

    @pytest.mark.asyncio
    async def test_no_events_after_end(
        self,
        coordinator: ConversationCoordinator,
        session_factory: FakeSessionFactory,
        listener: RecordingListener,
    ) -> None:
        side_a, side_b = _sides(session_factory)
        await side_a.close()

        await coordinator.on_session_event(side_b, _audio("max"))
        await coordinator.on_session_event(side_a, SessionEnded())

        assert listener.events == [SessionEnded()]
        assert coordinator.audio_log == []

    @pytest.mark.asyncio
    async def test_error_closes_both_sides(
        self,
        coordinator: ConversationCoordinator,
        session_factory: FakeSessionFactory,
        listener: RecordingListener,
    ) -> None:
        """Test an error is reported once, then both sides close."""
        side_a, side_b = _sides(session_factory)

        await side_a.emit(SessionError(message="boom"))

        assert listener.events == [SessionError(message="boom"), SessionEnded()]
        assert side_a.close_count == 1
        assert side_b.close_count == 1

    @pytest.mark.asyncio
    async def test_client_close_is_idempotent(
        self,
        coordinator: ConversationCoordinator,
        session_factory: FakeSessionFactory,
        listener: RecordingListener,
    ) -> None:
        side_a, side_b = _sides(session_factory)

        await coordinator.close()
        await coordinator.close()

        assert side_a.close_count == 1
        assert side_b.close_count == 1
        assert listener.of_type(SessionEnded) == [SessionEnded()]

    @pytest.mark.asyncio
    async def test_generation_end_scenario(
        self,
        coordinator: ConversationCoordinator,
        session_factory: FakeSessionFactory,
        listener: RecordingListener,
    ) -> None:
        """Test a full exchange ending from the backend."""
        side_a, side_b = _sides(session_factory)
        await _start_both(side_a, side_b)
        await side_b.emit(_audio("max", "t1"))
        await side_b.emit(TurnCompleted(persona_id="max"))
        await side_b.close()

        assert [type(event) for event in listener.events] == [
            SessionStarted,
            AudioChunk,
            SessionEnded,
        ]
        assert side_a.close_count == 1
        assert side_a.sent_audio and side_a.flush_count == 1

    @pytest.mark.asyncio
    async def test_stop_after_end_is_ignored(
        self,
        coordinator: ConversationCoordinator,
        session_factory: FakeSessionFactory,
    ) -> None:
        await coordinator.close()
        await coordinator.stop()
        assert coordinator.request_stop is False


class TestIdleWatchdog:
    """Test the optional idle timeout."""

    @pytest.mark.asyncio
    async def test_idle_conversation_times_out(
        self,
        conversation_request: ConversationRequest,
        session_factory: FakeSessionFactory,
        listener: RecordingListener,
    ) -> None:
        coordinator = ConversationCoordinator(
            conversation_request,
            session_factory,
            listener,
            config=ConversationConfig(idle_timeout_s=0.05),
        )
        await coordinator.start()
        await asyncio.sleep(0.2)

        assert listener.events == [SessionError(message=IDLE_TIMEOUT_MESSAGE), SessionEnded()]
        assert all(session.close_count == 1 for session in session_factory.sessions)

    @pytest.mark.asyncio
    async def test_watchdog_cancelled_on_close(
        self,
        conversation_request: ConversationRequest,
        session_factory: FakeSessionFactory,
        listener: RecordingListener,
    ) -> None:
        coordinator = ConversationCoordinator(
            conversation_request,
            session_factory,
            listener,
            config=ConversationConfig(idle_timeout_s=0.05),
        )
        await coordinator.start()
        await coordinator.close()
        await asyncio.sleep(0.1)

        assert listener.events == [SessionEnded()]


class TestRecording:
    """Test the audio log artifact."""

    @pytest.mark.asyncio
    async def test_recording_is_wav_with_silence(
        self,
        coordinator: ConversationCoordinator,
        session_factory: FakeSessionFactory,
    ) -> None:
        side_a, side_b = _sides(session_factory)
        await side_a.emit(_audio("ada", "t1", b"\x01\x00" * 4))
        await side_b.emit(_audio("max", "t2", b"\x02\x00" * 4))

        wav = coordinator.recording()

        assert wav[:4] == b"RIFF"
        assert len(wav) == WAV_HEADER_SIZE + 8 + 24000 + 8
