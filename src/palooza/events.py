"""Normalized conversation events.

Dialog sessions translate backend protocol messages into these tagged events;
the coordinator routes them between the two sessions and re-emits a subset
to the transport layer.
"""

from dataclasses import dataclass

from src.palooza.models import AudioBuffer, TranscriptEntry


@dataclass(frozen=True)
class SessionStarted:
    """Backend confirmed setup (session level) or both sides are ready (conversation level)."""

    media_type: str


@dataclass(frozen=True)
class TranscriptUpdated:
    """Accumulated transcript of the current turn changed."""

    entry: TranscriptEntry


@dataclass(frozen=True)
class TurnCompleted:
    """The speaking persona finished its turn."""

    persona_id: str


@dataclass(frozen=True)
class AudioChunk:
    """Synthesized speech chunk, already resampled to the session media type."""

    buffer: AudioBuffer


@dataclass(frozen=True)
class SessionError:
    """Connection-level backend failure. Conversation fatal."""

    message: str


@dataclass(frozen=True)
class SessionEnded:
    """Session (or conversation) terminated. Emitted at most once."""


ConversationEvent = (
    SessionStarted | TranscriptUpdated | TurnCompleted | AudioChunk | SessionError | SessionEnded
)
