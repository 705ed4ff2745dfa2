"""Dialog session state tracking.

Holds the per-session state machine, the current turn's transcript buffer,
and activity metrics used for logging.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum

from src.palooza.models import now_ms

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Dialog session state machine states.

    State Transitions:
    - IDLE → CONNECTING (on start)
    - CONNECTING → ACTIVE (on backend setup confirmation)
    - ACTIVE → SPEAKING (on first transcript/audio of a turn)
    - SPEAKING → ACTIVE (on generation complete)
    - * → ERROR (on connection failure)
    - * → CLOSING → CLOSED (on close)
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    SPEAKING = "speaking"
    ERROR = "error"
    CLOSING = "closing"
    CLOSED = "closed"


# Valid state transitions
VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.IDLE: {SessionState.CONNECTING, SessionState.ERROR, SessionState.CLOSING},
    SessionState.CONNECTING: {SessionState.ACTIVE, SessionState.ERROR, SessionState.CLOSING},
    SessionState.ACTIVE: {SessionState.SPEAKING, SessionState.ERROR, SessionState.CLOSING},
    SessionState.SPEAKING: {SessionState.ACTIVE, SessionState.ERROR, SessionState.CLOSING},
    SessionState.ERROR: {SessionState.CLOSING},
    SessionState.CLOSING: {SessionState.CLOSED},
    SessionState.CLOSED: set(),  # Terminal state
}


def is_valid_transition(current: SessionState, new: SessionState) -> bool:
    return new in VALID_TRANSITIONS.get(current, set())


def new_turn_id() -> str:
    return str(uuid.uuid4())


@dataclass
class TurnBuffer:
    """Accumulated transcript of the current turn.

    The turn id and text are replaced together by ``reset()`` so the id never
    refers to text from another turn.
    """

    turn_id: str = field(default_factory=new_turn_id)
    text: str = ""
    created_at: int = field(default_factory=now_ms)

    def append(self, delta: str) -> str:
        """Append a transcription delta and return the full text so far."""
        self.text += delta
        return self.text

    def reset(self) -> None:
        """Start a new turn: fresh id, empty text, new creation time."""
        self.turn_id = new_turn_id()
        self.text = ""
        self.created_at = now_ms()

    @property
    def is_blank(self) -> bool:
        return not self.text.strip()


@dataclass
class SessionMetrics:
    """Dialog session activity metrics."""

    audio_chunks: int = 0
    audio_bytes: int = 0
    transcript_updates: int = 0
    turns_completed: int = 0

    session_start_ts: float = field(default_factory=time.monotonic)
    first_audio_ts: float | None = None
    session_end_ts: float | None = None

    def record_audio(self, size: int) -> None:
        self.audio_chunks += 1
        self.audio_bytes += size
        if self.first_audio_ts is None:
            self.first_audio_ts = time.monotonic()

    def record_transcript(self) -> None:
        self.transcript_updates += 1

    def record_turn(self) -> None:
        self.turns_completed += 1

    @property
    def first_audio_latency_ms(self) -> float | None:
        if self.first_audio_ts is None:
            return None
        return (self.first_audio_ts - self.session_start_ts) * 1000.0

    def finalize(self) -> None:
        """Mark session as complete and record end time."""
        if self.session_end_ts is None:
            self.session_end_ts = time.monotonic()

    def summary(self) -> dict[str, float | int | None]:
        return {
            "audio_chunks": self.audio_chunks,
            "audio_bytes": self.audio_bytes,
            "transcript_updates": self.transcript_updates,
            "turns_completed": self.turns_completed,
            "first_audio_latency_ms": self.first_audio_latency_ms,
            "session_duration_s": (
                (self.session_end_ts or time.monotonic()) - self.session_start_ts
            ),
        }
