"""Conversation data model.

Catalog entries (personas, styles) and the start request are Pydantic models
so they can be loaded from configuration files and client payloads alike.
Per-event payloads (transcript updates, audio chunks) are plain frozen
dataclasses; they are created on every backend message.
"""

import time
from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

VoiceCategory = Literal["male", "female"]


class Persona(BaseModel):
    """A named AI speaking identity.

    Only ``name``, ``description`` and the optional behavioral fields feed the
    system instruction; ``category``, ``avatar_url`` and ``hidden`` are catalog
    metadata passed through to clients.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., description="Stable persona identifier")
    name: str = Field(..., description="Display and spoken name")
    description: str = Field(..., description="One-line characterization")
    category: str = Field(default="", description="Catalog grouping")
    avatar_url: str = Field(default="", description="Avatar image URL")
    voice: VoiceCategory | None = Field(default=None, description="Voice pool category")
    speech: str | None = Field(default=None, description="Speech style")
    hidden: bool = Field(default=False, description="Exclude from public listings")
    personality_traits: list[str] | None = Field(default=None)
    speaking_style: str | None = Field(default=None)
    conversation_strengths: list[str] | None = Field(default=None)


class ConversationStyle(BaseModel):
    """A conversation style such as a debate or an interview."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(default="", description="Style identifier")
    name: str = Field(..., description="Style name")
    description: str = Field(..., description="Style description")


class ConversationRequest(BaseModel):
    """Immutable input for one conversation.

    ``personas[0]`` is bound to side A and ``personas[1]`` to side B.
    """

    model_config = ConfigDict(frozen=True)

    personas: tuple[Persona, Persona]
    style: ConversationStyle
    topic: str

    @property
    def persona_a(self) -> Persona:
        return self.personas[0]

    @property
    def persona_b(self) -> Persona:
        return self.personas[1]


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class TranscriptEntry:
    """Snapshot of one turn's transcript.

    ``text`` is the full accumulated text of the turn, so each update for the
    same ``id`` replaces the previous one rather than appending to it.
    """

    id: str
    speaker_id: str
    text: str
    timestamp: int = field(default_factory=now_ms)


@dataclass(frozen=True)
class AudioBuffer:
    """One chunk of synthesized speech belonging to a turn."""

    persona_id: str
    transcription_id: str
    data: bytes
    media_type: str
