"""Conversation recording assembly.

Concatenates a conversation's audio log into one linear PCM stream and wraps
it in a RIFF/WAVE container.

Silence insertion:
    Whenever the speaking persona changes between consecutive chunks, 0.5s of
    silence is inserted. The silence length is computed at 24kHz, 16-bit mono
    (24000 bytes) regardless of the recording's sample rate.
"""

import struct
from collections.abc import Iterable

from src.palooza.models import AudioBuffer

SILENCE_DURATION_S: float = 0.5
SILENCE_SAMPLE_RATE: int = 24000
CHANNELS: int = 1
BITS_PER_SAMPLE: int = 16
WAV_HEADER_SIZE: int = 44


def silence(duration_s: float = SILENCE_DURATION_S, sample_rate: int = SILENCE_SAMPLE_RATE) -> bytes:
    """Zeroed 16-bit mono PCM of the given duration."""
    return bytes(int(sample_rate * duration_s) * CHANNELS * (BITS_PER_SAMPLE // 8))


def assemble_pcm(buffers: Iterable[AudioBuffer]) -> bytes:
    """Concatenate chunks in order, separating speaker changes with silence.

    Args:
        buffers: Audio log in chronological order

    Returns:
        Raw PCM bytes of the whole conversation
    """
    gap = silence()
    parts: list[bytes] = []
    previous_persona: str | None = None
    for buffer in buffers:
        if previous_persona is not None and previous_persona != buffer.persona_id:
            parts.append(gap)
        parts.append(buffer.data)
        previous_persona = buffer.persona_id
    return b"".join(parts)


def wav_header(data_size: int, sample_rate: int) -> bytes:
    """Build a 44-byte canonical PCM WAVE header."""
    block_align = CHANNELS * BITS_PER_SAMPLE // 8
    byte_rate = sample_rate * block_align
    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_size,
        b"WAVE",
        b"fmt ",
        16,  # fmt chunk size
        1,  # PCM format tag
        CHANNELS,
        sample_rate,
        byte_rate,
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        data_size,
    )


def encode_wav(pcm: bytes, sample_rate: int) -> bytes:
    """Wrap raw PCM in a WAVE container."""
    return wav_header(len(pcm), sample_rate) + pcm


def build_recording(buffers: Iterable[AudioBuffer], sample_rate: int) -> bytes:
    """Assemble an audio log into a complete WAV file."""
    return encode_wav(assemble_pcm(buffers), sample_rate)
