"""Linear-interpolation resampler for 16-bit PCM.

Converts mono 16-bit little-endian PCM between sample rates. Gemini Live
synthesizes speech at 24kHz but expects input at 16kHz, so every audio chunk
passes through here before it is cross-fed to the other persona.

Algorithm:
    output_length = round(output_rate / input_rate * input_length)
    t_i = i * (input_length - 1) / (output_length - 1)
    y_i = x[floor(t_i)] + (x[min(floor(t_i) + 1, input_length - 1)] - x[floor(t_i)]) * frac(t_i)

Degenerate lengths:
    - empty input, or output_length == 0 -> empty output
    - output_length == 1 -> the first input sample (no interpolation span)
"""

import logging

import numpy as np
from numpy.typing import NDArray

logger = logging.getLogger(__name__)

BYTES_PER_SAMPLE = 2


def _round_half_up(values: NDArray[np.float64]) -> NDArray[np.float64]:
    # np.round is banker's rounding; sample values round half toward +inf
    return np.floor(values + 0.5)


def resample_pcm16(data: bytes, input_rate: int, output_rate: int) -> bytes:
    """Resample a mono PCM16 LE buffer.

    Args:
        data: Raw PCM bytes (16-bit signed, little endian, mono)
        input_rate: Sample rate of ``data`` in Hz
        output_rate: Desired sample rate in Hz

    Returns:
        Resampled PCM bytes. When the rates are equal the input is returned
        as is; ``bytes`` is immutable so callers may treat it as a copy.

    Raises:
        ValueError: If a rate is not positive or ``data`` has an odd length
    """
    if input_rate <= 0 or output_rate <= 0:
        raise ValueError(
            f"Sample rates must be positive: input={input_rate}, output={output_rate}"
        )
    if len(data) % BYTES_PER_SAMPLE != 0:
        raise ValueError(
            f"PCM16 buffer size must be a multiple of 2 bytes, got {len(data)} bytes"
        )

    if input_rate == output_rate:
        return data

    samples = np.frombuffer(data, dtype="<i2")
    input_length = len(samples)
    output_length = round(output_rate / input_rate * input_length)

    if input_length == 0 or output_length <= 0:
        return b""
    if output_length == 1:
        return samples[:1].astype("<i2").tobytes()

    positions = np.arange(output_length, dtype=np.float64) * (
        (input_length - 1) / (output_length - 1)
    )
    lower = np.floor(positions).astype(np.int64)
    upper = np.minimum(lower + 1, input_length - 1)
    fraction = positions - lower

    source = samples.astype(np.float64)
    interpolated = source[lower] + (source[upper] - source[lower]) * fraction

    out = np.clip(
        _round_half_up(interpolated),
        np.iinfo(np.int16).min,
        np.iinfo(np.int16).max,
    ).astype("<i2")
    return out.tobytes()


class AudioResampler:
    """Resampler bound to a fixed rate pair.

    Example:
        ```python
        resampler = AudioResampler(source_rate=24000, target_rate=16000)
        chunk_16k = resampler.process(chunk_24k)
        ```
    """

    def __init__(self, source_rate: int, target_rate: int) -> None:
        """Initialize resampler.

        Args:
            source_rate: Source sample rate in Hz (e.g., 24000)
            target_rate: Target sample rate in Hz (e.g., 16000)

        Raises:
            ValueError: If sample rates are invalid
        """
        if source_rate <= 0 or target_rate <= 0:
            raise ValueError(
                f"Sample rates must be positive: source={source_rate}, target={target_rate}"
            )

        self._source_rate = source_rate
        self._target_rate = target_rate

        logger.debug(f"Resampler initialized: {source_rate}Hz → {target_rate}Hz")

    def process(self, data: bytes) -> bytes:
        """Resample one PCM16 chunk from the source to the target rate."""
        return resample_pcm16(data, self._source_rate, self._target_rate)

    def output_size(self, input_size_bytes: int) -> int:
        """Expected output size in bytes for an input of ``input_size_bytes``."""
        if input_size_bytes % BYTES_PER_SAMPLE != 0:
            raise ValueError(f"Input size must be a multiple of 2 bytes, got {input_size_bytes}")
        if self._source_rate == self._target_rate:
            return input_size_bytes
        input_samples = input_size_bytes // BYTES_PER_SAMPLE
        return round(self._target_rate / self._source_rate * input_samples) * BYTES_PER_SAMPLE

    @property
    def source_rate(self) -> int:
        """Get source sample rate."""
        return self._source_rate

    @property
    def target_rate(self) -> int:
        """Get target sample rate."""
        return self._target_rate
