"""Unit tests for the PCM16 linear-interpolation resampler."""

import numpy as np
import pytest

from src.palooza.audio.resampler import AudioResampler, resample_pcm16


def _pcm(samples: list[int] | np.ndarray) -> bytes:
    return np.asarray(samples, dtype="<i2").tobytes()


def _samples(data: bytes) -> np.ndarray:
    return np.frombuffer(data, dtype="<i2")


def _sine(rate: int, duration_s: float, freq: float = 440.0) -> bytes:
    t = np.arange(int(rate * duration_s)) / rate
    return (np.sin(2 * np.pi * freq * t) * 16000).astype("<i2").tobytes()


class TestResamplePcm16:
    """Test the stateless resampling function."""

    @pytest.mark.parametrize("rate", [8000, 16000, 24000, 48000])
    def test_equal_rates_returns_identical_bytes(self, rate: int) -> None:
        """Test equal rates pass the buffer through unchanged."""
        data = _sine(rate, 0.05)
        assert resample_pcm16(data, rate, rate) == data

    def test_24k_to_16k_length(self) -> None:
        """Test 24kHz → 16kHz yields two thirds of the samples."""
        data = _sine(24000, 0.02)  # 480 samples
        out = resample_pcm16(data, 24000, 16000)
        assert len(_samples(out)) == 320

    def test_endpoints_preserved(self) -> None:
        """Test first and last samples map exactly."""
        data = _pcm([100, 200, 300, 400, 500, 600])
        out = _samples(resample_pcm16(data, 24000, 16000))
        assert len(out) == 4
        assert out[0] == 100
        assert out[-1] == 600

    def test_linear_interpolation_values(self) -> None:
        """Test upsampling interpolates between neighbours."""
        data = _pcm([0, 100])
        out = _samples(resample_pcm16(data, 8000, 16000))
        # 4 output samples spanning positions 0, 1/3, 2/3, 1
        assert out.tolist() == [0, 33, 67, 100]

    def test_rounds_half_up(self) -> None:
        """Test x.5 values round toward positive infinity."""
        data = _pcm([0, 1])
        # Positions 0, 0.5, 1 → values 0, 0.5, 1
        out = _samples(resample_pcm16(data, 2, 3))
        assert out.tolist() == [0, 1, 1]

        negative = _samples(resample_pcm16(_pcm([0, -1]), 2, 3))
        assert negative.tolist() == [0, 0, -1]

    @pytest.mark.parametrize(
        ("rate_a", "rate_b"),
        [(24000, 16000), (16000, 24000), (48000, 16000), (16000, 44100)],
    )
    def test_round_trip_preserves_length(self, rate_a: int, rate_b: int) -> None:
        """Test resampling there and back keeps the length within one sample."""
        data = _sine(rate_a, 0.1)
        there = resample_pcm16(data, rate_a, rate_b)
        back = resample_pcm16(there, rate_b, rate_a)
        assert abs(len(_samples(back)) - len(_samples(data))) <= 1

    def test_empty_input(self) -> None:
        """Test empty buffer resamples to empty output."""
        assert resample_pcm16(b"", 24000, 16000) == b""

    def test_output_length_zero(self) -> None:
        """Test a single sample heavily downsampled yields nothing."""
        assert resample_pcm16(_pcm([1234]), 48000, 8000) == b""

    def test_output_length_one(self) -> None:
        """Test a single output sample is the first input sample."""
        out = resample_pcm16(_pcm([1234, 5678]), 24000, 16000)
        assert _samples(out).tolist() == [1234]

    def test_extreme_values_stay_in_range(self) -> None:
        """Test full-scale samples do not overflow."""
        data = _pcm([32767, -32768, 32767, -32768, 32767, -32768])
        out = _samples(resample_pcm16(data, 24000, 16000))
        assert out.max() <= 32767
        assert out.min() >= -32768

    def test_odd_length_rejected(self) -> None:
        """Test partial samples are rejected."""
        with pytest.raises(ValueError, match="multiple of 2"):
            resample_pcm16(b"\x00\x01\x02", 24000, 16000)

    @pytest.mark.parametrize(("rate_in", "rate_out"), [(0, 16000), (24000, 0), (-1, 16000)])
    def test_invalid_rates_rejected(self, rate_in: int, rate_out: int) -> None:
        """Test non-positive rates are rejected."""
        with pytest.raises(ValueError, match="positive"):
            resample_pcm16(b"\x00\x00", rate_in, rate_out)


class TestAudioResampler:
    """Test the rate-bound resampler object."""

    def test_properties(self) -> None:
        """Test rate accessors."""
        resampler = AudioResampler(source_rate=24000, target_rate=16000)
        assert resampler.source_rate == 24000
        assert resampler.target_rate == 16000

    def test_process_matches_function(self) -> None:
        """Test process() delegates to resample_pcm16()."""
        resampler = AudioResampler(source_rate=24000, target_rate=16000)
        data = _sine(24000, 0.02)
        assert resampler.process(data) == resample_pcm16(data, 24000, 16000)

    def test_output_size(self) -> None:
        """Test predicted output size matches actual output."""
        resampler = AudioResampler(source_rate=24000, target_rate=16000)
        data = _sine(24000, 0.03)
        assert resampler.output_size(len(data)) == len(resampler.process(data))

    def test_output_size_odd_rejected(self) -> None:
        """Test odd byte counts are rejected."""
        resampler = AudioResampler(source_rate=24000, target_rate=16000)
        with pytest.raises(ValueError):
            resampler.output_size(3)

    def test_invalid_rates(self) -> None:
        """Test construction with a non-positive rate fails."""
        with pytest.raises(ValueError, match="positive"):
            AudioResampler(source_rate=0, target_rate=16000)
