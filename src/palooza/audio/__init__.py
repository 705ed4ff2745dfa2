"""Audio utilities: PCM resampling, base64 payload codec, WAV recording."""

from .codec import decode_pcm, encode_pcm, parse_sample_rate, pcm_media_type
from .recording import assemble_pcm, build_recording, encode_wav
from .resampler import AudioResampler, resample_pcm16

__all__ = [
    "AudioResampler",
    "resample_pcm16",
    "encode_pcm",
    "decode_pcm",
    "pcm_media_type",
    "parse_sample_rate",
    "assemble_pcm",
    "build_recording",
    "encode_wav",
]
