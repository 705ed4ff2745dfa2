"""PCM payload encoding for JSON transport.

Audio travels base64-encoded both to the dialog backend and to the client,
tagged with a media type of the form ``audio/pcm;rate=<hz>``.
"""

import base64
import binascii

PCM_MIME_PREFIX = "audio/pcm"


def encode_pcm(data: bytes) -> str:
    """Encode raw PCM bytes to a base64 string."""
    return base64.b64encode(data).decode("ascii")


def decode_pcm(encoded: str | bytes) -> bytes:
    """Decode a base64 PCM payload.

    Raises:
        ValueError: If the payload is not valid base64
    """
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Failed to decode base64 audio payload: {e}") from e


def pcm_media_type(sample_rate: int) -> str:
    """Media type descriptor for 16-bit PCM at ``sample_rate``."""
    return f"{PCM_MIME_PREFIX};rate={sample_rate}"


def parse_sample_rate(media_type: str) -> int | None:
    """Extract the ``rate`` parameter from a PCM media type.

    Returns:
        Sample rate in Hz, or None if the media type carries no rate
    """
    mime, _, params = media_type.partition(";")
    if mime.strip().lower() != PCM_MIME_PREFIX:
        return None
    for param in params.split(";"):
        key, _, value = param.partition("=")
        if key.strip().lower() == "rate" and value.strip().isdigit():
            return int(value.strip())
    return None
