"""
Audio Processing Utilities.

The Gemini TTS model returns raw PCM: signed 16-bit little-endian samples,
mono, 24000 Hz. Everything PodCraft serves is a WAV container around that
PCM:
    - RIFF/WAVE container
    - PCM 16-bit encoding
    - Mono by default

Key Functions:
    pcm16_to_wav: Wrap raw PCM in a WAV container (encoding)
    wav_to_pcm16: Extract raw PCM from WAV bytes (decoding)
    silence_pcm16: Generate silent PCM for gaps between chunks
    pcm_duration_seconds: Duration of a PCM buffer
    decode_data_url: Decode base64 images from data URLs

Dependencies:
    - numpy: Sample buffers
    - soundfile: WAV reading/writing (libsndfile)

Example:
    >>> pcm = silence_pcm16(1000, 24000)
    >>> wav = pcm16_to_wav(pcm, 24000)
    >>> wav[:4], wav[8:12]
    (b'RIFF', b'WAVE')
"""
from __future__ import annotations

import base64
import binascii
import io
import re
from typing import Tuple

import numpy as np
import soundfile as sf

from podcraft.core.logging import get_logger, verbose, warn
from podcraft.utils.timeit import timeit

_LOG = get_logger("podcraft.audio")

BYTES_PER_SAMPLE = 2

_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[^,]*)?,(?P<data>.*)$", re.DOTALL)


def pcm16_to_wav(pcm: bytes, sample_rate: int, channels: int = 1) -> bytes:
    """
    Wrap signed 16-bit little-endian PCM in a WAV container.

    Args:
        pcm: Raw PCM bytes as returned by the TTS API.
        sample_rate: Sample rate in Hz (24000 for Gemini TTS).
        channels: Number of interleaved channels.

    Returns:
        Complete WAV file bytes (RIFF header + fmt + data chunk).

    Note:
        A trailing partial sample frame cannot be represented and is
        dropped with a warning.
    """
    frame_bytes = BYTES_PER_SAMPLE * channels
    remainder = len(pcm) % frame_bytes
    if remainder:
        warn(_LOG, "pcm_truncated", dropped_bytes=remainder, total_bytes=len(pcm))
        pcm = pcm[: len(pcm) - remainder]

    with timeit("wav_encode") as t:
        samples = np.frombuffer(pcm, dtype="<i2")
        if channels > 1:
            samples = samples.reshape(-1, channels)

        buf = io.BytesIO()
        sf.write(buf, samples, sample_rate, format="WAV", subtype="PCM_16")
        out = buf.getvalue()

    verbose(
        _LOG, "wav_encoded",
        bytes=len(out),
        sr=sample_rate,
        seconds=round(t.elapsed, 4),
    )
    return out


def wav_to_pcm16(wav_bytes: bytes) -> Tuple[bytes, int]:
    """
    Decode WAV bytes back to raw 16-bit PCM.

    Args:
        wav_bytes: WAV file contents.

    Returns:
        Tuple of (pcm_bytes, sample_rate). Multi-channel audio is returned
        interleaved.
    """
    data, sr = sf.read(io.BytesIO(wav_bytes), dtype="int16")
    return np.ascontiguousarray(data, dtype="<i2").tobytes(), int(sr)


def silence_pcm16(ms: int, sample_rate: int, channels: int = 1) -> bytes:
    """Return `ms` milliseconds of digital silence as 16-bit PCM."""
    if ms <= 0:
        return b""
    frames = int(sample_rate * ms / 1000)
    return bytes(frames * BYTES_PER_SAMPLE * channels)


def pcm_duration_seconds(pcm: bytes | int, sample_rate: int, channels: int = 1) -> float:
    """Duration of a PCM buffer (or a byte count) in seconds."""
    n = pcm if isinstance(pcm, int) else len(pcm)
    if sample_rate <= 0:
        return 0.0
    return n / float(BYTES_PER_SAMPLE * channels * sample_rate)


def decode_data_url(value: str, default_mime: str = "image/jpeg") -> Tuple[bytes, str]:
    """
    Decode an inline image given as a data URL or bare base64.

    Args:
        value: "data:image/png;base64,iVBOR..." or "iVBOR...".
        default_mime: MIME type assumed for bare base64.

    Returns:
        Tuple of (raw_bytes, mime_type).

    Raises:
        ValueError: If the payload is not valid base64.
    """
    value = value.strip()
    mime = default_mime
    m = _DATA_URL.match(value)
    if m:
        mime = m.group("mime") or default_mime
        value = m.group("data")
    value = "".join(value.split())

    try:
        return base64.b64decode(value, validate=True), mime
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"invalid base64 image data: {e}") from e
