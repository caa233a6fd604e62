"""Tests for PCM/WAV helpers."""
from __future__ import annotations

import base64
import struct

import pytest

from podcraft.utils.audio import (
    decode_data_url,
    pcm16_to_wav,
    pcm_duration_seconds,
    silence_pcm16,
    wav_to_pcm16,
)


class TestWavEncoding:

    def test_wav_header(self):
        """The header declares PCM 16-bit mono at the given rate."""
        wav = pcm16_to_wav(b"\x01\x00" * 100, 24000)

        assert wav[:4] == b"RIFF"
        assert wav[8:12] == b"WAVE"
        assert wav[12:16] == b"fmt "
        fmt_tag, channels, sample_rate = struct.unpack("<HHI", wav[20:28])
        bits = struct.unpack("<H", wav[34:36])[0]
        assert (fmt_tag, channels, sample_rate, bits) == (1, 1, 24000, 16)

    def test_pcm_survives_wav(self):
        pcm = b"".join(struct.pack("<h", v) for v in (0, 1, -1, 32767, -32768))
        wav = pcm16_to_wav(pcm, 24000)
        decoded, sr = wav_to_pcm16(wav)

        assert decoded == pcm
        assert sr == 24000

    def test_partial_frame_dropped(self):
        wav = pcm16_to_wav(b"\x01\x00\x02", 16000)
        decoded, _ = wav_to_pcm16(wav)
        assert decoded == b"\x01\x00"

    def test_stereo(self):
        pcm = b"\x01\x00\x02\x00" * 10
        wav = pcm16_to_wav(pcm, 24000, channels=2)
        assert struct.unpack("<H", wav[22:24])[0] == 2


class TestPcmHelpers:

    def test_silence_length(self):
        assert len(silence_pcm16(100, 24000)) == 4800
        assert len(silence_pcm16(100, 24000, channels=2)) == 9600
        assert silence_pcm16(0, 24000) == b""
        assert set(silence_pcm16(10, 8000)) == {0}

    def test_duration(self):
        assert pcm_duration_seconds(b"\x00" * 48000, 24000) == pytest.approx(1.0)
        assert pcm_duration_seconds(96000, 24000, channels=2) == pytest.approx(1.0)
        assert pcm_duration_seconds(b"\x00" * 10, 0) == 0.0


class TestDecodeDataUrl:

    def test_data_url(self):
        payload = base64.b64encode(b"\x89PNG").decode()
        data, mime = decode_data_url(f"data:image/png;base64,{payload}")
        assert data == b"\x89PNG"
        assert mime == "image/png"

    def test_bare_base64_defaults_to_jpeg(self):
        data, mime = decode_data_url(base64.b64encode(b"jpeg!").decode())
        assert data == b"jpeg!"
        assert mime == "image/jpeg"

    def test_invalid_base64(self):
        with pytest.raises(ValueError):
            decode_data_url("data:image/png;base64,@@@not-base64@@@")
