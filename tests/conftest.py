"""Shared fixtures: temp settings and a fake Gemini client (no network)."""
from __future__ import annotations

import threading
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import pytest

from podcraft.core.config import Settings
from podcraft.models import PodcastScript, PodcastSegment, ScriptLine, Speaker

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def make_pdf(text: str) -> bytes:
    """A one-page PDF showing `text` in Helvetica, with a valid xref table."""
    content = f"BT /F1 12 Tf 20 100 Td ({text}) Tj ET".encode("latin-1")
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 300 144] /Contents 4 0 R "
        b"/Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(content) + content + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"
    xref_at = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, xref_at)
    return bytes(out)


class FakeGenAI:
    """
    Stand-in for GeminiClient.

    synthesize() returns 100 ms of PCM per call (constant sample value
    derived from the prompt) unless `synth` is given; failures can be
    injected per call with `synth_errors` (exceptions raised in order).
    """

    tts_model = "fake-tts"

    def __init__(
        self,
        lines: int = 4,
        synth: Optional[Callable[[str, Mapping[str, str]], bytes]] = None,
        synth_errors: Sequence[BaseException] = (),
        cover: Optional[Tuple[bytes, str]] = (PNG_BYTES, "image/png"),
        cover_error: Optional[BaseException] = None,
        script_error: Optional[BaseException] = None,
    ):
        self.lines = lines
        self._synth = synth
        self._synth_errors: List[BaseException] = list(synth_errors)
        self.cover = cover
        self.cover_error = cover_error
        self.script_error = script_error
        self.tts_calls: List[Tuple[str, Dict[str, str]]] = []
        self.script_calls: List[dict] = []
        self._lock = threading.Lock()

    def synthesize(self, prompt: str, voices: Mapping[str, str]) -> bytes:
        with self._lock:
            self.tts_calls.append((prompt, dict(voices)))
            if self._synth_errors:
                raise self._synth_errors.pop(0)
        if self._synth is not None:
            return self._synth(prompt, voices)
        value = (len(prompt) % 100) + 1
        return value.to_bytes(2, "little", signed=True) * 2400

    def generate_script(
        self,
        content: str,
        duration: str,
        speakers: Sequence[Speaker],
        notes: Optional[str] = None,
        images: Sequence[Tuple[bytes, str]] = (),
        segments: Optional[Sequence[PodcastSegment]] = None,
    ) -> PodcastScript:
        self.script_calls.append({
            "content": content,
            "duration": duration,
            "speakers": [s.name for s in speakers],
            "notes": notes,
            "images": list(images),
            "segments": list(segments or []),
        })
        if self.script_error is not None:
            raise self.script_error
        return PodcastScript(
            title="Test Episode",
            lines=[
                ScriptLine(speakers[i % len(speakers)].name, f"Line {i} about the topic.")
                for i in range(self.lines)
            ],
            show_notes="## Show notes\n- a point",
        )

    def generate_cover(self, title: str, summary: str) -> Optional[Tuple[bytes, str]]:
        if self.cover_error is not None:
            raise self.cover_error
        return self.cover

    def suggest_segment_notes(self, title: str, content: str) -> str:
        return f"- Talking point about {title}"


def make_settings(tmp_path, **sections) -> Settings:
    """Settings rooted in tmp_path; keyword args replace whole sections."""
    raw = {
        "genai": {"script_model": "fake-script", "tts_model": "fake-tts", "image_model": "fake-image"},
        "audio": {"sample_rate": 24000, "channels": 1},
        "tts": {
            "chunk_max_lines": 2,
            "chunk_max_chars": 2400,
            "max_parallel": 3,
            "max_attempts": 3,
            "backoff_base_s": 0.001,
            "backoff_max_s": 0.002,
            "chunk_gap_ms": 0,
        },
        "concurrency": {"enabled": True, "max_concurrent": 2, "max_queue": 10, "timeout_s": 5},
        "cache": {"max_items": 32, "ttl_seconds": 60},
        "storage": {"base_dir": str(tmp_path / "episodes"), "ttl_seconds": 3600},
        "database": {"path": str(tmp_path / "podcraft.db")},
        "quota": {"enabled": True, "free_daily_limit": 1, "free_clone_limit": 1},
        "logging": {"level": 1, "text_preview_chars": 20},
    }
    raw.update(sections)
    return Settings(raw=raw)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def fake_genai() -> FakeGenAI:
    return FakeGenAI()


@pytest.fixture
def service(settings, fake_genai):
    from podcraft.services.podcast_service import PodcastService

    return PodcastService(settings, client=fake_genai)
