"""CLI tests; the Gemini client is replaced by the fake."""
from __future__ import annotations

import json

import pytest

from conftest import FakeGenAI, PNG_BYTES, make_pdf
from podcraft.cli import main


@pytest.fixture
def fake(tmp_path, monkeypatch) -> FakeGenAI:
    monkeypatch.setenv("PODCRAFT_DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.setenv("PODCRAFT_STORAGE_DIR", str(tmp_path / "episodes"))
    client = FakeGenAI()
    monkeypatch.setattr("podcraft.services.podcast_service.GeminiClient", lambda config: client)
    return client


@pytest.fixture
def run(tmp_path, capsys):
    """Run the CLI with default settings; returns (exit_code, json_payload, stdout)."""
    def _run(*args):
        code = main([*args, "--settings", str(tmp_path / "missing.yaml")])
        out = capsys.readouterr().out
        payloads = [json.loads(line) for line in out.splitlines() if line.startswith("{")]
        return code, (payloads[-1] if payloads else None), out
    return _run


def _write_script(path) -> str:
    path.write_text(json.dumps({
        "title": "From File",
        "lines": [
            {"speakerName": "Alex", "text": "Welcome."},
            {"speakerName": "Dr. Sarah", "text": "Thanks for having me."},
        ],
    }), encoding="utf-8")
    return str(path)


class TestListSpeakers:

    def test_list(self, fake, run):
        code, payload, _ = run("--list-speakers", "--json")
        assert code == 0
        assert len(payload["speakers"]) == 8
        assert payload["speakers"][0] == {
            "id": 1, "name": "Alex", "voice": "Zephyr", "profession": "Tech Journalist", "prebuilt": True,
        }


class TestGenerate:

    def test_full_episode(self, fake, run, tmp_path):
        out = tmp_path / "out" / "episode.wav"
        cover = tmp_path / "cover.png"
        code, payload, stdout = run("The history of tea", "--out", str(out), "--cover-out", str(cover), "--json")

        assert code == 0
        assert "CLI_OK" in stdout
        assert out.read_bytes()[:4] == b"RIFF"
        assert cover.read_bytes() == PNG_BYTES
        assert payload["title"] == "Test Episode"
        assert payload["chunks"] == 1
        assert fake.script_calls[0]["speakers"] == ["Alex", "Dr. Sarah"]

    def test_quota_does_not_apply(self, fake, run, tmp_path):
        for i in range(2):
            code, _, _ = run("--text", "tea", "--out", str(tmp_path / f"{i}.wav"), "--json")
            assert code == 0

    def test_no_cover(self, fake, run, tmp_path):
        code, payload, _ = run("tea", "--no-cover", "--out", str(tmp_path / "e.wav"),
                               "--cover-out", str(tmp_path / "c.png"), "--json")
        assert code == 0
        assert payload["cover"] is None

    def test_chosen_speakers_and_options(self, fake, run, tmp_path):
        code, _, _ = run("tea", "--speakers", "max, professor lin", "--duration", "5 minutes",
                         "--notes", "Be funny", "--out", str(tmp_path / "e.wav"))
        assert code == 0
        call = fake.script_calls[0]
        assert call["speakers"] == ["Max", "Professor Lin"]
        assert call["duration"] == "5 minutes"
        assert call["notes"] == "Be funny"

    def test_file_and_pdf_inputs(self, fake, run, tmp_path):
        notes = tmp_path / "notes.md"
        notes.write_text("Notes about tea.", encoding="utf-8")
        pdf = tmp_path / "doc.pdf"
        pdf.write_bytes(make_pdf("Green tea facts"))

        code, _, _ = run("--file", str(notes), "--pdf", str(pdf), "--out", str(tmp_path / "e.wav"))

        assert code == 0
        content = fake.script_calls[0]["content"]
        assert content.startswith("Notes about tea.")
        assert "--- Content from doc.pdf ---" in content
        assert "Green tea facts" in content

    def test_image_input(self, fake, run, tmp_path):
        image = tmp_path / "chart.png"
        image.write_bytes(PNG_BYTES)

        code, _, _ = run("--image", str(image), "--out", str(tmp_path / "e.wav"))

        assert code == 0
        assert fake.script_calls[0]["images"] == [(PNG_BYTES, "image/png")]

    def test_unknown_speaker(self, fake, run, tmp_path):
        code, payload, _ = run("tea", "--speakers", "Alex,Nobody", "--out", str(tmp_path / "e.wav"), "--json")
        assert code == 1
        assert payload["error"] == "NOT_FOUND"

    def test_generation_failure(self, fake, run, tmp_path):
        fake.script_error = RuntimeError("boom")
        code, payload, _ = run("tea", "--out", str(tmp_path / "e.wav"), "--json")
        assert code == 1
        assert payload["error"] == "GENERATION_FAILED"

    def test_no_input(self, fake, run):
        with pytest.raises(SystemExit):
            run("--json")

    def test_conflicting_text(self, fake, run):
        with pytest.raises(SystemExit):
            run("tea", "--text", "coffee")


class TestScriptMode:

    def test_synthesize_script(self, fake, run, tmp_path):
        out = tmp_path / "e.wav"
        code, payload, stdout = run("--script", _write_script(tmp_path / "s.json"), "--out", str(out), "--json")

        assert code == 0
        assert "CLI_OK" in stdout
        assert out.read_bytes()[:4] == b"RIFF"
        assert payload["chunks"] == 1
        assert fake.script_calls == []

    def test_dry_run(self, fake, run, tmp_path):
        code, payload, stdout = run("--script", _write_script(tmp_path / "s.json"), "--dry-run", "--json")

        assert code == 0
        assert "DRY_RUN_OK" in stdout
        assert payload["dry_run"] is True
        assert payload["lines"] == 2
        assert payload["chunks"][0]["speakers"] == ["Alex", "Dr. Sarah"]
        assert len(payload["chunks"][0]["key"]) == 64
        assert fake.tts_calls == []

    def test_dry_run_content(self, fake, run):
        code, payload, _ = run("--text", "tea", "--dry-run", "--json")

        assert code == 0
        assert payload["content_chars"] == 3
        assert payload["speakers"] == ["Alex", "Dr. Sarah"]
        assert fake.script_calls == []
