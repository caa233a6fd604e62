"""
Command-Line Interface for PodCraft.

Generates podcasts without running the HTTP server. Quotas do not apply
to the CLI.

Usage Examples:
    # Episode from a topic
    podcraft "The history of tea" --out tea.wav

    # From files, with chosen hosts and cover art
    podcraft --file notes.md --pdf paper.pdf --image chart.png \\
        --speakers "Max,Professor Lin" --duration "5 minutes" \\
        --out episode.wav --cover-out cover.png

    # Synthesize an existing script (skips scriptwriting)
    podcraft --script script.json --out episode.wav

    # Chunking summary only, no API calls
    podcraft --script script.json --dry-run --json

    # Show the speaker library
    podcraft --list-speakers

Environment Variables:
    GEMINI_API_KEY: Gemini API key (required except for --dry-run and
        --list-speakers)
    PODCRAFT_SETTINGS: Settings file (default config/settings.yaml)
    PODCRAFT_DB_PATH: Speaker/profile database
    PODCRAFT_LOG_LEVEL: 1-4
"""
from __future__ import annotations

import argparse
import json
import mimetypes
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from podcraft.core.config import Settings, apply_env_overrides, load_settings
from podcraft.core.errors import PodcraftError
from podcraft.core.logging import configure_logging, fail, get_logger, info, set_request_id
from podcraft.models import PodcastScript, Speaker
from podcraft.services.pdf import PdfExtractionError, combine_sources, extract_pdfs
from podcraft.services.podcast_service import PodcastService, ProgressEvent, ScriptRequest
from podcraft.tts.cache import make_chunk_key
from podcraft.tts.chunker import build_tts_prompt, chunk_script

DEFAULT_SPEAKERS = "Alex,Dr. Sarah"


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="podcraft", description="PodCraft CLI (serverless podcast generation)")

    # Inputs
    parser.add_argument("text_pos", nargs="?", help="Content to discuss (positional)")
    parser.add_argument("--text", help="Content to discuss")
    parser.add_argument("--file", help="Read content from a text file")
    parser.add_argument("--pdf", action="append", default=[], help="PDF source (repeatable)")
    parser.add_argument("--image", action="append", default=[], help="Image source (repeatable)")
    parser.add_argument("--script", help="Existing script JSON; skips script generation")

    # Episode options
    parser.add_argument("--speakers", default=DEFAULT_SPEAKERS,
                        help=f"Two comma-separated speaker names (default: {DEFAULT_SPEAKERS})")
    parser.add_argument("--duration", default="3 minutes", help="Target duration")
    parser.add_argument("--notes", help="Extra instructions for the scriptwriter")
    parser.add_argument("--no-cover", action="store_true", help="Skip cover art")

    # Outputs
    parser.add_argument("--out", default="episode.wav", help="Output WAV path")
    parser.add_argument("--cover-out", help="Write the cover image here")
    parser.add_argument("--settings", default=os.getenv("PODCRAFT_SETTINGS", "config/settings.yaml"),
                        help="Settings YAML")

    # Modes
    parser.add_argument("--dry-run", action="store_true", help="Summarize chunking without API calls")
    parser.add_argument("--json", action="store_true", help="Print JSON summary")
    parser.add_argument("--list-speakers", action="store_true", help="List speakers and exit")

    return parser.parse_args(argv)


def _load_settings(path: str) -> Settings:
    """Settings with quotas switched off; defaults if the file is missing."""
    try:
        settings = load_settings(path)
    except FileNotFoundError:
        settings = Settings(raw=apply_env_overrides({}))
    raw = dict(settings.raw)
    raw["quota"] = {**raw.get("quota", {}), "enabled": False}
    return Settings(raw=raw)


def _load_content(args: argparse.Namespace) -> str:
    """
    Combine --text / positional text, --file and --pdf into one string.

    Raises:
        SystemExit: On conflicting or unreadable inputs.
    """
    text = args.text or args.text_pos
    if args.text and args.text_pos:
        raise SystemExit("Use --text or positional text, not both.")

    parts: List[str] = []
    if text:
        parts.append(text.strip())
    if args.file:
        parts.append(Path(args.file).read_text(encoding="utf-8").strip())
    if args.pdf:
        try:
            results = extract_pdfs((Path(p).name, Path(p).read_bytes()) for p in args.pdf)
        except PdfExtractionError as e:
            raise SystemExit(f"Failed to extract PDF text: {e}")
        parts.append(combine_sources(results))
    return "\n\n".join(p for p in parts if p)


def _load_images(paths: List[str]) -> List[tuple]:
    images = []
    for p in paths:
        mime, _ = mimetypes.guess_type(p)
        images.append((Path(p).read_bytes(), mime or "image/jpeg"))
    return images


def _load_script(path: str) -> PodcastScript:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise SystemExit("Script file must contain a JSON object.")
    return PodcastScript.from_dict(data)


def _dry_run_summary(script: PodcastScript, speakers: List[Speaker], service: PodcastService) -> Dict[str, Any]:
    """Chunk a script the way the pipeline would and report the chunks."""
    config = service.settings.get_config()
    cr = chunk_script(script.lines, max_lines=config.tts.chunk_max_lines, max_chars=config.tts.chunk_max_chars)
    voices = {s.name: s.voice for s in speakers}
    chunks = []
    for c in cr.chunks:
        prompt = build_tts_prompt(script.title, c.lines)
        chunks.append({
            "index": c.index,
            "lines": len(c.lines),
            "chars": len(c.text),
            "speakers": c.speaker_names,
            "key": make_chunk_key(config.genai.tts_model, voices, prompt),
        })
    return {
        "title": script.title,
        "lines": cr.total_lines,
        "split_lines": cr.split_lines,
        "chunks": chunks,
        "voices": voices,
    }


def _print(payload: Dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(payload)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code (0 for success, 1 for generation errors).
    """
    args = _parse_args(argv)

    configure_logging()
    log = get_logger("podcraft.cli")
    set_request_id(str(uuid4())[:12])

    service = PodcastService(_load_settings(args.settings))

    if args.list_speakers:
        speakers = [
            {"id": s.id, "name": s.name, "voice": s.voice, "profession": s.profession, "prebuilt": s.is_prebuilt}
            for s in service.list_speakers()
        ]
        _print({"ok": True, "speakers": speakers}, args.json)
        return 0

    def _on_progress(event: ProgressEvent) -> None:
        info(log, "progress", stage=event.stage, message=event.message)

    try:
        speakers = service.find_speakers([n for n in args.speakers.split(",") if n.strip()])
        speaker_ids = [s.id for s in speakers]

        # ─────────────────────────────────────────────────────────────────────
        # Existing script: synthesize only
        # ─────────────────────────────────────────────────────────────────────
        if args.script:
            script = _load_script(args.script)

            if args.dry_run:
                _print({"ok": True, "dry_run": True, **_dry_run_summary(script, speakers, service)}, args.json)
                print("DRY_RUN_OK")
                return 0

            info(log, "synth_start", lines=len(script.lines), out=args.out)
            result = service.synthesize_script(script, speaker_ids, progress=_on_progress)
            out = Path(args.out)
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_bytes(result.wav_bytes)
            _print({
                "ok": True,
                "dry_run": False,
                "out": str(out),
                "bytes": len(result.wav_bytes),
                "sample_rate": result.sample_rate,
                "chunks": result.chunks,
                "duration_seconds": round(result.duration_seconds, 3),
            }, args.json)
            print("CLI_OK")
            return 0

        # ─────────────────────────────────────────────────────────────────────
        # Full episode
        # ─────────────────────────────────────────────────────────────────────
        content = _load_content(args)
        images = _load_images(args.image)
        if not content and not images:
            raise SystemExit("Provide --text, --file, --pdf, --image or --script.")

        if args.dry_run:
            _print({
                "ok": True,
                "dry_run": True,
                "content_chars": len(content),
                "images": len(images),
                "speakers": [s.name for s in speakers],
                "duration": args.duration,
            }, args.json)
            print("DRY_RUN_OK")
            return 0

        request = ScriptRequest(
            content=content,
            speaker_ids=speaker_ids,
            duration=args.duration,
            notes=args.notes,
            images=images,
            with_cover=not args.no_cover,
        )
        episode = service.generate_podcast(request, progress=_on_progress)

    except PodcraftError as e:
        fail(log, "cli_failed", code=e.code, error=e.message)
        if args.json:
            print(json.dumps(e.to_dict(), ensure_ascii=False))
        else:
            print(f"Error: {e.message}", file=sys.stderr)
        return 1

    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(episode.wav_bytes)

    cover_out = None
    if args.cover_out and episode.script.cover_image:
        cover_out = Path(args.cover_out)
        cover_out.parent.mkdir(parents=True, exist_ok=True)
        cover_out.write_bytes(episode.script.cover_image)

    payload = {
        "ok": True,
        "dry_run": False,
        "id": episode.id,
        "title": episode.script.title,
        "out": str(out),
        "cover": str(cover_out) if cover_out else None,
        "bytes": len(episode.wav_bytes),
        "chunks": episode.chunks,
        "duration_seconds": round(episode.duration_seconds, 3),
        "show_notes": episode.script.show_notes,
    }
    _print(payload, args.json)
    print("CLI_OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
