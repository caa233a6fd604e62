"""
Gemini API Adapter.

Wraps the google-genai SDK behind the four operations PodCraft needs:

    generate_script        JSON-mode scriptwriting from text, images and segments
    generate_cover         Cover art from the title and a content summary
    suggest_segment_notes  Talking points for one advanced-mode segment
    synthesize             Multi-speaker (or single-voice) TTS, raw PCM out

Each method makes exactly one API call. Retrying is the caller's concern;
is_retryable() tells the caller which failures are transient.

Example:
    >>> client = GeminiClient(PodcraftConfig().genai)
    >>> pcm = client.synthesize(prompt, {"Alex": "Zephyr", "Max": "Fenrir"})
"""
from __future__ import annotations

import json
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import BaseModel

from podcraft.core.config import GenAIConfig
from podcraft.core.logging import debug, get_logger, verbose, warn
from podcraft.core.metrics import metrics
from podcraft.models import PodcastScript, PodcastSegment, Speaker
from podcraft.utils.timeit import timeit

_LOG = get_logger("podcraft.genai")


class GenAIUnavailableError(RuntimeError):
    """Raised when no API key is configured."""
    pass


class EmptyAudioError(RuntimeError):
    """Raised when a TTS response carries no audio data."""
    pass


class ScriptParseError(ValueError):
    """Raised when the scriptwriting model returns unusable JSON."""
    pass


# JSON shape requested from the scriptwriting model
class _ScriptLineSchema(BaseModel):
    speakerName: str
    text: str


class _ScriptSchema(BaseModel):
    title: str
    showNotes: str
    lines: List[_ScriptLineSchema]


def is_retryable(exc: BaseException) -> bool:
    """
    True for failures worth retrying: server errors (5xx), rate limiting
    (429), connection problems, timeouts and empty audio responses.
    """
    if isinstance(exc, EmptyAudioError):
        return True
    if isinstance(exc, genai_errors.ServerError):
        return True
    if isinstance(exc, genai_errors.ClientError):
        return getattr(exc, "code", None) == 429
    return isinstance(exc, (ConnectionError, TimeoutError, httpx.TransportError))


def build_script_prompt(
    content: str,
    duration: str,
    speakers: Sequence[Speaker],
    notes: Optional[str] = None,
    segments: Optional[Sequence[PodcastSegment]] = None,
) -> str:
    """Render the scriptwriting prompt."""
    speaker_context = "\n".join(s.describe() for s in speakers)
    names = ", ".join(s.name for s in speakers)

    structure = ""
    if segments:
        by_id = {s.id: s.name for s in speakers if s.id is not None}
        rendered = []
        for i, seg in enumerate(segments, start=1):
            lead = by_id.get(seg.lead_speaker_id) if seg.lead_speaker_id is not None else None
            rendered.append(
                f"{i}. {seg.title}"
                + (f" ({seg.duration})" if seg.duration else "")
                + (f", led by {lead}" if lead else "")
                + (f": {seg.notes}" if seg.notes else "")
            )
        structure = "Follow this segment structure, in order:\n" + "\n".join(rendered) + "\n\n"

    return (
        "You are a professional podcast scriptwriter.\n"
        "Based on the provided content, create a conversational podcast script between the following speakers:\n"
        f"{speaker_context}\n\n"
        f"Target Duration: Approximately {duration}.\n\n"
        "Additional Instructions/Notes:\n"
        f"{notes or 'None provided. Use your best judgment to make it engaging.'}\n\n"
        f"{structure}"
        "The podcast should be engaging, informative, and stay true to each speaker's personality and profession.\n"
        "Adjust the depth and detail of the conversation to match the requested duration and follow any specific notes provided.\n"
        f"Use exactly these speaker names: {names}.\n"
        "Also write concise show notes in markdown summarizing the episode.\n\n"
        "Content to discuss:\n"
        f"{content}\n\n"
        'Output the script in JSON format with a "title", "showNotes" and an array of "lines", '
        'where each line has "speakerName" and "text".'
    )


def parse_script_json(text: str) -> PodcastScript:
    """
    Parse the scriptwriting model's JSON output.

    Tolerates a surrounding markdown code fence.

    Raises:
        ScriptParseError: If the text is not a JSON object.
    """
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ScriptParseError(f"script response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ScriptParseError("script response is not a JSON object")
    return PodcastScript.from_dict(data)


class GeminiClient:
    """
    Thin, stateless wrapper over google-genai.

    Args:
        config: GenAI section of PodcraftConfig (models, key, timeout).
        client: Optional pre-built genai.Client; mostly for tests.

    Raises:
        GenAIUnavailableError: If neither an API key nor a client is given.
    """

    def __init__(self, config: GenAIConfig, client: Optional[Any] = None):
        self.config = config
        if client is None:
            if not config.api_key:
                raise GenAIUnavailableError("GEMINI_API_KEY is not set")
            client = genai.Client(
                api_key=config.api_key,
                http_options=types.HttpOptions(timeout=int(config.timeout_s * 1000)),
            )
        self._client = client

    @property
    def tts_model(self) -> str:
        return self.config.tts_model

    # ─────────────────────────────────────────────────────────────────────────
    # Script
    # ─────────────────────────────────────────────────────────────────────────

    def generate_script(
        self,
        content: str,
        duration: str,
        speakers: Sequence[Speaker],
        notes: Optional[str] = None,
        images: Sequence[Tuple[bytes, str]] = (),
        segments: Optional[Sequence[PodcastSegment]] = None,
    ) -> PodcastScript:
        """
        Write a podcast script.

        Args:
            content: Source material (text, extracted PDF text).
            duration: Target duration, free text (e.g. "3 minutes").
            speakers: The hosts; their names are used verbatim in lines.
            notes: Extra instructions.
            images: (bytes, mime_type) pairs sent as inline parts.
            segments: Advanced-mode structure, in order.

        Returns:
            PodcastScript with title, lines and show notes.
        """
        prompt = build_script_prompt(content, duration, speakers, notes, segments)
        parts = [types.Part.from_text(text=prompt)]
        for data, mime_type in images:
            parts.append(types.Part.from_bytes(data=data, mime_type=mime_type))

        debug(_LOG, "script_prompt", chars=len(prompt), images=len(images))
        with timeit("script") as t:
            response = self._call(
                "script",
                model=self.config.script_model,
                contents=[types.Content(role="user", parts=parts)],
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=_ScriptSchema,
                ),
            )
        script = parse_script_json(response.text or "{}")
        verbose(_LOG, "script_generated", lines=len(script.lines), seconds=round(t.elapsed, 3))
        return script

    def suggest_segment_notes(self, title: str, content: str) -> str:
        """Suggest talking points for one segment."""
        prompt = (
            "You are helping plan a podcast episode.\n"
            f'Suggest 3-5 concise talking points for a segment titled "{title}".\n'
            "Base them on this source material where relevant:\n"
            f"{content or 'No source material provided.'}\n\n"
            "Return only the talking points as a short bulleted list."
        )
        response = self._call("notes", model=self.config.script_model, contents=prompt)
        return (response.text or "").strip()

    # ─────────────────────────────────────────────────────────────────────────
    # Cover art
    # ─────────────────────────────────────────────────────────────────────────

    def generate_cover(self, title: str, summary: str) -> Optional[Tuple[bytes, str]]:
        """
        Generate square cover art.

        Returns:
            (image_bytes, mime_type) of the first image part, or None if
            the model returned no image.
        """
        prompt = (
            f'Create podcast cover art for an episode titled "{title}". '
            f"The episode is about: {summary[:1000]}. "
            "Style: modern, bold, visually striking, suitable for a square podcast thumbnail. "
            "No text in the image."
        )
        response = self._call(
            "image",
            model=self.config.image_model,
            contents=prompt,
            config=types.GenerateContentConfig(response_modalities=["IMAGE", "TEXT"]),
        )
        for part in _parts(response):
            inline = getattr(part, "inline_data", None)
            if inline is not None and inline.data and (inline.mime_type or "").startswith("image/"):
                return inline.data, inline.mime_type
        warn(_LOG, "cover_missing", title=title)
        return None

    # ─────────────────────────────────────────────────────────────────────────
    # Speech
    # ─────────────────────────────────────────────────────────────────────────

    def synthesize(self, prompt: str, voices: Mapping[str, str]) -> bytes:
        """
        Synthesize speech for one prompt.

        Args:
            prompt: Text for the TTS model; for multi-speaker use, lines
                must be prefixed with the names in `voices`.
            voices: Speaker name -> prebuilt voice name. Two or more
                entries use the multi-speaker config; one uses a single
                prebuilt voice.

        Returns:
            Raw 16-bit PCM bytes.

        Raises:
            EmptyAudioError: If the response holds no audio.
        """
        response = self._call(
            "tts",
            model=self.config.tts_model,
            contents=prompt,
            config=types.GenerateContentConfig(
                response_modalities=["AUDIO"],
                speech_config=_speech_config(voices),
            ),
        )
        for part in _parts(response):
            inline = getattr(part, "inline_data", None)
            if inline is not None and inline.data:
                return inline.data
        raise EmptyAudioError("TTS response contained no audio data")

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    def _call(self, operation: str, **kwargs: Any) -> Any:
        try:
            response = self._client.models.generate_content(**kwargs)
        except Exception:
            metrics.record_genai_call(operation, "error")
            raise
        metrics.record_genai_call(operation, "success")
        return response


def _speech_config(voices: Mapping[str, str]) -> types.SpeechConfig:
    if len(voices) >= 2:
        return types.SpeechConfig(
            multi_speaker_voice_config=types.MultiSpeakerVoiceConfig(
                speaker_voice_configs=[
                    types.SpeakerVoiceConfig(
                        speaker=name,
                        voice_config=types.VoiceConfig(
                            prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice),
                        ),
                    )
                    for name, voice in voices.items()
                ]
            )
        )
    voice = next(iter(voices.values()), "Puck")
    return types.SpeechConfig(
        voice_config=types.VoiceConfig(
            prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice),
        )
    )


def _parts(response: Any) -> list:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    content = getattr(candidates[0], "content", None)
    return list(getattr(content, "parts", None) or [])
