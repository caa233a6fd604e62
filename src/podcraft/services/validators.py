"""
Input Validation for PodCraft.

Validation happens early in the request pipeline so bad requests are
rejected before any (slow, billed) Gemini call is made.

Validation Rules:
    - Content: at least one of text, images or segments
    - Speakers: exactly two distinct speaker ids per episode
    - Uploads: max 40 files per episode, max 10 PDFs per extraction call
    - Speaker profile: name required (max 100 chars), voice must be a
      prebuilt Voice, gender one of male/female/non-binary
    - Cloned voice: max 10MB of base64 data
    - Script: non-empty title and at least one line with speaker and text

Error Handling:
    All validation functions raise ValidationError with:
        - message: Human-readable error description
        - code: Machine-readable error code (e.g., "CONTENT_REQUIRED")

    Error codes follow a consistent naming pattern:
        - {FIELD}_REQUIRED: Missing required field
        - {FIELD}_TOO_LONG / TOO_LARGE / TOO_MANY: Exceeds a limit
        - {FIELD}_INVALID: Format/content invalid

Usage:
    from podcraft.services.validators import validate_content, ValidationError

    try:
        validate_content(text, images, segments)
    except ValidationError as e:
        return error_response(e.code, e.message)
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from podcraft.core.logging import get_logger, warn
from podcraft.models import Gender, PodcastScript, Speaker, Voice

_LOG = get_logger("podcraft.validators")

MAX_FILES_TOTAL = 40
MAX_PDFS_PER_REQUEST = 10
REQUIRED_SPEAKERS = 2
MAX_NAME_LENGTH = 100
MAX_CLONED_VOICE_B64_BYTES = 10 * 1024 * 1024  # 10MB max base64 string
MAX_CONTENT_CHARS = 1_000_000


class ValidationError(Exception):
    """
    Exception raised when input validation fails.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for programmatic handling.
    """

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


def validate_content(
    text: Optional[str],
    images: Sequence[Any] = (),
    segments: Sequence[Any] = (),
    max_chars: int = MAX_CONTENT_CHARS,
) -> str:
    """
    Check that there is something to talk about.

    Returns:
        The stripped text (possibly empty when images or segments are given).

    Raises:
        ValidationError: If text, images and segments are all empty, or
            the text is too long.
    """
    text = (text or "").strip()
    if not text and not images and not segments:
        raise ValidationError(
            "Provide some content: text, PDFs, images or segments",
            "CONTENT_REQUIRED",
        )
    if len(text) > max_chars:
        raise ValidationError(
            f"Content exceeds maximum length ({len(text)} > {max_chars})",
            "CONTENT_TOO_LONG",
        )
    return text


def validate_speaker_ids(speaker_ids: Sequence[int], required: int = REQUIRED_SPEAKERS) -> List[int]:
    """
    Validate the selected hosts.

    Raises:
        ValidationError: Unless exactly `required` distinct ids are given.
    """
    ids = list(speaker_ids or [])
    if len(ids) != required or len(set(ids)) != len(ids):
        raise ValidationError(
            f"Select exactly {required} different speakers (got {len(ids)})",
            "SPEAKERS_INVALID",
        )
    return ids


def validate_file_count(count: int, limit: int = MAX_FILES_TOTAL) -> int:
    if count > limit:
        raise ValidationError(f"Maximum {limit} files allowed in total", "FILES_TOO_MANY")
    return count


def validate_pdf_uploads(count: int, limit: int = MAX_PDFS_PER_REQUEST) -> int:
    """Check the number of PDFs in one extraction call."""
    if count == 0:
        raise ValidationError("No files uploaded", "FILES_REQUIRED")
    if count > limit:
        raise ValidationError(f"Maximum {limit} PDFs per upload", "FILES_TOO_MANY")
    return count


def validate_cloned_voice(data: Optional[str], max_size: int = MAX_CLONED_VOICE_B64_BYTES) -> Optional[str]:
    """
    Validate a cloned voice sample (a data URL or bare base64).

    Returns:
        The sample, or None when empty.
    """
    if not data:
        return None
    if len(data) > max_size:
        raise ValidationError(
            f"Cloned voice sample exceeds maximum size ({len(data)} > {max_size})",
            "CLONED_VOICE_TOO_LARGE",
        )
    return data


def validate_speaker(speaker: Speaker) -> Speaker:
    """
    Validate a user-created speaker profile.

    Returns:
        The same speaker with name and traits stripped.

    Raises:
        ValidationError: On a missing/oversized name, an unknown voice or
            an unknown gender.
    """
    name = (speaker.name or "").strip()
    if not name:
        raise ValidationError("Speaker name is required", "NAME_REQUIRED")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(
            f"Speaker name exceeds maximum length ({len(name)} > {MAX_NAME_LENGTH})",
            "NAME_TOO_LONG",
        )
    if ":" in name:
        # Script lines are "Name: text"; a colon would break the mapping
        raise ValidationError("Speaker name must not contain ':'", "NAME_INVALID")

    if speaker.voice not in Voice.values():
        raise ValidationError(
            f"Unknown voice '{speaker.voice}'; expected one of {', '.join(Voice.values())}",
            "VOICE_INVALID",
        )

    gender = speaker.gender or Gender.NON_BINARY.value
    if gender not in Gender.values():
        raise ValidationError(
            f"Unknown gender '{gender}'; expected one of {', '.join(Gender.values())}",
            "GENDER_INVALID",
        )

    validate_cloned_voice(speaker.cloned_voice_data)

    speaker.name = name
    speaker.gender = gender
    for attr in ("profession", "tone", "mode", "choice_of_words", "behavior", "accent", "language"):
        setattr(speaker, attr, (getattr(speaker, attr) or "").strip())
    return speaker


def validate_script(script: PodcastScript) -> PodcastScript:
    """
    Validate a script before synthesis.

    Lines with an empty speaker or empty text are dropped with a warning;
    at least one line must remain.
    """
    if not script.title.strip():
        raise ValidationError("Script title is required", "TITLE_REQUIRED")

    kept = [l for l in script.lines if l.speaker_name.strip() and l.text.strip()]
    dropped = len(script.lines) - len(kept)
    if dropped:
        warn(_LOG, "script_lines_dropped", dropped=dropped)
    if not kept:
        raise ValidationError("Script has no lines", "LINES_REQUIRED")

    script.lines = kept
    return script


def validate_script_speakers(script: PodcastScript, speakers: Sequence[Speaker]) -> None:
    """
    Check that every speaker named in the script is one of the hosts.

    The TTS model only knows the voices of names listed in the voice
    config; any other name would be read in an arbitrary voice.
    """
    known = {s.name for s in speakers}
    unknown = [n for n in script.speaker_names if n not in known]
    if unknown:
        details: Dict[str, Any] = {"unknown": unknown, "known": sorted(known)}
        warn(_LOG, "script_speakers_unknown", **details)
        raise ValidationError(
            f"Script uses speakers that were not selected: {', '.join(unknown)}",
            "SPEAKERS_MISMATCH",
        )
