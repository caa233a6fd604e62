"""
Domain Types for PodCraft.

These dataclasses are shared by the storage, pipeline, service and API
layers. The API layer converts them to and from the camelCase JSON used
by clients (see api/schemas.py); storage converts them to and from
SQLite rows.

Types:
    Voice: Prebuilt TTS voices offered by the speech model
    Gender: Speaker gender values
    Speaker: A podcast host profile
    PodcastSegment: One planned section of an advanced-mode episode
    ScriptLine: One spoken line of a script
    PodcastScript: A generated (or user-supplied) script
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Voice(str, Enum):
    """Prebuilt voices of the Gemini TTS model."""
    PUCK = "Puck"
    CHARON = "Charon"
    KORE = "Kore"
    FENRIR = "Fenrir"
    ZEPHYR = "Zephyr"

    @classmethod
    def values(cls) -> List[str]:
        return [v.value for v in cls]


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    NON_BINARY = "non-binary"

    @classmethod
    def values(cls) -> List[str]:
        return [g.value for g in cls]


# Prebuilt speakers get their gender from the voice they use
VOICE_GENDERS: Dict[str, str] = {
    Voice.ZEPHYR.value: Gender.FEMALE.value,
    Voice.KORE.value: Gender.FEMALE.value,
    Voice.PUCK.value: Gender.MALE.value,
    Voice.CHARON.value: Gender.MALE.value,
    Voice.FENRIR.value: Gender.MALE.value,
}


@dataclass
class Speaker:
    """
    A podcast host profile.

    Attributes:
        name: Display name; also the label used in script lines and in the
            multi-speaker TTS voice config, so it must match exactly.
        voice: One of the Voice values.
        profession, tone, mode, choice_of_words, behavior: Personality
            traits fed to the scriptwriter.
        pitch, speed, emotion: Delivery hints.
        cloned_voice_data: Optional base64 voice sample (counts toward the
            clone quota).
        id: Database id; None until stored.
        is_prebuilt: Seeded speakers cannot be deleted.
    """
    name: str
    voice: str
    profession: str = ""
    tone: str = ""
    mode: str = ""
    choice_of_words: str = ""
    behavior: str = ""
    pitch: str = "medium"
    speed: str = "normal"
    emotion: str = "neutral"
    gender: str = Gender.NON_BINARY.value
    accent: str = "Neutral"
    language: str = "English"
    cloned_voice_data: Optional[str] = None
    id: Optional[int] = None
    is_prebuilt: bool = False

    @property
    def has_cloned_voice(self) -> bool:
        return bool(self.cloned_voice_data)

    def describe(self) -> str:
        """One-line persona description used in the scriptwriting prompt."""
        return (
            f"{self.name} ({self.voice}): A {self.profession} with a {self.tone} tone. "
            f"Mode: {self.mode}. Style: {self.choice_of_words}. Behavior: {self.behavior}. "
            f"Gender: {self.gender}. Accent: {self.accent}. Language: {self.language}. "
            f"Delivery: {self.pitch} pitch, {self.speed} pace, {self.emotion} emotion."
        )


@dataclass
class PodcastSegment:
    """One planned section of an advanced-mode episode."""
    title: str
    notes: str = ""
    duration: str = ""
    lead_speaker_id: Optional[int] = None
    id: str = ""


@dataclass
class ScriptLine:
    speaker_name: str
    text: str

    def render(self) -> str:
        return f"{self.speaker_name}: {self.text}"


@dataclass
class PodcastScript:
    """
    A podcast script.

    Attributes:
        title: Episode title (also used in the TTS prompt).
        lines: Spoken lines in order.
        show_notes: Optional markdown show notes.
        cover_image: Optional cover art bytes (PNG or JPEG).
        cover_mime_type: MIME type of cover_image.
    """
    title: str
    lines: List[ScriptLine] = field(default_factory=list)
    show_notes: str = ""
    cover_image: Optional[bytes] = None
    cover_mime_type: str = "image/png"

    @property
    def speaker_names(self) -> List[str]:
        """Distinct speaker names in order of first appearance."""
        seen: List[str] = []
        for line in self.lines:
            if line.speaker_name not in seen:
                seen.append(line.speaker_name)
        return seen

    def to_dict(self) -> Dict[str, Any]:
        """JSON shape shared with the scriptwriting model and the API."""
        return {
            "title": self.title,
            "lines": [{"speakerName": l.speaker_name, "text": l.text} for l in self.lines],
            "showNotes": self.show_notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PodcastScript":
        """
        Build a script from the camelCase JSON shape.

        Lines without a speaker or text are kept as-is; validation is the
        caller's job (see services/validators.py).
        """
        lines = [
            ScriptLine(
                speaker_name=str(item.get("speakerName", "")).strip(),
                text=str(item.get("text", "")).strip(),
            )
            for item in (data.get("lines") or [])
            if isinstance(item, dict)
        ]
        return cls(
            title=str(data.get("title", "")).strip(),
            lines=lines,
            show_notes=str(data.get("showNotes") or ""),
        )
