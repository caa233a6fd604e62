"""
API Request/Response Schemas.

Pydantic models for the PodCraft HTTP API. Field names use the camelCase
JSON shape the web client speaks (speakerName, showNotes, choiceOfWords);
each model converts to and from the domain dataclasses in models.py.

Models:
    SpeakerIn / SpeakerOut: Speaker library entries
    SegmentIn: One advanced-mode segment
    SourceIn: Text extracted from an uploaded PDF
    ScriptRequestIn: Input for /api/podcasts/script
    PodcastRequestIn: Input for /api/podcasts and /api/podcasts/stream
    ScriptModel: A script, in or out
    AudioRequestIn: Input for /api/podcasts/audio
    SuggestNotesIn: Input for /api/segments/suggest

Example Request (POST /api/podcasts):
    {
        "text": "The history of tea",
        "speakerIds": [1, 3],
        "duration": "5 minutes",
        "notes": "Keep it light",
        "images": ["data:image/png;base64,iVBOR..."],
        "sources": [{"name": "tea.pdf", "text": "..."}]
    }
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from podcraft.models import PodcastScript, PodcastSegment, ScriptLine, Speaker
from podcraft.services.pdf import ExtractedPdf, combine_sources
from podcraft.services.validators import MAX_CLONED_VOICE_B64_BYTES, MAX_FILES_TOTAL
from podcraft.storage.episodes import Episode


class SpeakerIn(BaseModel):
    """A user-created speaker. Delivery fields default like the database columns."""
    name: str = Field(..., min_length=1, max_length=100)
    voice: str
    profession: str = ""
    tone: str = ""
    mode: str = ""
    choiceOfWords: str = ""
    behavior: str = ""
    pitch: Optional[str] = None
    speed: Optional[str] = None
    emotion: Optional[str] = None
    gender: Optional[str] = None
    accent: Optional[str] = None
    language: Optional[str] = None
    clonedVoiceData: Optional[str] = Field(default=None, max_length=MAX_CLONED_VOICE_B64_BYTES)

    def to_speaker(self) -> Speaker:
        return Speaker(
            name=self.name,
            voice=self.voice,
            profession=self.profession,
            tone=self.tone,
            mode=self.mode,
            choice_of_words=self.choiceOfWords,
            behavior=self.behavior,
            pitch=self.pitch or "medium",
            speed=self.speed or "normal",
            emotion=self.emotion or "neutral",
            gender=self.gender or "non-binary",
            accent=self.accent or "Neutral",
            language=self.language or "English",
            cloned_voice_data=self.clonedVoiceData or None,
        )


class SpeakerOut(BaseModel):
    id: int
    name: str
    voice: str
    profession: str
    tone: str
    mode: str
    choiceOfWords: str
    behavior: str
    isPrebuilt: bool
    pitch: str
    speed: str
    emotion: str
    gender: str
    accent: str
    language: str
    clonedVoiceData: Optional[str] = None

    @classmethod
    def from_speaker(cls, speaker: Speaker) -> "SpeakerOut":
        return cls(
            id=speaker.id or 0,
            name=speaker.name,
            voice=speaker.voice,
            profession=speaker.profession,
            tone=speaker.tone,
            mode=speaker.mode,
            choiceOfWords=speaker.choice_of_words,
            behavior=speaker.behavior,
            isPrebuilt=speaker.is_prebuilt,
            pitch=speaker.pitch,
            speed=speaker.speed,
            emotion=speaker.emotion,
            gender=speaker.gender,
            accent=speaker.accent,
            language=speaker.language,
            clonedVoiceData=speaker.cloned_voice_data,
        )


class SegmentIn(BaseModel):
    id: str = ""
    title: str = Field(..., min_length=1)
    notes: str = ""
    duration: str = ""
    leadSpeakerId: Optional[int] = None

    def to_segment(self) -> PodcastSegment:
        return PodcastSegment(
            id=self.id,
            title=self.title,
            notes=self.notes,
            duration=self.duration,
            lead_speaker_id=self.leadSpeakerId,
        )


class SourceIn(BaseModel):
    """Text previously returned by /api/extract-pdf."""
    name: str
    text: str


class ScriptRequestIn(BaseModel):
    """
    Script generation input.

    Attributes:
        text: Free text content.
        sources: Extracted PDF texts, appended to text as
            "--- Content from <name> ---" blocks.
        images: Data URLs (or bare base64, assumed JPEG).
        speakerIds: Exactly two speaker ids.
        duration: Target duration, free text.
        notes: Extra instructions.
        segments: Advanced-mode structure.
    """
    text: str = ""
    sources: List[SourceIn] = Field(default_factory=list, max_length=MAX_FILES_TOTAL)
    images: List[str] = Field(default_factory=list, max_length=MAX_FILES_TOTAL)
    speakerIds: List[int] = Field(default_factory=list)
    duration: str = "3 minutes"
    notes: Optional[str] = None
    segments: List[SegmentIn] = Field(default_factory=list)

    def combined_content(self) -> str:
        parts = [self.text.strip()] if self.text.strip() else []
        if self.sources:
            parts.append(combine_sources(ExtractedPdf(name=s.name, text=s.text) for s in self.sources))
        return "\n\n".join(parts)


class PodcastRequestIn(ScriptRequestIn):
    withCover: bool = True


class ScriptLineModel(BaseModel):
    speakerName: str
    text: str


class ScriptModel(BaseModel):
    title: str
    lines: List[ScriptLineModel]
    showNotes: str = ""

    def to_script(self) -> PodcastScript:
        return PodcastScript(
            title=self.title.strip(),
            lines=[ScriptLine(speaker_name=l.speakerName.strip(), text=l.text.strip()) for l in self.lines],
            show_notes=self.showNotes,
        )

    @classmethod
    def from_script(cls, script: PodcastScript) -> "ScriptModel":
        return cls.model_validate(script.to_dict())


class AudioRequestIn(BaseModel):
    script: ScriptModel
    speakerIds: List[int]


class SuggestNotesIn(BaseModel):
    title: str
    content: str = ""


def episode_to_dict(episode: Episode) -> Dict[str, Any]:
    """
    Episode JSON for API responses.

    Audio, cover and script URLs are only present when the episode was
    archived; the URLs point at the /api/podcasts/{id}/... endpoints.
    """
    data = episode.metadata()
    base = f"/api/podcasts/{episode.id}"
    data["archived"] = episode.archived
    data["audioUrl"] = f"{base}/audio" if episode.archived else None
    data["coverUrl"] = f"{base}/cover" if episode.archived and episode.script.cover_image else None
    data["scriptUrl"] = f"{base}/script" if episode.archived else None
    return data
