"""
Speaker Library backed by SQLite.

The speakers table stores both prebuilt hosts (seeded on first start,
never deletable) and user-created ones. Column names keep the camelCase
used by the JSON API so existing databases stay readable.

Startup (init_schema):
    1. Create the table if missing
    2. Add columns introduced after the first release (gender, accent,
       language)
    3. Correct prebuilt speakers' gender from their voice
    4. Seed all prebuilt speakers into an empty table, or top up the
       later prebuilt speakers if they are missing

Example:
    >>> repo = SpeakerRepository("podcraft.db")
    >>> repo.init_schema()
    >>> [s.name for s in repo.list()][:2]
    ['Alex', 'Dr. Sarah']
"""
from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from podcraft.core.logging import get_logger, info, verbose
from podcraft.models import VOICE_GENDERS, Speaker
from podcraft.storage.db import column_names, connect

_LOG = get_logger("podcraft.speakers")


_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS speakers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    voice TEXT NOT NULL,
    profession TEXT,
    tone TEXT,
    mode TEXT,
    choiceOfWords TEXT,
    behavior TEXT,
    isPrebuilt INTEGER DEFAULT 0,
    pitch TEXT DEFAULT 'medium',
    speed TEXT DEFAULT 'normal',
    emotion TEXT DEFAULT 'neutral',
    clonedVoiceData TEXT,
    gender TEXT DEFAULT 'non-binary',
    accent TEXT DEFAULT 'Neutral',
    language TEXT DEFAULT 'English'
)
"""

# Columns added after the first schema version
_MIGRATED_COLUMNS = {
    "gender": "TEXT DEFAULT 'non-binary'",
    "accent": "TEXT DEFAULT 'Neutral'",
    "language": "TEXT DEFAULT 'English'",
}

_INSERT = """
INSERT INTO speakers (name, voice, profession, tone, mode, choiceOfWords, behavior, isPrebuilt,
                      pitch, speed, emotion, clonedVoiceData, gender, accent, language)
VALUES (:name, :voice, :profession, :tone, :mode, :choiceOfWords, :behavior, :isPrebuilt,
        :pitch, :speed, :emotion, :clonedVoiceData, :gender, :accent, :language)
"""


def _prebuilt(name, voice, profession, tone, mode, words, behavior, pitch, speed, emotion, gender, accent) -> Speaker:
    return Speaker(
        name=name, voice=voice, profession=profession, tone=tone, mode=mode,
        choice_of_words=words, behavior=behavior, pitch=pitch, speed=speed,
        emotion=emotion, gender=gender, accent=accent, language="English",
        is_prebuilt=True,
    )


PREBUILT_SPEAKERS: List[Speaker] = [
    _prebuilt("Alex", "Zephyr", "Tech Journalist", "Enthusiastic", "Interviewer", "Modern",
              "Curious and fast-paced", "medium", "fast", "excited", "female", "Neutral"),
    _prebuilt("Dr. Sarah", "Kore", "Scientist", "Calm", "Educator", "Academic",
              "Methodical and precise", "medium", "normal", "serious", "female", "British"),
    _prebuilt("Max", "Fenrir", "Comedian", "Sarcastic", "Storyteller", "Casual",
              "Witty and prone to tangents", "low", "normal", "sarcastic", "male", "New York"),
    _prebuilt("Elena", "Puck", "Historian", "Serious", "Narrator", "Sophisticated",
              "Eloquent and dramatic", "high", "slow", "dramatic", "male", "Spanish"),
    _prebuilt("Jordan", "Charon", "Life Coach", "Empathetic", "Guide", "Inspirational",
              "Warm and encouraging", "medium", "normal", "warm", "male", "Neutral"),
    _prebuilt("Chef Remy", "Zephyr", "Culinary Expert", "Passionate", "Storyteller", "Expressive",
              "Energetic and descriptive", "high", "fast", "excited", "female", "French"),
    _prebuilt("Detective Vance", "Charon", "Investigator", "Gritty", "Interviewer", "Direct",
              "Analytical and serious", "low", "slow", "serious", "male", "New York"),
    _prebuilt("Professor Lin", "Kore", "Philosopher", "Thoughtful", "Educator", "Academic",
              "Reflective and calm", "medium", "slow", "neutral", "female", "Neutral"),
]

# Prebuilt speakers added in a later release; topped up on existing databases
_LATER_PREBUILT = PREBUILT_SPEAKERS[5:]


def _to_row(speaker: Speaker) -> Dict[str, object]:
    return {
        "name": speaker.name,
        "voice": speaker.voice,
        "profession": speaker.profession,
        "tone": speaker.tone,
        "mode": speaker.mode,
        "choiceOfWords": speaker.choice_of_words,
        "behavior": speaker.behavior,
        "isPrebuilt": 1 if speaker.is_prebuilt else 0,
        "pitch": speaker.pitch or "medium",
        "speed": speaker.speed or "normal",
        "emotion": speaker.emotion or "neutral",
        "clonedVoiceData": speaker.cloned_voice_data or None,
        "gender": speaker.gender or "non-binary",
        "accent": speaker.accent or "Neutral",
        "language": speaker.language or "English",
    }


def _from_row(row: sqlite3.Row) -> Speaker:
    return Speaker(
        id=int(row["id"]),
        name=row["name"],
        voice=row["voice"],
        profession=row["profession"] or "",
        tone=row["tone"] or "",
        mode=row["mode"] or "",
        choice_of_words=row["choiceOfWords"] or "",
        behavior=row["behavior"] or "",
        is_prebuilt=bool(row["isPrebuilt"]),
        pitch=row["pitch"] or "medium",
        speed=row["speed"] or "normal",
        emotion=row["emotion"] or "neutral",
        cloned_voice_data=row["clonedVoiceData"],
        gender=row["gender"] or "non-binary",
        accent=row["accent"] or "Neutral",
        language=row["language"] or "English",
    )


class SpeakerRepository:
    """CRUD access to the speakers table."""

    def __init__(self, db_path: str | Path):
        self._db_path = Path(db_path)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def init_schema(self) -> None:
        """Create, migrate and seed the table. Safe to call on every start."""
        with connect(self._db_path) as conn:
            conn.execute(_CREATE_TABLE)

            existing = column_names(conn, "speakers")
            for column, ddl in _MIGRATED_COLUMNS.items():
                if column not in existing:
                    conn.execute(f"ALTER TABLE speakers ADD COLUMN {column} {ddl}")
                    info(_LOG, "speakers_migrated", column=column)

            for voice, gender in VOICE_GENDERS.items():
                conn.execute(
                    "UPDATE speakers SET gender = ? WHERE voice = ? AND isPrebuilt = 1",
                    (gender, voice),
                )

            count = conn.execute("SELECT COUNT(*) FROM speakers").fetchone()[0]
            if count == 0:
                conn.executemany(_INSERT, [_to_row(s) for s in PREBUILT_SPEAKERS])
                info(_LOG, "speakers_seeded", count=len(PREBUILT_SPEAKERS))
            else:
                row = conn.execute(
                    "SELECT COUNT(*) FROM speakers WHERE name = ?", (_LATER_PREBUILT[0].name,)
                ).fetchone()
                if row[0] == 0:
                    conn.executemany(_INSERT, [_to_row(s) for s in _LATER_PREBUILT])
                    info(_LOG, "speakers_topped_up", count=len(_LATER_PREBUILT))

    def list(self) -> List[Speaker]:
        """All speakers, prebuilt first, in insertion order."""
        with connect(self._db_path) as conn:
            rows = conn.execute("SELECT * FROM speakers ORDER BY id").fetchall()
        return [_from_row(r) for r in rows]

    def get(self, speaker_id: int) -> Optional[Speaker]:
        with connect(self._db_path) as conn:
            row = conn.execute("SELECT * FROM speakers WHERE id = ?", (speaker_id,)).fetchone()
        return _from_row(row) if row is not None else None

    def get_many(self, speaker_ids: Sequence[int]) -> List[Speaker]:
        """
        Speakers for the given ids, in the order requested.

        Unknown ids are skipped; callers compare lengths to detect them.
        """
        if not speaker_ids:
            return []
        placeholders = ",".join("?" for _ in speaker_ids)
        with connect(self._db_path) as conn:
            rows = conn.execute(
                f"SELECT * FROM speakers WHERE id IN ({placeholders})", tuple(speaker_ids)
            ).fetchall()
        by_id = {int(r["id"]): _from_row(r) for r in rows}
        return [by_id[i] for i in speaker_ids if i in by_id]

    def create(self, speaker: Speaker) -> int:
        """
        Insert a user-created speaker.

        Missing delivery fields get their defaults and is_prebuilt is
        always stored as false.

        Returns:
            The new speaker id.
        """
        row = _to_row(speaker)
        row["isPrebuilt"] = 0
        with connect(self._db_path) as conn:
            cursor = conn.execute(_INSERT, row)
            new_id = int(cursor.lastrowid)
        verbose(_LOG, "speaker_created", id=new_id, voice=speaker.voice, cloned=speaker.has_cloned_voice)
        return new_id

    def delete(self, speaker_id: int) -> bool:
        """
        Delete a user-created speaker.

        Returns:
            True if a row was deleted; False for unknown or prebuilt ids.
        """
        with connect(self._db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM speakers WHERE id = ? AND isPrebuilt = 0", (speaker_id,)
            )
            deleted = cursor.rowcount > 0
        verbose(_LOG, "speaker_delete", id=speaker_id, deleted=deleted)
        return deleted

