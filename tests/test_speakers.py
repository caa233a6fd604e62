"""Tests for the SQLite speaker library."""
from __future__ import annotations

import sqlite3

import pytest

from podcraft.models import Speaker
from podcraft.storage.speakers import PREBUILT_SPEAKERS, SpeakerRepository


@pytest.fixture
def repo(tmp_path) -> SpeakerRepository:
    r = SpeakerRepository(tmp_path / "speakers.db")
    r.init_schema()
    return r


class TestSeeding:

    def test_prebuilt_speakers_seeded(self, repo):
        speakers = repo.list()
        assert [s.name for s in speakers] == [s.name for s in PREBUILT_SPEAKERS]
        assert all(s.is_prebuilt for s in speakers)
        assert speakers[0].name == "Alex"
        assert speakers[0].id == 1

    def test_init_is_idempotent(self, repo):
        repo.init_schema()
        repo.init_schema()
        assert len(repo.list()) == 8

    def test_old_database_migrated_and_topped_up(self, tmp_path):
        """A first-release table gains the new columns and the later prebuilt hosts."""
        path = tmp_path / "old.db"
        conn = sqlite3.connect(str(path))
        conn.execute(
            "CREATE TABLE speakers (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL, "
            "voice TEXT NOT NULL, profession TEXT, tone TEXT, mode TEXT, choiceOfWords TEXT, "
            "behavior TEXT, isPrebuilt INTEGER DEFAULT 0, pitch TEXT DEFAULT 'medium', "
            "speed TEXT DEFAULT 'normal', emotion TEXT DEFAULT 'neutral', clonedVoiceData TEXT)"
        )
        for s in PREBUILT_SPEAKERS[:5]:
            conn.execute(
                "INSERT INTO speakers (name, voice, profession, isPrebuilt) VALUES (?, ?, ?, 1)",
                (s.name, s.voice, s.profession),
            )
        conn.commit()
        conn.close()

        repo = SpeakerRepository(path)
        repo.init_schema()
        speakers = repo.list()

        assert len(speakers) == 8
        assert speakers[-1].name == "Professor Lin"
        elena = next(s for s in speakers if s.name == "Elena")
        assert elena.voice == "Puck"
        assert elena.gender == "male"
        assert elena.language == "English"


class TestCrud:

    def test_create_and_get(self, repo):
        new_id = repo.create(Speaker(name="Nova", voice="Kore", profession="Astronomer", is_prebuilt=True))
        speaker = repo.get(new_id)

        assert new_id == 9
        assert speaker.name == "Nova"
        assert speaker.profession == "Astronomer"
        assert speaker.is_prebuilt is False
        assert speaker.pitch == "medium"

    def test_cloned_voice_stored(self, repo):
        new_id = repo.create(Speaker(name="Clone", voice="Puck", cloned_voice_data="data:audio/wav;base64,AAAA"))
        assert repo.get(new_id).has_cloned_voice

    def test_get_unknown(self, repo):
        assert repo.get(999) is None

    def test_get_many_keeps_requested_order(self, repo):
        speakers = repo.get_many([3, 1])
        assert [s.id for s in speakers] == [3, 1]

    def test_get_many_skips_unknown(self, repo):
        assert [s.id for s in repo.get_many([1, 999])] == [1]
        assert repo.get_many([]) == []

    def test_delete_user_speaker(self, repo):
        new_id = repo.create(Speaker(name="Temp", voice="Puck"))
        assert repo.delete(new_id) is True
        assert repo.get(new_id) is None

    def test_prebuilt_cannot_be_deleted(self, repo):
        assert repo.delete(1) is False
        assert repo.get(1) is not None

    def test_delete_unknown(self, repo):
        assert repo.delete(12345) is False
