"""Tests for the on-disk episode archive and its TTL cleanup."""
from __future__ import annotations

import os
import time

import pytest

from conftest import PNG_BYTES
from podcraft.models import PodcastScript, ScriptLine
from podcraft.storage.episodes import Episode, EpisodeStore, EpisodeTTLManager, new_episode_id


def _episode(cover: bool = True) -> Episode:
    script = PodcastScript(
        title="Archived",
        lines=[ScriptLine("Alex", "Hi."), ScriptLine("Max", "Hello.")],
        show_notes="- notes",
    )
    if cover:
        script.cover_image = PNG_BYTES
        script.cover_mime_type = "image/png"
    return Episode(
        id=new_episode_id(),
        script=script,
        wav_bytes=b"RIFF" + b"\x00" * 40,
        sample_rate=24000,
        duration_seconds=1.23456,
        chunks=1,
    )


@pytest.fixture
def store(tmp_path) -> EpisodeStore:
    return EpisodeStore(tmp_path / "episodes", ttl_seconds=3600)


class TestEpisodeStore:

    def test_save_and_load(self, store):
        episode = _episode()
        assert store.save(episode) is True
        assert episode.archived is True

        assert store.load_audio(episode.id) == episode.wav_bytes
        assert store.load_cover(episode.id) == (PNG_BYTES, "image/png")

        meta = store.load_script(episode.id)
        assert meta["title"] == "Archived"
        assert meta["lines"][0] == {"speakerName": "Alex", "text": "Hi."}
        assert meta["durationSeconds"] == 1.235
        assert meta["hasCover"] is True

    def test_sharded_layout(self, store):
        episode = _episode()
        store.save(episode)
        d = store.episode_dir(episode.id)

        assert d.parent.name == episode.id[:2]
        assert sorted(p.name for p in d.iterdir()) == ["audio.wav", "cover.png", "script.json"]

    def test_jpeg_cover(self, store):
        episode = _episode()
        episode.script.cover_mime_type = "image/jpeg"
        store.save(episode)
        assert store.load_cover(episode.id)[1] == "image/jpeg"

    def test_no_cover(self, store):
        episode = _episode(cover=False)
        store.save(episode)

        assert store.load_cover(episode.id) is None
        assert store.load_script(episode.id)["coverMimeType"] is None

    def test_unknown_episode(self, store):
        missing = new_episode_id()
        assert store.load_audio(missing) is None
        assert store.load_script(missing) is None

    @pytest.mark.parametrize("bad_id", ["../../etc/passwd", "ABC", "", "g" * 32, "a" * 31])
    def test_malformed_ids_rejected(self, store, bad_id):
        assert store.episode_dir(bad_id) is None
        assert store.load_audio(bad_id) is None

    def test_save_with_malformed_id(self, store):
        episode = _episode()
        episode.id = "../escape"
        assert store.save(episode) is False
        assert episode.archived is False

    def test_corrupt_script_file(self, store):
        episode = _episode()
        store.save(episode)
        (store.episode_dir(episode.id) / "script.json").write_text("{not json", encoding="utf-8")
        assert store.load_script(episode.id) is None

    def test_info(self, store):
        store.save(_episode())
        store.save(_episode())
        info = store.info()

        assert info["episode_count"] == 2
        assert info["total_bytes"] > 0
        assert info["ttl_seconds"] == 3600


class TestEpisodeTTLManager:

    def test_old_episodes_removed(self, tmp_path):
        # The store's own background cleanup must not race the forced one
        store = EpisodeStore(tmp_path / "episodes", ttl_seconds=10 ** 9)
        old, fresh = _episode(), _episode()
        store.save(old)
        store.save(fresh)

        past = time.time() - 7200
        for f in store.episode_dir(old.id).iterdir():
            os.utime(f, (past, past))

        manager = EpisodeTTLManager(store.base_dir, ttl_seconds=3600)
        result = manager.force_cleanup()

        assert result["episodes_removed"] == 1
        assert result["bytes_freed"] > 0
        assert store.load_audio(old.id) is None
        assert store.load_audio(fresh.id) is not None
        assert manager.get_storage_info()["cleaned_total"] == 1

    def test_missing_base_dir(self, tmp_path):
        manager = EpisodeTTLManager(tmp_path / "none", ttl_seconds=60)
        assert manager.force_cleanup() == {"episodes_removed": 0, "bytes_freed": 0}
        assert manager.get_storage_info()["episode_count"] == 0

    def test_maybe_cleanup_respects_interval(self, tmp_path):
        manager = EpisodeTTLManager(tmp_path, ttl_seconds=60, cleanup_interval_seconds=3600)
        manager.maybe_cleanup()
        first = manager._last_cleanup
        manager.maybe_cleanup()
        assert manager._last_cleanup == first
