"""
Disk Archive for Generated Episodes.

Every finished podcast is written to disk so the API can serve its audio,
cover and script by id after the generating request has returned.

File Organization:
    Episodes are sharded by the first two characters of their id so a
    single directory never holds too many entries:

    {base_dir}/
        3f/
            3fa9...e1/
                audio.wav
                cover.png        (optional; .jpg for JPEG covers)
                script.json      (script + metadata)

Writes are atomic (temp file + rename) so a crash never leaves a partial
file behind. Episodes older than the TTL are removed by
EpisodeTTLManager, which runs in a background thread at most once per
cleanup interval.

Usage:
    store = EpisodeStore("./storage/episodes", ttl_seconds=604800)
    episode = Episode(id=new_episode_id(), script=script, wav_bytes=wav, ...)
    store.save(episode)
    wav = store.load_audio(episode.id)
"""
from __future__ import annotations

import json
import re
import shutil
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from podcraft.core.config import Defaults
from podcraft.core.logging import get_logger, info, verbose, warn
from podcraft.models import PodcastScript
from podcraft.utils.timeit import timeit

_LOG = get_logger("podcraft.episodes")

_EPISODE_ID = re.compile(r"^[0-9a-f]{32}$")

_AUDIO_FILE = "audio.wav"
_SCRIPT_FILE = "script.json"
_COVER_FILES = {"image/png": "cover.png", "image/jpeg": "cover.jpg", "image/webp": "cover.webp"}


def new_episode_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Episode:
    """
    A generated podcast.

    Attributes:
        id: 32-char hex id (see new_episode_id()).
        script: Script, show notes and optional cover image.
        wav_bytes: Complete WAV file.
        sample_rate: Audio sample rate.
        duration_seconds: Audio length.
        chunks: Number of TTS chunks the audio was built from.
        created_at: Unix timestamp.
        archived: Whether the episode is stored on disk.
    """
    id: str
    script: PodcastScript
    wav_bytes: bytes
    sample_rate: int
    duration_seconds: float
    chunks: int
    created_at: float = field(default_factory=time.time)
    archived: bool = False

    def metadata(self) -> Dict[str, Any]:
        data = self.script.to_dict()
        data.update(
            {
                "id": self.id,
                "sampleRate": self.sample_rate,
                "durationSeconds": round(self.duration_seconds, 3),
                "chunks": self.chunks,
                "createdAt": self.created_at,
                "hasCover": self.script.cover_image is not None,
                "coverMimeType": self.script.cover_mime_type if self.script.cover_image else None,
            }
        )
        return data


def _atomic_write(path: Path, data: bytes) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_bytes(data)
    tmp.replace(path)


class EpisodeStore:
    """
    Sharded on-disk episode archive.

    Args:
        base_dir: Root directory of the archive.
        ttl_seconds: Episode lifetime.
        cleanup_interval_seconds: Minimum time between background cleanups.
    """

    def __init__(
        self,
        base_dir: str | Path,
        ttl_seconds: int = Defaults.STORAGE_TTL_SECONDS,
        cleanup_interval_seconds: int = 3600,
    ):
        self._base_dir = Path(base_dir)
        self._ttl = EpisodeTTLManager(self._base_dir, ttl_seconds, cleanup_interval_seconds)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def episode_dir(self, episode_id: str) -> Optional[Path]:
        """Directory for an id, or None if the id is malformed."""
        if not _EPISODE_ID.match(episode_id or ""):
            return None
        return self._base_dir / episode_id[:2] / episode_id

    def save(self, episode: Episode) -> bool:
        """
        Write an episode to disk.

        Errors are logged, not raised; the episode is still usable in
        memory. Returns True on success and sets episode.archived.
        """
        d = self.episode_dir(episode.id)
        if d is None:
            warn(_LOG, "episode_id_invalid", id=episode.id)
            return False

        try:
            with timeit("episode_write") as t:
                d.mkdir(parents=True, exist_ok=True)
                _atomic_write(d / _AUDIO_FILE, episode.wav_bytes)
                if episode.script.cover_image:
                    name = _COVER_FILES.get(episode.script.cover_mime_type, "cover.png")
                    _atomic_write(d / name, episode.script.cover_image)
                meta = json.dumps(episode.metadata(), ensure_ascii=False, indent=2)
                # script.json last: its presence marks a complete episode
                _atomic_write(d / _SCRIPT_FILE, meta.encode("utf-8"))
        except OSError as e:
            warn(_LOG, "episode_write_error", id=episode.id, error=str(e))
            shutil.rmtree(d, ignore_errors=True)
            return False

        episode.archived = True
        info(
            _LOG, "episode_saved",
            id=episode.id,
            bytes=len(episode.wav_bytes),
            seconds=round(t.elapsed, 4),
        )
        self._ttl.maybe_cleanup()
        return True

    def load_audio(self, episode_id: str) -> Optional[bytes]:
        return self._read(episode_id, _AUDIO_FILE)

    def load_cover(self, episode_id: str) -> Optional[Tuple[bytes, str]]:
        """Cover bytes and MIME type, or None if the episode has no cover."""
        for mime, name in _COVER_FILES.items():
            data = self._read(episode_id, name)
            if data is not None:
                return data, mime
        return None

    def load_script(self, episode_id: str) -> Optional[Dict[str, Any]]:
        raw = self._read(episode_id, _SCRIPT_FILE)
        if raw is None:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            warn(_LOG, "episode_script_corrupt", id=episode_id, error=str(e))
            return None

    def info(self) -> Dict[str, Any]:
        return self._ttl.get_storage_info()

    def _read(self, episode_id: str, name: str) -> Optional[bytes]:
        d = self.episode_dir(episode_id)
        if d is None:
            return None
        p = d / name
        if not p.exists():
            return None
        try:
            data = p.read_bytes()
        except OSError as e:
            warn(_LOG, "episode_read_error", id=episode_id, file=name, error=str(e))
            return None
        verbose(_LOG, "episode_read", id=episode_id, file=name, bytes=len(data))
        return data


class EpisodeTTLManager:
    """
    Removes episodes older than the TTL.

    maybe_cleanup() is non-blocking: at most one cleanup runs at a time,
    in a daemon thread, and only once per cleanup interval.
    """

    def __init__(self, base_dir: Path, ttl_seconds: int, cleanup_interval_seconds: int = 3600):
        self._base_dir = Path(base_dir)
        self._ttl_seconds = ttl_seconds
        self._cleanup_interval = cleanup_interval_seconds
        self._last_cleanup = 0.0
        self._lock = threading.Lock()
        self._cleanup_running = False

        self._total_cleaned = 0

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def maybe_cleanup(self) -> None:
        now = time.time()
        with self._lock:
            if now - self._last_cleanup < self._cleanup_interval or self._cleanup_running:
                return
            self._cleanup_running = True
            self._last_cleanup = now

        threading.Thread(target=self._do_cleanup, daemon=True, name="episode-ttl-cleanup").start()

    def force_cleanup(self) -> Dict[str, int]:
        """Run a cleanup now, blocking; returns counts."""
        with self._lock:
            self._cleanup_running = True
        return self._do_cleanup()

    def _do_cleanup(self) -> Dict[str, int]:
        try:
            if not self._base_dir.exists():
                return {"episodes_removed": 0, "bytes_freed": 0}

            cutoff = time.time() - self._ttl_seconds
            removed = 0
            bytes_freed = 0

            for shard_dir in self._base_dir.iterdir():
                if not shard_dir.is_dir():
                    continue
                for episode_dir in shard_dir.iterdir():
                    if not episode_dir.is_dir():
                        continue
                    try:
                        newest = max((f.stat().st_mtime for f in episode_dir.iterdir()), default=0.0)
                        if newest < cutoff:
                            size = sum(f.stat().st_size for f in episode_dir.iterdir() if f.is_file())
                            shutil.rmtree(episode_dir)
                            removed += 1
                            bytes_freed += size
                    except OSError as e:
                        verbose(_LOG, "cleanup_episode_error", dir=str(episode_dir), error=str(e))

                try:
                    if not any(shard_dir.iterdir()):
                        shard_dir.rmdir()
                except OSError:
                    pass

            with self._lock:
                self._total_cleaned += removed

            if removed:
                info(_LOG, "episode_cleanup", episodes_removed=removed, bytes_freed=bytes_freed)
            return {"episodes_removed": removed, "bytes_freed": bytes_freed}
        finally:
            with self._lock:
                self._cleanup_running = False

    def get_storage_info(self) -> Dict[str, Any]:
        """Episode count, bytes on disk, age of the oldest episode."""
        if not self._base_dir.exists():
            return {"episode_count": 0, "total_bytes": 0, "oldest_episode_age": 0, "ttl_seconds": self._ttl_seconds}

        count = 0
        total_bytes = 0
        oldest = time.time()
        for script_file in self._base_dir.glob(f"*/*/{_SCRIPT_FILE}"):
            try:
                count += 1
                oldest = min(oldest, script_file.stat().st_mtime)
                total_bytes += sum(f.stat().st_size for f in script_file.parent.iterdir() if f.is_file())
            except OSError as e:
                warn(_LOG, "storage_info_error", error=str(e))

        return {
            "episode_count": count,
            "total_bytes": total_bytes,
            "oldest_episode_age": int(time.time() - oldest) if count else 0,
            "ttl_seconds": self._ttl_seconds,
            "cleaned_total": self._total_cleaned,
        }
