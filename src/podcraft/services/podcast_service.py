"""
PodcastService - Unified Podcast Pipeline.

This module provides the central PodcastService class, the single entry
point used by both the HTTP API and the CLI.

Architecture:
    Request → Quota → Script → Cover → Audio (chunked TTS) → Archive → Episode

Key Components:
    - GeminiClient: scriptwriting, cover art, segment notes and TTS
    - AudioPipeline: bounded-parallel chunked TTS with retry and reassembly
    - TinyLRUCache: chunk PCM cache shared by all jobs
    - ConcurrencyController: limits simultaneous generation jobs
    - SpeakerRepository / ProfileRepository: SQLite speaker library and
      plan quotas
    - EpisodeStore: on-disk archive of finished episodes

Error Handling:
    Every failure leaving the service is a PodcraftError (core/errors.py).
    Validation errors become InvalidInputError, Gemini failures during
    scriptwriting become GenerationError, chunk failures SynthesisError,
    and anything unexpected is logged and wrapped in GenerationError.
    Cover art failures are logged and the episode ships without a cover.

Example:
    >>> from podcraft.services import PodcastService, ScriptRequest
    >>> from podcraft.core.config import load_settings
    >>>
    >>> service = PodcastService(load_settings())
    >>> episode = service.generate_podcast(
    ...     ScriptRequest(content="The history of tea", speaker_ids=[1, 3]),
    ...     user_id="user-123",
    ... )
    >>> open("episode.wav", "wb").write(episode.wav_bytes)
"""
from __future__ import annotations

import contextlib
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from podcraft.core.config import Settings
from podcraft.core.errors import (
    GenAIUnavailable,
    GenerationError,
    InvalidInputError,
    JobTimeoutError,
    NotFoundError,
    PodcraftError,
    QueueFullError,
    QuotaExceededError,
    UnauthorizedError,
)
from podcraft.core.logging import debug, fail, get_logger, info, success, verbose, warn
from podcraft.core.metrics import metrics
from podcraft.genai.client import GeminiClient, GenAIUnavailableError
from podcraft.models import PodcastScript, PodcastSegment, ScriptLine, Speaker
from podcraft.services.validators import (
    ValidationError,
    validate_content,
    validate_file_count,
    validate_script,
    validate_script_speakers,
    validate_speaker,
    validate_speaker_ids,
)
from podcraft.storage.episodes import Episode, EpisodeStore, new_episode_id
from podcraft.storage.profiles import Profile, ProfileRepository, QuotaPolicy
from podcraft.storage.speakers import SpeakerRepository
from podcraft.tts.cache import TinyLRUCache
from podcraft.tts.concurrency import ConcurrencyController, QueueFull
from podcraft.tts.pipeline import AudioPipeline, AudioResult
from podcraft.utils.timeit import timeit

_LOG = get_logger("podcraft.service")

STATUS_SCRIPT = "Generating script and show notes..."
STATUS_COVER = "Designing podcast cover art..."
STATUS_AUDIO = "Generating audio (this may take a moment)..."
STATUS_AUDIO_PART = "Generating audio part {current} of {total}..."
STATUS_READY = "Podcast ready!"


# =============================================================================
# Request / Progress Dataclasses
# =============================================================================

@dataclass
class ScriptRequest:
    """
    Request for a podcast script (and, via generate_podcast, an episode).

    Attributes:
        content: Source material; PDF text already combined in.
        speaker_ids: Exactly two speaker ids.
        duration: Target duration, free text.
        notes: Extra instructions for the scriptwriter.
        images: (bytes, mime_type) pairs sent to the scriptwriter.
        segments: Advanced-mode structure, in order.
        with_cover: Whether to generate cover art.
    """
    content: str = ""
    speaker_ids: List[int] = field(default_factory=list)
    duration: str = "3 minutes"
    notes: Optional[str] = None
    images: List[Tuple[bytes, str]] = field(default_factory=list)
    segments: List[PodcastSegment] = field(default_factory=list)
    with_cover: bool = True


@dataclass
class ProgressEvent:
    """
    A generation progress update.

    Attributes:
        stage: "script", "cover", "audio" or "done".
        message: Human-readable status line.
        completed: Audio chunks finished so far (audio stage only).
        total: Audio chunks in the episode (audio stage only).
    """
    stage: str
    message: str
    completed: int = 0
    total: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"stage": self.stage, "message": self.message}
        if self.total:
            data["completed"] = self.completed
            data["total"] = self.total
        return data


ProgressListener = Callable[[ProgressEvent], None]


# =============================================================================
# Main Service Class
# =============================================================================

class PodcastService:
    """
    Podcast generation service.

    Args:
        settings: Application settings loaded from YAML/environment.
        client: Optional Gemini client (or a stand-in with the same
            methods). Built from settings when omitted; if no API key is
            configured, operations that need Gemini raise
            GenAIUnavailable while the speaker library keeps working.
    """

    def __init__(self, settings: Settings, client: Optional[Any] = None):
        self._settings = settings
        self._config = settings.get_config()

        # ─────────────────────────────────────────────────────────────────────
        # Storage: speakers, profiles, episodes
        # ─────────────────────────────────────────────────────────────────────
        db_path = self._config.database.path
        self._speakers = SpeakerRepository(db_path)
        self._speakers.init_schema()
        self._profiles = ProfileRepository(db_path)
        self._profiles.init_schema()
        self._quota = QuotaPolicy(self._profiles, self._config.quota)

        self._episodes = EpisodeStore(
            base_dir=self._config.storage.base_dir,
            ttl_seconds=self._config.storage.ttl_seconds,
        )

        # ─────────────────────────────────────────────────────────────────────
        # Gemini client and audio pipeline
        # ─────────────────────────────────────────────────────────────────────
        if client is None:
            try:
                client = GeminiClient(self._config.genai)
            except GenAIUnavailableError as e:
                warn(_LOG, "genai_unavailable", reason=str(e))
        self._client = client

        self._cache = TinyLRUCache(
            max_items=self._config.cache.max_items,
            ttl_seconds=self._config.cache.ttl_seconds,
        )
        self._pipeline: Optional[AudioPipeline] = None
        if client is not None:
            self._pipeline = AudioPipeline(client, self._config.tts, self._config.audio, cache=self._cache)

        # ─────────────────────────────────────────────────────────────────────
        # Concurrency Control
        # ─────────────────────────────────────────────────────────────────────
        self._controller: Optional[ConcurrencyController] = None
        if self._config.concurrency.enabled:
            self._controller = ConcurrencyController(
                max_concurrent=self._config.concurrency.max_concurrent,
                max_queue=self._config.concurrency.max_queue,
            )
        self._concurrency_timeout = self._config.concurrency.timeout_s

        self._text_preview_chars = self._config.logging.text_preview_chars

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def genai_configured(self) -> bool:
        return self._client is not None

    @property
    def controller(self) -> Optional[ConcurrencyController]:
        """The concurrency controller (None if disabled)."""
        return self._controller

    @property
    def quota_enabled(self) -> bool:
        return self._quota.enabled

    @property
    def episodes(self) -> EpisodeStore:
        return self._episodes

    # =========================================================================
    # Speakers
    # =========================================================================

    def list_speakers(self) -> List[Speaker]:
        return self._speakers.list()

    def get_speaker(self, speaker_id: int) -> Speaker:
        speaker = self._speakers.get(speaker_id)
        if speaker is None:
            raise NotFoundError(f"Speaker {speaker_id} not found", {"speaker_id": speaker_id})
        return speaker

    def find_speakers(self, names: Sequence[str]) -> List[Speaker]:
        """
        Look speakers up by name (case-insensitive), in the order given.

        Raises:
            NotFoundError: If a name matches no speaker.
        """
        by_name = {s.name.lower(): s for s in self._speakers.list()}
        found = []
        for name in names:
            speaker = by_name.get(name.strip().lower())
            if speaker is None:
                raise NotFoundError(f"Speaker '{name}' not found", {"name": name})
            found.append(speaker)
        return found

    def create_speaker(self, speaker: Speaker, user_id: Optional[str] = None) -> int:
        """
        Store a user-created speaker.

        A speaker with a cloned voice sample counts toward the user's
        clone quota.

        Returns:
            The new speaker id.

        Raises:
            InvalidInputError: If the profile is invalid.
            UnauthorizedError: If a clone needs a quota check but no user
                is identified.
            QuotaExceededError: If the user has no clones left.
        """
        try:
            speaker = validate_speaker(speaker)
        except ValidationError as e:
            raise InvalidInputError(e.message, {"code": e.code}) from e

        cloned = speaker.has_cloned_voice
        reserved: Optional[Profile] = None
        if cloned and self._quota.enabled:
            if not user_id:
                raise UnauthorizedError("X-User-Id header is required")
            granted, reserved = self._quota.reserve_clone(user_id)
            if not granted:
                raise QuotaExceededError(
                    "Voice clone limit reached; upgrade to Pro for unlimited clones",
                    {"clones_used": reserved.clones_used, "limit": self._quota.clone_limit(reserved)},
                )

        try:
            new_id = self._speakers.create(speaker)
        except Exception:
            self._quota.release_clone(reserved)
            raise
        info(_LOG, "speaker_created", id=new_id, name=speaker.name, cloned=cloned)
        return new_id

    def delete_speaker(self, speaker_id: int) -> bool:
        """Delete a user-created speaker; prebuilt and unknown ids are a no-op."""
        deleted = self._speakers.delete(speaker_id)
        if deleted:
            info(_LOG, "speaker_deleted", id=speaker_id)
        return deleted

    def preview_speaker(self, speaker_id: int) -> AudioResult:
        """
        Synthesize a short in-character introduction for a speaker.

        Raises:
            NotFoundError: If the speaker does not exist.
            GenAIUnavailable: If no API key is configured.
            SynthesisError: If TTS fails.
        """
        speaker = self.get_speaker(speaker_id)
        pipeline = self._require_pipeline()

        intro = f"Hi, I'm {speaker.name}"
        if speaker.profession:
            intro += f", your {speaker.profession.lower()}"
        intro += ". Welcome to the show! I can't wait to dig into today's topic with you."
        script = PodcastScript(
            title=f"Meet {speaker.name}",
            lines=[ScriptLine(speaker_name=speaker.name, text=intro)],
        )
        verbose(_LOG, "speaker_preview", id=speaker_id, voice=speaker.voice)
        return pipeline.synthesize(script, [speaker])

    # =========================================================================
    # Script and notes
    # =========================================================================

    def suggest_notes(self, title: str, content: str = "") -> str:
        """Suggest talking points for one advanced-mode segment."""
        title = (title or "").strip()
        if not title:
            raise InvalidInputError("Segment title is required", {"code": "TITLE_REQUIRED"})
        client = self._require_client()
        try:
            return client.suggest_segment_notes(title, content or "")
        except PodcraftError:
            raise
        except Exception as e:
            fail(_LOG, "notes_failed", error=str(e), error_type=type(e).__name__)
            raise GenerationError(f"Failed to suggest notes: {e}", {"error_type": type(e).__name__}) from e

    def generate_script(self, request: ScriptRequest) -> PodcastScript:
        """
        Write a script for two hosts.

        Raises:
            InvalidInputError: On missing content or a bad speaker selection.
            NotFoundError: If a speaker id is unknown.
            GenAIUnavailable: If no API key is configured.
            GenerationError: If the scriptwriting call fails.
        """
        speakers = self._validate_request(request)
        return self._write_script(request, speakers)

    def synthesize_script(
        self,
        script: PodcastScript,
        speaker_ids: Sequence[int],
        progress: Optional[ProgressListener] = None,
    ) -> AudioResult:
        """
        Turn an existing script into audio.

        Holds a generation slot while synthesizing.

        Raises:
            InvalidInputError: If the script or speaker selection is invalid.
            NotFoundError: If a speaker id is unknown.
            SynthesisError: If a chunk fails for good.
            QueueFullError / JobTimeoutError: If no slot is available.
        """
        speakers = self._resolve_speakers(speaker_ids)
        try:
            script = validate_script(script)
            validate_script_speakers(script, speakers)
        except ValidationError as e:
            raise InvalidInputError(e.message, {"code": e.code}) from e

        pipeline = self._require_pipeline()
        with self._slot():
            return pipeline.synthesize(script, speakers, progress=self._audio_progress(progress))

    # =========================================================================
    # Public API: generate_podcast()
    # =========================================================================

    def generate_podcast(
        self,
        request: ScriptRequest,
        user_id: Optional[str] = None,
        progress: Optional[ProgressListener] = None,
    ) -> Episode:
        """
        Generate a complete episode (main API method).

        Pipeline:
            1. Reserve one of the user's daily generations (given back
               if any later stage fails)
            2. Write the script and show notes
            3. Design cover art (failure is not fatal)
            4. Synthesize audio chunk by chunk
            5. Archive the episode

        Args:
            request: What to talk about and who talks.
            user_id: Caller identity; required when quotas are enabled.
            progress: Receives a ProgressEvent at every stage and for
                every finished audio chunk.

        Returns:
            The finished Episode.

        Raises:
            PodcraftError: Any of its subclasses; see the stage methods.
        """
        speakers = self._validate_request(request)
        pipeline = self._require_pipeline()
        reserved = self._reserve_generation(user_id, request.duration)

        preview = request.content[: self._text_preview_chars] if self._text_preview_chars > 0 else ""
        info(
            _LOG, "request",
            chars=len(request.content),
            images=len(request.images),
            segments=len(request.segments),
            text_preview=preview,
        )

        try:
            with timeit("generation_total") as total_t, self._slot():
                _emit(progress, ProgressEvent("script", STATUS_SCRIPT))
                script = self._write_script(request, speakers)

                if request.with_cover:
                    _emit(progress, ProgressEvent("cover", STATUS_COVER))
                    self._add_cover(script, request.content)

                _emit(progress, ProgressEvent("audio", STATUS_AUDIO))
                audio = pipeline.synthesize(script, speakers, progress=self._audio_progress(progress))

                episode = Episode(
                    id=new_episode_id(),
                    script=script,
                    wav_bytes=audio.wav_bytes,
                    sample_rate=audio.sample_rate,
                    duration_seconds=audio.duration_seconds,
                    chunks=audio.chunks,
                )
                self._episodes.save(episode)

        except PodcraftError:
            self._quota.release_generation(reserved)
            metrics.record_generation("error")
            raise
        except Exception as e:
            fail(_LOG, "generation_failed", error=str(e), error_type=type(e).__name__)
            self._quota.release_generation(reserved)
            metrics.record_generation("error")
            raise GenerationError(f"Unexpected error: {e}", {"error_type": type(e).__name__}) from e

        total_s = total_t.elapsed
        metrics.record_generation("success", duration=total_s, audio_seconds=episode.duration_seconds)
        success(
            _LOG, "episode_done",
            id=episode.id,
            lines=len(script.lines),
            chunks=episode.chunks,
            audio_seconds=round(episode.duration_seconds, 2),
            archived=episode.archived,
            seconds=round(total_s, 3),
        )
        _emit(progress, ProgressEvent("done", STATUS_READY))
        return episode

    # =========================================================================
    # Episodes
    # =========================================================================

    def load_episode_audio(self, episode_id: str) -> bytes:
        data = self._episodes.load_audio(episode_id)
        if data is None:
            raise NotFoundError(f"Episode {episode_id} not found", {"episode_id": episode_id})
        return data

    def load_episode_cover(self, episode_id: str) -> Tuple[bytes, str]:
        cover = self._episodes.load_cover(episode_id)
        if cover is None:
            raise NotFoundError(f"Episode {episode_id} has no cover", {"episode_id": episode_id})
        return cover

    def load_episode_script(self, episode_id: str) -> Dict[str, Any]:
        data = self._episodes.load_script(episode_id)
        if data is None:
            raise NotFoundError(f"Episode {episode_id} not found", {"episode_id": episode_id})
        return data

    # =========================================================================
    # Profiles
    # =========================================================================

    def get_profile(self, user_id: Optional[str], email: Optional[str] = None) -> Dict[str, Any]:
        """Profile plus remaining allowance for today."""
        profile = self._require_profile(user_id, email)
        limit = self._quota.daily_limit(profile) if self._quota.enabled else None
        data = profile.to_dict()
        data["quota_enabled"] = self._quota.enabled
        data["daily_limit"] = limit
        data["remaining_today"] = None if limit is None else max(0, limit - profile.daily_generation_count)
        data["clone_limit"] = self._quota.clone_limit(profile) if self._quota.enabled else None
        return data

    def upgrade(self, user_id: Optional[str]) -> Dict[str, Any]:
        if not user_id:
            raise UnauthorizedError("X-User-Id header is required")
        self._quota.upgrade(user_id)
        return self.get_profile(user_id)

    # =========================================================================
    # Health Check
    # =========================================================================

    def get_health_info(self) -> Dict[str, Any]:
        """Service status, models, pipeline settings, cache, storage and concurrency stats."""
        genai = self._config.genai
        tts = self._config.tts
        result: Dict[str, Any] = {
            "ok": True,
            "genai_configured": self.genai_configured,
            "models": {
                "script": genai.script_model,
                "tts": genai.tts_model,
                "image": genai.image_model,
            },
            "audio": {
                "sample_rate": self._config.audio.sample_rate,
                "channels": self._config.audio.channels,
            },
            "tts": {
                "chunk_max_lines": tts.chunk_max_lines,
                "chunk_max_chars": tts.chunk_max_chars,
                "max_parallel": tts.max_parallel,
                "max_attempts": tts.max_attempts,
            },
            "quota_enabled": self._quota.enabled,
            "cache": self._cache.stats(),
            "storage": self._episodes.info(),
        }

        if self._controller is not None:
            stats = self._controller.stats()
            result["concurrency"] = {
                "max_concurrent": stats.max_concurrent,
                "active": stats.current_active,
                "waiting": stats.current_waiting,
                "total_processed": stats.total_processed,
                "total_rejected": stats.total_rejected,
            }

        return result

    # =========================================================================
    # Internals
    # =========================================================================

    def _require_client(self) -> Any:
        if self._client is None:
            raise GenAIUnavailable("GEMINI_API_KEY is not set; generation is unavailable")
        return self._client

    def _require_pipeline(self) -> AudioPipeline:
        # the pipeline exists exactly when a client does
        if self._pipeline is None:
            raise GenAIUnavailable("GEMINI_API_KEY is not set; generation is unavailable")
        return self._pipeline

    def _require_profile(self, user_id: Optional[str], email: Optional[str] = None) -> Profile:
        if not user_id:
            raise UnauthorizedError("X-User-Id header is required")
        return self._profiles.get_or_create(user_id, email)

    def _reserve_generation(self, user_id: Optional[str], duration: str) -> Optional[Profile]:
        """Check the plan and take one generation; None when quotas are off."""
        if not self._quota.enabled:
            return None
        profile = self._require_profile(user_id)
        if not self._quota.allows_duration(profile, duration):
            raise QuotaExceededError(
                f"'{duration}' episodes are a Pro feature; upgrade to Pro to use them",
                {"duration": duration, "plan": profile.plan},
            )

        granted, reserved = self._quota.reserve_generation(profile.id)
        if not granted:
            raise QuotaExceededError(
                "Daily generation limit reached; upgrade to Pro for unlimited episodes",
                {
                    "daily_generation_count": reserved.daily_generation_count,
                    "limit": self._quota.daily_limit(reserved),
                },
            )
        return reserved

    def _resolve_speakers(self, speaker_ids: Sequence[int]) -> List[Speaker]:
        try:
            ids = validate_speaker_ids(speaker_ids)
        except ValidationError as e:
            raise InvalidInputError(e.message, {"code": e.code}) from e
        speakers = self._speakers.get_many(ids)
        if len(speakers) != len(ids):
            missing = sorted(set(ids) - {s.id for s in speakers})
            raise NotFoundError(f"Speaker(s) not found: {missing}", {"speaker_ids": missing})
        return speakers

    def _validate_request(self, request: ScriptRequest) -> List[Speaker]:
        try:
            request.content = validate_content(request.content, request.images, request.segments)
            validate_file_count(len(request.images))
        except ValidationError as e:
            raise InvalidInputError(e.message, {"code": e.code}) from e
        return self._resolve_speakers(request.speaker_ids)

    def _write_script(self, request: ScriptRequest, speakers: Sequence[Speaker]) -> PodcastScript:
        client = self._require_client()
        try:
            with timeit("script") as t:
                script = client.generate_script(
                    request.content,
                    request.duration,
                    speakers,
                    notes=request.notes,
                    images=request.images,
                    segments=request.segments or None,
                )
        except PodcraftError:
            raise
        except Exception as e:
            fail(_LOG, "script_failed", error=str(e), error_type=type(e).__name__)
            raise GenerationError(f"Failed to generate script: {e}", {"error_type": type(e).__name__}) from e

        try:
            script = validate_script(script)
        except ValidationError as e:
            raise GenerationError(f"Generated script is unusable: {e.message}", {"code": e.code}) from e

        debug(_LOG, "script_speakers", names=script.speaker_names)
        info(_LOG, "script_done", title=script.title, lines=len(script.lines), seconds=round(t.elapsed, 3))
        return script

    def _add_cover(self, script: PodcastScript, content: str) -> None:
        summary = script.show_notes or content or script.title
        try:
            with timeit("cover") as t:
                cover = self._require_client().generate_cover(script.title, summary)
        except Exception as e:
            warn(_LOG, "cover_failed", error=str(e), error_type=type(e).__name__)
            return
        if cover is None:
            return
        script.cover_image, script.cover_mime_type = cover
        verbose(_LOG, "cover_done", bytes=len(script.cover_image), seconds=round(t.elapsed, 3))

    @staticmethod
    def _audio_progress(progress: Optional[ProgressListener]) -> Optional[Callable[[int, int], None]]:
        if progress is None:
            return None

        def _on_chunk(completed: int, total: int) -> None:
            progress(
                ProgressEvent(
                    "audio",
                    STATUS_AUDIO_PART.format(current=completed, total=total),
                    completed=completed,
                    total=total,
                )
            )

        return _on_chunk

    @contextlib.contextmanager
    def _slot(self) -> Iterator[None]:
        """Hold a generation slot; maps controller rejections to PodcraftErrors."""
        if self._controller is None:
            yield
            return

        with contextlib.ExitStack() as stack:
            try:
                stack.enter_context(self._controller.acquire_sync(timeout=self._concurrency_timeout))
            except QueueFull as e:
                raise QueueFullError(str(e), {"max_queue": self._controller.max_queue}) from e
            except TimeoutError as e:
                raise JobTimeoutError(
                    f"Timed out after {self._concurrency_timeout}s waiting for a generation slot",
                    {"timeout_s": self._concurrency_timeout},
                ) from e
            debug(_LOG, "concurrency_acquired",
                  active=self._controller.active_count,
                  queue=self._controller.queue_depth)
            yield


def _emit(progress: Optional[ProgressListener], event: ProgressEvent) -> None:
    if progress is not None:
        progress(event)


# =============================================================================
# Global Service Singleton
# =============================================================================

_service: Optional[PodcastService] = None
_service_lock = threading.Lock()


def get_service(settings: Settings, client: Optional[Any] = None) -> PodcastService:
    """
    Get or create the global PodcastService instance.

    Thread-safe lazy singleton; `client` is only used on first creation.
    """
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = PodcastService(settings, client=client)
    return _service


def reset_service() -> None:
    """Reset the global service instance (used by tests)."""
    global _service
    with _service_lock:
        _service = None
