"""
Audio Generation Pipeline.

Turns a podcast script into one WAV file:

    Script → Chunk → Cache Check → Parallel TTS (retry) → Reassemble → WAV

Stages:
    1. Chunk: group script lines into TTS-sized chunks (chunker.py)
    2. Cache: chunks whose (model, voices, prompt) were synthesized
       recently are served from the LRU cache
    3. Synthesize: the remaining chunks go to a thread pool of
       max_parallel workers, so at most max_parallel TTS requests are in
       flight; each request is retried on transient errors with
       exponential backoff (tenacity)
    4. Reassemble: PCM pieces are joined in chunk order, whatever order
       they finished in, optionally separated by a short silence
    5. Encode: the joined PCM is wrapped in a WAV container

Failure Policy:
    The first chunk that fails for good (non-retryable error, or retries
    exhausted) cancels every chunk that has not started yet and raises
    SynthesisError naming the chunk. Chunks already in flight finish but
    their audio is discarded.

Example:
    >>> pipeline = AudioPipeline(client, config.tts, config.audio, cache)
    >>> result = pipeline.synthesize(script, speakers, progress=print)
    >>> open("episode.wav", "wb").write(result.wav_bytes)
"""
from __future__ import annotations

import contextvars
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from podcraft.core.config import AudioConfig, TTSConfig
from podcraft.core.errors import SynthesisError
from podcraft.core.logging import debug, fail, get_logger, info, success, verbose, warn
from podcraft.core.metrics import metrics
from podcraft.genai.client import EmptyAudioError, is_retryable
from podcraft.models import PodcastScript, Speaker
from podcraft.tts.cache import CacheItem, TinyLRUCache, make_chunk_key
from podcraft.tts.chunker import ScriptChunk, build_tts_prompt, chunk_script
from podcraft.utils.audio import pcm16_to_wav, pcm_duration_seconds, silence_pcm16
from podcraft.utils.timeit import timeit

_LOG = get_logger("podcraft.pipeline")

# (completed_chunks, total_chunks)
ProgressCallback = Callable[[int, int], None]


@dataclass
class AudioResult:
    """
    Result of synthesizing a script.

    Attributes:
        wav_bytes: Complete WAV file.
        pcm_bytes: The joined raw PCM inside wav_bytes.
        sample_rate: Sample rate in Hz.
        chunks: Number of chunks the script was split into.
        cache_hits: Chunks served from the cache.
        duration_seconds: Audio length.
        timings: Per-stage timing breakdown in seconds.
    """
    wav_bytes: bytes
    pcm_bytes: bytes
    sample_rate: int
    chunks: int
    cache_hits: int
    duration_seconds: float
    timings: Dict[str, float] = field(default_factory=dict)


class AudioPipeline:
    """
    Bounded-parallel TTS with retry and in-order reassembly.

    Args:
        client: Object with synthesize(prompt, voices) -> bytes and a
            tts_model attribute (GeminiClient in production).
        tts_config: Chunking, parallelism and retry settings.
        audio_config: Output sample rate and channels.
        cache: Optional chunk cache shared across pipelines.
        sleep: Sleep function used between retries.
    """

    def __init__(
        self,
        client: Any,
        tts_config: TTSConfig,
        audio_config: AudioConfig,
        cache: Optional[TinyLRUCache] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client = client
        self._tts = tts_config
        self._audio = audio_config
        self._cache = cache
        self._sleep = sleep

    @property
    def cache(self) -> Optional[TinyLRUCache]:
        return self._cache

    def synthesize(
        self,
        script: PodcastScript,
        speakers: Sequence[Speaker],
        progress: Optional[ProgressCallback] = None,
    ) -> AudioResult:
        """
        Synthesize a whole script.

        Args:
            script: Script whose speaker names match the speakers' names.
            speakers: Hosts; each name is mapped to its prebuilt voice.
            progress: Called as progress(completed, total) once per
                finished chunk, cache hits included.

        Returns:
            AudioResult with the WAV file and metadata.

        Raises:
            SynthesisError: If the script has nothing to speak or a chunk
                fails for good.
        """
        voices = {s.name: s.voice for s in speakers}
        sr = self._audio.sample_rate
        channels = self._audio.channels
        timings: Dict[str, float] = {}

        with timeit("audio_total") as total_t:
            cr = chunk_script(script.lines, max_lines=self._tts.chunk_max_lines, max_chars=self._tts.chunk_max_chars)
            chunks = cr.chunks
            timings.update(cr.timings_s)
            if not chunks:
                raise SynthesisError("Script has no speakable lines")

            total = len(chunks)
            info(_LOG, "audio_start", chunks=total, lines=cr.total_lines, parallel=self._tts.max_parallel)

            prompts = [build_tts_prompt(script.title, c.lines) for c in chunks]
            keys = [make_chunk_key(self._client.tts_model, voices, p) for p in prompts]
            results: List[Optional[bytes]] = [None] * total
            completed = 0
            cache_hits = 0

            # Stage 1: cache lookup
            pending: List[int] = []
            for i, key in enumerate(keys):
                item = self._lookup(key)
                if item is not None:
                    results[i] = item.pcm_bytes
                    cache_hits += 1
                    completed += 1
                    verbose(_LOG, "chunk_cached", chunk=i, cache="hit")
                    _notify(progress, completed, total)
                else:
                    pending.append(i)

            # Stage 2: bounded-parallel synthesis
            if pending:
                with timeit("synth") as synth_t:
                    for i, pcm in self._run_parallel(chunks, prompts, voices, pending):
                        results[i] = pcm
                        if self._cache is not None:
                            self._cache.set(keys[i], CacheItem(pcm_bytes=pcm, sample_rate=sr))
                        completed += 1
                        _notify(progress, completed, total)
                timings["synth"] = synth_t.elapsed

            # Stage 3: reassemble in script order and encode
            with timeit("encode") as enc_t:
                gap = silence_pcm16(self._tts.chunk_gap_ms, sr, channels)
                pcm_all = gap.join(r for r in results if r is not None)
                wav = pcm16_to_wav(pcm_all, sr, channels)
            timings["encode"] = enc_t.elapsed

        total_s = total_t.elapsed
        timings["audio_total"] = total_s
        duration = pcm_duration_seconds(pcm_all, sr, channels)
        metrics.record_audio_bytes(len(wav))
        success(
            _LOG, "audio_done",
            chunks=total,
            cache_hits=cache_hits,
            audio_seconds=round(duration, 2),
            bytes=len(wav),
            seconds=round(total_s, 3),
        )

        return AudioResult(
            wav_bytes=wav,
            pcm_bytes=pcm_all,
            sample_rate=sr,
            chunks=total,
            cache_hits=cache_hits,
            duration_seconds=duration,
            timings=timings,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _lookup(self, key: str) -> Optional[CacheItem]:
        if self._cache is None:
            return None
        item, _ = self._cache.get(key)
        if item is not None and item.sample_rate != self._audio.sample_rate:
            item = None
        metrics.record_cache("hit" if item is not None else "miss")
        return item

    def _run_parallel(
        self,
        chunks: Sequence[ScriptChunk],
        prompts: Sequence[str],
        voices: Mapping[str, str],
        pending: Sequence[int],
    ):
        """Yield (chunk_index, pcm) as chunks finish, in completion order."""
        total = len(chunks)
        workers = max(1, min(self._tts.max_parallel, len(pending)))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="podcraft-tts") as pool:
            futures: Dict[Future, int] = {}
            for i in pending:
                # Copy the context so worker log lines keep the request id
                ctx = contextvars.copy_context()
                futures[pool.submit(ctx.run, self._synthesize_chunk, i, total, prompts[i], voices)] = i

            try:
                for fut in as_completed(futures):
                    yield futures[fut], fut.result()
            except BaseException:
                cancelled = sum(1 for f in futures if f.cancel())
                if cancelled:
                    warn(_LOG, "chunks_cancelled", cancelled=cancelled)
                raise

    def _synthesize_chunk(self, index: int, total: int, prompt: str, voices: Mapping[str, str]) -> bytes:
        """Synthesize one chunk with retry; returns frame-aligned PCM."""
        frame_bytes = 2 * self._audio.channels

        def _before_sleep(state: RetryCallState) -> None:
            metrics.record_retry("tts")
            exc = state.outcome.exception() if state.outcome else None
            warn(
                _LOG, "chunk_retry",
                chunk=index,
                attempt=state.attempt_number,
                wait_s=round(state.next_action.sleep, 2) if state.next_action else 0,
                error_type=type(exc).__name__ if exc else None,
            )

        def _call() -> bytes:
            pcm = self._client.synthesize(prompt, voices)
            if not pcm:
                raise EmptyAudioError(f"chunk {index} returned no audio")
            return pcm

        retrying = Retrying(
            stop=stop_after_attempt(self._tts.max_attempts),
            wait=wait_exponential(multiplier=self._tts.backoff_base_s, max=self._tts.backoff_max_s),
            retry=retry_if_exception(is_retryable),
            before_sleep=_before_sleep,
            sleep=self._sleep,
            reraise=True,
        )

        debug(_LOG, "chunk_start", chunk=index, chars=len(prompt))
        with timeit(f"chunk_{index}") as t:
            try:
                pcm = retrying(_call)
            except Exception as e:
                metrics.record_chunk("error", t.elapsed)
                fail(_LOG, "chunk_failed", chunk=index, error=str(e), error_type=type(e).__name__)
                raise SynthesisError(
                    f"Audio part {index + 1} of {total} failed: {e}",
                    {"chunk": index, "error_type": type(e).__name__},
                ) from e

        remainder = len(pcm) % frame_bytes
        if remainder:
            # A partial frame would shift every later sample
            warn(_LOG, "chunk_pcm_unaligned", chunk=index, dropped_bytes=remainder)
            pcm = pcm[: len(pcm) - remainder]

        seconds = t.elapsed
        metrics.record_chunk("success", seconds)
        verbose(_LOG, "chunk_done", chunk=index, total=total, bytes=len(pcm), seconds=round(seconds, 3))
        return pcm


def _notify(progress: Optional[ProgressCallback], completed: int, total: int) -> None:
    if progress is not None:
        progress(completed, total)
