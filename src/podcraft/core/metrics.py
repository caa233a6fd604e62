"""
Prometheus Metrics for PodCraft.

Metrics Exposed:
    podcraft_generations_total            - Generations by status
    podcraft_generation_duration_seconds  - Histogram of full generation latency
    podcraft_genai_calls_total            - Gemini API calls by operation and status
    podcraft_genai_retries_total          - Retried Gemini calls by operation
    podcraft_audio_seconds_total          - Seconds of podcast audio produced
    podcraft_audio_bytes_total            - WAV bytes produced
    podcraft_chunk_duration_seconds       - Histogram of per-chunk TTS latency
    podcraft_chunk_cache_total            - Chunk audio cache lookups by result
    podcraft_queue_depth                  - Generation jobs waiting for a slot
    podcraft_active_jobs                  - Generation jobs currently running

Usage:
    from podcraft.core.metrics import metrics

    metrics.record_generation("success", duration=42.0, audio_seconds=310.5)
    metrics.record_genai_call("tts", "success")
    metrics.record_cache("hit")

    content, content_type = metrics.get_metrics_response()

See Also:
    - api/routes.py: /metrics endpoint definition
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class PodcraftMetrics:
    """
    Metrics collection on a private CollectorRegistry.

    A private registry keeps the service's metrics separate from anything
    else registered in the same process, and lets tests build fresh
    instances without duplicate-registration errors.

    Thread Safety:
        All Prometheus metric operations are thread-safe.
    """

    def __init__(self) -> None:
        self._registry = CollectorRegistry()

        self._generations_total = Counter(
            "podcraft_generations_total",
            "Podcast generations by status",
            ["status"],
            registry=self._registry,
        )
        self._generation_duration = Histogram(
            "podcraft_generation_duration_seconds",
            "End-to-end podcast generation duration in seconds",
            buckets=(5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0),
            registry=self._registry,
        )
        self._genai_calls = Counter(
            "podcraft_genai_calls_total",
            "Gemini API calls",
            ["operation", "status"],
            registry=self._registry,
        )
        self._genai_retries = Counter(
            "podcraft_genai_retries_total",
            "Gemini API calls that were retried",
            ["operation"],
            registry=self._registry,
        )
        self._audio_seconds = Counter(
            "podcraft_audio_seconds_total",
            "Seconds of podcast audio produced",
            registry=self._registry,
        )
        self._audio_bytes = Counter(
            "podcraft_audio_bytes_total",
            "WAV bytes produced",
            registry=self._registry,
        )
        self._chunk_duration = Histogram(
            "podcraft_chunk_duration_seconds",
            "TTS chunk synthesis duration in seconds, retries included",
            ["status"],
            buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 40.0, 80.0),
            registry=self._registry,
        )
        self._chunk_cache = Counter(
            "podcraft_chunk_cache_total",
            "Chunk audio cache lookups",
            ["result"],
            registry=self._registry,
        )
        self._queue_depth = Gauge(
            "podcraft_queue_depth",
            "Generation jobs waiting for a slot",
            registry=self._registry,
        )
        self._active_jobs = Gauge(
            "podcraft_active_jobs",
            "Generation jobs currently running",
            registry=self._registry,
        )

    def record_generation(self, status: str, duration: float = 0.0, audio_seconds: float = 0.0) -> None:
        """
        Record a finished generation.

        Args:
            status: "success" or "error"
            duration: Wall-clock seconds for the whole generation
            audio_seconds: Length of the produced audio
        """
        self._generations_total.labels(status=status).inc()
        if duration > 0:
            self._generation_duration.observe(duration)
        if audio_seconds > 0:
            self._audio_seconds.inc(audio_seconds)

    def record_chunk(self, status: str, duration: float) -> None:
        """Record one TTS chunk, measured across all of its attempts."""
        self._chunk_duration.labels(status=status).observe(duration)

    def record_audio_bytes(self, count: int) -> None:
        if count > 0:
            self._audio_bytes.inc(count)

    def record_genai_call(self, operation: str, status: str) -> None:
        """Record one Gemini call ("script", "tts", "image", "notes")."""
        self._genai_calls.labels(operation=operation, status=status).inc()

    def record_retry(self, operation: str) -> None:
        self._genai_retries.labels(operation=operation).inc()

    def record_cache(self, result: str) -> None:
        """Record a chunk cache lookup ("hit" or "miss")."""
        self._chunk_cache.labels(result=result).inc()

    def set_queue_depth(self, depth: int) -> None:
        self._queue_depth.set(depth)

    def set_active_jobs(self, count: int) -> None:
        self._active_jobs.set(count)

    def get_metrics_response(self) -> tuple[bytes, str]:
        """
        Get metrics in Prometheus text format.

        Returns:
            Tuple of (content_bytes, content_type)
        """
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Global singleton: from podcraft.core.metrics import metrics
metrics = PodcraftMetrics()
