"""
Configuration Management for PodCraft.

Configuration Hierarchy (highest priority first):
    1. Environment variables (GEMINI_API_KEY, PODCRAFT_DB_PATH, ...)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Example settings.yaml:
    genai:
      script_model: gemini-3-flash-preview
      tts_model: gemini-2.5-flash-preview-tts

    tts:
      chunk_max_lines: 12
      max_parallel: 3
      max_attempts: 4

    quota:
      enabled: true
      free_daily_limit: 1
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml


class ConfigValidationError(Exception):
    """Raised when a configuration value is out of bounds or of the wrong type."""
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - GenAI: Model names and request timeout
        - Audio: PCM format returned by the TTS API
        - TTS pipeline: Chunking, parallelism and retry policy
        - Concurrency: Simultaneous generation jobs
        - Cache: Chunk audio LRU cache
        - Storage: Episode archive on disk
        - Database: SQLite file for speakers and profiles
        - Quota: Free plan limits
        - Logging
    """

    # ─────────────────────────────────────────────────────────────────────────
    # GenAI
    # ─────────────────────────────────────────────────────────────────────────
    GENAI_SCRIPT_MODEL = "gemini-3-flash-preview"
    GENAI_TTS_MODEL = "gemini-2.5-flash-preview-tts"
    GENAI_IMAGE_MODEL = "gemini-2.5-flash-image"
    GENAI_TIMEOUT_S = 120.0

    # ─────────────────────────────────────────────────────────────────────────
    # Audio (Gemini TTS returns 16-bit mono PCM at 24 kHz)
    # ─────────────────────────────────────────────────────────────────────────
    AUDIO_SAMPLE_RATE = 24000
    AUDIO_CHANNELS = 1

    # ─────────────────────────────────────────────────────────────────────────
    # TTS Pipeline
    # ─────────────────────────────────────────────────────────────────────────
    TTS_CHUNK_MAX_LINES = 12        # Script lines per TTS request
    TTS_CHUNK_MAX_CHARS = 2400      # Rendered conversation chars per request
    TTS_MAX_PARALLEL = 3            # In-flight TTS requests per generation
    TTS_MAX_ATTEMPTS = 4            # Attempts per chunk, first call included
    TTS_BACKOFF_BASE_S = 1.0        # First retry wait
    TTS_BACKOFF_MAX_S = 20.0        # Retry wait ceiling
    TTS_CHUNK_GAP_MS = 0            # Silence inserted between chunks

    # ─────────────────────────────────────────────────────────────────────────
    # Concurrency Control
    # ─────────────────────────────────────────────────────────────────────────
    CONCURRENCY_ENABLED = True
    CONCURRENCY_MAX_CONCURRENT = 2  # Generation jobs at once
    CONCURRENCY_MAX_QUEUE = 10      # Jobs waiting before rejection
    CONCURRENCY_TIMEOUT_S = 30.0    # Wait for a job slot

    # ─────────────────────────────────────────────────────────────────────────
    # Chunk Cache
    # ─────────────────────────────────────────────────────────────────────────
    CACHE_MAX_ITEMS = 256
    CACHE_TTL_SECONDS = 3600

    # ─────────────────────────────────────────────────────────────────────────
    # Episode Storage
    # ─────────────────────────────────────────────────────────────────────────
    STORAGE_BASE_DIR = "./storage/episodes"
    STORAGE_TTL_SECONDS = 86400 * 7

    # ─────────────────────────────────────────────────────────────────────────
    # Database
    # ─────────────────────────────────────────────────────────────────────────
    DATABASE_PATH = "podcraft.db"

    # ─────────────────────────────────────────────────────────────────────────
    # Quota
    # ─────────────────────────────────────────────────────────────────────────
    QUOTA_ENABLED = True
    QUOTA_FREE_DAILY_LIMIT = 1
    QUOTA_FREE_CLONE_LIMIT = 1
    QUOTA_PRO_DURATIONS = ("2 hours",)

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 80
    LOGGING_LEVEL = 2


@dataclass
class GenAIConfig:
    """Gemini model selection. The API key is never read from YAML."""
    api_key: Optional[str] = None
    script_model: str = Defaults.GENAI_SCRIPT_MODEL
    tts_model: str = Defaults.GENAI_TTS_MODEL
    image_model: str = Defaults.GENAI_IMAGE_MODEL
    timeout_s: float = Defaults.GENAI_TIMEOUT_S


@dataclass
class AudioConfig:
    sample_rate: int = Defaults.AUDIO_SAMPLE_RATE
    channels: int = Defaults.AUDIO_CHANNELS


@dataclass
class TTSConfig:
    """
    TTS pipeline configuration.

    A script is split into chunks of at most chunk_max_lines lines and
    chunk_max_chars characters; at most max_parallel chunks are in flight,
    and each chunk is attempted up to max_attempts times with exponential
    backoff between backoff_base_s and backoff_max_s.
    """
    chunk_max_lines: int = Defaults.TTS_CHUNK_MAX_LINES
    chunk_max_chars: int = Defaults.TTS_CHUNK_MAX_CHARS
    max_parallel: int = Defaults.TTS_MAX_PARALLEL
    max_attempts: int = Defaults.TTS_MAX_ATTEMPTS
    backoff_base_s: float = Defaults.TTS_BACKOFF_BASE_S
    backoff_max_s: float = Defaults.TTS_BACKOFF_MAX_S
    chunk_gap_ms: int = Defaults.TTS_CHUNK_GAP_MS


@dataclass
class ConcurrencyConfig:
    enabled: bool = Defaults.CONCURRENCY_ENABLED
    max_concurrent: int = Defaults.CONCURRENCY_MAX_CONCURRENT
    max_queue: int = Defaults.CONCURRENCY_MAX_QUEUE
    timeout_s: float = Defaults.CONCURRENCY_TIMEOUT_S


@dataclass
class CacheConfig:
    max_items: int = Defaults.CACHE_MAX_ITEMS
    ttl_seconds: int = Defaults.CACHE_TTL_SECONDS


@dataclass
class StorageConfig:
    base_dir: str = Defaults.STORAGE_BASE_DIR
    ttl_seconds: int = Defaults.STORAGE_TTL_SECONDS


@dataclass
class DatabaseConfig:
    path: str = Defaults.DATABASE_PATH


@dataclass
class QuotaConfig:
    """
    Plan limits. Pro users are unlimited; free users get free_daily_limit
    generations per UTC day and free_clone_limit voice clones in total.
    Target durations listed in pro_durations are reserved for Pro users.
    """
    enabled: bool = Defaults.QUOTA_ENABLED
    free_daily_limit: int = Defaults.QUOTA_FREE_DAILY_LIMIT
    free_clone_limit: int = Defaults.QUOTA_FREE_CLONE_LIMIT
    pro_durations: Tuple[str, ...] = Defaults.QUOTA_PRO_DURATIONS


@dataclass
class LoggingConfig:
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


@dataclass
class PodcraftConfig:
    """
    Validated configuration for PodcastService.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = PodcraftConfig.from_settings(settings)
        print(config.tts.max_parallel)
    """
    genai: GenAIConfig = field(default_factory=GenAIConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    tts: TTSConfig = field(default_factory=TTSConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    quota: QuotaConfig = field(default_factory=QuotaConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "PodcraftConfig":
        """
        Create PodcraftConfig from Settings with validation.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # GenAI
        # ─────────────────────────────────────────────────────────────────────
        genai_raw = raw.get("genai", {})
        genai = GenAIConfig(
            api_key=genai_raw.get("api_key") or None,
            script_model=str(genai_raw.get("script_model", Defaults.GENAI_SCRIPT_MODEL)),
            tts_model=str(genai_raw.get("tts_model", Defaults.GENAI_TTS_MODEL)),
            image_model=str(genai_raw.get("image_model", Defaults.GENAI_IMAGE_MODEL)),
            timeout_s=float(genai_raw.get("timeout_s", Defaults.GENAI_TIMEOUT_S)),
        )
        cls._validate_positive("genai.timeout_s", genai.timeout_s)

        # ─────────────────────────────────────────────────────────────────────
        # Audio
        # ─────────────────────────────────────────────────────────────────────
        audio_raw = raw.get("audio", {})
        audio = AudioConfig(
            sample_rate=int(audio_raw.get("sample_rate", Defaults.AUDIO_SAMPLE_RATE)),
            channels=int(audio_raw.get("channels", Defaults.AUDIO_CHANNELS)),
        )
        cls._validate_positive("audio.sample_rate", audio.sample_rate)
        cls._validate_range("audio.channels", audio.channels, 1, 2)

        # ─────────────────────────────────────────────────────────────────────
        # TTS pipeline
        # ─────────────────────────────────────────────────────────────────────
        tts_raw = raw.get("tts", {})
        tts = TTSConfig(
            chunk_max_lines=int(tts_raw.get("chunk_max_lines", Defaults.TTS_CHUNK_MAX_LINES)),
            chunk_max_chars=int(tts_raw.get("chunk_max_chars", Defaults.TTS_CHUNK_MAX_CHARS)),
            max_parallel=int(tts_raw.get("max_parallel", Defaults.TTS_MAX_PARALLEL)),
            max_attempts=int(tts_raw.get("max_attempts", Defaults.TTS_MAX_ATTEMPTS)),
            backoff_base_s=float(tts_raw.get("backoff_base_s", Defaults.TTS_BACKOFF_BASE_S)),
            backoff_max_s=float(tts_raw.get("backoff_max_s", Defaults.TTS_BACKOFF_MAX_S)),
            chunk_gap_ms=int(tts_raw.get("chunk_gap_ms", Defaults.TTS_CHUNK_GAP_MS)),
        )
        cls._validate_positive("tts.chunk_max_lines", tts.chunk_max_lines)
        cls._validate_positive("tts.chunk_max_chars", tts.chunk_max_chars)
        cls._validate_positive("tts.max_parallel", tts.max_parallel)
        cls._validate_positive("tts.max_attempts", tts.max_attempts)
        cls._validate_non_negative("tts.backoff_base_s", tts.backoff_base_s)
        cls._validate_non_negative("tts.backoff_max_s", tts.backoff_max_s)
        cls._validate_non_negative("tts.chunk_gap_ms", tts.chunk_gap_ms)
        if tts.backoff_max_s < tts.backoff_base_s:
            raise ConfigValidationError(
                f"tts.backoff_max_s ({tts.backoff_max_s}) must be >= tts.backoff_base_s ({tts.backoff_base_s})"
            )

        # ─────────────────────────────────────────────────────────────────────
        # Concurrency
        # ─────────────────────────────────────────────────────────────────────
        concurrency_raw = raw.get("concurrency", {})
        concurrency = ConcurrencyConfig(
            enabled=bool(concurrency_raw.get("enabled", Defaults.CONCURRENCY_ENABLED)),
            max_concurrent=int(concurrency_raw.get("max_concurrent", Defaults.CONCURRENCY_MAX_CONCURRENT)),
            max_queue=int(concurrency_raw.get("max_queue", Defaults.CONCURRENCY_MAX_QUEUE)),
            timeout_s=float(concurrency_raw.get("timeout_s", Defaults.CONCURRENCY_TIMEOUT_S)),
        )
        cls._validate_positive("concurrency.max_concurrent", concurrency.max_concurrent)
        cls._validate_non_negative("concurrency.max_queue", concurrency.max_queue)
        cls._validate_positive("concurrency.timeout_s", concurrency.timeout_s)

        # ─────────────────────────────────────────────────────────────────────
        # Cache
        # ─────────────────────────────────────────────────────────────────────
        cache_raw = raw.get("cache", {})
        cache = CacheConfig(
            max_items=int(cache_raw.get("max_items", Defaults.CACHE_MAX_ITEMS)),
            ttl_seconds=int(cache_raw.get("ttl_seconds", Defaults.CACHE_TTL_SECONDS)),
        )
        cls._validate_positive("cache.max_items", cache.max_items)
        cls._validate_non_negative("cache.ttl_seconds", cache.ttl_seconds)

        # ─────────────────────────────────────────────────────────────────────
        # Storage and database (env overrides applied in load_settings)
        # ─────────────────────────────────────────────────────────────────────
        storage_raw = raw.get("storage", {})
        storage = StorageConfig(
            base_dir=str(storage_raw.get("base_dir", Defaults.STORAGE_BASE_DIR)),
            ttl_seconds=int(storage_raw.get("ttl_seconds", Defaults.STORAGE_TTL_SECONDS)),
        )
        cls._validate_positive("storage.ttl_seconds", storage.ttl_seconds)

        database_raw = raw.get("database", {})
        database = DatabaseConfig(path=str(database_raw.get("path", Defaults.DATABASE_PATH)))

        # ─────────────────────────────────────────────────────────────────────
        # Quota
        # ─────────────────────────────────────────────────────────────────────
        quota_raw = raw.get("quota", {})
        pro_durations = quota_raw.get("pro_durations", Defaults.QUOTA_PRO_DURATIONS) or ()
        if isinstance(pro_durations, str):
            pro_durations = [pro_durations]
        quota = QuotaConfig(
            enabled=bool(quota_raw.get("enabled", Defaults.QUOTA_ENABLED)),
            free_daily_limit=int(quota_raw.get("free_daily_limit", Defaults.QUOTA_FREE_DAILY_LIMIT)),
            free_clone_limit=int(quota_raw.get("free_clone_limit", Defaults.QUOTA_FREE_CLONE_LIMIT)),
            pro_durations=tuple(str(d) for d in pro_durations),
        )
        cls._validate_non_negative("quota.free_daily_limit", quota.free_daily_limit)
        cls._validate_non_negative("quota.free_clone_limit", quota.free_clone_limit)

        # ─────────────────────────────────────────────────────────────────────
        # Logging
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {})
        log_level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)
        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(log_level_raw)

        logging_cfg = LoggingConfig(
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
            level=log_level,
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)

        return cls(
            genai=genai,
            audio=audio,
            tts=tts,
            concurrency=concurrency,
            cache=cache,
            storage=storage,
            database=database,
            quota=quota,
            logging=logging_cfg,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable raw settings loaded from YAML.

    Use get_config() for the validated PodcraftConfig.
    """
    raw: Dict[str, Any]

    @property
    def api_key(self) -> Optional[str]:
        return self.raw.get("genai", {}).get("api_key") or None

    @property
    def sample_rate(self) -> int:
        return int(self.raw.get("audio", {}).get("sample_rate", Defaults.AUDIO_SAMPLE_RATE))

    @property
    def database_path(self) -> str:
        return str(self.raw.get("database", {}).get("path", Defaults.DATABASE_PATH))

    def get_config(self) -> PodcraftConfig:
        """
        Get validated configuration.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return PodcraftConfig.from_settings(self)


def apply_env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply environment variable overrides to a raw settings dict in place.

    Environment variables:
        - GEMINI_API_KEY: genai.api_key
        - PODCRAFT_DB_PATH: database.path
        - PODCRAFT_STORAGE_DIR: storage.base_dir
    """
    api_key = os.getenv("GEMINI_API_KEY")
    if api_key:
        raw.setdefault("genai", {})["api_key"] = api_key

    db_path = os.getenv("PODCRAFT_DB_PATH")
    if db_path:
        raw.setdefault("database", {})["path"] = db_path

    storage_dir = os.getenv("PODCRAFT_STORAGE_DIR")
    if storage_dir:
        raw.setdefault("storage", {})["base_dir"] = storage_dir

    return raw


def load_settings(path: str = "config/settings.yaml") -> Settings:
    """
    Load settings from a YAML configuration file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Settings with environment overrides applied.

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    return Settings(raw=apply_env_overrides(raw))
