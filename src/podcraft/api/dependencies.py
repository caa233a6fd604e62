"""
FastAPI Dependency Injection Providers.

Dependency hierarchy:
    1. get_settings() - Loads and caches application configuration
    2. get_podcast_service() - Creates/returns the singleton PodcastService
    3. get_user_id() - Reads the caller identity from X-User-Id

All requests share one PodcastService so they share one chunk cache, one
concurrency controller and one Gemini client.

Usage in Route Handlers:
    @router.get("/api/speakers")
    def list_speakers(service: PodcastService = Depends(get_podcast_service)):
        return service.list_speakers()
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from fastapi import Header

from podcraft.core.config import Settings, apply_env_overrides, load_settings
from podcraft.core.logging import get_logger, warn
from podcraft.services.podcast_service import PodcastService, get_service

_LOG = get_logger("podcraft.api")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    The path comes from PODCRAFT_SETTINGS (default config/settings.yaml).
    A missing file falls back to built-in defaults plus environment
    overrides.
    """
    path = os.getenv("PODCRAFT_SETTINGS", "config/settings.yaml")
    try:
        return load_settings(path)
    except FileNotFoundError:
        warn(_LOG, "settings_missing", path=path)
        return Settings(raw=apply_env_overrides({}))


def get_podcast_service() -> PodcastService:
    """Get the singleton PodcastService instance."""
    return get_service(get_settings())


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Caller identity from the X-User-Id header; None if absent or blank."""
    if x_user_id is None:
        return None
    return x_user_id.strip() or None
