"""
PodCraft Services Layer.

This package provides the business logic layer that orchestrates podcast
generation. It sits between the API/CLI layer and the Gemini, TTS and
storage layers.

Components:
    - podcast_service.py: PodcastService class (main orchestrator)
    - validators.py: Input validation functions
    - pdf.py: PDF text extraction

The PodcastService class handles:
    - Request validation
    - Plan quotas
    - Script, cover and audio generation
    - Concurrency control
    - Episode archiving
    - Error handling and reporting
"""
from .podcast_service import (
    PodcastService,
    ProgressEvent,
    ScriptRequest,
    get_service,
    reset_service,
)

__all__ = [
    "PodcastService",
    "ProgressEvent",
    "ScriptRequest",
    "get_service",
    "reset_service",
]
