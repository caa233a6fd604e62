"""
PodCraft: AI podcast generation service.

Turns text, images and PDFs into a two-host podcast episode using the
Google Gemini API for scriptwriting, cover art and multi-speaker
text-to-speech.

Pipeline:
    content -> script (JSON mode) -> cover art -> chunked TTS -> WAV

Key Features:
    - Bounded-parallel TTS with retry and exponential backoff
    - Chunk-level audio cache
    - SQLite speaker library seeded with prebuilt hosts
    - Free/pro plan quotas
    - FastAPI service, SSE progress stream and a CLI

Example Usage:
    >>> from podcraft.services import PodcastService, ScriptRequest
    >>> from podcraft.core.config import load_settings
    >>>
    >>> service = PodcastService(load_settings())
    >>> episode = service.generate_podcast(
    ...     ScriptRequest(content="The history of tea", speaker_ids=[1, 2]),
    ...     user_id="user-123",
    ... )
    >>> open("episode.wav", "wb").write(episode.wav_bytes)
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
