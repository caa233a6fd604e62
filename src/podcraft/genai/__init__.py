"""Google Gemini adapter for script, cover art and speech generation."""
from .client import EmptyAudioError, GeminiClient, GenAIUnavailableError

__all__ = ["GeminiClient", "EmptyAudioError", "GenAIUnavailableError"]
