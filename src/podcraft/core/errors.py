"""
Error Codes and Exceptions.

Every failure that reaches a client is a PodcraftError carrying one of the
ErrorCode values. The API layer maps codes to HTTP statuses (see
api/routes.py) and renders the body with to_dict():

    {"ok": false, "error": "QUOTA_EXCEEDED", "message": "...", "details": {...}}

Unexpected exceptions are logged and wrapped by the service layer; their
text is never the only thing a client sees.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """Standardized error codes for API responses."""
    INVALID_INPUT = "INVALID_INPUT"             # Bad request data
    NOT_FOUND = "NOT_FOUND"                     # Unknown speaker / episode
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"           # Free plan limit reached
    UNAUTHORIZED = "UNAUTHORIZED"               # Missing user identity
    GENAI_UNAVAILABLE = "GENAI_UNAVAILABLE"     # No API key configured
    GENERATION_FAILED = "GENERATION_FAILED"     # Script / cover / notes call failed
    SYNTHESIS_FAILED = "SYNTHESIS_FAILED"       # TTS chunk failed after retries
    TIMEOUT = "TIMEOUT"                         # No generation slot in time
    QUEUE_FULL = "QUEUE_FULL"                   # Generation queue at capacity
    INTERNAL_ERROR = "INTERNAL_ERROR"           # Unexpected error


class PodcraftError(Exception):
    """
    Base exception with a standardized error format.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode.
        details: Optional dictionary with additional context.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the standardized error response body."""
        result: Dict[str, Any] = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class InvalidInputError(PodcraftError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)


class NotFoundError(PodcraftError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.NOT_FOUND, details)


class QuotaExceededError(PodcraftError):
    """Raised when a free-plan user is over the generation or clone limit."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.QUOTA_EXCEEDED, details)


class UnauthorizedError(PodcraftError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.UNAUTHORIZED, details)


class GenAIUnavailable(PodcraftError):
    """Raised when an operation needs the Gemini API but no key is set."""
    def __init__(self, message: str = "Generative AI service is not configured", details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.GENAI_UNAVAILABLE, details)


class GenerationError(PodcraftError):
    """Raised when script, notes or cover generation fails."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.GENERATION_FAILED, details)


class SynthesisError(PodcraftError):
    """Raised when a TTS chunk fails for good; details carry the chunk index."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.SYNTHESIS_FAILED, details)


class JobTimeoutError(PodcraftError):
    """Raised when a generation job waited too long for a slot."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.TIMEOUT, details)


class QueueFullError(PodcraftError):
    """Raised when the generation queue cannot accept more jobs."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.QUEUE_FULL, details)
