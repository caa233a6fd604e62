"""
PodCraft API Routes.

Endpoints:
    GET    /api/speakers                  - List the speaker library
    POST   /api/speakers                  - Create a speaker -> {"id": n}
    DELETE /api/speakers/{id}             - Delete a user speaker -> {"success": true}
    POST   /api/speakers/{id}/preview     - Short in-character intro (WAV)
    POST   /api/extract-pdf               - Extract text from up to 10 PDFs
    POST   /api/segments/suggest          - Talking points for a segment
    POST   /api/podcasts/script           - Write a script (JSON)
    POST   /api/podcasts/audio            - Synthesize a script (WAV)
    POST   /api/podcasts                  - Generate a whole episode (JSON)
    POST   /api/podcasts/stream           - Same, as Server-Sent Events
    GET    /api/podcasts/{id}/audio       - Archived episode audio
    GET    /api/podcasts/{id}/cover       - Archived episode cover
    GET    /api/podcasts/{id}/script      - Archived episode script + metadata
    GET    /api/profile                   - Plan and remaining allowance
    POST   /api/profile/upgrade           - Switch to the pro plan
    GET    /health                        - Health check
    GET    /metrics                       - Prometheus metrics

Error Handling:
    PodcraftErrors raised by handlers are rendered by podcraft_error_handler
    (registered in main.py) with the standardized body
    {"ok": false, "error": "<CODE>", "message": "..."} and an HTTP status
    mapped from the code:
        - INVALID_INPUT -> 400
        - UNAUTHORIZED -> 401
        - NOT_FOUND -> 404
        - TIMEOUT -> 408
        - QUOTA_EXCEEDED -> 429
        - GENERATION_FAILED / SYNTHESIS_FAILED -> 502
        - QUEUE_FULL / GENAI_UNAVAILABLE -> 503

    The PDF endpoint keeps the plain {"error": "..."} body its web client
    expects.

User Identity:
    Endpoints that touch quotas read the X-User-Id header; it is required
    when quotas are enabled.
"""
from __future__ import annotations

import contextvars
import json
import queue
import threading
import uuid
from typing import Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, File, Request, Response, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse

from podcraft.api.dependencies import get_podcast_service, get_user_id
from podcraft.api.schemas import (
    AudioRequestIn,
    PodcastRequestIn,
    ScriptModel,
    ScriptRequestIn,
    SpeakerIn,
    SpeakerOut,
    SuggestNotesIn,
    episode_to_dict,
)
from podcraft.core.errors import ErrorCode, InvalidInputError, PodcraftError, UnauthorizedError
from podcraft.core.logging import error, get_logger, get_request_id, info, set_request_id, warn
from podcraft.core.metrics import metrics
from podcraft.services.pdf import PdfExtractionError, extract_pdfs
from podcraft.services.podcast_service import PodcastService, ProgressEvent, ScriptRequest
from podcraft.services.validators import ValidationError, validate_pdf_uploads
from podcraft.tts.pipeline import AudioResult
from podcraft.utils.audio import decode_data_url

router = APIRouter()

_LOG = get_logger("podcraft.api")

STATUS_MAP: Dict[str, int] = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.TIMEOUT: 408,
    ErrorCode.QUOTA_EXCEEDED: 429,
    ErrorCode.GENERATION_FAILED: 502,
    ErrorCode.SYNTHESIS_FAILED: 502,
    ErrorCode.QUEUE_FULL: 503,
    ErrorCode.GENAI_UNAVAILABLE: 503,
}


# =============================================================================
# Error handlers (registered in main.py)
# =============================================================================

def _error_response(err: PodcraftError, status_code: int = 500) -> JSONResponse:
    body = err.to_dict()
    body["request_id"] = get_request_id()
    return JSONResponse(status_code=status_code, content=body)


async def podcraft_error_handler(request: Request, exc: PodcraftError) -> JSONResponse:
    status_code = STATUS_MAP.get(exc.code, 500)
    warn(_LOG, "request_error", path=request.url.path, code=exc.code, status=status_code)
    return _error_response(exc, status_code)


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Log internally, never expose details
    error(_LOG, "unhandled_error", path=request.url.path, error=str(exc), error_type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": ErrorCode.INTERNAL_ERROR,
            "message": "Internal server error",
            "request_id": get_request_id(),
        },
    )


async def request_id() -> str:
    """Assign a request id for log correlation; async so it binds to the request task."""
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)
    return rid


# =============================================================================
# Helpers
# =============================================================================

def _script_request(req: ScriptRequestIn) -> ScriptRequest:
    images: List[Tuple[bytes, str]] = []
    for i, value in enumerate(req.images):
        try:
            images.append(decode_data_url(value))
        except ValueError as e:
            raise InvalidInputError(f"Image {i + 1} is not valid base64 data", {"index": i}) from e

    return ScriptRequest(
        content=req.combined_content(),
        speaker_ids=list(req.speakerIds),
        duration=req.duration or "3 minutes",
        notes=req.notes,
        images=images,
        segments=[s.to_segment() for s in req.segments],
        with_cover=getattr(req, "withCover", True),
    )


def _wav_response(result: AudioResult, rid: str) -> Response:
    headers = {
        "X-Request-Id": rid,
        "X-Sample-Rate": str(result.sample_rate),
        "X-Chunks": str(result.chunks),
        "X-Bytes": str(len(result.wav_bytes)),
        "X-Duration-Seconds": f"{result.duration_seconds:.3f}",
    }
    return Response(content=result.wav_bytes, media_type="audio/wav", headers=headers)


def _sse(event: str, payload: dict) -> str:
    """Format a Server-Sent Event message."""
    return f"event: {event}\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"


# =============================================================================
# Speakers
# =============================================================================

@router.get("/api/speakers", response_model=List[SpeakerOut])
def list_speakers(service: PodcastService = Depends(get_podcast_service)):
    return [SpeakerOut.from_speaker(s) for s in service.list_speakers()]


@router.post("/api/speakers")
def create_speaker(
    req: SpeakerIn,
    user_id: Optional[str] = Depends(get_user_id),
    rid: str = Depends(request_id),
    service: PodcastService = Depends(get_podcast_service),
):
    new_id = service.create_speaker(req.to_speaker(), user_id=user_id)
    return {"id": new_id}


@router.delete("/api/speakers/{speaker_id}")
def delete_speaker(speaker_id: int, service: PodcastService = Depends(get_podcast_service)):
    """Prebuilt and unknown speakers are left alone; the response is the same."""
    service.delete_speaker(speaker_id)
    return {"success": True}


@router.post("/api/speakers/{speaker_id}/preview", response_class=Response)
def preview_speaker(
    speaker_id: int,
    rid: str = Depends(request_id),
    service: PodcastService = Depends(get_podcast_service),
):
    return _wav_response(service.preview_speaker(speaker_id), rid)


# =============================================================================
# Sources and planning
# =============================================================================

@router.post("/api/extract-pdf")
def extract_pdf(
    pdfs: Optional[List[UploadFile]] = File(default=None),
    rid: str = Depends(request_id),
):
    """
    Extract text from uploaded PDFs (multipart field "pdfs").

    Returns:
        {"results": [{"name": ..., "text": ...}, ...]} in upload order.
    """
    files = pdfs or []
    try:
        validate_pdf_uploads(len(files))
    except ValidationError as e:
        return JSONResponse(status_code=400, content={"error": e.message})

    try:
        results = extract_pdfs((f.filename or "document.pdf", f.file.read()) for f in files)
    except PdfExtractionError as e:
        error(_LOG, "pdf_extraction_failed", error=str(e))
        return JSONResponse(status_code=500, content={"error": "Failed to extract PDF text"})

    info(_LOG, "pdfs_extracted", files=len(results), chars=sum(len(r.text) for r in results))
    return {"results": [r.to_dict() for r in results]}


@router.post("/api/segments/suggest")
def suggest_segment_notes(
    req: SuggestNotesIn,
    rid: str = Depends(request_id),
    service: PodcastService = Depends(get_podcast_service),
):
    return {"notes": service.suggest_notes(req.title, req.content)}


# =============================================================================
# Podcasts
# =============================================================================

@router.post("/api/podcasts/script", response_model=ScriptModel)
def generate_script(
    req: ScriptRequestIn,
    rid: str = Depends(request_id),
    service: PodcastService = Depends(get_podcast_service),
):
    script = service.generate_script(_script_request(req))
    return ScriptModel.from_script(script)


@router.post("/api/podcasts/audio", response_class=Response)
def synthesize_script(
    req: AudioRequestIn,
    rid: str = Depends(request_id),
    service: PodcastService = Depends(get_podcast_service),
):
    """
    Synthesize an existing script with two speakers.

    Returns:
        WAV audio with X-Request-Id, X-Sample-Rate, X-Chunks, X-Bytes and
        X-Duration-Seconds headers.
    """
    result = service.synthesize_script(req.script.to_script(), req.speakerIds)
    return _wav_response(result, rid)


@router.post("/api/podcasts")
def generate_podcast(
    req: PodcastRequestIn,
    user_id: Optional[str] = Depends(get_user_id),
    rid: str = Depends(request_id),
    service: PodcastService = Depends(get_podcast_service),
):
    """Generate a complete episode; blocks until it is ready."""
    episode = service.generate_podcast(_script_request(req), user_id=user_id)
    body = episode_to_dict(episode)
    body["requestId"] = rid
    return body


@router.post("/api/podcasts/stream")
def generate_podcast_stream(
    req: PodcastRequestIn,
    user_id: Optional[str] = Depends(get_user_id),
    rid: str = Depends(request_id),
    service: PodcastService = Depends(get_podcast_service),
):
    """
    Generate an episode, streaming progress as Server-Sent Events.

    Events:
        meta      {"request_id"}
        status    {"stage", "message"} at each stage
        progress  {"stage": "audio", "message", "completed", "total"} per chunk
        done      episode JSON (as POST /api/podcasts)
        error     {"ok": false, "error", "message", ...}

    Generation runs in a worker thread; events are relayed through a queue
    so the client sees each one as soon as it happens.
    """
    if service.quota_enabled and not user_id:
        raise UnauthorizedError("X-User-Id header is required")
    script_request = _script_request(req)

    events: "queue.Queue[Optional[Tuple[str, dict]]]" = queue.Queue()

    def _on_progress(event: ProgressEvent) -> None:
        events.put(("progress" if event.total else "status", event.to_dict()))

    def _run() -> None:
        try:
            episode = service.generate_podcast(script_request, user_id=user_id, progress=_on_progress)
            events.put(("done", episode_to_dict(episode)))
        except PodcraftError as e:
            events.put(("error", e.to_dict()))
        except Exception as e:
            error(_LOG, "stream_failed", error=str(e), error_type=type(e).__name__)
            events.put(("error", {"ok": False, "error": ErrorCode.INTERNAL_ERROR, "message": "Internal server error"}))
        finally:
            events.put(None)

    # Copy the context so the worker's log lines keep the request id
    ctx = contextvars.copy_context()
    threading.Thread(target=ctx.run, args=(_run,), daemon=True, name=f"podcraft-gen-{rid}").start()

    def gen():
        yield _sse("meta", {"request_id": rid})
        while True:
            item = events.get()
            if item is None:
                break
            yield _sse(*item)

    return StreamingResponse(gen(), media_type="text/event-stream", headers={"X-Request-Id": rid})


@router.get("/api/podcasts/{episode_id}/audio", response_class=Response)
def episode_audio(episode_id: str, service: PodcastService = Depends(get_podcast_service)):
    return Response(content=service.load_episode_audio(episode_id), media_type="audio/wav")


@router.get("/api/podcasts/{episode_id}/cover", response_class=Response)
def episode_cover(episode_id: str, service: PodcastService = Depends(get_podcast_service)):
    data, mime_type = service.load_episode_cover(episode_id)
    return Response(content=data, media_type=mime_type)


@router.get("/api/podcasts/{episode_id}/script")
def episode_script(episode_id: str, service: PodcastService = Depends(get_podcast_service)):
    return service.load_episode_script(episode_id)


# =============================================================================
# Profile
# =============================================================================

@router.get("/api/profile")
def get_profile(
    user_id: Optional[str] = Depends(get_user_id),
    service: PodcastService = Depends(get_podcast_service),
):
    return service.get_profile(user_id)


@router.post("/api/profile/upgrade")
def upgrade_profile(
    user_id: Optional[str] = Depends(get_user_id),
    service: PodcastService = Depends(get_podcast_service),
):
    return service.upgrade(user_id)


# =============================================================================
# Operations
# =============================================================================

@router.get("/health")
def health(service: PodcastService = Depends(get_podcast_service)):
    """Service status, models, cache, storage and concurrency stats."""
    return service.get_health_info()


@router.get("/metrics")
def prometheus_metrics():
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
