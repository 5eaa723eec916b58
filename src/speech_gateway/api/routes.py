"""
Speech Gateway API Routes.

Endpoints:
    GET  /          - Liveness line (plain text)
    GET  /health    - Pipeline description for probes and operators
    GET  /metrics   - Prometheus metrics
    GET  /voices    - Voices usable with the configured engine
    POST /speak     - Text to audio (chunk, synthesize, merge)

Request Flow (/speak):
    1. Generate unique request ID for tracing
    2. Build SpeechRequest from the body
    3. Call SpeechService.speak()
    4. Return audio with metadata headers

Error Handling:
    All errors are returned as JSON:
    {
        "error": "<human readable message>",
        "code": "<ERROR_CODE>",
        "request_id": "<id>",
        "details": {...}
    }

    Status codes come from the error class: ValidationError -> 400,
    UpstreamError / MergeError / unexpected errors -> 500.

Example Usage:
    curl -X POST http://localhost:3000/speak \\
        -H "Content-Type: application/json" \\
        -d '{"text": "Hello there", "voiceId": "Joanna"}' \\
        --output speech.mp3
"""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from speech_gateway.api.dependencies import get_speech_service
from speech_gateway.api.schemas import SpeakRequest
from speech_gateway.core.logging import fail, get_logger, set_request_id
from speech_gateway.core.metrics import metrics
from speech_gateway.services.errors import ErrorCode, GatewayError
from speech_gateway.services.speech_service import SpeechRequest, SpeechService

router = APIRouter()

_LOG = get_logger("speech-gateway.api")


def new_request_id() -> str:
    return str(uuid.uuid4())[:12]


def _error_response(error: GatewayError, request_id: str | None = None) -> JSONResponse:
    """JSON error body with the status code of the error's class."""
    content = error.to_dict()
    if request_id:
        content["request_id"] = request_id
    return JSONResponse(status_code=error.status_code, content=content)


@router.get("/", response_class=PlainTextResponse)
def root() -> str:
    return "Speech gateway is running"


@router.get("/health")
def health(service: SpeechService = Depends(get_speech_service)):
    """Pipeline mode, limits and backends; does not call the synthesis service."""
    return service.get_health_info()


@router.get("/metrics")
def prometheus_metrics():
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)


@router.get("/voices")
async def voices(service: SpeechService = Depends(get_speech_service)):
    """
    List voices that support the configured engine.

    Returns:
        200 with the voice descriptors as returned by the synthesis service,
        or 500 {"error": "Failed to fetch voices"}.
    """
    rid = new_request_id()
    set_request_id(rid)

    try:
        return await service.list_voices()
    except GatewayError as e:
        return _error_response(e, rid)
    except Exception as e:
        fail(_LOG, "voices_failed", error=str(e), error_type=type(e).__name__)
        return _error_response(GatewayError("Failed to fetch voices", ErrorCode.INTERNAL_ERROR), rid)


@router.post("/speak", response_class=Response)
async def speak(
    req: SpeakRequest,
    service: SpeechService = Depends(get_speech_service),
):
    """
    Convert text to speech.

    Long text is split into segments, synthesized segment by segment and
    merged into one audio body.

    Returns:
        Response: audio bytes with headers:
            - Content-Disposition: inline; filename="speech.<ext>"
            - X-Request-Id: Unique request identifier for tracing
            - X-Segments: Number of segments synthesized
            - X-Segments-Truncated: "true" if text past the segment budget was dropped

    Raises:
        400: Blank text, unknown format, or text over the limit
        500: Synthesis or merge failure
    """
    rid = new_request_id()
    set_request_id(rid)

    try:
        result = await service.speak(
            SpeechRequest(text=req.text, voice_id=req.voice_id, output_format=req.format),
            rid,
        )
    except GatewayError as e:
        return _error_response(e, rid)
    except Exception as e:
        # Details stay in the logs
        fail(_LOG, "speak_failed", error=str(e), error_type=type(e).__name__)
        return _error_response(
            GatewayError("Failed to synthesize or merge speech", ErrorCode.INTERNAL_ERROR),
            rid,
        )

    headers = {
        "Content-Disposition": f'inline; filename="speech.{result.extension}"',
        "X-Request-Id": rid,
        "X-Segments": str(result.segment_count),
        "X-Segments-Truncated": "true" if result.truncated else "false",
        "X-Bytes": str(len(result.audio_bytes)),
    }
    return Response(content=result.audio_bytes, media_type=result.media_type, headers=headers)
