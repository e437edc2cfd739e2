"""
Control API Routes.

Endpoints:
    GET  /health      - Scheduler snapshot, tailer state, backend version
    POST /v1/speak    - Enqueue text (optionally wait for the outcome)
    GET  /v1/voices   - Voices offered by the TTS backend
    GET  /metrics     - Prometheus metrics

Error Handling:
    Errors use the NarratorError payload:
    {
        "ok": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>"
    }

    HTTP status codes by error code:
        - INVALID_INPUT -> 400 Bad Request
        - BACKEND_ERROR -> 502 Bad Gateway
        - anything else -> 500 Internal Server Error

Example Usage:
    curl -X POST http://127.0.0.1:8765/v1/speak \\
        -H "Content-Type: application/json" \\
        -d '{"text": "Build finished.", "wait": true}'
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from log_narrator.api.schemas import SpeakRequest, SpeakResponse, VoiceInfo, VoicesResponse
from log_narrator.core.errors import ErrorCode, NarratorError
from log_narrator.core.logging import error, get_logger, info
from log_narrator.core.metrics import metrics
from log_narrator.services.narrator import NarratorService

router = APIRouter()

_LOG = get_logger("log-narrator.api")

_STATUS_BY_CODE = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.BACKEND_ERROR: 502,
}


def get_narrator(request: Request) -> NarratorService:
    """The service attached by create_app()."""
    return request.app.state.narrator


def _error_response(err: NarratorError) -> JSONResponse:
    return JSONResponse(status_code=_STATUS_BY_CODE.get(err.code, 500), content=err.to_dict())


@router.get("/health")
async def health(service: NarratorService = Depends(get_narrator)):
    """
    Health check.

    ``status`` is "degraded" when the TTS backend does not answer; the
    endpoint itself still returns 200 so the narrator can be inspected.
    """
    return await service.get_health_info()


@router.post("/v1/speak", response_model=SpeakResponse)
async def speak(req: SpeakRequest, service: NarratorService = Depends(get_narrator)):
    try:
        handle = service.speak(req.text)
    except NarratorError as e:
        return _error_response(e)

    info(_LOG, "api_speak", task=handle.task_id, chars=len(req.text), wait=req.wait)
    if not req.wait:
        return SpeakResponse(task_id=handle.task_id, speed_override=handle.speed_override)

    settled = await handle
    return SpeakResponse(
        task_id=settled.task_id,
        speed_override=settled.speed_override,
        outcome=settled.outcome.value,
        chunks_total=settled.chunks_total,
        chunks_played=settled.chunks_played,
        chunks_skipped=settled.chunks_skipped,
        chunks_discarded=settled.chunks_discarded,
    )


@router.get("/v1/voices", response_model=VoicesResponse)
async def voices(service: NarratorService = Depends(get_narrator)):
    try:
        found = await service.list_voices()
    except NarratorError as e:
        error(_LOG, "voices_failed", error=e.code, message=e.message)
        return _error_response(e)
    return VoicesResponse(voices=[VoiceInfo(id=v.id, name=v.display_name) for v in found])


@router.get("/metrics")
def prometheus_metrics():
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
