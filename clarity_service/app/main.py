import logging
import uuid
from contextlib import asynccontextmanager
from typing import Union

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .assistant import (
    VisionAssistant,
    assistant_ready,
    get_assistant,
    init_assistant,
    reset_assistant,
)
from .clarity import (
    clarity_label,
    detect_image_clarity,
    process_image_with_clarity_check,
)
from .config import settings
from .payload import PayloadError, decode_image_payload, to_data_url
from .schemas import (
    ClarityRequest,
    ClarityResult,
    EnhancementSummary,
    HealthResponse,
    ImagePair,
    ProcessResponse,
    RunRequest,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.log_level.upper())
    ),
)

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_assistant(settings.gemini_api_key, settings.gemini_model, settings.response_language)
    log.info(
        "service_started",
        model=settings.gemini_model,
        clarity_threshold=settings.clarity_threshold,
        language=settings.response_language,
    )

    yield

    reset_assistant()
    log.info("service_stopped")


app = FastAPI(
    title="image-clarity",
    description="Clarity check and textual enhancement for photographed questions",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


async def _handle(
    req: ClarityRequest,
    assistant: VisionAssistant,
    request_id: str,
) -> Union[ClarityResult, ProcessResponse]:
    structlog.contextvars.bind_contextvars(request_id=request_id)
    try:
        try:
            image, media_type = decode_image_payload(
                req.image_data, req.media_type, settings.max_image_mb * 1024 * 1024
            )
        except PayloadError as exc:
            log.warning("bad_payload", err=str(exc))
            raise HTTPException(exc.status, str(exc))

        log.debug("payload_decoded", media_type=media_type, size=len(image))

        if req.check_only:
            log.info("clarity_check_only")
            return await detect_image_clarity(assistant, image, media_type)

        outcome = await process_image_with_clarity_check(assistant, image, media_type)

        response = ProcessResponse(
            clarity=outcome.clarity_info,
            clarity_label=clarity_label(outcome.clarity_info.clarity_score),
            image=ImagePair(
                original=to_data_url(image, media_type),
                final=to_data_url(outcome.final_image, media_type),
            ),
        )
        if outcome.enhancement_info is not None:
            response.enhancement = EnhancementSummary(
                success=outcome.enhancement_info.success,
                improvement_score=outcome.enhancement_info.improvement_score,
                can_enhance=outcome.enhancement_info.judgment.can_enhance,
                needs_retake=outcome.enhancement_info.judgment.needs_retake,
            )
        if outcome.suggested_text:
            response.suggested_text = outcome.suggested_text

        log.info(
            "image_processed",
            clarity_score=outcome.clarity_info.clarity_score,
            is_blurry=outcome.clarity_info.is_blurry,
            has_enhancement=outcome.enhancement_info is not None,
        )
        return response
    finally:
        structlog.contextvars.unbind_contextvars("request_id")


@app.post(
    "/api/image-clarity",
    response_model=Union[ClarityResult, ProcessResponse],
    response_model_exclude_none=True,
)
async def image_clarity(
    req: ClarityRequest,
    raw: Request,
    assistant: VisionAssistant = Depends(get_assistant),
):
    """
    Inputs:
      imageData   bare base64 or data URL (alias imageBase64)
      mediaType   optional (alias mimeType); a data URL type wins, Pillow sniffs when absent
      checkOnly   only grade clarity
      autoEnhance accepted; enhancement is decided by the clarity thresholds
    Returns:
      ClarityResult when checkOnly, otherwise ProcessResponse
    """
    request_id = raw.headers.get("X-Request-ID", str(uuid.uuid4()))
    log.info("request_received", request_id=request_id, check_only=req.check_only)
    return await _handle(req, assistant, request_id)


@app.post(
    "/run",
    response_model=Union[ClarityResult, ProcessResponse],
    response_model_exclude_none=True,
)
async def run(
    req: RunRequest,
    raw: Request,
    assistant: VisionAssistant = Depends(get_assistant),
):
    """
    Temporal-style envelope:
      data.image_bytes | data.image_data   base64 or data URL
      data.media_type                      optional
      data.check_only                      optional
    """
    request_id = str(req.meta.get("request_id") or raw.headers.get("X-Request-ID", uuid.uuid4()))
    log.info("request_received", request_id=request_id, data_keys=list(req.data.keys()))

    try:
        clarity_req = ClarityRequest.model_validate(req.data)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False, include_context=False))
    return await _handle(clarity_req, assistant, request_id)


@app.get("/health", response_model=HealthResponse)
async def health():
    ready = assistant_ready()
    return HealthResponse(
        status="healthy" if ready else "degraded",
        model=settings.gemini_model,
        assistant_ready=ready,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    log.error("unhandled_error", err=str(exc), err_type=type(exc).__name__, path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "type": type(exc).__name__
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "clarity_service.app.main:app",
        host="0.0.0.0",
        port=settings.service_port,
        workers=settings.max_workers,
        log_level=settings.log_level.lower()
    )
