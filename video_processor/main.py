import logging
import time

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from video_processor.api import video
from video_processor.config import get_settings
from video_processor.exceptions import InternalError, ValidationError, VideoProcessorError
from video_processor.middleware.request_context import (
    REQUEST_ID_HEADER,
    create_request_context,
    get_request_context,
)
from video_processor.schemas.envelope import ErrorResponse
from video_processor.schemas.video import HealthResponse
from video_processor.services.process_runner import check_ffmpeg_available

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_started_at = time.time()

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def attach_request_context(request: Request, call_next):
    context = create_request_context(request.headers.get(REQUEST_ID_HEADER))
    request.state.context = context
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = context.request_id
    return response


def _error_response(request: Request, exc: VideoProcessorError) -> JSONResponse:
    context = get_request_context(request)
    body: ErrorResponse = exc.to_error_response(context.request_id)
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(body.model_dump()),
        headers={REQUEST_ID_HEADER: context.request_id},
    )


@app.exception_handler(VideoProcessorError)
async def video_processor_exception_handler(request: Request, exc: VideoProcessorError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log(f"[{exc.code}] {request.method} {request.url.path}: {exc.message}")
    return _error_response(request, exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle FastAPI request validation errors as 400 VALIDATION_ERROR."""
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        loc = " -> ".join(str(x) for x in first_error.get("loc", []))
        msg = first_error.get("msg", "Validation error")
        message = f"{loc}: {msg}" if loc else msg
    else:
        message = "Request validation failed"
    return _error_response(request, ValidationError(message))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    error = VideoProcessorError(
        str(exc.detail),
        code=_http_error_code(exc.status_code),
        status_code=exc.status_code,
    )
    return _error_response(request, error)


def _http_error_code(status_code: int) -> str:
    mapping = {
        400: "VALIDATION_ERROR",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        500: "INTERNAL_ERROR",
    }
    return mapping.get(status_code, "HTTP_ERROR")


# Global exception handler to ensure errors return proper JSON
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception: {exc}")
    return _error_response(request, InternalError())


# Routers
app.include_router(video.router, prefix="/api", tags=["video"])


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    return HealthResponse(
        service=settings.app_name,
        version=settings.app_version,
        ffmpeg_available=await check_ffmpeg_available(),
        supabase_configured=settings.supabase_configured,
        temp_dir=settings.scratch_path,
        uptime_s=round(time.time() - _started_at, 1),
    )
