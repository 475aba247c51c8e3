"""Video processing routes: merge-and-upload, merge-only, inspections lookup."""

import logging
from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, File, Form, Query, UploadFile
from fastapi.responses import FileResponse
from starlette.types import Receive, Scope, Send

from video_processor.api.deps import Context, Inspections, Pipeline, Scratch
from video_processor.config import get_settings
from video_processor.exceptions import InvalidFieldValueError, MissingRequiredFieldError
from video_processor.schemas.video import HealthResponse, InspectionsResponse, MergeUploadResponse
from video_processor.services.pipeline import MergeUploadRequest
from video_processor.services.process_runner import check_ffmpeg_available
from video_processor.services.scratch import ArtifactKind, ScratchManager

logger = logging.getLogger(__name__)
router = APIRouter()

_UPLOAD_CHUNK_SIZE = 1024 * 1024


class ScratchFileResponse(FileResponse):
    """FileResponse that releases its scratch manager once sending ends.

    Release runs on every exit from sending, including a client disconnect.
    """

    def __init__(self, path: Path, scratch: ScratchManager, **kwargs):
        super().__init__(path, **kwargs)
        self.scratch = scratch

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            self.scratch.release_all()


async def save_upload(upload: UploadFile, scratch: ScratchManager) -> Path:
    """Stream a form upload into a tracked scratch file.

    Raises:
        InvalidFieldValueError: If the upload exceeds ``max_upload_size_mb``
    """
    max_mb = get_settings().max_upload_size_mb
    max_bytes = max_mb * 1024 * 1024
    suffix = Path(upload.filename or "").suffix or ".mp4"
    dest = scratch.allocate(ArtifactKind.SOURCE_UPLOAD, suffix=suffix, prefix="upload").path

    written = 0
    with open(dest, "wb") as f:
        while chunk := await upload.read(_UPLOAD_CHUNK_SIZE):
            written += len(chunk)
            if written > max_bytes:
                raise InvalidFieldValueError("videoFile", reason=f"exceeds {max_mb} MB")
            f.write(chunk)
    await upload.close()
    return dest


async def _receive_video(video_file: UploadFile | None, scratch: ScratchManager) -> Path:
    if video_file is None:
        raise MissingRequiredFieldError("videoFile")
    try:
        return await save_upload(video_file, scratch)
    except BaseException:
        scratch.release_all()
        raise


@router.post("/merge-and-upload", response_model=MergeUploadResponse)
async def merge_and_upload(
    context: Context,
    pipeline: Pipeline,
    scratch: Scratch,
    video_file: Annotated[UploadFile | None, File(alias="videoFile")] = None,
    shop_id: Annotated[str | None, Form(alias="shopId")] = None,
    ro_id: Annotated[str | None, Form(alias="roId")] = None,
    inspection_id: Annotated[str | None, Form(alias="inspectionId")] = None,
    task_id: Annotated[str | None, Form(alias="taskId")] = None,
    task_name: Annotated[str | None, Form(alias="taskName")] = None,
    rating: Annotated[str | None, Form()] = None,
    description: Annotated[str | None, Form()] = None,
    explainer_video_id: Annotated[str | None, Form(alias="explainerVideoId")] = None,
    task_data: Annotated[str | None, Form(alias="taskData")] = None,
) -> MergeUploadResponse:
    """Merge the uploaded video with an optional explainer and publish it.

    The explainer is best effort: if it cannot be found or downloaded the
    original video is uploaded and ``merged`` is false. A failed task update
    after a successful upload is reported in ``metadata_error``.
    """
    logger.info(f"[video] Processing merge-and-upload request {context.request_id}...")
    video_path = await _receive_video(video_file, scratch)

    request = MergeUploadRequest(
        video_path=video_path,
        shop_id=shop_id,
        ro_id=ro_id,
        inspection_id=inspection_id,
        task_id=task_id,
        task_name=task_name,
        rating=rating,
        description=description,
        explainer_id=explainer_video_id,
        task_data_raw=task_data,
    )
    outcome = await pipeline.run(request, scratch)

    logger.info(f"[video] Request {context.request_id} done in {context.elapsed_ms()} ms")
    return MergeUploadResponse(
        merged=outcome.merged,
        metadata_updated=outcome.metadata_updated,
        metadata_error=outcome.metadata_error,
        object_key=outcome.object_key,
        request_id=context.request_id,
    )


@router.post("/merge-only")
async def merge_only(
    context: Context,
    pipeline: Pipeline,
    scratch: Scratch,
    video_file: Annotated[UploadFile | None, File(alias="videoFile")] = None,
    explainer_video_id: Annotated[str | None, Form(alias="explainerVideoId")] = None,
) -> ScratchFileResponse:
    """Merge with a required explainer and return the MP4 without uploading."""
    logger.info(f"[video] Processing merge-only request {context.request_id}...")
    video_path = await _receive_video(video_file, scratch)

    merged_path = await pipeline.merge_only(video_path, explainer_video_id, scratch)
    return ScratchFileResponse(
        merged_path,
        scratch,
        media_type="video/mp4",
        filename="merged-video.mp4",
    )


@router.get("/get-inspections", response_model=InspectionsResponse)
async def get_inspections(
    service: Inspections,
    shop_id: Annotated[str | None, Query(alias="shopId")] = None,
    ro_number: Annotated[str | None, Query(alias="roNumber")] = None,
) -> InspectionsResponse:
    """Look up a repair order by number and list its inspection tasks."""
    missing = [name for name, value in (("shopId", shop_id), ("roNumber", ro_number)) if not value]
    if missing:
        raise MissingRequiredFieldError(*missing)

    summary = await service.get_inspections(shop_id, ro_number)
    return InspectionsResponse.model_validate(summary.to_dict())


@router.get("/health", response_model=HealthResponse)
async def video_health() -> HealthResponse:
    settings = get_settings()
    return HealthResponse(
        route="video",
        version=settings.app_version,
        ffmpeg_available=await check_ffmpeg_available(),
        supabase_configured=settings.supabase_configured,
        temp_dir=settings.scratch_path,
    )
