"""Merge-and-publish pipeline.

Drives one request from the uploaded source file to a published object:
optional explainer merge, presigned upload target, upload, then the
inspection task update. Errors marked ``Severity.SOFT`` in the explainer and
metadata stages degrade the request instead of failing it. The scratch
manager handed in is released exactly once on every exit path.
"""

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import httpx

from video_processor.exceptions import (
    ExplainerNotFoundError,
    InvalidFieldValueError,
    MetadataPatchError,
    MissingRequiredFieldError,
    Severity,
    VideoProcessorError,
)
from video_processor.services.credential_provider import CredentialProvider
from video_processor.services.explainer_lookup import ExplainerLookup
from video_processor.services.remote_fetcher import RemoteFetcher
from video_processor.services.scratch import ArtifactKind, ScratchManager, file_size_mb
from video_processor.services.tekmetric_client import RATINGS, TekmetricClient, build_task_update
from video_processor.services.upload_client import UploadClient
from video_processor.services.video_merger import VideoMerger

logger = logging.getLogger(__name__)

VIDEO_MIMETYPE = "video/mp4"


class PipelineStage(str, Enum):
    RECEIVED = "received"
    FETCHING_EXPLAINER = "fetching_explainer"
    MERGING = "merging"
    REQUESTING_UPLOAD_TARGET = "requesting_upload_target"
    UPLOADING = "uploading"
    PATCHING_METADATA = "patching_metadata"
    DONE = "done"
    FAILED = "failed"


@dataclass
class MergeUploadRequest:
    """Form fields of a merge-and-upload call plus the saved source file."""

    video_path: Path
    shop_id: str | None = None
    ro_id: str | None = None
    inspection_id: str | None = None
    task_id: str | None = None
    task_name: str | None = None
    rating: str | None = None
    description: str | None = None
    explainer_id: str | None = None
    task_data_raw: str | None = None
    task_data: dict[str, Any] = field(default_factory=dict, init=False)

    REQUIRED_IDS = (
        ("shopId", "shop_id"),
        ("roId", "ro_id"),
        ("inspectionId", "inspection_id"),
        ("taskId", "task_id"),
    )

    def validate(self) -> None:
        """Check ids, rating and task data; parse ``task_data_raw``.

        Raises:
            MissingRequiredFieldError: If any id is absent
            InvalidFieldValueError: If an id is not an integer, the rating is
                unknown, or task data is not a JSON object
        """
        missing = [name for name, attr in self.REQUIRED_IDS if not getattr(self, attr)]
        if missing:
            raise MissingRequiredFieldError(*missing)

        for name, attr in self.REQUIRED_IDS:
            value = getattr(self, attr)
            try:
                int(value)
            except (TypeError, ValueError):
                raise InvalidFieldValueError(name, value, "must be an integer")

        if self.rating and self.rating not in RATINGS:
            raise InvalidFieldValueError("rating", self.rating, f"expected one of {', '.join(RATINGS)}")

        if self.task_data_raw:
            try:
                parsed = json.loads(self.task_data_raw)
            except json.JSONDecodeError as e:
                raise InvalidFieldValueError("taskData", reason=f"invalid JSON: {e.msg}")
            if not isinstance(parsed, dict):
                raise InvalidFieldValueError("taskData", reason="must be a JSON object")
            self.task_data = parsed


@dataclass
class PipelineOutcome:
    uploaded: bool = False
    merged: bool = False
    metadata_updated: bool = False
    metadata_error: str | None = None
    object_key: str | None = None
    stages: list[PipelineStage] = field(default_factory=list)


class MergeUploadPipeline:
    def __init__(
        self,
        credentials: CredentialProvider,
        explainers: ExplainerLookup,
        fetcher: RemoteFetcher,
        merger: VideoMerger,
        tekmetric: TekmetricClient,
        uploader: UploadClient,
        clock: Callable[[], float] = time.time,
    ):
        self.credentials = credentials
        self.explainers = explainers
        self.fetcher = fetcher
        self.merger = merger
        self.tekmetric = tekmetric
        self.uploader = uploader
        self.clock = clock

    @staticmethod
    def _enter(outcome: PipelineOutcome, stage: PipelineStage) -> None:
        outcome.stages.append(stage)
        logger.debug(f"[video] -> {stage.value}")

    async def _fetch_explainer(self, explainer_id: str, scratch: ScratchManager) -> Path:
        """Resolve and download the explainer.

        Raises:
            ExplainerNotFoundError: If the id does not resolve
            FetchError: If the download fails
        """
        logger.info("[video] Fetching explainer video info...")
        explainer = await self.explainers.lookup(explainer_id)
        if explainer is None:
            raise ExplainerNotFoundError(explainer_id)
        logger.info(f"   Explainer: {explainer.name}")

        dest = scratch.allocate(ArtifactKind.DOWNLOADED, prefix="explainer").path
        logger.info("[video] Downloading explainer video...")
        await self.fetcher.fetch(explainer.file_url, dest)
        logger.info(f"   Downloaded: {file_size_mb(dest):.2f} MB")
        return dest

    async def _merge(self, primary: Path, explainer: Path, scratch: ScratchManager) -> Path:
        output = scratch.allocate(ArtifactKind.FINAL_OUTPUT, prefix="merged").path
        await self.merger.merge(primary, explainer, output)
        logger.info(f"   Merged video: {file_size_mb(output):.2f} MB")
        return output

    async def _patch_metadata(self, token: str, request: MergeUploadRequest) -> None:
        payload = build_task_update(
            int(request.task_id),
            rating=request.rating,
            task_name=request.task_name,
            description=request.description,
            task_data=request.task_data,
        )
        logger.info("[video] Updating inspection task...")
        try:
            response = await self.tekmetric.update_inspection_task(
                token,
                int(request.shop_id),
                int(request.ro_id),
                int(request.inspection_id),
                int(request.task_id),
                payload,
            )
        except httpx.HTTPError as e:
            raise MetadataPatchError(f"Inspection task update failed: {e}") from e
        if not 200 <= response.status_code < 300:
            raise MetadataPatchError(status=response.status_code, body=response.text)

    async def run(self, request: MergeUploadRequest, scratch: ScratchManager) -> PipelineOutcome:
        """Run the pipeline to completion; ``scratch`` is always released.

        Returns:
            PipelineOutcome describing what was merged, uploaded and patched

        Raises:
            VideoProcessorError: Any fatal error, after cleanup
        """
        outcome = PipelineOutcome()
        self._enter(outcome, PipelineStage.RECEIVED)
        try:
            scratch.adopt(request.video_path, ArtifactKind.SOURCE_UPLOAD)
            request.validate()

            logger.info(f"   Shop: {request.shop_id}, RO: {request.ro_id}, Task: {request.task_id}")
            logger.info(f"   Video: {request.video_path.name} ({file_size_mb(request.video_path):.2f} MB)")
            logger.info(f"   Explainer ID: {request.explainer_id or 'none'}")

            final_path = request.video_path
            if request.explainer_id:
                self._enter(outcome, PipelineStage.FETCHING_EXPLAINER)
                try:
                    explainer_path = await self._fetch_explainer(request.explainer_id, scratch)
                except VideoProcessorError as e:
                    if e.severity is not Severity.SOFT:
                        raise
                    logger.warning(f"[video] {e.message}, uploading original")
                else:
                    self._enter(outcome, PipelineStage.MERGING)
                    final_path = await self._merge(request.video_path, explainer_path, scratch)
                    outcome.merged = True

            self._enter(outcome, PipelineStage.REQUESTING_UPLOAD_TARGET)
            token = await self.credentials.get_credential(request.shop_id)
            logger.info("[video] Getting presigned upload URL...")
            target = await self.tekmetric.create_upload_target(
                token,
                int(request.shop_id),
                int(request.ro_id),
                int(request.inspection_id),
                int(request.task_id),
                filename=f"inspection-{int(self.clock() * 1000)}.mp4",
                mimetype=VIDEO_MIMETYPE,
            )
            outcome.object_key = target.object_key

            self._enter(outcome, PipelineStage.UPLOADING)
            await self.uploader.upload(target, final_path, VIDEO_MIMETYPE)
            outcome.uploaded = True

            self._enter(outcome, PipelineStage.PATCHING_METADATA)
            try:
                await self._patch_metadata(token, request)
                outcome.metadata_updated = True
            except VideoProcessorError as e:
                if e.severity is not Severity.SOFT:
                    raise
                logger.warning(f"[video] Video uploaded but {e.message}")
                outcome.metadata_error = e.message

            self._enter(outcome, PipelineStage.DONE)
            logger.info("[video] Upload complete!")
            return outcome
        except BaseException as e:
            self._enter(outcome, PipelineStage.FAILED)
            logger.error(f"[video] Failed after {outcome.stages[-2].value}: {e!r}")
            raise
        finally:
            scratch.release_all()

    async def merge_only(self, video_path: Path, explainer_id: str | None, scratch: ScratchManager) -> Path:
        """Merge the uploaded video with a required explainer.

        On success the caller owns ``scratch`` and must release it once the
        returned file has been consumed. On failure it is released here.

        Raises:
            MissingRequiredFieldError: If explainer_id is empty
            ExplainerNotFoundError: If the explainer does not resolve
            FetchError: If the explainer download fails
            MergeError: If any merge stage fails
        """
        try:
            scratch.adopt(video_path, ArtifactKind.SOURCE_UPLOAD)
            if not explainer_id:
                raise MissingRequiredFieldError("explainerVideoId")
            explainer_path = await self._fetch_explainer(explainer_id, scratch)
            return await self._merge(video_path, explainer_path, scratch)
        except BaseException:
            scratch.release_all()
            raise
