"""Video merging service.

Concatenates an inspection video with an explainer video in three passes:

1. Normalize the primary video to the shared MPEG-TS profile
2. Normalize the explainer video the same way
3. Concatenate both intermediates and re-encode to a faststart MP4

Inputs of different resolution, frame rate or audio layout cannot be
concatenated directly, so both are brought to one profile first.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from video_processor.config import get_settings
from video_processor.exceptions import MergeError, ProcessError
from video_processor.services.process_runner import ProcessRunner
from video_processor.services.scratch import ArtifactKind, ScratchManager, file_size_mb
from video_processor.utils.media_info import MediaInfo, get_media_info

logger = logging.getLogger(__name__)


@dataclass
class NormalizeProfile:
    """Target format shared by both intermediates."""

    width: int = 1280
    height: int = 720
    crf: int = 23
    preset: str = "fast"
    audio_bitrate: str = "128k"
    audio_sample_rate: int = 44100
    audio_channels: int = 2
    threads: int = 0

    @classmethod
    def from_settings(cls) -> "NormalizeProfile":
        settings = get_settings()
        return cls(
            width=settings.merge_width,
            height=settings.merge_height,
            crf=settings.merge_crf,
            preset=settings.merge_preset,
            audio_bitrate=settings.merge_audio_bitrate,
            audio_sample_rate=settings.merge_audio_sample_rate,
            audio_channels=settings.merge_audio_channels,
            threads=settings.render_ffmpeg_threads,
        )

    @property
    def video_filter(self) -> str:
        """Scale to fit, letterbox to the exact frame, square pixels."""
        w, h = self.width, self.height
        return (
            f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
            f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2,setsar=1"
        )

    def video_codec_args(self) -> list[str]:
        return ["-c:v", "libx264", "-preset", self.preset, "-crf", str(self.crf)]

    def thread_args(self) -> list[str]:
        return ["-threads", str(self.threads)] if self.threads > 0 else []


@dataclass
class MergeRequest:
    """Two inputs and a fresh output path."""

    primary_path: Path
    explainer_path: Path
    output_path: Path

    def validate(self) -> None:
        for label, path in (("primary", self.primary_path), ("explainer", self.explainer_path)):
            if not path.is_file():
                raise MergeError("validate", f"{label} input not found: {path}")
            if path.stat().st_size == 0:
                raise MergeError("validate", f"{label} input is empty: {path}")
        if self.output_path.exists():
            raise MergeError("validate", f"output already exists: {self.output_path}")


@dataclass
class MergeResult:
    """Output of a successful merge."""

    path: Path
    file_size: int = 0
    stages: list[str] = field(default_factory=list)
    info: MediaInfo | None = None


class VideoMerger:
    """Service for merging an inspection video with an explainer."""

    STAGES = ("normalize-primary", "normalize-explainer", "concat")

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        profile: NormalizeProfile | None = None,
        scratch_dir: str | Path | None = None,
    ):
        self.runner = runner or ProcessRunner()
        self.profile = profile or NormalizeProfile.from_settings()
        self.scratch_dir = scratch_dir

    def normalize_args(self, input_path: str | Path, output_path: str | Path) -> list[str]:
        """Arguments for passes 1 and 2."""
        p = self.profile
        return [
            "-y",
            "-i", str(input_path),
            "-vf", p.video_filter,
            *p.video_codec_args(),
            "-c:a", "aac",
            "-b:a", p.audio_bitrate,
            "-ar", str(p.audio_sample_rate),
            "-ac", str(p.audio_channels),
            "-bsf:v", "h264_mp4toannexb",
            *p.thread_args(),
            "-f", "mpegts",
            str(output_path),
        ]

    def concat_args(self, intermediates: list[Path], output_path: str | Path) -> list[str]:
        """Arguments for pass 3. Input order is kept as given."""
        p = self.profile
        return [
            "-y",
            "-i", "concat:" + "|".join(str(path) for path in intermediates),
            *p.video_codec_args(),
            "-c:a", "aac",
            "-b:a", p.audio_bitrate,
            *p.thread_args(),
            "-movflags", "+faststart",
            str(output_path),
        ]

    async def _run_stage(self, index: int, args: list[str]) -> None:
        stage = self.STAGES[index]
        logger.info(f"[MERGE] Step {index + 1}/3: {stage}")
        try:
            await self.runner.run(args)
        except ProcessError as e:
            raise MergeError(stage, e.tail or e.message) from e

    async def _describe_output(self, path: Path) -> MediaInfo | None:
        """Log the merged duration and frame size; an ffprobe failure is not fatal."""
        try:
            info = await asyncio.to_thread(get_media_info, path)
        except ProcessError as e:
            logger.warning(f"[MERGE] Could not read merged output info: {e.message}")
            return None
        duration_s = (info.duration_ms or 0) / 1000
        logger.info(f"   Output: {duration_s:.1f}s {info.width}x{info.height}")
        return info

    async def merge(
        self,
        primary_path: str | Path,
        explainer_path: str | Path,
        output_path: str | Path,
    ) -> MergeResult:
        """Merge primary then explainer into ``output_path``.

        Args:
            primary_path: Inspection video, played first
            explainer_path: Explainer video, appended after the primary
            output_path: Fresh path for the MP4 result

        Returns:
            MergeResult for the written file

        Raises:
            MergeError: If an input is missing/empty or any stage fails
        """
        request = MergeRequest(Path(primary_path), Path(explainer_path), Path(output_path))
        request.validate()

        logger.info("[MERGE] Starting FFmpeg merge...")
        logger.info(f"   Primary: {request.primary_path}")
        logger.info(f"   Explainer: {request.explainer_path}")

        # Intermediates are tracked here as well as by any caller-level scratch
        with ScratchManager(self.scratch_dir) as scratch:
            primary_ts = scratch.allocate(ArtifactKind.INTERMEDIATE, suffix=".ts", prefix="temp1").path
            explainer_ts = scratch.allocate(ArtifactKind.INTERMEDIATE, suffix=".ts", prefix="temp2").path

            await self._run_stage(0, self.normalize_args(request.primary_path, primary_ts))
            await self._run_stage(1, self.normalize_args(request.explainer_path, explainer_ts))
            await self._run_stage(2, self.concat_args([primary_ts, explainer_ts], request.output_path))

        file_size = request.output_path.stat().st_size
        logger.info(f"[MERGE] FFmpeg merge complete! ({file_size_mb(request.output_path):.2f} MB)")
        info = await self._describe_output(request.output_path)
        return MergeResult(path=request.output_path, file_size=file_size, stages=list(self.STAGES), info=info)
