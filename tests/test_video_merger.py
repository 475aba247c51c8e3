"""Tests for the three-pass video merger."""

from pathlib import Path
from unittest.mock import patch

import pytest

from video_processor.exceptions import MergeError, ProcessError
from video_processor.services.process_runner import ProcessRunner, TranscodeStageResult
from video_processor.services.video_merger import NormalizeProfile, VideoMerger
from video_processor.utils.media_info import MediaInfo, get_media_info


class FakeRunner:
    """Records arguments and writes each stage's output path."""

    def __init__(self, fail_at: int | None = None):
        self.calls: list[list[str]] = []
        self.fail_at = fail_at

    async def run(self, args):
        self.calls.append(list(args))
        if self.fail_at is not None and len(self.calls) - 1 == self.fail_at:
            raise ProcessError(1, "moov atom not found")
        Path(args[-1]).write_bytes(b"stage-output")
        return TranscodeStageResult(returncode=0)


@pytest.fixture
def inputs(tmp_path):
    primary = tmp_path / "primary.mp4"
    explainer = tmp_path / "explainer.mp4"
    primary.write_bytes(b"primary")
    explainer.write_bytes(b"explainer")
    return primary, explainer, tmp_path / "merged.mp4"


class TestNormalizeProfile:
    def test_video_filter(self):
        assert NormalizeProfile().video_filter == (
            "scale=1280:720:force_original_aspect_ratio=decrease,"
            "pad=1280:720:(ow-iw)/2:(oh-ih)/2,setsar=1"
        )

    def test_from_settings(self, monkeypatch):
        from video_processor.config import get_settings

        monkeypatch.setenv("MERGE_WIDTH", "1920")
        monkeypatch.setenv("RENDER_FFMPEG_THREADS", "2")
        get_settings.cache_clear()

        profile = NormalizeProfile.from_settings()

        assert profile.width == 1920
        assert profile.thread_args() == ["-threads", "2"]


class TestVideoMergerArgs:
    def test_normalize_args(self, scratch_dir):
        merger = VideoMerger(runner=FakeRunner(), profile=NormalizeProfile(), scratch_dir=scratch_dir)

        args = merger.normalize_args("in.mp4", "out.ts")

        assert args == [
            "-y", "-i", "in.mp4",
            "-vf", "scale=1280:720:force_original_aspect_ratio=decrease,pad=1280:720:(ow-iw)/2:(oh-ih)/2,setsar=1",
            "-c:v", "libx264", "-preset", "fast", "-crf", "23",
            "-c:a", "aac", "-b:a", "128k", "-ar", "44100", "-ac", "2",
            "-bsf:v", "h264_mp4toannexb",
            "-f", "mpegts", "out.ts",
        ]

    def test_concat_args_keep_order(self, scratch_dir):
        merger = VideoMerger(runner=FakeRunner(), profile=NormalizeProfile(), scratch_dir=scratch_dir)

        args = merger.concat_args([Path("a.ts"), Path("b.ts")], "out.mp4")

        assert args == [
            "-y", "-i", "concat:a.ts|b.ts",
            "-c:v", "libx264", "-preset", "fast", "-crf", "23",
            "-c:a", "aac", "-b:a", "128k",
            "-movflags", "+faststart",
            "out.mp4",
        ]


class TestVideoMerger:
    @pytest.mark.asyncio
    async def test_three_stages_in_order(self, inputs, scratch_dir):
        primary, explainer, output = inputs
        runner = FakeRunner()
        merger = VideoMerger(runner=runner, profile=NormalizeProfile(), scratch_dir=scratch_dir)

        result = await merger.merge(primary, explainer, output)

        assert result.path == output
        assert result.stages == ["normalize-primary", "normalize-explainer", "concat"]
        assert len(runner.calls) == 3
        assert runner.calls[0][2] == str(primary)
        assert runner.calls[1][2] == str(explainer)
        ts_1, ts_2 = runner.calls[0][-1], runner.calls[1][-1]
        assert runner.calls[2][2] == f"concat:{ts_1}|{ts_2}"
        assert runner.calls[2][-1] == str(output)

    @pytest.mark.asyncio
    async def test_intermediates_removed_on_success(self, inputs, scratch_dir):
        primary, explainer, output = inputs
        merger = VideoMerger(runner=FakeRunner(), profile=NormalizeProfile(), scratch_dir=scratch_dir)

        await merger.merge(primary, explainer, output)

        assert list(scratch_dir.glob("*.ts")) == []
        assert output.exists()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fail_at, stage", [(0, "normalize-primary"), (1, "normalize-explainer"), (2, "concat")])
    async def test_failed_stage_aborts(self, inputs, scratch_dir, fail_at, stage):
        primary, explainer, output = inputs
        runner = FakeRunner(fail_at=fail_at)
        merger = VideoMerger(runner=runner, profile=NormalizeProfile(), scratch_dir=scratch_dir)

        with pytest.raises(MergeError) as exc_info:
            await merger.merge(primary, explainer, output)

        assert exc_info.value.stage == stage
        assert "moov atom not found" in exc_info.value.message
        assert len(runner.calls) == fail_at + 1
        assert list(scratch_dir.glob("*.ts")) == []

    @pytest.mark.asyncio
    async def test_missing_input_fails_before_any_stage(self, inputs, scratch_dir):
        primary, explainer, output = inputs
        explainer.unlink()
        runner = FakeRunner()
        merger = VideoMerger(runner=runner, profile=NormalizeProfile(), scratch_dir=scratch_dir)

        with pytest.raises(MergeError) as exc_info:
            await merger.merge(primary, explainer, output)

        assert exc_info.value.stage == "validate"
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_empty_input_fails(self, inputs, scratch_dir):
        primary, explainer, output = inputs
        primary.write_bytes(b"")
        merger = VideoMerger(runner=FakeRunner(), profile=NormalizeProfile(), scratch_dir=scratch_dir)

        with pytest.raises(MergeError):
            await merger.merge(primary, explainer, output)

    @pytest.mark.asyncio
    async def test_existing_output_fails(self, inputs, scratch_dir):
        primary, explainer, output = inputs
        output.write_bytes(b"old")
        merger = VideoMerger(runner=FakeRunner(), profile=NormalizeProfile(), scratch_dir=scratch_dir)

        with pytest.raises(MergeError):
            await merger.merge(primary, explainer, output)

    @pytest.mark.asyncio
    async def test_result_carries_output_info(self, inputs, scratch_dir):
        primary, explainer, output = inputs
        merger = VideoMerger(runner=FakeRunner(), profile=NormalizeProfile(), scratch_dir=scratch_dir)
        output_info = MediaInfo(duration_ms=8000, width=1280, height=720, has_video=True)

        with patch("video_processor.services.video_merger.get_media_info", return_value=output_info) as mock_info:
            result = await merger.merge(primary, explainer, output)

        mock_info.assert_called_once_with(output)
        assert result.info == output_info

    @pytest.mark.asyncio
    async def test_unreadable_output_info_does_not_fail_merge(self, inputs, scratch_dir):
        primary, explainer, output = inputs
        merger = VideoMerger(runner=FakeRunner(), profile=NormalizeProfile(), scratch_dir=scratch_dir)

        with patch(
            "video_processor.services.video_merger.get_media_info",
            side_effect=ProcessError(1, "Invalid data found", binary="ffprobe"),
        ):
            result = await merger.merge(primary, explainer, output)

        assert result.info is None
        assert output.read_bytes() == b"stage-output"


@pytest.mark.requires_ffmpeg
class TestVideoMergerFFmpeg:
    """End-to-end merges with a real ffmpeg."""

    @pytest.mark.asyncio
    async def test_merge_mixed_resolutions(self, inspection_video, explainer_video, temp_output_dir, scratch_dir):
        """5s 640x480 + 3s 1920x1080 gives ~8s at 1280x720."""
        output = temp_output_dir / "merged.mp4"
        merger = VideoMerger(runner=ProcessRunner(timeout_s=300), profile=NormalizeProfile(), scratch_dir=scratch_dir)

        result = await merger.merge(inspection_video, explainer_video, output)

        info = get_media_info(output)
        assert result.info == info
        assert info.has_video and info.has_audio
        assert (info.width, info.height) == (1280, 720)
        assert 7500 <= info.duration_ms <= 8500, f"Expected ~8000ms, got {info.duration_ms}"
        assert list(scratch_dir.glob("*.ts")) == []

    @pytest.mark.asyncio
    async def test_undecodable_input_is_merge_error(self, explainer_video, temp_output_dir, scratch_dir):
        garbage = temp_output_dir / "garbage.mp4"
        garbage.write_bytes(b"this is not a video" * 100)
        merger = VideoMerger(runner=ProcessRunner(timeout_s=60), profile=NormalizeProfile(), scratch_dir=scratch_dir)

        with pytest.raises(MergeError) as exc_info:
            await merger.merge(garbage, explainer_video, temp_output_dir / "out.mp4")

        assert exc_info.value.stage == "normalize-primary"
