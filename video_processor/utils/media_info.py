"""Media file information utilities using FFprobe."""

import json
import subprocess
from dataclasses import dataclass
from pathlib import Path

from video_processor.config import get_settings
from video_processor.exceptions import ProcessError


@dataclass
class MediaInfo:
    """Media file information."""

    duration_ms: int | None = None
    width: int | None = None
    height: int | None = None
    video_codec: str | None = None
    audio_codec: str | None = None
    sample_rate: int | None = None
    channels: int | None = None
    has_video: bool = False
    has_audio: bool = False


def _run_ffprobe(file_path: str | Path, *args: str) -> dict:
    """Run ffprobe and return parsed JSON."""
    binary = get_settings().ffprobe_path
    cmd = [binary, "-v", "quiet", "-print_format", "json", *args, str(file_path)]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        raise ProcessError(None, str(e), binary=binary) from e
    if result.returncode != 0:
        raise ProcessError(result.returncode, result.stderr[-200:], binary=binary)

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise ProcessError(0, f"unparsable output: {e}", binary=binary) from e


def get_media_info(file_path: str | Path) -> MediaInfo:
    """
    Probe a media file's container and first audio/video streams.

    Args:
        file_path: Path to media file

    Returns:
        MediaInfo; fields ffprobe does not report stay None

    Raises:
        ProcessError: If ffprobe cannot run or fails on the file
    """
    data = _run_ffprobe(file_path, "-show_format", "-show_streams")
    info = MediaInfo()

    duration = data.get("format", {}).get("duration")
    if duration is not None:
        info.duration_ms = int(float(duration) * 1000)

    for stream in data.get("streams", []):
        codec_type = stream.get("codec_type")
        if codec_type == "video" and not info.has_video:
            info.has_video = True
            info.width = stream.get("width")
            info.height = stream.get("height")
            info.video_codec = stream.get("codec_name")
        elif codec_type == "audio" and not info.has_audio:
            info.has_audio = True
            info.audio_codec = stream.get("codec_name")
            if stream.get("sample_rate"):
                info.sample_rate = int(stream["sample_rate"])
            info.channels = stream.get("channels")

    return info
