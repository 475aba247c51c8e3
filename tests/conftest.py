"""
Pytest fixtures for video processor tests.

Sample clips are generated on the fly with ffmpeg's lavfi sources, so no
test data directory is needed.

CI/CD Note:
Tests that need a real ffmpeg binary are marked with @pytest.mark.requires_ffmpeg
Run `pytest -m "not requires_ffmpeg"` to skip these tests where ffmpeg is absent.
"""

import shutil
import subprocess
import tempfile
from pathlib import Path

import pytest

from video_processor.config import get_settings


def pytest_configure(config):
    """Register custom markers for CI/CD test filtering."""
    config.addinivalue_line(
        "markers",
        "requires_ffmpeg: mark test as requiring ffmpeg/ffprobe on PATH (skipped otherwise)"
    )


def _ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


def pytest_collection_modifyitems(config, items):
    """Skip requires_ffmpeg tests when the binaries are missing."""
    if _ffmpeg_available():
        return
    skip = pytest.mark.skip(reason="ffmpeg/ffprobe not available")
    for item in items:
        if "requires_ffmpeg" in item.keywords:
            item.add_marker(skip)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Settings that never touch real services or the shared temp dir."""
    monkeypatch.setenv("SCRATCH_DIR", str(tmp_path / "scratch"))
    monkeypatch.setenv("SUPABASE_URL", "https://supabase.test")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
    monkeypatch.setenv("AUTH_HUB_URL", "https://authhub.test/functions/v1")
    monkeypatch.setenv("AUTH_HUB_APP_KEY", "app-key")
    monkeypatch.setenv("TM_API_BASE", "https://tm.test")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def temp_output_dir():
    """Temporary directory for test outputs."""
    with tempfile.TemporaryDirectory(prefix="video_processor_test_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def scratch_dir(tmp_path) -> Path:
    path = tmp_path / "scratch"
    path.mkdir(parents=True, exist_ok=True)
    return path


def make_test_video(path: Path, duration_s: float, width: int, height: int) -> Path:
    """Render a test pattern with a sine tone."""
    subprocess.run(
        [
            "ffmpeg", "-y",
            "-f", "lavfi", "-i", f"testsrc=duration={duration_s}:size={width}x{height}:rate=25",
            "-f", "lavfi", "-i", f"sine=frequency=440:duration={duration_s}",
            "-c:v", "libx264", "-preset", "ultrafast",
            "-c:a", "aac",
            "-shortest",
            str(path),
        ],
        capture_output=True,
        check=True,
    )
    return path


@pytest.fixture
def inspection_video(temp_output_dir) -> Path:
    """A 5 second 640x480 clip with audio."""
    return make_test_video(temp_output_dir / "inspection.mp4", 5, 640, 480)


@pytest.fixture
def explainer_video(temp_output_dir) -> Path:
    """A 3 second 1920x1080 clip with audio."""
    return make_test_video(temp_output_dir / "explainer.mp4", 3, 1920, 1080)


@pytest.fixture
def fake_video(tmp_path) -> Path:
    """Non-empty stand-in for a video where content does not matter."""
    path = tmp_path / "source.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"inspection-video-bytes" * 64)
    return path
