"""Scratch file management for a single pipeline invocation.

Every file a request creates on local disk is allocated (or adopted) here so
that one ``release_all()`` call removes all of them on every exit path.
"""

import logging
import os
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from video_processor.config import get_settings

logger = logging.getLogger(__name__)


class ArtifactKind(str, Enum):
    """Lifecycle tag of a scratch file."""

    DOWNLOADED = "downloaded"
    INTERMEDIATE = "intermediate"
    FINAL_OUTPUT = "final-output"
    SOURCE_UPLOAD = "source-upload"


@dataclass(frozen=True)
class ScratchArtifact:
    path: Path
    kind: ArtifactKind


def _remove_if_exists(path: Path) -> None:
    path.unlink(missing_ok=True)


class ScratchManager:
    """Allocates uniquely named scratch paths and removes them in bulk.

    Not shared between requests; uniqueness of the generated names is the
    only isolation between concurrent invocations.
    """

    def __init__(
        self,
        base_dir: str | Path | None = None,
        remove: Callable[[Path], None] | None = None,
    ) -> None:
        self.base_dir = Path(base_dir or get_settings().scratch_path)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._remove = remove or _remove_if_exists
        self._artifacts: list[ScratchArtifact] = []

    @property
    def artifacts(self) -> list[ScratchArtifact]:
        return list(self._artifacts)

    def allocate(
        self,
        kind: ArtifactKind,
        suffix: str = ".mp4",
        prefix: str | None = None,
    ) -> ScratchArtifact:
        """Reserve a fresh path. The file itself is not created."""
        stem = prefix or kind.value
        while True:
            name = f"{stem}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}{suffix}"
            path = self.base_dir / name
            if not path.exists():
                break
        artifact = ScratchArtifact(path=path, kind=kind)
        self._artifacts.append(artifact)
        return artifact

    def adopt(self, path: str | Path, kind: ArtifactKind) -> ScratchArtifact:
        """Track a file created elsewhere so it is released with the rest."""
        path = Path(path)
        for artifact in self._artifacts:
            if artifact.path == path:
                return artifact
        artifact = ScratchArtifact(path=path, kind=kind)
        self._artifacts.append(artifact)
        return artifact

    def release_all(self) -> list[Path]:
        """Delete every tracked artifact; never raises.

        Returns:
            Paths whose deletion failed
        """
        artifacts, self._artifacts = self._artifacts, []
        failed: list[Path] = []
        for artifact in artifacts:
            try:
                self._remove(artifact.path)
            except Exception as e:
                logger.error(f"[SCRATCH] Failed to cleanup {artifact.path}: {e}")
                failed.append(artifact.path)
        if artifacts:
            logger.debug(f"[SCRATCH] Released {len(artifacts) - len(failed)}/{len(artifacts)} artifacts")
        return failed

    def __enter__(self) -> "ScratchManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release_all()


def file_size_mb(path: str | Path) -> float:
    """File size in MB for log lines; 0.0 if the file is gone."""
    try:
        return os.path.getsize(path) / 1024 / 1024
    except OSError:
        return 0.0
