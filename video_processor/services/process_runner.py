"""FFmpeg process runner.

Runs the transcoding engine as a subprocess, keeps the tail of its stderr for
error reporting and tracks the latest ``time=`` progress marker for logging.
"""

import asyncio
import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from video_processor.config import get_settings
from video_processor.exceptions import ProcessError

logger = logging.getLogger(__name__)

PROGRESS_PATTERN = re.compile(r"time=(\d+:\d+:\d+\.\d+)")

DEFAULT_TAIL_CHARS = 200
_READ_CHUNK = 4096
# Enough overlap to catch a progress marker split across two reads
_CARRY_CHARS = 32


@dataclass
class TranscodeStageResult:
    """Outcome of one external process invocation."""

    returncode: int | None
    diagnostic_tail: str = ""
    last_progress: str | None = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessRunner:
    """Runs one external binary invocation at a time per call.

    There is no locking: callers must not run concurrently against the same
    artifact paths.
    """

    def __init__(
        self,
        binary: str | None = None,
        timeout_s: float | None = None,
        tail_chars: int = DEFAULT_TAIL_CHARS,
        on_progress: Callable[[str], None] | None = None,
    ) -> None:
        settings = get_settings()
        self.binary = binary or settings.ffmpeg_path
        self.timeout_s = settings.ffmpeg_timeout_s if timeout_s is None else timeout_s
        self.tail_chars = tail_chars
        self._on_progress = on_progress
        self._keep_chars = max(tail_chars * 4, 4096)
        self.last_progress: str | None = None

    def _scan_progress(self, text: str) -> None:
        matches = PROGRESS_PATTERN.findall(text)
        if not matches or matches[-1] == self.last_progress:
            return
        self.last_progress = matches[-1]
        logger.debug(f"[FFMPEG] Progress: {self.last_progress}")
        if self._on_progress:
            try:
                self._on_progress(self.last_progress)
            except Exception as e:
                logger.warning(f"[FFMPEG] Progress callback failed: {e}")

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        await proc.wait()

    async def run(self, args: Sequence[str]) -> TranscodeStageResult:
        """Run ``binary *args`` and wait for it to exit.

        Args:
            args: Command arguments, without the binary itself

        Returns:
            TranscodeStageResult for a zero exit code

        Raises:
            ProcessError: If the process cannot start, exits non-zero or
                exceeds ``timeout_s``
        """
        cmd = [self.binary, *args]
        logger.info(f"[FFMPEG] Running: {' '.join(cmd[:6])}...")
        self.last_progress = None

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"[FFMPEG] Could not start {self.binary}: {e}")
            raise ProcessError(None, str(e)[-self.tail_chars:], binary=self.binary) from e

        captured = ""

        async def _pump_and_wait() -> int:
            nonlocal captured
            carry = ""
            while True:
                chunk = await proc.stderr.read(_READ_CHUNK)
                if not chunk:
                    break
                text = chunk.decode("utf-8", errors="replace")
                captured = (captured + text)[-self._keep_chars:]
                self._scan_progress(carry + text)
                carry = text[-_CARRY_CHARS:]
            return await proc.wait()

        timeout = self.timeout_s if self.timeout_s and self.timeout_s > 0 else None
        try:
            returncode = await asyncio.wait_for(_pump_and_wait(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._kill(proc)
            tail = captured[-self.tail_chars:]
            logger.error(f"[FFMPEG] Timed out after {self.timeout_s}s: {' '.join(cmd[:6])}")
            raise ProcessError(None, tail, binary=self.binary, timed_out=True)
        except asyncio.CancelledError:
            logger.warning("[FFMPEG] Cancelled, killing process")
            await self._kill(proc)
            raise

        result = TranscodeStageResult(
            returncode=returncode,
            diagnostic_tail=captured[-self.tail_chars:],
            last_progress=self.last_progress,
        )
        if not result.ok:
            logger.error(f"[FFMPEG] Failed (code {returncode}): {result.diagnostic_tail}")
            raise ProcessError(returncode, result.diagnostic_tail, binary=self.binary)

        return result


async def check_ffmpeg_available(binary: str | None = None, timeout_s: float = 10.0) -> bool:
    """Return True if ``binary -version`` exits with code 0."""
    binary = binary or get_settings().ffmpeg_path
    try:
        proc = await asyncio.create_subprocess_exec(
            binary,
            "-version",
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError:
        return False

    try:
        return await asyncio.wait_for(proc.wait(), timeout=timeout_s) == 0
    except asyncio.TimeoutError:
        await ProcessRunner._kill(proc)
        return False
