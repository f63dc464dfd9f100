"""
FFmpeg execution backend.

Design rules:
- One subprocess per job
- Duration comes from ffprobe, asked once per input
- Progress comes from `-progress pipe:1` on stdout
- stderr is kept (last lines only) for diagnostics
- Cancellation: SIGTERM, then SIGKILL after kill_timeout
- Non-zero exit is reported through ExitStatus, not raised
"""

import asyncio
import json
import logging
import os
import shutil
from collections import deque
from pathlib import Path
from typing import Deque, Optional

from .base import CommandBuilder, ExitStatus, FFmpegCommand, TranscodeBackend
from .cancellation import CancellationSignal
from .channel import Channel
from .errors import (
    BackendCancelledError,
    BackendError,
    BackendNotAvailableError,
    ChannelClosedError,
    DurationQueryError,
    SignalRaisedError,
)
from .progress import ProgressParser

logger = logging.getLogger(__name__)

COMMON_BINARY_DIRS = (
    "/usr/local/bin",
    "/usr/bin",
    "/opt/homebrew/bin",
)

# Arguments every ffmpeg invocation starts with, before the job's own
FFMPEG_BASE_ARGS = (
    "-hide_banner",
    "-nostdin",
    "-nostats",
    "-loglevel", "error",
    "-progress", "pipe:1",
)

STDERR_TAIL_LINES = 20


def find_binary(name: str) -> Optional[str]:
    """Find a binary on PATH or in common install locations."""
    path = shutil.which(name)
    if path:
        return path
    for directory in COMMON_BINARY_DIRS:
        candidate = os.path.join(directory, name)
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
    return None


class FFmpegBackend(TranscodeBackend):
    """FFmpeg/ffprobe backed transcoder."""

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        ffprobe_path: Optional[str] = None,
        kill_timeout: float = 5.0,
    ):
        self._ffmpeg_path = ffmpeg_path
        self._ffprobe_path = ffprobe_path
        self.kill_timeout = kill_timeout

    @property
    def name(self) -> str:
        return "FFmpeg"

    @property
    def ffmpeg_path(self) -> str:
        if self._ffmpeg_path is None:
            self._ffmpeg_path = find_binary("ffmpeg")
        if self._ffmpeg_path is None:
            raise BackendNotAvailableError("ffmpeg")
        return self._ffmpeg_path

    @property
    def ffprobe_path(self) -> str:
        if self._ffprobe_path is None:
            self._ffprobe_path = find_binary("ffprobe")
        if self._ffprobe_path is None:
            raise BackendNotAvailableError("ffprobe")
        return self._ffprobe_path

    # =========================================================================
    # Duration
    # =========================================================================

    async def query_duration(self, input_path: Path, cancel: CancellationSignal) -> float:
        try:
            ffprobe = self.ffprobe_path
        except BackendNotAvailableError as e:
            raise DurationQueryError(input_path, str(e))

        argv = [
            ffprobe,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "json",
            str(input_path),
        ]
        logger.debug(f"[FFmpeg] Probing duration: {' '.join(argv)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise DurationQueryError(input_path, f"Failed to launch ffprobe: {e}") from e
        try:
            stdout, stderr = await cancel.guard(proc.communicate())
        except SignalRaisedError:
            await self._stop(proc)
            raise

        if proc.returncode != 0:
            reason = stderr.decode(errors="replace").strip() or f"ffprobe exited with code {proc.returncode}"
            raise DurationQueryError(input_path, reason)

        return parse_probe_duration(input_path, stdout.decode(errors="replace"))

    # =========================================================================
    # Execution
    # =========================================================================

    async def run_with_progress(
        self,
        progress: Channel[float],
        cancel: CancellationSignal,
        build_command: CommandBuilder,
    ) -> ExitStatus:
        try:
            if cancel.is_raised():
                raise BackendCancelledError()

            cmd = FFmpegCommand(self.ffmpeg_path, FFMPEG_BASE_ARGS)
            build_command(cmd)
            logger.info(f"[FFmpeg] Executing: {cmd}")

            try:
                proc = await asyncio.create_subprocess_exec(
                    *cmd.argv,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise BackendError(f"Failed to launch ffmpeg: {e}") from e

            stderr_tail: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)
            readers = asyncio.gather(
                self._pump_progress(proc.stdout, progress),
                self._collect_stderr(proc.stderr, stderr_tail),
            )

            try:
                returncode = await cancel.guard(proc.wait())
            except SignalRaisedError:
                logger.info(f"[FFmpeg] Cancellation requested, stopping pid {proc.pid}")
                await self._stop(proc)
                await readers
                raise BackendCancelledError(proc.returncode)
            except asyncio.CancelledError:
                # Task torn down without a signal: no time for a graceful stop
                if proc.returncode is None:
                    proc.kill()
                readers.cancel()
                raise

            await readers
            status = ExitStatus.from_returncode(returncode, stderr_tail)
            if status.success:
                logger.info(f"[FFmpeg] pid {proc.pid} {status.describe()}")
            else:
                logger.warning(f"[FFmpeg] pid {proc.pid} {status.describe()}")
            return status
        finally:
            progress.close()

    async def _pump_progress(self, stream: asyncio.StreamReader, progress: Channel[float]) -> None:
        # Never waits on the channel: a stalled consumer must not stall ffmpeg
        parser = ProgressParser()
        receiver_gone = False
        while True:
            raw = await stream.readline()
            if not raw:
                break
            if receiver_gone:
                # Keep draining so ffmpeg never blocks on a full pipe
                continue
            position = parser.parse_line(raw.decode(errors="replace"))
            if position is None:
                continue
            try:
                if not progress.try_send(position):
                    logger.debug(f"[FFmpeg] Progress buffer full, dropped sample {position:.2f}s")
            except ChannelClosedError:
                receiver_gone = True

    async def _collect_stderr(self, stream: asyncio.StreamReader, tail: Deque[str]) -> None:
        while True:
            raw = await stream.readline()
            if not raw:
                break
            line = raw.decode(errors="replace").rstrip()
            if line:
                tail.append(line)
                logger.debug(f"[FFmpeg] stderr: {line}")

    async def _stop(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM, then SIGKILL if the process outlives kill_timeout."""
        if proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.kill_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[FFmpeg] pid {proc.pid} ignored SIGTERM, sending SIGKILL")
            try:
                proc.kill()
            except ProcessLookupError:
                return
            await proc.wait()


def parse_probe_duration(input_path: Path, output: str) -> float:
    """
    Extract format.duration from ffprobe JSON output.

    Raises:
        DurationQueryError: If the output is not JSON or carries no duration
    """
    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise DurationQueryError(input_path, f"Failed to parse ffprobe output: {e}")

    raw = (data.get("format") or {}).get("duration")
    if raw in (None, "", "N/A"):
        raise DurationQueryError(input_path, "ffprobe reported no duration")
    try:
        duration = float(raw)
    except (TypeError, ValueError):
        raise DurationQueryError(input_path, f"Invalid duration value: {raw!r}")
    if duration < 0:
        raise DurationQueryError(input_path, f"Negative duration: {duration}")
    return duration
