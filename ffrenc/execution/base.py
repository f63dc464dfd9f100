"""
Transcode backend abstraction layer.

The orchestration core only talks to a backend through this interface:

- query_duration: total media duration, asked once per job before it starts
- run_with_progress: run one transcode, pushing "processed so far" samples
  into a progress channel until the process exits

Design rules:
- Backends are stateless between calls; all context is passed per call
- Every call is cancellable through the CancellationSignal it receives
- Success is the backend's judgment (ExitStatus.success), never a raw
  returncode comparison made by callers
- The backend closes the progress channel when it is done with it
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .cancellation import CancellationSignal
from .channel import Channel

# returncode ffmpeg uses when it exits early on SIGINT/SIGTERM
FFMPEG_INTERRUPTED_RETURNCODE = 255


class ExitStatus(BaseModel):
    """
    Outcome of one backend process.

    success is set by the backend that produced the status. A zero
    returncode is the usual success criterion but callers must not assume it.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    returncode: Optional[int] = None
    """Process returncode (None if it never reported one)."""

    signal: Optional[int] = None
    """Signal number if the process was killed by a signal."""

    interrupted: bool = False
    """The process exited early after receiving an interrupt."""

    success: bool = False
    """Backend's own judgment of the outcome."""

    stderr_tail: List[str] = Field(default_factory=list)
    """Last lines of stderr, for diagnostics."""

    @classmethod
    def from_returncode(cls, returncode: Optional[int], stderr_tail: Iterable[str] = ()) -> "ExitStatus":
        """Classify an ffmpeg returncode."""
        signal = -returncode if returncode is not None and returncode < 0 else None
        return cls(
            returncode=returncode,
            signal=signal,
            interrupted=returncode == FFMPEG_INTERRUPTED_RETURNCODE,
            success=returncode == 0,
            stderr_tail=list(stderr_tail),
        )

    def describe(self) -> str:
        """Human-readable one-liner."""
        if self.success:
            return "exited successfully"
        if self.signal is not None:
            return f"killed by signal {self.signal}"
        if self.interrupted:
            return "interrupted"
        if self.returncode is None:
            return "exited without a returncode"
        return f"exited with code {self.returncode}"


class FFmpegCommand:
    """
    Mutable argument builder handed to command-construction callbacks.

    Usage:
        cmd = FFmpegCommand("/usr/bin/ffmpeg")
        cmd.arg("-y").arg("-i").arg(source)
        cmd.args(["-f", "mp4"])
    """

    def __init__(self, program: str, base_args: Iterable[str] = ()):
        self.program = program
        self._args: List[str] = [str(a) for a in base_args]

    def arg(self, value: Union[str, Path]) -> "FFmpegCommand":
        self._args.append(str(value))
        return self

    def args(self, values: Iterable[Union[str, Path]]) -> "FFmpegCommand":
        self._args.extend(str(v) for v in values)
        return self

    @property
    def argv(self) -> List[str]:
        return [self.program, *self._args]

    def __str__(self) -> str:
        return " ".join(self.argv)


CommandBuilder = Callable[[FFmpegCommand], None]


class TranscodeBackend(ABC):
    """
    Abstract base class for transcode backends.

    All backends must implement:
    - query_duration: Total duration of an input in seconds
    - run_with_progress: Execute one transcode with progress reporting
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name for logs."""
        pass

    @abstractmethod
    async def query_duration(self, input_path: Path, cancel: CancellationSignal) -> float:
        """
        Return the total duration of input_path in seconds.

        Raises:
            DurationQueryError: If the duration cannot be determined
            SignalRaisedError: If cancelled while querying
        """
        pass

    @abstractmethod
    async def run_with_progress(
        self,
        progress: Channel[float],
        cancel: CancellationSignal,
        build_command: CommandBuilder,
    ) -> ExitStatus:
        """
        Run one transcode.

        Args:
            progress: Channel receiving processed-so-far samples (seconds).
                Closed by the backend on exit.
            cancel: Signal that stops the process when raised
            build_command: Callback appending the job's arguments

        Returns:
            ExitStatus of the process

        Raises:
            BackendError: If the process could not run or was cancelled
        """
        pass
