"""
Execution-specific errors.

Two families live here and must not be conflated:

- Pre-flight errors abort the batch before any job is announced.
- Backend errors end a single job with a Failed event; siblings continue.

Channel and signal errors are control-flow signals for the cooperative
tasks. ChannelClosedError is always swallowed by best-effort senders.
"""

from pathlib import Path
from typing import Optional


class ExecutionError(Exception):
    """Base exception for execution failures."""

    pass


# =============================================================================
# Pre-flight (fatal before start)
# =============================================================================

class PreFlightError(ExecutionError):
    """
    The batch cannot start.

    Raised before any lifecycle event is emitted:
    - No inputs resolved
    - Output exists and overwrite was not requested
    - Duration query failed for an input
    """

    pass


class NoInputsError(PreFlightError):
    """Raised when input enumeration resolves nothing."""

    def __init__(self, reason: str = "No inputs specified"):
        super().__init__(reason)


class OutputExistsError(PreFlightError):
    """Raised when a planned output path already exists."""

    def __init__(self, output_path: Path):
        self.output_path = output_path
        super().__init__(
            f'Output file ("{output_path}") already exists (-y/--overwrite to overwrite)'
        )


class DurationQueryError(PreFlightError):
    """Raised when the backend cannot report an input's total duration."""

    def __init__(self, input_path: Path, reason: str):
        self.input_path = input_path
        self.reason = reason
        super().__init__(f"Failed to query duration of {input_path}: {reason}")


# =============================================================================
# Backend (per-job failure)
# =============================================================================

class BackendError(ExecutionError):
    """The transcode backend could not complete a job."""

    pass


class BackendNotAvailableError(BackendError):
    """Raised when a required binary cannot be located."""

    def __init__(self, binary: str):
        self.binary = binary
        super().__init__(f"{binary} not found. Please install ffmpeg and ensure it is on PATH.")


class BackendCancelledError(BackendError):
    """Raised when a backend process was stopped by a cancellation signal."""

    def __init__(self, returncode: Optional[int] = None):
        self.returncode = returncode
        message = "Transcode cancelled"
        if returncode is not None:
            message += f" (exit code: {returncode})"
        super().__init__(message)


# =============================================================================
# Coordination
# =============================================================================

class SignalRaisedError(ExecutionError):
    """Raised by CancellationSignal.guard() when the signal wins the race."""

    def __init__(self, message: str = "Cancellation signal raised"):
        super().__init__(message)


class ChannelClosedError(ExecutionError):
    """Raised when sending on a channel whose receiver has gone away."""

    def __init__(self, message: str = "Channel receiver closed"):
        super().__init__(message)


class ShutdownTimeoutError(ExecutionError):
    """Raised when the aggregator does not exit within the grace period."""

    def __init__(self, grace_seconds: float):
        self.grace_seconds = grace_seconds
        super().__init__(f"Timed out after {grace_seconds:.1f}s waiting for UI to exit")
