"""
Execution layer: admission, cancellation, channels and the FFmpeg backend.

This package runs jobs. It does NOT render anything; lifecycle events
leave through a Channel and are reduced by ffrenc.monitor.

JobRunner and ProgressRelay live in ffrenc.execution.runner and
ffrenc.execution.relay and are imported from there directly.
"""

from .base import (
    CommandBuilder,
    ExitStatus,
    FFmpegCommand,
    TranscodeBackend,
)
from .cancellation import CancellationSignal
from .channel import Channel
from .errors import (
    BackendCancelledError,
    BackendError,
    BackendNotAvailableError,
    ChannelClosedError,
    DurationQueryError,
    ExecutionError,
    NoInputsError,
    OutputExistsError,
    PreFlightError,
    ShutdownTimeoutError,
    SignalRaisedError,
)
from .ffmpeg import FFmpegBackend
from .gate import ConcurrencyGate, Permit
from .state import JobPhase

__all__ = [
    # Backend contract
    "CommandBuilder",
    "ExitStatus",
    "FFmpegCommand",
    "TranscodeBackend",
    "FFmpegBackend",
    # Coordination
    "CancellationSignal",
    "Channel",
    "ConcurrencyGate",
    "Permit",
    "JobPhase",
    # Errors
    "ExecutionError",
    "PreFlightError",
    "NoInputsError",
    "OutputExistsError",
    "DurationQueryError",
    "BackendError",
    "BackendNotAvailableError",
    "BackendCancelledError",
    "SignalRaisedError",
    "ChannelClosedError",
    "ShutdownTimeoutError",
]
