"""
BatchSettings - canonical configuration for one ffrenc run.

Built once from the command line, frozen before the first job is created.
Every tunable the orchestrator, runners and UI consume lives here; there
are no hidden constants elsewhere.
"""

import argparse
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

DEFAULT_OUTPUT_TEMPLATE = "{SLUG}.renc.mp4"
SLUG_PLACEHOLDER = "{SLUG}"


class OutputFormat(str, Enum):
    """How the UI renders aggregate snapshots."""

    VERBOSE = "verbose"
    HUMAN = "human"
    JSON = "json"
    JSON_PRETTY = "json-pretty"


@dataclass(frozen=True)
class TranscodeOptions:
    """Per-invocation ffmpeg options shared by every job."""

    no_audio: bool = False
    no_video: bool = False
    extra_args: Tuple[str, ...] = ()


@dataclass(frozen=True)
class BatchSettings:
    """
    Complete, immutable run configuration.

    concurrency defaults to 1: jobs run strictly one at a time unless the
    operator asks for more.
    """

    output_template: str = DEFAULT_OUTPUT_TEMPLATE
    overwrite: bool = False
    format: OutputFormat = OutputFormat.HUMAN
    transcode: TranscodeOptions = field(default_factory=TranscodeOptions)

    # Scheduling
    concurrency: int = 1
    event_buffer: int = 100
    progress_buffer: int = 100

    # UI cadence
    tick_interval: float = 1.0 / 12.0
    human_interval: float = 0.1
    active_display_limit: int = 3

    # Shutdown
    shutdown_grace: float = 1.0

    # Read-only monitor API (disabled when port is None)
    monitor_host: str = "127.0.0.1"
    monitor_port: Optional[int] = None

    def validate(self) -> None:
        """
        Reject values the runtime cannot honor.

        Raises:
            ValueError: On the first invalid value
        """
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.event_buffer < 1 or self.progress_buffer < 1:
            raise ValueError("channel buffers must be >= 1")
        if self.tick_interval <= 0 or self.human_interval <= 0:
            raise ValueError("render intervals must be > 0")
        if self.shutdown_grace <= 0:
            raise ValueError(f"shutdown_grace must be > 0, got {self.shutdown_grace}")
        if self.active_display_limit < 1:
            raise ValueError("active_display_limit must be >= 1")
        if self.monitor_port is not None and not (0 < self.monitor_port < 65536):
            raise ValueError(f"monitor_port out of range: {self.monitor_port}")

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "BatchSettings":
        settings = cls(
            output_template=args.output,
            overwrite=args.overwrite,
            format=OutputFormat(args.format),
            transcode=TranscodeOptions(
                no_audio=args.no_audio,
                no_video=args.no_video,
                extra_args=tuple(args.ffmpeg_args),
            ),
            concurrency=args.concurrency,
            monitor_host=args.monitor_host,
            monitor_port=args.monitor_port,
        )
        settings.validate()
        return settings
