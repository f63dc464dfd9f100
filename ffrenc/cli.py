"""
ffrenc CLI - Thin entrypoint.

    ffrenc -i clip.mov
    find . -name '*.mov' | ffrenc -i - -j 2 -f json -- -vf scale=1280:-2

Design Principles:
==================
- CLI is a dispatcher only
- No execution logic inside CLI
- Surface errors verbatim from the execution layer
- Exit non-zero on failure
- No interactive prompts

Exit Codes:
===========
- 0: All jobs succeeded
- 1: Refused to start (no inputs, output exists, duration query failed)
- 2: All jobs failed
- 3: Partial success
- 4: Internal error (protocol violation, shutdown timeout)
- 130: Interrupted
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, NoReturn, Optional, Sequence, TextIO, Tuple

from . import __version__
from .config import DEFAULT_OUTPUT_TEMPLATE, BatchSettings, OutputFormat
from .execution.base import TranscodeBackend
from .execution.cancellation import CancellationSignal
from .execution.errors import (
    BackendNotAvailableError,
    PreFlightError,
    ShutdownTimeoutError,
    SignalRaisedError,
)
from .execution.ffmpeg import FFmpegBackend
from .inputs import plan_outputs, resolve_inputs
from .logs import configure_logging
from .monitor.errors import MonitorError
from .orchestrator import BatchResult, Orchestrator

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_REFUSED = 1
EXIT_ALL_FAILED = 2
EXIT_PARTIAL = 3
EXIT_INTERNAL = 4
EXIT_INTERRUPTED = 130

PASSTHROUGH_SEPARATOR = "--"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ffrenc",
        description="Batch re-encode media with FFmpeg and a live aggregate progress view",
        epilog="Arguments after -- are passed to ffmpeg before the output path.",
    )
    parser.add_argument(
        "-i", "--input",
        required=True,
        help="Input path, or - to read newline-delimited paths from stdin",
    )
    parser.add_argument(
        "-o", "--output",
        default=DEFAULT_OUTPUT_TEMPLATE,
        help="Output path template; {SLUG} is the input file stem (default: %(default)s)",
    )
    parser.add_argument("--no-audio", action="store_true", help="Drop audio streams")
    parser.add_argument("--no-video", action="store_true", help="Drop video streams")
    parser.add_argument(
        "-y", "--overwrite",
        action="store_true",
        help="Overwrite existing output files",
    )
    parser.add_argument(
        "-f", "--format",
        choices=[f.value for f in OutputFormat],
        default=OutputFormat.HUMAN.value,
        help="Progress output format (default: %(default)s)",
    )
    parser.add_argument(
        "-j", "--concurrency",
        type=int,
        default=1,
        help="Maximum number of concurrent transcodes (default: 1)",
    )
    parser.add_argument(
        "--monitor-port",
        type=int,
        default=None,
        help="Serve the read-only monitor API on this port",
    )
    parser.add_argument(
        "--monitor-host",
        default="127.0.0.1",
        help="Monitor API bind address; non-loopback requires FFRENC_MONITOR_LAN=true",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for the log file and verbose console (default: %(default)s)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def split_passthrough(argv: Sequence[str]) -> Tuple[List[str], List[str]]:
    """Split argv at the first `--`; everything after it belongs to ffmpeg."""
    argv = list(argv)
    if PASSTHROUGH_SEPARATOR in argv:
        index = argv.index(PASSTHROUGH_SEPARATOR)
        return argv[:index], argv[index + 1:]
    return argv, []


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    own, passthrough = split_passthrough(sys.argv[1:] if argv is None else argv)
    args = build_parser().parse_args(own)
    args.ffmpeg_args = passthrough
    return args


def exit_code_for(result: BatchResult) -> int:
    if result.interrupted:
        return EXIT_INTERRUPTED
    if result.succeeded == result.total:
        return EXIT_SUCCESS
    if result.succeeded == 0:
        return EXIT_ALL_FAILED
    return EXIT_PARTIAL


async def run_batch(
    settings: BatchSettings,
    plan: List[Tuple[Path, Path]],
    backend: TranscodeBackend,
    stream: Optional[TextIO] = None,
) -> BatchResult:
    """Run one batch with SIGINT/SIGTERM wired to the root cancellation signal."""
    root = CancellationSignal("root")
    loop = asyncio.get_running_loop()

    def on_signal(signum: int) -> None:
        logger.warning(f"[CLI] Received {signal.Signals(signum).name}, cancelling")
        root.raise_()

    installed = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, on_signal, signum)
            installed.append(signum)
        except (NotImplementedError, RuntimeError):
            # Not available on this platform or outside the main thread
            pass

    try:
        return await Orchestrator(settings, backend, root, stream=stream).run(plan)
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)


def run(
    argv: Optional[Sequence[str]] = None,
    backend: Optional[TranscodeBackend] = None,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
) -> int:
    """
    Parse arguments, run the batch and map the outcome to an exit code.
    """
    args = parse_args(argv)
    configure_logging(console=args.format == OutputFormat.VERBOSE.value, level=args.log_level)

    try:
        settings = BatchSettings.from_args(args)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_REFUSED

    try:
        inputs = resolve_inputs(args.input, stdin=stdin)
        plan = plan_outputs(inputs, settings.output_template, overwrite=settings.overwrite)
        result = asyncio.run(run_batch(settings, plan, backend or FFmpegBackend(), stream=stdout))
    except (PreFlightError, BackendNotAvailableError) as e:
        logger.error(f"[CLI] Refusing to start: {e}")
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_REFUSED
    except SignalRaisedError:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_INTERRUPTED
    except (MonitorError, ShutdownTimeoutError) as e:
        logger.error(f"[CLI] Run aborted: {e}")
        print(f"FATAL: {e}", file=sys.stderr)
        return EXIT_INTERNAL
    except Exception as e:
        logger.exception(f"[CLI] Unexpected error: {e}")
        print(f"FATAL: {e}", file=sys.stderr)
        return EXIT_INTERNAL

    return exit_code_for(result)


def main() -> NoReturn:
    """Console script entrypoint."""
    sys.exit(run())


if __name__ == "__main__":
    main()
