"""
Shared fixtures for the ffrenc test suite.

FakeBackend stands in for FFmpeg: each input is scripted with a duration,
progress samples, an exit code, an error or a hang. No test needs ffmpeg.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

from ffrenc.execution.base import CommandBuilder, ExitStatus, FFmpegCommand, TranscodeBackend
from ffrenc.execution.cancellation import CancellationSignal
from ffrenc.execution.channel import Channel
from ffrenc.execution.errors import (
    BackendCancelledError,
    ChannelClosedError,
    DurationQueryError,
    SignalRaisedError,
)
from ffrenc.execution.gate import ConcurrencyGate
from ffrenc.execution.runner import JobContext


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "slow: marks tests that wait on real timers")


@dataclass
class FakeScript:
    """What FakeBackend does for one input (keyed by file name)."""

    duration: float = 10.0
    duration_error: Optional[str] = None
    samples: Sequence[float] = ()
    sample_delay: float = 0.01
    run_time: float = 0.0
    returncode: int = 0
    error: Optional[Exception] = None
    hang: bool = False


@dataclass
class FakeBackend(TranscodeBackend):
    scripts: Dict[str, FakeScript] = field(default_factory=dict)
    default: FakeScript = field(default_factory=FakeScript)

    probed: List[str] = field(default_factory=list)
    started: List[str] = field(default_factory=list)
    finished: List[str] = field(default_factory=list)
    cancelled: List[str] = field(default_factory=list)
    commands: List[List[str]] = field(default_factory=list)
    running: int = 0
    max_running: int = 0

    @property
    def name(self) -> str:
        return "Fake"

    def script_for(self, name: str) -> FakeScript:
        return self.scripts.get(name, self.default)

    async def query_duration(self, input_path: Path, cancel: CancellationSignal) -> float:
        await asyncio.sleep(0)
        self.probed.append(input_path.name)
        script = self.script_for(input_path.name)
        if script.duration_error is not None:
            raise DurationQueryError(input_path, script.duration_error)
        return script.duration

    async def run_with_progress(
        self,
        progress: Channel[float],
        cancel: CancellationSignal,
        build_command: CommandBuilder,
    ) -> ExitStatus:
        cmd = FFmpegCommand("ffmpeg")
        build_command(cmd)
        argv = cmd.argv
        name = Path(argv[argv.index("-i") + 1]).name
        script = self.script_for(name)

        self.commands.append(argv)
        self.started.append(name)
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            if cancel.is_raised():
                raise BackendCancelledError()

            for sample in script.samples:
                try:
                    progress.try_send(sample)
                except ChannelClosedError:
                    pass
                await self._wait(cancel, name, asyncio.sleep(script.sample_delay))

            if script.error is not None:
                raise script.error

            if script.hang:
                await self._wait(cancel, name, asyncio.Event().wait())
            elif script.run_time:
                await self._wait(cancel, name, asyncio.sleep(script.run_time))

            return ExitStatus.from_returncode(script.returncode, ["fake stderr"])
        finally:
            self.running -= 1
            self.finished.append(name)
            progress.close()

    async def _wait(self, cancel: CancellationSignal, name: str, awaitable) -> None:
        try:
            await cancel.guard(awaitable)
        except SignalRaisedError:
            self.cancelled.append(name)
            raise BackendCancelledError(255)


class FakeClock:
    """Controllable datetime source for UiState."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def drain(channel: Channel) -> list:
    """Everything currently buffered in a channel."""
    items = []
    while True:
        item = channel.recv_nowait()
        if item is None:
            return items
        items.append(item)


def make_context(backend: TranscodeBackend, capacity: int = 1, buffer: int = 1000) -> JobContext:
    return JobContext(
        events=Channel(maxsize=buffer),
        gate=ConcurrencyGate(capacity),
        signal=CancellationSignal("batch"),
        backend=backend,
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def isolated_logging(tmp_path, monkeypatch):
    """Point the log file at tmp_path and undo configure_logging() afterwards."""
    log_dir = tmp_path / "logs"
    monkeypatch.setenv("FFRENC_LOG_DIR", str(log_dir))

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level

    yield log_dir

    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    for attr in ("_ffrenc_inited", "_ffrenc_log_path"):
        if hasattr(root, attr):
            delattr(root, attr)
