"""
Snapshot renderers.

Every format consumes the same AggregateSnapshot:

- verbose:     one structured log record per tick (ffrenc.monitor logger)
- human:       single self-overwriting status line, ANSI colored on a TTY
- json:        compact JSON document per tick, one per line
- json-pretty: indented JSON document per tick
"""

import logging
from typing import Optional, TextIO

from pydantic_core import PydanticSerializationError

from ..config import OutputFormat
from .state import AggregateSnapshot, TaskInfo

logger = logging.getLogger("ffrenc.monitor")

SERIALIZE_FALLBACK = '{"$meta":{"error":"Failed to serialize"}}'

DEFAULT_ACTIVE_LIMIT = 3

# ANSI SGR codes
RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
BLUE = "\033[34m"
CYAN = "\033[36m"
CLEAR_TO_EOL = "\033[K"


def _paint(text: str, code: str, color: bool) -> str:
    return f"{code}{text}{RESET}" if color else text


def format_clock(seconds: Optional[float]) -> Optional[str]:
    """Format seconds as 'Xm Ys'."""
    if seconds is None:
        return None
    whole = int(seconds)
    return f"{whole // 60}m {whole % 60}s"


def _percent_color(percent: float) -> str:
    if percent < 33.0:
        return RED
    if percent < 66.0:
        return YELLOW
    return GREEN


def _format_active_task(task: TaskInfo, color: bool) -> str:
    name = task.input.name or "?"
    percent = f"{task.percent:.1f}%"
    parts = [_paint(name, CYAN, color), "[", _paint(percent, _percent_color(task.percent), color)]

    eta = format_clock(task.eta_seconds)
    if eta is not None:
        parts.append(" " + _paint(f"eta: {eta}", DIM, color))
    elapsed = format_clock(task.elapsed_seconds)
    if elapsed is not None:
        parts.append(" " + _paint(f"elapsed: {elapsed}", DIM, color))

    parts.append("]")
    return "".join(parts)


def format_human(
    snapshot: AggregateSnapshot,
    color: bool = False,
    active_limit: int = DEFAULT_ACTIVE_LIMIT,
) -> str:
    """
    Build the single-line summary.

    Example:
        T: 3 | A: 1 | S: 1 | F: 0 | C: 1 | clip.mov[42.0% eta: 1m 3s elapsed: 0m 45s]
    """
    counters = " | ".join([
        _paint(f"T: {snapshot.total_tasks}", BOLD, color),
        _paint(f"A: {snapshot.active_tasks}", YELLOW, color),
        _paint(f"S: {snapshot.successful_tasks}", GREEN, color),
        _paint(f"F: {snapshot.failed_tasks}", RED, color),
        _paint(f"C: {snapshot.completed_tasks}", BLUE, color),
    ])

    active = snapshot.active
    if not active:
        return counters

    shown = " | ".join(_format_active_task(t, color) for t in active[:active_limit])
    line = f"{counters} | {shown}"

    hidden = len(active) - active_limit
    if hidden > 0:
        line += " " + _paint(f"+{hidden} more", DIM, color)
    return line


def format_json(snapshot: AggregateSnapshot) -> str:
    try:
        return snapshot.model_dump_json()
    except PydanticSerializationError:
        return SERIALIZE_FALLBACK


def format_json_pretty(snapshot: AggregateSnapshot) -> str:
    try:
        return snapshot.model_dump_json(indent=2)
    except PydanticSerializationError:
        return SERIALIZE_FALLBACK


class SnapshotRenderer:
    """
    Writes snapshots to a stream in one OutputFormat.

    The aggregator decides when to call render(); this class only decides
    how the frame looks.
    """

    def __init__(
        self,
        format: OutputFormat,
        stream: TextIO,
        color: Optional[bool] = None,
        active_limit: int = DEFAULT_ACTIVE_LIMIT,
    ):
        self.format = format
        self.stream = stream
        if color is None:
            isatty = getattr(stream, "isatty", None)
            color = bool(isatty and isatty())
        self.color = color
        self.active_limit = active_limit
        self.frames = 0
        self._line_open = False

    def render(self, snapshot: AggregateSnapshot) -> None:
        self.frames += 1

        if self.format == OutputFormat.VERBOSE:
            logger.info(
                "ui.tick total=%d active=%d succeeded=%d failed=%d completed=%d",
                snapshot.total_tasks,
                snapshot.active_tasks,
                snapshot.successful_tasks,
                snapshot.failed_tasks,
                snapshot.completed_tasks,
                extra={"snapshot": snapshot.model_dump(mode="json")},
            )
            return

        if self.format == OutputFormat.HUMAN:
            line = format_human(snapshot, color=self.color, active_limit=self.active_limit)
            self.stream.write(f"\r{line}{CLEAR_TO_EOL if self.color else ''}")
            self._line_open = True
        elif self.format == OutputFormat.JSON:
            self.stream.write(format_json(snapshot) + "\n")
        elif self.format == OutputFormat.JSON_PRETTY:
            self.stream.write(format_json_pretty(snapshot) + "\n")
        self.stream.flush()

    def finish(self) -> None:
        """Terminate the human status line so the shell prompt starts clean."""
        if self._line_open:
            self.stream.write("\n")
            self.stream.flush()
            self._line_open = False
