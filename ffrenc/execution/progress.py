"""
FFmpeg progress parsing.

FFmpeg run with `-progress pipe:1` writes key=value blocks to stdout:

    frame=240
    out_time_us=10010000
    out_time_ms=10010000
    out_time=00:00:10.010000
    speed=4.01x
    progress=continue

Older stats lines on stderr carry the same position as `time=`:

    frame=   24 fps= 12 q=28.0 size=       0kB time=00:00:01.00 bitrate=   0.0kbits/s

We only extract the processed position in seconds. Percentages and ETA
are derived by the UI from position and total duration.
"""

import re
from typing import Optional

# out_time_ms is microseconds despite its name (long-standing ffmpeg quirk)
MICROSECONDS_PATTERN = re.compile(r'^out_time_(?:us|ms)=(-?\d+)\s*$')

# out_time=00:01:23.456789
OUT_TIME_PATTERN = re.compile(r'^out_time=(-?)(\d+):(\d{2}):(\d{2}(?:\.\d+)?)\s*$')

# Stats line: time=00:00:01.00
STATS_TIME_PATTERN = re.compile(r'time=(\d+):(\d{2}):(\d{2}(?:\.\d+)?)')

PROGRESS_END = "progress=end"


def parse_timestamp(hours: str, minutes: str, seconds: str) -> float:
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


class ProgressParser:
    """
    Turn ffmpeg progress output into processed-so-far samples.

    Usage:
        parser = ProgressParser()
        for line in ffmpeg_stdout:
            seconds = parser.parse_line(line)
            if seconds is not None:
                send(seconds)
    """

    def __init__(self):
        self.last_position: Optional[float] = None
        self.finished = False
        # out_time_us, out_time_ms and out_time repeat the same value per block
        self._block_reported = False

    def parse_line(self, line: str) -> Optional[float]:
        """
        Parse one line of output.

        Returns:
            Position in seconds if the line carried a new sample, None otherwise
            (including "N/A" values and duplicates within a progress block)
        """
        line = line.strip()
        if not line:
            return None

        if line.startswith("progress="):
            self.finished = line == PROGRESS_END
            self._block_reported = False
            return None

        position = self._extract(line)
        if position is None:
            return None

        if line.startswith("out_time"):
            if self._block_reported:
                return None
            self._block_reported = True

        # Negative positions show up before the first packet is muxed
        position = max(0.0, position)
        self.last_position = position
        return position

    def _extract(self, line: str) -> Optional[float]:
        match = MICROSECONDS_PATTERN.match(line)
        if match:
            return int(match.group(1)) / 1_000_000

        match = OUT_TIME_PATTERN.match(line)
        if match:
            value = parse_timestamp(match.group(2), match.group(3), match.group(4))
            return -value if match.group(1) else value

        if line.startswith("out_time"):
            # out_time*=N/A
            return None

        match = STATS_TIME_PATTERN.search(line)
        if match:
            return parse_timestamp(match.group(1), match.group(2), match.group(3))

        return None
