"""
Process-wide logging setup.

- Always: JSON-lines file at <data dir>/dev.thmsn.ffrenc/logs/<epoch>_log.json
- Verbose mode only: colored console handler on stderr

In every other output format stdout belongs to the renderer, so nothing
but the renderer may write to the terminal.
"""

import json
import logging
import os
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

PRODUCT_NAME = "dev.thmsn.ffrenc"

# LogRecord attributes that are not `extra` fields
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}


def data_root() -> Path:
    """$XDG_DATA_HOME/dev.thmsn.ffrenc, else ~/.local/share/dev.thmsn.ffrenc."""
    xdg = os.environ.get("XDG_DATA_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".local" / "share"
    return base / PRODUCT_NAME


def logs_root() -> Path:
    """FFRENC_LOG_DIR replaces the whole directory."""
    override = os.environ.get("FFRENC_LOG_DIR")
    if override:
        return Path(override).expanduser()
    return data_root() / "logs"


def logs_path() -> Path:
    parent = logs_root()
    parent.mkdir(parents=True, exist_ok=True)
    return parent / f"{int(time.time())}_log.json"


class JsonLinesFormatter(logging.Formatter):
    """One JSON object per record. Extra fields are kept under their own keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "target": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                entry[key] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ColoredFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[37m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[41m",
    }
    RESET = "\033[0m"

    def __init__(self, fmt: str, datefmt: Optional[str] = None, colorize: bool = True):
        super().__init__(fmt, datefmt=datefmt)
        self.colorize = colorize

    def format(self, record: logging.LogRecord) -> str:
        if not self.colorize:
            return super().format(record)
        original = record.levelname
        record.levelname = f"{self.COLORS.get(original, self.RESET)}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def configure_logging(console: bool, level: str = "INFO") -> Optional[Path]:
    """
    Idempotent logging init.

    Args:
        console: Attach the stderr console handler (verbose format only)
        level: Root level name

    Returns:
        Path of the JSON-lines log file, or None if it could not be created
    """
    root = logging.getLogger()
    if getattr(root, "_ffrenc_inited", False):
        return getattr(root, "_ffrenc_log_path", None)

    numeric = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(numeric)

    log_path: Optional[Path] = None
    try:
        log_path = logs_path()
        fh = logging.FileHandler(log_path, encoding="utf-8")
        fh.setLevel(numeric)
        fh.setFormatter(JsonLinesFormatter())
        root.addHandler(fh)
    except OSError as e:
        log_path = None
        sys.stderr.write(f"ffrenc: unable to open log file: {e}\n")

    if console:
        ch = logging.StreamHandler(sys.stderr)
        ch.setLevel(numeric)
        ch.setFormatter(ColoredFormatter(
            "%(asctime)s %(levelname)s %(name)s - %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
            colorize=sys.stderr.isatty(),
        ))
        root.addHandler(ch)

    # uvicorn logs access lines through its own loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    root._ffrenc_inited = True  # type: ignore[attr-defined]
    root._ffrenc_log_path = log_path  # type: ignore[attr-defined]
    logging.getLogger(__name__).debug(f"[Logs] Logging to {log_path}")
    return log_path
