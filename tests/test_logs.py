"""
Logging setup tests.
"""

import json
import logging
from pathlib import Path

from ffrenc.logs import (
    ColoredFormatter,
    JsonLinesFormatter,
    configure_logging,
    data_root,
    logs_root,
)


class TestLogPaths:
    def test_env_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("FFRENC_LOG_DIR", str(tmp_path))
        assert logs_root() == tmp_path

    def test_xdg_data_home(self, monkeypatch, tmp_path):
        monkeypatch.delenv("FFRENC_LOG_DIR", raising=False)
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))
        assert data_root() == tmp_path / "dev.thmsn.ffrenc"
        assert logs_root() == tmp_path / "dev.thmsn.ffrenc" / "logs"

    def test_home_fallback(self, monkeypatch):
        monkeypatch.delenv("FFRENC_LOG_DIR", raising=False)
        monkeypatch.delenv("XDG_DATA_HOME", raising=False)
        assert data_root() == Path.home() / ".local" / "share" / "dev.thmsn.ffrenc"


class TestFormatters:
    def _record(self, **extra) -> logging.LogRecord:
        record = logging.LogRecord("ffrenc.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_lines_include_extra_fields(self):
        line = JsonLinesFormatter().format(self._record(snapshot={"total_tasks": 2}))
        entry = json.loads(line)
        assert entry["message"] == "hello world"
        assert entry["level"] == "INFO"
        assert entry["target"] == "ffrenc.test"
        assert entry["snapshot"] == {"total_tasks": 2}
        assert "\n" not in line

    def test_colored_formatter_restores_levelname(self):
        record = self._record()
        text = ColoredFormatter("%(levelname)s %(message)s").format(record)
        assert "\033[32mINFO" in text
        assert record.levelname == "INFO"

    def test_colored_formatter_plain(self):
        text = ColoredFormatter("%(levelname)s", colorize=False).format(self._record())
        assert text == "INFO"


class TestConfigureLogging:
    def test_writes_json_log_file(self, isolated_logging):
        path = configure_logging(console=False, level="INFO")

        assert path.parent == isolated_logging
        assert path.name.endswith("_log.json")
        logging.getLogger("ffrenc.test").info("batch started", extra={"jobs": 3})
        for handler in logging.getLogger().handlers:
            handler.flush()

        entries = [json.loads(line) for line in path.read_text().splitlines()]
        assert any(e["message"] == "batch started" and e["jobs"] == 3 for e in entries)

    def test_idempotent(self, isolated_logging):
        first = configure_logging(console=True)
        count = len(logging.getLogger().handlers)
        second = configure_logging(console=True)

        assert first == second
        assert len(logging.getLogger().handlers) == count

    def test_console_handler_only_when_verbose(self, isolated_logging):
        before = len(logging.getLogger().handlers)
        configure_logging(console=False)
        stream_handlers = [
            h for h in logging.getLogger().handlers[before:]
            if type(h) is logging.StreamHandler
        ]
        assert stream_handlers == []
