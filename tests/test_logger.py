import logging
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from kalavara.logger import ColourizedFormatter, SyncLog, get_logging_config


def test_sync_log_collects_and_forwards() -> None:
    logger = MagicMock()
    sync_log = SyncLog(logger)

    sync_log.log("Fetched 3 emails")
    sync_log.warning("m1: could not parse")

    assert sync_log.entries[0].startswith("=== Sync started at")
    assert sync_log.entries[1].endswith("Fetched 3 emails")
    logger.log.assert_any_call(logging.INFO, "[SYNC] %s", "Fetched 3 emails")
    logger.log.assert_any_call(logging.WARNING, "[SYNC] %s", "m1: could not parse")


def test_sync_runs_do_not_share_entries() -> None:
    first = SyncLog(MagicMock())
    second = SyncLog(MagicMock())
    first.log("only in first")
    assert not any("only in first" in entry for entry in second.entries)


def test_sync_log_flush(tmp_path: Path) -> None:
    sync_log = SyncLog(MagicMock())
    sync_log.log("hello")
    path = tmp_path / "logs" / "sync.log"

    assert sync_log.flush(str(path))

    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0].startswith("=== Sync started at")
    assert lines[1].endswith("hello")
    assert lines[-1].startswith("=== Sync completed at")


def test_sync_log_flush_failure_is_reported(tmp_path: Path) -> None:
    logger = MagicMock()
    sync_log = SyncLog(logger)
    blocker = tmp_path / "file"
    blocker.write_text("x")

    assert not sync_log.flush(str(blocker / "sync.log"))
    logger.error.assert_called_once()


def test_colourized_formatter_restores_levelname() -> None:
    formatter = ColourizedFormatter("%(levelname)s %(message)s")
    record = logging.LogRecord("x", logging.ERROR, __file__, 1, "boom", None, None)

    assert "\x1b[31m" in formatter.format(record)
    assert record.levelname == "ERROR"


def test_logging_config_adds_file_handler(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    config = get_logging_config()
    assert config["handlers"]["file"]["filename"] == str(tmp_path / "kalavara.log")
    assert "file" in config["loggers"][""]["handlers"]

    monkeypatch.delenv("LOG_DIR")
    assert "file" not in get_logging_config()["handlers"]
