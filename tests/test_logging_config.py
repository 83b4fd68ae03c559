from __future__ import annotations

import gzip
import logging
from datetime import date
from pathlib import Path

from logging_config import ContextualFormatter, DailyRotatingFileHandler, _build_handlers


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="services.supervisor",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="Connection to scale %s closed",
        args=("ws://scale-a:8081",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_appends_known_context() -> None:
    formatter = ContextualFormatter(fmt="%(levelname)s %(message)s")

    line = formatter.format(_record(slot=1, source="ws://scale-a:8081", attempt=None, user="x"))

    assert line == (
        "WARNING Connection to scale ws://scale-a:8081 closed"
        " | slot=1 source=ws://scale-a:8081"
    )


def test_formatter_without_context_is_plain() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    assert formatter.format(_record()) == "Connection to scale ws://scale-a:8081 closed"


def test_handlers_include_daily_file_when_path_is_set(tmp_path: Path) -> None:
    log_dir = tmp_path / "logs"

    handlers = _build_handlers("INFO", str(log_dir))

    assert set(handlers) == {"default", "daily_file"}
    assert handlers["daily_file"]["()"] == "logging_config.DailyRotatingFileHandler"
    assert handlers["daily_file"]["maxBytes"] == 20 * 1024 * 1024
    assert handlers["daily_file"]["backupCount"] == 14
    assert Path(handlers["daily_file"]["filename"]).parent == log_dir
    assert log_dir.is_dir()


def test_handlers_are_console_only_without_path() -> None:
    assert set(_build_handlers("INFO", None)) == {"default"}


def test_file_rolls_over_at_size_cap_and_compresses(tmp_path: Path) -> None:
    log_file = tmp_path / "scale-aggregator.log"
    handler = DailyRotatingFileHandler(str(log_file), maxBytes=200, backupCount=2, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    try:
        for _ in range(12):
            handler.emit(_record())
    finally:
        handler.close()

    archives = sorted(path.name for path in tmp_path.iterdir() if path.suffix == ".gz")
    assert archives == ["scale-aggregator.log.1.gz", "scale-aggregator.log.2.gz"]
    with gzip.open(tmp_path / "scale-aggregator.log.1.gz", "rt", encoding="utf-8") as archive:
        assert "Connection to scale ws://scale-a:8081 closed" in archive.read()
    assert log_file.stat().st_size <= 200


def test_file_rolls_over_when_the_day_changes(tmp_path: Path) -> None:
    log_file = tmp_path / "scale-aggregator.log"
    handler = DailyRotatingFileHandler(str(log_file), encoding="utf-8")
    try:
        handler.emit(_record())
        assert not handler.shouldRollover(_record())

        handler.opened_on = date(2000, 1, 1)
        assert handler.shouldRollover(_record())
        handler.emit(_record())
    finally:
        handler.close()

    assert handler.opened_on == date.today()
    assert (tmp_path / "scale-aggregator.log.1.gz").exists()
