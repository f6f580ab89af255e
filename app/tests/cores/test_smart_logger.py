# python -m pytest app/tests/cores/test_smart_logger.py -v

import json

import pytest

from app.config import settings
from app.smart_logger import SmartLogger


@pytest.fixture(autouse=True)
def _fresh_logger():
    SmartLogger.reset()
    yield
    SmartLogger.reset()


def test_writes_jsonl_entry_and_detail_file(tmp_path):
    main_log = tmp_path / "main.jsonl"
    logger = SmartLogger(
        main_log_path=str(main_log),
        detail_log_dir=str(tmp_path / "details"),
        min_level="DEBUG",
        console_output=False,
        file_output=True,
    )

    logger._log("INFO", "text2sql.pipeline.done", category="text2sql.pipeline", params={"sql": "x" * 200})

    entry = json.loads(main_log.read_text(encoding="utf-8").strip())
    assert entry["message"] == "text2sql.pipeline.done"
    assert entry["params_summary"] == {"keys": ["sql"]}
    detail = tmp_path / "details" / entry["detail_ref"]
    assert json.loads(detail.read_text(encoding="utf-8")) == {"sql": "x" * 200}


def test_min_level_and_blacklist(tmp_path, capsys):
    logger = SmartLogger(
        min_level="WARNING",
        console_output=True,
        file_output=False,
        blacklist_messages=["noisy"],
    )

    logger._log("INFO", "below threshold")
    logger._log("ERROR", "noisy.event")
    logger._log("ERROR", "kept.event", category="c", params={"k": 1})

    out = capsys.readouterr().out
    assert "below threshold" not in out
    assert "noisy" not in out
    assert "[ERROR][c] kept.event {'k': 1}" in out


def test_environment_configuration(monkeypatch):
    monkeypatch.setenv("SMART_LOGGER_MIN_LEVEL", "ERROR")
    monkeypatch.setenv("SMART_LOGGER_CONSOLE_OUTPUT", "false")
    monkeypatch.setenv("SMART_LOGGER_BLACKLIST_MESSAGES", '["a", "b"]')

    logger = SmartLogger.instance()

    assert logger.min_level == "ERROR"
    assert logger.console_output is False
    assert logger.blacklist_messages == ["a", "b"]
    assert SmartLogger.instance() is logger


def test_min_level_defaults_to_log_level_setting(monkeypatch):
    monkeypatch.delenv("SMART_LOGGER_MIN_LEVEL", raising=False)
    monkeypatch.setattr(settings, "log_level", "warning")

    assert SmartLogger.instance().min_level == "WARNING"
