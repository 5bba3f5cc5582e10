"""Tests for logging setup."""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from addon_sync.log import configure_logging, get_logger


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    logging.getLogger().handlers.clear()
    logging.getLogger().setLevel(logging.WARNING)
    structlog.reset_defaults()


@pytest.mark.parametrize("name", ["addon_sync.manager", "manager"])
def test_logger_names_are_namespaced(name: str, capsys: pytest.CaptureFixture[str]):
    configure_logging("INFO", json_logs=True)
    get_logger(name).info("Planned changes", clone=2)

    line = json.loads(capsys.readouterr().err.strip())
    assert line["logger"] == "addon_sync.manager"
    assert line["event"] == "Planned changes"
    assert line["clone"] == 2
    assert line["level"] == "info"
    assert "timestamp" in line


def test_level_names_are_case_insensitive(capsys: pytest.CaptureFixture[str]):
    configure_logging("debug", json_logs=True)
    assert logging.getLogger().level == logging.DEBUG

    get_logger("executor").debug("Cloning", url="https://github.com/cfc-servers/x")
    assert "Cloning" in capsys.readouterr().err


def test_unknown_level_falls_back_to_info(capsys: pytest.CaptureFixture[str]):
    configure_logging("chatty", json_logs=True)
    assert logging.getLogger().level == logging.INFO

    logger = get_logger("collector")
    logger.debug("hidden")
    logger.warning("shown")
    err = capsys.readouterr().err
    assert "hidden" not in err
    assert "shown" in err
