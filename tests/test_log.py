import logging

from schedcore.log import LOGGER_NAME, get_logger, is_debug_enabled


def test_get_logger_is_shared():
    first = get_logger()
    assert first is get_logger()
    assert first.name == LOGGER_NAME


def test_get_logger_creates_handler_when_unconfigured(monkeypatch):
    logger = logging.getLogger(LOGGER_NAME)
    monkeypatch.setattr(logger, "handlers", [])
    monkeypatch.setattr(logger, "propagate", False)
    monkeypatch.setattr(logger, "level", logger.level)
    assert not logger.hasHandlers()
    result = get_logger()
    assert result.hasHandlers()
    assert len(result.handlers) == 1
    assert is_debug_enabled(result) is True


def test_get_logger_reuses_existing_configuration(monkeypatch):
    logger = logging.getLogger(LOGGER_NAME)
    existing = logging.NullHandler()
    monkeypatch.setattr(logger, "handlers", [existing])
    result = get_logger()
    assert result.handlers == [existing]


def test_is_debug_enabled_levels():
    logger = logging.getLogger("schedcore.test_log.levels")
    logger.setLevel(logging.DEBUG)
    assert is_debug_enabled(logger) is True
    logger.setLevel(logging.INFO)
    assert is_debug_enabled(logger) is False