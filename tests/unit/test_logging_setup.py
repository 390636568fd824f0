from __future__ import annotations

import io
import logging
import logging.handlers

import pytest

from binrunner.logging_config import setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_console_only_without_log_dir(restore_root_logger, monkeypatch):
    monkeypatch.delenv("BINRUNNER_LOG_DIR", raising=False)

    setup_logging("binrunner")

    handlers = restore_root_logger.handlers
    assert len(handlers) == 1
    assert isinstance(handlers[0], logging.StreamHandler)
    assert restore_root_logger.level == logging.INFO
    assert logging.getLogger("redis").level == logging.WARNING


def test_file_handler_writes_service_log(restore_root_logger, tmp_path):
    setup_logging("runner-test", log_dir=tmp_path, level=logging.DEBUG)

    logging.getLogger("binrunner.test").info("hello from the test")
    for handler in restore_root_logger.handlers:
        handler.flush()

    file_handlers = [h for h in restore_root_logger.handlers if isinstance(h, logging.handlers.WatchedFileHandler)]
    assert len(file_handlers) == 1
    content = (tmp_path / "runner-test.log").read_text()
    assert "binrunner.test - INFO - hello from the test" in content


def test_repeated_setup_replaces_handlers(restore_root_logger, tmp_path):
    setup_logging("runner-test", log_dir=tmp_path)
    setup_logging("runner-test", log_dir=tmp_path)

    assert len(restore_root_logger.handlers) == 2


def test_quiet_console_still_feeds_file_with_info(restore_root_logger, tmp_path):
    setup_logging("runner-test", log_dir=tmp_path, level=logging.WARNING)

    logging.getLogger("binrunner.test").info("run finished")
    for handler in restore_root_logger.handlers:
        handler.flush()

    assert restore_root_logger.level == logging.INFO
    console = [h for h in restore_root_logger.handlers if not isinstance(h, logging.handlers.WatchedFileHandler)]
    assert [h.level for h in console] == [logging.WARNING]
    assert "run finished" in (tmp_path / "runner-test.log").read_text()


def test_console_stream_is_configurable(restore_root_logger, monkeypatch):
    monkeypatch.delenv("BINRUNNER_LOG_DIR", raising=False)
    stream = io.StringIO()

    setup_logging(level=logging.INFO, stream=stream)
    logging.getLogger("binrunner.test").warning("to the chosen stream")

    assert "binrunner.test - WARNING - to the chosen stream" in stream.getvalue()
