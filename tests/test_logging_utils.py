import logging

import pytest

from rt_patcher.logging_utils import LOG_FILENAME, configure_logging


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
            root.removeHandler(handler)
    root.setLevel(level)
    for attr in ("_rt_patcher_configured", "_rt_patcher_log_path"):
        if hasattr(root, attr):
            delattr(root, attr)


def test_configure_logging_writes_to_file(root_logger, tmp_path):
    path = tmp_path / "logs" / LOG_FILENAME
    assert configure_logging(path) == str(path)

    logging.getLogger("rt_patcher.test").info("hello from the test")
    for handler in root_logger.handlers:
        handler.flush()

    assert "INFO rt_patcher.test: hello from the test" in path.read_text()


def test_configure_logging_is_idempotent(root_logger, tmp_path):
    first = configure_logging(tmp_path / "a.log")
    count = len(root_logger.handlers)
    assert configure_logging(tmp_path / "b.log") == first
    assert len(root_logger.handlers) == count


def test_configure_logging_falls_back_to_cwd(root_logger, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")

    chosen = configure_logging(blocker / "x.log")

    assert chosen == str(tmp_path / LOG_FILENAME)
