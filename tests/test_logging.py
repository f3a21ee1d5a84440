import logging

import pytest

from market_maker.utils.logger import setup_logger, short_key
from market_maker.utils.logging_config import LastLineBuffer, last_log_line, setup_logging


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_logging_keeps_last_line(tmp_path, restore_root):
    buffer = setup_logging(tmp_path / "bot.log")
    assert isinstance(buffer, LastLineBuffer)
    logging.getLogger("market_maker.test").info("cycle %d done", 3)
    assert last_log_line() == "info: cycle 3 done"
    assert (tmp_path / "bot.log").exists()


def test_setup_logging_replaces_its_own_handlers(tmp_path, restore_root):
    other = logging.NullHandler()
    restore_root.addHandler(other)
    setup_logging(tmp_path / "first.log")
    buffer = setup_logging(tmp_path / "second.log", quiet=("market_maker.noisy",))

    buffers = [h for h in restore_root.handlers if isinstance(h, LastLineBuffer)]
    assert buffers == [buffer]
    assert other in restore_root.handlers
    assert logging.getLogger("market_maker.noisy").level == logging.WARNING


def test_buffer_keeps_most_recent_lines():
    buffer = LastLineBuffer(size=2)
    for n in range(3):
        buffer.handle(logging.LogRecord("x", logging.WARNING, __file__, 1, "line %d", (n,), None))
    assert list(buffer.lines) == ["warning: line 1", "warning: line 2"]
    assert buffer.last == "warning: line 2"


def test_last_log_line_without_buffer(restore_root):
    restore_root.handlers[:] = []
    assert last_log_line() == ""


def test_setup_logger_writes_file(tmp_path):
    log_file = tmp_path / "wallet.log"
    logger = setup_logger("market_maker.test_file", log_file, to_console=False)
    logger.info("hello")
    for handler in logger.handlers:
        handler.flush()
    assert "hello" in log_file.read_text()


def test_short_key():
    assert short_key("ABCDEFGHIJKL") == "ABCDEFGH..."
    assert short_key("") == ""
