"""Root logging for the ``python -m market_maker`` entry point."""

import logging
import os
from collections import deque
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable

from .logger import LOG_DIR

QUIET_LOGGERS = ("asyncio", "aiohttp", "httpx", "solana")
ROOT_FORMAT = "%(asctime)s:%(levelname)s:%(name)s - %(message)s"


class LastLineBuffer(logging.Handler):
    """Remember the most recent messages for the ``run`` status footer."""

    def __init__(self, level=logging.INFO, size: int = 1):
        super().__init__(level)
        self.lines = deque(maxlen=size)

    @property
    def last(self) -> str:
        return self.lines[-1] if self.lines else ""

    def emit(self, record):
        try:
            self.lines.append(f"{record.levelname.lower()}: {record.getMessage()}")
        except Exception:
            self.handleError(record)


def setup_logging(
    log_path: str | os.PathLike = LOG_DIR / "bot.log",
    level=logging.INFO,
    quiet: Iterable[str] = QUIET_LOGGERS,
    max_bytes: int = 5_000_000,
    backups: int = 3,
) -> LastLineBuffer:
    """Send every record to a rotating ``log_path`` and return the footer buffer.

    Calling it again replaces the handlers a previous call installed and
    leaves any others on the root logger alone.
    """
    log_path = Path(log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, (RotatingFileHandler, LastLineBuffer)):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(logging.DEBUG)

    rotating = RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backups)
    rotating.setLevel(level)
    rotating.setFormatter(logging.Formatter(ROOT_FORMAT))
    root.addHandler(rotating)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    buffer = LastLineBuffer(level=level)
    root.addHandler(buffer)
    return buffer


def last_log_line() -> str:
    """Return the latest message seen by the root ``LastLineBuffer``."""
    for handler in logging.getLogger().handlers:
        if isinstance(handler, LastLineBuffer):
            return handler.last
    return ""
