import logging
import os
from pathlib import Path

# Log files land in ``market_maker/logs`` unless ``LOG_DIR`` is set.
DEFAULT_LOG_DIR = Path(__file__).resolve().parents[1] / "logs"
LOG_DIR = Path(os.environ.get("LOG_DIR", DEFAULT_LOG_DIR)).expanduser()
LOG_DIR.mkdir(parents=True, exist_ok=True)


def short_key(public_key: str, length: int = 8) -> str:
    """Return ``public_key`` shortened for log and status output."""
    key = str(public_key or "")
    return f"{key[:length]}..." if len(key) > length else key


def setup_logger(name: str, log_file: Path | str, to_console: bool = True) -> logging.Logger:
    """Return a logger configured to write to ``log_file`` within ``LOG_DIR`` and optionally stdout.

    The directory ``LOG_DIR`` is created automatically when the logger is initialized.
    """

    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)

    fmt = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")

    file_handler_exists = any(
        isinstance(h, logging.FileHandler)
        and Path(getattr(h, "baseFilename", "")) == log_file
        for h in logger.handlers
    )
    if not file_handler_exists:
        fh = logging.FileHandler(log_file)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    if to_console and not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in logger.handlers
    ):
        ch = logging.StreamHandler()
        ch.setFormatter(fmt)
        logger.addHandler(ch)

    return logger
