import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


def default_logs_dir() -> Path:
    return Path.home() / ".local" / "state" / "wakesearch" / "logs"


def setup_logging(logs_dir: Optional[Path] = None, level: str = "INFO", console: bool = True) -> None:
    """
    Configure root logging with a rotating file and, optionally, the console.

    Args:
        logs_dir: Directory for log files (created if missing)
        level: Level name such as "DEBUG" or "INFO"
        console: Also log to stdout (off for windowed builds without a console)
    """
    logs_dir = logs_dir or default_logs_dir()
    logs_dir.mkdir(parents=True, exist_ok=True)

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    formatter = logging.Formatter('[%(asctime)s] [%(levelname)s] %(name)s: %(message)s')

    # 10MB max, keep 5 files
    file_handler = RotatingFileHandler(
        logs_dir / "wakesearch.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(numeric_level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    # Third-party chatter stays at WARNING unless we are debugging.
    if numeric_level > logging.DEBUG:
        for name in ("urllib3", "websocket", "dashscope"):
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.info("Logging initialized: level=%s", logging.getLevelName(numeric_level))
