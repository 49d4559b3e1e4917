"""
Centralized logging configuration for Agora.

Every module asks for a subsystem logger at import time
(``get_logger("market")`` -> ``agora.market``). The first request installs
a default colored console handler on the ``agora`` root so library use
works without any setup; entry points such as the CLI call
``setup_logging`` afterwards to pick the level and an optional log file.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import colorlog

ROOT_LOGGER = "agora"
LOG_FILE = "agora.log"

CONSOLE_FORMAT = "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s"
FILE_FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


class AgoraLogger:
    """Owns the handlers of the ``agora`` logger tree"""

    _configured = False
    _log_file: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: int = logging.INFO,
        log_dir: Optional[str] = None,
        log_to_file: bool = False,
    ) -> logging.Logger:
        """
        (Re)configure the ``agora`` logger tree.

        Replaces any handlers installed earlier, so calling this after
        modules have already created their loggers changes their output.

        Args:
            level: Logging level for the tree and its handlers
            log_dir: Directory for ``agora.log`` (defaults to ./logs)
            log_to_file: Also write plain-text records to the log file
        """
        root = logging.getLogger(ROOT_LOGGER)
        root.setLevel(level)
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

        console = colorlog.StreamHandler(sys.stdout)
        console.setLevel(level)
        console.setFormatter(
            colorlog.ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT, log_colors=LOG_COLORS)
        )
        root.addHandler(console)

        cls._log_file = None
        if log_to_file:
            directory = Path(log_dir) if log_dir else Path("logs")
            directory.mkdir(parents=True, exist_ok=True)
            cls._log_file = directory / LOG_FILE

            file_handler = logging.FileHandler(cls._log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
            root.addHandler(file_handler)

        cls._configured = True
        return root

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Logger for a subsystem, e.g. 'market', 'settlement', 'storage.journal'.
        """
        if not cls._configured:
            cls.setup()
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")

    @classmethod
    def log_file(cls) -> Optional[Path]:
        return cls._log_file


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific subsystem"""
    return AgoraLogger.get_logger(name)


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[str] = None,
    log_to_file: bool = False,
) -> logging.Logger:
    """Setup logging configuration"""
    return AgoraLogger.setup(level=level, log_dir=log_dir, log_to_file=log_to_file)
