"""
Centralized logging configuration for PokeDM

Usage:
    from pokedm.utils.logger import get_logger, setup_logging

    # Once, at application start
    setup_logging(level="INFO")

    # In each module
    logger = get_logger(__name__)
    logger.info("Turn started")
"""

import logging
import sys
from pathlib import Path
from typing import Literal, Optional

# Terminal colors per level
COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
    "RESET": "\033[0m",
}

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "openai", "sqlalchemy.engine")


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name and logger name"""

    def format(self, record: logging.LogRecord) -> str:
        # Work on a copy so file handlers sharing the record stay uncolored
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in COLORS:
            record.levelname = (
                f"{COLORS[record.levelname]}{record.levelname}{COLORS['RESET']}"
            )
        record.name = f"\033[94m{record.name}{COLORS['RESET']}"
        return super().format(record)


def setup_logging(
    level: LogLevel = "INFO",
    log_file: Optional[str] = None,
    enable_colors: bool = True,
    include_timestamp: bool = True,
) -> None:
    """
    Configure the root logger for the application

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to a log file, created with its parent directory
        enable_colors: Color console output when stdout is a terminal
        include_timestamp: Prefix each line with a timestamp
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    if include_timestamp:
        fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        datefmt: Optional[str] = "%Y-%m-%d %H:%M:%S"
    else:
        fmt = "%(levelname)-8s | %(name)s | %(message)s"
        datefmt = None

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    if enable_colors and sys.stdout.isatty():
        console_handler.setFormatter(ColoredFormatter(fmt, datefmt=datefmt))
    else:
        console_handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers = [console_handler]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(f"Logging initialized at {level} level")
    if log_file:
        root_logger.info(f"Logging to file: {log_file}")


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module (pass __name__)"""
    return logging.getLogger(name)


def set_module_level(module_name: str, level: LogLevel) -> None:
    """
    Set the logging level for a single module

    Args:
        module_name: Dotted module name, e.g. 'pokedm.engine.orchestrator'
        level: Logging level to set
    """
    logging.getLogger(module_name).setLevel(getattr(logging, level.upper()))
