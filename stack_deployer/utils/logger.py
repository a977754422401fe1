"""
Centralized logging configuration with colored output
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import colorlog


LOGS_DIR = Path("logs")
PACKAGE_LOGGER = "stack_deployer"

LOG_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'red,bg_white',
}


def _console_handler(level: int) -> logging.Handler:
    handler = colorlog.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(colorlog.ColoredFormatter(
        "%(log_color)s%(levelname)-8s%(reset)s %(blue)s[%(name)s]%(reset)s %(message)s",
        reset=True,
        log_colors=LOG_COLORS
    ))
    return handler


def _file_handler(log_file: str) -> logging.Handler:
    # logs/ is only created once file logging is actually requested
    LOGS_DIR.mkdir(exist_ok=True)
    handler = logging.FileHandler(LOGS_DIR / log_file, encoding='utf-8')
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    return handler


def setup_logger(
    name: str,
    level: str = "INFO",
    log_file: Optional[str] = None,
    console: bool = True
) -> logging.Logger:
    """
    Set up a logger with colored console output and optional file logging.

    Args:
        name: Logger name
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file name (saved in logs/ directory)
        console: Whether to output to console

    Returns:
        Configured logger instance
    """
    numeric = getattr(logging, level.upper())
    logger = logging.getLogger(name)
    logger.setLevel(numeric)

    if logger.handlers:
        return logger

    if console:
        logger.addHandler(_console_handler(numeric))
    if log_file:
        logger.addHandler(_file_handler(log_file))

    return logger


def get_logger(name: str, level: str = "INFO", log_to_file: bool = False) -> logging.Logger:
    """
    Get or create a logger with default configuration.

    Loggers under the stack_deployer package share the handlers of the package
    logger, which is configured on first use. Any other name gets its own handlers.

    Args:
        name: Logger name (typically __name__ of the module)
        level: Logging level
        log_to_file: Also write to a daily log file under logs/

    Returns:
        Configured logger instance
    """
    log_file = None
    if log_to_file:
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = f"deploy_{today}.log"

    if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
        if not logging.getLogger(PACKAGE_LOGGER).handlers:
            setup_logger(PACKAGE_LOGGER, level=level, log_file=log_file, console=True)
        return logging.getLogger(name)

    return setup_logger(
        name=name,
        level=level,
        log_file=log_file,
        console=True
    )


def set_level(level: str) -> None:
    """
    Apply a new level to the stack_deployer package logger and its console handler.
    Used by the CLI once settings are loaded.
    """
    numeric = getattr(logging, level.upper())
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(numeric)
    for handler in logger.handlers:
        if not isinstance(handler, logging.FileHandler):
            handler.setLevel(numeric)
