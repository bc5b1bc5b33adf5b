"""
Logging setup for the gridraffle application.

Library modules only call ``logging.getLogger(__name__)``; the entry point
configures handlers once through :func:`setup_logging`.

Log levels:
    DEBUG: Gesture transitions, per-tick draw details
    INFO: Draw start/finish, history undo/redo/restore, import/export
    WARNING: Rejected draws, failed imports, unreadable images
    ERROR: Unexpected failures in the front-end loop
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union


def resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    if isinstance(value, int):
        return value
    return logging.INFO


def setup_logging(
    name: str,
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None,
    console_output: bool = True
) -> logging.Logger:
    """
    Configure and return a logger instance.

    Args:
        name: Logger name (the top-level package name configures every module)
        level: Logging level, as an int or a level name such as "DEBUG"
        log_file: Optional path to append logs to
        console_output: Whether to output to console (default: True)

    Returns:
        Configured logger instance
    """
    level = resolve_level(level)
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
