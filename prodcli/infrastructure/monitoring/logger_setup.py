"""Logging configuration for the prodcli application.

``configure_logging`` reads the ``logging.*`` settings and installs handlers on
the root logger. Console logs go to stderr; stdout carries command output.

Settings:
    logging.level: Root level name (default WARNING, DEBUG with ``--verbose``).
    logging.file: Optional log file, written alongside stderr.
    logging.format: Formatter string.
    logging.library_level: Floor applied to chatty third-party loggers.
"""

import logging
import sys
from typing import Iterable, List, Optional

from prodcli.infrastructure.config.settings import get_config

DEFAULT_LOG_LEVEL = logging.WARNING
DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_LIBRARY_LEVEL = logging.WARNING

# httpx and httpcore log every request and connection at INFO/DEBUG
NOISY_LOGGERS = ("httpx", "httpcore")


def level_from_name(name: Optional[str], default: int = DEFAULT_LOG_LEVEL) -> int:
    """'debug' -> logging.DEBUG; unknown or empty names give ``default``."""
    if not name:
        return default
    level = logging.getLevelName(str(name).strip().upper())
    return level if isinstance(level, int) else default


def setup_logging(
    log_level: int = DEFAULT_LOG_LEVEL,
    log_format: str = DEFAULT_LOG_FORMAT,
    log_file: Optional[str] = None,
    library_level: int = DEFAULT_LIBRARY_LEVEL,
    noisy_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """Replaces the root logger's handlers with a stderr handler and an optional file.

    Args:
        log_level: Minimum level for the application's own records.
        log_format: Formatter string shared by every handler.
        log_file: Optional path to a file for logging output.
        library_level: Level floor for ``noisy_loggers``; they never log
            below ``log_level`` either.
        noisy_loggers: Third-party logger names to quiet down.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(log_format)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    file_error: Optional[OSError] = None
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file, encoding='utf-8'))
        except OSError as e:
            file_error = e

    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    if file_error is not None:
        logging.error(f"Failed to set up file logging to {log_file}: {file_error}")

    for name in noisy_loggers:
        logging.getLogger(name).setLevel(max(log_level, library_level))
    logging.debug(f"Logging configured. Level={logging.getLevelName(log_level)} file={log_file}")


def configure_logging(verbose: bool = False) -> None:
    """Configures logging from the loaded settings; ``verbose`` forces DEBUG."""
    log_level = logging.DEBUG if verbose else level_from_name(get_config("logging.level"))
    setup_logging(
        log_level=log_level,
        log_format=str(get_config("logging.format", DEFAULT_LOG_FORMAT)),
        log_file=get_config("logging.file"),
        library_level=level_from_name(get_config("logging.library_level"), DEFAULT_LIBRARY_LEVEL),
    )
