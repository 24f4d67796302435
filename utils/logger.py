# This module contains a custom formatter and logger helpers for the Smriti client.
import logging
from typing import Optional

ROOT_LOGGER_NAME = "smriti"


class CustomFormatter(logging.Formatter):
    """
    A custom formatter for logging messages with different log levels.

    Attributes:
        grey (str): ANSI escape sequence for grey color.
        yellow (str): ANSI escape sequence for yellow color.
        red (str): ANSI escape sequence for red color.
        bold_red (str): ANSI escape sequence for bold red color.
        reset (str): ANSI escape sequence to reset color.
        format (str): The log message format.
        FORMATS (dict): A dictionary mapping log levels to their respective log message formats.

    Usage:
        logger = get_logger(__name__)
        logger.info("Session restored")
    """
    grey = "\x1b[37;20m"
    yellow = "\x1b[33;20m"
    red = "\x1b[31;20m"
    bold_red = "\x1b[31;1m"
    dark_grey = "\x1b[30;1m"
    reset = "\x1b[0m"
    format = '[%(levelname)s] %(asctime)s - %(name)s - %(message)s'

    FORMATS = {
        logging.DEBUG: dark_grey + format + reset,
        logging.INFO: grey + format + reset,
        logging.WARNING: yellow + format + reset,
        logging.ERROR: red + format + reset,
        logging.CRITICAL: bold_red + format + reset
    }

    def format(self, record):
        """
        Formats the log record based on its log level.

        Args:
            record (logging.LogRecord): The log record to be formatted.

        Returns:
            str: The formatted log message.
        """
        log_fmt = self.FORMATS.get(record.levelno)
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if not any(getattr(h, "_smriti_console", False) for h in root.handlers):
        ch = logging.StreamHandler()
        ch.setLevel(logging.DEBUG)
        ch.setFormatter(CustomFormatter())
        ch._smriti_console = True
        root.addHandler(ch)
        root.setLevel(logging.INFO)
    return root


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger in the application's logger hierarchy.

    Args:
        name: Module name, usually __name__.

    Returns:
        logging.Logger: A child of the "smriti" logger sharing its console handler.
    """
    root = _configure_root()
    if not name or name == ROOT_LOGGER_NAME:
        return root
    return root.getChild(name)


def set_log_level(level: int) -> None:
    """Set the level on the application's root logger."""
    _configure_root().setLevel(level)


def setup_file_logging(log_file: str, level: int = logging.INFO) -> logging.Handler:
    """
    Add a plain-text file handler to the application logger.

    Args:
        log_file: Path of the log file to append to.
        level: Logging level for both the logger and the file handler.

    Returns:
        logging.Handler: The handler that was attached.
    """
    root = _configure_root()
    root.setLevel(level)

    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setLevel(level)
    fh.setFormatter(logging.Formatter('[%(levelname)s] %(asctime)s - %(name)s - %(message)s'))
    root.addHandler(fh)
    return fh


def mask_token(token: Optional[str], visible: int = 6) -> str:
    """Render a credential for logs without exposing it."""
    if not token:
        return "<none>"
    if len(token) <= visible:
        return "*" * len(token)
    return token[:visible] + "..."
