"""Utility functions for logging."""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

# Logging defaults
DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMATTER = "\n%(asctime)s: %(levelname)s: %(filename)s:%(lineno)s::%(module)s::%(funcName)s:\n%(message)s"
DEFAULT_LOG_DATETIME = "%y-%m-%d %H:%M:%S"
DEFAULT_LOG_MAXBYTES = int(2e6)  # 2MB


def setup_logging(
    log_filename: str | None = None,
    log_level: int | None = None,
    log_stdout: bool = True,
    log_format_string: str | None = None,
    max_bytes: int | None = None,
    keep_previous_handlers: bool = False,
    logger: logging.Logger | None = None,
) -> None:
    r"""Set up logging for a test run.

    Logs go to standard output, to a rotating log file, or both. Relative file names
    without a directory are placed under `.logging/` in the working directory.

    Arguments
    ---------
    log_filename: str, optional
        Path and name of the log file. No file is written if None.
    log_level: int, optional
        Log level to track. Defaults to DEFAULT_LOG_LEVEL.
    log_stdout: bool, optional
        Whether to log to standard output. Defaults to True.
    log_format_string: str, optional
        Log format string. Defaults to DEFAULT_LOG_FORMATTER.
    max_bytes: int, optional
        Maximum size of the log file in bytes. Defaults to DEFAULT_LOG_MAXBYTES.
    keep_previous_handlers: bool, optional
        Whether to keep previous handlers. Defaults to False.
    logger: logging.Logger, optional
        Logger to configure. Defaults to the root logger.
    """
    # pylint: disable=too-many-arguments
    if logger is None:
        logger = logging.getLogger()
    if log_level is None:
        log_level = DEFAULT_LOG_LEVEL
    formatter = logging.Formatter(log_format_string or DEFAULT_LOG_FORMATTER, DEFAULT_LOG_DATETIME)

    if not keep_previous_handlers:
        remove_handlers(logger)
    if log_stdout:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setLevel(log_level)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)
    if log_filename is not None:
        log_dir, log_name = prepare_log_path(log_filename)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, log_name), mode="w", maxBytes=max_bytes or DEFAULT_LOG_MAXBYTES
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # The logger itself must pass everything its most verbose handler wants
    if logger.handlers:
        logger.setLevel(min(handler.level for handler in logger.handlers))
    else:
        logger.setLevel(log_level)


def close_logging(delete_logs: bool = False, logger: logging.Logger | None = None) -> None:
    """Close and remove all handlers.

    Arguments
    ---------
    delete_logs: bool, optional
        Whether to delete the files written by file handlers. Defaults to False.
    logger: logging.Logger, optional
        Logger to close. Defaults to the root logger.
    """
    if logger is None:
        logger = logging.getLogger()
    for handler in logger.handlers:
        handler.close()
        if delete_logs and isinstance(handler, logging.FileHandler) and os.path.exists(handler.baseFilename):
            os.remove(handler.baseFilename)
    remove_handlers(logger)


def prepare_log_path(log_filename: str) -> tuple[str, str]:
    """Split filename into path and name. Postpend ".log" extension if necessary. Make dir if necessary.

    Arguments
    ---------
    log_filename: str
        Path and name of the log file.

    Returns
    -------
    tuple[str, str]
        The log directory and the log file name.
    """
    log_dir, log_name = os.path.split(log_filename)
    if not log_name.endswith(".log"):
        log_name += ".log"
    if log_dir == "":
        log_dir = os.path.join(os.getcwd(), ".logging")
    os.makedirs(log_dir, exist_ok=True)
    return log_dir, log_name


def remove_handlers(logger: logging.Logger) -> None:
    """Remove all handlers attached directly to the logger.

    Arguments
    ---------
    logger: logging.Logger
        Logger from which to remove handlers.
    """
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
