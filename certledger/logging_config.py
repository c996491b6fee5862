"""Application-wide logging configuration utilities."""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_LOG_PATH: Optional[Path] = None


def configure_logging(
    level: int = logging.INFO,
    log_path: Optional[Path] = None,
    *,
    console: bool = True,
) -> Optional[Path]:
    """Configure the root logger for the server and command line tools.

    Parameters
    ----------
    level:
        The minimum logging level for the root logger.
    log_path:
        Optional file receiving a copy of every record.  Parent directories are
        created on demand.
    console:
        Attach a ``stderr`` handler when no stream handler is present yet.

    Returns
    -------
    pathlib.Path or None
        The path of the log file, if one was configured.
    """

    global _LOG_PATH

    root_logger = logging.getLogger()
    if not root_logger.handlers:
        root_logger.setLevel(level)
    else:
        root_logger.setLevel(min(root_logger.level, level))
    formatter = logging.Formatter(LOG_FORMAT)

    if console and not any(type(handler) is logging.StreamHandler for handler in root_logger.handlers):
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        root_logger.addHandler(stream_handler)

    if log_path is not None:
        log_path = Path(log_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        already_configured = any(
            isinstance(handler, logging.FileHandler)
            and getattr(handler, "baseFilename", None) == str(log_path.resolve())
            for handler in root_logger.handlers
        )
        if not already_configured:
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        _LOG_PATH = log_path
        root_logger.debug("Logging configured. Writing to %s", log_path)
    return _LOG_PATH


def get_log_path() -> Optional[Path]:
    """Return the configured log file, if any."""

    return _LOG_PATH
