"""Logging helpers for wgremote."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "wgremote"


def _build_formatter() -> logging.Formatter:
    return logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def setup_logging(
    log_dir: str | Path,
    log_name: str = "wgremote",
    *,
    verbose: bool = False,
) -> logging.Logger:
    """Initialize console and file logging.

    Parameters
    ----------
    log_dir:
        Directory where log files will be stored.
    log_name:
        Base name of the log file without extension.
    verbose:
        Emit DEBUG records on the console as well; the file always gets them.

    Returns
    -------
    logging.Logger
        Configured ``wgremote`` logger instance.
    """

    log_directory = Path(log_dir)
    log_directory.mkdir(parents=True, exist_ok=True)
    log_file = log_directory / f"{log_name}.log"

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    # Avoid attaching duplicate handlers in case of repeated initialization.
    existing_handlers = {type(handler) for handler in logger.handlers}

    formatter = _build_formatter()

    if logging.StreamHandler not in existing_handlers:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if logging.FileHandler not in existing_handlers:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.debug("Logging initialized: %s", log_file)
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a namespaced logger under the ``wgremote`` hierarchy."""

    base = logging.getLogger(ROOT_LOGGER_NAME)
    if not name:
        return base
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return base.getChild(name)
