"""Logging configuration for the budget backend.

Logs go to the console and, when ``LOG_DIR`` is configured, to a
date-stamped file as well.
"""

import logging
from datetime import date

from .config import Settings

LOGGER_NAME = "yenbudget"


def setup_logging(config: Settings) -> logging.Logger:
    """Set up application logging with console and optional file handlers.

    Args:
        config: Application settings containing log level and directory.

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(config.LOG_LEVEL.upper())

    # Clear any existing handlers (in case this is called multiple times)
    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter("%(levelname)s - %(name)s - %(message)s"))
    logger.addHandler(console_handler)

    if config.LOG_DIR is not None:
        config.LOG_DIR.mkdir(parents=True, exist_ok=True)
        log_file_path = config.LOG_DIR / f"yenbudget-{date.today().isoformat()}.log"
        file_handler = logging.FileHandler(log_file_path)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    """Get the application logger, or one of its children.

    Args:
        name: Optional child name, e.g. ``"storage"``.

    Returns:
        The ``yenbudget`` logger or ``yenbudget.<name>``.
    """
    if name:
        return logging.getLogger(f"{LOGGER_NAME}.{name}")
    return logging.getLogger(LOGGER_NAME)
