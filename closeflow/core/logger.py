"""Logging setup for the closeflow service.

Module loggers are created with ``logging.getLogger(__name__)`` and inherit
the handlers installed on the ``closeflow`` logger here.
"""

import logging
import logging.handlers
import os
from typing import Optional

ROOT_LOGGER = "closeflow"
LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Third-party loggers that log every outbound call at INFO
CHATTY_LOGGERS = ("httpx", "httpcore")


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(
            f"Invalid log level: {level}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )
    return resolved


def setup_logger(
    name: str = ROOT_LOGGER,
    log_dir: str = "./logs",
    level: str = "INFO",
    file_logging: bool = True,
    console_logging: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
    log_format: Optional[str] = None,
) -> logging.Logger:
    """Install console and rotating file handlers on ``name``.

    Calling it again for the same logger only updates the level, so building
    several apps in one process does not duplicate output.

    Args:
        name: Logger name; the file is written to ``<log_dir>/<name>.log``
        log_dir: Directory for log files, created on demand
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL (case-insensitive)
        file_logging: Write to a rotating file
        console_logging: Write to stderr
        max_bytes: File size that triggers rotation
        backup_count: Rotated files to keep
        log_format: Overrides the default line format

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(log_format or LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = []
    if file_logging:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                os.path.join(log_dir, f"{name}.log"),
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
        )
    if console_logging:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def configure_logging(settings) -> logging.Logger:
    """Configure the service logger from ``Settings``."""
    logger = setup_logger(
        ROOT_LOGGER,
        log_dir=settings.log_dir,
        level=settings.log_level,
        file_logging=settings.log_to_file,
    )
    if logger.level > logging.DEBUG:
        for chatty in CHATTY_LOGGERS:
            logging.getLogger(chatty).setLevel(logging.WARNING)
    return logger
