"""
Logging setup and helpers for xaiv.

All package loggers live under the ``xaiv`` namespace; ``setup_logging``
configures that namespace once (typically from the CLI callback).
"""

import logging
import logging.handlers
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional
import sys
import time

PACKAGE_LOGGER = "xaiv"
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
THIRD_PARTY_LOGGERS = ("optuna", "lightgbm", "matplotlib", "mlflow")


def verbosity_level(verbose: bool = False, debug: bool = False) -> str:
    """Map CLI verbosity flags to a level name."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    return "WARNING"


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure the ``xaiv`` logger.

    Console output goes to stdout; ``log_file`` adds a rotating file handler.
    Optuna, LightGBM, matplotlib and MLflow stay at WARNING unless the
    level is DEBUG.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_file: Optional log file path
        log_format: Custom format string
        max_bytes: Size at which the log file rotates
        backup_count: Rotated files to keep

    Returns:
        The package logger
    """
    level = getattr(logging, log_level.upper())
    formatter = logging.Formatter(log_format or DEFAULT_FORMAT)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count
        ))

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    third_party_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger named ``xaiv.<name>``."""
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


@contextmanager
def log_duration(logger: logging.Logger, task: str) -> Iterator[None]:
    """Log how long the enclosed block took, at INFO."""
    start = time.perf_counter()
    try:
        yield
    finally:
        logger.info(f"{task} finished in {time.perf_counter() - start:.1f}s")


class LoggingMixin:
    """
    Mixin class to add logging capabilities to any class.
    """

    @property
    def logger(self) -> logging.Logger:
        return get_logger(self.__class__.__name__)

    def log_info(self, msg: str, *args, **kwargs) -> None:
        self.logger.info(msg, *args, **kwargs)

    def log_warning(self, msg: str, *args, **kwargs) -> None:
        self.logger.warning(msg, *args, **kwargs)

    def log_error(self, msg: str, *args, **kwargs) -> None:
        self.logger.error(msg, *args, **kwargs)

    def log_debug(self, msg: str, *args, **kwargs) -> None:
        self.logger.debug(msg, *args, **kwargs)
