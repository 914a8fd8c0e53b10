# =============================================================================
# pwa_core/logging/config.py
# Logging Configuration for the offline core
# =============================================================================

import logging
import sys
import time
from datetime import date
from pathlib import Path
from typing import List, Optional


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_DIR = Path("logs")

# Chatty third-party loggers capped at WARNING
QUIET_LOGGERS = ("urllib3", "requests")


def _build_handlers(log_to_file: bool, log_filename: Optional[str]) -> List[logging.Handler]:
    # stdout carries command output (JSON), so records go to stderr
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_to_file:
        LOG_DIR.mkdir(exist_ok=True)
        name = log_filename or f"worker_{date.today().isoformat()}.log"
        handlers.append(logging.FileHandler(LOG_DIR / name, encoding="utf-8"))
    return handlers


def setup_logging(
    level: int = logging.INFO,
    log_to_file: bool = False,
    log_filename: Optional[str] = None,
) -> None:
    """
    Configure the root logger for the worker process.

    Args:
        level: Root level (default: INFO)
        log_to_file: Also write to LOG_DIR
        log_filename: File name inside LOG_DIR (default: worker_YYYY-MM-DD.log)
    """
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=_build_handlers(log_to_file, log_filename),
        force=True,  # Replace handlers installed by an earlier call
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("pwa_core").debug(f"Logging configured at {logging.getLevelName(level)}")


def get_logger(name: str) -> logging.Logger:
    """Module logger; pass __name__."""
    return logging.getLogger(name)


class LogContext:
    """
    Logs the start, duration and outcome of an operation.

    Usage:
        with LogContext(logger, "Installing cache 'formulario-cache-v0051'"):
            bucket.add_all(urls, fetcher)
        # Installing cache 'formulario-cache-v0051'... started
        # Installing cache 'formulario-cache-v0051'... completed (0.12s)

    Exceptions are logged with their traceback and re-raised.
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self._started: Optional[float] = None

    @property
    def elapsed(self) -> float:
        return time.perf_counter() - self._started if self._started is not None else 0.0

    def __enter__(self) -> "LogContext":
        self._started = time.perf_counter()
        self.logger.info(f"{self.operation}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            self.logger.info(f"{self.operation}... completed ({self.elapsed:.2f}s)")
        else:
            self.logger.error(
                f"{self.operation}... failed after {self.elapsed:.2f}s: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb),
            )
        return False
