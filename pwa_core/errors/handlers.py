# =============================================================================
# pwa_core/errors/handlers.py
# Error Handling Utilities for the offline core
# =============================================================================

from __future__ import annotations
import functools
import traceback
from typing import Any, Callable, Dict, Optional, TypeVar

from pwa_core.logging import get_logger
from .exceptions import OfflineCoreError

logger = get_logger(__name__)

T = TypeVar("T")


def describe_error(error: BaseException) -> Dict[str, Any]:
    """to_dict() for core errors, an UNKNOWN-coded summary for anything else"""
    if isinstance(error, OfflineCoreError):
        return error.to_dict()
    return {
        "error_type": type(error).__name__,
        "code": "UNKNOWN",
        "message": str(error),
        "details": {},
        "recoverable": True,
    }


def handle_error(
    error: Exception,
    log_error: bool = True,
    message: Optional[str] = None,
) -> dict:
    """
    Log an error once, with its code and details.

    Args:
        error: The exception to handle
        log_error: Whether to log it
        message: Replaces the error's own message in the log and result

    Returns:
        describe_error() of the exception
    """
    info = describe_error(error)
    if message:
        info["message"] = message
    if not isinstance(error, OfflineCoreError):
        info["details"]["traceback"] = "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        )

    if log_error:
        logger.error(
            f"[{info['code']}] {info['message']}",
            extra={"details": info["details"]},
            exc_info=error,
        )
    return info


def safe_execute(
    func: Callable[..., T],
    *args,
    default: Optional[T] = None,
    error_message: Optional[str] = None,
    reraise: bool = False,
    **kwargs,
) -> Optional[T]:
    """
    Call func, returning `default` if it raises.

    Usage:
        pending = safe_execute(store.get_pending_count, default=None)
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        handle_error(e, message=error_message)
        if reraise:
            raise
        return default


class ErrorContext:
    """
    Logs an operation and swallows recoverable errors raised inside it.

    Core errors flagged recoverable=False always propagate.

    Usage:
        with ErrorContext("Refreshing cached page") as ctx:
            bucket.put(url, response)
        if ctx.error:
            ...
    """

    def __init__(self, operation: str, recoverable: bool = True):
        self.operation = operation
        self.recoverable = recoverable
        self.error: Optional[Exception] = None

    def __enter__(self) -> ErrorContext:
        logger.debug(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_val is None:
            logger.debug(f"Completed: {self.operation}")
            return False
        if not isinstance(exc_val, Exception):
            return False

        self.error = exc_val
        handle_error(exc_val, message=f"Error during: {self.operation}")
        if isinstance(exc_val, OfflineCoreError) and not exc_val.recoverable:
            return False
        return self.recoverable


def error_boundary(default_return: Any = None, log: bool = True):
    """
    Decorator: any exception from the wrapped call becomes `default_return`.

    Usage:
        @error_boundary(default_return=None)
        def _write_to_cache(self, request, copy):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                handle_error(e, log_error=log, message=f"Error in {func.__name__}: {e}")
                return default_return

        return wrapper

    return decorator
