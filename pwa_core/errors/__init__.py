# =============================================================================
# pwa_core/errors/__init__.py
# Centralized Error Handling for the offline core
# =============================================================================

from .exceptions import (
    OfflineCoreError,
    ConfigurationError,
    NetworkError,
    BodyAlreadyUsedError,
    CacheError,
    LocalStoreError,
    SyncSubmissionError,
    WorkerStateError,
)

from .handlers import (
    describe_error,
    handle_error,
    safe_execute,
    ErrorContext,
    error_boundary,
)

__all__ = [
    # Exceptions
    "OfflineCoreError",
    "ConfigurationError",
    "NetworkError",
    "BodyAlreadyUsedError",
    "CacheError",
    "LocalStoreError",
    "SyncSubmissionError",
    "WorkerStateError",
    # Handlers
    "describe_error",
    "handle_error",
    "safe_execute",
    "ErrorContext",
    "error_boundary",
]
