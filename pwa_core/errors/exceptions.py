# =============================================================================
# pwa_core/errors/exceptions.py
# Exception Hierarchy for the offline core
# =============================================================================

from typing import Any, Dict, Optional


class OfflineCoreError(Exception):
    """
    Base exception for the offline core.

    Subclasses set `default_code` and `default_recoverable`; keyword context
    passed to the constructor (url=..., bucket=...) lands in `details`,
    skipping None values.

    Attributes:
        message: Human-readable description
        code: Machine-readable code (e.g. "SYNC_001")
        details: Context for logs and serialization
        recoverable: Whether a later attempt may succeed
    """

    default_code = "PWA_000"
    default_recoverable = True

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
        **context: Any,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = dict(details or {})
        self.details.update({key: value for key, value in context.items() if value is not None})
        self.recoverable = self.default_recoverable if recoverable is None else recoverable

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.code}] {self.message}"
        return f"[{self.code}] {self.message} | Details: {self.details}"

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form used by logs and SyncResult.error"""
        return {
            "error_type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# CONFIGURATION
# =============================================================================

class ConfigurationError(OfflineCoreError):
    """Invalid config value or unreadable config file"""

    default_code = "CONFIG_001"
    default_recoverable = False

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(message, config_key=config_key, expected_type=expected_type, **kwargs)


# =============================================================================
# NETWORK / HTTP
# =============================================================================

class NetworkError(OfflineCoreError):
    """Transport failure: no HTTP response was received"""

    default_code = "NET_001"

    def __init__(self, message: str, url: Optional[str] = None, method: Optional[str] = None, **kwargs: Any):
        super().__init__(message, url=url, method=method, **kwargs)


class BodyAlreadyUsedError(OfflineCoreError):
    """Response body read or cloned after it was consumed"""

    default_code = "HTTP_001"
    default_recoverable = False

    def __init__(self, message: str, url: Optional[str] = None, **kwargs: Any):
        super().__init__(message, url=url or None, **kwargs)


# =============================================================================
# CACHE
# =============================================================================

class CacheError(OfflineCoreError):
    """Core asset population, lookup or eviction failed"""

    default_code = "CACHE_001"

    def __init__(self, message: str, bucket: Optional[str] = None, url: Optional[str] = None, **kwargs: Any):
        super().__init__(message, bucket=bucket, url=url, **kwargs)


# =============================================================================
# LOCAL STORE / SYNC
# =============================================================================

class LocalStoreError(OfflineCoreError):
    """Local form store cannot be opened, read or written"""

    default_code = "STORE_001"

    def __init__(
        self,
        message: str,
        db_name: Optional[str] = None,
        record_id: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, db_name=db_name, record_id=record_id, **kwargs)


class SyncSubmissionError(OfflineCoreError):
    """Endpoint answered 2xx but the reply carries no usable server id"""

    default_code = "SYNC_001"

    def __init__(
        self,
        message: str,
        record_id: Optional[int] = None,
        status: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, record_id=record_id, status=status, **kwargs)


# =============================================================================
# WORKER LIFECYCLE
# =============================================================================

class WorkerStateError(OfflineCoreError):
    """Lifecycle transition requested from the wrong state"""

    default_code = "WORKER_001"
    default_recoverable = False

    def __init__(self, message: str, state: Optional[str] = None, transition: Optional[str] = None, **kwargs: Any):
        super().__init__(message, state=state, transition=transition, **kwargs)
