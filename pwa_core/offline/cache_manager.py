# =============================================================================
# pwa_core/offline/cache_manager.py
# Versioned Cache Storage and Cache Lifecycle (install / activate)
# =============================================================================
"""
CacheStorage - named, persistent URL -> response buckets on local disk.
CacheLifecycleManager - populates the current bucket on install and evicts
superseded buckets on activate.

Directory Structure:
-------------------
local_data/cache_storage/
├── caches.json                # Registry of bucket names (creation order)
└── <md5(bucket name)>/
    ├── index.json             # URL -> status, headers, body file, stored_at
    └── <md5(url)>.body        # Raw response bodies
"""

from __future__ import annotations
import hashlib
import json
import shutil
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union
import logging

from pwa_core.errors import CacheError, ErrorContext, NetworkError, describe_error
from pwa_core.logging import LogContext
from pwa_core.offline.config import WorkerConfig
from pwa_core.offline.http import Request, Response

logger = logging.getLogger(__name__)

RequestLike = Union[Request, str]


def _cache_key(request: RequestLike) -> str:
    if isinstance(request, Request):
        return request.cache_key
    return Request(url=request).cache_key


def _md5(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


class CacheBucket:
    """One named bucket of cached responses."""

    INDEX_FILE = "index.json"

    def __init__(self, name: str, directory: Path, lock: threading.RLock):
        self.name = name
        self.directory = directory
        self._lock = lock

    def __repr__(self) -> str:
        return f"<CacheBucket {self.name}>"

    # -------------------------------------------------------------------------
    # Index persistence
    # -------------------------------------------------------------------------

    def _load_index(self) -> Dict[str, Dict[str, Any]]:
        index_path = self.directory / self.INDEX_FILE
        if not index_path.exists():
            return {}
        try:
            with open(index_path, "r") as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Error loading index of cache '{self.name}': {e}")
            return {}

    def _save_index(self, index: Dict[str, Dict[str, Any]]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        index_path = self.directory / self.INDEX_FILE
        tmp_path = index_path.with_suffix(".tmp")
        try:
            with open(tmp_path, "w") as f:
                json.dump(index, f, indent=2)
            tmp_path.replace(index_path)
        except IOError as e:
            raise CacheError(f"Error saving cache index: {e}", bucket=self.name) from e

    # -------------------------------------------------------------------------
    # Entries
    # -------------------------------------------------------------------------

    def keys(self) -> List[str]:
        """Cached URLs in insertion order."""
        with self._lock:
            return list(self._load_index().keys())

    def __len__(self) -> int:
        return len(self.keys())

    def __contains__(self, request: RequestLike) -> bool:
        return _cache_key(request) in self._load_index()

    def match(self, request: RequestLike) -> Optional[Response]:
        """Return a fresh Response for a cached URL, or None."""
        key = _cache_key(request)
        with self._lock:
            info = self._load_index().get(key)
            if info is None:
                return None
            body_path = self.directory / info["body_file"]
            try:
                body = body_path.read_bytes()
            except IOError as e:
                logger.warning(f"Cached body missing for {key} in '{self.name}': {e}")
                return None

        return Response(body, status=info["status"], headers=info.get("headers", {}), url=key)

    def put(self, request: RequestLike, response: Response) -> None:
        """
        Store a response, replacing any previous entry for the same URL.

        Consumes the response body; pass a clone if the caller still needs it.
        """
        key = _cache_key(request)
        body = response.read()
        body_file = f"{_md5(key)}.body"

        with self._lock:
            self.directory.mkdir(parents=True, exist_ok=True)
            try:
                (self.directory / body_file).write_bytes(body)
            except IOError as e:
                raise CacheError(f"Error writing cached body: {e}", bucket=self.name, url=key) from e

            index = self._load_index()
            index[key] = {
                "status": response.status,
                "headers": response.headers,
                "body_file": body_file,
                "size_bytes": len(body),
                "stored_at": datetime.now().isoformat(),
            }
            self._save_index(index)

        logger.debug(f"Cached {key} in '{self.name}' ({len(body)} bytes)")

    def delete(self, request: RequestLike) -> bool:
        key = _cache_key(request)
        with self._lock:
            index = self._load_index()
            info = index.pop(key, None)
            if info is None:
                return False
            (self.directory / info["body_file"]).unlink(missing_ok=True)
            self._save_index(index)
        return True

    def add_all(self, urls: Iterable[str], fetcher) -> List[str]:
        """
        Fetch and store every URL, or nothing at all.

        All responses are fetched before any is written. A transport failure
        or a non-2xx status aborts the whole operation with CacheError.

        Returns:
            The cached URLs
        """
        fetched = []
        for url in urls:
            request = Request(url=url)
            try:
                response = fetcher.fetch(request)
            except NetworkError as e:
                raise CacheError(f"Failed to fetch {url}: {e.message}", bucket=self.name, url=url) from e
            if not response.ok:
                raise CacheError(
                    f"Bad status {response.status} for {url}",
                    bucket=self.name,
                    url=url,
                )
            fetched.append((request, response))

        for request, response in fetched:
            self.put(request, response)
        return [request.cache_key for request, _ in fetched]


class CacheStorage:
    """Registry of named buckets persisted under one directory."""

    REGISTRY_FILE = "caches.json"

    def __init__(self, cache_dir: Path):
        """
        Initialize cache storage.

        Args:
            cache_dir: Base directory for all buckets
        """
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _load_registry(self) -> List[str]:
        registry_path = self.cache_dir / self.REGISTRY_FILE
        if not registry_path.exists():
            return []
        try:
            with open(registry_path, "r") as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise CacheError(f"Error loading cache registry: {e}") from e

    def _save_registry(self, names: List[str]) -> None:
        registry_path = self.cache_dir / self.REGISTRY_FILE
        try:
            with open(registry_path, "w") as f:
                json.dump(names, f, indent=2)
        except IOError as e:
            raise CacheError(f"Error saving cache registry: {e}") from e

    def _bucket_dir(self, name: str) -> Path:
        return self.cache_dir / _md5(name)

    def keys(self) -> List[str]:
        """Bucket names in creation order."""
        with self._lock:
            return self._load_registry()

    def has(self, name: str) -> bool:
        return name in self.keys()

    def open(self, name: str) -> CacheBucket:
        """Open a bucket, creating it if needed."""
        with self._lock:
            names = self._load_registry()
            if name not in names:
                names.append(name)
                self._save_registry(names)
                logger.info(f"Created cache '{name}'")
            bucket_dir = self._bucket_dir(name)
            bucket_dir.mkdir(parents=True, exist_ok=True)
        return CacheBucket(name, bucket_dir, self._lock)

    def delete(self, name: str) -> bool:
        """Delete a bucket and every entry in it."""
        with self._lock:
            names = self._load_registry()
            if name not in names:
                return False
            bucket_dir = self._bucket_dir(name)
            if bucket_dir.exists():
                try:
                    shutil.rmtree(bucket_dir)
                except OSError as e:
                    raise CacheError(f"Error deleting cache: {e}", bucket=name) from e
            names.remove(name)
            self._save_registry(names)
        return True

    def match(self, request: RequestLike) -> Optional[Response]:
        """Look a URL up across all buckets, oldest bucket first."""
        for name in self.keys():
            bucket = CacheBucket(name, self._bucket_dir(name), self._lock)
            response = bucket.match(request)
            if response is not None:
                return response
        return None

    def get_cache_stats(self) -> Dict[str, Any]:
        """Per-bucket entry counts and sizes."""
        stats = {"total_buckets": 0, "by_bucket": {}}
        with self._lock:
            for name in self._load_registry():
                bucket = CacheBucket(name, self._bucket_dir(name), self._lock)
                index = bucket._load_index()
                stats["by_bucket"][name] = {
                    "entries": len(index),
                    "size_bytes": sum(info.get("size_bytes", 0) for info in index.values()),
                }
                stats["total_buckets"] += 1
        return stats


@dataclass
class InstallReport:
    """Outcome of populating the current bucket."""
    bucket: str
    cached: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.error is None


class CacheLifecycleManager:
    """
    Owns the current versioned bucket.

    Usage:
        lifecycle = CacheLifecycleManager(config, storage, fetcher)
        lifecycle.on_install()
        lifecycle.on_activate()
    """

    def __init__(
        self,
        config: WorkerConfig,
        storage: CacheStorage,
        fetcher,
        clients=None,
    ):
        self.config = config
        self.storage = storage
        self.fetcher = fetcher
        self.clients = clients

    @property
    def current_version(self) -> str:
        return self.config.cache_version

    def current_bucket(self) -> CacheBucket:
        return self.storage.open(self.current_version)

    def on_install(self) -> InstallReport:
        """
        Create the current bucket and add the core assets.

        A failed asset fetch is logged and reported in the InstallReport.
        Only errors flagged non-recoverable propagate.
        """
        report = InstallReport(bucket=self.current_version)
        with LogContext(logger, f"Installing cache '{self.current_version}'"):
            bucket = self.current_bucket()
            with ErrorContext(f"caching core assets into '{bucket.name}'") as ctx:
                report.cached = bucket.add_all(self.config.core_asset_urls, self.fetcher)
            if ctx.error is not None:
                report.error = describe_error(ctx.error)["message"]
        return report

    def on_activate(self) -> List[str]:
        """
        Delete every bucket other than the current one, then claim clients.

        Returns:
            Names of the deleted buckets
        """
        deleted = []
        with LogContext(logger, f"Activating cache '{self.current_version}'"):
            for name in self.storage.keys():
                if name != self.current_version:
                    logger.info(f"Removing old cache: {name}")
                    self.storage.delete(name)
                    deleted.append(name)

            if self.clients is not None:
                self.clients.claim()

        return deleted
