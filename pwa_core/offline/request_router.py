# =============================================================================
# pwa_core/offline/request_router.py
# Per-request strategy selection (network-only / cache-first / network-first)
# =============================================================================
"""
RequestRouter - classifies intercepted GET requests by hostname and applies
the strategy of their origin class.

Precedence:
1. API          backend host               network-only, never cached
2. CDN          allow-listed CDN hostname  cache-first, network on miss (not cached)
3. SAME_ORIGIN  worker's own hostname      network-first, cache refresh,
                                           fallback cache -> root document -> 503
Anything else (and any non-GET) is left to default handling (None).
"""

from __future__ import annotations
import threading
from enum import Enum
from typing import List, Optional
import logging

from pwa_core.errors import NetworkError, error_boundary
from pwa_core.offline.cache_manager import CacheStorage
from pwa_core.offline.config import WorkerConfig
from pwa_core.offline.http import Request, Response, offline_page, offline_response

logger = logging.getLogger(__name__)


class OriginClass(Enum):
    """Routing categories, mutually exclusive."""
    API = "api"
    CDN = "cdn"
    SAME_ORIGIN = "same_origin"
    UNHANDLED = "unhandled"


class RequestRouter:
    """
    Routes requests through the cache and the network.

    Usage:
        router = RequestRouter(config, storage, fetcher)
        response = router.handle(Request("http://localhost:8000/index.html"))
        if response is None:
            ...  # default handling
    """

    def __init__(self, config: WorkerConfig, storage: CacheStorage, fetcher):
        self.config = config
        self.storage = storage
        self.fetcher = fetcher
        self._pending_writes: List[threading.Thread] = []
        self._writes_lock = threading.Lock()

    def classify(self, request: Request) -> OriginClass:
        hostname = request.hostname
        if hostname == self.config.backend_host:
            return OriginClass.API
        if any(pattern in hostname for pattern in self.config.cdn_hosts):
            return OriginClass.CDN
        if hostname == self.config.origin_host:
            return OriginClass.SAME_ORIGIN
        return OriginClass.UNHANDLED

    def handle(self, request: Request) -> Optional[Response]:
        """
        Produce a response for an intercepted request.

        Returns:
            Response, or None when the request is not intercepted

        Raises:
            NetworkError: API or CDN request whose network fetch failed
        """
        if request.method.upper() != "GET":
            return None

        origin_class = self.classify(request)
        if origin_class is OriginClass.API:
            return self._network_only(request)
        if origin_class is OriginClass.CDN:
            return self._cache_first(request)
        if origin_class is OriginClass.SAME_ORIGIN:
            return self._network_first(request)
        return None

    # -------------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------------

    def _network_only(self, request: Request) -> Response:
        return self.fetcher.fetch(request)

    def _cache_first(self, request: Request) -> Response:
        cached = self.storage.match(request)
        if cached is not None:
            logger.debug(f"CDN cache hit: {request.url}")
            return cached
        return self.fetcher.fetch(request)

    def _network_first(self, request: Request) -> Response:
        try:
            response = self.fetcher.fetch(request)
        except NetworkError as e:
            logger.info(f"Network failed for {request.url}, falling back to cache: {e.message}")
            return self._offline_fallback(request)

        self._schedule_cache_write(request, response.clone())
        return response

    def _offline_fallback(self, request: Request) -> Response:
        cached = self.storage.match(request)
        if cached is not None:
            return cached

        if request.is_navigation:
            document = self.storage.match(self.config.offline_document_url)
            if document is not None:
                return document
            logger.warning("Root document not cached, serving offline page")
            return offline_page()

        return offline_response()

    # -------------------------------------------------------------------------
    # Background cache refresh
    # -------------------------------------------------------------------------

    def _schedule_cache_write(self, request: Request, copy: Response) -> None:
        thread = threading.Thread(
            target=self._write_to_cache,
            args=(request, copy),
            daemon=True,
            name="CacheWrite",
        )
        with self._writes_lock:
            self._pending_writes = [t for t in self._pending_writes if t.is_alive()]
            self._pending_writes.append(thread)
        thread.start()

    @error_boundary(default_return=None)
    def _write_to_cache(self, request: Request, copy: Response) -> None:
        self.storage.open(self.config.cache_version).put(request, copy)

    def flush_cache_writes(self, timeout: Optional[float] = None) -> None:
        """Wait for outstanding background cache writes."""
        with self._writes_lock:
            pending = list(self._pending_writes)
            self._pending_writes = []
        for thread in pending:
            thread.join(timeout=timeout)
