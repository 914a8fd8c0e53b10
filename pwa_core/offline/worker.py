# =============================================================================
# pwa_core/offline/worker.py
# Worker Lifecycle State Machine
# =============================================================================
"""
ServiceWorker - wires the cache lifecycle, request router and sync reconciler
behind an explicit lifecycle.

    INSTALLING --install()/activate()--> ACTIVE --terminate()--> TERMINATING

install() populates the current bucket and skips waiting, i.e. activates
immediately. activate() evicts superseded buckets and claims every open
client. Fetch events are routed only while ACTIVE; sync events are accepted
in any state before termination.
"""

from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Set
import logging

from pwa_core.errors import WorkerStateError
from pwa_core.offline.cache_manager import CacheLifecycleManager, CacheStorage, InstallReport
from pwa_core.offline.config import WorkerConfig
from pwa_core.offline.connection_manager import ConnectionManager, ConnectionState
from pwa_core.offline.http import HttpFetcher, Request, Response
from pwa_core.offline.local_database import FormStore
from pwa_core.offline.request_router import RequestRouter
from pwa_core.offline.sync_engine import SyncReconciler, SyncResult

logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """Worker lifecycle states."""
    INSTALLING = "installing"
    ACTIVE = "active"
    TERMINATING = "terminating"


class ClientRegistry:
    """Open client pages and which of them this worker controls."""

    def __init__(self):
        self._clients: Set[str] = set()
        self._controlled: Set[str] = set()

    def connect(self, client_id: str) -> None:
        self._clients.add(client_id)

    def disconnect(self, client_id: str) -> None:
        self._clients.discard(client_id)
        self._controlled.discard(client_id)

    def claim(self) -> int:
        """Take control of every open client without waiting for a reload."""
        self._controlled = set(self._clients)
        logger.info(f"Claimed {len(self._controlled)} client(s)")
        return len(self._controlled)

    @property
    def clients(self) -> Set[str]:
        return set(self._clients)

    @property
    def controlled(self) -> Set[str]:
        return set(self._controlled)


class ServiceWorker:
    """
    One deployed worker version.

    Usage:
        worker = ServiceWorker(load_config())
        worker.install()
        response = worker.dispatch_fetch(Request(url, mode="navigate"))
        worker.dispatch_sync("background-sync-formularios")
        worker.terminate()
    """

    def __init__(
        self,
        config: WorkerConfig,
        fetcher=None,
        storage: Optional[CacheStorage] = None,
        store_factory: Optional[Callable[[], FormStore]] = None,
        connection: Optional[ConnectionManager] = None,
        clients: Optional[ClientRegistry] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self.fetcher = fetcher or HttpFetcher(timeout=config.request_timeout)
        self.storage = storage or CacheStorage(config.cache_dir)
        self.clients = clients or ClientRegistry()
        self.connection = connection
        self._state = WorkerState.INSTALLING

        self.lifecycle = CacheLifecycleManager(config, self.storage, self.fetcher, self.clients)
        self.router = RequestRouter(config, self.storage, self.fetcher)
        self.reconciler = SyncReconciler(
            config,
            store_factory or (lambda: FormStore.from_config(config)),
            self.fetcher,
            clock=clock,
        )

    @property
    def state(self) -> WorkerState:
        return self._state

    def _require(self, transition: str, *allowed: WorkerState) -> None:
        if self._state not in allowed:
            raise WorkerStateError(
                f"Cannot {transition} while {self._state.value}",
                state=self._state.value,
                transition=transition,
            )

    # -------------------------------------------------------------------------
    # Lifecycle transitions
    # -------------------------------------------------------------------------

    def install(self) -> InstallReport:
        """Populate the current bucket, then activate immediately."""
        self._require("install", WorkerState.INSTALLING)
        report = self.lifecycle.on_install()
        self.activate()
        return report

    def activate(self) -> List[str]:
        """
        Evict superseded buckets and claim clients.

        A failure leaves the worker INSTALLING so activation can be retried.
        """
        self._require("activate", WorkerState.INSTALLING)
        deleted = self.lifecycle.on_activate()
        self._state = WorkerState.ACTIVE
        logger.info(f"Worker '{self.config.cache_version}' active")
        return deleted

    def terminate(self) -> None:
        """Stop monitoring and let pending cache writes finish."""
        if self._state is WorkerState.TERMINATING:
            return
        self._state = WorkerState.TERMINATING
        if self.connection is not None:
            self.connection.unregister_callback(self._on_connection_change)
            self.connection.stop_monitoring()
        self.router.flush_cache_writes()
        logger.info(f"Worker '{self.config.cache_version}' terminated")

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def dispatch_fetch(self, request: Request) -> Optional[Response]:
        """Route a request; None means default handling."""
        if self._state is not WorkerState.ACTIVE:
            return None
        return self.router.handle(request)

    def dispatch_sync(self, tag: str) -> Optional[SyncResult]:
        """Deliver a background-sync signal."""
        if self._state is WorkerState.TERMINATING:
            logger.debug(f"Worker terminating, dropping sync '{tag}'")
            return None
        return self.reconciler.handle_sync(tag)

    def start_connectivity_monitoring(self, background: bool = True) -> None:
        """
        Fire the sync signal whenever the backend becomes reachable again.

        Args:
            background: Start the periodic check thread. When False the
                caller drives checks through connection.check_connection().
        """
        if self.connection is None:
            self.connection = ConnectionManager(self.config)
        self.connection.register_callback(self._on_connection_change)
        if background:
            self.connection.start_monitoring()

    def _on_connection_change(self, state: ConnectionState) -> None:
        if state.restored:
            logger.info("Connection restored, triggering sync")
            self.dispatch_sync(self.config.sync_tag)
