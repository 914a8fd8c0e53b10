# =============================================================================
# pwa_core/offline/__init__.py
# Offline Resilience Layer for the service-order form app
# =============================================================================
"""
Offline Resilience Module

Routes every outgoing GET through a versioned cache or the network, and
reconciles forms queued offline with the backend once it is reachable.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                        ServiceWorker                             │
│        INSTALLING ──► ACTIVE ──► TERMINATING                     │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│  ┌────────────────────┐ ┌───────────────┐ ┌───────────────────┐ │
│  │ CacheLifecycleMgr  │ │ RequestRouter │ │  SyncReconciler   │ │
│  │ install / activate │ │ API│CDN│ORIGIN│ │ drain FormStore   │ │
│  └─────────┬──────────┘ └───────┬───────┘ └─────────┬─────────┘ │
│            ▼                    ▼                   ▼            │
│      ┌──────────────────────────────┐      ┌─────────────────┐  │
│      │   CacheStorage (versioned)   │      │ FormStore (SQL) │  │
│      └──────────────────────────────┘      └─────────────────┘  │
│                                                                  │
│  ConnectionManager ──(reconnect)──► dispatch_sync(tag)           │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from pwa_core.offline import ServiceWorker, Request, load_config

worker = ServiceWorker(load_config())
worker.install()
response = worker.dispatch_fetch(Request("http://localhost:8000/", mode="navigate"))
result = worker.dispatch_sync("background-sync-formularios")
print(result.outcome)
"""

from pwa_core.offline.config import (
    WorkerConfig,
    SyncPolicy,
    load_config,
)

from pwa_core.offline.http import (
    Request,
    Response,
    HttpFetcher,
)

from pwa_core.offline.cache_manager import (
    CacheStorage,
    CacheBucket,
    CacheLifecycleManager,
    InstallReport,
)

from pwa_core.offline.request_router import (
    RequestRouter,
    OriginClass,
)

from pwa_core.offline.local_database import (
    FormStore,
    FormRecord,
)

from pwa_core.offline.sync_engine import (
    SyncReconciler,
    SyncResult,
    SyncOutcome,
    SyncState,
)

from pwa_core.offline.connection_manager import (
    ConnectionManager,
    ConnectionStatus,
)

from pwa_core.offline.worker import (
    ServiceWorker,
    WorkerState,
    ClientRegistry,
)

__all__ = [
    # Configuration
    "WorkerConfig",
    "SyncPolicy",
    "load_config",
    # HTTP primitives
    "Request",
    "Response",
    "HttpFetcher",
    # Cache
    "CacheStorage",
    "CacheBucket",
    "CacheLifecycleManager",
    "InstallReport",
    # Routing
    "RequestRouter",
    "OriginClass",
    # Local store
    "FormStore",
    "FormRecord",
    # Sync
    "SyncReconciler",
    "SyncResult",
    "SyncOutcome",
    "SyncState",
    # Connectivity
    "ConnectionManager",
    "ConnectionStatus",
    # Worker
    "ServiceWorker",
    "WorkerState",
    "ClientRegistry",
]
