# =============================================================================
# pwa_core/offline/connection_manager.py
# Backend Reachability Monitor and Restoration Signal
# =============================================================================
"""
ConnectionManager - watches whether the form backend can be reached and
tells observers when it comes back.

The worker registers one observer that turns a restoration into the
background-sync signal. Checks can run on a daemon thread or be driven by
the caller one at a time.
"""

from __future__ import annotations
import socket
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional
import logging

from pwa_core.offline.config import WorkerConfig

logger = logging.getLogger(__name__)

ReachabilityCheck = Callable[[], bool]
Observer = Callable[["ConnectionState"], None]


class ConnectionStatus(Enum):
    """Reachability of the backend host."""
    UNKNOWN = "unknown"     # No check has completed yet
    CHECKING = "checking"   # Check in flight
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass
class ConnectionState:
    """Snapshot taken after a reachability check."""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    previous_status: ConnectionStatus = ConnectionStatus.UNKNOWN
    last_check: Optional[datetime] = None
    last_online: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None

    @property
    def restored(self) -> bool:
        """The backend is reachable and was not at the previous change."""
        return (
            self.status is ConnectionStatus.ONLINE
            and self.previous_status is not ConnectionStatus.ONLINE
        )


class ConnectionManager:
    """
    Checks the backend and notifies observers on status changes.

    Usage:
        manager = ConnectionManager(config)
        manager.register_callback(on_change)
        manager.start_monitoring()      # or call check_connection() yourself
    """

    CONNECTION_TIMEOUT = 5

    def __init__(
        self,
        config: WorkerConfig,
        checker: Optional[ReachabilityCheck] = None,
        online_interval: float = 30,
        offline_interval: float = 10,
    ):
        self.config = config
        self.online_interval = online_interval
        self.offline_interval = offline_interval
        self._checker = checker or self._check_backend
        self._state = ConnectionState()
        self._observers: List[Observer] = []
        self._check_lock = threading.Lock()
        self._stop = threading.Event()
        self._monitor_thread: Optional[threading.Thread] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_online(self) -> bool:
        return self._state.status is ConnectionStatus.ONLINE

    # -------------------------------------------------------------------------
    # Probing
    # -------------------------------------------------------------------------

    def check_connection(self) -> ConnectionState:
        """
        Check the backend once.

        Observers are called only when the status differs from the one
        before the check. A check that raises counts as unreachable.
        """
        with self._check_lock:
            before = self._state.status
            self._state.status = ConnectionStatus.CHECKING
            now = datetime.now()

            error = None
            try:
                reachable = bool(self._checker())
            except Exception as e:
                logger.debug(f"Check of {self.config.backend_host} raised: {e}")
                reachable, error = False, str(e)

            self._record(reachable, now, error)
            changed = self._state.status is not before
            if changed:
                self._state.previous_status = before
            snapshot = replace(self._state)

        if changed:
            logger.info(f"Backend {self.config.backend_host}: {before.value} -> {snapshot.status.value}")
            self._notify(snapshot)
        return snapshot

    def _record(self, reachable: bool, when: datetime, error: Optional[str]) -> None:
        state = self._state
        state.last_check = when
        if reachable:
            state.status = ConnectionStatus.ONLINE
            state.last_online = when
            state.consecutive_failures = 0
            state.error_message = None
        else:
            state.status = ConnectionStatus.OFFLINE
            state.consecutive_failures += 1
            state.error_message = error

    def _check_backend(self) -> bool:
        """TCP connect to the backend's HTTP(S) port."""
        port = 443 if self.config.backend_scheme == "https" else 80
        try:
            with socket.create_connection(
                (self.config.backend_host, port),
                timeout=self.CONNECTION_TIMEOUT,
            ):
                return True
        except OSError:
            return False

    # -------------------------------------------------------------------------
    # Background monitoring
    # -------------------------------------------------------------------------

    def start_monitoring(self) -> None:
        if self._monitor_thread is not None and self._monitor_thread.is_alive():
            return
        self._stop.clear()
        self._monitor_thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="BackendMonitor",
        )
        self._monitor_thread.start()
        logger.debug(f"Monitoring {self.config.backend_host}")

    def stop_monitoring(self) -> None:
        self._stop.set()
        thread, self._monitor_thread = self._monitor_thread, None
        if thread is not None:
            thread.join(timeout=self.CONNECTION_TIMEOUT)
            logger.debug(f"Stopped monitoring {self.config.backend_host}")

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.check_connection()
            except Exception as e:
                logger.error(f"Connectivity check failed unexpectedly: {e}")
            interval = self.online_interval if self.is_online else self.offline_interval
            self._stop.wait(timeout=interval)

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def register_callback(self, callback: Observer) -> None:
        """Call `callback(state)` after every status change."""
        if callback not in self._observers:
            self._observers.append(callback)

    def unregister_callback(self, callback: Observer) -> None:
        if callback in self._observers:
            self._observers.remove(callback)

    def _notify(self, state: ConnectionState) -> None:
        for observer in list(self._observers):
            try:
                observer(state)
            except Exception as e:
                logger.error(f"Connectivity observer {observer!r} failed: {e}")

    def get_status_display(self) -> Dict[str, object]:
        state = self._state
        return {
            "status": state.status.value,
            "backend": self.config.backend_host,
            "failures": state.consecutive_failures,
            "last_check": state.last_check.isoformat() if state.last_check else None,
            "last_online": state.last_online.isoformat() if state.last_online else None,
            "error": state.error_message,
        }
