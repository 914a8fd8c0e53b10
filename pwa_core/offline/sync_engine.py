# =============================================================================
# pwa_core/offline/sync_engine.py
# Offline Sync Reconciliation Engine
# =============================================================================
"""
SyncReconciler - drains unsynced FormRecords to the remote write endpoint.

Features:
- Triggered by the connectivity-restoration tag only
- Explicit selection policy (drain all pending / oldest pending only)
- Idempotent submission (unique key sent with every attempt)
- Per-record HTTP failures and unusable replies never abort the batch
- Typed SyncResult delivered to observer callbacks
"""

from __future__ import annotations
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import logging

import requests

from pwa_core.errors import OfflineCoreError, SyncSubmissionError, describe_error, safe_execute
from pwa_core.logging import LogContext
from pwa_core.offline.config import SyncPolicy, WorkerConfig
from pwa_core.offline.local_database import FormRecord, FormStore

logger = logging.getLogger(__name__)

# Domain fields forwarded to the remote endpoint, in payload order
PAYLOAD_FIELDS = (
    "cliente",
    "cidade",
    "equipamento",
    "tecnico",
    "servico",
    "dataInicial",
    "horaInicial",
    "dataFinal",
    "horaFinal",
    "veiculo",
    "estoque",
    "numeroSerie",
    "relatorioMaquina",
    "fotos",
    "assinaturas",
    "clienteNome",
    "tecnicoNome",
    "materiais",
)


class SyncState(Enum):
    """Reconciler state."""
    IDLE = "idle"
    RUNNING = "running"


class SyncOutcome(Enum):
    """Terminal outcome of one reconciliation pass."""
    SUCCESS = "success"                      # Every selected record synced
    PARTIAL_FAILURE = "partial_failure"      # Some synced, some rejected
    NO_WORK = "no_work"                      # Nothing pending
    RETRYABLE_FAILURE = "retryable_failure"  # Nothing synced; a later pass may succeed
    FATAL_FAILURE = "fatal_failure"          # Unexpected error; needs an operator


@dataclass
class SyncResult:
    """Result of one reconciliation pass."""
    outcome: SyncOutcome
    synced_ids: List[int] = field(default_factory=list)
    failed_ids: List[int] = field(default_factory=list)
    error: Optional[Dict[str, Any]] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (SyncOutcome.SUCCESS, SyncOutcome.NO_WORK)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "synced_ids": self.synced_ids,
            "failed_ids": self.failed_ids,
            "error": self.error,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_payload(record: FormRecord) -> Dict[str, Any]:
    """Submission body: domain fields plus the idempotency token."""
    dados: Dict[str, Any] = {"id": record.local_id}
    for name in PAYLOAD_FIELDS:
        if name in record.fields:
            dados[name] = record.fields[name]
    dados["chaveUnica"] = record.unique_key
    return {
        "json_dados": dados,
        "chave": record.unique_key,
    }


class SyncReconciler:
    """
    Reconciles the local form store with the remote endpoint.

    Usage:
        reconciler = SyncReconciler(config, store_factory, fetcher)
        result = reconciler.handle_sync("background-sync-formularios")
    """

    def __init__(
        self,
        config: WorkerConfig,
        store_factory: Callable[[], FormStore],
        fetcher,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self.store_factory = store_factory
        self.fetcher = fetcher
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._callbacks: List[Callable[[SyncResult], None]] = []
        self._active_passes = 0
        self._counter_lock = threading.Lock()
        self.last_result: Optional[SyncResult] = None

    @property
    def state(self) -> SyncState:
        return SyncState.RUNNING if self._active_passes > 0 else SyncState.IDLE

    @property
    def is_syncing(self) -> bool:
        return self.state is SyncState.RUNNING

    def handle_sync(self, tag: str) -> Optional[SyncResult]:
        """Entry point for connectivity-restoration signals; other tags are ignored."""
        if tag != self.config.sync_tag:
            logger.debug(f"Ignoring sync tag: {tag}")
            return None
        logger.info("Background sync triggered")
        return self.reconcile()

    def reconcile(self) -> SyncResult:
        """
        Run one reconciliation pass.

        Never raises: any error ends the pass and is reported in the result.
        """
        with self._counter_lock:
            self._active_passes += 1

        started_at = self.clock()
        synced: List[int] = []
        failed: List[int] = []
        store: Optional[FormStore] = None
        try:
            with LogContext(logger, "Reconciliation pass"):
                store = self.store_factory()
                store.open()
                pending = [record for record in store.get_all() if not record.synced]

                if not pending:
                    logger.info("No pending forms")
                    result = SyncResult(SyncOutcome.NO_WORK)
                else:
                    if self.config.sync_policy is SyncPolicy.OLDEST_ONLY:
                        pending = pending[:1]

                    for record in pending:
                        try:
                            submitted = self._submit(store, record)
                        except SyncSubmissionError as e:
                            logger.warning(f"Unusable reply for form {record.local_id}: {e.message}")
                            submitted = False
                        except Exception:
                            failed.append(record.local_id)
                            raise
                        if submitted:
                            synced.append(record.local_id)
                        else:
                            failed.append(record.local_id)

                    result = SyncResult(self._outcome(synced, failed), synced, failed)

        except Exception as e:
            # Already logged with its traceback by LogContext
            result = SyncResult(self._classify_error(e), synced, failed, error=describe_error(e))

        finally:
            if store is not None:
                store.close()
            with self._counter_lock:
                self._active_passes -= 1

        result.started_at = started_at
        result.finished_at = self.clock()
        self.last_result = result
        logger.info(
            f"Sync pass {result.outcome.value}: "
            f"{len(result.synced_ids)} synced, {len(result.failed_ids)} failed"
        )
        self._notify_callbacks(result)
        return result

    def _submit(self, store: FormStore, record: FormRecord) -> bool:
        """
        Submit one record and persist the server id on success.

        Returns:
            False on a non-2xx status (record stays pending)

        Raises:
            SyncSubmissionError: 2xx reply without JSON or insertId; the
                record stays pending and the pass moves on
        """
        logger.info(f"Syncing form {record.local_id}")
        response = self.fetcher.post_json(self.config.submit_url, build_payload(record))

        if not response.ok:
            logger.warning(f"Failed to sync form {record.local_id}: HTTP {response.status}")
            return False

        try:
            data = response.json()
        except ValueError as e:
            raise SyncSubmissionError(
                f"Invalid JSON in reply: {e}",
                record_id=record.local_id,
                status=response.status,
            ) from e
        if not isinstance(data, dict) or data.get("insertId") is None:
            raise SyncSubmissionError(
                "Reply has no insertId",
                record_id=record.local_id,
                status=response.status,
            )

        record.synced = True
        record.synced_at = utc_timestamp(self.clock())
        record.server_id = data["insertId"]
        store.put(record)

        logger.info(f"Form {record.local_id} synced (serverId: {record.server_id})")
        return True

    @staticmethod
    def _outcome(synced: List[int], failed: List[int]) -> SyncOutcome:
        if not failed:
            return SyncOutcome.SUCCESS
        if synced:
            return SyncOutcome.PARTIAL_FAILURE
        return SyncOutcome.RETRYABLE_FAILURE

    @staticmethod
    def _classify_error(error: Exception) -> SyncOutcome:
        if isinstance(error, OfflineCoreError):
            return SyncOutcome.RETRYABLE_FAILURE if error.recoverable else SyncOutcome.FATAL_FAILURE
        if isinstance(error, requests.exceptions.RequestException):
            return SyncOutcome.RETRYABLE_FAILURE
        return SyncOutcome.FATAL_FAILURE

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def register_callback(self, callback: Callable[[SyncResult], None]) -> None:
        """Register an observer for pass results."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[SyncResult], None]) -> None:
        """Remove a registered observer."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self, result: SyncResult) -> None:
        for callback in self._callbacks:
            try:
                callback(result)
            except Exception as e:
                logger.error(f"Error in sync callback: {e}")

    def get_status_display(self) -> Dict[str, Any]:
        """Sync status for the CLI and diagnostics."""
        store = self.store_factory()
        try:
            pending = safe_execute(
                lambda: store.open().get_pending_count(),
                default=None,
                error_message="Cannot count pending forms",
            )
        finally:
            store.close()
        return {
            "state": self.state.value,
            "pending_count": pending,
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }
