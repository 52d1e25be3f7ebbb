"""Durable outbound operation queue with bounded retries."""
import logging
import random
import uuid
from typing import Any, Callable

from hazcollect.connectivity import ConnectivitySource
from hazcollect.models import OperationType, PendingOperation, SyncStatus
from hazcollect.storage import KeyValueStore, read_json, write_json
from hazcollect.timefmt import now_ms

logger = logging.getLogger(__name__)

PENDING_OPERATIONS_KEY = "@pending_operations"
FAILED_OPERATIONS_KEY = "@failed_operations"
MAX_RETRIES = 3
SYNC_INTERVAL_MS = 30 * 1000

Delivery = Callable[[PendingOperation], bool]
SyncStatusListener = Callable[[SyncStatus], None]


class SyncUnavailableError(RuntimeError):
    """Raised when a manual sync is requested while offline."""


def simulated_delivery(success_rate: float = 0.9, rng: random.Random | None = None) -> Delivery:
    """Delivery stand-in for demos: succeeds with the given probability."""
    rng = rng or random.Random()

    def deliver(operation: PendingOperation) -> bool:
        return rng.random() < success_rate

    return deliver


class SyncQueue:
    """Queue of operations waiting to reach the back office.

    Each sync pass tries every pending operation once, in enqueue order.
    Successes are removed one at a time; a failure bumps ``retry_count`` and
    the operation is moved to the failed list once it reaches ``max_retries``.
    """

    def __init__(
        self,
        store: KeyValueStore,
        deliver: Delivery,
        source: ConnectivitySource | None = None,
        clock: Callable[[], int] = now_ms,
        max_retries: int = MAX_RETRIES,
        on_synced: Callable[[], None] | None = None,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.store = store
        self.deliver = deliver
        self.source = source
        self.clock = clock
        self.max_retries = max_retries
        self.on_synced = on_synced
        self.is_online = True
        self.status = SyncStatus.SYNCED
        self._pending: list[PendingOperation] = []
        self._listeners: list[SyncStatusListener] = []
        self._source_unsubscribe: Callable[[], None] | None = None
        self._syncing = False
        self._dropped_in_pass = False
        self.load()

    def start(self) -> None:
        self.load()
        if self.source is not None:
            try:
                self.is_online = bool(self.source.fetch())
            except Exception:
                logger.exception("Connectivity check failed, assuming offline")
                self.is_online = False
            self._source_unsubscribe = self.source.subscribe(self.set_online)
        self._update_status()

    def stop(self) -> None:
        if self._source_unsubscribe is not None:
            self._source_unsubscribe()
            self._source_unsubscribe = None

    def load(self) -> None:
        stored = read_json(self.store, PENDING_OPERATIONS_KEY, default=[])
        operations = []
        for item in stored if isinstance(stored, list) else []:
            try:
                operations.append(PendingOperation.from_dict(item))
            except (KeyError, TypeError, ValueError):
                logger.error("Skipping unreadable pending operation: %r", item)
        self._pending = operations

    def _save(self) -> None:
        write_json(self.store, PENDING_OPERATIONS_KEY, [op.to_dict() for op in self._pending])

    def set_online(self, is_online: bool) -> None:
        was_online = self.is_online
        self.is_online = bool(is_online)
        self._update_status()
        if self.is_online and not was_online and self._pending:
            self.sync_pending()

    def is_connected(self) -> bool:
        return self.is_online

    def enqueue(self, op_type: OperationType | str, payload: Any) -> str:
        now = self.clock()
        operation = PendingOperation(
            id=f"op_{now}_{uuid.uuid4().hex[:9]}",
            type=OperationType(op_type),
            payload=payload,
            enqueued_at=now,
        )
        self._pending.append(operation)
        self._save()
        self._dropped_in_pass = False
        self._update_status()
        if self.is_online:
            self.sync_pending()
        return operation.id

    def _remove(self, operation_id: str) -> None:
        self._pending = [op for op in self._pending if op.id != operation_id]
        self._save()

    def _record_failure(self, operation: PendingOperation) -> None:
        failed = read_json(self.store, FAILED_OPERATIONS_KEY, default=[])
        if not isinstance(failed, list):
            failed = []
        failed.append(operation.to_dict())
        write_json(self.store, FAILED_OPERATIONS_KEY, failed)

    def _attempt(self, operation: PendingOperation) -> bool:
        try:
            return bool(self.deliver(operation))
        except Exception:
            logger.exception("Error syncing operation %s", operation.id)
            return False

    def sync_pending(self) -> None:
        """Run one delivery pass over everything pending."""
        if not self.is_online or not self._pending or self._syncing:
            return
        self._syncing = True
        self._dropped_in_pass = False
        try:
            self._set_status(SyncStatus.SYNCING)
            for operation in list(self._pending):
                if self._attempt(operation):
                    self._remove(operation.id)
                    logger.info("Synced %s operation %s", operation.type.value, operation.id)
                    continue
                operation.retry_count += 1
                if operation.retry_count >= self.max_retries:
                    self._remove(operation.id)
                    self._record_failure(operation)
                    self._dropped_in_pass = True
                    logger.error("Operation %s failed after %d retries", operation.id, self.max_retries)
            self._save()
        finally:
            self._syncing = False
        self._finish_pass()

    def _finish_pass(self) -> None:
        self._update_status()
        if self.status == SyncStatus.SYNCED and self.on_synced is not None:
            self.on_synced()

    def manual_sync(self) -> None:
        """Sync now. With nothing pending this still counts as a completed sync."""
        if not self.is_online:
            raise SyncUnavailableError("Cannot sync while offline")
        if self._pending:
            self.sync_pending()
        elif not self._syncing:
            self._dropped_in_pass = False
            self._finish_pass()

    def tick(self) -> None:
        """Periodic retry hook, driven every SYNC_INTERVAL_MS by the host."""
        if self.is_online and self._pending:
            self.sync_pending()

    def get_status(self) -> SyncStatus:
        return self.status

    def get_pending_count(self) -> int:
        return len(self._pending)

    def get_pending(self) -> list[PendingOperation]:
        return list(self._pending)

    def get_failed_operations(self) -> list[PendingOperation]:
        failed = read_json(self.store, FAILED_OPERATIONS_KEY, default=[])
        operations = []
        for item in failed if isinstance(failed, list) else []:
            try:
                operations.append(PendingOperation.from_dict(item))
            except (KeyError, TypeError, ValueError):
                logger.error("Skipping unreadable failed operation: %r", item)
        return operations

    def clear_failed_operations(self) -> None:
        write_json(self.store, FAILED_OPERATIONS_KEY, [])

    def _update_status(self) -> None:
        if self._syncing:
            return
        if not self.is_online:
            self._set_status(SyncStatus.OFFLINE)
        elif self._pending:
            self._set_status(SyncStatus.PENDING)
        elif self._dropped_in_pass:
            self._set_status(SyncStatus.ERROR)
        else:
            self._set_status(SyncStatus.SYNCED)

    def _set_status(self, status: SyncStatus) -> None:
        if self.status == status:
            return
        self.status = status
        for listener in tuple(self._listeners):
            if listener in self._listeners:
                listener(status)

    def on_status_change(self, listener: SyncStatusListener) -> Callable[[], None]:
        """Subscribe to status changes. The listener is called once right away."""
        listener(self.status)
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
