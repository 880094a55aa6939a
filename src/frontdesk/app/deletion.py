from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum

from PySide6.QtCore import QObject, Signal

from frontdesk.app.db_debug import db_debug
from frontdesk.app.errors import Unauthenticated, WriteFailure
from frontdesk.app.identity import Identity, IdentityAdapter
from frontdesk.app.live_collection import LiveCollection
from frontdesk.app.notifications import NotificationChannel
from frontdesk.app.record_store import RecordStore


class DeletionState(Enum):
    IDLE = "idle"
    CONFIRM_PENDING = "confirm_pending"


@dataclass(frozen=True, slots=True)
class PendingDeletion:
    target_id: str
    target_label: str


class DeletionWorkflow(QObject):
    """Idle -> ConfirmPending(target) -> Idle, with exactly one delete per confirm."""

    state_changed = Signal(object)
    in_flight_changed = Signal(object)

    def __init__(
        self,
        *,
        collection: LiveCollection,
        identity: IdentityAdapter,
        store: RecordStore,
        notifications: NotificationChannel,
        parent: QObject | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(parent)
        self._collection = collection
        self._identity = identity
        self._store = store
        self._notifications = notifications
        self._logger = logger or logging.getLogger(f"frontdesk.deletion.{collection.schema.collection}")
        self._pending: PendingDeletion | None = None
        self._in_flight: set[str] = set()
        self._requested_by: Identity | None = None
        identity.identity_changed.connect(self._on_identity_changed)

    @property
    def state(self) -> DeletionState:
        return DeletionState.CONFIRM_PENDING if self._pending is not None else DeletionState.IDLE

    @property
    def pending(self) -> PendingDeletion | None:
        return self._pending

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    def request_delete(self, record_id: str) -> None:
        identity = self._identity.identity if self._identity.resolved else None
        if identity is None:
            error = Unauthenticated()
            self._notifications.error(str(error))
            raise error
        target_id = str(record_id or "").strip()
        if target_id in self._in_flight:
            return
        entry = self._collection.entry_by_id(target_id)
        if entry is None:
            db_debug("deletion.request.missing", record_id=target_id)
            return
        self._requested_by = identity
        self._set_pending(PendingDeletion(target_id=target_id, target_label=entry.label(self._collection.tz)))

    def confirm(self) -> Future | None:
        pending = self._pending
        if pending is None:
            return None
        identity = self._identity.identity if self._identity.resolved else None
        self._set_pending(None)
        if identity is None:
            self._notifications.error(str(Unauthenticated()))
            return None

        target_id = pending.target_id
        self._in_flight.add(target_id)
        self.in_flight_changed.emit(self.in_flight)
        path = self._collection.path_for(identity)
        db_debug("deletion.confirm", path=path.text, record_id=target_id)
        try:
            future = self._store.delete(path, target_id)
        except Exception as exc:
            future = Future()
            future.set_exception(exc)
        future.add_done_callback(lambda done: self._on_delete_done(pending, done))
        return future

    def cancel(self) -> None:
        if self._pending is None:
            return
        self._set_pending(None)

    def _on_identity_changed(self, identity: Identity | None) -> None:
        requested_by = self._requested_by
        if self._pending is None:
            return
        if identity is not None and requested_by is not None and identity.user_id == requested_by.user_id:
            return
        db_debug("deletion.cancel.identity_changed", record_id=self._pending.target_id)
        self.cancel()

    def _on_delete_done(self, pending: PendingDeletion, done: Future) -> None:
        self._in_flight.discard(pending.target_id)
        self.in_flight_changed.emit(self.in_flight)
        error = done.exception()
        if error is not None:
            failure = WriteFailure(f"delete {pending.target_label}", error)
            self._logger.warning("Delete failed for %s: %s", pending.target_id, error)
            db_debug("deletion.error", record_id=pending.target_id, error=str(error))
            self._notifications.error(str(failure))
            return
        db_debug("deletion.done", record_id=pending.target_id)
        self._notifications.success(f"Deleted {pending.target_label}.")

    def _set_pending(self, pending: PendingDeletion | None) -> None:
        self._pending = pending
        if pending is None:
            self._requested_by = None
        self.state_changed.emit(self.state)
