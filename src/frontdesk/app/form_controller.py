from __future__ import annotations

import logging
from concurrent.futures import Future
from datetime import datetime, tzinfo
from typing import Callable

from PySide6.QtCore import QObject, Signal

from frontdesk.app.db_debug import db_debug
from frontdesk.app.errors import Unauthenticated, ValidationError, WriteFailure
from frontdesk.app.identity import IdentityAdapter
from frontdesk.app.live_collection import LiveCollection
from frontdesk.app.notifications import NotificationChannel
from frontdesk.app.record_store import SERVER_TIMESTAMP, RecordStore
from frontdesk.app.records import EntrySchema


class FormController(QObject):
    """Draft values and the single-flight submit for one entity form.

    A successful create does not touch the list; the new entry shows up with
    the next snapshot.
    """

    draft_changed = Signal(object)
    submitting_changed = Signal(bool)

    def __init__(
        self,
        *,
        collection: LiveCollection,
        identity: IdentityAdapter,
        store: RecordStore,
        notifications: NotificationChannel,
        clock: Callable[[], datetime] | None = None,
        parent: QObject | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(parent)
        self._collection = collection
        self._schema: EntrySchema = collection.schema
        self._tz: tzinfo = collection.tz
        self._identity = identity
        self._store = store
        self._notifications = notifications
        self._clock = clock
        self._logger = logger or logging.getLogger(f"frontdesk.form.{self._schema.collection}")
        self._submitting = False
        self._draft = self._default_draft()

    @property
    def draft(self) -> dict[str, str]:
        return dict(self._draft)

    @property
    def submitting(self) -> bool:
        return self._submitting

    @property
    def can_submit(self) -> bool:
        return self._identity.signed_in and not self._submitting

    def set_field(self, name: str, value: str) -> None:
        self._draft[name] = "" if value is None else str(value)
        self.draft_changed.emit(self.draft)

    def reset(self) -> None:
        self._draft = self._default_draft()
        self.draft_changed.emit(self.draft)

    def submit(self) -> Future | None:
        """Create a record from the draft.

        Returns None when a submit is already in flight. Raises
        `Unauthenticated` or `ValidationError` (after reporting them on the
        notification channel) without calling the store.
        """
        if self._submitting:
            return None

        identity = self._identity.identity if self._identity.resolved else None
        if identity is None:
            error = Unauthenticated()
            self._notifications.error(str(error))
            raise error

        values = self._normalized_values()
        for spec in self._schema.required_fields:
            if not values.get(spec.name, ""):
                error = ValidationError(spec.name, label=spec.label)
                self._notifications.error(str(error))
                raise error

        fields: dict[str, object] = dict(values)
        fields["created_by"] = identity.user_id
        fields["created_at"] = SERVER_TIMESTAMP

        self._set_submitting(True)
        db_debug("form.submit", collection=self._schema.collection, created_by=identity.user_id)
        path = self._collection.path_for(identity)
        try:
            future = self._store.create(path, fields)
        except Exception as exc:
            future = Future()
            future.set_exception(exc)
        future.add_done_callback(self._on_create_done)
        return future

    def _on_create_done(self, done: Future) -> None:
        error = done.exception()
        self._set_submitting(False)
        if error is not None:
            failure = WriteFailure(f"save the {self._schema.kind}", error)
            self._logger.warning("Create failed for %s: %s", self._schema.collection, error)
            db_debug("form.submit.error", collection=self._schema.collection, error=str(error))
            self._notifications.error(str(failure))
            return
        record_id = str(done.result() or "")
        db_debug("form.submit.done", collection=self._schema.collection, record_id=record_id)
        self.reset()
        self._notifications.success(f"{self._schema.kind.capitalize()} saved.")

    def _normalized_values(self) -> dict[str, str]:
        values: dict[str, str] = {}
        for spec in self._schema.fields:
            values[spec.name] = str(self._draft.get(spec.name, "") or "").strip()
        return values

    def _default_draft(self) -> dict[str, str]:
        now = self._clock() if self._clock is not None else None
        return self._schema.default_draft(self._tz, now=now)

    def _set_submitting(self, value: bool) -> None:
        if self._submitting == value:
            return
        self._submitting = value
        self.submitting_changed.emit(value)
