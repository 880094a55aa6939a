from __future__ import annotations

import logging
from datetime import tzinfo
from typing import Any

from PySide6.QtCore import QObject, Signal

from frontdesk.app.db_debug import db_debug
from frontdesk.app.identity import Identity, IdentityAdapter
from frontdesk.app.notifications import NotificationChannel
from frontdesk.app.record_store import CollectionPath, RecordStore, Subscription, collection_path_for
from frontdesk.app.records import Entry, EntrySchema, dedupe_entries, sort_entries
from frontdesk.core import StateStreamer


class LiveCollection(QObject):
    """Mirror of one record collection for the current identity.

    Each snapshot replaces the whole list. Exactly one store subscription is
    open while an identity is signed in; it is cancelled before the next one
    is opened.
    """

    entries_changed = Signal(object)

    def __init__(
        self,
        *,
        schema: EntrySchema,
        identity: IdentityAdapter,
        store: RecordStore,
        notifications: NotificationChannel,
        namespace: str,
        scope_policy: str,
        tz: tzinfo,
        state_streamer: StateStreamer | None = None,
        parent: QObject | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(parent)
        self._schema = schema
        self._identity = identity
        self._store = store
        self._notifications = notifications
        self._namespace = namespace
        self._scope_policy = scope_policy
        self._tz = tz
        self._state_streamer = state_streamer
        self._logger = logger or logging.getLogger(f"frontdesk.collection.{schema.collection}")
        self._entries: tuple[Entry, ...] = ()
        self._subscription: Subscription | None = None
        self._generation = 0
        self._disposed = False

        identity.identity_changed.connect(self._on_identity_changed)
        if identity.resolved:
            self._on_identity_changed(identity.identity)

    @property
    def schema(self) -> EntrySchema:
        return self._schema

    @property
    def tz(self) -> tzinfo:
        return self._tz

    @property
    def entries(self) -> tuple[Entry, ...]:
        return self._entries

    @property
    def path(self) -> CollectionPath | None:
        subscription = self._subscription
        return subscription.path if subscription is not None else None

    @property
    def subscription_active(self) -> bool:
        subscription = self._subscription
        return subscription is not None and subscription.active

    def path_for(self, identity: Identity) -> CollectionPath:
        return collection_path_for(
            namespace=self._namespace,
            collection=self._schema.collection,
            scope_policy=self._scope_policy,
            identity_id=identity.user_id,
        )

    def entry_by_id(self, record_id: str) -> Entry | None:
        for entry in self._entries:
            if entry.record_id == record_id:
                return entry
        return None

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        try:
            self._identity.identity_changed.disconnect(self._on_identity_changed)
        except (RuntimeError, TypeError):
            pass
        self._cancel_subscription()

    def _on_identity_changed(self, identity: Identity | None) -> None:
        if self._disposed:
            return
        self._cancel_subscription()
        if identity is None:
            self._publish(())
            return

        self._generation += 1
        generation = self._generation
        path = self.path_for(identity)
        db_debug("collection.subscribe", path=path.text, generation=generation)
        self._subscription = self._store.subscribe(
            path,
            lambda records: self._on_snapshot(generation, records),
            lambda error: self._on_error(generation, error),
        )

    def _cancel_subscription(self) -> None:
        subscription = self._subscription
        self._subscription = None
        self._generation += 1
        if subscription is not None:
            db_debug("collection.unsubscribe", path=subscription.path.text)
            subscription.cancel()

    def _on_snapshot(self, generation: int, records: list[dict[str, Any]]) -> None:
        if generation != self._generation or self._disposed:
            return
        mapped: list[Entry] = []
        skipped = 0
        for record in records:
            entry = self._schema.entry_from_record(record)
            if entry is None:
                skipped += 1
                continue
            mapped.append(entry)
        if skipped:
            self._logger.warning("Skipped %s unreadable %s record(s)", skipped, self._schema.kind)
        self._publish(tuple(sort_entries(dedupe_entries(mapped), self._tz)))

    def _on_error(self, generation: int, error: Exception) -> None:
        if generation != self._generation or self._disposed:
            return
        self._logger.warning("Live %s listener failed: %s", self._schema.collection, error)
        db_debug("collection.error", collection=self._schema.collection, error=str(error))
        self._notifications.error(f"Could not refresh {self._schema.title.lower()}: {error}")

    def _publish(self, entries: tuple[Entry, ...]) -> None:
        self._entries = entries
        self.entries_changed.emit(entries)
        if self._state_streamer is not None:
            self._state_streamer.record(
                "collection.snapshot",
                source="live_collection",
                payload={"collection": self._schema.collection, "entries": len(entries)},
            )
