from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Mapping
from urllib.parse import quote

from PySide6.QtCore import QObject, QTimer

from frontdesk.app.db_debug import db_debug
from frontdesk.app.errors import SubscriptionError, SupabaseRequestError
from frontdesk.app.record_store import (
    CollectionPath,
    ErrorCallback,
    SnapshotCallback,
    Subscription,
    split_record_fields,
)
from frontdesk.app.settings_store import SupabaseSettings
from frontdesk.app.supabase_realtime import SupabaseRealtimeChannel, SupabaseRealtimeSubscription
from frontdesk.app.supabase_rest import SupabaseRestClient


_REFRESH_DEBOUNCE_MS = 150
_SELECT_COLUMNS = "id,collection_path,created_by,created_at,fields"


@dataclass(slots=True, eq=False)
class _RemoteListener:
    subscription: Subscription
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback
    generation: int = 0
    refresh_pending: bool = False


class SupabaseRecordStore(QObject):
    """Record store on a single Supabase table, partitioned by `collection_path`.

    The realtime channel only signals that rows changed; every change (and
    every rejoin after a reconnect) triggers a full re-read of the affected
    collection, so subscribers always receive complete snapshots. Reads are
    numbered per listener and only the newest one is delivered.
    """

    backend = "supabase"

    def __init__(
        self,
        settings: SupabaseSettings,
        *,
        parent: QObject | None = None,
        rest: SupabaseRestClient | None = None,
        channel: SupabaseRealtimeChannel | None = None,
        token_provider: Callable[[], str] | None = None,
    ) -> None:
        super().__init__(parent)
        self._settings = settings
        self._rest = rest or SupabaseRestClient(settings, parent=self)
        self._channel = channel or SupabaseRealtimeChannel(
            parent=self,
            on_change=self._on_channel_change,
            on_joined=self._on_channel_joined,
            on_status=self._on_channel_status,
        )
        self._token_provider = token_provider or (lambda: "")
        self._listeners: list[_RemoteListener] = []

    @property
    def table_path(self) -> str:
        return f"/rest/v1/{quote(self._settings.table, safe='_')}"

    def subscribe(
        self,
        path: CollectionPath,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        listener: _RemoteListener | None = None

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
            db_debug("supabase.subscription.cancel", path=path.text, listeners=len(self._listeners))
            if not self._listeners:
                self._channel.stop()

        subscription = Subscription(path, on_cancel=_remove)
        listener = _RemoteListener(subscription=subscription, on_snapshot=on_snapshot, on_error=on_error)
        self._listeners.append(listener)
        db_debug("supabase.subscription.start", path=path.text, listeners=len(self._listeners))
        self._channel.start(
            SupabaseRealtimeSubscription(
                url=self._settings.url,
                api_key=self._settings.api_key,
                schema=self._settings.schema,
                table=self._settings.table,
                access_token=self._token_provider(),
            )
        )
        self._refresh(listener)
        return subscription

    def create(self, path: CollectionPath, fields: Mapping[str, Any]) -> Future:
        payload, created_by, _wants_server_timestamp = split_record_fields(fields)
        # created_at is left out so the column default (now()) stamps the row.
        row = {
            "collection_path": path.text,
            "created_by": created_by,
            "fields": payload,
        }
        request = self._rest.request_json(
            method="POST",
            path=self.table_path,
            query="?select=id",
            payload=[row],
            prefer="return=representation",
            bearer=self._token_provider(),
        )
        return _chain(request, _extract_created_id)

    def delete(self, path: CollectionPath, record_id: str) -> Future:
        request = self._rest.request_json(
            method="DELETE",
            path=self.table_path,
            query=(
                f"?id=eq.{quote(str(record_id), safe='-_')}"
                f"&collection_path=eq.{quote(path.text, safe='/-_')}"
            ),
            bearer=self._token_provider(),
        )
        return _chain(request, lambda _value: None)

    def shutdown(self) -> None:
        for listener in tuple(self._listeners):
            listener.subscription.cancel()
        self._channel.stop()
        self._rest.abort_all()

    def _refresh(self, listener: _RemoteListener) -> None:
        listener.refresh_pending = False
        if not listener.subscription.active:
            return
        listener.generation += 1
        generation = listener.generation
        path = listener.subscription.path
        request = self._rest.request_json(
            method="GET",
            path=self.table_path,
            query=f"?select={_SELECT_COLUMNS}&collection_path=eq.{quote(path.text, safe='/-_')}",
            bearer=self._token_provider(),
        )
        request.add_done_callback(
            lambda done, listener=listener, generation=generation: self._on_read_done(
                listener, generation, done
            )
        )

    def _schedule_refresh(self, listener: _RemoteListener) -> None:
        if listener.refresh_pending or not listener.subscription.active:
            return
        listener.refresh_pending = True
        QTimer.singleShot(_REFRESH_DEBOUNCE_MS, lambda listener=listener: self._refresh(listener))

    def _on_read_done(self, listener: _RemoteListener, generation: int, done: Future) -> None:
        if not listener.subscription.active or generation != listener.generation:
            return
        path = listener.subscription.path
        error = done.exception()
        if error is not None:
            db_debug("supabase.snapshot.error", path=path.text, error=str(error))
            listener.on_error(SubscriptionError(f"Could not load {path.collection}: {error}"))
            return
        rows = done.result()
        records = [flatten_row(row) for row in rows if isinstance(row, dict)] if isinstance(rows, list) else []
        db_debug("supabase.snapshot", path=path.text, records=len(records), generation=generation)
        listener.on_snapshot(records)

    def _on_channel_change(self, changed_path: str) -> None:
        for listener in tuple(self._listeners):
            if not changed_path or changed_path == listener.subscription.path.text:
                self._schedule_refresh(listener)

    def _on_channel_joined(self) -> None:
        for listener in tuple(self._listeners):
            self._schedule_refresh(listener)

    def _on_channel_status(self, level: str, message: str) -> None:
        if level not in {"warning", "error"}:
            return
        for listener in tuple(self._listeners):
            if listener.subscription.active:
                listener.on_error(SubscriptionError(message))


def flatten_row(row: Mapping[str, Any]) -> dict[str, Any]:
    fields = row.get("fields")
    record: dict[str, Any] = dict(fields) if isinstance(fields, dict) else {}
    record["id"] = row.get("id")
    record["created_by"] = row.get("created_by") or ""
    record["created_at"] = row.get("created_at")
    return record


def _extract_created_id(value: object) -> str:
    if isinstance(value, list) and value and isinstance(value[0], dict):
        record_id = str(value[0].get("id", "") or "").strip()
        if record_id:
            return record_id
    raise SupabaseRequestError("create", "response did not include the created record id")


def _chain(source: Future, transform: Callable[[Any], Any]) -> Future:
    target: Future = Future()

    def _relay(done: Future) -> None:
        error = done.exception()
        if error is not None:
            target.set_exception(error)
            return
        try:
            target.set_result(transform(done.result()))
        except Exception as exc:
            target.set_exception(exc)

    source.add_done_callback(_relay)
    return target
