from __future__ import annotations

import json
import sqlite3
from concurrent.futures import Future
from contextlib import closing
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, Mapping, Protocol
from uuid import uuid4

from PySide6.QtCore import QTimer

from frontdesk.app.db_debug import db_debug
from frontdesk.app.errors import SubscriptionError
from frontdesk.app.settings_store import SCOPE_PRIVATE


DEFAULT_SQLITE_FILE_NAME = "frontdesk_records.sqlite3"
_LOCAL_SQLITE_TABLE = "records"
_PUBLIC_SCOPE_SEGMENT = "public"
_USER_SCOPE_SEGMENT = "users"

SnapshotCallback = Callable[[list[dict[str, Any]]], None]
ErrorCallback = Callable[[Exception], None]


class _ServerTimestamp:
    """Placeholder replaced by the store's own clock when the record is written."""

    _instance: _ServerTimestamp | None = None

    def __new__(cls) -> _ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True, slots=True)
class CollectionPath:
    namespace: str
    scope: tuple[str, ...]
    collection: str

    @property
    def text(self) -> str:
        return "/".join((self.namespace, *self.scope, self.collection))

    def __str__(self) -> str:
        return self.text


def collection_path_for(
    *,
    namespace: str,
    collection: str,
    scope_policy: str,
    identity_id: str,
) -> CollectionPath:
    if scope_policy == SCOPE_PRIVATE:
        scope: tuple[str, ...] = (_USER_SCOPE_SEGMENT, identity_id)
    else:
        scope = (_PUBLIC_SCOPE_SEGMENT,)
    return CollectionPath(namespace=namespace, scope=scope, collection=collection)


class Subscription:
    """Cancellation handle for a live collection listener."""

    def __init__(self, path: CollectionPath, *, on_cancel: Callable[[], None] | None = None) -> None:
        self.path = path
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        callback = self._on_cancel
        self._on_cancel = None
        if callback is not None:
            callback()


class RecordStore(Protocol):
    backend: str

    def subscribe(
        self,
        path: CollectionPath,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        raise NotImplementedError

    def create(self, path: CollectionPath, fields: Mapping[str, Any]) -> Future:
        raise NotImplementedError

    def delete(self, path: CollectionPath, record_id: str) -> Future:
        raise NotImplementedError


def split_record_fields(fields: Mapping[str, Any]) -> tuple[dict[str, Any], str, bool]:
    """Separate domain fields from the creator id and server-timestamp request."""
    payload: dict[str, Any] = {}
    created_by = ""
    wants_server_timestamp = False
    for key, value in fields.items():
        if key == "created_by":
            created_by = str(value or "").strip()
        elif key == "created_at":
            wants_server_timestamp = value is SERVER_TIMESTAMP
        elif key != "id":
            payload[str(key)] = value
    return payload, created_by, wants_server_timestamp


@dataclass(slots=True, eq=False)
class _LocalListener:
    subscription: Subscription
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback


class LocalSqliteRecordStore:
    backend = "local_sqlite"

    def __init__(
        self,
        data_root: Path | str,
        *,
        sqlite_file_name: str = DEFAULT_SQLITE_FILE_NAME,
    ) -> None:
        self.data_root = _normalize_path(Path(data_root))
        self._sqlite_file_name = str(sqlite_file_name or DEFAULT_SQLITE_FILE_NAME).strip()
        self._listeners: list[_LocalListener] = []

    @property
    def storage_file_path(self) -> Path:
        return self.data_root / self._sqlite_file_name

    def subscribe(
        self,
        path: CollectionPath,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        listener: _LocalListener | None = None

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
            db_debug("sqlite.subscription.cancel", path=path.text)

        subscription = Subscription(path, on_cancel=_remove)
        listener = _LocalListener(subscription=subscription, on_snapshot=on_snapshot, on_error=on_error)
        self._listeners.append(listener)
        db_debug("sqlite.subscription.start", path=path.text, listeners=len(self._listeners))
        QTimer.singleShot(0, lambda: self._push_snapshot(listener))
        return subscription

    def create(self, path: CollectionPath, fields: Mapping[str, Any]) -> Future:
        future: Future = Future()
        payload, created_by, wants_server_timestamp = split_record_fields(fields)
        record_id = uuid4().hex
        created_at = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        if not wants_server_timestamp:
            created_at = ""
        started_at = perf_counter()
        try:
            with closing(self._connect()) as connection, connection:
                self._ensure_schema(connection)
                connection.execute(
                    (
                        f"insert into {_LOCAL_SQLITE_TABLE} "
                        "(id, collection_path, created_by, created_at, fields_json) "
                        "values (?, ?, ?, ?, ?)"
                    ),
                    (record_id, path.text, created_by, created_at, json.dumps(payload, ensure_ascii=False)),
                )
        except (sqlite3.Error, OSError) as exc:
            db_debug("sqlite.create.error", path=path.text, error=str(exc))
            future.set_exception(exc)
            return future
        db_debug(
            "sqlite.create",
            path=path.text,
            record_id=record_id,
            duration_ms=round((perf_counter() - started_at) * 1000.0, 2),
        )
        future.set_result(record_id)
        self._notify_path(path)
        return future

    def delete(self, path: CollectionPath, record_id: str) -> Future:
        future: Future = Future()
        try:
            with closing(self._connect()) as connection, connection:
                self._ensure_schema(connection)
                connection.execute(
                    f"delete from {_LOCAL_SQLITE_TABLE} where id = ? and collection_path = ?",
                    (str(record_id), path.text),
                )
        except (sqlite3.Error, OSError) as exc:
            db_debug("sqlite.delete.error", path=path.text, record_id=record_id, error=str(exc))
            future.set_exception(exc)
            return future
        db_debug("sqlite.delete", path=path.text, record_id=record_id)
        future.set_result(None)
        self._notify_path(path)
        return future

    def read_records(self, path: CollectionPath) -> list[dict[str, Any]]:
        with closing(self._connect()) as connection:
            self._ensure_schema(connection)
            rows = connection.execute(
                (
                    f"select id, created_by, created_at, fields_json from {_LOCAL_SQLITE_TABLE} "
                    "where collection_path = ?"
                ),
                (path.text,),
            ).fetchall()
        records: list[dict[str, Any]] = []
        for record_id, created_by, created_at, fields_json in rows:
            try:
                fields = json.loads(fields_json or "{}")
            except ValueError:
                fields = {}
            if not isinstance(fields, dict):
                fields = {}
            records.append(
                {
                    **fields,
                    "id": record_id,
                    "created_by": created_by or "",
                    "created_at": created_at or None,
                }
            )
        return records

    def _notify_path(self, path: CollectionPath) -> None:
        for listener in tuple(self._listeners):
            if listener.subscription.path == path:
                QTimer.singleShot(0, lambda listener=listener: self._push_snapshot(listener))

    def _push_snapshot(self, listener: _LocalListener) -> None:
        if not listener.subscription.active:
            return
        path = listener.subscription.path
        try:
            records = self.read_records(path)
        except (sqlite3.Error, OSError) as exc:
            db_debug("sqlite.snapshot.error", path=path.text, error=str(exc))
            listener.on_error(SubscriptionError(f"Could not read {path.text}: {exc}"))
            return
        db_debug("sqlite.snapshot", path=path.text, records=len(records))
        listener.on_snapshot(records)

    def _connect(self) -> sqlite3.Connection:
        self.data_root.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(str(self.storage_file_path), timeout=4.0)

    def _ensure_schema(self, connection: sqlite3.Connection) -> None:
        connection.execute(
            f"""
            create table if not exists {_LOCAL_SQLITE_TABLE} (
                id text primary key,
                collection_path text not null,
                created_by text not null default '',
                created_at text not null default '',
                fields_json text not null
            )
            """
        )


def _normalize_path(path: Path) -> Path:
    expanded = path.expanduser()
    try:
        return expanded.resolve()
    except OSError:
        return expanded
