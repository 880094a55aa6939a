from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlencode, urlsplit, urlunsplit

from PySide6.QtCore import QObject, QTimer, QUrl
from PySide6.QtNetwork import QAbstractSocket
from PySide6.QtWebSockets import QWebSocket

from frontdesk.app.db_debug import db_debug


_HEARTBEAT_INTERVAL_MS = 25_000
_RECONNECT_DELAY_MS = 2_000
_CHANGE_EVENTS = {"postgres_changes", "INSERT", "UPDATE", "DELETE"}


@dataclass(frozen=True, slots=True)
class SupabaseRealtimeSubscription:
    url: str
    api_key: str
    schema: str
    table: str
    access_token: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.url and self.api_key and self.schema and self.table)


class SupabaseRealtimeChannel(QObject):
    """Phoenix channel listening for row changes on one table.

    Callers only learn *that* something changed (and, when the frame carries
    it, which collection path the row belongs to); turning that into a full
    snapshot is the store's job.
    """

    def __init__(
        self,
        *,
        parent: QObject | None = None,
        on_change: Callable[[str], None] | None = None,
        on_joined: Callable[[], None] | None = None,
        on_status: Callable[[str, str], None] | None = None,
    ) -> None:
        super().__init__(parent)
        self._on_change = on_change
        self._on_joined = on_joined
        self._on_status = on_status
        self._subscription: SupabaseRealtimeSubscription | None = None
        self._socket: QWebSocket | None = None
        self._active = False
        self._joined = False
        self._join_ref = ""
        self._next_ref_value = 0

        self._heartbeat_timer = QTimer(self)
        self._heartbeat_timer.setInterval(_HEARTBEAT_INTERVAL_MS)
        self._heartbeat_timer.timeout.connect(self._send_heartbeat)

        self._reconnect_timer = QTimer(self)
        self._reconnect_timer.setSingleShot(True)
        self._reconnect_timer.setInterval(_RECONNECT_DELAY_MS)
        self._reconnect_timer.timeout.connect(self._connect_socket)

    @property
    def active(self) -> bool:
        return bool(self._active and self._subscription is not None)

    @property
    def joined(self) -> bool:
        return self._joined

    def start(self, subscription: SupabaseRealtimeSubscription) -> None:
        normalized = self._normalize_subscription(subscription)
        if not normalized.configured:
            self._emit_status("warning", "Supabase realtime is not configured.")
            db_debug("supabase.realtime.start_skipped", reason="not_configured")
            self.stop()
            return
        if (
            self._active
            and self._subscription == normalized
            and self._socket is not None
            and self._socket.state() != QAbstractSocket.SocketState.UnconnectedState
        ):
            db_debug(
                "supabase.realtime.start_skipped",
                reason="already_active",
                schema=normalized.schema,
                table=normalized.table,
            )
            return

        self.stop()
        self._subscription = normalized
        self._active = True
        db_debug("supabase.realtime.start", schema=normalized.schema, table=normalized.table)
        self._connect_socket()

    def stop(self) -> None:
        was_active = self._active
        self._active = False
        self._joined = False
        self._join_ref = ""
        self._heartbeat_timer.stop()
        self._reconnect_timer.stop()
        self._teardown_socket()
        self._subscription = None
        if was_active:
            db_debug("supabase.realtime.stop")

    def _ensure_socket(self) -> QWebSocket:
        socket = self._socket
        if socket is not None:
            return socket

        socket = QWebSocket(parent=self)
        socket.connected.connect(self._on_connected)
        socket.disconnected.connect(self._on_disconnected)
        socket.textMessageReceived.connect(self._on_text_message_received)
        socket.errorOccurred.connect(self._on_error_occurred)
        self._socket = socket
        return socket

    def _teardown_socket(self) -> None:
        socket = self._socket
        self._socket = None
        if socket is None:
            return
        # Disconnect first so the close below cannot schedule a reconnect.
        for signal, slot in (
            (socket.connected, self._on_connected),
            (socket.disconnected, self._on_disconnected),
            (socket.textMessageReceived, self._on_text_message_received),
            (socket.errorOccurred, self._on_error_occurred),
        ):
            try:
                signal.disconnect(slot)
            except (RuntimeError, TypeError):
                continue
        socket.abort()
        socket.deleteLater()

    def _connect_socket(self) -> None:
        if not self._active:
            return
        subscription = self._subscription
        if subscription is None:
            return
        socket = self._ensure_socket()
        if socket.state() in (
            QAbstractSocket.SocketState.ConnectingState,
            QAbstractSocket.SocketState.ConnectedState,
        ):
            return

        self._joined = False
        self._join_ref = ""
        db_debug("supabase.realtime.connecting", schema=subscription.schema, table=subscription.table)
        socket.open(QUrl(build_websocket_url(subscription)))

    def _on_connected(self) -> None:
        if not self._active or self._subscription is None:
            return
        db_debug(
            "supabase.realtime.connected",
            schema=self._subscription.schema,
            table=self._subscription.table,
        )
        self._send_join()

    def _on_disconnected(self) -> None:
        self._heartbeat_timer.stop()
        self._joined = False
        db_debug("supabase.realtime.disconnected", will_reconnect=bool(self._active))
        if self._active:
            self._emit_status("warning", "Live updates disconnected; reconnecting.")
            self._reconnect_timer.start()

    def _on_error_occurred(self, _error) -> None:
        socket = self._socket
        message = "Live update connection error."
        if socket is not None:
            detail = str(socket.errorString() or "").strip()
            if detail:
                message = f"{message} {detail}"
        self._emit_status("warning", message)
        db_debug("supabase.realtime.error", message=message)

    def _on_text_message_received(self, message: str) -> None:
        if not self._active:
            return
        try:
            event = json.loads(message)
        except ValueError:
            db_debug("supabase.realtime.message_invalid_json")
            return
        if not isinstance(event, dict):
            return

        event_name = str(event.get("event", "") or "").strip()
        payload = event.get("payload")

        if event_name == "phx_reply":
            self._handle_join_reply(payload, ref=str(event.get("ref", "") or "").strip())
            return
        if event_name in _CHANGE_EVENTS and self._on_change is not None:
            self._on_change(extract_change_path(payload))

    def _handle_join_reply(self, payload: object, *, ref: str) -> None:
        if ref != self._join_ref:
            return
        if not isinstance(payload, dict):
            return
        status = str(payload.get("status", "") or "").strip().lower()
        if status == "ok":
            self._joined = True
            self._heartbeat_timer.start()
            db_debug("supabase.realtime.joined")
            if self._on_joined is not None:
                self._on_joined()
            return
        self._emit_status("error", "Live updates were rejected by the server.")
        db_debug("supabase.realtime.join_rejected", status=status or "unknown")

    def _send_join(self) -> None:
        socket = self._socket
        subscription = self._subscription
        if socket is None or subscription is None:
            return
        if socket.state() != QAbstractSocket.SocketState.ConnectedState:
            return

        self._join_ref = self._next_ref()
        socket.sendTextMessage(
            json.dumps(build_join_message(subscription, ref=self._join_ref), separators=(",", ":"))
        )

    def _send_heartbeat(self) -> None:
        socket = self._socket
        if socket is None or socket.state() != QAbstractSocket.SocketState.ConnectedState:
            return
        heartbeat = {
            "topic": "phoenix",
            "event": "heartbeat",
            "payload": {},
            "ref": self._next_ref(),
        }
        socket.sendTextMessage(json.dumps(heartbeat, separators=(",", ":")))

    def _next_ref(self) -> str:
        self._next_ref_value += 1
        return str(self._next_ref_value)

    def _normalize_subscription(
        self,
        subscription: SupabaseRealtimeSubscription,
    ) -> SupabaseRealtimeSubscription:
        return SupabaseRealtimeSubscription(
            url=str(subscription.url or "").strip().rstrip("/"),
            api_key=str(subscription.api_key or "").strip(),
            schema=str(subscription.schema or "").strip() or "public",
            table=str(subscription.table or "").strip(),
            access_token=str(subscription.access_token or "").strip(),
        )

    def _emit_status(self, level: str, message: str) -> None:
        callback = self._on_status
        if callback is None:
            return
        callback(str(level or "info"), str(message or "").strip())


def build_websocket_url(subscription: SupabaseRealtimeSubscription) -> str:
    parsed = urlsplit(subscription.url)
    scheme = "wss" if parsed.scheme.casefold() == "https" else "ws"
    query = urlencode({"apikey": subscription.api_key, "vsn": "1.0.0"})
    return urlunsplit((scheme, parsed.netloc, "/realtime/v1/websocket", query, ""))


def build_join_message(subscription: SupabaseRealtimeSubscription, *, ref: str) -> dict[str, Any]:
    config: dict[str, Any] = {
        "broadcast": {"self": False},
        "presence": {"key": ""},
        "postgres_changes": [
            {
                "event": "*",
                "schema": subscription.schema,
                "table": subscription.table,
            }
        ],
        "private": False,
    }
    payload: dict[str, Any] = {"config": config}
    if subscription.access_token:
        payload["access_token"] = subscription.access_token
    return {
        "topic": f"realtime:{subscription.schema}:{subscription.table}",
        "event": "phx_join",
        "payload": payload,
        "ref": ref,
    }


def extract_change_path(payload: object) -> str:
    """Collection path of the changed row, or "" when the frame does not say.

    DELETE frames usually carry only the primary key in `old_record`, so an
    empty result means "could be any path".
    """
    if not isinstance(payload, dict):
        return ""
    for candidate in (payload.get("data"), payload):
        if not isinstance(candidate, dict):
            continue
        for row_key in ("record", "new", "old_record", "old"):
            row = candidate.get(row_key)
            if isinstance(row, dict):
                path = str(row.get("collection_path", "") or "").strip()
                if path:
                    return path
    return ""
