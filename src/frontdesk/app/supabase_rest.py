from __future__ import annotations

import json
from concurrent.futures import Future
from time import perf_counter
from typing import Any

from PySide6.QtCore import QByteArray, QObject, QUrl
from PySide6.QtNetwork import QNetworkAccessManager, QNetworkReply, QNetworkRequest

from frontdesk.app.db_debug import db_debug
from frontdesk.app.errors import SupabaseRequestError
from frontdesk.app.settings_store import SupabaseSettings


class SupabaseRestClient(QObject):
    """Asynchronous PostgREST / GoTrue requests resolved on the GUI thread.

    Every request returns a `concurrent.futures.Future`. The future is resolved
    from the reply's `finished` signal, so done-callbacks always run on the
    thread that owns this object.
    """

    def __init__(
        self,
        settings: SupabaseSettings,
        *,
        parent: QObject | None = None,
        manager: QNetworkAccessManager | None = None,
    ) -> None:
        super().__init__(parent)
        self._settings = settings
        self._manager = manager or QNetworkAccessManager(self)
        self._pending: set[QNetworkReply] = set()

    @property
    def settings(self) -> SupabaseSettings:
        return self._settings

    def request_json(
        self,
        *,
        method: str,
        path: str,
        query: str = "",
        payload: Any | None = None,
        prefer: str = "",
        bearer: str = "",
        use_schema: bool = True,
    ) -> Future:
        future: Future = Future()
        settings = self._settings
        if not settings.configured:
            future.set_exception(
                SupabaseRequestError(path, "Supabase URL or API key is missing.")
            )
            return future

        verb = method.upper()
        request = QNetworkRequest(QUrl(f"{settings.url.rstrip('/')}{path}{query}"))
        request.setTransferTimeout(int(settings.timeout_seconds * 1000))
        request.setRawHeader(b"apikey", settings.api_key.encode("utf-8"))
        request.setRawHeader(
            b"Authorization",
            f"Bearer {bearer or settings.api_key}".encode("utf-8"),
        )
        if use_schema and settings.schema:
            request.setRawHeader(b"Accept-Profile", settings.schema.encode("utf-8"))
            request.setRawHeader(b"Content-Profile", settings.schema.encode("utf-8"))
        if prefer:
            request.setRawHeader(b"Prefer", prefer.encode("utf-8"))

        body = QByteArray()
        if payload is not None:
            request.setHeader(QNetworkRequest.KnownHeaders.ContentTypeHeader, "application/json")
            body = QByteArray(json.dumps(payload, ensure_ascii=False).encode("utf-8"))

        db_debug(
            "supabase.request",
            method=verb,
            path=path,
            query_present=bool(query),
            payload_bytes=body.size(),
        )
        if verb == "GET":
            reply = self._manager.get(request)
        elif verb == "POST":
            reply = self._manager.post(request, body)
        elif verb == "DELETE" and payload is None:
            reply = self._manager.deleteResource(request)
        else:
            reply = self._manager.sendCustomRequest(request, QByteArray(verb.encode("ascii")), body)

        self._pending.add(reply)
        started_at = perf_counter()
        reply.finished.connect(
            lambda reply=reply: self._on_reply_finished(
                reply,
                future,
                method=verb,
                path=path,
                started_at=started_at,
            )
        )
        return future

    def abort_all(self) -> None:
        for reply in tuple(self._pending):
            reply.abort()

    def _on_reply_finished(
        self,
        reply: QNetworkReply,
        future: Future,
        *,
        method: str,
        path: str,
        started_at: float,
    ) -> None:
        self._pending.discard(reply)
        status_raw = reply.attribute(QNetworkRequest.Attribute.HttpStatusCodeAttribute)
        status_code = int(status_raw) if isinstance(status_raw, int) else 0
        body = bytes(reply.readAll().data())
        network_error = reply.error()
        error_text = str(reply.errorString() or "").strip()
        reply.deleteLater()

        if future.done():
            return

        if network_error != QNetworkReply.NetworkError.NoError and status_code < 400:
            db_debug("supabase.request.error", method=method, path=path, error=error_text)
            future.set_exception(SupabaseRequestError(path, error_text or "network error"))
            return

        db_debug(
            "supabase.response",
            method=method,
            path=path,
            status=status_code,
            body_bytes=len(body),
            duration_ms=round((perf_counter() - started_at) * 1000.0, 2),
        )
        if status_code >= 400:
            detail = body.decode("utf-8", errors="replace").strip()
            message = f"{status_code} {_error_message(detail) or error_text}".strip()
            future.set_exception(SupabaseRequestError(path, message, status=status_code))
            return
        if not body:
            future.set_result(None)
            return
        try:
            future.set_result(json.loads(body.decode("utf-8")))
        except ValueError as exc:
            db_debug("supabase.response.parse_error", method=method, path=path, error=str(exc))
            future.set_exception(
                SupabaseRequestError(path, f"non-JSON payload ({len(body)} bytes)", status=status_code)
            )


def _error_message(detail: str) -> str:
    if not detail:
        return ""
    try:
        parsed = json.loads(detail)
    except ValueError:
        return detail
    if isinstance(parsed, dict):
        for key in ("message", "msg", "error_description", "error"):
            value = parsed.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return detail
