from __future__ import annotations

import hashlib
import logging
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from PySide6.QtCore import QObject, QTimer, Signal

from frontdesk.app.db_debug import db_debug
from frontdesk.app.errors import SupabaseRequestError
from frontdesk.app.settings_store import load_local_device_id
from frontdesk.app.supabase_rest import SupabaseRestClient


_REFRESH_MARGIN_SECONDS = 60
_MIN_REFRESH_SECONDS = 30


@dataclass(frozen=True, slots=True)
class Identity:
    user_id: str
    anonymous: bool = True
    access_token: str = ""
    refresh_token: str = ""
    expires_in: int = 0


class IdentityProvider(Protocol):
    def sign_in_with_token(self, token: str) -> Future:
        raise NotImplementedError

    def sign_in_anonymously(self) -> Future:
        raise NotImplementedError

    def sign_out(self) -> None:
        raise NotImplementedError


class SupabaseIdentityProvider:
    def __init__(self, rest: SupabaseRestClient) -> None:
        self._rest = rest
        self._access_token = ""

    def sign_in_with_token(self, token: str) -> Future:
        request = self._rest.request_json(
            method="GET",
            path="/auth/v1/user",
            bearer=token,
            use_schema=False,
        )
        return self._resolve_identity(request, lambda payload: _identity_from_user(payload, token))

    def sign_in_anonymously(self) -> Future:
        request = self._rest.request_json(
            method="POST",
            path="/auth/v1/signup",
            payload={},
            use_schema=False,
        )
        return self._resolve_identity(request, _identity_from_session)

    def refresh_session(self, refresh_token: str) -> Future:
        request = self._rest.request_json(
            method="POST",
            path="/auth/v1/token",
            query="?grant_type=refresh_token",
            payload={"refresh_token": refresh_token},
            use_schema=False,
        )
        return self._resolve_identity(request, _identity_from_session)

    def sign_out(self) -> None:
        token = self._access_token
        self._access_token = ""
        if not token:
            return
        self._rest.request_json(
            method="POST",
            path="/auth/v1/logout",
            bearer=token,
            use_schema=False,
        )

    def _resolve_identity(self, request: Future, build: Callable[[Any], Identity]) -> Future:
        target: Future = Future()

        def _relay(done: Future) -> None:
            error = done.exception()
            if error is not None:
                target.set_exception(error)
                return
            try:
                identity = build(done.result())
            except SupabaseRequestError as exc:
                target.set_exception(exc)
                return
            self._access_token = identity.access_token
            target.set_result(identity)

        request.add_done_callback(_relay)
        return target


class LocalIdentityProvider:
    """Device-local identities for the SQLite backend; nothing is verified."""

    def __init__(self, *, device_id_loader: Callable[[], str] = load_local_device_id) -> None:
        self._device_id_loader = device_id_loader

    def sign_in_with_token(self, token: str) -> Future:
        future: Future = Future()
        normalized = str(token or "").strip()
        if not normalized:
            future.set_exception(ValueError("Sign-in token is empty."))
            return future
        digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]
        future.set_result(Identity(user_id=f"token-{digest}", anonymous=False, access_token=normalized))
        return future

    def sign_in_anonymously(self) -> Future:
        future: Future = Future()
        try:
            device_id = self._device_id_loader()
        except OSError as exc:
            future.set_exception(exc)
            return future
        future.set_result(Identity(user_id=device_id, anonymous=True))
        return future

    def sign_out(self) -> None:
        return None


class IdentityAdapter(QObject):
    """Owns the current identity and announces every resolution.

    `resolved` is False until the first sign-in attempt finishes; after that
    `identity` is either an `Identity` or None (signed out / sign-in failed).
    """

    identity_changed = Signal(object)

    def __init__(
        self,
        provider: IdentityProvider,
        *,
        token: str = "",
        parent: QObject | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(parent)
        self._provider = provider
        self._token = str(token or "").strip()
        self._logger = logger or logging.getLogger("frontdesk.identity")
        self._resolved = False
        self._identity: Identity | None = None
        self._attempt = 0
        self._refresh_timer = QTimer(self)
        self._refresh_timer.setSingleShot(True)
        self._refresh_timer.timeout.connect(self.refresh_session)

    @property
    def resolved(self) -> bool:
        return self._resolved

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def signed_in(self) -> bool:
        return self._resolved and self._identity is not None

    def access_token(self) -> str:
        identity = self._identity
        return identity.access_token if identity is not None else ""

    def start(self) -> None:
        if self._token:
            self.sign_in_with_token(self._token)
        else:
            self.sign_in_anonymously()

    def sign_in_with_token(self, token: str) -> None:
        attempt = self._next_attempt()
        db_debug("identity.sign_in", method="token", attempt=attempt)
        self._provider.sign_in_with_token(token).add_done_callback(
            lambda done: self._on_token_sign_in_done(attempt, done)
        )

    def sign_in_anonymously(self) -> None:
        attempt = self._next_attempt()
        self._sign_in_anonymously(attempt)

    def sign_out(self) -> None:
        self._next_attempt()
        self._provider.sign_out()
        db_debug("identity.sign_out")
        self._resolve(None)

    def refresh_session(self) -> None:
        """Trade the refresh token for a new access token, keeping the same user."""
        identity = self._identity
        refresh = getattr(self._provider, "refresh_session", None)
        if identity is None or not identity.refresh_token or not callable(refresh):
            return
        attempt = self._attempt
        db_debug("identity.refresh", user_id=identity.user_id)
        refresh(identity.refresh_token).add_done_callback(
            lambda done: self._on_refresh_done(attempt, identity, done)
        )

    def _sign_in_anonymously(self, attempt: int) -> None:
        db_debug("identity.sign_in", method="anonymous", attempt=attempt)
        self._provider.sign_in_anonymously().add_done_callback(
            lambda done: self._on_anonymous_sign_in_done(attempt, done)
        )

    def _on_token_sign_in_done(self, attempt: int, done: Future) -> None:
        if attempt != self._attempt:
            return
        error = done.exception()
        if error is None:
            self._resolve(done.result())
            return
        self._logger.warning("Token sign-in failed, falling back to anonymous: %s", error)
        db_debug("identity.sign_in.error", method="token", error=str(error))
        self._sign_in_anonymously(attempt)

    def _on_anonymous_sign_in_done(self, attempt: int, done: Future) -> None:
        if attempt != self._attempt:
            return
        error = done.exception()
        if error is None:
            self._resolve(done.result())
            return
        self._logger.warning("Anonymous sign-in failed: %s", error)
        db_debug("identity.sign_in.error", method="anonymous", error=str(error))
        self._resolve(None)

    def _on_refresh_done(self, attempt: int, previous: Identity, done: Future) -> None:
        if attempt != self._attempt or self._identity is not previous:
            return
        error = done.exception()
        if error is not None:
            self._logger.warning("Session refresh failed, signing in again: %s", error)
            db_debug("identity.refresh.error", error=str(error))
            self.start()
            return
        refreshed = done.result()
        if refreshed.user_id != previous.user_id:
            self._resolve(refreshed)
            return
        # Same user: swap the tokens in place, listeners keep their subscriptions.
        self._identity = refreshed
        self._schedule_refresh(refreshed)

    def _schedule_refresh(self, identity: Identity | None) -> None:
        self._refresh_timer.stop()
        if identity is None or not identity.refresh_token or identity.expires_in <= 0:
            return
        delay = max(identity.expires_in - _REFRESH_MARGIN_SECONDS, _MIN_REFRESH_SECONDS)
        self._refresh_timer.start(delay * 1000)

    def _next_attempt(self) -> int:
        self._attempt += 1
        return self._attempt

    def _resolve(self, identity: Identity | None) -> None:
        first = not self._resolved
        previous = self._identity
        self._resolved = True
        self._identity = identity
        self._schedule_refresh(identity)
        if not first and previous == identity:
            return
        db_debug(
            "identity.changed",
            user_id=identity.user_id if identity is not None else "",
            anonymous=identity.anonymous if identity is not None else None,
        )
        self.identity_changed.emit(identity)


def _identity_from_user(payload: object, token: str) -> Identity:
    if not isinstance(payload, dict):
        raise SupabaseRequestError("/auth/v1/user", "response is not a user object")
    user_id = str(payload.get("id", "") or "").strip()
    if not user_id:
        raise SupabaseRequestError("/auth/v1/user", "response has no user id")
    return Identity(
        user_id=user_id,
        anonymous=bool(payload.get("is_anonymous", False)),
        access_token=token,
    )


def _identity_from_session(payload: object) -> Identity:
    if not isinstance(payload, dict):
        raise SupabaseRequestError("/auth/v1/signup", "response is not a session object")
    user = payload.get("user")
    access_token = str(payload.get("access_token", "") or "").strip()
    if not isinstance(user, dict) or not access_token:
        raise SupabaseRequestError("/auth/v1/signup", "response has no session")
    user_id = str(user.get("id", "") or "").strip()
    if not user_id:
        raise SupabaseRequestError("/auth/v1/signup", "response has no user id")
    return Identity(
        user_id=user_id,
        anonymous=bool(user.get("is_anonymous", True)),
        access_token=access_token,
        refresh_token=str(payload.get("refresh_token", "") or "").strip(),
        expires_in=_as_seconds(payload.get("expires_in")),
    )


def _as_seconds(value: object) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0
