from __future__ import annotations

from PySide6.QtWidgets import QLabel, QWidget

from frontdesk.app.identity import Identity, IdentityAdapter
from frontdesk.app.notifications import Notification, NotificationChannel


SIGNED_OUT_TEXT = "You are not signed in. Records cannot be added or deleted."
SIGNING_IN_TEXT = "Signing in..."


def _repolish(widget: QWidget) -> None:
    style = widget.style()
    style.unpolish(widget)
    style.polish(widget)


class NotificationBanner(QLabel):
    def __init__(self, channel: NotificationChannel, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setObjectName("NotificationBanner")
        self.setWordWrap(True)
        self._channel = channel
        channel.changed.connect(self._on_changed)
        self._on_changed(channel.current)

    def mousePressEvent(self, event) -> None:
        self._channel.dismiss()
        super().mousePressEvent(event)

    def _on_changed(self, notification: Notification) -> None:
        self.setProperty("kind", notification.kind)
        self.setText(notification.message)
        self.setVisible(notification.visible and bool(notification.message))
        _repolish(self)


class AuthBanner(QLabel):
    """Shown while there is no usable identity (resolving or signed out)."""

    def __init__(self, identity: IdentityAdapter, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setObjectName("AuthBanner")
        self.setWordWrap(True)
        self._identity = identity
        identity.identity_changed.connect(self._on_identity_changed)
        self._refresh()

    def _on_identity_changed(self, _identity: Identity | None) -> None:
        self._refresh()

    def _refresh(self) -> None:
        if not self._identity.resolved:
            self.setText(SIGNING_IN_TEXT)
            self.setVisible(True)
            return
        self.setText(SIGNED_OUT_TEXT)
        self.setVisible(self._identity.identity is None)
