from __future__ import annotations

from dataclasses import dataclass

from PySide6.QtCore import QObject, QTimer, Signal

from frontdesk.app.db_debug import db_debug
from frontdesk.app.settings_store import DEFAULT_NOTIFICATION_TIMEOUT_MS


KIND_SUCCESS = "success"
KIND_ERROR = "error"
KIND_INFO = "info"
_KINDS = (KIND_SUCCESS, KIND_ERROR, KIND_INFO)


@dataclass(frozen=True, slots=True)
class Notification:
    message: str = ""
    kind: str = KIND_INFO
    visible: bool = False


class NotificationChannel(QObject):
    """Single-slot status message with automatic dismissal.

    A new message always replaces the current one and restarts the timer.
    Dismissing stops the timer, so a stale timeout can never hide a newer
    message.
    """

    changed = Signal(object)

    def __init__(
        self,
        *,
        timeout_ms: int = DEFAULT_NOTIFICATION_TIMEOUT_MS,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._current = Notification()
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.setInterval(max(0, int(timeout_ms)))
        self._timer.timeout.connect(self._on_timeout)

    @property
    def current(self) -> Notification:
        return self._current

    @property
    def timeout_ms(self) -> int:
        return self._timer.interval()

    @property
    def dismiss_pending(self) -> bool:
        return self._timer.isActive()

    def show(self, message: str, kind: str = KIND_INFO) -> None:
        normalized_kind = kind if kind in _KINDS else KIND_INFO
        self._timer.stop()
        self._current = Notification(message=str(message or "").strip(), kind=normalized_kind, visible=True)
        db_debug("notification.show", kind=normalized_kind, message=self._current.message)
        self._timer.start()
        self.changed.emit(self._current)

    def success(self, message: str) -> None:
        self.show(message, KIND_SUCCESS)

    def error(self, message: str) -> None:
        self.show(message, KIND_ERROR)

    def dismiss(self) -> None:
        self._timer.stop()
        if not self._current.visible:
            return
        self._current = Notification(message=self._current.message, kind=self._current.kind, visible=False)
        self.changed.emit(self._current)

    def _on_timeout(self) -> None:
        self.dismiss()
