from __future__ import annotations

from PySide6.QtWidgets import (
    QDialog,
    QHBoxLayout,
    QLabel,
    QPushButton,
    QVBoxLayout,
    QWidget,
)


class AppMessageDialog(QDialog):
    def __init__(
        self,
        *,
        title: str,
        message: str,
        warning: bool,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self.setObjectName("FrontDeskRoot")
        self.setWindowTitle(title)
        self.setMinimumSize(460, 180)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(18, 18, 18, 18)
        layout.setSpacing(12)

        message_label = QLabel(message, self)
        message_label.setWordWrap(True)
        message_label.setObjectName("AppDialogWarning" if warning else "AppDialogHint")
        layout.addWidget(message_label, 1)

        footer = QHBoxLayout()
        footer.setContentsMargins(0, 0, 0, 0)
        footer.setSpacing(8)
        footer.addStretch(1)
        ok_button = QPushButton("OK", self)
        ok_button.setProperty("primary", "true")
        ok_button.clicked.connect(self.accept)
        footer.addWidget(ok_button)
        layout.addLayout(footer)

        ok_button.setFocus()

    @classmethod
    def show_warning(
        cls,
        *,
        parent: QWidget | None,
        title: str,
        message: str,
    ) -> None:
        dialog = cls(title=title, message=message, warning=True, parent=parent)
        dialog.exec()
