from __future__ import annotations

from typing import Callable

from PySide6.QtCore import QDate, QTime, Qt
from PySide6.QtWidgets import (
    QDateEdit,
    QFormLayout,
    QFrame,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QPlainTextEdit,
    QPushButton,
    QScrollArea,
    QTimeEdit,
    QVBoxLayout,
    QWidget,
)

from frontdesk.app.client_context import EntryWorkspace
from frontdesk.app.deletion import DeletionState
from frontdesk.app.errors import FrontDeskError, ValidationError
from frontdesk.app.identity import Identity, IdentityAdapter
from frontdesk.app.records import FIELD_DATE, FIELD_MULTILINE, FIELD_TIME, Entry, FieldSpec


_DATE_FORMAT = "yyyy-MM-dd"
_TIME_FORMAT = "HH:mm"


class EntryRow(QFrame):
    def __init__(
        self,
        *,
        title: str,
        detail: str,
        on_delete: Callable[[], None],
        delete_enabled: bool,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self.setObjectName("EntryRow")

        layout = QHBoxLayout(self)
        layout.setContentsMargins(10, 8, 8, 8)
        layout.setSpacing(8)

        text_layout = QVBoxLayout()
        text_layout.setContentsMargins(0, 0, 0, 0)
        text_layout.setSpacing(4)
        title_label = QLabel(title, self)
        title_label.setObjectName("EntryRowTitle")
        title_label.setWordWrap(True)
        text_layout.addWidget(title_label, 0)
        detail_label = QLabel(detail, self)
        detail_label.setObjectName("EntryRowDetail")
        detail_label.setWordWrap(True)
        text_layout.addWidget(detail_label, 0)
        layout.addLayout(text_layout, 1)

        delete_button = QPushButton("Delete", self)
        delete_button.setObjectName("EntryRowDeleteButton")
        delete_button.setCursor(Qt.CursorShape.PointingHandCursor)
        delete_button.setEnabled(delete_enabled)
        delete_button.clicked.connect(lambda _checked=False: on_delete())
        layout.addWidget(delete_button, 0, Qt.AlignmentFlag.AlignTop)
        self.delete_button = delete_button


class ConfirmBar(QFrame):
    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setObjectName("ConfirmBar")

        layout = QHBoxLayout(self)
        layout.setContentsMargins(10, 6, 10, 6)
        layout.setSpacing(8)
        self.message_label = QLabel("", self)
        self.message_label.setWordWrap(True)
        layout.addWidget(self.message_label, 1)
        self.cancel_button = QPushButton("Cancel", self)
        layout.addWidget(self.cancel_button, 0)
        self.confirm_button = QPushButton("Delete", self)
        self.confirm_button.setProperty("danger", "true")
        layout.addWidget(self.confirm_button, 0)
        self.hide()


class EntryPanel(QWidget):
    """Form, search box, live list and delete confirmation for one entity type."""

    def __init__(
        self,
        workspace: EntryWorkspace,
        identity: IdentityAdapter,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self._workspace = workspace
        self._schema = workspace.schema
        self._identity = identity
        self._editors: dict[str, QWidget] = {}
        self._rows: list[EntryRow] = []

        root = QVBoxLayout(self)
        root.setContentsMargins(12, 12, 12, 12)
        root.setSpacing(10)

        title_label = QLabel(self._schema.title, self)
        title_label.setObjectName("PanelTitle")
        root.addWidget(title_label, 0)

        form_layout = QFormLayout()
        form_layout.setContentsMargins(0, 0, 0, 0)
        form_layout.setSpacing(6)
        for spec in self._schema.fields:
            editor = self._build_editor(spec)
            self._editors[spec.name] = editor
            label = f"{spec.label} *" if spec.required else spec.label
            form_layout.addRow(label, editor)
        root.addLayout(form_layout)

        self._submit_button = QPushButton(f"Save {self._schema.kind}", self)
        self._submit_button.setObjectName("EntrySubmitButton")
        self._submit_button.setProperty("primary", "true")
        self._submit_button.clicked.connect(self._on_submit_clicked)
        submit_row = QHBoxLayout()
        submit_row.addStretch(1)
        submit_row.addWidget(self._submit_button)
        root.addLayout(submit_row)

        self._search_edit = QLineEdit(self)
        self._search_edit.setObjectName("EntrySearch")
        self._search_edit.setPlaceholderText(f"Search {self._schema.title.lower()}")
        self._search_edit.setClearButtonEnabled(True)
        self._search_edit.textChanged.connect(workspace.filter_view.set_text)
        root.addWidget(self._search_edit, 0)

        self._count_label = QLabel("", self)
        self._count_label.setObjectName("EntryCount")
        root.addWidget(self._count_label, 0)

        self._confirm_bar = ConfirmBar(self)
        self._confirm_bar.cancel_button.clicked.connect(workspace.deletion.cancel)
        self._confirm_bar.confirm_button.clicked.connect(self._on_confirm_clicked)
        root.addWidget(self._confirm_bar, 0)

        self._list_host = QWidget(self)
        self._list_layout = QVBoxLayout(self._list_host)
        self._list_layout.setContentsMargins(0, 0, 0, 0)
        self._list_layout.setSpacing(6)
        self._empty_label = QLabel("", self._list_host)
        self._empty_label.setObjectName("EntryEmptyHint")
        self._empty_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._list_layout.addWidget(self._empty_label)
        self._list_layout.addStretch(1)
        scroll = QScrollArea(self)
        scroll.setWidgetResizable(True)
        scroll.setFrameShape(QFrame.Shape.NoFrame)
        scroll.setWidget(self._list_host)
        root.addWidget(scroll, 1)

        workspace.form.draft_changed.connect(self._apply_draft)
        workspace.form.submitting_changed.connect(self._on_submitting_changed)
        workspace.filter_view.visible_changed.connect(self._render_entries)
        workspace.deletion.state_changed.connect(self._on_deletion_state_changed)
        workspace.deletion.in_flight_changed.connect(self._on_in_flight_changed)
        identity.identity_changed.connect(self._on_identity_changed)

        self._apply_draft(workspace.form.draft)
        self._refresh_controls()
        self._render_entries(workspace.filter_view.visible)

    @property
    def submit_button(self) -> QPushButton:
        return self._submit_button

    @property
    def search_edit(self) -> QLineEdit:
        return self._search_edit

    @property
    def confirm_bar(self) -> ConfirmBar:
        return self._confirm_bar

    @property
    def rows(self) -> tuple[EntryRow, ...]:
        return tuple(self._rows)

    def editor(self, name: str) -> QWidget:
        return self._editors[name]

    def _build_editor(self, spec: FieldSpec) -> QWidget:
        if spec.kind == FIELD_DATE:
            editor = QDateEdit(self)
            editor.setCalendarPopup(True)
            editor.setDisplayFormat("dd/MM/yyyy")
            editor.dateChanged.connect(
                lambda value, name=spec.name: self._workspace.form.set_field(name, value.toString(_DATE_FORMAT))
            )
            return editor
        if spec.kind == FIELD_TIME:
            editor = QTimeEdit(self)
            editor.setDisplayFormat(_TIME_FORMAT)
            editor.timeChanged.connect(
                lambda value, name=spec.name: self._workspace.form.set_field(name, value.toString(_TIME_FORMAT))
            )
            return editor
        if spec.kind == FIELD_MULTILINE:
            editor = QPlainTextEdit(self)
            editor.setFixedHeight(72)
            editor.textChanged.connect(
                lambda name=spec.name, widget=editor: self._workspace.form.set_field(name, widget.toPlainText())
            )
            return editor
        editor = QLineEdit(self)
        editor.textChanged.connect(lambda value, name=spec.name: self._workspace.form.set_field(name, value))
        return editor

    def _apply_draft(self, draft: dict[str, str]) -> None:
        for name, editor in self._editors.items():
            value = str(draft.get(name, "") or "")
            editor.blockSignals(True)
            try:
                if isinstance(editor, QDateEdit):
                    parsed = QDate.fromString(value, _DATE_FORMAT)
                    if parsed.isValid():
                        editor.setDate(parsed)
                elif isinstance(editor, QTimeEdit):
                    parsed_time = QTime.fromString(value, _TIME_FORMAT)
                    if parsed_time.isValid():
                        editor.setTime(parsed_time)
                elif isinstance(editor, QPlainTextEdit):
                    if editor.toPlainText() != value:
                        editor.setPlainText(value)
                elif isinstance(editor, QLineEdit) and editor.text() != value:
                    editor.setText(value)
            finally:
                editor.blockSignals(False)

    def _on_submit_clicked(self) -> None:
        try:
            self._workspace.form.submit()
        except ValidationError as exc:
            editor = self._editors.get(exc.field_name)
            if editor is not None:
                editor.setFocus()
        except FrontDeskError:
            # Already reported on the notification channel.
            return

    def _on_confirm_clicked(self) -> None:
        self._workspace.deletion.confirm()

    def _on_delete_clicked(self, record_id: str) -> None:
        try:
            self._workspace.deletion.request_delete(record_id)
        except FrontDeskError:
            return

    def _on_submitting_changed(self, _submitting: bool) -> None:
        self._refresh_controls()

    def _on_identity_changed(self, _identity: Identity | None) -> None:
        self._refresh_controls()
        self._render_entries(self._workspace.filter_view.visible)

    def _on_in_flight_changed(self, _in_flight: frozenset[str]) -> None:
        self._render_entries(self._workspace.filter_view.visible)

    def _on_deletion_state_changed(self, state: DeletionState) -> None:
        pending = self._workspace.deletion.pending
        if state is DeletionState.CONFIRM_PENDING and pending is not None:
            self._confirm_bar.message_label.setText(f"Delete {pending.target_label}? This cannot be undone.")
            self._confirm_bar.show()
            self._confirm_bar.confirm_button.setFocus()
        else:
            self._confirm_bar.hide()

    def _refresh_controls(self) -> None:
        form = self._workspace.form
        self._submit_button.setEnabled(form.can_submit)
        self._submit_button.setText("Saving..." if form.submitting else f"Save {self._schema.kind}")

    def _render_entries(self, entries: tuple[Entry, ...]) -> None:
        for row in self._rows:
            self._list_layout.removeWidget(row)
            row.deleteLater()
        self._rows = []

        tz = self._workspace.collection.tz
        signed_in = self._identity.signed_in
        in_flight = self._workspace.deletion.in_flight
        insert_at = 1
        for entry in entries:
            row = EntryRow(
                title=entry.label(tz),
                detail=entry.display_notes(),
                on_delete=lambda record_id=entry.record_id: self._on_delete_clicked(record_id),
                delete_enabled=signed_in and entry.record_id not in in_flight,
                parent=self._list_host,
            )
            self._list_layout.insertWidget(insert_at, row)
            insert_at += 1
            self._rows.append(row)

        total = self._workspace.filter_view.total
        if self._workspace.filter_view.text.strip():
            self._count_label.setText(f"Showing {len(entries)} of {total}")
        else:
            self._count_label.setText(f"Total: {total}")
        if entries:
            self._empty_label.hide()
        else:
            self._empty_label.setText(
                "No matches." if total else f"No {self._schema.title.lower()} registered yet."
            )
            self._empty_label.show()
