from __future__ import annotations

from datetime import tzinfo
from typing import Iterable

from PySide6.QtCore import QObject, Signal

from frontdesk.app.live_collection import LiveCollection
from frontdesk.app.records import Entry


def normalize_query(text: str) -> str:
    return str(text or "").strip().casefold()


def filter_entries(entries: Iterable[Entry], text: str, tz: tzinfo) -> tuple[Entry, ...]:
    query = normalize_query(text)
    if not query:
        return tuple(entries)
    return tuple(entry for entry in entries if query in entry.search_text(tz).casefold())


class FilterView(QObject):
    """Rendered subset of a live collection; the collection itself is never touched."""

    visible_changed = Signal(object)

    def __init__(self, collection: LiveCollection, *, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._collection = collection
        self._text = ""
        self._visible: tuple[Entry, ...] = ()
        collection.entries_changed.connect(self._on_entries_changed)
        self._recompute()

    @property
    def text(self) -> str:
        return self._text

    @property
    def visible(self) -> tuple[Entry, ...]:
        return self._visible

    @property
    def total(self) -> int:
        return len(self._collection.entries)

    def set_text(self, text: str) -> None:
        self._text = str(text or "")
        self._recompute()

    def _on_entries_changed(self, _entries: object) -> None:
        self._recompute()

    def _recompute(self) -> None:
        self._visible = filter_entries(self._collection.entries, self._text, self._collection.tz)
        self.visible_changed.emit(self._visible)
