from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, time, timezone, tzinfo
from typing import Any, Callable, Union


ENTITY_VISIT = "visit"
ENTITY_RESIDENT = "resident"
NO_NOTES_TEXT = "No notes"
INVALID_DATE_TEXT = "Invalid date"

FIELD_TEXT = "text"
FIELD_MULTILINE = "multiline"
FIELD_DATE = "date"
FIELD_TIME = "time"

_FRACTION_PATTERN = re.compile(r"\.(\d+)")


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


def parse_iso_date(value: Any) -> date | None:
    text = _as_text(value)
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def parse_clock_time(value: Any) -> time | None:
    text = _as_text(value)
    if not text:
        return None
    try:
        parsed = time.fromisoformat(text)
    except ValueError:
        return None
    return parsed.replace(second=0, microsecond=0, tzinfo=None)


def parse_server_timestamp(value: Any) -> datetime | None:
    """Parse a store timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        text = _as_text(value)
        if not text:
            return None
        if text.endswith("Z"):
            text = f"{text[:-1]}+00:00"
        # PostgREST trims trailing zeros; fromisoformat on 3.10 wants exactly 3 or 6 digits.
        text = _FRACTION_PATTERN.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), text, count=1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_local_timestamp(date_value: Any, time_value: Any, tz: tzinfo) -> datetime | None:
    """Combine a calendar date and a wall-clock time in `tz` into an aware datetime."""
    day = parse_iso_date(date_value)
    if day is None:
        return None
    clock = parse_clock_time(time_value) or time(0, 0)
    return datetime.combine(day, clock, tzinfo=tz)


def format_date_time(value: datetime | None, tz: tzinfo) -> str:
    if value is None:
        return INVALID_DATE_TEXT
    local = value.astimezone(tz)
    return f"{local:%d/%m/%Y} at {local:%H:%M}"


def today_and_now(tz: tzinfo, *, now: datetime | None = None) -> tuple[str, str]:
    current = (now or datetime.now(timezone.utc)).astimezone(tz)
    return current.date().isoformat(), f"{current:%H:%M}"


@dataclass(frozen=True, slots=True)
class VisitRecord:
    record_id: str
    company: str = ""
    service_date: str = ""
    service_time: str = ""
    notes: str = ""
    created_by: str = ""
    created_at: str = ""

    @classmethod
    def from_mapping(cls, value: Mapping[str, Any]) -> VisitRecord:
        return cls(
            record_id=_as_text(value.get("id")),
            company=_as_text(value.get("company")),
            service_date=_as_text(value.get("service_date")),
            service_time=_as_text(value.get("service_time")),
            notes=_as_text(value.get("notes")),
            created_by=_as_text(value.get("created_by")),
            created_at=_as_text(value.get("created_at")),
        )

    def scheduled_at(self, tz: tzinfo) -> datetime | None:
        return parse_local_timestamp(self.service_date, self.service_time, tz)

    def display_notes(self) -> str:
        return self.notes or NO_NOTES_TEXT

    def label(self, tz: tzinfo) -> str:
        return f"{self.company} ({format_date_time(self.scheduled_at(tz), tz)})"

    def search_text(self, tz: tzinfo) -> str:
        return " ".join((self.company, self.notes, format_date_time(self.scheduled_at(tz), tz)))


@dataclass(frozen=True, slots=True)
class ResidentRecord:
    record_id: str
    name: str = ""
    block: str = ""
    apartment: str = ""
    notes: str = ""
    created_by: str = ""
    created_at: str = ""

    @classmethod
    def from_mapping(cls, value: Mapping[str, Any]) -> ResidentRecord:
        return cls(
            record_id=_as_text(value.get("id")),
            name=_as_text(value.get("name")),
            block=_as_text(value.get("block")),
            apartment=_as_text(value.get("apartment")),
            notes=_as_text(value.get("notes")),
            created_by=_as_text(value.get("created_by")),
            created_at=_as_text(value.get("created_at")),
        )

    def scheduled_at(self, tz: tzinfo) -> datetime | None:
        return None

    def display_notes(self) -> str:
        return self.notes or NO_NOTES_TEXT

    def label(self, tz: tzinfo) -> str:
        return f"{self.name}, Block {self.block}, Apt {self.apartment}"

    def search_text(self, tz: tzinfo) -> str:
        return " ".join((self.name, self.block, self.apartment, self.notes))


Entry = Union[VisitRecord, ResidentRecord]


@dataclass(frozen=True, slots=True)
class FieldSpec:
    name: str
    label: str
    kind: str = FIELD_TEXT
    required: bool = False


@dataclass(frozen=True, slots=True)
class EntrySchema:
    kind: str
    collection: str
    title: str
    fields: tuple[FieldSpec, ...]
    factory: Callable[[Mapping[str, Any]], Entry]

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(spec.name for spec in self.fields)

    @property
    def required_fields(self) -> tuple[FieldSpec, ...]:
        return tuple(spec for spec in self.fields if spec.required)

    def field(self, name: str) -> FieldSpec | None:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    def default_draft(self, tz: tzinfo, *, now: datetime | None = None) -> dict[str, str]:
        today, clock = today_and_now(tz, now=now)
        draft: dict[str, str] = {}
        for spec in self.fields:
            if spec.kind == FIELD_DATE:
                draft[spec.name] = today
            elif spec.kind == FIELD_TIME:
                draft[spec.name] = clock
            else:
                draft[spec.name] = ""
        return draft

    def entry_from_record(self, record: object) -> Entry | None:
        if not isinstance(record, Mapping):
            return None
        if not _as_text(record.get("id")):
            return None
        return self.factory(record)


VISIT_SCHEMA = EntrySchema(
    kind=ENTITY_VISIT,
    collection="visits",
    title="Visits",
    fields=(
        FieldSpec("company", "Company / Provider", required=True),
        FieldSpec("service_date", "Date", kind=FIELD_DATE, required=True),
        FieldSpec("service_time", "Time", kind=FIELD_TIME, required=True),
        FieldSpec("notes", "Notes", kind=FIELD_MULTILINE),
    ),
    factory=VisitRecord.from_mapping,
)

RESIDENT_SCHEMA = EntrySchema(
    kind=ENTITY_RESIDENT,
    collection="residents",
    title="Residents",
    fields=(
        FieldSpec("name", "Name", required=True),
        FieldSpec("block", "Block", required=True),
        FieldSpec("apartment", "Apartment", required=True),
        FieldSpec("notes", "Notes", kind=FIELD_MULTILINE),
    ),
    factory=ResidentRecord.from_mapping,
)


def entry_recency(entry: Entry, tz: tzinfo) -> datetime | None:
    created = parse_server_timestamp(entry.created_at)
    if created is not None:
        return created
    return entry.scheduled_at(tz)


def sort_entries(entries: Iterable[Entry], tz: tzinfo) -> list[Entry]:
    """Most recent first; ties and undated entries fall back to id order."""

    def sort_key(entry: Entry) -> tuple[int, float, str]:
        recency = entry_recency(entry, tz)
        if recency is None:
            return (1, 0.0, entry.record_id)
        return (0, -recency.timestamp(), entry.record_id)

    return sorted(entries, key=sort_key)


def dedupe_entries(entries: Iterable[Entry]) -> list[Entry]:
    by_id: dict[str, Entry] = {}
    for entry in entries:
        by_id.pop(entry.record_id, None)
        by_id[entry.record_id] = entry
    return list(by_id.values())
