from __future__ import annotations

from fakes import visit_record

from frontdesk.app.filtering import FilterView, filter_entries
from frontdesk.app.records import ResidentRecord, VisitRecord


def test_filter_is_case_insensitive_and_keeps_source_untouched(tz):
    entries = (VisitRecord("1", company="Acme Corp"), VisitRecord("2", company="Beta Ltd"))

    filtered = filter_entries(entries, "acme", tz)

    assert [entry.company for entry in filtered] == ["Acme Corp"]
    assert [entry.company for entry in entries] == ["Acme Corp", "Beta Ltd"]


def test_blank_query_returns_everything(tz):
    entries = (VisitRecord("1", company="Acme"), VisitRecord("2", company="Beta"))
    assert filter_entries(entries, "   ", tz) == entries


def test_inner_whitespace_is_matched_literally(tz):
    entries = (VisitRecord("1", company="Acme Corp"), VisitRecord("2", company="Acme  Labs"))

    assert filter_entries(entries, "acme  corp", tz) == ()
    assert [entry.record_id for entry in filter_entries(entries, "acme corp", tz)] == ["1"]
    assert [entry.record_id for entry in filter_entries(entries, "  ACME  LABS ", tz)] == ["2"]


def test_visit_search_covers_notes_and_formatted_date(tz):
    entries = (
        VisitRecord("1", company="Acme", notes="Elevator repair", service_date="2024-05-01", service_time="09:00"),
        VisitRecord("2", company="Beta", service_date="2024-06-02", service_time="14:00"),
    )
    assert [entry.record_id for entry in filter_entries(entries, "ELEVATOR", tz)] == ["1"]
    assert [entry.record_id for entry in filter_entries(entries, "02/06/2024", tz)] == ["2"]


def test_resident_search_covers_block_and_apartment(tz):
    entries = (
        ResidentRecord("1", name="Ana", block="A", apartment="101"),
        ResidentRecord("2", name="Bruno", block="C", apartment="305"),
    )
    assert [entry.name for entry in filter_entries(entries, "305", tz)] == ["Bruno"]


def test_filter_view_recomputes_on_text_and_snapshot(signed_in, store, make_collection):
    collection = make_collection(signed_in)
    view = FilterView(collection)
    store.push([visit_record("1", "Acme Corp"), visit_record("2", "Beta Ltd")])

    view.set_text("acme")
    assert [entry.company for entry in view.visible] == ["Acme Corp"]
    assert len(collection.entries) == 2

    store.push([visit_record("1", "Acme Corp"), visit_record("3", "Acme Labs"), visit_record("2", "Beta Ltd")])
    assert sorted(entry.company for entry in view.visible) == ["Acme Corp", "Acme Labs"]
    assert view.total == 3

    view.set_text("")
    assert len(view.visible) == 3
