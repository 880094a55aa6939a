from __future__ import annotations

import pytest
from fakes import BOB, visit_record

from frontdesk.app.deletion import DeletionState, DeletionWorkflow
from frontdesk.app.errors import Unauthenticated


@pytest.fixture
def workflow_for(store, notifications, make_collection):
    def _make(identity):
        collection = make_collection(identity)
        workflow = DeletionWorkflow(
            collection=collection,
            identity=identity,
            store=store,
            notifications=notifications,
        )
        return collection, workflow

    return _make


def test_request_then_cancel_makes_no_store_call(signed_in, store, workflow_for):
    _collection, workflow = workflow_for(signed_in)
    store.push([visit_record("42", "Acme"), visit_record("7", "Beta")])

    workflow.request_delete("42")

    assert workflow.state is DeletionState.CONFIRM_PENDING
    assert workflow.pending.target_id == "42"
    assert workflow.pending.target_label == "Acme (01/05/2024 at 09:00)"

    workflow.cancel()

    assert workflow.state is DeletionState.IDLE
    assert store.deleted == []


def test_request_for_absent_id_is_a_noop(signed_in, store, notifications, workflow_for):
    _collection, workflow = workflow_for(signed_in)
    store.push([visit_record("42", "Acme")])
    states = []
    workflow.state_changed.connect(states.append)

    workflow.request_delete("99")

    assert workflow.state is DeletionState.IDLE
    assert states == []
    assert not notifications.current.visible


def test_request_without_identity_fails(identity, workflow_for):
    _collection, workflow = workflow_for(identity)

    with pytest.raises(Unauthenticated):
        workflow.request_delete("42")
    assert workflow.state is DeletionState.IDLE


def test_cancel_when_idle_is_a_noop(signed_in, workflow_for):
    _collection, workflow = workflow_for(signed_in)
    states = []
    workflow.state_changed.connect(states.append)

    workflow.cancel()
    workflow.cancel()

    assert workflow.state is DeletionState.IDLE
    assert states == []


def test_label_is_snapshotted_at_request_time(signed_in, store, workflow_for):
    _collection, workflow = workflow_for(signed_in)
    store.push([visit_record("42", "Acme")])
    workflow.request_delete("42")

    store.push([visit_record("42", "Acme Renamed")])

    assert workflow.pending.target_label.startswith("Acme (")


def test_confirm_issues_one_delete_and_returns_to_idle_immediately(signed_in, store, notifications, workflow_for):
    _collection, workflow = workflow_for(signed_in)
    store.push([visit_record("42", "Acme")])
    workflow.request_delete("42")

    workflow.confirm()

    assert workflow.state is DeletionState.IDLE
    assert len(store.deleted) == 1
    path, record_id, pending = store.deleted[0]
    assert (path.text, record_id) == ("frontdesk/public/visits", "42")

    assert workflow.confirm() is None
    assert len(store.deleted) == 1

    pending.set_result(None)
    assert notifications.current.kind == "success"


def test_in_flight_delete_is_not_requested_again(signed_in, store, workflow_for):
    _collection, workflow = workflow_for(signed_in)
    store.push([visit_record("42", "Acme")])
    workflow.request_delete("42")
    workflow.confirm()

    workflow.request_delete("42")

    assert workflow.state is DeletionState.IDLE
    assert workflow.in_flight == frozenset({"42"})


def test_failed_delete_reports_error_and_allows_retry(signed_in, store, notifications, workflow_for):
    collection, workflow = workflow_for(signed_in)
    store.push([visit_record("42", "Acme")])
    workflow.request_delete("42")
    workflow.confirm()

    store.deleted[0][2].set_exception(RuntimeError("row is locked"))

    assert notifications.current.kind == "error"
    assert "row is locked" in notifications.current.message
    assert collection.entry_by_id("42") is not None
    assert workflow.in_flight == frozenset()

    workflow.request_delete("42")
    assert workflow.state is DeletionState.CONFIRM_PENDING


def test_sign_out_drops_pending_confirmation(signed_in, store, workflow_for):
    _collection, workflow = workflow_for(signed_in)
    store.push([visit_record("42", "Acme")])
    workflow.request_delete("42")

    signed_in.sign_out()

    assert workflow.state is DeletionState.IDLE
    assert workflow.pending is None
    assert workflow.confirm() is None
    assert store.deleted == []


def test_identity_switch_drops_pending_confirmation(signed_in, provider, store, workflow_for):
    _collection, workflow = workflow_for(signed_in)
    store.push([visit_record("42", "Acme")])
    workflow.request_delete("42")

    signed_in.sign_in_anonymously()
    provider.anonymous_requests[-1].set_result(BOB)

    assert workflow.state is DeletionState.IDLE
