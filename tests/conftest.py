from __future__ import annotations

import os
from zoneinfo import ZoneInfo

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

from frontdesk.app.identity import IdentityAdapter
from frontdesk.app.live_collection import LiveCollection
from frontdesk.app.notifications import NotificationChannel
from frontdesk.app.records import VISIT_SCHEMA
from frontdesk.app.settings_store import SCOPE_PUBLIC

from fakes import ALICE, FakeIdentityProvider, FakeRecordStore


SAO_PAULO = ZoneInfo("America/Sao_Paulo")


@pytest.fixture(autouse=True)
def _no_db_debug(monkeypatch):
    monkeypatch.delenv("FRONTDESK_DB_DEBUG", raising=False)


@pytest.fixture
def tz():
    return SAO_PAULO


@pytest.fixture
def store():
    return FakeRecordStore()


@pytest.fixture
def provider():
    return FakeIdentityProvider()


@pytest.fixture
def identity(qapp, provider):
    return IdentityAdapter(provider)


@pytest.fixture
def signed_in(identity, provider):
    """Identity adapter already resolved to ALICE."""
    identity.sign_in_anonymously()
    provider.anonymous_requests[-1].set_result(ALICE)
    return identity


@pytest.fixture
def notifications(qapp):
    return NotificationChannel(timeout_ms=4000)


@pytest.fixture
def make_collection(store, notifications, tz):
    created: list[LiveCollection] = []

    def _make(identity, *, schema=VISIT_SCHEMA, scope_policy=SCOPE_PUBLIC, state_streamer=None):
        collection = LiveCollection(
            schema=schema,
            identity=identity,
            store=store,
            notifications=notifications,
            namespace="frontdesk",
            scope_policy=scope_policy,
            tz=tz,
            state_streamer=state_streamer,
        )
        created.append(collection)
        return collection

    yield _make
    for collection in created:
        collection.dispose()
