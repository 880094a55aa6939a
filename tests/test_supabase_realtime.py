from __future__ import annotations

from frontdesk.app.supabase_realtime import (
    SupabaseRealtimeChannel,
    SupabaseRealtimeSubscription,
    build_join_message,
    build_websocket_url,
    extract_change_path,
)


SUBSCRIPTION = SupabaseRealtimeSubscription(
    url="https://demo.supabase.co",
    api_key="anon",
    schema="public",
    table="frontdesk_records",
)


def test_websocket_url_uses_secure_scheme_for_https():
    assert build_websocket_url(SUBSCRIPTION) == "wss://demo.supabase.co/realtime/v1/websocket?apikey=anon&vsn=1.0.0"


def test_join_message_targets_the_table():
    message = build_join_message(SUBSCRIPTION, ref="1")

    assert message["topic"] == "realtime:public:frontdesk_records"
    assert message["event"] == "phx_join"
    assert message["payload"]["config"]["postgres_changes"] == [
        {"event": "*", "schema": "public", "table": "frontdesk_records"}
    ]
    assert "access_token" not in message["payload"]


def test_join_message_carries_access_token_when_signed_in():
    subscription = SupabaseRealtimeSubscription(
        url=SUBSCRIPTION.url,
        api_key=SUBSCRIPTION.api_key,
        schema=SUBSCRIPTION.schema,
        table=SUBSCRIPTION.table,
        access_token="jwt",
    )
    assert build_join_message(subscription, ref="2")["payload"]["access_token"] == "jwt"


def test_extract_change_path_from_new_and_old_rows():
    insert = {"data": {"type": "INSERT", "record": {"id": "1", "collection_path": "frontdesk/public/visits"}}}
    delete = {"data": {"type": "DELETE", "old_record": {"id": "1"}}}

    assert extract_change_path(insert) == "frontdesk/public/visits"
    assert extract_change_path({"new": {"collection_path": "fd/public/residents"}}) == "fd/public/residents"
    assert extract_change_path(delete) == ""
    assert extract_change_path("nonsense") == ""


def test_start_without_configuration_reports_warning(qapp):
    statuses = []
    channel = SupabaseRealtimeChannel(on_status=lambda level, message: statuses.append((level, message)))

    channel.start(SupabaseRealtimeSubscription(url="", api_key="", schema="public", table="frontdesk_records"))

    assert statuses and statuses[0][0] == "warning"
    assert not channel.active
