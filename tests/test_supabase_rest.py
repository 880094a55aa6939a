from __future__ import annotations

import pytest

from frontdesk.app.errors import SupabaseRequestError
from frontdesk.app.settings_store import SupabaseSettings
from frontdesk.app.supabase_rest import SupabaseRestClient, _error_message


def test_unconfigured_client_fails_without_network(qapp):
    client = SupabaseRestClient(SupabaseSettings())

    future = client.request_json(method="GET", path="/rest/v1/frontdesk_records")

    with pytest.raises(SupabaseRequestError) as excinfo:
        future.result(timeout=0)
    assert "missing" in str(excinfo.value)


def test_error_message_prefers_json_message_field():
    assert _error_message('{"message": "permission denied for table"}') == "permission denied for table"
    assert _error_message('{"error_description": "Invalid JWT"}') == "Invalid JWT"
    assert _error_message("Bad Gateway") == "Bad Gateway"
    assert _error_message("") == ""
