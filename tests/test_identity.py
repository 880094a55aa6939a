from __future__ import annotations

from concurrent.futures import Future

import pytest
from fakes import ALICE, BOB, FakeIdentityProvider, RefreshingIdentityProvider

from frontdesk.app.errors import SupabaseRequestError
from frontdesk.app.identity import Identity, IdentityAdapter, LocalIdentityProvider, SupabaseIdentityProvider


def test_start_uses_token_when_configured(qapp):
    provider = FakeIdentityProvider()
    adapter = IdentityAdapter(provider, token="secret")

    adapter.start()

    assert [token for token, _future in provider.token_requests] == ["secret"]
    assert provider.anonymous_requests == []
    assert not adapter.resolved


def test_start_without_token_signs_in_anonymously(qapp):
    provider = FakeIdentityProvider()
    adapter = IdentityAdapter(provider)
    seen = []
    adapter.identity_changed.connect(seen.append)

    adapter.start()
    provider.anonymous_requests[0].set_result(BOB)

    assert adapter.signed_in
    assert seen == [BOB]


def test_token_failure_falls_back_to_anonymous(qapp):
    provider = FakeIdentityProvider()
    adapter = IdentityAdapter(provider, token="expired")
    adapter.start()

    provider.token_requests[0][1].set_exception(RuntimeError("invalid token"))
    assert len(provider.anonymous_requests) == 1
    assert not adapter.resolved

    provider.anonymous_requests[0].set_result(BOB)
    assert adapter.identity == BOB


def test_total_sign_in_failure_resolves_to_none(qapp):
    provider = FakeIdentityProvider()
    adapter = IdentityAdapter(provider)
    seen = []
    adapter.identity_changed.connect(seen.append)
    adapter.start()

    provider.anonymous_requests[0].set_exception(RuntimeError("auth service down"))

    assert adapter.resolved
    assert adapter.identity is None
    assert not adapter.signed_in
    assert seen == [None]


def test_stale_sign_in_result_is_ignored(qapp):
    provider = FakeIdentityProvider()
    adapter = IdentityAdapter(provider)
    adapter.sign_in_anonymously()
    adapter.sign_in_with_token("second")

    provider.token_requests[0][1].set_result(ALICE)
    provider.anonymous_requests[0].set_result(BOB)

    assert adapter.identity == ALICE


def test_same_identity_does_not_emit_twice(qapp):
    provider = FakeIdentityProvider()
    adapter = IdentityAdapter(provider)
    seen = []
    adapter.identity_changed.connect(seen.append)

    adapter.sign_in_anonymously()
    provider.anonymous_requests[0].set_result(ALICE)
    adapter.sign_in_anonymously()
    provider.anonymous_requests[1].set_result(ALICE)

    assert seen == [ALICE]


def test_sign_out_emits_none(signed_in, provider):
    seen = []
    signed_in.identity_changed.connect(seen.append)

    signed_in.sign_out()

    assert seen == [None]
    assert provider.sign_outs == 1
    assert signed_in.access_token() == ""


def test_local_provider_identities():
    provider = LocalIdentityProvider(device_id_loader=lambda: "local-device")

    anonymous = provider.sign_in_anonymously().result()
    assert anonymous.user_id == "local-device"
    assert anonymous.anonymous

    from_token = provider.sign_in_with_token("abc").result()
    assert from_token.user_id.startswith("token-")
    assert not from_token.anonymous
    assert provider.sign_in_with_token("abc").result() == from_token

    with pytest.raises(ValueError):
        provider.sign_in_with_token("  ").result()


class _FakeAuthRest:
    def __init__(self) -> None:
        self.calls = []

    def request_json(self, **kwargs):
        future = Future()
        self.calls.append({**kwargs, "future": future})
        return future


def test_supabase_provider_validates_token_against_user_endpoint():
    rest = _FakeAuthRest()
    provider = SupabaseIdentityProvider(rest)

    future = provider.sign_in_with_token("jwt")
    call = rest.calls[0]
    assert (call["method"], call["path"], call["bearer"]) == ("GET", "/auth/v1/user", "jwt")

    call["future"].set_result({"id": "user-1", "is_anonymous": False})
    identity = future.result()
    assert identity.user_id == "user-1"
    assert identity.access_token == "jwt"
    assert not identity.anonymous


def test_supabase_provider_anonymous_signup_and_logout():
    rest = _FakeAuthRest()
    provider = SupabaseIdentityProvider(rest)

    future = provider.sign_in_anonymously()
    rest.calls[0]["future"].set_result({"access_token": "anon-jwt", "user": {"id": "anon-1", "is_anonymous": True}})
    assert future.result().user_id == "anon-1"

    provider.sign_out()
    provider.sign_out()
    assert [call["path"] for call in rest.calls] == ["/auth/v1/signup", "/auth/v1/logout"]
    assert rest.calls[1]["bearer"] == "anon-jwt"


def test_supabase_provider_rejects_session_without_user():
    rest = _FakeAuthRest()
    provider = SupabaseIdentityProvider(rest)
    future = provider.sign_in_anonymously()
    rest.calls[0]["future"].set_result({"access_token": "x"})

    with pytest.raises(SupabaseRequestError):
        future.result()


def test_supabase_provider_keeps_refresh_token_and_refreshes_session():
    rest = _FakeAuthRest()
    provider = SupabaseIdentityProvider(rest)
    future = provider.sign_in_anonymously()
    rest.calls[0]["future"].set_result(
        {
            "access_token": "anon-jwt",
            "refresh_token": "refresh-1",
            "expires_in": 3600,
            "user": {"id": "anon-1", "is_anonymous": True},
        }
    )
    identity = future.result()
    assert (identity.refresh_token, identity.expires_in) == ("refresh-1", 3600)

    refreshed = provider.refresh_session("refresh-1")
    call = rest.calls[1]
    assert (call["method"], call["path"], call["query"]) == ("POST", "/auth/v1/token", "?grant_type=refresh_token")
    assert call["payload"] == {"refresh_token": "refresh-1"}
    call["future"].set_result(
        {"access_token": "anon-jwt-2", "refresh_token": "refresh-2", "user": {"id": "anon-1"}}
    )
    assert refreshed.result().access_token == "anon-jwt-2"

    provider.sign_out()
    assert rest.calls[2]["bearer"] == "anon-jwt-2"


def test_refresh_swaps_token_without_announcing_a_new_identity(qapp):
    provider = RefreshingIdentityProvider()
    adapter = IdentityAdapter(provider)
    adapter.sign_in_anonymously()
    provider.anonymous_requests[0].set_result(
        Identity(user_id="anon-1", access_token="old", refresh_token="r1", expires_in=3600)
    )
    seen = []
    adapter.identity_changed.connect(seen.append)

    adapter.refresh_session()
    assert [token for token, _future in provider.refresh_requests] == ["r1"]
    provider.refresh_requests[0][1].set_result(
        Identity(user_id="anon-1", access_token="new", refresh_token="r2", expires_in=3600)
    )

    assert adapter.access_token() == "new"
    assert adapter.identity.refresh_token == "r2"
    assert seen == []


def test_failed_refresh_signs_in_again(qapp):
    provider = RefreshingIdentityProvider()
    adapter = IdentityAdapter(provider)
    adapter.sign_in_anonymously()
    provider.anonymous_requests[0].set_result(Identity(user_id="anon-1", access_token="old", refresh_token="r1"))

    adapter.refresh_session()
    provider.refresh_requests[0][1].set_exception(SupabaseRequestError("/auth/v1/token", "expired", status=401))

    assert len(provider.anonymous_requests) == 2
    provider.anonymous_requests[1].set_result(BOB)
    assert adapter.identity == BOB


def test_sign_in_without_refresh_token_skips_refresh(qapp):
    provider = RefreshingIdentityProvider()
    adapter = IdentityAdapter(provider)
    adapter.sign_in_anonymously()
    provider.anonymous_requests[0].set_result(ALICE)

    adapter.refresh_session()

    assert provider.refresh_requests == []
