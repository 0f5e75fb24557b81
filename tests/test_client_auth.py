"""Token lifecycle tests for ActivityClient."""

from __future__ import annotations

import threading
import time
import urllib.parse

import pytest

from conftest import NOW, FakeTransport, token_body
from strava_activity_client.client import ActivityClient
from strava_activity_client.config import (
    ACCESS_TOKEN_KEY,
    EXPIRES_AT_KEY,
    REFRESH_TOKEN_KEY,
)
from strava_activity_client.errors import (
    AuthenticationFailed,
    AuthenticationRequired,
    RefreshFailed,
    RefreshUnavailable,
    TokenInvalid,
    TransportError,
)
from strava_activity_client.transport import HttpResponse

CREDENTIAL_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, EXPIRES_AT_KEY)


def _assert_cleared(store) -> None:
    for key in CREDENTIAL_KEYS:
        assert store.get(key) is None


def test_authorization_url_has_expected_params(make_client) -> None:
    url = make_client().get_authorization_url()
    parts = urllib.parse.urlsplit(url)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "https://www.strava.com/oauth/authorize"
    query = urllib.parse.parse_qs(parts.query)
    assert query == {
        "client_id": ["cid"],
        "redirect_uri": ["myapp://auth/callback"],
        "response_type": ["code"],
        "scope": ["read,activity:read_all"],
        "approval_prompt": ["force"],
    }


def test_authorization_url_includes_state_when_given(make_client) -> None:
    query = urllib.parse.parse_qs(urllib.parse.urlsplit(make_client().get_authorization_url("xyz")).query)
    assert query["state"] == ["xyz"]


def test_exchange_code_persists_credential(make_client, store, transport) -> None:
    transport.queue_post(200, token_body(expires_at=NOW + 100))
    client = make_client()
    assert not client.is_authenticated()

    credential = client.exchange_code_for_token("code123")

    assert credential.access_token == "AAA"
    assert client.is_authenticated()
    assert store.get(ACCESS_TOKEN_KEY) == "AAA"
    assert store.get(REFRESH_TOKEN_KEY) == "BBB"
    assert store.get(EXPIRES_AT_KEY) == str(NOW + 100)
    sent = transport.posts[0]
    assert sent["url"] == "https://www.strava.com/oauth/token"
    assert sent["json"] == {
        "client_id": "cid",
        "client_secret": "csec",
        "code": "code123",
        "grant_type": "authorization_code",
    }


@pytest.mark.parametrize(
    "queue",
    [
        lambda t: t.queue_post(400, {"message": "Bad Request", "errors": [{"field": "code", "code": "invalid"}]}),
        lambda t: t.fail_post(TransportError("boom")),
        lambda t: t.queue_post(200, {"access_token": "only"}),
    ],
)
def test_exchange_failure_leaves_existing_credential(make_client, authed_store, transport, queue) -> None:
    store = authed_store(access="OLD", refresh="OLDR", expires_at=NOW + 50)
    queue(transport)
    client = make_client()

    with pytest.raises(AuthenticationFailed):
        client.exchange_code_for_token("bad")

    assert store.get(ACCESS_TOKEN_KEY) == "OLD"
    assert store.get(REFRESH_TOKEN_KEY) == "OLDR"
    assert store.get(EXPIRES_AT_KEY) == str(NOW + 50)
    assert client.is_authenticated()


def test_refresh_without_refresh_token_makes_no_request(make_client, transport) -> None:
    with pytest.raises(RefreshUnavailable):
        make_client().refresh_token()
    assert transport.posts == []


def test_refresh_success_overwrites_all_fields(make_client, authed_store, transport) -> None:
    store = authed_store()
    transport.queue_post(200, token_body(access="NEW", refresh="NEWR", expires_at=NOW + 999))

    make_client().refresh_token()

    assert store.get(ACCESS_TOKEN_KEY) == "NEW"
    assert store.get(REFRESH_TOKEN_KEY) == "NEWR"
    assert store.get(EXPIRES_AT_KEY) == str(NOW + 999)
    assert transport.posts[0]["json"]["grant_type"] == "refresh_token"
    assert transport.posts[0]["json"]["refresh_token"] == "BBB"


def test_refresh_failure_clears_credentials(make_client, authed_store, transport) -> None:
    store = authed_store()
    transport.queue_post(401, {"message": "Authorization Error"})
    client = make_client()

    with pytest.raises(RefreshFailed):
        client.refresh_token()

    _assert_cleared(store)
    assert not client.is_authenticated()
    assert len(transport.posts) == 1


def test_token_valid_before_expiry_without_network(make_client, authed_store, transport) -> None:
    authed_store(expires_at=NOW + 10)
    assert make_client().is_token_valid() is True
    assert transport.posts == []


def test_token_invalid_without_expiry_or_token(make_client, authed_store, store) -> None:
    authed_store(expires_at=None)
    assert make_client().is_token_valid() is False
    store.set(EXPIRES_AT_KEY, str(NOW + 10))
    store.delete(ACCESS_TOKEN_KEY)
    assert make_client().is_token_valid() is False


def test_expired_token_refreshes_once(make_client, authed_store, transport) -> None:
    store = authed_store(expires_at=NOW)
    transport.queue_post(200, token_body(access="NEW", expires_at=NOW + 21600))

    assert make_client().is_token_valid() is True

    assert len(transport.posts) == 1
    assert store.get(EXPIRES_AT_KEY) == str(NOW + 21600)


def test_concurrent_callers_share_one_refresh(config, authed_store, clock) -> None:
    store = authed_store(expires_at=NOW)
    entered = threading.Event()
    gate = threading.Event()

    class GatedTransport(FakeTransport):
        def post(self, url, *, json=None):
            self.posts.append({"url": url, "json": dict(json or {})})
            entered.set()
            gate.wait(timeout=5)
            return HttpResponse(200, token_body(access="NEW", expires_at=NOW + 21600))

    transport = GatedTransport()
    client = ActivityClient(config, store=store, transport=transport, clock=clock)
    results = {}

    def check(name):
        results[name] = client.is_token_valid()

    first = threading.Thread(target=check, args=("first",))
    second = threading.Thread(target=check, args=("second",))
    first.start()
    assert entered.wait(timeout=5)
    second.start()
    time.sleep(0.05)
    gate.set()
    first.join(timeout=5)
    second.join(timeout=5)

    assert results == {"first": True, "second": True}
    assert len(transport.posts) == 1
    assert store.get(ACCESS_TOKEN_KEY) == "NEW"


def test_expired_token_with_failed_refresh_returns_false(make_client, authed_store, transport) -> None:
    store = authed_store(expires_at=NOW - 5)
    transport.queue_post(500, text="oops")
    client = make_client()

    assert client.is_token_valid() is False

    assert len(transport.posts) == 1
    _assert_cleared(store)


def test_authenticated_request_requires_token(make_client, transport) -> None:
    with pytest.raises(AuthenticationRequired):
        make_client().authenticated_request("https://example.test/x")
    assert transport.gets == []


def test_authenticated_request_raises_token_invalid_when_refresh_fails(make_client, authed_store, transport) -> None:
    authed_store(expires_at=NOW - 1)
    transport.fail_post(TransportError("network down"))
    with pytest.raises(TokenInvalid):
        make_client().authenticated_request("https://example.test/x")
    assert transport.gets == []


def test_authenticated_request_sends_bearer(make_client, authed_store, transport) -> None:
    authed_store(access="TOKEN1")
    transport.queue_get(200, {"ok": True})

    assert make_client().authenticated_request("https://example.test/x", {"a": 1}) == {"ok": True}
    assert transport.gets[0]["headers"]["Authorization"] == "Bearer TOKEN1"
    assert transport.gets[0]["params"] == {"a": 1}


def test_authenticated_request_uses_refreshed_token(make_client, authed_store, transport) -> None:
    authed_store(access="OLD", expires_at=NOW)
    transport.queue_post(200, token_body(access="FRESH"))
    transport.queue_get(200, [])

    make_client().authenticated_request("https://example.test/x")
    assert transport.gets[0]["headers"]["Authorization"] == "Bearer FRESH"


def test_401_clears_credentials_and_raises_authentication_failed(make_client, authed_store, transport) -> None:
    store = authed_store()
    transport.queue_get(401, {"message": "Authorization Error"})
    client = make_client()

    with pytest.raises(AuthenticationFailed):
        client.authenticated_request("https://example.test/x")

    _assert_cleared(store)
    assert not client.is_authenticated()


def test_500_raises_transport_error_and_keeps_credentials(make_client, authed_store, transport) -> None:
    store = authed_store()
    transport.queue_get(500, {"message": "Server Error"})
    client = make_client()

    with pytest.raises(TransportError) as excinfo:
        client.authenticated_request("https://example.test/x")

    assert not isinstance(excinfo.value, AuthenticationFailed)
    assert excinfo.value.status == 500
    assert "Server Error" in str(excinfo.value)
    assert store.get(ACCESS_TOKEN_KEY) == "AAA"
    assert client.is_authenticated()


def test_network_error_propagates_unchanged(make_client, authed_store, transport) -> None:
    authed_store()
    error = TransportError("timed out")
    transport.fail_get(error)
    with pytest.raises(TransportError) as excinfo:
        make_client().authenticated_request("https://example.test/x")
    assert excinfo.value is error


def test_credential_reads_store(make_client, authed_store) -> None:
    authed_store(expires_at=NOW + 7)
    credential = make_client().credential()
    assert credential is not None
    assert credential.expires_at == NOW + 7
