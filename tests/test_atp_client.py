"""Tests for the AT Protocol XRPC client."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from streamrelay.atproto.client import (
    AtpClient,
    AtpError,
    AtpSession,
    CreatedRecord,
    NotLoggedInError,
)
from streamrelay.records import ForwardedRecord

SESSION_BODY = {
    "did": "did:plc:bridge",
    "handle": "bridge.example.com",
    "accessJwt": "access-1",
    "refreshJwt": "refresh-1",
}


class _FakeResponse:
    def __init__(self, status, body):
        self.status = status
        self._body = body

    async def json(self, content_type=None):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


def _client_with_http(*responses):
    client = AtpClient("https://pds.example.com/")
    http = MagicMock()
    http.post = MagicMock(side_effect=list(responses))
    client._ensure_http = AsyncMock(return_value=http)
    return client, http


@pytest.mark.asyncio
async def test_login_stores_session():
    client, http = _client_with_http(_FakeResponse(200, SESSION_BODY))

    session = await client.login("bridge.example.com", "pw")

    assert session.did == "did:plc:bridge"
    assert await client.get_session() is session
    url = http.post.call_args.args[0]
    assert url == "https://pds.example.com/xrpc/com.atproto.server.createSession"
    assert http.post.call_args.kwargs["json"] == {
        "identifier": "bridge.example.com",
        "password": "pw",
    }


@pytest.mark.asyncio
async def test_login_failure_raises_atp_error():
    client, _ = _client_with_http(
        _FakeResponse(401, {"error": "AuthenticationRequired", "message": "Invalid identifier or password"})
    )
    with pytest.raises(AtpError) as info:
        await client.login("bridge.example.com", "wrong")
    assert info.value.status_code == 401
    assert info.value.error == "AuthenticationRequired"
    assert await client.get_session() is None


@pytest.mark.asyncio
async def test_get_session_before_login_is_none():
    assert await AtpClient().get_session() is None


@pytest.mark.asyncio
async def test_create_record_without_session_raises():
    with pytest.raises(NotLoggedInError):
        await AtpClient().create_record("did:plc:x", "place.stream.chat.message", {"text": "x"})


@pytest.mark.asyncio
async def test_create_record_payload():
    client, http = _client_with_http(
        _FakeResponse(200, SESSION_BODY),
        _FakeResponse(200, {"uri": "at://did:plc:bridge/place.stream.chat.message/3k", "cid": "bafy"}),
    )
    session = await client.login("bridge.example.com", "pw")
    record = ForwardedRecord(text="Ana (Discord): hi", destination_identity="did:plc:abc")

    created = await client.create_record(
        repo=session.did,
        collection="place.stream.chat.message",
        record=record,
        validate=False,
    )

    assert created == CreatedRecord(uri="at://did:plc:bridge/place.stream.chat.message/3k", cid="bafy")
    call = http.post.call_args
    assert call.args[0].endswith("/xrpc/com.atproto.repo.createRecord")
    assert call.kwargs["headers"] == {"Authorization": "Bearer access-1"}
    payload = call.kwargs["json"]
    assert payload["repo"] == "did:plc:bridge"
    assert payload["validate"] is False
    assert "rkey" not in payload
    assert payload["record"]["$type"] == "place.stream.chat.message"
    assert payload["record"]["streamer"] == "did:plc:abc"


@pytest.mark.asyncio
async def test_expired_token_refreshes_once_and_replays():
    refreshed = {**SESSION_BODY, "accessJwt": "access-2", "refreshJwt": "refresh-2"}
    client, http = _client_with_http(
        _FakeResponse(200, SESSION_BODY),
        _FakeResponse(400, {"error": "ExpiredToken", "message": "Token has expired"}),
        _FakeResponse(200, refreshed),
        _FakeResponse(200, {"uri": "at://u", "cid": "c"}),
    )
    await client.login("bridge.example.com", "pw")

    created = await client.create_record("did:plc:bridge", "place.stream.chat.message", {"text": "x"})

    assert created.uri == "at://u"
    calls = http.post.call_args_list
    assert calls[2].args[0].endswith("com.atproto.server.refreshSession")
    assert calls[2].kwargs["headers"] == {"Authorization": "Bearer refresh-1"}
    assert calls[3].kwargs["headers"] == {"Authorization": "Bearer access-2"}
    assert (await client.get_session()).access_jwt == "access-2"


@pytest.mark.asyncio
async def test_other_errors_are_not_retried():
    client, http = _client_with_http(
        _FakeResponse(200, SESSION_BODY),
        _FakeResponse(400, {"error": "InvalidRequest", "message": "bad"}),
    )
    await client.login("bridge.example.com", "pw")

    with pytest.raises(AtpError) as info:
        await client.create_record("did:plc:bridge", "place.stream.chat.message", {"text": "x"})
    assert info.value.error == "InvalidRequest"
    assert http.post.call_count == 2


@pytest.mark.asyncio
async def test_non_json_error_body():
    client, _ = _client_with_http(_FakeResponse(502, "Bad Gateway"))
    with pytest.raises(AtpError) as info:
        await client.login("h", "p")
    assert info.value.status_code == 502
    assert info.value.error is None
    assert "Bad Gateway" in info.value.message


def test_session_repr_hides_tokens():
    session = AtpSession.from_response(SESSION_BODY)
    assert "access-1" not in repr(session)
    assert "refresh-1" not in repr(session)


def test_expired_token_detection():
    assert AtpError(400, "ExpiredToken", "x").is_expired_token
    assert AtpError(401, "ExpiredToken", "x").is_expired_token
    assert not AtpError(400, "InvalidToken", "x").is_expired_token


@pytest.mark.asyncio
async def test_replay_uses_session_returned_by_refresh(monkeypatch):
    client, http = _client_with_http(
        _FakeResponse(200, SESSION_BODY),
        _FakeResponse(401, {"error": "ExpiredToken", "message": "Token has expired"}),
        _FakeResponse(200, {"uri": "at://u", "cid": "c"}),
    )
    await client.login("bridge.example.com", "pw")
    fresh = AtpSession.from_response({**SESSION_BODY, "accessJwt": "access-9"})
    monkeypatch.setattr(client, "refresh_session", AsyncMock(return_value=fresh))

    created = await client.create_record("did:plc:bridge", "place.stream.chat.message", {"text": "x"})

    assert created.uri == "at://u"
    assert http.post.call_args.kwargs["headers"] == {"Authorization": "Bearer access-9"}


@pytest.mark.asyncio
async def test_failed_refresh_propagates():
    client, http = _client_with_http(
        _FakeResponse(200, SESSION_BODY),
        _FakeResponse(400, {"error": "ExpiredToken", "message": "Token has expired"}),
        _FakeResponse(400, {"error": "ExpiredToken", "message": "Refresh token expired"}),
    )
    await client.login("bridge.example.com", "pw")

    with pytest.raises(AtpError) as info:
        await client.create_record("did:plc:bridge", "place.stream.chat.message", {"text": "x"})
    assert info.value.nsid == "com.atproto.server.refreshSession"
    assert http.post.call_count == 3
