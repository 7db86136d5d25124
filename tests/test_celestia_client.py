"""
Tests for the Celestia JSON-RPC client.

The aiohttp session is replaced by a stub that records requests and
replays canned responses, so no node is needed.
"""

import base64

import aiohttp
import pytest

from ledger_record_storage.exceptions import (
    AuthenticationError,
    BlobFetchError,
    RejectedError,
    TransportError,
)
from ledger_record_storage.ledger.celestia import CelestiaLedgerClient, namespace_for


class StubResponse:
    def __init__(self, status: int = 200, body=None, text: str = ""):
        self.status = status
        self._body = body
        self._text = text

    async def json(self, content_type=None):
        return self._body

    async def text(self) -> str:
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None


class StubSession:
    """Minimal stand-in for aiohttp.ClientSession."""

    def __init__(self, responses=None, error: Exception | None = None):
        self.responses = list(responses or [])
        self.error = error
        self.requests: list[dict] = []
        self.closed = False

    def post(self, url, json=None, headers=None):
        self.requests.append({"url": url, "json": json, "headers": headers})
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)

    async def close(self) -> None:
        self.closed = True


def rpc_result(result) -> StubResponse:
    return StubResponse(body={"jsonrpc": "2.0", "id": 1, "result": result})


def rpc_error(message: str, code: int = 1) -> StubResponse:
    return StubResponse(body={"jsonrpc": "2.0", "id": 1, "error": {"code": code, "message": message}})


def make_client(session: StubSession, token: str | None = "secret") -> CelestiaLedgerClient:
    return CelestiaLedgerClient(endpoint="http://node:26658/", auth_token=token, session=session)


class TestRequests:
    """Tests for request construction."""

    @pytest.mark.asyncio
    async def test_head(self) -> None:
        session = StubSession([rpc_result({"header": {"height": "1234"}})])
        client = make_client(session)

        assert await client.head() == 1234
        request = session.requests[0]
        assert request["url"] == "http://node:26658"
        assert request["json"]["method"] == "header.LocalHead"
        assert request["headers"]["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_no_auth_header_without_token(self) -> None:
        session = StubSession([rpc_result({"header": {"height": "1"}})])
        await make_client(session, token=None).head()
        assert "Authorization" not in session.requests[0]["headers"]

    @pytest.mark.asyncio
    async def test_submit(self, channel) -> None:
        session = StubSession([rpc_result(77)])
        client = make_client(session)

        assert await client.submit(channel, [b"one", b"two"]) == 77
        method = session.requests[0]["json"]["method"]
        wire_blobs, tx_config = session.requests[0]["json"]["params"]
        assert method == "blob.Submit"
        assert tx_config == {}
        assert [base64.b64decode(b["data"]) for b in wire_blobs] == [b"one", b"two"]
        assert base64.b64decode(wire_blobs[0]["namespace"]) == namespace_for(channel)

    @pytest.mark.asyncio
    async def test_fetch_all(self, channel) -> None:
        blobs = [{"data": base64.b64encode(b"one").decode()}, {"data": base64.b64encode(b"two").decode()}]
        session = StubSession([rpc_result(blobs)])
        client = make_client(session)

        assert await client.fetch_all(5, channel) == [b"one", b"two"]
        assert session.requests[0]["json"]["params"][0] == 5

    @pytest.mark.asyncio
    async def test_fetch_all_empty(self, channel) -> None:
        session = StubSession([rpc_result(None)])
        assert await make_client(session).fetch_all(5, channel) is None

    @pytest.mark.asyncio
    async def test_request_ids_increase(self) -> None:
        session = StubSession([rpc_result({"header": {"height": "1"}}) for _ in range(2)])
        client = make_client(session)
        await client.head()
        await client.head()
        assert [r["json"]["id"] for r in session.requests] == [1, 2]


class TestErrorMapping:
    """Tests for mapping node errors onto storage exceptions."""

    @pytest.mark.asyncio
    async def test_not_found_is_empty(self, channel) -> None:
        session = StubSession([rpc_error("blob: not found")])
        assert await make_client(session).fetch_all(5, channel) is None

    @pytest.mark.asyncio
    async def test_other_fetch_error(self, channel) -> None:
        session = StubSession([rpc_error("header: syncing in progress")])
        with pytest.raises(BlobFetchError) as exc_info:
            await make_client(session).fetch_all(5, channel)
        assert exc_info.value.position == 5

    @pytest.mark.asyncio
    async def test_submit_rejected(self, channel) -> None:
        session = StubSession([rpc_error("insufficient fees")])
        with pytest.raises(RejectedError) as exc_info:
            await make_client(session).submit(channel, [b"x"])
        assert "insufficient fees" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_unauthorized(self) -> None:
        session = StubSession([StubResponse(status=401, text="missing permission")])
        with pytest.raises(AuthenticationError):
            await make_client(session).head()

    @pytest.mark.asyncio
    async def test_server_error(self) -> None:
        session = StubSession([StubResponse(status=502)])
        with pytest.raises(TransportError):
            await make_client(session).head()

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        session = StubSession(error=aiohttp.ClientConnectionError("refused"))
        with pytest.raises(TransportError) as exc_info:
            await make_client(session).head()
        assert exc_info.value.endpoint == "http://node:26658"

    @pytest.mark.asyncio
    async def test_malformed_head(self) -> None:
        session = StubSession([rpc_result({"unexpected": True})])
        with pytest.raises(TransportError):
            await make_client(session).head()


class TestSessionOwnership:
    """Tests for session lifecycle."""

    @pytest.mark.asyncio
    async def test_injected_session_not_closed(self) -> None:
        session = StubSession()
        client = make_client(session)
        await client.close()
        assert session.closed is False

    def test_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("CELESTIA_NODE_AUTH_TOKEN", "from-env")
        client = CelestiaLedgerClient.from_env()
        assert client.auth_token == "from-env"
        assert client.endpoint == "http://localhost:26658"
