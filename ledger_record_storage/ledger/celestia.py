"""
Celestia node ledger client.

Talks JSON-RPC over HTTP to a Celestia light or bridge node:
- ``header.LocalHead``: current head height
- ``blob.GetAll``: all blobs of a namespace at a height
- ``blob.Submit``: submit blobs, returns the inclusion height

Channels map to version-0 namespaces: one version byte, eighteen
zero bytes, then the channel identifier left-padded to ten bytes.
"""

from __future__ import annotations

import asyncio
import base64
import itertools
import logging
import os
from typing import Any

import aiohttp

from ..channel import Channel
from ..exceptions import (
    AuthenticationError,
    BlobFetchError,
    InvalidChannelError,
    RejectedError,
    TransportError,
)
from .base import LedgerClient

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:26658"
DEFAULT_TIMEOUT = 30.0
AUTH_TOKEN_ENV = "CELESTIA_NODE_AUTH_TOKEN"

NAMESPACE_VERSION_ZERO = 0
NAMESPACE_ID_SIZE = 28
NAMESPACE_V0_ID_SIZE = 10

# Error text the node returns for heights with no blobs in the namespace
_NOT_FOUND_MARKERS = ("blob: not found", "not found")


class JsonRpcError(Exception):
    """Application-level error returned in a JSON-RPC response."""

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(f"JSON-RPC error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


def namespace_for(channel: Channel) -> bytes:
    """Build the 29-byte version-0 namespace for a channel."""
    if channel.width > NAMESPACE_V0_ID_SIZE:
        raise InvalidChannelError(
            channel.hex,
            f"version-0 namespaces hold at most {NAMESPACE_V0_ID_SIZE} bytes",
            NAMESPACE_V0_ID_SIZE,
        )
    ident = channel.raw.rjust(NAMESPACE_ID_SIZE, b"\x00")
    return bytes([NAMESPACE_VERSION_ZERO]) + ident


class CelestiaLedgerClient(LedgerClient):
    """Ledger client for a Celestia node's JSON-RPC API.

    No retries happen here beyond what the node itself does; callers
    decide whether a TransportError is worth retrying.

    Example:
        >>> async with CelestiaLedgerClient.from_env() as client:
        ...     height = await client.head()
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        auth_token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        tx_config: dict[str, Any] | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            endpoint: Node RPC URL
            auth_token: Node auth token (sent as a bearer token)
            timeout: Per-request timeout in seconds
            tx_config: Options passed to ``blob.Submit`` (gas price, signer, ...)
            session: Optional existing aiohttp session (not closed by us)
        """
        self.endpoint = endpoint.rstrip("/")
        self.auth_token = auth_token
        self.timeout = timeout
        self.tx_config = tx_config or {}
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

    @classmethod
    def from_env(cls, endpoint: str | None = None) -> CelestiaLedgerClient:
        """Create a client using ``CELESTIA_NODE_AUTH_TOKEN`` from the environment."""
        token = os.environ.get(AUTH_TOKEN_ENV)
        if not token:
            logger.warning(
                f"{AUTH_TOKEN_ENV} not set; the node must run with --rpc.skip-auth"
            )
        return cls(endpoint=endpoint or DEFAULT_ENDPOINT, auth_token=token)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if we created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def _call(self, method: str, params: list[Any]) -> Any:
        """Perform one JSON-RPC call and return its ``result``.

        Raises:
            JsonRpcError: If the node answered with an error object
            AuthenticationError: On HTTP 401/403
            TransportError: If the node could not be reached
        """
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        session = self._get_session()

        try:
            async with session.post(self.endpoint, json=payload, headers=self._headers()) as response:
                if response.status in (401, 403):
                    raise AuthenticationError(self.endpoint, await response.text())
                if response.status >= 400:
                    raise TransportError(
                        self.endpoint, RuntimeError(f"HTTP {response.status} for {method}")
                    )
                body = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(self.endpoint, e) from e

        if not isinstance(body, dict):
            raise TransportError(self.endpoint, RuntimeError(f"malformed response to {method}"))
        if body.get("error"):
            err = body["error"]
            raise JsonRpcError(err.get("code", -32603), err.get("message", "unknown error"), err.get("data"))
        return body.get("result")

    async def head(self) -> int:
        try:
            result = await self._call("header.LocalHead", [])
        except JsonRpcError as e:
            raise TransportError(self.endpoint, e) from e
        try:
            return int(result["header"]["height"])
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(self.endpoint, RuntimeError(f"unexpected head: {e}")) from e

    async def fetch_all(self, position: int, channel: Channel) -> list[bytes] | None:
        namespace = base64.b64encode(namespace_for(channel)).decode("ascii")
        try:
            result = await self._call("blob.GetAll", [position, [namespace]])
        except JsonRpcError as e:
            if any(marker in e.message for marker in _NOT_FOUND_MARKERS):
                return None
            raise BlobFetchError(position, e) from e

        if not result:
            return None
        try:
            return [base64.b64decode(item["data"]) for item in result]
        except (KeyError, TypeError, ValueError) as e:
            raise BlobFetchError(position, f"malformed blob: {e}") from e

    async def submit(self, channel: Channel, blobs: list[bytes]) -> int:
        namespace = base64.b64encode(namespace_for(channel)).decode("ascii")
        wire_blobs = [
            {
                "namespace": namespace,
                "data": base64.b64encode(blob).decode("ascii"),
                "share_version": 0,
            }
            for blob in blobs
        ]
        try:
            result = await self._call("blob.Submit", [wire_blobs, self.tx_config])
        except JsonRpcError as e:
            raise RejectedError(e.message, channel.hex) from e

        try:
            height = int(result)
        except (TypeError, ValueError) as e:
            raise RejectedError(f"unexpected submit result {result!r}", channel.hex) from e

        logger.info(f"Submitted {len(blobs)} blob(s) to {channel}, included at height {height}")
        return height
