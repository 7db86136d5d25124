"""
In-process ledger.

Keeps the whole log in memory. Useful for tests, demos and for
embedding the store without a ledger node. Each submission lands
at a new position one past the head.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from ..channel import Channel
from ..exceptions import BlobFetchError, RejectedError
from .base import LedgerClient

logger = logging.getLogger(__name__)


class InMemoryLedger(LedgerClient):
    """Append-only ledger held in a dict of position -> channel -> blobs.

    Attributes:
        max_blob_size: Submissions with a larger blob are rejected
    """

    endpoint = "memory"

    def __init__(self, initial_head: int = 1, max_blob_size: int | None = None) -> None:
        """Initialize the ledger.

        Args:
            initial_head: Head position before any submission
            max_blob_size: Optional per-blob size limit in bytes
        """
        self._head = initial_head
        self._blobs: dict[int, dict[bytes, list[bytes]]] = defaultdict(dict)
        self._failing_positions: set[int] = set()
        self._lock = asyncio.Lock()
        self.max_blob_size = max_blob_size
        self.submissions = 0

    async def submit(self, channel: Channel, blobs: list[bytes]) -> int:
        if not blobs:
            raise RejectedError("empty submission", channel.hex)
        if self.max_blob_size is not None:
            for blob in blobs:
                if len(blob) > self.max_blob_size:
                    raise RejectedError(
                        f"blob of {len(blob)} bytes exceeds {self.max_blob_size}", channel.hex
                    )

        async with self._lock:
            self._head += 1
            position = self._head
            self._blobs[position][channel.raw] = [bytes(b) for b in blobs]
            self.submissions += 1

        logger.debug(f"Included {len(blobs)} blob(s) for {channel} at position {position}")
        return position

    async def fetch_all(self, position: int, channel: Channel) -> list[bytes] | None:
        if position in self._failing_positions:
            raise BlobFetchError(position, "injected failure")
        blobs = self._blobs.get(position, {}).get(channel.raw)
        return list(blobs) if blobs else None

    async def head(self) -> int:
        return self._head

    def advance(self, positions: int = 1) -> int:
        """Move the head forward without writing anything."""
        self._head += positions
        return self._head

    def fail_position(self, position: int) -> None:
        """Make every fetch at a position raise BlobFetchError."""
        self._failing_positions.add(position)

    def inject(self, position: int, channel: Channel, blobs: list[bytes]) -> None:
        """Place blobs at an explicit position (at or below a future head)."""
        self._blobs[position].setdefault(channel.raw, []).extend(blobs)
        self._head = max(self._head, position)
