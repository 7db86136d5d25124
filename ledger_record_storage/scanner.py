"""
Range scanning over ledger positions.

The ledger cannot be queried by content, so every lookup that is not
answered by the metadata index walks a range of positions, fetches
the channel's blobs at each one, and classifies them.

Direction matters:
- DESCENDING: "most recent wins" lookups (record reads, discovery).
  Newest first, including within a position, so the first blob seen
  for an id is its latest version.
- ASCENDING: complete history (per-id history, full snapshots).
  Oldest first, blobs at a position in submission order.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from enum import Enum

from .channel import Channel
from .exceptions import BlobFetchError
from .ledger.base import LedgerClient
from .records.codec import classify
from .records.types import BlobKind, ClassifiedBlob

logger = logging.getLogger(__name__)

Classifier = Callable[[bytes, int], ClassifiedBlob]


class ScanDirection(Enum):
    """Order in which positions are visited."""

    DESCENDING = "descending"
    ASCENDING = "ascending"


class RangeScanner:
    """Iterates the blobs of one channel over a closed position range.

    Each call to ``scan`` produces a fresh, finite, non-restartable
    async iterator. A fetch failure at one position is logged and
    skipped; a TransportError ends the scan and propagates.

    Example:
        >>> scanner = RangeScanner(client, channel)
        >>> async for blob in scanner.scan(10, 20):
        ...     if blob.kind == BlobKind.RECORD:
        ...         print(blob.position, blob.record.id)
    """

    def __init__(
        self,
        client: LedgerClient,
        channel: Channel,
        classifier: Classifier = classify,
    ) -> None:
        self.client = client
        self.channel = channel
        self.classifier = classifier
        self.skipped_positions: list[int] = []

    def positions(self, low: int, high: int, direction: ScanDirection) -> range:
        """The positions visited for a closed range, in visiting order."""
        low = max(low, 0)
        if high < low:
            return range(0)
        if direction == ScanDirection.DESCENDING:
            return range(high, low - 1, -1)
        return range(low, high + 1)

    async def scan(
        self,
        low: int,
        high: int,
        direction: ScanDirection = ScanDirection.DESCENDING,
    ) -> AsyncIterator[ClassifiedBlob]:
        """Yield every classified blob in ``[low, high]``."""
        for position in self.positions(low, high, direction):
            try:
                blobs = await self.client.fetch_all(position, self.channel)
            except BlobFetchError as e:
                logger.debug(f"Skipping position {position}: {e.message}")
                self.skipped_positions.append(position)
                continue

            if not blobs:
                continue
            if direction == ScanDirection.DESCENDING:
                blobs = list(reversed(blobs))
            for blob in blobs:
                yield self.classifier(blob, position)

    async def scan_kind(
        self,
        low: int,
        high: int,
        kind: BlobKind,
        direction: ScanDirection = ScanDirection.DESCENDING,
    ) -> AsyncIterator[ClassifiedBlob]:
        """Like ``scan`` but only yields blobs of one kind."""
        async with aclosing(self.scan(low, high, direction)) as blobs:
            async for blob in blobs:
                if blob.kind == kind:
                    yield blob
