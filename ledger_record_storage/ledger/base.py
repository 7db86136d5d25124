"""
Abstract ledger client interface.

The ledger is an external, append-only, position-ordered blob log.
It cannot be searched by content; the store only ever submits blobs,
fetches all blobs at one position, and asks for the head position.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..channel import Channel


class LedgerClient(ABC):
    """Narrow interface every ledger backend must implement.

    Guarantees expected from implementations:
    - higher positions are chronologically later
    - ``head()`` never decreases
    - blobs at an existing position never change
    """

    endpoint: str = "ledger"

    @abstractmethod
    async def submit(self, channel: Channel, blobs: list[bytes]) -> int:
        """Submit a batch of blobs to a channel in one submission.

        All blobs of the batch land at the same position.

        Args:
            channel: Channel to write to
            blobs: Opaque blob bytes, in submission order

        Returns:
            Position at which the batch was included

        Raises:
            TransportError: If the ledger cannot be reached
            RejectedError: If the ledger refuses the submission
        """
        ...

    @abstractmethod
    async def fetch_all(self, position: int, channel: Channel) -> list[bytes] | None:
        """Fetch every blob the channel has at a position.

        Args:
            position: Ledger position
            channel: Channel to read

        Returns:
            Blobs in submission order, or None if the position holds none

        Raises:
            BlobFetchError: If this single position could not be read
            TransportError: If the ledger cannot be reached
        """
        ...

    @abstractmethod
    async def head(self) -> int:
        """Return the current head position.

        Raises:
            TransportError: If the ledger cannot be reached
        """
        ...

    async def close(self) -> None:
        """Release any connection resources."""
        return None

    async def __aenter__(self) -> LedgerClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
