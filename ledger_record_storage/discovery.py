"""
Store discovery.

There is no directory service: the only way to find an existing store
on a channel is to look for its metadata blob. Discovery checks a
caller-provided hint position first, then walks a bounded window
back from the head, and mints a fresh store if nothing is found.
"""

from __future__ import annotations

import logging
from contextlib import aclosing

from .channel import Channel
from .exceptions import BlobFetchError, SerializationError
from .index import MetadataIndex
from .ledger.base import LedgerClient
from .records.codec import decode_metadata, encode_metadata
from .records.types import BlobKind, MetadataRecord
from .scanner import RangeScanner, ScanDirection

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 1000


def search_window(head: int, search_limit: int | None = None) -> tuple[int, int]:
    """The closed window ``[max(1, head - limit), head]`` searched for metadata."""
    limit = DEFAULT_SEARCH_LIMIT if search_limit is None else search_limit
    return max(1, head - limit), head


def _latest_metadata(blobs: list[bytes], position: int) -> MetadataRecord | None:
    """Most recent decodable metadata at a position (last submitted wins)."""
    for blob in reversed(blobs):
        try:
            return decode_metadata(blob, position)
        except SerializationError:
            continue
    return None


async def find_metadata(
    client: LedgerClient,
    channel: Channel,
    hint: int | None = None,
    search_limit: int | None = None,
) -> tuple[MetadataRecord, int] | None:
    """Look for the authoritative metadata without writing anything.

    Args:
        client: Ledger client
        channel: Store channel
        hint: Position to check first; metadata found there is trusted as-is
        search_limit: Size of the window searched back from the head

    Returns:
        (metadata, position) or None if no metadata was found

    Raises:
        TransportError: If the ledger cannot be reached
    """
    if hint is not None:
        logger.info(f"Checking for existing metadata at position {hint}")
        try:
            blobs = await client.fetch_all(hint, channel)
        except BlobFetchError as e:
            logger.info(f"No metadata readable at position {hint}: {e.message}")
            blobs = None
        metadata = _latest_metadata(blobs or [], hint)
        if metadata is not None:
            logger.info(f"Found existing metadata at position {hint}")
            return metadata, hint

    head = await client.head()
    low, high = search_window(head, search_limit)
    logger.info(f"Searching for metadata in positions {low}..{high}")

    scanner = RangeScanner(client, channel)
    found = None
    async with aclosing(
        scanner.scan_kind(low, high, BlobKind.METADATA, ScanDirection.DESCENDING)
    ) as blobs:
        # Newest first: the first metadata seen is authoritative.
        async for blob in blobs:
            found = blob
            break

    if found is None:
        return None

    logger.info(f"Found existing metadata at position {found.position}")
    return found.metadata, found.position


async def discover_or_create(
    client: LedgerClient,
    channel: Channel,
    hint: int | None = None,
    search_limit: int | None = None,
) -> MetadataIndex:
    """Find the store's metadata on a channel, or mint a new store.

    A new store is anchored at the hint if one was given and it is not
    beyond the head, otherwise at the current head. Its metadata is
    submitted immediately; for a head-anchored store the start is then
    moved to the confirmed inclusion position.

    Raises:
        TransportError: If the ledger cannot be reached
        RejectedError: If the new metadata could not be submitted
    """
    existing = await find_metadata(client, channel, hint, search_limit)
    if existing is not None:
        metadata, position = existing
        return MetadataIndex(metadata, position)

    head = await client.head()
    anchored_at_hint = hint is not None and hint <= head
    if hint is not None and not anchored_at_hint:
        logger.warning(f"Hint {hint} is beyond head {head}, anchoring new store at its own position")
    metadata = MetadataRecord(
        start_position=hint if anchored_at_hint else head,
        self_anchored=not anchored_at_hint,
    )

    logger.info(f"No existing metadata found on {channel}, creating new store")
    position = await client.submit(channel, [encode_metadata(metadata)])

    # The blob is persisted self-anchored; the live copy is already resolved.
    index = MetadataIndex(metadata.copy().resolve_position(position), position)
    if not anchored_at_hint:
        index.confirm_start(position)
    logger.info(f"Created store metadata at position {position} (start {index.start_position})")
    return index
