"""
Record store on top of an append-only ledger.

RecordStore is the public CRUD surface. Every mutation submits the new
DataRecord and the updated MetadataRecord together in one batch, so
the ledger never holds a data write without its matching metadata.

Two lookup strategies are available and a store uses exactly one:
- INDEXED: the metadata carries an id -> position directory. Reads are
  one fetch, at the cost of re-submitting the directory on every write.
- SCAN: the metadata carries only counters. Reads walk the log back
  from the head and the newest version of an id wins.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import aclosing
from enum import Enum

from .channel import Channel
from .discovery import discover_or_create, find_metadata
from .exceptions import BlobFetchError, RecordNotFoundError, SerializationError, StoreNotReadyError
from .index import MetadataIndex
from .ledger.base import LedgerClient
from .logging_utils import ChannelLoggerAdapter, get_storage_logger
from .records.codec import decode_record, encode_metadata, encode_record
from .records.types import BlobKind, DataRecord, MetadataRecord
from .scanner import RangeScanner, ScanDirection


class LookupStrategy(Enum):
    """How reads locate the latest version of a record."""

    INDEXED = "indexed"
    SCAN = "scan"


class StoreState(Enum):
    """Store lifecycle. READY is terminal for the process lifetime."""

    UNINITIALIZED = "uninitialized"
    DISCOVERING = "discovering"
    READY = "ready"


def _as_bytes(payload: bytes | str) -> bytes:
    return payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)


class RecordStore:
    """Key-value record store layered on a ledger channel.

    Example:
        >>> ledger = InMemoryLedger()
        >>> store = await RecordStore.open(ledger, Channel.from_plaintext("demo"))
        >>> record_id = await store.create(b"hello")
        >>> (await store.read(record_id)).payload
        b'hello'
    """

    def __init__(
        self,
        client: LedgerClient,
        channel: Channel,
        *,
        strategy: LookupStrategy = LookupStrategy.INDEXED,
        start_hint: int | None = None,
        search_limit: int | None = None,
    ) -> None:
        """Initialize the store. Call ``initialize()`` before use.

        Args:
            client: Ledger client
            channel: Channel owned by this store
            strategy: Lookup strategy
            start_hint: Position to check first for existing metadata
            search_limit: Discovery lookback window
        """
        self.client = client
        self.channel = channel
        self.strategy = strategy
        self.start_hint = start_hint
        self.search_limit = search_limit
        self._state = StoreState.UNINITIALIZED
        self._index: MetadataIndex | None = None
        # One mutation at a time: each metadata snapshot must include the previous write.
        self._write_lock = asyncio.Lock()
        self.logger = ChannelLoggerAdapter(get_storage_logger("store"), channel.hex)

    @classmethod
    async def open(
        cls,
        client: LedgerClient,
        channel: Channel,
        *,
        strategy: LookupStrategy = LookupStrategy.INDEXED,
        start_hint: int | None = None,
        search_limit: int | None = None,
    ) -> RecordStore:
        """Create a store and run discovery."""
        store = cls(
            client,
            channel,
            strategy=strategy,
            start_hint=start_hint,
            search_limit=search_limit,
        )
        await store.initialize()
        return store

    async def initialize(self) -> None:
        """Discover the store's metadata on the channel, or create it.

        Raises:
            TransportError: If the ledger cannot be reached
            RejectedError: If new metadata could not be submitted
        """
        if self._state == StoreState.READY:
            return

        self._state = StoreState.DISCOVERING
        try:
            self._index = await discover_or_create(
                self.client, self.channel, self.start_hint, self.search_limit
            )
        except BaseException:
            self._state = StoreState.UNINITIALIZED
            raise

        self._state = StoreState.READY
        self.logger.info(
            f"Store ready on {self.channel} (start position {self._index.start_position}, "
            f"strategy {self.strategy.value})"
        )

    async def refresh(self) -> None:
        """Re-read the newest metadata from the ledger, if any.

        Picks up writes made by other processes on the same channel.
        """
        index = self._require_ready()
        async with self._write_lock:
            found = await find_metadata(self.client, self.channel, search_limit=self.search_limit)
            if found is None:
                return
            metadata, position = found
            if index.position is not None and position < index.position:
                return
            index.replace(metadata, position)
        self.logger.debug(f"Refreshed metadata from position {position}")

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def metadata(self) -> MetadataRecord:
        """Snapshot of the current metadata."""
        return self._require_ready().snapshot()

    @property
    def indexed(self) -> bool:
        return self.strategy == LookupStrategy.INDEXED

    def _require_ready(self) -> MetadataIndex:
        if self._state != StoreState.READY or self._index is None:
            raise StoreNotReadyError(self._state.value)
        return self._index

    def _scanner(self) -> RangeScanner:
        return RangeScanner(self.client, self.channel)

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create(self, payload: bytes | str) -> str:
        """Store a new record under a fresh UUID.

        Returns:
            The new record id

        Raises:
            TransportError, RejectedError: If the submission failed
        """
        record = DataRecord.new(_as_bytes(payload))
        async with self._write_lock:
            await self._write(record, is_new=True)
        self.logger.info(f"Created record {record.id}")
        return record.id

    async def read(self, record_id: str) -> DataRecord:
        """Return the latest version of a record.

        Raises:
            RecordNotFoundError: If the id is absent or deleted
        """
        if self.indexed:
            record = await self._read_indexed(record_id)
        else:
            record = await self._read_scan(record_id)

        if record is None or record.deleted:
            raise RecordNotFoundError(record_id)
        return record

    async def update(self, record_id: str, payload: bytes | str) -> DataRecord:
        """Write a new version of an existing record.

        Returns:
            The new version

        Raises:
            RecordNotFoundError: If the id is absent or deleted
        """
        async with self._write_lock:
            current = await self.read(record_id)
            revised = current.revise(_as_bytes(payload))
            await self._write(revised, is_new=False)
        self.logger.info(f"Updated record {record_id}")
        return revised

    async def delete(self, record_id: str) -> None:
        """Tombstone a record. Nothing is erased from the ledger.

        Raises:
            RecordNotFoundError: If the id is absent or already deleted
        """
        index = self._require_ready()
        async with self._write_lock:
            if self.indexed:
                if index.lookup(record_id) is None:
                    raise RecordNotFoundError(record_id)
                tombstone = DataRecord.tombstone_for(record_id)
            else:
                tombstone = (await self.read(record_id)).tombstone()

            pending = index.prepare_delete(record_id, indexed=self.indexed)
            position = await self.client.submit(
                self.channel, [encode_record(tombstone), encode_metadata(pending.snapshot)]
            )
            index.apply_delete(pending, position, indexed=self.indexed)
        self.logger.at_position(position).info(f"Deleted record {record_id}")

    async def list(self) -> list[DataRecord]:
        """Return the latest version of every live record, oldest first.

        Listing is best effort: a position that cannot be fetched or
        decoded drops its records from the result instead of failing.
        """
        if self.indexed:
            records = await self._list_indexed()
        else:
            records = await self._list_scan()
        return sorted(records, key=lambda r: (r.created_at, r.id))

    # =========================================================================
    # Key/value convenience and history
    # =========================================================================

    async def put(self, key: str, payload: bytes | str) -> DataRecord:
        """Create or update the record whose id is ``key``."""
        async with self._write_lock:
            try:
                current = await self.read(key)
            except RecordNotFoundError:
                record = DataRecord.new(_as_bytes(payload), record_id=key)
                await self._write(record, is_new=True)
                self.logger.info(f"Created record {key}")
                return record

            revised = current.revise(_as_bytes(payload))
            await self._write(revised, is_new=False)
        self.logger.info(f"Updated record {key}")
        return revised

    async def get(self, key: str) -> DataRecord:
        """Return the record whose id is ``key``."""
        return await self.read(key)

    async def history(self, record_id: str) -> list[tuple[int, DataRecord]]:
        """Every version written for an id, oldest first, tombstones included."""
        index = self._require_ready()
        head = await self.client.head()
        versions: list[tuple[int, DataRecord]] = []
        async with aclosing(
            self._scanner().scan_kind(
                index.start_position, head, BlobKind.RECORD, ScanDirection.ASCENDING
            )
        ) as blobs:
            async for blob in blobs:
                if blob.record is not None and blob.record.id == record_id:
                    versions.append((blob.position, blob.record))
        return versions

    # =========================================================================
    # Internals
    # =========================================================================

    async def _write(self, record: DataRecord, is_new: bool) -> int:
        """Submit a data version and its metadata in one batch.

        Callers hold ``_write_lock``.
        """
        index = self._require_ready()
        if self.indexed:
            pending = index.prepare_write(record.id)
        else:
            pending = index.prepare_scan_write(record.id, is_new)

        position = await self.client.submit(
            self.channel, [encode_record(record), encode_metadata(pending.snapshot)]
        )
        index.apply_write(pending, position, indexed=self.indexed)
        self.logger.at_position(position).debug(f"Wrote {record.id} with metadata")
        return position

    async def _read_indexed(self, record_id: str) -> DataRecord | None:
        index = self._require_ready()
        position = index.lookup(record_id)
        if position is None:
            return None

        blobs = await self.client.fetch_all(position, self.channel)
        record = _latest_version(blobs or [], record_id)
        if record is None:
            self.logger.at_position(position).warning(f"Index points {record_id} here but no record is there")
        return record

    async def _read_scan(self, record_id: str) -> DataRecord | None:
        index = self._require_ready()
        head = await self.client.head()
        async with aclosing(
            self._scanner().scan_kind(index.start_position, head, BlobKind.RECORD)
        ) as blobs:
            async for blob in blobs:
                if blob.record is not None and blob.record.id == record_id:
                    return blob.record
        return None

    async def _list_indexed(self) -> list[DataRecord]:
        index = self._require_ready()
        by_position: dict[int, list[str]] = defaultdict(list)
        for record_id, position in index.live_entries():
            by_position[position].append(record_id)

        async def fetch_position(position: int, record_ids: list[str]) -> list[DataRecord]:
            try:
                blobs = await self.client.fetch_all(position, self.channel)
            except BlobFetchError as e:
                self.logger.at_position(position).warning(
                    f"Omitting {len(record_ids)} record(s): {e.message}"
                )
                return []
            found = []
            for record_id in record_ids:
                record = _latest_version(blobs or [], record_id)
                if record is not None and not record.deleted:
                    found.append(record)
            return found

        results = await asyncio.gather(
            *(fetch_position(position, ids) for position, ids in by_position.items())
        )
        return [record for batch in results for record in batch]

    async def _list_scan(self) -> list[DataRecord]:
        index = self._require_ready()
        head = await self.client.head()
        seen: set[str] = set()
        records: list[DataRecord] = []
        async with aclosing(
            self._scanner().scan_kind(index.start_position, head, BlobKind.RECORD)
        ) as blobs:
            async for blob in blobs:
                record = blob.record
                if record is None or record.id in seen:
                    continue
                # Newest first: the first version seen shadows all older ones.
                seen.add(record.id)
                if not record.deleted:
                    records.append(record)
        return records


def _latest_version(blobs: list[bytes], record_id: str) -> DataRecord | None:
    """Newest DataRecord for an id among the blobs of one position."""
    for blob in reversed(blobs):
        try:
            record = decode_record(blob)
        except SerializationError:
            continue
        if record.id == record_id:
            return record
    return None
