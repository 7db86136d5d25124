"""
Tests for RecordStore.

Most tests run under both lookup strategies through the parametrized
``store`` fixture; the behavior visible to callers must be the same.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from ledger_record_storage.channel import Channel
from ledger_record_storage.exceptions import (
    RecordNotFoundError,
    RejectedError,
    StoreNotReadyError,
    TransportError,
)
from ledger_record_storage.ledger.memory import InMemoryLedger
from ledger_record_storage.records import BlobKind, classify, encode_record
from ledger_record_storage.records.types import DataRecord
from ledger_record_storage.store import LookupStrategy, RecordStore, StoreState


class TestLifecycle:
    """Tests for store initialization."""

    @pytest.mark.asyncio
    async def test_open_makes_store_ready(self, store) -> None:
        assert store.state == StoreState.READY

    @pytest.mark.asyncio
    async def test_operations_before_initialize_fail(self, ledger, channel, strategy) -> None:
        store = RecordStore(ledger, channel, strategy=strategy)
        assert store.state == StoreState.UNINITIALIZED
        with pytest.raises(StoreNotReadyError):
            await store.read("anything")
        with pytest.raises(StoreNotReadyError):
            await store.create(b"x")
        with pytest.raises(StoreNotReadyError):
            await store.list()

    @pytest.mark.asyncio
    async def test_failed_discovery_resets_state(self, channel) -> None:
        client = AsyncMock()
        client.head.side_effect = TransportError("http://node", ConnectionError("refused"))
        store = RecordStore(client, channel)

        with pytest.raises(TransportError):
            await store.initialize()
        assert store.state == StoreState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_initialize_twice_is_a_no_op(self, ledger, channel) -> None:
        store = await RecordStore.open(ledger, channel)
        submissions = ledger.submissions
        await store.initialize()
        assert ledger.submissions == submissions


class TestCreateAndRead:
    """Tests for create and read."""

    @pytest.mark.asyncio
    async def test_demo_scenario(self, ledger, strategy) -> None:
        """Fresh channel: create, read back, list exactly one record."""
        store = await RecordStore.open(ledger, Channel.from_plaintext("demo"), strategy=strategy)

        record_id = await store.create("hello")
        record = await store.read(record_id)
        assert record.payload == b"hello"
        assert record.id == record_id

        records = await store.list()
        assert [r.id for r in records] == [record_id]

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, store) -> None:
        first = await store.create(b"a")
        second = await store.create(b"a")
        assert first != second

    @pytest.mark.asyncio
    async def test_read_missing(self, store) -> None:
        with pytest.raises(RecordNotFoundError) as exc_info:
            await store.read("missing")
        assert exc_info.value.record_id == "missing"

    @pytest.mark.asyncio
    async def test_binary_payload(self, store) -> None:
        payload = bytes(range(256))
        record_id = await store.create(payload)
        assert (await store.read(record_id)).payload == payload

    @pytest.mark.asyncio
    async def test_one_submission_per_write(self, store, ledger) -> None:
        """Data and metadata land together in a single batch."""
        before = ledger.submissions
        await store.create(b"x")
        assert ledger.submissions == before + 1

        position = await ledger.head()
        kinds = [classify(b, position).kind for b in await ledger.fetch_all(position, store.channel)]
        assert kinds == [BlobKind.RECORD, BlobKind.METADATA]

    @pytest.mark.asyncio
    async def test_record_count(self, store) -> None:
        await store.create(b"a")
        await store.create(b"b")
        assert store.metadata.record_count == 2


class TestUpdate:
    """Tests for update."""

    @pytest.mark.asyncio
    async def test_update_replaces_payload(self, store) -> None:
        record_id = await store.create(b"v1")
        await store.update(record_id, b"v2")

        record = await store.read(record_id)
        assert record.payload == b"v2"
        assert record.updated_at > record.created_at

    @pytest.mark.asyncio
    async def test_update_keeps_count(self, store) -> None:
        record_id = await store.create(b"v1")
        await store.update(record_id, b"v2")
        assert store.metadata.record_count == 1

    @pytest.mark.asyncio
    async def test_two_updates_scenario(self, store) -> None:
        """History holds every version, reads and listings only the newest."""
        record_id = await store.create(b"original")
        await store.update(record_id, b"A")
        await store.update(record_id, b"B")

        assert (await store.read(record_id)).payload == b"B"
        records = await store.list()
        assert [(r.id, r.payload) for r in records] == [(record_id, b"B")]

        history = await store.history(record_id)
        assert [r.payload for _, r in history] == [b"original", b"A", b"B"]
        positions = [p for p, _ in history]
        assert positions == sorted(positions)

    @pytest.mark.asyncio
    async def test_update_missing(self, store) -> None:
        with pytest.raises(RecordNotFoundError):
            await store.update("missing", b"x")

    @pytest.mark.asyncio
    async def test_update_deleted(self, store) -> None:
        record_id = await store.create(b"v1")
        await store.delete(record_id)
        with pytest.raises(RecordNotFoundError):
            await store.update(record_id, b"v2")


class TestDelete:
    """Tests for delete."""

    @pytest.mark.asyncio
    async def test_deleted_record_is_gone(self, store) -> None:
        keep = await store.create(b"keep")
        gone = await store.create(b"gone")
        await store.delete(gone)

        with pytest.raises(RecordNotFoundError):
            await store.read(gone)
        assert [r.id for r in await store.list()] == [keep]
        assert store.metadata.record_count == 1

    @pytest.mark.asyncio
    async def test_delete_nonexistent_keeps_count(self, store, ledger) -> None:
        await store.create(b"x")
        submissions = ledger.submissions

        with pytest.raises(RecordNotFoundError):
            await store.delete("missing")
        assert store.metadata.record_count == 1
        assert ledger.submissions == submissions

    @pytest.mark.asyncio
    async def test_delete_twice(self, store) -> None:
        record_id = await store.create(b"x")
        await store.delete(record_id)
        with pytest.raises(RecordNotFoundError):
            await store.delete(record_id)

    @pytest.mark.asyncio
    async def test_delete_writes_tombstone(self, store, ledger) -> None:
        """Delete is durable: a tombstone is submitted with the metadata."""
        record_id = await store.create(b"x")
        await store.delete(record_id)

        history = await store.history(record_id)
        assert [r.deleted for _, r in history] == [False, True]
        tombstone = json.loads((await ledger.fetch_all(await ledger.head(), store.channel))[0])
        assert tombstone["deleted"] is True
        assert tombstone["payload"] == ""

    @pytest.mark.asyncio
    async def test_put_after_delete_revives(self, store) -> None:
        await store.put("k", b"one")
        await store.delete("k")
        await store.put("k", b"two")
        assert (await store.get("k")).payload == b"two"
        assert store.metadata.record_count == 1


class TestList:
    """Tests for list."""

    @pytest.mark.asyncio
    async def test_no_duplicates(self, store) -> None:
        first = await store.create(b"a")
        second = await store.create(b"b")
        for i in range(3):
            await store.update(first, f"a{i}".encode())

        records = await store.list()
        assert sorted(r.id for r in records) == sorted([first, second])

    @pytest.mark.asyncio
    async def test_ordered_by_creation(self, store) -> None:
        ids = [await store.create(str(i).encode()) for i in range(4)]
        await store.update(ids[0], b"updated")

        records = await store.list()
        assert sorted(r.id for r in records) == sorted(ids)
        created = [r.created_at for r in records]
        assert created == sorted(created)

    @pytest.mark.asyncio
    async def test_empty(self, store) -> None:
        assert await store.list() == []

    @pytest.mark.asyncio
    async def test_unreadable_position_is_omitted(self, store, ledger) -> None:
        """Listing is best effort."""
        readable = await store.create(b"ok")
        await store.create(b"lost")
        ledger.fail_position(await ledger.head())

        assert [r.id for r in await store.list()] == [readable]


class TestPersistence:
    """Tests for reopening a store on the same channel."""

    @pytest.mark.asyncio
    async def test_reopen_sees_records(self, store, ledger, channel, strategy) -> None:
        kept = await store.create(b"kept")
        updated = await store.create(b"v1")
        await store.update(updated, b"v2")
        deleted = await store.create(b"deleted")
        await store.delete(deleted)

        reopened = await RecordStore.open(ledger, channel, strategy=strategy)
        assert reopened.metadata.start_position == store.metadata.start_position
        assert reopened.metadata.record_count == 2
        assert (await reopened.read(kept)).payload == b"kept"
        assert (await reopened.read(updated)).payload == b"v2"
        with pytest.raises(RecordNotFoundError):
            await reopened.read(deleted)

    @pytest.mark.asyncio
    async def test_reopen_index_matches(self, indexed_store, ledger, channel) -> None:
        """Rediscovery yields the same directory the writer holds."""
        for i in range(3):
            await indexed_store.create(str(i).encode())

        reopened = await RecordStore.open(ledger, channel)
        assert reopened.metadata.index == indexed_store.metadata.index

    @pytest.mark.asyncio
    async def test_refresh_picks_up_other_writer(self, indexed_store, ledger, channel) -> None:
        reader = await RecordStore.open(ledger, channel)
        record_id = await indexed_store.create(b"from writer")

        with pytest.raises(RecordNotFoundError):
            await reader.read(record_id)
        await reader.refresh()
        assert (await reader.read(record_id)).payload == b"from writer"

    @pytest.mark.asyncio
    async def test_refresh_without_new_metadata(self, indexed_store) -> None:
        record_id = await indexed_store.create(b"x")
        await indexed_store.refresh()
        assert (await indexed_store.read(record_id)).payload == b"x"


class TestFailures:
    """Tests for submission failures."""

    @pytest.mark.asyncio
    async def test_rejected_create_leaves_state(self, store) -> None:
        store.client.submit = AsyncMock(side_effect=RejectedError("insufficient fees"))

        with pytest.raises(RejectedError):
            await store.create(b"x")
        assert store.metadata.record_count == 0
        assert store.metadata.index == {}

    @pytest.mark.asyncio
    async def test_rejected_delete_leaves_record(self, store) -> None:
        record_id = await store.create(b"x")
        original_submit = store.client.submit
        store.client.submit = AsyncMock(side_effect=RejectedError("insufficient fees"))

        with pytest.raises(RejectedError):
            await store.delete(record_id)
        store.client.submit = original_submit
        assert (await store.read(record_id)).payload == b"x"
        assert store.metadata.record_count == 1

    @pytest.mark.asyncio
    async def test_oversized_blob_rejected(self, channel) -> None:
        ledger = InMemoryLedger(max_blob_size=2048)
        store = await RecordStore.open(ledger, channel)
        with pytest.raises(RejectedError):
            await store.create(b"x" * 4096)
        assert await store.list() == []


class TestScanStrategy:
    """Behavior specific to the scan strategy."""

    @pytest.mark.asyncio
    async def test_metadata_carries_no_directory(self, ledger, channel) -> None:
        store = await RecordStore.open(ledger, channel, strategy=LookupStrategy.SCAN)
        await store.create(b"x")
        assert store.metadata.index == {}
        assert store.metadata.record_count == 1

    @pytest.mark.asyncio
    async def test_ignores_foreign_blobs(self, ledger, channel, other_channel) -> None:
        store = await RecordStore.open(ledger, channel, strategy=LookupStrategy.SCAN)
        record_id = await store.create(b"mine")
        await ledger.submit(channel, [b"not a record"])
        await ledger.submit(other_channel, [encode_record(DataRecord.new(b"theirs", record_id))])

        assert (await store.read(record_id)).payload == b"mine"
        assert len(await store.list()) == 1

    @pytest.mark.asyncio
    async def test_reads_legacy_blobs(self, channel) -> None:
        """Stores written by the key/value tool stay readable."""
        ledger = InMemoryLedger()
        metadata = {"start_height": 2, "record_count": 1, "last_updated": "2024-01-01T00:00:00Z"}
        record = {
            "key": "greeting",
            "value": "hello",
            "id": "3f1c0a52-0000-0000-0000-000000000000",
            "created_at": "2024-01-01T00:00:00Z",
            "updated_at": None,
        }
        ledger.inject(2, channel, [json.dumps(metadata).encode()])
        ledger.inject(3, channel, [json.dumps(record).encode()])

        store = await RecordStore.open(ledger, channel, strategy=LookupStrategy.SCAN)
        assert ledger.submissions == 0
        assert (await store.get("greeting")).payload == b"hello"


class TestKeyValue:
    """Tests for put/get."""

    @pytest.mark.asyncio
    async def test_put_creates_then_updates(self, store) -> None:
        first = await store.put("config", b"one")
        second = await store.put("config", "two")

        assert first.id == second.id == "config"
        assert second.created_at == first.created_at
        assert (await store.get("config")).payload == b"two"
        assert store.metadata.record_count == 1

    @pytest.mark.asyncio
    async def test_get_missing(self, store) -> None:
        with pytest.raises(RecordNotFoundError):
            await store.get("nope")

    @pytest.mark.asyncio
    async def test_history_of_unknown_id(self, store) -> None:
        assert await store.history("nope") == []


class YieldingLedger(InMemoryLedger):
    """In-memory ledger whose submit yields first, so concurrent writers interleave."""

    async def submit(self, channel, blobs):
        await asyncio.sleep(0)
        return await super().submit(channel, blobs)


class TestConcurrentWrites:
    """Tests for overlapping mutations on one store."""

    @pytest.mark.asyncio
    async def test_gathered_creates_all_survive_reopen(self, channel, strategy) -> None:
        ledger = YieldingLedger()
        store = await RecordStore.open(ledger, channel, strategy=strategy)

        ids = await asyncio.gather(*(store.create(f"r{i}".encode()) for i in range(3)))

        reopened = await RecordStore.open(ledger, channel, strategy=strategy)
        assert reopened.metadata.record_count == 3
        assert sorted(r.id for r in await reopened.list()) == sorted(ids)
        if strategy == LookupStrategy.INDEXED:
            assert reopened.metadata.index == store.metadata.index

    @pytest.mark.asyncio
    async def test_gathered_update_and_delete(self, channel) -> None:
        ledger = YieldingLedger()
        store = await RecordStore.open(ledger, channel)
        kept = await store.create(b"v1")
        dropped = await store.create(b"x")

        await asyncio.gather(store.update(kept, b"v2"), store.delete(dropped), store.put("k", b"v"))

        reopened = await RecordStore.open(ledger, channel)
        assert reopened.metadata.record_count == 2
        assert (await reopened.read(kept)).payload == b"v2"
        assert (await reopened.get("k")).payload == b"v"
        with pytest.raises(RecordNotFoundError):
            await reopened.read(dropped)


class TestStartHint:
    """Tests for opening with a start position hint."""

    @pytest.mark.asyncio
    async def test_hint_beyond_head_keeps_writes_visible(self, ledger, channel) -> None:
        store = await RecordStore.open(ledger, channel, strategy=LookupStrategy.SCAN, start_hint=100)
        record_id = await store.create(b"visible")

        assert store.metadata.start_position <= await ledger.head()
        assert (await store.read(record_id)).payload == b"visible"
        assert [r.id for r in await store.list()] == [record_id]
