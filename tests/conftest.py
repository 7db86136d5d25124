"""
Shared test configuration and fixtures.

Every store test runs against the in-process ledger, so no ledger
node is needed. Store fixtures are parametrized over both lookup
strategies where the behavior must be identical.
"""

import pytest

from ledger_record_storage.channel import Channel
from ledger_record_storage.ledger.memory import InMemoryLedger
from ledger_record_storage.store import LookupStrategy, RecordStore


@pytest.fixture
def channel() -> Channel:
    return Channel.from_plaintext("test")


@pytest.fixture
def other_channel() -> Channel:
    return Channel.from_plaintext("other")


@pytest.fixture
async def ledger():
    """Fixture providing a fresh in-memory ledger with head at 1."""
    client = InMemoryLedger()
    yield client
    await client.close()


@pytest.fixture(params=[LookupStrategy.INDEXED, LookupStrategy.SCAN], ids=["indexed", "scan"])
def strategy(request) -> LookupStrategy:
    return request.param


@pytest.fixture
async def store(ledger, channel, strategy) -> RecordStore:
    """Fixture providing a READY store for each lookup strategy."""
    return await RecordStore.open(ledger, channel, strategy=strategy)


@pytest.fixture
async def indexed_store(ledger, channel) -> RecordStore:
    return await RecordStore.open(ledger, channel, strategy=LookupStrategy.INDEXED)
