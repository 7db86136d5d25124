"""
Ledger Record Storage

Key-value record store on an append-only, externally ordered blob ledger.

Provides:
- CRUD over opaque records, with tombstone deletes
- Store discovery by channel, with no directory service
- Two lookup strategies (metadata index or log scan)
- Ledger clients for a Celestia node, a local JSONL file, and memory

Usage:

    >>> from ledger_record_storage import Channel, InMemoryLedger, RecordStore
    >>> async with InMemoryLedger() as ledger:
    ...     store = await RecordStore.open(ledger, Channel.from_plaintext("demo"))
    ...     record_id = await store.create(b"hello")
    ...     record = await store.read(record_id)

Ledger Selection:

    # Celestia node over JSON-RPC
    from ledger_record_storage.ledger import CelestiaLedgerClient

    # Local JSONL file for development
    from ledger_record_storage.ledger import LocalFileLedger

    # Everything from the environment
    from ledger_record_storage import StoreConfig
    config = StoreConfig.from_environment()
    client = config.build_client()
"""

from .channel import DEFAULT_CHANNEL_WIDTH, Channel
from .config import LedgerBackend, StoreConfig
from .discovery import DEFAULT_SEARCH_LIMIT, discover_or_create, find_metadata

# Exceptions
from .exceptions import (
    AuthenticationError,
    BlobFetchError,
    ConfigurationError,
    InvalidChannelError,
    RecordNotFoundError,
    RecordStorageError,
    RejectedError,
    SerializationError,
    StoreNotReadyError,
    TransportError,
)
from .index import MetadataIndex

# Ledger clients
from .ledger import CelestiaLedgerClient, InMemoryLedger, LedgerClient, LocalFileLedger

# Records
from .records import (
    BlobKind,
    ClassifiedBlob,
    DataRecord,
    MetadataRecord,
    classify,
    decode_metadata,
    decode_record,
    encode_metadata,
    encode_record,
)
from .scanner import RangeScanner, ScanDirection
from .store import LookupStrategy, RecordStore, StoreState

__version__ = "0.1.0"

__all__ = [
    # Store
    "RecordStore",
    "LookupStrategy",
    "StoreState",
    "StoreConfig",
    "LedgerBackend",
    "MetadataIndex",
    "discover_or_create",
    "find_metadata",
    "DEFAULT_SEARCH_LIMIT",
    # Channels
    "Channel",
    "DEFAULT_CHANNEL_WIDTH",
    # Scanning
    "RangeScanner",
    "ScanDirection",
    # Records
    "BlobKind",
    "ClassifiedBlob",
    "DataRecord",
    "MetadataRecord",
    "classify",
    "decode_metadata",
    "decode_record",
    "encode_metadata",
    "encode_record",
    # Ledger clients
    "LedgerClient",
    "CelestiaLedgerClient",
    "InMemoryLedger",
    "LocalFileLedger",
    # Exceptions
    "RecordStorageError",
    "TransportError",
    "AuthenticationError",
    "RejectedError",
    "BlobFetchError",
    "InvalidChannelError",
    "SerializationError",
    "RecordNotFoundError",
    "StoreNotReadyError",
    "ConfigurationError",
]
