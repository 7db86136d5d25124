"""
Ledger clients.

The store depends only on the LedgerClient interface. Three
implementations ship with the library:

    >>> from ledger_record_storage.ledger import InMemoryLedger
    >>> from ledger_record_storage.ledger import LocalFileLedger
    >>> from ledger_record_storage.ledger import CelestiaLedgerClient
"""

from .base import LedgerClient
from .celestia import CelestiaLedgerClient, JsonRpcError, namespace_for
from .local import LocalFileLedger
from .memory import InMemoryLedger

__all__ = [
    "LedgerClient",
    "InMemoryLedger",
    "LocalFileLedger",
    "CelestiaLedgerClient",
    "JsonRpcError",
    "namespace_for",
]
