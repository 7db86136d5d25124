"""
Custom exceptions for ledger record storage.

All ledger clients and store operations raise these exceptions
for consistent error handling across ledger backends.
"""


class RecordStorageError(Exception):
    """Base exception for all record storage errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransportError(RecordStorageError):
    """Raised when the ledger cannot be reached at all.

    Fatal for the operation in progress. The store never retries;
    retry policy belongs to the ledger client.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        message = f"Ledger unreachable at {endpoint}"
        if cause:
            message += f": {cause}"
        super().__init__(message, details)
        self.endpoint = endpoint
        self.cause = cause


class AuthenticationError(TransportError):
    """Raised when the ledger rejects our credentials."""

    def __init__(self, endpoint: str, reason: str | None = None):
        details = {"endpoint": endpoint}
        message = f"Authentication failed for {endpoint}"
        if reason:
            details["reason"] = reason
            message += f": {reason}"
        RecordStorageError.__init__(self, message, details)
        self.endpoint = endpoint
        self.cause = None
        self.reason = reason


class RejectedError(RecordStorageError):
    """Raised when the ledger refuses a submission (fees, auth, size).

    The mutation has no effect and the in-memory index is unchanged.
    """

    def __init__(self, reason: str, channel: str | None = None):
        details = {"reason": reason}
        if channel:
            details["channel"] = channel
        super().__init__(f"Submission rejected: {reason}", details)
        self.reason = reason
        self.channel = channel


class BlobFetchError(RecordStorageError):
    """Raised when the blobs at a single position cannot be fetched.

    Scans treat this as "nothing here" and move on.
    """

    def __init__(self, position: int, cause: Exception | str | None = None):
        details: dict = {"position": position}
        if cause:
            details["cause"] = str(cause)
        message = f"Could not fetch blobs at position {position}"
        if cause:
            message += f": {cause}"
        super().__init__(message, details)
        self.position = position
        self.cause = cause


class InvalidChannelError(RecordStorageError):
    """Raised when a channel identifier has the wrong width or encoding."""

    def __init__(self, channel: str, reason: str, expected_width: int | None = None):
        details = {"channel": channel, "reason": reason}
        if expected_width is not None:
            details["expected_width"] = expected_width
        super().__init__(f"Invalid channel {channel!r}: {reason}", details)
        self.channel = channel
        self.reason = reason
        self.expected_width = expected_width


class SerializationError(RecordStorageError):
    """Raised when a record cannot be encoded or decoded."""

    def __init__(self, kind: str, reason: str):
        super().__init__(
            f"Serialization error for {kind}: {reason}",
            {"kind": kind, "reason": reason},
        )
        self.kind = kind
        self.reason = reason


class RecordNotFoundError(RecordStorageError):
    """Raised when a record id is absent or tombstoned."""

    def __init__(self, record_id: str):
        super().__init__(f"Record not found: {record_id}", {"record_id": record_id})
        self.record_id = record_id


class StoreNotReadyError(RecordStorageError):
    """Raised when a store is used before discovery has completed."""

    def __init__(self, state: str):
        super().__init__(f"Store is not ready (state: {state})", {"state": state})
        self.state = state


class ConfigurationError(RecordStorageError):
    """Raised when configuration values are missing or invalid."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Invalid configuration for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value
