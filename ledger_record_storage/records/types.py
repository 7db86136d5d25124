"""
Record types persisted on the ledger.

Two payload shapes exist: DataRecord (one version of a user record)
and MetadataRecord (the store's bootstrap anchor and directory).
Both are immutable once written; every mutation writes new blobs.
"""

from __future__ import annotations

import base64
import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

SCHEMA_NAME = "ledger-record-storage"
SCHEMA_VERSION = 1


class BlobKind(Enum):
    """Classification of a blob found on the ledger."""

    METADATA = "metadata"
    RECORD = "record"
    UNRECOGNIZED = "unrecognized"


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True)
class DataRecord:
    """One version of a user record.

    Attributes:
        id: Record identity; newer versions of the same id shadow older ones
        payload: Opaque record bytes
        created_at: When the record was first created
        updated_at: When this version was written, None for the first version
        deleted: True if this version is a tombstone
    """

    id: str
    payload: bytes
    created_at: datetime
    updated_at: datetime | None = None
    deleted: bool = False

    @classmethod
    def new(cls, payload: bytes, record_id: str | None = None) -> DataRecord:
        """Create the first version of a record.

        Args:
            payload: Record bytes
            record_id: Explicit id (a user key); a fresh UUID if omitted
        """
        return cls(
            id=record_id or str(uuid.uuid4()),
            payload=payload,
            created_at=datetime.now(UTC),
        )

    def revise(self, payload: bytes) -> DataRecord:
        """Create the next version carrying the same id."""
        return replace(self, payload=payload, updated_at=self._next_timestamp(), deleted=False)

    def tombstone(self) -> DataRecord:
        """Create a tombstone version marking this id as deleted."""
        return replace(self, payload=b"", updated_at=self._next_timestamp(), deleted=True)

    @classmethod
    def tombstone_for(cls, record_id: str) -> DataRecord:
        """Tombstone for an id whose current version was not fetched."""
        now = datetime.now(UTC)
        return cls(id=record_id, payload=b"", created_at=now, updated_at=now, deleted=True)

    def _next_timestamp(self) -> datetime:
        # Strictly after every earlier version, even on a coarse clock.
        floor = (self.updated_at or self.created_at) + timedelta(microseconds=1)
        return max(datetime.now(UTC), floor)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for the wire."""
        return {
            "schema": SCHEMA_NAME,
            "version": SCHEMA_VERSION,
            "kind": BlobKind.RECORD.value,
            "id": self.id,
            "payload": base64.b64encode(self.payload).decode("ascii"),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "deleted": self.deleted,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DataRecord:
        """Deserialize from dictionary."""
        updated_at = data.get("updated_at")
        return cls(
            id=data["id"],
            payload=base64.b64decode(data["payload"], validate=True),
            created_at=_parse_timestamp(data["created_at"]),
            updated_at=_parse_timestamp(updated_at) if updated_at else None,
            deleted=bool(data.get("deleted", False)),
        )

    @classmethod
    def from_legacy_dict(cls, data: dict[str, Any]) -> DataRecord:
        """Deserialize a discriminant-free key/value record.

        Older stores wrote ``{key, value, id, created_at, updated_at}``
        with a UTF-8 string value and no schema tag. The key is the
        record's identity there, so it becomes the id.
        """
        updated_at = data.get("updated_at")
        return cls(
            id=data["key"],
            payload=str(data["value"]).encode("utf-8"),
            created_at=_parse_timestamp(data["created_at"]),
            updated_at=_parse_timestamp(updated_at) if updated_at else None,
        )


@dataclass
class MetadataRecord:
    """The store's bootstrap anchor and id directory.

    The most recently submitted MetadataRecord on a channel is
    authoritative. Older ones are superseded, never merged.

    Attributes:
        start_position: First position that can hold this store's blobs
        record_count: Number of live (non-deleted) records
        last_updated: Time of the last mutation
        index: Record id -> position of its latest DataRecord
        deleted: Tombstoned record ids
        colocated: Ids whose DataRecord shares this blob's submission;
            they resolve to this blob's own position when decoded
        self_anchored: The store was minted by this blob; start_position
            resolves to the position the blob was included at
    """

    start_position: int
    record_count: int = 0
    last_updated: datetime = field(default_factory=lambda: datetime.now(UTC))
    index: dict[str, int] = field(default_factory=dict)
    deleted: set[str] = field(default_factory=set)
    colocated: set[str] = field(default_factory=set)
    self_anchored: bool = False

    def is_live(self, record_id: str) -> bool:
        """True if the id is indexed and not tombstoned."""
        return record_id in self.index and record_id not in self.deleted

    def live_entries(self) -> list[tuple[str, int]]:
        """Indexed (id, position) pairs that are not tombstoned."""
        return [(rid, pos) for rid, pos in self.index.items() if rid not in self.deleted]

    def resolve_position(self, position: int) -> MetadataRecord:
        """Pin position-relative fields to the position this blob was found at."""
        for record_id in self.colocated:
            self.index[record_id] = position
        self.colocated = set()
        if self.self_anchored:
            self.start_position = max(self.start_position, position)
            self.self_anchored = False
        return self

    def copy(self) -> MetadataRecord:
        return MetadataRecord(
            start_position=self.start_position,
            record_count=self.record_count,
            last_updated=self.last_updated,
            index=dict(self.index),
            deleted=set(self.deleted),
            colocated=set(self.colocated),
            self_anchored=self.self_anchored,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for the wire."""
        return {
            "schema": SCHEMA_NAME,
            "version": SCHEMA_VERSION,
            "kind": BlobKind.METADATA.value,
            "start_position": self.start_position,
            "record_count": self.record_count,
            "last_updated": self.last_updated.isoformat(),
            "index": dict(sorted(self.index.items())),
            "deleted": sorted(self.deleted),
            "colocated": sorted(self.colocated),
            "self_anchored": self.self_anchored,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MetadataRecord:
        """Deserialize from dictionary."""
        index = data.get("index") or {}
        return cls(
            start_position=int(data["start_position"]),
            record_count=int(data.get("record_count", 0)),
            last_updated=_parse_timestamp(data["last_updated"]),
            index={str(k): int(v) for k, v in index.items()},
            deleted=set(data.get("deleted") or []),
            colocated=set(data.get("colocated") or []),
            self_anchored=bool(data.get("self_anchored", False)),
        )

    @classmethod
    def from_legacy_dict(cls, data: dict[str, Any]) -> MetadataRecord:
        """Deserialize the discriminant-free ``{start_height, record_count, last_updated}`` shape."""
        return cls(
            start_position=int(data["start_height"]),
            record_count=int(data["record_count"]),
            last_updated=_parse_timestamp(data["last_updated"]),
        )


@dataclass(frozen=True)
class ClassifiedBlob:
    """A blob read from the ledger together with its classification."""

    position: int
    kind: BlobKind
    metadata: MetadataRecord | None = None
    record: DataRecord | None = None
    raw: bytes = b""
