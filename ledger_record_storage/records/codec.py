"""
Blob codec for ledger records.

Blobs are JSON objects tagged with a schema name and a ``kind``
discriminant, so a metadata blob can never be mistaken for a data
record. Classification still works by trial decode: try metadata,
then record, else the blob is unrecognized. Untagged blobs written
by the earlier key/value tool are recognized by their field shape.
"""

from __future__ import annotations

import binascii
import json
import logging
from typing import Any

from ..exceptions import SerializationError
from .types import SCHEMA_NAME, BlobKind, ClassifiedBlob, DataRecord, MetadataRecord

logger = logging.getLogger(__name__)

_LEGACY_RECORD_FIELDS = frozenset({"key", "value", "id", "created_at"})
_LEGACY_METADATA_FIELDS = frozenset({"start_height", "record_count", "last_updated"})


def _dumps(data: dict[str, Any], kind: str) -> bytes:
    try:
        return json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SerializationError(kind, str(e)) from e


def _loads(blob: bytes, kind: str) -> dict[str, Any]:
    try:
        data = json.loads(blob)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SerializationError(kind, f"not JSON: {e}") from e
    if not isinstance(data, dict):
        raise SerializationError(kind, "not a JSON object")
    return data


def encode_record(record: DataRecord) -> bytes:
    """Encode a DataRecord as a tagged blob."""
    return _dumps(record.to_dict(), BlobKind.RECORD.value)


def encode_metadata(metadata: MetadataRecord) -> bytes:
    """Encode a MetadataRecord as a tagged blob."""
    return _dumps(metadata.to_dict(), BlobKind.METADATA.value)


def decode_record(blob: bytes) -> DataRecord:
    """Decode a blob as a DataRecord.

    Raises:
        SerializationError: If the blob is not a data record
    """
    kind = BlobKind.RECORD.value
    data = _loads(blob, kind)
    try:
        if data.get("schema") == SCHEMA_NAME:
            if data.get("kind") != kind:
                raise SerializationError(kind, f"blob kind is {data.get('kind')!r}")
            return DataRecord.from_dict(data)
        if _LEGACY_RECORD_FIELDS <= data.keys():
            return DataRecord.from_legacy_dict(data)
    except (KeyError, TypeError, ValueError, binascii.Error) as e:
        raise SerializationError(kind, f"malformed field: {e}") from e
    raise SerializationError(kind, "missing schema discriminant")


def decode_metadata(blob: bytes, position: int | None = None) -> MetadataRecord:
    """Decode a blob as a MetadataRecord.

    Args:
        blob: Raw blob bytes
        position: Position the blob was read from; when given,
            colocated ids and a self-anchored start are pinned to it

    Raises:
        SerializationError: If the blob is not a metadata record
    """
    kind = BlobKind.METADATA.value
    data = _loads(blob, kind)
    try:
        if data.get("schema") == SCHEMA_NAME:
            if data.get("kind") != kind:
                raise SerializationError(kind, f"blob kind is {data.get('kind')!r}")
            metadata = MetadataRecord.from_dict(data)
        elif _LEGACY_METADATA_FIELDS <= data.keys():
            metadata = MetadataRecord.from_legacy_dict(data)
        else:
            raise SerializationError(kind, "missing schema discriminant")
    except (KeyError, TypeError, ValueError) as e:
        raise SerializationError(kind, f"malformed field: {e}") from e

    if position is not None:
        metadata.resolve_position(position)
    return metadata


def classify(blob: bytes, position: int) -> ClassifiedBlob:
    """Classify a blob: metadata first, then record, else unrecognized."""
    try:
        metadata = decode_metadata(blob, position)
        return ClassifiedBlob(position=position, kind=BlobKind.METADATA, metadata=metadata, raw=blob)
    except SerializationError:
        pass

    try:
        record = decode_record(blob)
        return ClassifiedBlob(position=position, kind=BlobKind.RECORD, record=record, raw=blob)
    except SerializationError as e:
        logger.debug(f"Unrecognized blob at position {position}: {e.reason}")

    return ClassifiedBlob(position=position, kind=BlobKind.UNRECOGNIZED, raw=blob)
