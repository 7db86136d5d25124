"""
Ledger record model.

Records are immutable once submitted; updates and deletes are
new blobs that shadow older ones.
"""

from .codec import classify, decode_metadata, decode_record, encode_metadata, encode_record
from .types import BlobKind, ClassifiedBlob, DataRecord, MetadataRecord

__all__ = [
    # Types
    "BlobKind",
    "ClassifiedBlob",
    "DataRecord",
    "MetadataRecord",
    # Codec
    "classify",
    "decode_metadata",
    "decode_record",
    "encode_metadata",
    "encode_record",
]
