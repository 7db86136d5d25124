"""
In-memory metadata index.

Holds the authoritative MetadataRecord for one store. Every read and
read-modify-write of the index happens under a single lock that is
held only for the in-memory step, never across a ledger call.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from threading import Lock

from .records.types import MetadataRecord


@dataclass(frozen=True)
class PendingMutation:
    """A metadata snapshot prepared for submission alongside a data blob.

    Attributes:
        record_id: Id the mutation concerns
        snapshot: Metadata to submit in the same batch
        counted: Whether record_count was incremented for a new record
    """

    record_id: str
    snapshot: MetadataRecord
    counted: bool = False


class MetadataIndex:
    """Owned, lock-guarded metadata state for one store.

    Mutations are two-phase: ``prepare_*`` builds the snapshot to
    submit without touching the live state, and ``apply_*`` commits
    the change once the ledger has confirmed the submission. A failed
    submission therefore leaves the index unchanged.

    Within one process RecordStore runs one prepare, submit, apply
    sequence at a time, so every snapshot includes the writes before it.

    Known gap: there is no compare-and-swap on the ledger. Two writer
    processes on one channel each submit a snapshot built from what
    they knew, and the newest metadata blob wins at the next discovery.
    Updates from the losing writer stay in the log but drop out of the
    directory until someone writes again from a state that includes them.
    """

    def __init__(self, metadata: MetadataRecord, position: int | None = None) -> None:
        """Initialize the index.

        Args:
            metadata: Authoritative metadata
            position: Position the metadata was read from or submitted at
        """
        self._metadata = metadata
        self._position = position
        self._lock = Lock()

    @property
    def position(self) -> int | None:
        """Position of the latest metadata blob known to this process."""
        return self._position

    @property
    def start_position(self) -> int:
        return self._metadata.start_position

    def snapshot(self) -> MetadataRecord:
        """Return a copy of the current metadata."""
        with self._lock:
            return self._metadata.copy()

    def lookup(self, record_id: str) -> int | None:
        """Position of the latest live version of an id, or None."""
        with self._lock:
            if not self._metadata.is_live(record_id):
                return None
            return self._metadata.index[record_id]

    def is_deleted(self, record_id: str) -> bool:
        with self._lock:
            return record_id in self._metadata.deleted

    def live_entries(self) -> list[tuple[str, int]]:
        with self._lock:
            return self._metadata.live_entries()

    # ------------------------------------------------------------------
    # Two-phase mutations
    # ------------------------------------------------------------------

    def prepare_write(self, record_id: str) -> PendingMutation:
        """Build the metadata snapshot for a create or update of ``record_id``.

        Returns:
            PendingMutation whose snapshot lists the id as colocated
        """
        with self._lock:
            snapshot = self._metadata.copy()
            is_new = not snapshot.is_live(record_id)
            return self._stage_write(snapshot, record_id, True, is_new)

    def prepare_scan_write(self, record_id: str, is_new: bool) -> PendingMutation:
        """Scan-strategy write: only counters change, the caller knows if the id exists."""
        with self._lock:
            return self._stage_write(self._metadata.copy(), record_id, False, is_new)

    def _stage_write(
        self, snapshot: MetadataRecord, record_id: str, indexed: bool, is_new: bool
    ) -> PendingMutation:
        if indexed:
            snapshot.index.pop(record_id, None)
            snapshot.colocated.add(record_id)
        snapshot.deleted.discard(record_id)
        if is_new:
            snapshot.record_count += 1
        snapshot.last_updated = datetime.now(UTC)
        return PendingMutation(record_id=record_id, snapshot=snapshot, counted=is_new)

    def prepare_delete(self, record_id: str, indexed: bool = True) -> PendingMutation:
        """Build the metadata snapshot that tombstones ``record_id``."""
        with self._lock:
            snapshot = self._metadata.copy()
            if indexed:
                snapshot.index.pop(record_id, None)
            snapshot.deleted.add(record_id)
            snapshot.record_count = max(0, snapshot.record_count - 1)
            snapshot.last_updated = datetime.now(UTC)
            return PendingMutation(record_id=record_id, snapshot=snapshot)

    def apply_write(self, pending: PendingMutation, position: int, indexed: bool = True) -> None:
        """Commit a confirmed create/update into the live state."""
        with self._lock:
            metadata = self._metadata
            if indexed:
                metadata.index[pending.record_id] = position
            metadata.deleted.discard(pending.record_id)
            if pending.counted:
                metadata.record_count += 1
            metadata.last_updated = pending.snapshot.last_updated
            self._position = max(self._position or 0, position)

    def apply_delete(self, pending: PendingMutation, position: int, indexed: bool = True) -> None:
        """Commit a confirmed delete into the live state."""
        with self._lock:
            metadata = self._metadata
            if indexed:
                metadata.index.pop(pending.record_id, None)
            metadata.deleted.add(pending.record_id)
            metadata.record_count = max(0, metadata.record_count - 1)
            metadata.last_updated = pending.snapshot.last_updated
            self._position = max(self._position or 0, position)

    def replace(self, metadata: MetadataRecord, position: int | None) -> None:
        """Swap in freshly discovered metadata."""
        with self._lock:
            self._metadata = metadata
            self._position = position

    def confirm_start(self, position: int) -> None:
        """Move start_position to a confirmed inclusion position (never backwards)."""
        with self._lock:
            if position > self._metadata.start_position:
                self._metadata.start_position = position
            self._position = max(self._position or 0, position)
