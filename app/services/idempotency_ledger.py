"""
app/services/idempotency_ledger.py

Content-hash ledger giving at-most-once ingestion per file.

The hash is taken over the raw bytes, so a byte-identical file is rejected
regardless of the partition or file name it is submitted under.
"""

from __future__ import annotations

import hashlib
import logging
import uuid

from app.domain.trip_import import BatchState, HashReservation, ImportBatch, TripQueryFilter
from app.logging_utils import short_hash
from app.repositories.base import ImportLedgerStore
from app.repositories.memory import InMemoryImportLedgerStore

logger = logging.getLogger(__name__)


def compute_file_hash(content: str | bytes) -> str:
    """
    SHA-256 hex digest of the raw file bytes; ``str`` is UTF-8 encoded first.
    """

    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


class IdempotencyLedger:
    """
    Check-and-reserve front-end over an ``ImportLedgerStore``.
    """

    def __init__(self, store: ImportLedgerStore | None = None) -> None:
        self._store = store or InMemoryImportLedgerStore()

    def check_and_reserve(self, content: str | bytes, batch: ImportBatch) -> HashReservation:
        """
        Atomically claim the content hash for ``batch``.

        A hash that is committed or held by an in-flight import is reported
        as a duplicate and nothing is reserved.
        """

        file_hash = compute_file_hash(content)
        if batch.file_hash != file_hash:
            raise ValueError("Batch file_hash does not match the submitted content.")
        if batch.state != BatchState.VALIDATING:
            raise ValueError(f"Only validating batches can be reserved, got {batch.state.value}.")

        existing = self._store.reserve(batch)
        if existing is not None:
            logger.info(
                "Duplicate file rejected (hash=%s, existing_batch=%s, state=%s)",
                short_hash(file_hash),
                existing.id,
                existing.state.value,
            )
            return HashReservation(file_hash=file_hash, is_duplicate=True, existing_batch=existing)
        return HashReservation(file_hash=file_hash, is_duplicate=False)

    def commit(self, batch: ImportBatch) -> ImportBatch:
        if batch.state != BatchState.COMMITTED:
            raise ValueError(f"Cannot commit a batch in state {batch.state.value}.")
        return self._store.commit(batch)

    def release(self, file_hash: str) -> None:
        self._store.release(file_hash)
        logger.info("Released hash reservation (hash=%s)", short_hash(file_hash))

    def is_known(self, content: str | bytes) -> bool:
        return self._store.find_by_hash(compute_file_hash(content)) is not None

    def get_batch(self, batch_id: uuid.UUID) -> ImportBatch | None:
        return self._store.get(batch_id)

    def list_batches(self, trip_filter: TripQueryFilter | None = None) -> list[ImportBatch]:
        return self._store.list_committed(trip_filter)
