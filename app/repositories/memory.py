"""
app/repositories/memory.py

In-memory repositories. Each map is guarded by its own lock so that
check-and-insert is a single critical section.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Sequence
from datetime import date

from app.domain.trip_import import BatchState, ImportBatch, TripKey, TripQueryFilter, TripRecord
from app.repositories.base import AliasRegistry, ImportLedgerStore, TripStore


class InMemoryTripStore(TripStore):
    def __init__(self) -> None:
        self._records: dict[TripKey, TripRecord] = {}
        self._lock = threading.Lock()

    def exists(self, key: TripKey) -> bool:
        with self._lock:
            return key in self._records

    def add_all(self, records: Sequence[TripRecord]) -> list[TripKey]:
        rejected: list[TripKey] = []
        with self._lock:
            for record in records:
                key = record.key
                if key in self._records:
                    rejected.append(key)
                    continue
                self._records[key] = record
        return rejected

    def find_by_date(
        self,
        service_date: date,
        trip_filter: TripQueryFilter | None = None,
    ) -> list[TripRecord]:
        active_filter = trip_filter or TripQueryFilter()
        with self._lock:
            snapshot = list(self._records.values())
        return [
            record
            for record in snapshot
            if record.service_date == service_date and active_filter.matches(record.partition)
        ]

    def find_by_batch(self, batch_id: uuid.UUID) -> list[TripRecord]:
        with self._lock:
            return [record for record in self._records.values() if record.import_batch_id == batch_id]


class InMemoryImportLedgerStore(ImportLedgerStore):
    def __init__(self) -> None:
        self._by_hash: dict[str, ImportBatch] = {}
        self._by_id: dict[uuid.UUID, ImportBatch] = {}
        self._lock = threading.Lock()

    def reserve(self, batch: ImportBatch) -> ImportBatch | None:
        with self._lock:
            existing = self._by_hash.get(batch.file_hash)
            if existing is not None:
                return existing
            self._by_hash[batch.file_hash] = batch
            self._by_id[batch.id] = batch
            return None

    def commit(self, batch: ImportBatch) -> ImportBatch:
        with self._lock:
            reserved = self._by_hash.get(batch.file_hash)
            if reserved is None or reserved.id != batch.id:
                raise KeyError(f"No reservation for batch {batch.id}.")
            self._by_hash[batch.file_hash] = batch
            self._by_id[batch.id] = batch
            return batch

    def release(self, file_hash: str) -> None:
        with self._lock:
            reserved = self._by_hash.get(file_hash)
            if reserved is None or reserved.state == BatchState.COMMITTED:
                return
            del self._by_hash[file_hash]
            self._by_id.pop(reserved.id, None)

    def get(self, batch_id: uuid.UUID) -> ImportBatch | None:
        with self._lock:
            return self._by_id.get(batch_id)

    def find_by_hash(self, file_hash: str) -> ImportBatch | None:
        with self._lock:
            return self._by_hash.get(file_hash)

    def list_committed(self, trip_filter: TripQueryFilter | None = None) -> list[ImportBatch]:
        active_filter = trip_filter or TripQueryFilter()
        with self._lock:
            snapshot = list(self._by_id.values())
        batches = [
            batch
            for batch in snapshot
            if batch.state == BatchState.COMMITTED and active_filter.matches(batch.partition)
        ]
        return sorted(batches, key=lambda batch: batch.committed_at or batch.received_at, reverse=True)


class InMemoryAliasRegistry(AliasRegistry):
    def __init__(self) -> None:
        self._canonical_by_key: dict[str, str] = {}
        # canonical -> [(spelling, alias_key)]
        self._aliases: dict[str, list[tuple[str, str]]] = {}
        self._lock = threading.Lock()

    def canonical_for(self, alias_key: str) -> str | None:
        with self._lock:
            return self._canonical_by_key.get(alias_key)

    def link(self, *, alias_key: str, alias: str, canonical: str) -> None:
        with self._lock:
            previous = self._canonical_by_key.get(alias_key)
            if previous is not None and previous != canonical:
                remaining = [entry for entry in self._aliases.get(previous, []) if entry[1] != alias_key]
                if remaining:
                    self._aliases[previous] = remaining
                else:
                    self._aliases.pop(previous, None)

            self._canonical_by_key[alias_key] = canonical
            spellings = self._aliases.setdefault(canonical, [])
            if all(spelling != alias for spelling, _ in spellings):
                spellings.append((alias, alias_key))

    def merge(self, *, source: str, target: str) -> None:
        with self._lock:
            for alias_key, canonical in self._canonical_by_key.items():
                if canonical == source:
                    self._canonical_by_key[alias_key] = target
            spellings = self._aliases.setdefault(target, [])
            for spelling, alias_key in self._aliases.pop(source, []):
                if all(existing != spelling for existing, _ in spellings):
                    spellings.append((spelling, alias_key))

    def aliases_of(self, canonical: str) -> list[str]:
        with self._lock:
            return [spelling for spelling, _ in self._aliases.get(canonical, ())]

    def canonical_names(self) -> list[str]:
        with self._lock:
            return list(self._aliases)
