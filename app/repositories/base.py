"""
app/repositories/base.py

Storage interfaces for the trip import engine.

Implementations must make ``reserve`` and ``add_all`` atomic
check-and-insert operations; concurrent imports rely on it.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import date

from app.domain.trip_import import ImportBatch, TripKey, TripQueryFilter, TripRecord


class TripStore(ABC):
    """
    Committed trip records with a unique index on ``TripKey``.
    """

    @abstractmethod
    def exists(self, key: TripKey) -> bool:
        """
        Return True when a trip with this composite key is committed.
        """

    @abstractmethod
    def add_all(self, records: Sequence[TripRecord]) -> list[TripKey]:
        """
        Insert records; return the keys rejected by the uniqueness constraint.
        """

    @abstractmethod
    def find_by_date(
        self,
        service_date: date,
        trip_filter: TripQueryFilter | None = None,
    ) -> list[TripRecord]:
        """
        Return trips for one service date matching the partition filter.
        """

    @abstractmethod
    def find_by_batch(self, batch_id: uuid.UUID) -> list[TripRecord]:
        """
        Return trips produced by one import batch.
        """


class ImportLedgerStore(ABC):
    """
    Import batches keyed by file content hash.
    """

    @abstractmethod
    def reserve(self, batch: ImportBatch) -> ImportBatch | None:
        """
        Claim ``batch.file_hash``.

        Returns None on success, or the batch already holding the hash.
        """

    @abstractmethod
    def commit(self, batch: ImportBatch) -> ImportBatch:
        """
        Replace a reservation with its committed batch.
        """

    @abstractmethod
    def release(self, file_hash: str) -> None:
        """
        Drop an uncommitted reservation.
        """

    @abstractmethod
    def get(self, batch_id: uuid.UUID) -> ImportBatch | None:
        """
        Return one batch by id.
        """

    @abstractmethod
    def find_by_hash(self, file_hash: str) -> ImportBatch | None:
        """
        Return the batch holding a hash, committed or in flight.
        """

    @abstractmethod
    def list_committed(self, trip_filter: TripQueryFilter | None = None) -> list[ImportBatch]:
        """
        Return committed batches, newest first.
        """


class AliasRegistry(ABC):
    """
    Driver alias key -> canonical name, plus the spellings seen per canonical.
    """

    @abstractmethod
    def canonical_for(self, alias_key: str) -> str | None:
        """
        Return the canonical name an alias key points at.
        """

    @abstractmethod
    def link(self, *, alias_key: str, alias: str, canonical: str) -> None:
        """
        Point ``alias_key`` at ``canonical`` and record ``alias`` as a spelling.
        """

    @abstractmethod
    def merge(self, *, source: str, target: str) -> None:
        """
        Move every alias key and spelling of ``source`` onto ``target``.
        """

    @abstractmethod
    def aliases_of(self, canonical: str) -> list[str]:
        """
        Return recorded spellings for a canonical name, registration order.
        """

    @abstractmethod
    def canonical_names(self) -> list[str]:
        """
        Return all canonical names, registration order.
        """
