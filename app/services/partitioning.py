"""
app/services/partitioning.py

Partition resolution and the composite trip uniqueness check.

Trip ids are only unique inside one operating company, broker account and
service date, so the same external id legitimately appears under several
partitions.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from app.domain.errors import DuplicatePartitionKeyError, UnknownPartitionError
from app.domain.trip_import import NormalizedTripRow, PartitionContext, TripKey
from app.repositories.base import TripStore

logger = logging.getLogger(__name__)


class PartitionKeyBuilder:
    """
    Resolves the partition an import runs under and builds trip keys.
    """

    def __init__(
        self,
        *,
        default_opco_id: str,
        default_broker_id: str,
        default_broker_account_id: str,
        allow_default_partition: bool = True,
    ) -> None:
        self._defaults = {
            "opco_id": default_opco_id,
            "broker_id": default_broker_id,
            "broker_account_id": default_broker_account_id,
        }
        self._allow_default_partition = allow_default_partition

    def resolve(self, partition: PartitionContext | Mapping[str, Any] | None) -> PartitionContext:
        """
        Return a complete partition or raise ``UnknownPartitionError``.

        A missing broker account is derived from the broker and operating
        company when both are known.
        """

        if partition is None:
            raw = PartitionContext(opco_id="", broker_id="", broker_account_id="")
        elif isinstance(partition, PartitionContext):
            raw = partition
        else:
            raw = PartitionContext.from_mapping(partition)

        values = {
            "opco_id": (raw.opco_id or "").strip(),
            "broker_id": (raw.broker_id or "").strip(),
            "broker_account_id": (raw.broker_account_id or "").strip(),
        }
        if not values["broker_account_id"] and values["opco_id"] and values["broker_id"]:
            values["broker_account_id"] = f"{values['broker_id']}_{values['opco_id']}"

        missing = [name for name, value in values.items() if not value]
        if missing:
            if not self._allow_default_partition:
                raise UnknownPartitionError(missing)
            for name in missing:
                values[name] = self._defaults[name]
            logger.info("Partition defaulted for: %s", ", ".join(missing))

        return PartitionContext(**values)

    @staticmethod
    def build_key(partition: PartitionContext, row: NormalizedTripRow) -> TripKey:
        return TripKey(
            opco_id=partition.opco_id,
            broker_account_id=partition.broker_account_id,
            service_date=row.service_date,
            trip_id=row.trip_id,
        )


class UniquenessIndex:
    """
    Batch-scoped view of the trip key space.

    Keys are checked against committed trips and against keys already
    claimed earlier in the same batch. The store's own constraint remains
    authoritative at commit time.
    """

    def __init__(self, store: TripStore) -> None:
        self._store = store
        self._claimed: dict[TripKey, int] = {}

    def claim(self, key: TripKey, *, row_number: int) -> None:
        first_row = self._claimed.get(key)
        if first_row is not None:
            raise DuplicatePartitionKeyError(
                f"Duplicate trip {key.trip_id!r} for {key.service_date.isoformat()} "
                f"already appears on row {first_row} of this file.",
                row_number=row_number,
                column="trip_id",
                value=key.trip_id,
            )
        if self._store.exists(key):
            raise DuplicatePartitionKeyError(
                f"Trip {key.trip_id!r} for {key.service_date.isoformat()} was already imported "
                f"for {key.opco_id}/{key.broker_account_id}.",
                row_number=row_number,
                column="trip_id",
                value=key.trip_id,
            )
        self._claimed[key] = row_number
