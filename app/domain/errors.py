"""
app/domain/errors.py

Error kinds raised by the trip import engine.

Batch-level errors reject a whole file and leave no side effects. Row-level
errors reject one row; the remaining rows are still processed.
"""

from __future__ import annotations


class TripImportError(Exception):
    """Base exception for trip import failures."""


class MalformedFileError(TripImportError, ValueError):
    """Raised when the file cannot be read as a CSV with a header row."""


class TripPersistenceError(TripImportError, RuntimeError):
    """Raised when validated trips cannot be persisted."""


class InvalidBatchTransitionError(TripImportError, RuntimeError):
    """Raised on an illegal import batch state transition."""


# ---------------------------------------------------------------------------
# Batch-level
# ---------------------------------------------------------------------------


class BatchRejectedError(TripImportError):
    """
    Whole-batch rejection; nothing from the file is committed.
    """

    code = "batch_rejected"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class DuplicateFileError(BatchRejectedError):
    """Raised when a byte-identical file was already imported."""

    code = "duplicate_file"

    def __init__(self, file_hash: str) -> None:
        super().__init__("File already imported (duplicate hash)")
        self.file_hash = file_hash


class UnknownPartitionError(BatchRejectedError):
    """Raised when a required partition dimension is absent and cannot be defaulted."""

    code = "unknown_partition"

    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            "Partition is incomplete; missing: " + ", ".join(missing) + "."
        )
        self.missing = tuple(missing)


# ---------------------------------------------------------------------------
# Row-level
# ---------------------------------------------------------------------------


class RowImportError(TripImportError):
    """
    Row-level failure carrying its file row number.
    """

    code = "row_error"

    def __init__(
        self,
        message: str,
        *,
        row_number: int,
        column: str | None = None,
        value: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.row_number = row_number
        self.column = column
        self.value = value


class MalformedRowError(RowImportError):
    code = "malformed_row"


class MalformedDateError(RowImportError):
    code = "malformed_date"


class DuplicatePartitionKeyError(RowImportError):
    code = "duplicate_partition_key"
