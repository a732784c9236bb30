"""
app/services/completeness.py

Row accounting for one import batch.

The counters are re-derived from the outcome list rather than trusted from
the import loop, so a row that was silently dropped shows up in
``missing_rows``.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable

from app.domain.trip_import import CompletenessProof, RowOutcome, RowOutcomeKind

logger = logging.getLogger(__name__)

FIRST_DATA_ROW = 2


class CompletenessAccountant:
    def prove(self, expected_rows: int, outcomes: Iterable[RowOutcome]) -> CompletenessProof:
        """
        Check that every data row ``2 .. expected_rows + 1`` has exactly one outcome.
        """

        outcome_list = list(outcomes)
        kinds = Counter(outcome.kind for outcome in outcome_list)
        row_counts = Counter(outcome.row_number for outcome in outcome_list)

        expected_row_numbers = range(FIRST_DATA_ROW, FIRST_DATA_ROW + max(0, expected_rows))
        missing_rows = tuple(row for row in expected_row_numbers if row not in row_counts)
        duplicate_rows = tuple(sorted(row for row, count in row_counts.items() if count > 1))

        imported = kinds[RowOutcomeKind.IMPORTED]
        skipped = kinds[RowOutcomeKind.SKIPPED]
        errors = kinds[RowOutcomeKind.ERROR]
        accounted = imported + skipped + errors

        is_complete = accounted == expected_rows and not missing_rows and not duplicate_rows
        if not is_complete:
            logger.error(
                "Import accounting incomplete: expected=%d accounted=%d missing=%s duplicates=%s",
                expected_rows,
                accounted,
                list(missing_rows[:20]),
                list(duplicate_rows[:20]),
            )

        return CompletenessProof(
            expected_rows=expected_rows,
            imported_rows=imported,
            skipped_rows=skipped,
            error_rows=errors,
            accounted_rows=accounted,
            missing_rows=missing_rows,
            duplicate_rows=duplicate_rows,
            is_complete=is_complete,
        )
