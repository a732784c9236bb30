"""
tests/test_trip_row_validator.py

Pytest unit tests for row parsing and normalization.
"""

from __future__ import annotations

from datetime import date, time

import pytest

from app.domain.errors import MalformedDateError, MalformedRowError
from app.domain.trip_import import MobilityType, TripStatus, TripType
from app.validators.trip_row_validator import (
    TripRowValidator,
    normalize_mobility_type,
    parse_clock_time,
    parse_service_date,
)


@pytest.fixture()
def validator() -> TripRowValidator:
    return TripRowValidator()


def _row(**overrides: str | None) -> dict[str, str | None]:
    row: dict[str, str | None] = {
        "trip_id": "T001",
        "service_date": "01/15/2026",
        "driver_name": "John Smith",
    }
    row.update(overrides)
    return row


class TestParseServiceDate:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("2026-01-15", date(2026, 1, 15)),
            ("01/15/2026", date(2026, 1, 15)),
            ("1/5/2026", date(2026, 1, 5)),
            (" 12/31/2025 ", date(2025, 12, 31)),
        ],
    )
    def test_accepted_formats(self, raw: str, expected: date) -> None:
        assert parse_service_date(raw) == expected

    @pytest.mark.parametrize("raw", ["invalid-date", "2026/01/15", "15.01.2026", "13/45/2026", "", None])
    def test_rejected_formats(self, raw: str | None) -> None:
        assert parse_service_date(raw) is None

    def test_date_objects_pass_through(self) -> None:
        assert parse_service_date(date(2026, 1, 15)) == date(2026, 1, 15)


class TestParseClockTime:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("7:05", time(7, 5)),
            ("07:05:30", time(7, 5, 30)),
            ("09:00 AM", time(9, 0)),
            ("2:30 PM", time(14, 30)),
            ("12:15 AM", time(0, 15)),
            ("12:15 pm", time(12, 15)),
        ],
    )
    def test_accepted_formats(self, raw: str, expected: time) -> None:
        assert parse_clock_time(raw) == expected

    @pytest.mark.parametrize("raw", ["25:00", "13:00 PM", "abc", "", "   ", None])
    def test_unparseable_returns_none(self, raw: str | None) -> None:
        assert parse_clock_time(raw) is None


class TestMobilityType:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("AMB", MobilityType.AMBULATORY),
            ("Ambulatory", MobilityType.AMBULATORY),
            ("wc", MobilityType.WHEELCHAIR),
            ("W/C", MobilityType.WHEELCHAIR),
            ("Wheel  Chair", MobilityType.WHEELCHAIR),
            ("STR", MobilityType.STRETCHER),
            ("gurney", MobilityType.STRETCHER),
        ],
    )
    def test_synonyms(self, raw: str, expected: str) -> None:
        assert normalize_mobility_type(raw) == (expected, True)

    def test_blank_defaults_to_ambulatory(self) -> None:
        assert normalize_mobility_type("  ") == (MobilityType.AMBULATORY, True)
        assert normalize_mobility_type(None) == (MobilityType.AMBULATORY, True)

    def test_unrecognized_is_kept_and_flagged(self) -> None:
        assert normalize_mobility_type(" Bariatric ") == ("bariatric", False)


class TestEmptyRow:
    def test_all_blank_cells(self, validator: TripRowValidator) -> None:
        assert validator.is_completely_empty_row(["", " ", "\t"])

    def test_zero_cells(self, validator: TripRowValidator) -> None:
        assert validator.is_completely_empty_row([])

    def test_one_value_is_not_empty(self, validator: TripRowValidator) -> None:
        assert not validator.is_completely_empty_row(["", "x", ""])


class TestValidateRow:
    def test_minimal_row(self, validator: TripRowValidator) -> None:
        row = validator.validate_row(mapped_row=_row(), row_number=2)

        assert row.trip_id == "T001"
        assert row.service_date == date(2026, 1, 15)
        assert row.driver_name_raw == "John Smith"
        assert row.mobility_type == MobilityType.AMBULATORY
        assert row.status == TripStatus.COMPLETED
        assert row.was_on_time is None
        assert row.warnings == ()

    @pytest.mark.parametrize("column", ["trip_id", "service_date", "driver_name"])
    def test_missing_required_field(self, validator: TripRowValidator, column: str) -> None:
        with pytest.raises(MalformedRowError) as exc_info:
            validator.validate_row(mapped_row=_row(**{column: "  "}), row_number=4)

        assert exc_info.value.row_number == 4
        assert exc_info.value.code == "malformed_row"
        assert column in exc_info.value.message

    def test_bad_date_names_the_value(self, validator: TripRowValidator) -> None:
        with pytest.raises(MalformedDateError) as exc_info:
            validator.validate_row(mapped_row=_row(service_date="invalid-date"), row_number=5)

        assert "invalid-date" in exc_info.value.message
        assert exc_info.value.code == "malformed_date"
        assert exc_info.value.row_number == 5

    def test_unrecognized_mobility_warns(self, validator: TripRowValidator) -> None:
        row = validator.validate_row(mapped_row=_row(mobility_type="Bariatric"), row_number=2)

        assert row.mobility_type == "bariatric"
        assert row.mobility_type_recognized is False
        assert any("bariatric" in warning for warning in row.warnings)

    def test_routed_distance_preferred_over_distance(self, validator: TripRowValidator) -> None:
        row = validator.validate_row(mapped_row=_row(routed_distance="10.5", distance="12"), row_number=2)

        assert row.routed_distance == 10.5
        assert row.miles_actual == 10.5

    def test_distance_fallback(self, validator: TripRowValidator) -> None:
        row = validator.validate_row(mapped_row=_row(distance="7.25"), row_number=2)

        assert row.routed_distance is None
        assert row.miles_actual == 7.25

    def test_bad_and_negative_distances_warn(self, validator: TripRowValidator) -> None:
        row = validator.validate_row(mapped_row=_row(routed_distance="-3", distance="abc"), row_number=2)

        assert row.miles_actual is None
        assert len(row.warnings) == 2

    @pytest.mark.parametrize("raw", ["NaN", "Infinity", "-inf", "sNaN"])
    def test_non_finite_distances_warn(self, validator: TripRowValidator, raw: str) -> None:
        row = validator.validate_row(mapped_row=_row(routed_distance=raw, distance="4.5"), row_number=2)

        assert row.routed_distance is None
        assert row.miles_actual == 4.5
        assert row.warnings == (f"Unparseable number in routed_distance: {raw!r}.",)

    def test_unparseable_time_warns(self, validator: TripRowValidator) -> None:
        row = validator.validate_row(mapped_row=_row(sched_pickup_time="soon"), row_number=2)

        assert row.sched_pickup_time is None
        assert any("sched_pickup_time" in warning for warning in row.warnings)

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Cancelled", TripStatus.CANCELLED),
            ("late cancel", TripStatus.CANCELLED),
            ("No Show", TripStatus.NO_SHOW),
            ("no-show", TripStatus.NO_SHOW),
            ("Completed", TripStatus.COMPLETED),
            ("", TripStatus.COMPLETED),
        ],
    )
    def test_status(self, validator: TripRowValidator, raw: str, expected: str) -> None:
        assert validator.validate_row(mapped_row=_row(status=raw), row_number=2).status == expected

    def test_will_call_from_trip_type(self, validator: TripRowValidator) -> None:
        row = validator.validate_row(mapped_row=_row(trip_type="Will Call"), row_number=2)

        assert row.trip_type == TripType.WILL_CALL
        assert row.is_will_call is True

    def test_standing_and_will_call_flags(self, validator: TripRowValidator) -> None:
        row = validator.validate_row(
            mapped_row=_row(trip_type="Appointment", standing="Yes", will_call="no"),
            row_number=2,
        )

        assert row.trip_type == TripType.APPOINTMENT
        assert row.is_standing is True
        assert row.is_will_call is False

    @pytest.mark.parametrize(
        ("arrive", "expected"),
        [("08:10", True), ("08:15", True), ("08:16", False), ("07:30", True)],
    )
    def test_on_time_window(self, validator: TripRowValidator, arrive: str, expected: bool) -> None:
        row = validator.validate_row(
            mapped_row=_row(sched_pickup_time="08:00", actual_pickup_arrive=arrive),
            row_number=2,
        )

        assert row.was_on_time is expected

    def test_on_time_falls_back_to_appointment_and_perform(self, validator: TripRowValidator) -> None:
        row = validator.validate_row(
            mapped_row=_row(appointment_time="10:00 AM", actual_pickup_perform="10:30 AM"),
            row_number=2,
        )

        assert row.was_on_time is False

    def test_custom_window(self) -> None:
        validator = TripRowValidator(on_time_window_minutes=30)

        row = validator.validate_row(
            mapped_row=_row(sched_pickup_time="08:00", actual_pickup_arrive="08:25"),
            row_number=2,
        )

        assert row.was_on_time is True
