from __future__ import annotations

import unittest

from app.mappers.allowlist import (
    ALLOWLIST_SPEC,
    ColumnClassifier,
    build_header_lookup,
    normalize_header,
)


class TestColumnClassifier(unittest.TestCase):
    def setUp(self) -> None:
        self.classifier = ColumnClassifier()

    def test_header_variants_map_to_the_same_field(self) -> None:
        for header in ("Trip Id", "TripID", "Trip_ID", "trip id", "ID", "tripid"):
            with self.subTest(header=header):
                self.assertEqual(self.classifier.canonical_field_for(header), "trip_id")

    def test_normalize_header_keeps_only_lowercase_alphanumerics(self) -> None:
        self.assertEqual(normalize_header("  Req_Pickup "), "reqpickup")
        self.assertEqual(normalize_header("Routed-Distance"), "routeddistance")

    def test_phi_and_unknown_columns_are_ignored(self) -> None:
        headers = [
            "Trip Id",
            "Date",
            "Driver",
            "Patient Name",
            "Phone",
            "DOB",
            "Address",
            "SSN",
            "Member ID",
            "Pickup Lat",
            "New Vendor Field",
        ]

        classification = self.classifier.classify(headers)

        self.assertEqual(classification.extracted_columns, ("Trip Id", "Date", "Driver"))
        self.assertEqual(
            classification.ignored_columns,
            ("Patient Name", "Phone", "DOB", "Address", "SSN", "Member ID", "Pickup Lat", "New Vendor Field"),
        )
        self.assertEqual(set(classification.extracted_columns) & set(classification.ignored_columns), set())

    def test_no_substring_or_keyword_matching(self) -> None:
        classification = self.classifier.classify(["Driver Phone", "Trip Id Notes", "Patient Date", "Driver"])

        self.assertEqual(classification.extracted_columns, ("Driver",))
        self.assertIn("Driver Phone", classification.ignored_columns)
        self.assertIn("Trip Id Notes", classification.ignored_columns)
        self.assertIn("Patient Date", classification.ignored_columns)

    def test_first_matching_column_owns_the_field(self) -> None:
        classification = self.classifier.classify(["Trip Id", "TripID", "Date", "Driver"])

        self.assertEqual(classification.canonical_to_index["trip_id"], 0)
        self.assertEqual(classification.duplicate_columns, ("TripID",))
        self.assertIn("TripID", classification.ignored_columns)

    def test_missing_required_fields_are_reported(self) -> None:
        classification = self.classifier.classify(["Trip Id", "Vehicle"])

        self.assertEqual(classification.missing_required, ("service_date", "driver_name"))

    def test_extract_reads_only_allowlisted_cells(self) -> None:
        classification = self.classifier.classify(["Trip Id", "Patient Name", "Date", "Driver"])

        row = ColumnClassifier.extract(["T1", "Jane Patient", "01/15/2026"], classification)

        self.assertEqual(row, {"trip_id": "T1", "service_date": "01/15/2026", "driver_name": None})
        self.assertNotIn("Jane Patient", row.values())

    def test_ambiguous_allowlist_is_rejected(self) -> None:
        spec = dict(ALLOWLIST_SPEC)
        spec["vehicle_unit"] = ("Vehicle", "Driver")

        with self.assertRaises(ValueError):
            build_header_lookup(spec)


if __name__ == "__main__":
    unittest.main()
