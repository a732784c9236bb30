"""
tests/test_api.py

HTTP tests for the trip import API on the in-memory store backend.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from app.config import TripImportSettings
from app.main import create_app

SAHRAWI_PARAMS = {
    "opco_id": "SAHRAWI",
    "broker_id": "MODIVCARE",
    "broker_account_id": "MODIVCARE_SAHRAWI",
}

EXPORT = (
    "Trip Id,Date,Driver,Patient Name,Vehicle,Type,Miles\n"
    "T1,01/15/2026,John Smith,Jane Patient,V1,AMB,10.5\n"
    "T2,01/15/2026,JOHN SMITH,Bob Patient,V1,WC,4.5\n"
)


@pytest.fixture()
def client() -> Iterator[TestClient]:
    with TestClient(create_app(TripImportSettings())) as test_client:
        yield test_client


def _upload(client: TestClient, content: str, *, name: str = "export.csv", params: dict | None = None):
    return client.post(
        "/trips/imports",
        params=SAHRAWI_PARAMS if params is None else params,
        files={"file": (name, content.encode("utf-8"), "text/csv")},
    )


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "store_backend": "memory"}


def test_import_then_query(client: TestClient) -> None:
    response = _upload(client, EXPORT)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["state"] == "committed"
    assert body["imported_rows"] == 2
    assert body["is_complete"] is True
    assert body["ignored_columns"] == ["Patient Name"]
    assert "Jane Patient" not in response.text

    trips = client.get("/trips", params={"date": "2026-01-15", "opco_id": "SAHRAWI"}).json()
    assert sorted(trip["trip_id"] for trip in trips) == ["T1", "T2"]
    assert {trip["driver_name"] for trip in trips} == {"John Smith"}

    summary = client.get("/trips/driver-summary", params={"date": "01/15/2026"}).json()
    assert summary == [
        {
            "driver_name": "John Smith",
            "completed_trips": 2,
            "cancelled_trips": 0,
            "no_show_trips": 0,
            "total_miles": 15.0,
            "on_time_count": 0,
            "late_count": 0,
            "on_time_percent": 100,
        }
    ]

    by_driver = client.get("/trips/by-driver", params={"driver": "john smith", "date": "2026-01-15"}).json()
    assert len(by_driver) == 2


def test_non_finite_miles_do_not_break_the_summary(client: TestClient) -> None:
    content = (
        "Trip Id,Date,Driver,Miles\n"
        "T1,01/15/2026,John Smith,NaN\n"
        "T2,01/15/2026,John Smith,10.5\n"
        "T3,01/15/2026,John Smith,Infinity\n"
    )

    body = _upload(client, content).json()
    assert body["imported_rows"] == 3

    response = client.get("/trips/driver-summary", params={"date": "2026-01-15"})
    assert response.status_code == 200
    assert response.json()[0]["total_miles"] == 10.5


def test_duplicate_file_is_a_conflict(client: TestClient) -> None:
    first = _upload(client, EXPORT)
    second = _upload(client, EXPORT, name="renamed.csv")

    assert second.status_code == 409
    detail = second.json()["detail"]
    assert detail["errors"][0]["code"] == "duplicate_file"
    assert detail["batch_id"] == first.json()["batch_id"]
    assert detail["imported_rows"] == 0


def test_unknown_partition_is_unprocessable() -> None:
    strict = create_app(TripImportSettings(allow_default_partition=False))
    with TestClient(strict) as client:
        response = _upload(client, EXPORT, params={"opco_id": "SAHRAWI"})

    assert response.status_code == 422
    assert response.json()["detail"]["state"] == "partition_rejected"


def test_malformed_and_non_csv_uploads(client: TestClient) -> None:
    assert _upload(client, "Trip Id,Date,Driver\n").status_code == 400

    response = client.post(
        "/trips/imports",
        params=SAHRAWI_PARAMS,
        files={"file": ("notes.pdf", b"%PDF-1.4", "application/pdf")},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Only CSV files are allowed."


def test_preview_does_not_import(client: TestClient) -> None:
    response = client.post(
        "/trips/imports/preview",
        files={"file": ("export.csv", EXPORT.encode("utf-8"), "text/csv")},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total_rows"] == 2
    assert body["sample_rows"][0]["Patient Name"] == "[IGNORED - not in allowlist]"
    assert body["already_imported"] is False
    assert client.get("/trips/imports").json() == []


def test_import_listing_and_lookup(client: TestClient) -> None:
    batch_id = _upload(client, EXPORT).json()["batch_id"]

    listing = client.get("/trips/imports", params={"opco_id": "SAHRAWI"}).json()
    assert [batch["id"] for batch in listing] == [batch_id]
    assert client.get("/trips/imports", params={"opco_id": "METRIX"}).json() == []

    batch = client.get(f"/trips/imports/{batch_id}").json()
    assert batch["state"] == "committed"
    assert batch["file_name"] == "export.csv"
    assert client.get("/trips/imports/not-a-uuid").status_code == 404


def test_bad_query_date(client: TestClient) -> None:
    response = client.get("/trips", params={"date": "yesterday"})

    assert response.status_code == 400
    assert "yesterday" in response.json()["detail"]


def test_driver_alias_endpoints(client: TestClient) -> None:
    created = client.post("/drivers/aliases", json={"canonical_name": "John Smith", "alias": "J. Smith"})

    assert created.status_code == 201
    assert created.json() == {"canonical_name": "John Smith", "aliases": ["John Smith", "J. Smith"]}
    assert client.get("/drivers/canonical", params={"name": "j. smith"}).json() == {
        "name": "j. smith",
        "canonical_name": "John Smith",
    }
    assert client.get("/drivers/aliases/J. Smith").json()["canonical_name"] == "John Smith"
    assert client.get("/drivers/aliases").json() == [
        {"canonical_name": "John Smith", "aliases": ["John Smith", "J. Smith"]}
    ]
    assert client.post("/drivers/aliases", json={"canonical_name": "John Smith", "alias": "  "}).status_code == 400
