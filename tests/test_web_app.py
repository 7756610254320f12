"""Mini README: Tests for the FastAPI cash desk.

Each test builds the application around an in-memory engine with a fixed
clock, then drives it with FastAPI's ``TestClient`` the way the shop's
tablets post forms.
"""

from __future__ import annotations

import json
from datetime import date

import pytest
from fastapi.testclient import TestClient

from bikekassa.interface import create_application
from bikekassa.ledger import Bike, LedgerEngine, LedgerSnapshot


@pytest.fixture()
def engine() -> LedgerEngine:
    snapshot = LedgerSnapshot(bikes=[Bike(id=1, number=1), Bike(id=2, number=2)])
    return LedgerEngine(snapshot, clock=lambda: date(2025, 6, 1))


@pytest.fixture()
def client(engine: LedgerEngine) -> TestClient:
    return TestClient(create_application(engine))


def test_rental_flow_over_http(client: TestClient) -> None:
    """Start, pay and finish a rental through the API."""

    started = client.post("/rentals", data={"bike_id": "1", "renter_name": "Aida", "deposit": "500"})
    assert started.status_code == 201
    rental_id = started.json()["id"]

    paid = client.post(f"/rentals/{rental_id}/payments", data={"amount": "200"})
    assert paid.status_code == 201
    assert paid.json()["rental"]["paid"] == 200
    assert paid.json()["payment"]["rentalId"] == rental_id

    finished = client.post(f"/rentals/{rental_id}/finish", data={"extra_charge": "100"})
    assert finished.json()["status"] == "finished"
    assert finished.json()["accrued"] == 100
    assert finished.json()["endDate"] == "2025-06-01"

    bikes = client.get("/bikes", params={"status": "free"}).json()["bikes"]
    assert [bike["id"] for bike in bikes] == [1, 2]

    summary = client.get("/summary").json()
    assert summary["payments_total"] == 200
    assert summary["deposits_total"] == 500
    assert summary["balance"] == 200


def test_finalize_withholds_deposit(client: TestClient) -> None:
    """The finalize endpoint converts the withheld deposit into a charge."""

    rental_id = client.post("/rentals", data={"bike_id": "2", "deposit": "500"}).json()["id"]
    detail = client.get(f"/rentals/{rental_id}").json()
    assert detail["linkedDeposit"]["amount"] == 500

    response = client.post(f"/rentals/{rental_id}/finalize", data={"withhold": "700"})
    assert response.status_code == 200

    charges = client.get("/ledger/charges").json()["charges"]
    assert [charge["amount"] for charge in charges] == [500]
    assert client.get("/ledger/deposits").json()["deposits"] == []


def test_errors_map_to_status_codes(client: TestClient) -> None:
    """Validation problems answer 400, unknown ids 404."""

    missing_bike = client.post("/rentals", data={"renter_name": "Nobody"})
    assert missing_bike.status_code == 400
    assert missing_bike.json()["detail"] == "no bike selected"

    assert client.post("/rentals", data={"bike_id": "99"}).status_code == 404
    assert client.post("/rentals/5/payments", data={"amount": "10"}).status_code == 404
    assert client.post("/bikes/99", data={"price_per_day": "10"}).status_code == 404
    assert client.get("/ledger/unknown").status_code == 404
    assert client.get("/rentals", params={"status": "lost"}).status_code == 400

    rental_id = client.post("/rentals", data={"bike_id": "1"}).json()["id"]
    assert client.post(f"/rentals/{rental_id}/payments", data={"amount": "0"}).status_code == 400


def test_inventory_and_manual_entries(client: TestClient) -> None:
    """Bikes can be added, edited and removed; ledger entries appended."""

    created = client.post("/bikes", data={"number": "Red"}).json()
    assert created["pricePerDay"] == 120
    assert created["status"] == "free"

    edited = client.post(f"/bikes/{created['id']}", data={"status": "broken", "price_per_day": "90"})
    assert edited.json()["status"] == "broken"
    assert edited.json()["pricePerDay"] == 90

    assert client.delete(f"/bikes/{created['id']}").status_code == 200
    assert client.delete(f"/bikes/{created['id']}").status_code == 404

    sale = client.post("/ledger/sales", data={"amount": "1000", "note": "helmet"})
    assert sale.status_code == 201
    assert sale.json()["title"] == "Sale"
    client.post("/ledger/expenses", data={"amount": "300", "date": "2025-05-20"})
    assert client.get("/summary").json()["balance"] == 700
    assert client.post("/ledger/payments", data={"amount": "5"}).status_code == 404


def test_rental_search_history_and_clients(client: TestClient) -> None:
    """Rentals can be searched; bike history and the client book are exposed."""

    client.post("/rentals", data={"bike_id": "1", "renter_name": "Aida", "renter_phone": "555"})
    second = client.post("/rentals", data={"bike_id": "2", "renter_name": "Ivan"}).json()
    client.post(f"/rentals/{second['id']}/overdue")

    overdue = client.get("/rentals", params={"status": "overdue"}).json()["rentals"]
    assert [rental["renterName"] for rental in overdue] == ["Ivan"]
    found = client.get("/rentals", params={"query": "555"}).json()["rentals"]
    assert [rental["bikeId"] for rental in found] == [1]

    history = client.get("/bikes/1/history").json()
    assert history["bike"]["status"] == "rented"
    assert len(history["rentals"]) == 1

    clients = client.get("/clients").json()["clients"]
    assert {entry["name"] for entry in clients} == {"Aida", "Ivan"}
    assert client.delete(f"/clients/{clients[0]['id']}").status_code == 200
    assert len(client.get("/clients").json()["clients"]) == 1


def test_export_and_import_round_trip(client: TestClient, engine: LedgerEngine) -> None:
    """The exported document imports back; bad documents are rejected unchanged."""

    client.post("/rentals", data={"bike_id": "1", "deposit": "100"})
    exported = client.get("/export")
    assert exported.headers["content-type"].startswith("application/json")
    document = exported.json()
    assert set(document) >= {"bikes", "rentals", "deposits", "payments"}

    bad = client.post("/import", files={"document": ("state.json", b'{"bikes": []}', "application/json")})
    assert bad.status_code == 400
    assert len(engine.list_rentals()) == 1

    document["rentals"] = []
    document["bikes"] = [document["bikes"][0]]
    document["bikes"][0]["status"] = "free"
    good = client.post(
        "/import",
        files={"document": ("state.json", json.dumps(document).encode("utf-8"), "application/json")},
    )
    assert good.json() == {"bikes": 1, "rentals": 0}
    assert engine.list_rentals() == []


def test_csv_exports(client: TestClient) -> None:
    """CSV endpoints return text/csv bodies with headers."""

    client.post("/rentals", data={"bike_id": "1", "accrued": "240"})

    rentals_csv = client.get("/export/rentals.csv")
    assert rentals_csv.headers["content-type"].startswith("text/csv")
    assert rentals_csv.text.splitlines()[0].startswith("id,bike_id,renter_name")
    assert len(rentals_csv.text.splitlines()) == 2

    summary_csv = client.get("/export/summary.csv").text
    assert "outstanding_total,240" in summary_csv


def test_non_finite_amounts_answer_bad_request(client: TestClient) -> None:
    """Infinite amounts and negative prices are validation errors, not crashes."""

    assert client.post("/ledger/sales", data={"amount": "inf"}).status_code == 400
    assert client.post("/rentals", data={"bike_id": "1", "accrued": "1e400"}).status_code == 400
    assert client.post("/bikes/1", data={"price_per_day": "-5"}).status_code == 400
    assert client.get("/ledger/sales").json()["sales"] == []
