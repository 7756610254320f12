"""Mini README: Tests for local persistence, startup loading and remote sync.

Structure:
    * LocalSnapshotStore - save/load, missing and corrupt files.
    * load_engine - demo fallback, persistence after mutations, overdue policy.
    * sync_from_remote - unconfigured skip, overwrite, all-or-nothing failure.
"""

from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import Dict, List

import httpx
import pytest

from bikekassa.configuration import BikeKassaSettings
from bikekassa.logging_utils import configure_root_logger
from bikekassa.ledger import (
    Bike,
    BikeStatus,
    LedgerEngine,
    LedgerSnapshot,
    Rental,
    RentalStatus,
    build_demo_snapshot,
)
from bikekassa.receipts import LoggingReceiptPrinter, TextFileReceiptPrinter
from bikekassa.storage import (
    LocalSnapshotStore,
    PostgrestDataSource,
    RemoteDataSource,
    UnconfiguredDataSource,
    create_data_source,
    load_engine,
    sync_from_remote,
)


def _settings(tmp_path: Path, **overrides: object) -> BikeKassaSettings:
    return BikeKassaSettings(data_directory=tmp_path / "data", **overrides)


def test_store_round_trips_snapshot(tmp_path: Path) -> None:
    """A saved snapshot loads back unchanged and no temp file is left behind."""

    store = LocalSnapshotStore(tmp_path / "state.json")
    snapshot = build_demo_snapshot()

    store.save(snapshot)

    assert store.load() == snapshot
    assert [path.name for path in tmp_path.iterdir()] == ["state.json"]


def test_store_returns_none_for_missing_or_corrupt_file(tmp_path: Path) -> None:
    """Missing and unreadable documents fall back to ``None``."""

    store = LocalSnapshotStore(tmp_path / "state.json")
    assert store.load() is None

    store.path.write_text("{not json", encoding="utf-8")
    assert store.load() is None

    store.path.write_text(json.dumps({"bikes": []}), encoding="utf-8")
    assert store.load() is None


def test_load_engine_seeds_demo_and_persists_mutations(tmp_path: Path) -> None:
    """First start uses the demo fleet; later mutations are written to disk."""

    settings = _settings(tmp_path)
    engine = load_engine(settings, data_source=UnconfiguredDataSource())

    assert len(engine.list_bikes()) == 8
    assert settings.state_path.exists()
    assert isinstance(engine.receipt_printer, LoggingReceiptPrinter)

    engine.add_sale(1000)
    reloaded = load_engine(settings, data_source=UnconfiguredDataSource())
    assert [sale.amount for sale in reloaded.list_entries("sales")] == [1000]


def test_load_engine_falls_back_when_store_is_corrupt(tmp_path: Path) -> None:
    """A corrupt stored snapshot is ignored in favour of the demo seed."""

    settings = _settings(tmp_path)
    settings.state_path.write_text("garbage", encoding="utf-8")

    engine = load_engine(settings, data_source=UnconfiguredDataSource())

    assert engine.snapshot() == build_demo_snapshot()


@pytest.mark.parametrize("amount", ["1e400", "Infinity", "-Infinity", "NaN"])
def test_load_engine_falls_back_when_stored_amount_is_not_finite(
    tmp_path: Path, amount: str
) -> None:
    """Amounts the JSON parser reads as infinity or NaN count as corruption."""

    settings = _settings(tmp_path)
    settings.state_path.write_text(
        '{"bikes": [{"id": 1, "number": 1, "pricePerDay": %s}], "rentals": []}' % amount,
        encoding="utf-8",
    )

    assert LocalSnapshotStore(settings.state_path).load() is None
    engine = load_engine(settings, data_source=UnconfiguredDataSource())
    assert engine.snapshot() == build_demo_snapshot()


def test_read_only_load_never_writes(tmp_path: Path) -> None:
    """Read-only loads skip sync, the overdue policy and persistence."""

    settings = _settings(tmp_path, overdue_after_days=7)

    engine = load_engine(settings, read_only=True)
    assert len(engine.list_bikes()) == 8
    assert not settings.state_path.exists()

    store = LocalSnapshotStore(settings.state_path)
    store.save(
        LedgerSnapshot(
            bikes=[Bike(id=1, number=1, status=BikeStatus.RENTED)],
            rentals=[Rental(id=1, bike_id=1, start_date=date(2020, 1, 1))],
        )
    )
    stored = settings.state_path.read_text(encoding="utf-8")

    class FailingSource(RemoteDataSource):
        def fetch_table(self, table: str):
            raise AssertionError("read-only loads must not sync")

    engine = load_engine(settings, data_source=FailingSource(), read_only=True)
    assert engine.get_rental(1).status is RentalStatus.ACTIVE
    engine.add_sale(100)
    assert settings.state_path.read_text(encoding="utf-8") == stored


def test_load_engine_applies_overdue_policy_and_receipt_directory(tmp_path: Path) -> None:
    """Configured grace periods mark stale rentals; receipts go to files."""

    settings = _settings(
        tmp_path, overdue_after_days=7, receipt_directory=tmp_path / "receipts"
    )
    LocalSnapshotStore(settings.state_path).save(
        LedgerSnapshot(
            bikes=[Bike(id=1, number=1, status=BikeStatus.RENTED)],
            rentals=[Rental(id=1, bike_id=1, start_date=date(2020, 1, 1))],
        )
    )

    engine = load_engine(settings, data_source=UnconfiguredDataSource())

    assert engine.get_rental(1).status is RentalStatus.OVERDUE
    assert isinstance(engine.receipt_printer, TextFileReceiptPrinter)
    engine.apply_payment(1, 100)
    assert (tmp_path / "receipts" / "receipt_1.txt").exists()


def test_create_data_source_requires_url_and_key() -> None:
    """Only a URL plus key yields a real backend."""

    assert isinstance(create_data_source(None, "key"), UnconfiguredDataSource)
    assert isinstance(create_data_source("https://example.test", None), UnconfiguredDataSource)
    source = create_data_source("https://example.test", "key")
    assert isinstance(source, PostgrestDataSource)
    source.close()


def _postgrest(tables: Dict[str, object], seen: List[httpx.Request]) -> PostgrestDataSource:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        table = request.url.path.rsplit("/", 1)[-1]
        payload = tables.get(table, [])
        if isinstance(payload, int):
            return httpx.Response(payload, json={"message": "boom"})
        return httpx.Response(200, json=payload)

    return PostgrestDataSource(
        "https://backend.example.test/", "anon-key", transport=httpx.MockTransport(handler)
    )


def test_sync_skipped_when_unconfigured() -> None:
    """Local state stays authoritative without a backend."""

    engine = LedgerEngine(build_demo_snapshot())
    assert sync_from_remote(engine, UnconfiguredDataSource()) is False
    assert engine.snapshot() == build_demo_snapshot()


def test_sync_overwrites_local_collections() -> None:
    """Fetched tables replace their local counterparts."""

    seen: List[httpx.Request] = []
    source = _postgrest(
        {
            "bikes": [{"id": 7, "number": 7, "status": "free", "price_per_day": 130}],
            "sales": [{"id": 1, "amount": 250, "date": "2025-03-01", "title": "Lock"}],
        },
        seen,
    )
    engine = LedgerEngine(build_demo_snapshot())

    assert sync_from_remote(engine, source) is True

    assert [bike.id for bike in engine.list_bikes()] == [7]
    assert engine.list_rentals() == []
    assert [sale.amount for sale in engine.list_entries("sales")] == [250]
    assert len(seen) == 8
    assert seen[0].headers["apikey"] == "anon-key"
    assert seen[0].url.path == "/rest/v1/bikes"
    assert seen[0].url.params["select"] == "*"


def test_sync_failure_changes_nothing() -> None:
    """A failing table aborts the whole sync."""

    seen: List[httpx.Request] = []
    source = _postgrest({"bikes": [], "payments": 500}, seen)
    engine = LedgerEngine(build_demo_snapshot())

    assert sync_from_remote(engine, source) is False
    assert engine.snapshot() == build_demo_snapshot()


def test_sync_rejects_malformed_rows() -> None:
    """Rows that do not parse are treated as a failed sync."""

    seen: List[httpx.Request] = []
    source = _postgrest({"rentals": [{"id": 1}]}, seen)
    engine = LedgerEngine(build_demo_snapshot())

    assert sync_from_remote(engine, source) is False
    assert len(engine.list_rentals()) == 1


def test_sync_rejects_non_finite_amounts() -> None:
    """Remote amounts of infinity abort the sync instead of crashing startup."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/sales"):
            body = b'[{"id": 1, "amount": 1e400, "date": "2025-03-01"}]'
        else:
            body = b"[]"
        return httpx.Response(200, content=body, headers={"content-type": "application/json"})

    source = PostgrestDataSource(
        "https://backend.example.test", "anon-key", transport=httpx.MockTransport(handler)
    )
    engine = LedgerEngine(build_demo_snapshot())

    assert sync_from_remote(engine, source) is False
    assert engine.snapshot() == build_demo_snapshot()


def test_custom_data_source_can_return_partial_tables() -> None:
    """Tables reported as ``None`` keep their local data."""

    class OnlyClients(RemoteDataSource):
        source_name = "clients-only"

        def fetch_table(self, table: str):
            if table == "clients":
                return [{"id": 1, "name": "Remote", "phone": "1"}]
            return None

    engine = LedgerEngine(build_demo_snapshot())
    assert sync_from_remote(engine, OnlyClients()) is True
    assert [client.name for client in engine.list_clients()] == ["Remote"]
    assert len(engine.list_bikes()) == 8


@pytest.mark.parametrize("value", ["~/kassa-data", "relative-dir"])
def test_settings_expand_data_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, value: str) -> None:
    """Configured data directories are expanded, resolved and created."""

    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.chdir(tmp_path)
    settings = BikeKassaSettings(data_directory=value)
    assert settings.data_directory.is_absolute()
    assert settings.data_directory.exists()
    assert settings.state_path.name == "crm_bike_state_v4.json"
    assert settings.remote_configured is False


def test_configure_root_logger_accepts_level_names() -> None:
    """Level names from the environment map onto logging levels."""

    root = logging.getLogger()
    previous = root.level
    try:
        configure_root_logger("debug")
        assert root.level == logging.DEBUG
        configure_root_logger(logging.WARNING)
        assert root.level == logging.WARNING
        with pytest.raises(ValueError):
            configure_root_logger("chatty")
    finally:
        root.setLevel(previous)
