"""Mini README: Build a ready-to-use ledger engine from settings.

Structure:
    * create_receipt_printer - file printer when a directory is set, else log.
    * load_engine - restore the stored snapshot (or demo seed), wire
      persistence and receipts, run the optional remote sync and the
      optional overdue policy. Read-only loads skip every step that writes.
"""

from __future__ import annotations

from typing import Optional

from ..configuration import BikeKassaSettings, get_settings
from ..ledger.engine import LedgerEngine
from ..ledger.snapshot import build_demo_snapshot
from ..logging_utils import get_logger
from ..receipts import LoggingReceiptPrinter, ReceiptPrinter, TextFileReceiptPrinter
from .local_store import LocalSnapshotStore
from .remote import RemoteDataSource, create_data_source, sync_from_remote

LOGGER = get_logger(__name__)


def create_receipt_printer(settings: BikeKassaSettings) -> ReceiptPrinter:
    if settings.receipt_directory:
        return TextFileReceiptPrinter(settings.receipt_directory, currency=settings.currency_label)
    return LoggingReceiptPrinter(currency=settings.currency_label)


def load_engine(
    settings: Optional[BikeKassaSettings] = None,
    *,
    data_source: Optional[RemoteDataSource] = None,
    read_only: bool = False,
) -> LedgerEngine:
    """Create the engine the CLI and web interface share.

    With ``read_only`` the stored snapshot is loaded as-is: no remote sync,
    no overdue policy and no store attached, so reading never rewrites
    the state file.
    """

    settings = settings or get_settings()
    store = LocalSnapshotStore(settings.state_path)
    snapshot = store.load()
    if snapshot is None:
        LOGGER.info("Starting from the demo fleet")
        snapshot = build_demo_snapshot()

    engine = LedgerEngine(
        snapshot,
        receipt_printer=create_receipt_printer(settings),
        default_price_per_day=settings.default_price_per_day,
    )
    if read_only:
        LOGGER.debug("Loaded ledger read-only from %s", store.path)
        return engine

    engine.attach_store(store)

    source = data_source or create_data_source(settings.remote_url, settings.remote_api_key)
    try:
        sync_from_remote(engine, source)
    finally:
        source.close()

    if settings.overdue_after_days is not None:
        engine.refresh_overdue(settings.overdue_after_days)

    if not store.exists():
        try:
            store.save(engine.snapshot())
        except OSError as error:
            LOGGER.warning("Could not write initial snapshot to %s: %s", store.path, error)
    return engine
