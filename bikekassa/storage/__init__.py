"""Mini README: Persistence and remote sync collaborators for the ledger.

``local_store`` keeps the snapshot in a JSON file, ``remote`` pulls tables
from an optional PostgREST backend and ``bootstrap`` wires both around a
``LedgerEngine`` at startup.
"""

from .bootstrap import create_receipt_printer, load_engine
from .local_store import LocalSnapshotStore
from .remote import (
    PostgrestDataSource,
    RemoteDataSource,
    RemoteSyncError,
    UnconfiguredDataSource,
    create_data_source,
    sync_from_remote,
)

__all__ = [
    "LocalSnapshotStore",
    "PostgrestDataSource",
    "RemoteDataSource",
    "RemoteSyncError",
    "UnconfiguredDataSource",
    "create_data_source",
    "create_receipt_printer",
    "load_engine",
    "sync_from_remote",
]
