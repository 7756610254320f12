"""Mini README: Local JSON persistence for the ledger snapshot.

Structure:
    * LocalSnapshotStore - loads and saves the full snapshot under one file.

The whole snapshot is written after every committed mutation, through a
temporary file swapped in with ``os.replace`` so a crash never leaves a
half-written document behind. Loading returns ``None`` when the file is
missing or unreadable so the caller can fall back to the demo seed.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from ..ledger.errors import FormatError
from ..ledger.snapshot import LedgerSnapshot, deserialize_snapshot, serialize_snapshot
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)


class LocalSnapshotStore:
    """Read and write a ledger snapshot stored as a JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[LedgerSnapshot]:
        """Return the stored snapshot, or ``None`` when missing or corrupt."""

        if not self.path.exists():
            LOGGER.info("No stored snapshot at %s", self.path)
            return None
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as error:
            LOGGER.warning("Could not read snapshot %s: %s", self.path, error)
            return None
        try:
            snapshot = deserialize_snapshot(raw)
        except FormatError as error:
            LOGGER.warning("Stored snapshot %s is corrupt, ignoring it: %s", self.path, error)
            return None
        LOGGER.debug("Loaded snapshot from %s", self.path)
        return snapshot

    def save(self, snapshot: LedgerSnapshot) -> None:
        """Write the snapshot atomically."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as handle:
            handle.write(serialize_snapshot(snapshot))
        os.replace(tmp_path, self.path)
        LOGGER.debug("Saved snapshot to %s", self.path)
