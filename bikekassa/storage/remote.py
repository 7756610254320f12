"""Mini README: Remote backend data sources used for the startup sync.

Structure:
    * RemoteSyncError - raised by data sources when a table cannot be fetched.
    * RemoteDataSource - abstract interface returning rows per table.
    * UnconfiguredDataSource - explicit "no backend" variant; sync is skipped.
    * PostgrestDataSource - PostgREST/Supabase REST client built on httpx.
    * create_data_source - picks the variant from settings.
    * sync_from_remote - pulls every table and overwrites local collections.

Sync runs once at startup. Either every table fetches and parses, and the
fetched collections replace the local ones in a single commit (last write
wins, no merge), or nothing changes and the failure is logged. Local state
stays authoritative when the backend is absent.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from ..ledger.engine import LedgerEngine
from ..ledger.errors import FormatError
from ..ledger.snapshot import parse_records
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)

REMOTE_TABLES = (
    "bikes",
    "clients",
    "rentals",
    "payments",
    "expenses",
    "charges",
    "sales",
    "deposits",
)


class RemoteSyncError(RuntimeError):
    """A remote table could not be fetched."""


class RemoteDataSource(ABC):
    """Base interface for remote record sources."""

    source_name: str = "generic"

    @property
    def configured(self) -> bool:
        return True

    @abstractmethod
    def fetch_table(self, table: str) -> Optional[List[Dict[str, Any]]]:
        """Return all rows of ``table``, or ``None`` when the table has no data."""

    def close(self) -> None:
        """Release network resources, if any."""

    def metadata(self) -> Dict[str, str]:
        return {"source": self.source_name, "configured": str(self.configured).lower()}


class UnconfiguredDataSource(RemoteDataSource):
    """Stand-in used when no backend URL or key is set."""

    source_name = "unconfigured"

    @property
    def configured(self) -> bool:
        return False

    def fetch_table(self, table: str) -> Optional[List[Dict[str, Any]]]:
        return None


class PostgrestDataSource(RemoteDataSource):
    """Fetch tables from a PostgREST endpoint such as Supabase."""

    source_name = "postgrest"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=f"{self.base_url}/rest/v1",
            headers={"apikey": api_key, "Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            transport=transport,
        )
        LOGGER.debug("Initialising PostgREST source at %s", self.base_url)

    def fetch_table(self, table: str) -> Optional[List[Dict[str, Any]]]:
        try:
            response = self._client.get(f"/{table}", params={"select": "*"})
            response.raise_for_status()
            rows = response.json()
        except (httpx.HTTPError, ValueError) as error:
            raise RemoteSyncError(f"Fetching '{table}' failed: {error}") from error
        if rows is None:
            return None
        if not isinstance(rows, list):
            raise RemoteSyncError(f"Table '{table}' did not return a list of rows")
        LOGGER.debug("Fetched %s rows from '%s'", len(rows), table)
        return rows

    def close(self) -> None:
        self._client.close()

    def metadata(self) -> Dict[str, str]:
        details = super().metadata()
        details["url"] = self.base_url
        return details


def create_data_source(
    remote_url: Optional[str], remote_api_key: Optional[str]
) -> RemoteDataSource:
    """Return a PostgREST source when fully configured, else the unconfigured stand-in."""

    if remote_url and remote_api_key:
        return PostgrestDataSource(remote_url, remote_api_key)
    return UnconfiguredDataSource()


def sync_from_remote(engine: LedgerEngine, source: RemoteDataSource) -> bool:
    """Overwrite local collections with remote tables; True when applied."""

    if not source.configured:
        LOGGER.info("Remote backend not configured; using local state")
        return False

    fetched: Dict[str, list] = {}
    try:
        for table in REMOTE_TABLES:
            rows = source.fetch_table(table)
            if rows is not None:
                fetched[table] = parse_records(table, rows)
    except (RemoteSyncError, FormatError) as error:
        LOGGER.error("Remote sync failed, keeping local state: %s", error)
        return False

    engine.replace_collections(fetched)
    LOGGER.info("Remote sync applied %s tables", len(fetched))
    return True
