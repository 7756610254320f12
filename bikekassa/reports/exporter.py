"""Mini README: Rental filtering and CSV report exports.

Structure:
    * RentalFilter - status filter offered by the rentals list.
    * filter_rentals - apply a status filter and a free-text search.
    * rentals_to_csv / summary_to_csv - render CSV text.
    * ReportExporter - write the CSV reports into a directory.

Search matches the renter name (case-insensitive), the bike id or the
renter phone. Reports are plain CSV so they open in any spreadsheet.
"""

from __future__ import annotations

import csv
import io
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from ..ledger.records import Rental, RentalStatus
from ..ledger.snapshot import LedgerSnapshot, compute_aggregates
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)

RENTAL_COLUMNS = (
    "id",
    "bike_id",
    "renter_name",
    "renter_phone",
    "start_date",
    "end_date",
    "status",
    "accrued",
    "paid",
    "outstanding",
    "deposit",
    "notes",
)


class RentalFilter(str, Enum):
    """Status filters for the rentals list."""

    ALL = "all"
    ACTIVE = "active"
    FINISHED = "finished"
    OVERDUE = "overdue"

    @classmethod
    def from_str(cls, value: Optional[str]) -> "RentalFilter":
        if value is None or not str(value).strip():
            return cls.ALL
        try:
            return cls(str(value).strip().lower())
        except ValueError as error:
            raise ValueError(f"Unsupported rental filter: {value}") from error


def filter_rentals(
    rentals: Iterable[Rental],
    status: RentalFilter | str | None = RentalFilter.ALL,
    query: Optional[str] = None,
) -> List[Rental]:
    """Return rentals matching the status filter and search text."""

    wanted = status if isinstance(status, RentalFilter) else RentalFilter.from_str(status)
    needle = (query or "").strip().lower()
    matched: List[Rental] = []
    for rental in rentals:
        if wanted is not RentalFilter.ALL and rental.status is not RentalStatus(wanted.value):
            continue
        if needle and not (
            needle in rental.renter_name.lower()
            or needle in str(rental.bike_id)
            or needle in rental.renter_phone
        ):
            continue
        matched.append(rental)
    return matched


def _write_csv(header: Sequence[str], rows: Iterable[Sequence[object]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


def rentals_to_csv(rentals: Iterable[Rental]) -> str:
    """Render rentals, one row each, with their outstanding debt."""

    return _write_csv(
        RENTAL_COLUMNS,
        (
            (
                rental.id,
                rental.bike_id,
                rental.renter_name,
                rental.renter_phone,
                rental.start_date.isoformat(),
                rental.end_date.isoformat() if rental.end_date else "",
                rental.status.value,
                rental.accrued,
                rental.paid,
                rental.outstanding,
                rental.deposit,
                rental.notes,
            )
            for rental in rentals
        ),
    )


def summary_to_csv(snapshot: LedgerSnapshot) -> str:
    """Render the aggregate totals as metric/value rows."""

    aggregates = compute_aggregates(snapshot)
    return _write_csv(("metric", "value"), aggregates.as_dict().items())


class ReportExporter:
    """Write CSV reports for a snapshot to disk."""

    def export(self, content: str, destination: Path) -> Path:
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(content, encoding="utf-8")
        LOGGER.info("Exported report to %s", destination)
        return destination

    def export_all(self, snapshot: LedgerSnapshot, *, output_directory: Path) -> List[Path]:
        """Export the rentals list and the summary report."""

        output_directory.mkdir(parents=True, exist_ok=True)
        return [
            self.export(rentals_to_csv(snapshot.rentals), output_directory / "rentals.csv"),
            self.export(summary_to_csv(snapshot), output_directory / "summary.csv"),
        ]
