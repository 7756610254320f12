"""Mini README: Reporting helpers for Bike Kassa.

Filtering for the rentals list and CSV exports of rentals and of the
summary totals.
"""

from .exporter import (
    RentalFilter,
    ReportExporter,
    filter_rentals,
    rentals_to_csv,
    summary_to_csv,
)

__all__ = [
    "RentalFilter",
    "ReportExporter",
    "filter_rentals",
    "rentals_to_csv",
    "summary_to_csv",
]
