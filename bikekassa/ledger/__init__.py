"""Mini README: Rental and cash-desk ledger for Bike Kassa.

This package models the shop's bikes, rentals, deposits and money records
and the rules tying them together. ``records`` defines the data types,
``snapshot`` the full state with its JSON form and derived totals, and
``engine`` the ``LedgerEngine`` that applies every state transition.
"""

from .engine import LedgerEngine
from .errors import FormatError, LedgerError, NotFoundError, ValidationError
from .records import (
    Bike,
    BikeStatus,
    Charge,
    Client,
    Deposit,
    Expense,
    LedgerEntry,
    Payment,
    Rental,
    RentalStatus,
    Sale,
)
from .snapshot import (
    LedgerAggregates,
    LedgerSnapshot,
    build_demo_snapshot,
    compute_aggregates,
    deserialize_snapshot,
    serialize_snapshot,
)

__all__ = [
    "Bike",
    "BikeStatus",
    "Charge",
    "Client",
    "Deposit",
    "Expense",
    "FormatError",
    "LedgerAggregates",
    "LedgerEngine",
    "LedgerEntry",
    "LedgerError",
    "LedgerSnapshot",
    "NotFoundError",
    "Payment",
    "Rental",
    "RentalStatus",
    "Sale",
    "ValidationError",
    "build_demo_snapshot",
    "compute_aggregates",
    "deserialize_snapshot",
    "serialize_snapshot",
]
