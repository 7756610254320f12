"""Mini README: The ledger snapshot, its JSON form and derived aggregates.

Structure:
    * LedgerSnapshot - every record collection owned by one ledger.
    * LedgerAggregates - sums, balance and counters derived on read.
    * compute_aggregates - pure function from snapshot to aggregates.
    * serialize_snapshot / deserialize_snapshot - JSON document round-trip.
    * build_demo_snapshot - deterministic seed used when nothing is stored.

The document layout is the one the shop's previous tool exported:
top-level ``bikes``, ``rentals``, ``deposits``, ``sales``, ``charges``,
``expenses``, ``payments`` and ``clients`` arrays. Only ``bikes`` and
``rentals`` are mandatory on import; anything else defaults to empty. An
optional ``lastIds`` object records the highest id issued per collection.
"""

from __future__ import annotations

import copy
import json
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping

from ..logging_utils import get_logger
from .errors import FormatError
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

LOGGER = get_logger(__name__)

REQUIRED_COLLECTIONS = ("bikes", "rentals")
COLLECTION_NAMES = (
    "bikes",
    "rentals",
    "deposits",
    "sales",
    "charges",
    "expenses",
    "payments",
    "clients",
)
# Highest id issued per collection; never decreases.
LAST_IDS_KEY = "lastIds"
RECORD_TYPES = {
    "bikes": Bike,
    "rentals": Rental,
    "deposits": Deposit,
    "sales": Sale,
    "charges": Charge,
    "expenses": Expense,
    "payments": Payment,
    "clients": Client,
}


@dataclass(slots=True)
class LedgerSnapshot:
    """Full state of the shop ledger."""

    bikes: List[Bike] = field(default_factory=list)
    rentals: List[Rental] = field(default_factory=list)
    deposits: List[Deposit] = field(default_factory=list)
    sales: List[Sale] = field(default_factory=list)
    charges: List[Charge] = field(default_factory=list)
    expenses: List[Expense] = field(default_factory=list)
    payments: List[Payment] = field(default_factory=list)
    clients: List[Client] = field(default_factory=list)
    last_ids: Dict[str, int] = field(default_factory=dict)

    def copy(self) -> "LedgerSnapshot":
        """Deep copy so readers never share records with the engine."""

        return copy.deepcopy(self)

    def as_dict(self) -> Dict[str, Any]:
        document: Dict[str, Any] = {
            name: [record.as_dict() for record in getattr(self, name)]
            for name in COLLECTION_NAMES
        }
        if self.last_ids:
            document[LAST_IDS_KEY] = dict(self.last_ids)
        return document

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "LedgerSnapshot":
        """Build a snapshot from a parsed document, validating its shape."""

        if not isinstance(payload, Mapping):
            raise FormatError("Snapshot document must be a JSON object.")
        for name in REQUIRED_COLLECTIONS:
            if not isinstance(payload.get(name), list):
                raise FormatError(f"Snapshot document requires a '{name}' array.")

        collections: Dict[str, list] = {}
        for name in COLLECTION_NAMES:
            raw_records = payload.get(name)
            if raw_records is None:
                raw_records = []
            if not isinstance(raw_records, list):
                raise FormatError(f"Snapshot field '{name}' must be an array.")
            collections[name] = parse_records(name, raw_records)
        return cls(**collections, last_ids=_parse_last_ids(payload.get(LAST_IDS_KEY)))


def _parse_last_ids(raw: Any) -> Dict[str, int]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise FormatError(f"Snapshot field '{LAST_IDS_KEY}' must be an object.")
    last_ids: Dict[str, int] = {}
    for name, value in raw.items():
        if name not in COLLECTION_NAMES or isinstance(value, bool) or not isinstance(value, int):
            raise FormatError(f"Invalid '{LAST_IDS_KEY}' entry: {name!r}={value!r}")
        last_ids[name] = value
    return last_ids


def parse_records(name: str, raw_records: Iterable[Any]) -> list:
    """Parse one collection, reporting the offending record on failure."""

    record_type = RECORD_TYPES[name]
    parsed = []
    for index, raw in enumerate(raw_records):
        if not isinstance(raw, Mapping):
            raise FormatError(f"Record {index} in '{name}' must be an object.")
        try:
            parsed.append(record_type.from_dict(raw))
        except (KeyError, TypeError, ValueError) as error:
            raise FormatError(f"Record {index} in '{name}' is invalid: {error}") from error
    return parsed


@dataclass(slots=True)
class LedgerAggregates:
    """Totals shown on the dashboard; recomputed for every read."""

    deposits_total: int = 0
    sales_total: int = 0
    payments_total: int = 0
    charges_total: int = 0
    expenses_total: int = 0
    balance: int = 0
    outstanding_total: int = 0
    bikes_total: int = 0
    free_bikes: int = 0
    active_rentals: int = 0
    overdue_rentals: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


def _sum_amounts(records: Iterable[Any]) -> int:
    return sum(record.amount for record in records)


def compute_aggregates(snapshot: LedgerSnapshot) -> LedgerAggregates:
    """Derive totals and balance: (sales + payments) - (expenses + charges)."""

    sales_total = _sum_amounts(snapshot.sales)
    payments_total = _sum_amounts(snapshot.payments)
    charges_total = _sum_amounts(snapshot.charges)
    expenses_total = _sum_amounts(snapshot.expenses)
    return LedgerAggregates(
        deposits_total=_sum_amounts(snapshot.deposits),
        sales_total=sales_total,
        payments_total=payments_total,
        charges_total=charges_total,
        expenses_total=expenses_total,
        balance=(sales_total + payments_total) - (expenses_total + charges_total),
        outstanding_total=sum(
            rental.outstanding for rental in snapshot.rentals if rental.status.is_open
        ),
        bikes_total=len(snapshot.bikes),
        free_bikes=sum(1 for bike in snapshot.bikes if bike.status is BikeStatus.FREE),
        active_rentals=sum(
            1 for rental in snapshot.rentals if rental.status is RentalStatus.ACTIVE
        ),
        overdue_rentals=sum(
            1 for rental in snapshot.rentals if rental.status is RentalStatus.OVERDUE
        ),
    )


def serialize_snapshot(snapshot: LedgerSnapshot, *, indent: int = 2) -> str:
    """Render the snapshot as a JSON document."""

    return json.dumps(snapshot.as_dict(), ensure_ascii=False, indent=indent)


def deserialize_snapshot(raw: str | bytes) -> LedgerSnapshot:
    """Parse a JSON document into a snapshot or raise ``FormatError``."""

    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as error:
        raise FormatError(f"Snapshot is not valid JSON: {error}") from error
    snapshot = LedgerSnapshot.from_dict(payload)
    LOGGER.debug(
        "Deserialised snapshot with %s bikes and %s rentals",
        len(snapshot.bikes),
        len(snapshot.rentals),
    )
    return snapshot


def build_demo_snapshot() -> LedgerSnapshot:
    """Create the deterministic demo fleet shown on first launch."""

    bikes = [
        Bike(
            id=index,
            number=index,
            status=BikeStatus.RENTED if index == 1 else BikeStatus.FREE,
            price_per_day=150 if index == 1 else 120,
        )
        for index in range(1, 9)
    ]
    rentals = [
        Rental(
            id=1,
            bike_id=1,
            renter_name="Sharipov",
            renter_phone="99999999",
            start_date=date(2025, 1, 1),
            status=RentalStatus.OVERDUE,
            accrued=2200,
            paid=0,
            deposit=500,
        )
    ]
    deposits = [
        Deposit(
            id=1,
            amount=500,
            date=date(2025, 1, 1),
            title="Deposit Sharipov",
            rental_id=1,
        )
    ]
    clients = [Client(id=1, name="Sharipov", phone="99999999")]
    return LedgerSnapshot(bikes=bikes, rentals=rentals, deposits=deposits, clients=clients)


def entries_of(snapshot: LedgerSnapshot, kind: str) -> List[LedgerEntry]:
    """Return the live list backing a ledger-entry collection."""

    if kind not in ("sales", "charges", "expenses", "payments"):
        raise KeyError(f"Unknown ledger collection '{kind}'")
    return getattr(snapshot, kind)
