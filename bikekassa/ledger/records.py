"""Mini README: Record types stored inside a ledger snapshot.

Structure:
    * BikeStatus / RentalStatus - string enums for the two state fields.
    * Bike, Rental, Deposit, Client - dataclasses for inventory and renters.
    * LedgerEntry - shared shape of append-only money records, with the
      tagged subclasses Sale, Charge, Expense and Payment.
    * coerce_amount / coerce_id / parse_date - input coercion helpers.
    * same_id / numeric_id - identifier comparison across int and str ids.

Records export themselves with ``as_dict`` using the camelCase field names
of the persisted snapshot document (``bikeId``, ``pricePerDay`` ...) and are
rebuilt with ``from_dict``. ``from_dict`` also accepts snake_case keys so
rows fetched from the remote backend load without a mapping layer.
Amounts are whole currency units.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, ClassVar, Dict, Mapping, Optional, Type, Union

RecordId = Union[int, str]

DEFAULT_PRICE_PER_DAY = 120
DEFAULT_RENTER_NAME = "Guest"

_INTEGER_ID = re.compile(r"-?\d+")


class BikeStatus(str, Enum):
    """Availability of a bike in the fleet."""

    FREE = "free"
    RENTED = "rented"
    BROKEN = "broken"

    @classmethod
    def from_str(cls, value: Union[str, "BikeStatus"]) -> "BikeStatus":
        """Coerce arbitrary casing into a valid bike status."""

        try:
            return cls(str(value.value if isinstance(value, Enum) else value).strip().lower())
        except (ValueError, AttributeError) as error:
            raise ValueError(f"Unsupported bike status: {value}") from error


class RentalStatus(str, Enum):
    """Lifecycle state of a rental."""

    ACTIVE = "active"
    FINISHED = "finished"
    OVERDUE = "overdue"

    @classmethod
    def from_str(cls, value: Union[str, "RentalStatus"]) -> "RentalStatus":
        """Coerce arbitrary casing into a valid rental status."""

        try:
            return cls(str(value.value if isinstance(value, Enum) else value).strip().lower())
        except (ValueError, AttributeError) as error:
            raise ValueError(f"Unsupported rental status: {value}") from error

    @property
    def is_open(self) -> bool:
        """Active and overdue rentals both keep their bike out of the fleet."""

        return self is not RentalStatus.FINISHED


def parse_date(value: object) -> date:
    """Parse ISO formatted strings or date objects safely."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        # Remote rows may carry full timestamps.
        return date.fromisoformat(value.strip()[:10])
    raise ValueError("Dates must be provided as ISO strings or date/datetime instances.")


def _parse_optional_date(value: object) -> Optional[date]:
    if value is None or value == "":
        return None
    return parse_date(value)


def coerce_amount(value: object) -> int:
    """Convert numeric input into whole currency units."""

    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError("Amounts must be numeric, not boolean.")
    if isinstance(value, int):
        return value
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as error:
        raise ValueError(f"Invalid amount: {value!r}") from error
    if not math.isfinite(number):
        raise ValueError(f"Amounts must be finite: {value!r}")
    try:
        return int(round(number))
    except OverflowError as error:
        raise ValueError(f"Invalid amount: {value!r}") from error


def coerce_id(value: object) -> RecordId:
    """Normalise identifiers typed into forms or URLs; digit strings become ints."""

    if isinstance(value, bool) or value is None:
        raise ValueError(f"Invalid identifier: {value!r}")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        raise ValueError("Identifiers cannot be empty.")
    return int(text) if _INTEGER_ID.fullmatch(text) else text


def _record_id(value: object) -> RecordId:
    """Validate a stored identifier without changing its JSON type."""

    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError(f"Invalid identifier: {value!r}")
    if isinstance(value, str) and not value.strip():
        raise ValueError("Identifiers cannot be empty.")
    return value


def _optional_record_id(value: object) -> Optional[RecordId]:
    if value is None or value == "":
        return None
    return _record_id(value)


def numeric_id(value: object) -> Optional[int]:
    """Integer value of an identifier, or None for non-numeric ids."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INTEGER_ID.fullmatch(value.strip()):
        return int(value.strip())
    return None


def same_id(left: object, right: object) -> bool:
    """Compare identifiers so that 7 and "7" name the same record."""

    if left is None or right is None:
        return left is right
    return left == right or str(left).strip() == str(right).strip()


def _pick(payload: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key, tolerating camelCase and snake_case rows."""

    for key in keys:
        if key in payload:
            return payload[key]
    return default


def _require(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    raise KeyError(keys[0])


@dataclass(slots=True)
class Bike:
    """A bike in the rental fleet."""

    id: RecordId
    number: Union[int, str]
    status: BikeStatus = BikeStatus.FREE
    price_per_day: int = DEFAULT_PRICE_PER_DAY

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "number": self.number,
            "status": self.status.value,
            "pricePerDay": self.price_per_day,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Bike":
        bike_id = _record_id(_require(payload, "id"))
        number = _pick(payload, "number", "title", default=bike_id)
        price = _pick(payload, "pricePerDay", "price_per_day")
        return cls(
            id=bike_id,
            number=number if number not in (None, "") else bike_id,
            status=BikeStatus.from_str(_pick(payload, "status", default="free")),
            price_per_day=DEFAULT_PRICE_PER_DAY if price is None else _bike_price(price),
        )


def _bike_price(value: object) -> int:
    price = coerce_amount(value)
    if price < 0:
        raise ValueError(f"Price per day cannot be negative: {value!r}")
    return price


@dataclass(slots=True)
class Rental:
    """A bike handed to a renter, open until finished."""

    id: RecordId
    bike_id: RecordId
    start_date: date
    status: RentalStatus = RentalStatus.ACTIVE
    accrued: int = 0
    paid: int = 0
    renter_name: str = DEFAULT_RENTER_NAME
    renter_phone: str = ""
    end_date: Optional[date] = None
    deposit: int = 0
    notes: str = ""

    @property
    def outstanding(self) -> int:
        """Debt still owed; overpayment never shows as negative debt."""

        return max(0, self.accrued - self.paid)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "bikeId": self.bike_id,
            "renterName": self.renter_name,
            "renterPhone": self.renter_phone,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "status": self.status.value,
            "accrued": self.accrued,
            "paid": self.paid,
            "deposit": self.deposit,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Rental":
        return cls(
            id=_record_id(_require(payload, "id")),
            bike_id=_record_id(_require(payload, "bikeId", "bike_id")),
            start_date=parse_date(_require(payload, "startDate", "start_date")),
            status=RentalStatus.from_str(_pick(payload, "status", default="active")),
            accrued=coerce_amount(_pick(payload, "accrued")),
            paid=coerce_amount(_pick(payload, "paid")),
            renter_name=str(_pick(payload, "renterName", "renter_name", default="") or ""),
            renter_phone=str(_pick(payload, "renterPhone", "renter_phone", default="") or ""),
            end_date=_parse_optional_date(_pick(payload, "endDate", "end_date")),
            deposit=coerce_amount(_pick(payload, "deposit")),
            notes=str(_pick(payload, "notes", default="") or ""),
        )


@dataclass(slots=True)
class Deposit:
    """Money held against a rental, returned or withheld when it closes."""

    id: RecordId
    amount: int
    date: date
    title: Optional[str] = None
    rental_id: Optional[RecordId] = None
    note: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "amount": self.amount,
            "date": self.date.isoformat(),
            "title": self.title,
            "rentalId": self.rental_id,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Deposit":
        return cls(
            id=_record_id(_require(payload, "id")),
            amount=coerce_amount(_pick(payload, "amount")),
            date=parse_date(_require(payload, "date")),
            title=_pick(payload, "title"),
            rental_id=_optional_record_id(_pick(payload, "rentalId", "rental_id")),
            note=str(_pick(payload, "note", default="") or ""),
        )


@dataclass(slots=True)
class Client:
    """A renter remembered in the client book."""

    id: RecordId
    name: str
    phone: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "phone": self.phone}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Client":
        return cls(
            id=_record_id(_require(payload, "id")),
            name=str(_require(payload, "name")),
            phone=str(_pick(payload, "phone", default="") or ""),
        )


@dataclass(slots=True)
class LedgerEntry:
    """Append-only money record shared by sales, charges, expenses and payments."""

    kind: ClassVar[str] = "entry"
    default_title: ClassVar[str] = ""

    id: RecordId
    amount: int
    date: date
    title: str = ""
    note: str = ""
    rental_id: Optional[RecordId] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "amount": self.amount,
            "date": self.date.isoformat(),
            "title": self.title,
            "note": self.note,
            "rentalId": self.rental_id,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "LedgerEntry":
        return cls(
            id=_record_id(_require(payload, "id")),
            amount=coerce_amount(_pick(payload, "amount")),
            date=parse_date(_require(payload, "date")),
            title=str(_pick(payload, "title", default=cls.default_title) or ""),
            note=str(_pick(payload, "note", default="") or ""),
            rental_id=_optional_record_id(_pick(payload, "rentalId", "rental_id")),
        )


@dataclass(slots=True)
class Sale(LedgerEntry):
    """Income from selling goods or services outside a rental."""

    kind: ClassVar[str] = "sales"
    default_title: ClassVar[str] = "Sale"


@dataclass(slots=True)
class Charge(LedgerEntry):
    """Write-off, including deposit amounts withheld at rental close."""

    kind: ClassVar[str] = "charges"
    default_title: ClassVar[str] = "Write-off"


@dataclass(slots=True)
class Expense(LedgerEntry):
    """Money spent running the shop."""

    kind: ClassVar[str] = "expenses"
    default_title: ClassVar[str] = "Expense"


@dataclass(slots=True)
class Payment(LedgerEntry):
    """Money received from a renter against a rental."""

    kind: ClassVar[str] = "payments"
    default_title: ClassVar[str] = "Payment"


ENTRY_TYPES: Dict[str, Type[LedgerEntry]] = {
    entry_type.kind: entry_type for entry_type in (Sale, Charge, Expense, Payment)
}
