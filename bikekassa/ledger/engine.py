"""Mini README: The ledger engine owning bikes, rentals and money records.

Structure:
    * LedgerEngine - the single owner of a ``LedgerSnapshot``; every state
      transition (inventory edits, rental start/payment/finish, deposit
      withholding, manual ledger entries, imports) goes through it.
    * SnapshotListener - callable notified with a copy after each commit.

Every operation validates its inputs and references before touching any
collection, then mutates under a re-entrant lock so multi-collection
changes (for example a rental start that updates rentals, bikes and
deposits together) are observed atomically. Listeners such as the local
snapshot store run after the commit; their failures are logged and never
undo the in-memory change, which stays the source of truth.

Occupancy rule: a bike is ``rented`` exactly when one open (active or
overdue) rental references it.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import date, timedelta
from typing import TYPE_CHECKING, Callable, Dict, Iterator, List, Optional, Type, Union

from ..logging_utils import get_logger
from .errors import NotFoundError, ValidationError
from .records import (
    DEFAULT_PRICE_PER_DAY,
    DEFAULT_RENTER_NAME,
    Bike,
    BikeStatus,
    Charge,
    Client,
    Deposit,
    Expense,
    LedgerEntry,
    Payment,
    RecordId,
    Rental,
    RentalStatus,
    Sale,
    coerce_amount,
    coerce_id,
    numeric_id,
    parse_date,
    same_id,
)
from .snapshot import (
    COLLECTION_NAMES,
    LedgerAggregates,
    LedgerSnapshot,
    build_demo_snapshot,
    compute_aggregates,
    deserialize_snapshot,
    entries_of,
    serialize_snapshot,
)

if TYPE_CHECKING:  # pragma: no cover
    from ..receipts import ReceiptPrinter
    from ..storage import LocalSnapshotStore

LOGGER = get_logger(__name__)

SnapshotListener = Callable[[LedgerSnapshot], None]
DateInput = Union[date, str, None]

WITHHELD_DEPOSIT_TITLE = "deposit withheld"


def _referenced_ids(state: LedgerSnapshot, name: str) -> Iterator[RecordId]:
    """Ids of ``name`` still referenced from other collections."""

    if name == "bikes":
        yield from (rental.bike_id for rental in state.rentals)
    elif name == "rentals":
        for linked in (state.deposits, state.sales, state.charges, state.expenses, state.payments):
            yield from (record.rental_id for record in linked if record.rental_id is not None)


def _next_id(state: LedgerSnapshot, name: str) -> int:
    """Issue the next sequential id for a collection.

    The id is above every id present or referenced and above the highest
    id issued before, so a removed record's id is never handed out again.
    """

    candidates = [record.id for record in getattr(state, name)]
    candidates.extend(_referenced_ids(state, name))
    numeric = [number for number in map(numeric_id, candidates) if number is not None]
    issued = max(numeric + [state.last_ids.get(name, 0)], default=0) + 1
    state.last_ids[name] = issued
    return issued


def _amount(value: object, label: str) -> int:
    try:
        return coerce_amount(value)
    except ValueError as error:
        raise ValidationError(f"{label} must be a number") from error


def _retire_id(state: LedgerSnapshot, name: str, record_id: RecordId) -> None:
    number = numeric_id(record_id)
    if number is not None and number > state.last_ids.get(name, 0):
        state.last_ids[name] = number


def _price(value: object) -> int:
    price = _amount(value, "price per day")
    if price < 0:
        raise ValidationError("price per day cannot be negative")
    return price


def _reference(value: object, label: str) -> RecordId:
    if value is None or value == "":
        raise ValidationError(f"no {label} selected")
    try:
        return coerce_id(value)
    except ValueError as error:
        raise ValidationError(f"invalid {label} id: {value!r}") from error


class LedgerEngine:
    """Apply rental and cash-desk operations to one ledger snapshot."""

    def __init__(
        self,
        snapshot: Optional[LedgerSnapshot] = None,
        *,
        receipt_printer: Optional["ReceiptPrinter"] = None,
        default_price_per_day: int = DEFAULT_PRICE_PER_DAY,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self._snapshot = snapshot if snapshot is not None else build_demo_snapshot()
        self._lock = threading.RLock()
        self._listeners: List[SnapshotListener] = []
        self.receipt_printer = receipt_printer
        self.default_price_per_day = default_price_per_day
        self._clock = clock
        LOGGER.debug(
            "Ledger engine initialised with %s bikes and %s rentals",
            len(self._snapshot.bikes),
            len(self._snapshot.rentals),
        )

    def add_listener(self, listener: SnapshotListener) -> None:
        """Register a callable notified with a snapshot copy after commits."""

        self._listeners.append(listener)

    def attach_store(self, store: "LocalSnapshotStore") -> None:
        """Persist the full snapshot to ``store`` after every mutation."""

        self.add_listener(store.save)

    def today(self) -> date:
        return self._clock()

    @contextmanager
    def _mutation(self, action: str) -> Iterator[LedgerSnapshot]:
        with self._lock:
            yield self._snapshot
            LOGGER.debug("Committed %s", action)
            self._notify(action)

    def _notify(self, action: str) -> None:
        if not self._listeners:
            return
        committed = self._snapshot.copy()
        for listener in self._listeners:
            try:
                listener(committed)
            except Exception:  # noqa: BLE001 - listener failures are logged only
                LOGGER.exception("Snapshot listener failed after %s", action)

    def _find_bike(self, bike_id: RecordId) -> Optional[Bike]:
        return next((bike for bike in self._snapshot.bikes if same_id(bike.id, bike_id)), None)

    def _find_rental(self, rental_id: RecordId) -> Optional[Rental]:
        return next(
            (rental for rental in self._snapshot.rentals if same_id(rental.id, rental_id)), None
        )

    def _require_rental(self, rental_id: object) -> Rental:
        rental = self._find_rental(_reference(rental_id, "rental"))
        if rental is None:
            raise NotFoundError(f"Rental {rental_id} not found")
        return rental

    def _open_rental_for(self, bike_id: RecordId) -> Optional[Rental]:
        return next(
            (
                rental
                for rental in self._snapshot.rentals
                if same_id(rental.bike_id, bike_id) and rental.status.is_open
            ),
            None,
        )

    def _free_bike_of(self, rental: Rental) -> None:
        bike = self._find_bike(rental.bike_id)
        if bike is None:
            LOGGER.warning("Rental %s references missing bike %s", rental.id, rental.bike_id)
            return
        # Re-finishing an old rental must not release a bike that is out again.
        if self._open_rental_for(bike.id) is None:
            bike.status = BikeStatus.FREE

    def get_bike(self, bike_id: object) -> Bike:
        """Retrieve a bike, raising ``NotFoundError`` when missing."""

        with self._lock:
            bike = self._find_bike(_reference(bike_id, "bike"))
            if bike is None:
                raise NotFoundError(f"Bike {bike_id} not found")
            return bike

    def get_rental(self, rental_id: object) -> Rental:
        """Retrieve a rental, raising ``NotFoundError`` when missing."""

        with self._lock:
            return self._require_rental(rental_id)

    def list_bikes(self, status: Optional[Union[str, BikeStatus]] = None) -> List[Bike]:
        with self._lock:
            if status is None:
                return list(self._snapshot.bikes)
            wanted = BikeStatus.from_str(status)
            return [bike for bike in self._snapshot.bikes if bike.status is wanted]

    def list_rentals(self) -> List[Rental]:
        with self._lock:
            return list(self._snapshot.rentals)

    def rentals_for_bike(self, bike_id: object) -> List[Rental]:
        """Rental history of one bike, newest start first."""

        reference = _reference(bike_id, "bike")
        with self._lock:
            history = [
                rental
                for rental in self._snapshot.rentals
                if same_id(rental.bike_id, reference)
            ]
        return sorted(history, key=lambda rental: rental.start_date, reverse=True)

    def list_deposits(self) -> List[Deposit]:
        with self._lock:
            return list(self._snapshot.deposits)

    def deposit_for_rental(self, rental_id: object) -> Optional[Deposit]:
        """First deposit linked to the rental, in insertion order."""

        reference = _reference(rental_id, "rental")
        with self._lock:
            return next(
                (
                    deposit
                    for deposit in self._snapshot.deposits
                    if same_id(deposit.rental_id, reference)
                ),
                None,
            )

    def list_entries(self, kind: str) -> List[LedgerEntry]:
        with self._lock:
            return list(entries_of(self._snapshot, kind))

    def list_clients(self) -> List[Client]:
        with self._lock:
            return list(self._snapshot.clients)

    def snapshot(self) -> LedgerSnapshot:
        """Return a detached copy of the current state."""

        with self._lock:
            return self._snapshot.copy()

    def aggregates(self) -> LedgerAggregates:
        """Compute totals from the current state; nothing is cached."""

        with self._lock:
            return compute_aggregates(self._snapshot)

    def add_bike(
        self,
        number: Optional[Union[int, str]] = None,
        status: Union[str, BikeStatus] = BikeStatus.FREE,
        price_per_day: Optional[object] = None,
    ) -> Bike:
        """Add a bike to the fleet; rentals are the only way to mark one rented."""

        bike_status = self._bike_status(status)
        if bike_status is BikeStatus.RENTED:
            raise ValidationError("bikes are marked rented by starting a rental")
        price = (
            self.default_price_per_day
            if price_per_day is None or price_per_day == ""
            else _price(price_per_day)
        )
        with self._mutation("add_bike") as state:
            bike_id = _next_id(state, "bikes")
            bike = Bike(
                id=bike_id,
                number=number if number not in (None, "") else bike_id,
                status=bike_status,
                price_per_day=price,
            )
            state.bikes.append(bike)
            LOGGER.info("Added bike %s (number=%s)", bike.id, bike.number)
        return bike

    def edit_bike(self, bike_id: object, **fields: object) -> Optional[Bike]:
        """Replace editable fields of a bike; unknown ids are a silent no-op."""

        unsupported = set(fields) - {"number", "status", "price_per_day"}
        if unsupported:
            raise ValidationError(f"Cannot edit bike fields: {', '.join(sorted(unsupported))}")
        reference = _reference(bike_id, "bike")
        with self._lock:
            bike = self._find_bike(reference)
            if bike is None:
                LOGGER.debug("edit_bike ignored unknown bike %s", bike_id)
                return None
            changes: Dict[str, object] = {}
            if fields.get("number") not in (None, ""):
                changes["number"] = fields["number"]
            if fields.get("price_per_day") is not None:
                changes["price_per_day"] = _price(fields["price_per_day"])
            if fields.get("status") is not None:
                new_status = self._bike_status(fields["status"])
                occupied = self._open_rental_for(bike.id) is not None
                if (new_status is BikeStatus.RENTED) != occupied:
                    raise ValidationError(
                        f"bike {bike.id} status follows its rentals; "
                        "start or finish a rental instead"
                    )
                changes["status"] = new_status
            with self._mutation("edit_bike"):
                for name, value in changes.items():
                    setattr(bike, name, value)
                LOGGER.info("Edited bike %s: %s", bike.id, sorted(changes))
            return bike

    def remove_bike(self, bike_id: object) -> bool:
        """Delete a bike. Rentals that reference it are left dangling."""

        reference = _reference(bike_id, "bike")
        with self._lock:
            bike = self._find_bike(reference)
            if bike is None:
                return False
            if self._open_rental_for(reference) is not None:
                LOGGER.warning("Removing bike %s while a rental still references it", reference)
            with self._mutation("remove_bike") as state:
                state.bikes.remove(bike)
                _retire_id(state, "bikes", bike.id)
                LOGGER.info("Removed bike %s", reference)
            return True

    @staticmethod
    def _bike_status(value: object) -> BikeStatus:
        try:
            return BikeStatus.from_str(value)  # type: ignore[arg-type]
        except ValueError as error:
            raise ValidationError(str(error)) from error

    def start_rental(
        self,
        bike_id: object = None,
        renter_name: Optional[str] = None,
        renter_phone: Optional[str] = None,
        start_date: DateInput = None,
        accrued: object = 0,
        deposit: object = 0,
        notes: str = "",
    ) -> Rental:
        """Hand a free bike to a renter, capturing an optional deposit."""

        reference = _reference(bike_id, "bike")
        accrued_amount = _amount(accrued, "accrued amount")
        deposit_amount = _amount(deposit, "deposit")
        started_on = self._date(start_date)
        name = (renter_name or "").strip() or DEFAULT_RENTER_NAME
        phone = (renter_phone or "").strip()

        with self._lock:
            bike = self._find_bike(reference)
            if bike is None:
                raise NotFoundError(f"Bike {bike_id} not found")
            if bike.status is not BikeStatus.FREE:
                raise ValidationError(f"bike {bike.id} is not free ({bike.status.value})")

            with self._mutation("start_rental") as state:
                rental = Rental(
                    id=_next_id(state, "rentals"),
                    bike_id=bike.id,
                    renter_name=name,
                    renter_phone=phone,
                    start_date=started_on,
                    status=RentalStatus.ACTIVE,
                    accrued=accrued_amount,
                    paid=0,
                    deposit=deposit_amount,
                    notes=notes or "",
                )
                state.rentals.append(rental)
                bike.status = BikeStatus.RENTED
                if deposit_amount > 0:
                    state.deposits.append(
                        Deposit(
                            id=_next_id(state, "deposits"),
                            amount=deposit_amount,
                            date=self.today(),
                            title=f"Deposit {name}",
                            rental_id=rental.id,
                        )
                    )
                if name != DEFAULT_RENTER_NAME:
                    self._remember_client(state, name, phone)
                LOGGER.info(
                    "Started rental %s on bike %s for %s (deposit=%s)",
                    rental.id,
                    bike.id,
                    name,
                    deposit_amount,
                )
        return rental

    def apply_payment(self, rental_id: object, amount: object) -> Payment:
        """Record money received against a rental and print a receipt."""

        paid_amount = _amount(amount, "payment amount")
        if paid_amount <= 0:
            raise ValidationError("payment amount must be positive")
        with self._lock:
            rental = self._require_rental(rental_id)
            with self._mutation("apply_payment") as state:
                rental.paid += paid_amount
                payment = Payment(
                    id=_next_id(state, "payments"),
                    amount=paid_amount,
                    date=self.today(),
                    title=Payment.default_title,
                    rental_id=rental.id,
                )
                state.payments.append(payment)
                LOGGER.info(
                    "Payment %s of %s applied to rental %s (paid=%s accrued=%s)",
                    payment.id,
                    paid_amount,
                    rental.id,
                    rental.paid,
                    rental.accrued,
                )
        self._print_receipt(payment, rental)
        return payment

    def _print_receipt(self, payment: Payment, rental: Rental) -> None:
        if self.receipt_printer is None:
            return
        try:
            self.receipt_printer.print_receipt(payment, rental)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Receipt printing failed for payment %s", payment.id)

    def finish_rental(self, rental_id: object, extra_charge: object = 0) -> Rental:
        """Close a rental, adding any extra charge to the accrued amount."""

        extra = _amount(extra_charge, "extra charge")
        if extra < 0:
            raise ValidationError("extra charge cannot be negative")
        with self._lock:
            rental = self._require_rental(rental_id)
            with self._mutation("finish_rental"):
                rental.status = RentalStatus.FINISHED
                rental.end_date = self.today()
                rental.accrued += extra
                self._free_bike_of(rental)
                LOGGER.info(
                    "Finished rental %s (extra=%s accrued=%s)", rental.id, extra, rental.accrued
                )
            return rental

    def finalize_rental_with_deposit_withhold(
        self, rental_id: object, withhold_amount: object
    ) -> Rental:
        """Close a rental, keeping part or all of its deposit as a charge."""

        withhold = _amount(withhold_amount, "withhold amount")
        if withhold < 0:
            raise ValidationError("withhold amount cannot be negative")
        with self._lock:
            rental = self._require_rental(rental_id)
            with self._mutation("finalize_rental_with_deposit_withhold") as state:
                rental.status = RentalStatus.FINISHED
                rental.end_date = self.today()
                deposit = next(
                    (item for item in state.deposits if same_id(item.rental_id, rental.id)), None
                )
                if deposit is None:
                    if withhold:
                        LOGGER.warning(
                            "Rental %s has no deposit; withhold of %s ignored", rental.id, withhold
                        )
                else:
                    withheld = min(withhold, deposit.amount)
                    if withheld > 0:
                        state.charges.append(
                            Charge(
                                id=_next_id(state, "charges"),
                                amount=withheld,
                                date=self.today(),
                                title=WITHHELD_DEPOSIT_TITLE,
                                note=f"Rental {rental.id}",
                                rental_id=rental.id,
                            )
                        )
                        if withheld >= deposit.amount:
                            state.deposits.remove(deposit)
                            _retire_id(state, "deposits", deposit.id)
                        else:
                            deposit.amount -= withheld
                        LOGGER.info(
                            "Withheld %s from deposit %s of rental %s", withheld, deposit.id, rental.id
                        )
                self._free_bike_of(rental)
                LOGGER.info("Finalised rental %s", rental.id)
            return rental

    def mark_overdue(self, rental_id: object) -> Rental:
        """Flag an active rental as overdue; the bike stays out."""

        with self._lock:
            rental = self._require_rental(rental_id)
            if rental.status is RentalStatus.FINISHED:
                raise ValidationError(f"rental {rental.id} is already finished")
            if rental.status is RentalStatus.OVERDUE:
                return rental
            with self._mutation("mark_overdue"):
                rental.status = RentalStatus.OVERDUE
                LOGGER.info("Rental %s marked overdue", rental.id)
            return rental

    def refresh_overdue(self, max_days: int, today: DateInput = None) -> List[Rental]:
        """Mark active rentals older than ``max_days`` overdue."""

        if max_days < 0:
            raise ValidationError("max_days cannot be negative")
        reference_day = self._date(today)
        cutoff = reference_day - timedelta(days=max_days)
        with self._lock:
            stale = [
                rental
                for rental in self._snapshot.rentals
                if rental.status is RentalStatus.ACTIVE and rental.start_date < cutoff
            ]
            if not stale:
                return []
            with self._mutation("refresh_overdue"):
                for rental in stale:
                    rental.status = RentalStatus.OVERDUE
                LOGGER.info("Marked %s rentals overdue (older than %s days)", len(stale), max_days)
            return stale

    def add_deposit(
        self,
        amount: object,
        title: Optional[str] = None,
        note: Optional[str] = None,
        date: DateInput = None,
        rental_id: object = None,
    ) -> Deposit:
        """Record a deposit taken outside a rental start."""

        deposit_amount = _amount(amount, "amount")
        taken_on = self._date(date)
        linked = None if rental_id in (None, "") else _reference(rental_id, "rental")
        with self._mutation("add_deposit") as state:
            deposit = Deposit(
                id=_next_id(state, "deposits"),
                amount=deposit_amount,
                date=taken_on,
                title=title or "Deposit",
                rental_id=linked,
                note=note or "",
            )
            state.deposits.append(deposit)
            LOGGER.info("Added deposit %s of %s", deposit.id, deposit.amount)
        return deposit

    def remove_deposit(self, deposit_id: object) -> bool:
        """Drop a deposit, e.g. once it has been handed back."""

        reference = _reference(deposit_id, "deposit")
        with self._lock:
            deposit = next(
                (item for item in self._snapshot.deposits if same_id(item.id, reference)), None
            )
            if deposit is None:
                return False
            with self._mutation("remove_deposit") as state:
                state.deposits.remove(deposit)
                _retire_id(state, "deposits", deposit.id)
                LOGGER.info("Removed deposit %s", reference)
            return True

    def _add_entry(
        self,
        entry_type: Type[LedgerEntry],
        amount: object,
        title: Optional[str],
        note: Optional[str],
        when: DateInput,
        rental_id: object,
    ) -> LedgerEntry:
        entry_amount = _amount(amount, "amount")
        occurred_on = self._date(when)
        linked = None if rental_id in (None, "") else _reference(rental_id, "rental")
        with self._mutation(f"add_{entry_type.kind}") as state:
            collection = entries_of(state, entry_type.kind)
            entry = entry_type(
                id=_next_id(state, entry_type.kind),
                amount=entry_amount,
                date=occurred_on,
                title=title or entry_type.default_title,
                note=note or "",
                rental_id=linked,
            )
            collection.append(entry)
            LOGGER.info("Added %s entry %s of %s", entry_type.kind, entry.id, entry.amount)
        return entry

    def add_sale(
        self,
        amount: object,
        title: Optional[str] = None,
        note: Optional[str] = None,
        date: DateInput = None,
        rental_id: object = None,
    ) -> Sale:
        """Record income from goods or services sold at the desk."""

        return self._add_entry(Sale, amount, title, note, date, rental_id)  # type: ignore[return-value]

    def add_charge(
        self,
        amount: object,
        title: Optional[str] = None,
        note: Optional[str] = None,
        date: DateInput = None,
        rental_id: object = None,
    ) -> Charge:
        """Record a write-off."""

        return self._add_entry(Charge, amount, title, note, date, rental_id)  # type: ignore[return-value]

    def add_expense(
        self,
        amount: object,
        title: Optional[str] = None,
        note: Optional[str] = None,
        date: DateInput = None,
        rental_id: object = None,
    ) -> Expense:
        return self._add_entry(Expense, amount, title, note, date, rental_id)  # type: ignore[return-value]

    def _date(self, value: DateInput) -> date:
        if value is None or value == "":
            return self.today()
        try:
            return parse_date(value)
        except ValueError as error:
            raise ValidationError(f"invalid date: {value!r}") from error

    @staticmethod
    def _remember_client(state: LedgerSnapshot, name: str, phone: str) -> None:
        if any(client.name == name and client.phone == phone for client in state.clients):
            return
        state.clients.append(Client(id=_next_id(state, "clients"), name=name, phone=phone))

    def add_client(self, name: str, phone: str = "") -> Client:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationError("client name is required")
        with self._mutation("add_client") as state:
            self._remember_client(state, cleaned, (phone or "").strip())
            client = next(
                item
                for item in state.clients
                if item.name == cleaned and item.phone == (phone or "").strip()
            )
        return client

    def remove_client(self, client_id: object) -> bool:
        reference = _reference(client_id, "client")
        with self._lock:
            client = next(
                (item for item in self._snapshot.clients if same_id(item.id, reference)), None
            )
            if client is None:
                return False
            with self._mutation("remove_client") as state:
                state.clients.remove(client)
                _retire_id(state, "clients", client.id)
                LOGGER.info("Removed client %s", reference)
            return True

    def export_snapshot(self) -> str:
        """Serialise the current state as a JSON document."""

        with self._lock:
            return serialize_snapshot(self._snapshot)

    def import_snapshot(self, raw: Union[str, bytes]) -> LedgerSnapshot:
        """Replace all state with a JSON document; bad documents change nothing."""

        imported = deserialize_snapshot(raw)
        self.replace_snapshot(imported)
        return imported.copy()

    def replace_snapshot(self, snapshot: LedgerSnapshot) -> None:
        with self._lock:
            self._snapshot = snapshot
            with self._mutation("replace_snapshot"):
                LOGGER.info(
                    "Snapshot replaced (%s bikes, %s rentals)",
                    len(snapshot.bikes),
                    len(snapshot.rentals),
                )

    def replace_collections(self, collections: Dict[str, list]) -> None:
        """Overwrite the named collections in one commit (last write wins)."""

        unknown = set(collections) - set(COLLECTION_NAMES)
        if unknown:
            raise ValidationError(f"Unknown collections: {', '.join(sorted(unknown))}")
        if not collections:
            return
        with self._mutation("replace_collections") as state:
            for name, records in collections.items():
                setattr(state, name, list(records))
            LOGGER.info("Replaced collections: %s", ", ".join(sorted(collections)))
