"""Mini README: Receipt printer interface and built-in printers.

Structure:
    * ReceiptPrinter - abstract interface called with each committed payment.
    * LoggingReceiptPrinter - writes the receipt text to the application log.
    * TextFileReceiptPrinter - stores one ``receipt_<id>.txt`` per payment.
    * render_receipt - plain-text receipt layout shared by the printers.

Hardware printers can subclass ``ReceiptPrinter``; the engine only relies
on ``print_receipt``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from ..ledger.records import Payment, Rental
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)


def render_receipt(payment: Payment, rental: Optional[Rental] = None, *, currency: str = "som") -> str:
    """Lay out a payment as a short plain-text receipt."""

    lines = [
        f"Receipt #{payment.id}",
        f"Date: {payment.date.isoformat()}",
        f"Amount: {payment.amount} {currency}",
    ]
    if rental is not None:
        lines.extend(
            [
                f"Rental: {rental.id} (bike {rental.bike_id})",
                f"Renter: {rental.renter_name}",
                f"Paid to date: {rental.paid} {currency}",
                f"Outstanding: {rental.outstanding} {currency}",
            ]
        )
    elif payment.rental_id is not None:
        lines.append(f"Rental: {payment.rental_id}")
    return "\n".join(lines) + "\n"


class ReceiptPrinter(ABC):
    """Base interface for receipt outputs."""

    printer_name: str = "generic"

    def __init__(self, *, currency: str = "som") -> None:
        self.currency = currency

    @abstractmethod
    def print_receipt(self, payment: Payment, rental: Optional[Rental] = None) -> None:
        """Emit a receipt for a committed payment."""


class LoggingReceiptPrinter(ReceiptPrinter):
    """Send receipts to the log; the default when no directory is configured."""

    printer_name = "log"

    def print_receipt(self, payment: Payment, rental: Optional[Rental] = None) -> None:
        LOGGER.info("Receipt:\n%s", render_receipt(payment, rental, currency=self.currency))


class TextFileReceiptPrinter(ReceiptPrinter):
    """Persist each receipt as a text file."""

    printer_name = "file"

    def __init__(self, directory: Path, *, currency: str = "som") -> None:
        super().__init__(currency=currency)
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        LOGGER.debug("Receipt directory set to %s", self.directory)

    def receipt_path(self, payment: Payment) -> Path:
        return self.directory / f"receipt_{payment.id}.txt"

    def print_receipt(self, payment: Payment, rental: Optional[Rental] = None) -> None:
        destination = self.receipt_path(payment)
        destination.write_text(
            render_receipt(payment, rental, currency=self.currency), encoding="utf-8"
        )
        LOGGER.info("Receipt for payment %s written to %s", payment.id, destination)
