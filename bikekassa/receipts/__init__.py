"""Mini README: Receipt printers invoked after a payment is recorded.

The ledger calls ``print_receipt`` once a payment commits. Printers are
optional: the engine works without one, and a failing printer is logged
without affecting the payment.
"""

from .printers import LoggingReceiptPrinter, ReceiptPrinter, TextFileReceiptPrinter, render_receipt

__all__ = [
    "LoggingReceiptPrinter",
    "ReceiptPrinter",
    "TextFileReceiptPrinter",
    "render_receipt",
]
