"""Mini README: Error taxonomy raised by the ledger engine.

Structure:
    * LedgerError - base class for every rejected ledger operation.
    * ValidationError - a required input is missing or not acceptable.
    * NotFoundError - a referenced bike, rental, deposit or client is unknown.
    * FormatError - an imported snapshot document is malformed.

Each error aborts its operation before any collection is touched. The HTTP
interface maps validation and format errors to 400 and lookups to 404.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for ledger failures surfaced to callers."""


class ValidationError(LedgerError):
    """Raised when an operation receives incomplete or invalid input."""


class NotFoundError(LedgerError, KeyError):
    """Raised when a referenced identifier does not resolve."""

    def __str__(self) -> str:
        # KeyError quotes its message; keep plain text for API responses.
        return str(self.args[0]) if self.args else ""


class FormatError(LedgerError, ValueError):
    """Raised when a snapshot document lacks the required structure."""
