"""Mini README: Core package initializer for Bike Kassa.

Bike Kassa is a small cash-desk tracker for a bicycle rental shop. The
``ledger`` package holds the rental and money state machine, ``storage``
persists snapshots locally and pulls from a remote backend, ``reports``
produces CSV exports and ``interface`` serves the engine over HTTP. Only
the logger factory is re-exported here to keep imports cheap.
"""

from .logging_utils import get_logger

__all__ = ["get_logger"]

__version__ = "0.4.0"
