"""Mini README: Centralised configuration models and helpers for Bike Kassa.

Structure:
    * BikeKassaSettings - Pydantic model describing runtime configuration.
    * get_settings - cached accessor for environment-aware settings.

Usage:
    Import ``get_settings`` to locate the snapshot file, pick the receipt
    printer, decide whether the remote backend is configured and choose the
    service host and port. Values come from ``BIKEKASSA_*`` environment
    variables or a local ``.env`` file and are validated once per process.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings


class BikeKassaSettings(BaseSettings):
    """Runtime configuration for the Bike Kassa service."""

    environment: str = Field(
        "development",
        description="Environment label controlling debug toggles and logging levels.",
    )
    log_level: str = Field(
        "INFO",
        description="Root logging level applied by the CLI and the web service.",
    )
    data_directory: Path = Field(
        Path("data"),
        description="Directory holding the persisted ledger snapshot and exports.",
    )
    state_filename: str = Field(
        "crm_bike_state_v4.json",
        description="File name of the persisted snapshot inside the data directory.",
    )
    interface_host: str = Field(
        "0.0.0.0",
        description="Network interface for the HTTP service to bind to.",
    )
    interface_port: int = Field(
        8000,
        description="Default port the HTTP service exposes.",
        ge=1,
        le=65535,
    )
    default_price_per_day: int = Field(
        120,
        description="Daily price assigned to bikes added without an explicit price.",
        ge=0,
    )
    overdue_after_days: Optional[int] = Field(
        None,
        description=(
            "Mark active rentals overdue once they are older than this many days."
            " Leave unset to keep overdue marking manual."
        ),
        ge=0,
    )
    remote_url: Optional[str] = Field(
        None,
        description="Base URL of the PostgREST/Supabase backend used for startup sync.",
    )
    remote_api_key: Optional[str] = Field(
        None,
        description="Anonymous API key for the remote backend.",
    )
    receipt_directory: Optional[Path] = Field(
        None,
        description="Write text receipts here; receipts are only logged when unset.",
    )
    currency_label: str = Field(
        "som",
        description="Currency suffix used in receipts and reports.",
    )

    class Config:
        env_prefix = "BIKEKASSA_"
        env_file = ".env"
        case_sensitive = False

    @validator("data_directory", pre=True)
    def _expand_path(cls, value: Optional[str | Path]) -> Path:
        """Ensure configured paths expand user directories and exist."""

        path = Path(value).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def state_path(self) -> Path:
        """Full path of the persisted snapshot."""

        return Path(self.data_directory) / self.state_filename

    @property
    def remote_configured(self) -> bool:
        """True when both the backend URL and key are present."""

        return bool(self.remote_url and self.remote_api_key)


@lru_cache()
def get_settings() -> BikeKassaSettings:
    """Return cached settings, ensuring consistent configuration across modules."""

    return BikeKassaSettings()
