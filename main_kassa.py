"""Mini README: Entry point CLI for the Bike Kassa cash desk.

This script exposes a Typer CLI that starts the FastAPI service and runs
the everyday maintenance jobs against the stored ledger: printing the
summary, exporting or importing the JSON snapshot and writing CSV
reports. Settings come from ``BIKEKASSA_*`` environment variables.
"""

from __future__ import annotations

from pathlib import Path

import typer
import uvicorn

from bikekassa.configuration import get_settings
from bikekassa.ledger import FormatError
from bikekassa.logging_utils import configure_root_logger
from bikekassa.reports import ReportExporter
from bikekassa.storage import load_engine

cli = typer.Typer(help="Run and maintain the Bike Kassa rental cash desk.")


@cli.command()
def run(
    host: str = typer.Option(None, help="Host interface to bind."),
    port: int = typer.Option(None, help="Port to listen on."),
    production: bool = typer.Option(
        False, help="Use production server settings (disable auto-reload)."
    ),
) -> None:
    """Start the FastAPI application using uvicorn."""

    settings = get_settings()
    effective_host = host or settings.interface_host
    effective_port = port or settings.interface_port
    configure_root_logger(settings.log_level)

    # Browsers cannot open the 0.0.0.0 sentinel; point them at localhost.
    browser_host = "127.0.0.1" if effective_host in {"0.0.0.0", "::"} else effective_host
    typer.echo(
        "Starting Bike Kassa on "
        f"{effective_host}:{effective_port}.\n"
        "API docs at "
        f"http://{browser_host}:{effective_port}/docs"
    )
    uvicorn.run(
        "bikekassa.interface.web_app:create_application",
        host=effective_host,
        port=effective_port,
        factory=True,
        reload=not production,
    )


@cli.command()
def summary() -> None:
    """Print the current totals and balance."""

    settings = get_settings()
    aggregates = load_engine(settings, read_only=True).aggregates()
    for name, value in aggregates.as_dict().items():
        typer.echo(f"{name}: {value}")


@cli.command("export")
def export_snapshot(destination: Path = typer.Argument(..., help="JSON file to write.")) -> None:
    """Write the full ledger snapshot to a JSON file."""

    engine = load_engine(get_settings(), read_only=True)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(engine.export_snapshot(), encoding="utf-8")
    typer.echo(f"Exported snapshot to {destination}")


@cli.command("import")
def import_snapshot(source: Path = typer.Argument(..., help="JSON file to load.")) -> None:
    """Replace the stored ledger with a JSON snapshot."""

    engine = load_engine(get_settings())
    try:
        imported = engine.import_snapshot(source.read_text(encoding="utf-8"))
    except (OSError, FormatError) as error:
        typer.echo(f"Import failed: {error}", err=True)
        raise typer.Exit(code=1) from error
    typer.echo(f"Imported {len(imported.bikes)} bikes and {len(imported.rentals)} rentals")


@cli.command("export-csv")
def export_csv(
    output_directory: Path = typer.Argument(..., help="Directory for the CSV reports."),
) -> None:
    """Write rentals.csv and summary.csv."""

    engine = load_engine(get_settings(), read_only=True)
    for path in ReportExporter().export_all(engine.snapshot(), output_directory=output_directory):
        typer.echo(f"Wrote {path}")


if __name__ == "__main__":
    cli()
