"""Mini README: FastAPI-powered cash desk for Bike Kassa.

Structure:
    * create_application - application factory wiring routes to an engine.
    * ledger error handlers - map ledger errors onto HTTP status codes.

Routes accept form fields (as the shop's tablets post them) and answer
with JSON. Validation and format errors become 400 responses, unknown ids
404. The engine is created from settings unless the caller passes one,
which is how the tests run the app against an in-memory ledger.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from .. import __version__
from ..ledger import (
    FormatError,
    LedgerEngine,
    NotFoundError,
    Rental,
    ValidationError,
)
from ..logging_utils import configure_root_logger, get_logger
from ..reports import filter_rentals, rentals_to_csv, summary_to_csv

LOGGER = get_logger(__name__)

MANUAL_ENTRY_KINDS = ("deposits", "sales", "charges", "expenses")
LISTABLE_ENTRY_KINDS = MANUAL_ENTRY_KINDS + ("payments",)


def _rental_payload(rental: Rental) -> Dict[str, Any]:
    payload = rental.as_dict()
    payload["outstanding"] = rental.outstanding
    return payload


def create_application(engine: Optional[LedgerEngine] = None) -> FastAPI:
    """Create the FastAPI application with routes bound to ``engine``."""

    if engine is None:
        from ..configuration import get_settings
        from ..storage import load_engine

        settings = get_settings()
        configure_root_logger(settings.log_level)
        engine = load_engine(settings)

    app = FastAPI(title="Bike Kassa", version=__version__)
    app.state.engine = engine

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, error: ValidationError) -> JSONResponse:
        LOGGER.info("Rejected %s %s: %s", request.method, request.url.path, error)
        return JSONResponse({"detail": str(error)}, status_code=400)

    @app.exception_handler(FormatError)
    async def _format_error(request: Request, error: FormatError) -> JSONResponse:
        LOGGER.warning("Rejected document on %s: %s", request.url.path, error)
        return JSONResponse({"detail": str(error)}, status_code=400)

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, error: NotFoundError) -> JSONResponse:
        return JSONResponse({"detail": str(error)}, status_code=404)

    @app.get("/summary")
    async def summary() -> JSONResponse:
        """Return dashboard totals, recomputed on every call."""

        aggregates = engine.aggregates()
        LOGGER.debug(
            "Summary -> balance: %s deposits: %s active: %s",
            aggregates.balance,
            aggregates.deposits_total,
            aggregates.active_rentals,
        )
        return JSONResponse(aggregates.as_dict())

    @app.get("/bikes")
    async def list_bikes(status: Optional[str] = None) -> JSONResponse:
        try:
            bikes = engine.list_bikes(status)
        except ValueError as error:
            raise HTTPException(status_code=400, detail=str(error)) from error
        return JSONResponse({"bikes": [bike.as_dict() for bike in bikes]})

    @app.post("/bikes")
    async def add_bike(
        number: Optional[str] = Form(None),
        status: str = Form("free"),
        price_per_day: Optional[str] = Form(None),
    ) -> JSONResponse:
        bike = engine.add_bike(number=number, status=status, price_per_day=price_per_day)
        return JSONResponse(bike.as_dict(), status_code=201)

    @app.post("/bikes/{bike_id}")
    async def edit_bike(
        bike_id: str,
        number: Optional[str] = Form(None),
        status: Optional[str] = Form(None),
        price_per_day: Optional[str] = Form(None),
    ) -> JSONResponse:
        bike = engine.edit_bike(bike_id, number=number, status=status, price_per_day=price_per_day)
        if bike is None:
            raise HTTPException(status_code=404, detail=f"Bike {bike_id} not found")
        return JSONResponse(bike.as_dict())

    @app.delete("/bikes/{bike_id}")
    async def remove_bike(bike_id: str) -> JSONResponse:
        if not engine.remove_bike(bike_id):
            raise HTTPException(status_code=404, detail=f"Bike {bike_id} not found")
        return JSONResponse({"removed": bike_id})

    @app.get("/bikes/{bike_id}/history")
    async def bike_history(bike_id: str) -> JSONResponse:
        bike = engine.get_bike(bike_id)
        history = engine.rentals_for_bike(bike.id)
        return JSONResponse(
            {"bike": bike.as_dict(), "rentals": [_rental_payload(rental) for rental in history]}
        )

    @app.get("/rentals")
    async def list_rentals(status: Optional[str] = None, query: Optional[str] = None) -> JSONResponse:
        try:
            rentals = filter_rentals(engine.list_rentals(), status, query)
        except ValueError as error:
            raise HTTPException(status_code=400, detail=str(error)) from error
        LOGGER.debug("Returning %s rentals (status=%s query=%s)", len(rentals), status, query)
        return JSONResponse({"rentals": [_rental_payload(rental) for rental in rentals]})

    @app.get("/rentals/{rental_id}")
    async def rental_detail(rental_id: str) -> JSONResponse:
        rental = engine.get_rental(rental_id)
        deposit = engine.deposit_for_rental(rental.id)
        payload = _rental_payload(rental)
        payload["linkedDeposit"] = deposit.as_dict() if deposit else None
        return JSONResponse(payload)

    @app.post("/rentals")
    async def start_rental(
        bike_id: Optional[str] = Form(None),
        renter_name: Optional[str] = Form(None),
        renter_phone: Optional[str] = Form(None),
        start_date: Optional[str] = Form(None),
        accrued: str = Form("0"),
        deposit: str = Form("0"),
        notes: str = Form(""),
    ) -> JSONResponse:
        rental = engine.start_rental(
            bike_id=bike_id,
            renter_name=renter_name,
            renter_phone=renter_phone,
            start_date=start_date,
            accrued=accrued,
            deposit=deposit,
            notes=notes,
        )
        return JSONResponse(_rental_payload(rental), status_code=201)

    @app.post("/rentals/{rental_id}/payments")
    async def apply_payment(rental_id: str, amount: str = Form(...)) -> JSONResponse:
        payment = engine.apply_payment(rental_id, amount)
        rental = engine.get_rental(rental_id)
        return JSONResponse(
            {"payment": payment.as_dict(), "rental": _rental_payload(rental)}, status_code=201
        )

    @app.post("/rentals/{rental_id}/finish")
    async def finish_rental(rental_id: str, extra_charge: str = Form("0")) -> JSONResponse:
        rental = engine.finish_rental(rental_id, extra_charge)
        return JSONResponse(_rental_payload(rental))

    @app.post("/rentals/{rental_id}/finalize")
    async def finalize_rental(rental_id: str, withhold: str = Form("0")) -> JSONResponse:
        rental = engine.finalize_rental_with_deposit_withhold(rental_id, withhold)
        return JSONResponse(_rental_payload(rental))

    @app.post("/rentals/{rental_id}/overdue")
    async def mark_overdue(rental_id: str) -> JSONResponse:
        rental = engine.mark_overdue(rental_id)
        return JSONResponse(_rental_payload(rental))

    @app.get("/ledger/{kind}")
    async def list_entries(kind: str) -> JSONResponse:
        if kind not in LISTABLE_ENTRY_KINDS:
            raise HTTPException(status_code=404, detail=f"Unknown ledger collection '{kind}'")
        records: List[Any] = (
            engine.list_deposits() if kind == "deposits" else engine.list_entries(kind)
        )
        return JSONResponse({kind: [record.as_dict() for record in records]})

    @app.post("/ledger/{kind}")
    async def add_entry(
        kind: str,
        amount: str = Form(...),
        title: Optional[str] = Form(None),
        note: Optional[str] = Form(None),
        date: Optional[str] = Form(None),
        rental_id: Optional[str] = Form(None),
    ) -> JSONResponse:
        """Append a deposit, sale, charge or expense."""

        adders = {
            "deposits": engine.add_deposit,
            "sales": engine.add_sale,
            "charges": engine.add_charge,
            "expenses": engine.add_expense,
        }
        if kind not in adders:
            raise HTTPException(status_code=404, detail=f"Unknown ledger collection '{kind}'")
        record = adders[kind](amount, title=title, note=note, date=date, rental_id=rental_id)
        return JSONResponse(record.as_dict(), status_code=201)

    @app.delete("/deposits/{deposit_id}")
    async def remove_deposit(deposit_id: str) -> JSONResponse:
        if not engine.remove_deposit(deposit_id):
            raise HTTPException(status_code=404, detail=f"Deposit {deposit_id} not found")
        return JSONResponse({"removed": deposit_id})

    @app.get("/clients")
    async def list_clients() -> JSONResponse:
        return JSONResponse({"clients": [client.as_dict() for client in engine.list_clients()]})

    @app.post("/clients")
    async def add_client(name: str = Form(""), phone: str = Form("")) -> JSONResponse:
        client = engine.add_client(name, phone)
        return JSONResponse(client.as_dict(), status_code=201)

    @app.delete("/clients/{client_id}")
    async def remove_client(client_id: str) -> JSONResponse:
        if not engine.remove_client(client_id):
            raise HTTPException(status_code=404, detail=f"Client {client_id} not found")
        return JSONResponse({"removed": client_id})

    @app.get("/export")
    async def export_snapshot() -> Response:
        return Response(
            engine.export_snapshot(),
            media_type="application/json",
            headers={"Content-Disposition": 'attachment; filename="crm_bike_state_v4.json"'},
        )

    @app.post("/import")
    async def import_snapshot(document: UploadFile = File(...)) -> JSONResponse:
        raw = await document.read()
        snapshot = engine.import_snapshot(raw)
        LOGGER.info("Imported %s (%s bytes)", document.filename, len(raw))
        return JSONResponse({"bikes": len(snapshot.bikes), "rentals": len(snapshot.rentals)})

    @app.get("/export/rentals.csv")
    async def export_rentals_csv() -> PlainTextResponse:
        return PlainTextResponse(rentals_to_csv(engine.list_rentals()), media_type="text/csv")

    @app.get("/export/summary.csv")
    async def export_summary_csv() -> PlainTextResponse:
        return PlainTextResponse(summary_to_csv(engine.snapshot()), media_type="text/csv")

    return app
