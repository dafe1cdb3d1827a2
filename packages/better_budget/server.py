"""FastAPI application exposing the mock bank and the import trigger.

Every response body is a JSON envelope:

- success: ``{"success": true, "data": ..., "_meta": {...}}``
- failure: ``{"success": false, "error": {"code": ..., "message": ...}}``

Status codes: precondition failures map to 4xx (400 invalid range, 404
unknown account/bank/transaction, 422 malformed request body); an import that
produced a well-formed result is always 200, except 503 when every attempted
record failed inside the store.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api import default_window, import_transactions, mock_transactions, open_store
from .catalog import BankCatalog, default_catalog
from .config import Settings
from .errors import (
    BetterBudgetError,
    InvalidRangeError,
    StorageError,
    TransactionNotFoundError,
    UnknownAccountError,
    UnknownBankError,
)
from .logging_setup import configure_logging, get_logger
from .storage import TransactionStore

logger = get_logger("better_budget.server")

_STATUS_BY_ERROR: tuple[tuple[type[BetterBudgetError], int], ...] = (
    (InvalidRangeError, 400),
    (UnknownAccountError, 404),
    (UnknownBankError, 404),
    (TransactionNotFoundError, 404),
    (StorageError, 503),
)


class ImportRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    account_id: str
    records: list[dict[str, Any]] | None = None
    from_date: str | None = None
    to_date: str | None = None


class UserEdit(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    category_override: str | None = None
    note: str | None = None
    verified: bool | None = None


def envelope(data: Any, **meta: Any) -> dict[str, Any]:
    return {"success": True, "data": data, "_meta": meta}


def error_body(code: str, message: str, **extra: Any) -> dict[str, Any]:
    return {"success": False, "error": {"code": code, "message": message, **extra}}


def _status_for(exc: BetterBudgetError) -> int:
    for cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return status
    return 500


def create_app(
    *,
    settings: Settings | None = None,
    store: TransactionStore | None = None,
    catalog: BankCatalog | None = None,
) -> FastAPI:
    """Build the HTTP app.

    ``store`` defaults to :func:`~better_budget.api.open_store` on
    ``settings.database_url`` (in-memory when unset); ``catalog`` defaults to
    the static mock bank catalog.
    """

    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(title="BetterBudget bank sync", version="0.1.0")
    app.state.settings = settings
    app.state.store = store if store is not None else open_store(settings.database_url)
    app.state.catalog = catalog if catalog is not None else default_catalog()

    @app.exception_handler(BetterBudgetError)
    async def _domain_error(_request: Request, exc: BetterBudgetError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            logger.error("Request failed: %s", exc)
        return JSONResponse(error_body(type(exc).__name__, str(exc)), status_code=status)

    @app.exception_handler(RequestValidationError)
    async def _shape_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        details = jsonable_encoder(exc.errors())
        return JSONResponse(
            error_body("RequestValidationError", "malformed request", details=details),
            status_code=422,
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(error_body("HTTPError", str(exc.detail)), status_code=exc.status_code)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return envelope({"status": "ok"})

    @app.get("/mock/banks")
    def mock_banks() -> dict[str, Any]:
        banks = app.state.catalog.list_banks()
        return envelope([b.model_dump(mode="json") for b in banks], source="mock", count=len(banks))

    @app.get("/mock/accounts")
    def mock_accounts(bank_id: str = Query(...)) -> dict[str, Any]:
        accounts = app.state.catalog.list_accounts(bank_id)
        return envelope(
            [a.model_dump(mode="json") for a in accounts],
            source="mock",
            bank_id=bank_id,
            count=len(accounts),
        )

    @app.get("/mock/transactions")
    def mock_transactions_route(
        account_id: str = Query(...),
        from_date: str | None = Query(None),
        to_date: str | None = Query(None),
        seed: str | None = Query(None),
        count: int | None = Query(None, ge=0),
    ) -> dict[str, Any]:
        if not app.state.catalog.is_account_valid(account_id):
            raise UnknownAccountError(account_id)
        try:
            generated = mock_transactions(account_id, from_date, to_date, seed=seed, count=count)
        except InvalidRangeError:
            raise
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        return envelope(
            generated.to_json_list(),
            source="mock",
            account_id=account_id,
            from_date=generated.from_date.isoformat(),
            to_date=generated.to_date.isoformat(),
            count=len(generated),
        )

    @app.post("/import")
    def trigger_import(body: ImportRequest) -> JSONResponse:
        result = import_transactions(
            body.account_id,
            body.records,
            store=app.state.store,
            catalog=app.state.catalog,
            from_date=body.from_date,
            to_date=body.to_date,
            concurrency=settings.import_concurrency,
        )
        meta: dict[str, Any] = {
            "account_id": body.account_id,
            "source": "request" if body.records is not None else "mock",
        }
        if body.records is None:
            start, end = default_window(body.from_date, body.to_date)
            meta.update(from_date=start.isoformat(), to_date=end.isoformat())
        status = 503 if result.storage_unavailable else 200
        payload = envelope(result.to_json_dict(), **meta)
        payload["success"] = status == 200
        return JSONResponse(payload, status_code=status)

    @app.get("/import")
    def import_status(account_id: str = Query(...)) -> dict[str, Any]:
        if not app.state.catalog.is_account_valid(account_id):
            raise UnknownAccountError(account_id)
        run = app.state.store.last_import_run(account_id)
        return envelope(
            {
                "status": "idle" if run is None else run.status,
                "last_import": run.to_json_dict() if run is not None else None,
            },
            account_id=account_id,
        )

    @app.get("/transactions")
    def list_transactions(account_id: str = Query(...)) -> dict[str, Any]:
        if not app.state.catalog.is_account_valid(account_id):
            raise UnknownAccountError(account_id)
        rows = app.state.store.list_transactions(account_id)
        balance = app.state.store.account_balance(account_id)
        return envelope(
            [r.to_json_dict() for r in rows],
            account_id=account_id,
            count=len(rows),
            balance=str(balance),
        )

    @app.patch("/transactions/{account_id}/{external_id}")
    def edit_transaction(account_id: str, external_id: str, body: UserEdit) -> dict[str, Any]:
        # Omitted fields stay as they are; an explicit null clears the field.
        edits = {name: getattr(body, name) for name in body.model_fields_set}
        row = app.state.store.set_user_fields(account_id, external_id, **edits)
        return envelope(row.to_json_dict(), account_id=account_id)

    return app


__all__ = ["ImportRequest", "UserEdit", "create_app", "envelope", "error_body"]
