# ruff: noqa: I001
"""CLI for the ``better_budget`` package.

A Typer-based console interface over :mod:`better_budget.api`. Environment
variables (``DATABASE_URL``, ``BETTER_BUDGET_*``) are loaded from a local
``.env`` using ``python-dotenv`` before any command runs. Business logic lives
in ``better_budget.api`` and related modules; commands only parse options,
call the API and render results.
"""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from typer.models import OptionInfo

from .config import Settings
from .errors import BetterBudgetError
from .logging_setup import configure_logging

console = Console()
err_console = Console(stderr=True)


def _fail(message: str) -> typer.Exit:
    err_console.print(f"[red]Error:[/red] {message}")
    return typer.Exit(1)


def _load_records(path: Path) -> list[dict[str, Any]]:
    """Read a JSON array of transaction objects from ``path``."""

    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON array of transactions")
    return data


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Mock bank sync for BetterBudget: browse the mock bank catalog, generate "
        "deterministic transactions and import them idempotently."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
ACCOUNT_ID_OPTION: OptionInfo = typer.Option(
    ...,
    "--account-id",
    help="Catalog account ID (see `better-budget accounts`).",
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None,
    "--database-url",
    help="Override DATABASE_URL (falls back to env var; in-memory when unset).",
)


@app.command("banks")
def banks_cmd() -> None:
    """List the banks available for connection."""

    from .api import list_banks

    table = Table(title="Mock banks")
    table.add_column("ID", no_wrap=True)
    table.add_column("Name")
    table.add_column("BIC")
    table.add_column("Status")
    for bank in list_banks():
        table.add_row(bank.id, bank.name, bank.bic, bank.status)
    console.print(table)


@app.command("accounts")
def accounts_cmd(
    bank_id: str = typer.Option(..., "--bank-id", help="Bank ID from `better-budget banks`."),
) -> None:
    """List the mock accounts of one bank."""

    from .api import list_accounts

    try:
        accounts = list_accounts(bank_id)
    except BetterBudgetError as e:
        raise _fail(str(e)) from e

    table = Table(title=f"Accounts at {bank_id}")
    table.add_column("Account ID", no_wrap=True)
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Balance", justify="right")
    for acc in accounts:
        table.add_row(acc.account_id, acc.name, acc.account_type, f"{acc.balance} {acc.currency}")
    console.print(table)


@app.command("generate")
def generate_cmd(
    account_id: Annotated[str, ACCOUNT_ID_OPTION],
    *,
    from_date: str | None = typer.Option(None, help="Inclusive start (YYYY-MM-DD)."),
    to_date: str | None = typer.Option(None, help="Inclusive end (YYYY-MM-DD); default today."),
    seed: str | None = typer.Option(None, help="Seed; defaults to the account ID."),
    count: int | None = typer.Option(None, min=0, help="Number of transactions; default 1/day."),
) -> None:
    """Print the deterministic mock transactions for an account as JSON."""

    from .api import mock_transactions

    try:
        generated = mock_transactions(account_id, from_date, to_date, seed=seed, count=count)
    except ValueError as e:
        raise _fail(str(e)) from e
    typer.echo(json.dumps(generated.to_json_list(), indent=2))


@app.command("import")
def import_cmd(
    account_id: Annotated[str, ACCOUNT_ID_OPTION],
    *,
    records_file: Path | None = typer.Option(
        None,
        "--records-file",
        dir_okay=False,
        help="JSON array of transactions to import (default: pull from the mock feed).",
    ),
    from_date: str | None = typer.Option(None, help="Mock feed start (YYYY-MM-DD)."),
    to_date: str | None = typer.Option(None, help="Mock feed end (YYYY-MM-DD)."),
    database_url: str | None = DATABASE_URL_OPTION,
    create_schema: bool = typer.Option(
        False, help="Create the tables first (local SQLite/dev databases)."
    ),
) -> None:
    """Import transactions for an account and print the result as JSON."""

    from .api import import_transactions, open_store

    settings = Settings.from_env()
    url = database_url or settings.database_url

    records = None
    if records_file is not None:
        try:
            records = _load_records(records_file)
        except (OSError, ValueError) as e:
            raise _fail(f"cannot read {records_file}: {e}") from e

    if create_schema and url:
        from .persistence import create_schema as _create_schema

        _create_schema(database_url=url)

    try:
        result = import_transactions(
            account_id,
            records,
            store=open_store(url),
            from_date=from_date,
            to_date=to_date,
            concurrency=settings.import_concurrency,
        )
    except BetterBudgetError as e:
        raise _fail(str(e)) from e

    typer.echo(json.dumps(result.to_json_dict(), indent=2))
    if result.storage_unavailable:
        raise typer.Exit(2)


@app.command("serve")
def serve_cmd(
    host: str | None = typer.Option(None, help="Bind host (default BETTER_BUDGET_HOST)."),
    port: int | None = typer.Option(None, help="Bind port (default BETTER_BUDGET_PORT)."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Run the HTTP API with uvicorn."""

    import uvicorn

    from .server import create_app

    settings = Settings.from_env()
    if database_url:
        settings = replace(settings, database_url=database_url)
    uvicorn.run(
        create_app(settings=settings),
        host=host or settings.host,
        port=port or settings.port,
    )


@app.callback()
def _root() -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures package logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    # Central logging setup so child loggers inherit configuration
    configure_logging()


if __name__ == "__main__":  # pragma: no cover - exercised via console script
    # Running as a module: `python -m better_budget.cli`
    app()
