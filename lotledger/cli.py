"""Typer CLI interface for Lot Ledger."""

import json
import logging
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from lotledger.config import LedgerConfig, default_db_path
from lotledger.db.repository import LotRepository
from lotledger.db.schema import create_schema
from lotledger.engines import gains
from lotledger.engines.corporate_actions import describe_ratio, to_ratio
from lotledger.exceptions import LedgerError
from lotledger.ledger.processor import LedgerProcessor
from lotledger.models.enums import CostBasisMethod
from lotledger.models.lot import Lot
from lotledger.models.results import AuditEntry, BatchReport, SymbolReport
from lotledger.models.transaction import SnapshotPosition, Transaction

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="lotledger",
    help="Lot Ledger: tax-lot cost basis tracking for brokerage accounts.",
    no_args_is_help=True,
)

DB_HELP = "Path to the SQLite database file (default: $LOTLEDGER_DB or ~/.lotledger/lotledger.db)"


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log engine activity to stderr"),
) -> None:
    """Lot Ledger: tax-lot cost basis tracking for brokerage accounts."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def _open_repository(db: Path | None, must_exist: bool = True) -> LotRepository:
    """Open (and migrate) the database. Exits if it is missing and must exist."""
    path = db or default_db_path()
    if must_exist and not path.exists():
        typer.echo("Error: No database found. Run `lotledger init` first.", err=True)
        raise typer.Exit(1)
    path.parent.mkdir(parents=True, exist_ok=True)
    logger.debug("Opening database %s", path)
    return LotRepository(create_schema(path))


def _load_json_list(file: Path) -> list:
    if not file.exists():
        typer.echo(f"Error: File not found: {file}", err=True)
        raise typer.Exit(1)
    try:
        data = json.loads(file.read_text())
    except json.JSONDecodeError as exc:
        typer.echo(f"Error: {file.name} is not valid JSON: {exc}", err=True)
        raise typer.Exit(1)
    if not isinstance(data, list):
        typer.echo(f"Error: {file.name} must contain a JSON list", err=True)
        raise typer.Exit(1)
    return data


def _parse_decimal(value: str, name: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        typer.echo(f"Error: {name} must be a number, got {value!r}", err=True)
        raise typer.Exit(1)


def _fmt(value: Decimal, places: int = 2) -> str:
    return f"{value:,.{places}f}"


def _fmt_qty(value: Decimal) -> str:
    text = f"{value:f}"
    return text.rstrip("0").rstrip(".") if "." in text else text


def _print_batch_report(console: Console, report: BatchReport, title: str) -> None:
    tbl = Table(title=title, show_header=True)
    tbl.add_column("Symbol", style="cyan")
    tbl.add_column("Transactions", justify="right")
    tbl.add_column("Lots created", justify="right")
    tbl.add_column("Sales", justify="right")
    tbl.add_column("Splits", justify="right")
    tbl.add_column("Status")
    for symbol_report in report.symbols:
        if symbol_report.error:
            status = f"[red]{symbol_report.error_type}: {symbol_report.error}[/red]"
        elif symbol_report.skipped:
            status = f"[dim]skipped ({symbol_report.skip_reason})[/dim]"
        elif symbol_report.warnings:
            status = f"[yellow]{len(symbol_report.warnings)} warning(s)[/yellow]"
        else:
            status = "[green]ok[/green]"
        tbl.add_row(
            symbol_report.symbol,
            str(symbol_report.transactions_processed),
            str(symbol_report.lots_created),
            str(symbol_report.sales_processed),
            str(symbol_report.corporate_actions_applied),
            status,
        )
    console.print(tbl)


def _load_designations(specific_lots: Path | None) -> dict[str, list[str]]:
    if specific_lots is None:
        return {}
    if not specific_lots.exists():
        typer.echo(f"Error: File not found: {specific_lots}", err=True)
        raise typer.Exit(1)
    return json.loads(specific_lots.read_text())


def _rebuild_symbol(
    repo: LotRepository,
    account: str,
    symbol: str,
    method: CostBasisMethod,
    designations: dict[str, list[str]],
) -> tuple[SymbolReport, list[Lot]]:
    """Replay one symbol's stored history and store the lots if it succeeds.

    Must run inside ``repo.unit_of_work(account, symbol)`` so that the reads
    and the write see the same database state.
    """
    processor = LedgerProcessor(
        repo.load_store(account, symbol), LedgerConfig(cost_basis_method=method)
    )
    report = processor.process_account(
        account, repo.get_transactions(account, symbol), method, designations
    )
    symbol_report = report.for_symbol(symbol) or SymbolReport(account=account, symbol=symbol)
    lots = processor.store.lots_for(account, symbol)
    if symbol_report.ok:
        repo.replace_lots(account, symbol, lots)
    return symbol_report, lots


@app.command()
def init(
    db: Path | None = typer.Option(None, "--db", help=DB_HELP),
) -> None:
    """Create the database if it does not exist."""
    path = db or default_db_path()
    repo = _open_repository(path, must_exist=False)
    repo.conn.close()
    typer.echo(f"Initialized database at {path}")


@app.command(name="import-transactions")
def import_transactions(
    file: Path = typer.Argument(..., help="JSON file holding a list of transactions"),
    db: Path | None = typer.Option(None, "--db", help=DB_HELP),
) -> None:
    """Import transactions. Ids already in the database are ignored."""
    records = _load_json_list(file)
    try:
        transactions = [Transaction.model_validate(record) for record in records]
    except ValidationError as exc:
        typer.echo(f"Error: invalid transaction in {file.name}:\n{exc}", err=True)
        raise typer.Exit(1)

    repo = _open_repository(db, must_exist=False)
    inserted = repo.save_transactions(transactions)
    repo.conn.close()

    typer.echo(f"Imported {inserted} new transaction(s) from {file.name}")
    if inserted < len(transactions):
        typer.echo(f"  {len(transactions) - inserted} already present, skipped")


@app.command()
def process(
    account: str = typer.Option(..., "--account", "-a", help="Account to process"),
    method: CostBasisMethod = typer.Option(
        CostBasisMethod.FIFO, "--method", "-m", case_sensitive=False, help="Cost basis method"
    ),
    specific_lots: Path | None = typer.Option(
        None,
        "--specific-lots",
        help="JSON object mapping sale transaction id to an ordered list of lot ids",
    ),
    db: Path | None = typer.Option(None, "--db", help=DB_HELP),
) -> None:
    """Rebuild every symbol's lots for an account from its transactions."""
    designations = _load_designations(specific_lots)

    repo = _open_repository(db)
    symbols = sorted({t.symbol for t in repo.get_transactions(account) if t.symbol})
    if not symbols:
        typer.echo(f"No transactions found for account {account}.")
        repo.conn.close()
        raise typer.Exit(0)

    report = BatchReport(account=account, method=method)
    for symbol in symbols:
        # Each symbol re-reads its history and lots under its own lock.
        with repo.unit_of_work(account, symbol):
            symbol_report, _ = _rebuild_symbol(repo, account, symbol, method, designations)
        report.symbols.append(symbol_report)
    repo.save_audit_entry(
        AuditEntry(
            timestamp=datetime.now(),
            engine="LedgerProcessor",
            operation="process_account",
            inputs={
                "account": account,
                "method": method.value,
                "transactions": sum(s.transactions_processed for s in report.symbols),
            },
            output={
                "symbols": report.processed_symbols,
                "lots_created": report.created_lots,
                "errors": report.errors,
            },
        )
    )
    repo.conn.close()

    console = Console()
    _print_batch_report(console, report, f"{account} ({method.value})")
    for warning in report.warnings:
        typer.echo(f"Warning: {warning.message}", err=True)

    if report.errors:
        raise typer.Exit(1)


@app.command()
def bootstrap(
    file: Path = typer.Argument(..., help="JSON file holding a list of snapshot positions"),
    account: str = typer.Option(..., "--account", "-a", help="Account the snapshot belongs to"),
    snapshot_date: datetime | None = typer.Option(
        None, "--date", formats=["%Y-%m-%d"], help="Snapshot date for positions that omit one"
    ),
    db: Path | None = typer.Option(None, "--db", help=DB_HELP),
) -> None:
    """Create opening lots from a portfolio snapshot for symbols with no history."""
    records = _load_json_list(file)
    as_of = snapshot_date.date() if snapshot_date else None
    try:
        positions = [
            SnapshotPosition.model_validate(
                {"snapshot_date": as_of, **record} if as_of else record
            )
            for record in records
        ]
    except ValidationError as exc:
        typer.echo(f"Error: invalid position in {file.name}:\n{exc}", err=True)
        raise typer.Exit(1)

    by_symbol: dict[str, list[SnapshotPosition]] = defaultdict(list)
    for position in positions:
        by_symbol[position.symbol].append(position)

    repo = _open_repository(db, must_exist=False)
    report = BatchReport(account=account, method=LedgerConfig().cost_basis_method)
    for symbol in sorted(by_symbol):
        with repo.unit_of_work(account, symbol):
            processor = LedgerProcessor(repo.load_store(account, symbol))
            symbol_report = processor.bootstrap_from_snapshot(
                account, by_symbol[symbol], as_of, repo.get_transactions(account, symbol)
            ).symbols[0]
            if symbol_report.lots_created:
                repo.replace_lots(account, symbol, processor.store.lots_for(account, symbol))
        report.symbols.append(symbol_report)
    repo.conn.close()

    _print_batch_report(Console(), report, f"{account} snapshot")
    if report.errors:
        raise typer.Exit(1)


@app.command()
def lots(
    account: str = typer.Option(..., "--account", "-a", help="Account to list"),
    symbol: str | None = typer.Option(None, "--symbol", "-s", help="Only this symbol"),
    db: Path | None = typer.Option(None, "--db", help=DB_HELP),
) -> None:
    """List lots with their remaining quantity and cost basis."""
    repo = _open_repository(db)
    stored = repo.get_lots(account, symbol)
    repo.conn.close()

    if not stored:
        typer.echo("No lots found.")
        raise typer.Exit(0)

    tbl = Table(title=f"Lots for {account}", show_header=True)
    tbl.add_column("Lot", style="cyan")
    tbl.add_column("Symbol")
    tbl.add_column("Acquired")
    tbl.add_column("Original", justify="right")
    tbl.add_column("Remaining", justify="right")
    tbl.add_column("Cost basis", justify="right")
    tbl.add_column("Per share", justify="right")
    tbl.add_column("Status")
    for lot in stored:
        lot_id = f"{lot.id} [yellow]*[/yellow]" if lot.low_confidence else lot.id
        tbl.add_row(
            lot_id,
            lot.symbol,
            lot.acquisition_date.isoformat(),
            _fmt_qty(lot.original_quantity),
            _fmt_qty(lot.remaining_quantity),
            _fmt(lot.cost_basis),
            _fmt(lot.cost_per_share, 4),
            lot.status.value,
        )
    console = Console()
    console.print(tbl)
    if any(lot.low_confidence for lot in stored):
        console.print("[dim]* bootstrapped from a snapshot; cost basis may be incomplete[/dim]")


@app.command()
def split(
    account: str = typer.Option(..., "--account", "-a", help="Account holding the symbol"),
    symbol: str = typer.Option(..., "--symbol", "-s", help="Symbol that split"),
    ratio: str = typer.Option(..., "--ratio", "-r", help="New shares per old share, e.g. 2 or 0.5"),
    effective_date: datetime = typer.Option(..., "--date", formats=["%Y-%m-%d"], help="Effective date"),
    method: CostBasisMethod = typer.Option(
        CostBasisMethod.FIFO,
        "--method",
        "-m",
        case_sensitive=False,
        help="Cost basis method used to replay sales (match the one given to process)",
    ),
    specific_lots: Path | None = typer.Option(
        None,
        "--specific-lots",
        help="JSON object mapping sale transaction id to an ordered list of lot ids",
    ),
    db: Path | None = typer.Option(None, "--db", help=DB_HELP),
) -> None:
    """Record a split or reverse split and rebuild the symbol's lots from history.

    The split is replayed in date order with the symbol's sales, so a split
    dated before existing sales adjusts only the shares held at that date.
    """
    on = effective_date.date()
    try:
        value = to_ratio(ratio)
    except LedgerError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)
    if value == 1:
        typer.echo("Ratio is 1; nothing to adjust.")
        raise typer.Exit(0)
    designations = _load_designations(specific_lots)

    transaction = Transaction(
        id=f"split-{account}-{symbol}-{on.isoformat()}-{value.normalize():f}",
        account=account,
        symbol=symbol,
        transaction_date=on,
        action="Stock Split" if value > 1 else "Reverse Split",
        ratio=value,
        description=describe_ratio(value),
    )
    repo = _open_repository(db)
    try:
        with repo.unit_of_work(account, symbol):
            if not repo.save_transaction(transaction):
                typer.echo(
                    f"Error: a {describe_ratio(value)} of {symbol} on {on} is already recorded",
                    err=True,
                )
                raise typer.Exit(1)
            symbol_report, rebuilt = _rebuild_symbol(repo, account, symbol, method, designations)
            if not symbol_report.ok:
                typer.echo(
                    f"Error: {symbol_report.error_type}: {symbol_report.error}; split not recorded",
                    err=True,
                )
                raise typer.Exit(1)
    finally:
        repo.conn.close()

    adjusted = [lot for lot in rebuilt if lot.acquisition_date <= on]
    typer.echo(f"Applied {describe_ratio(value)} to {len(adjusted)} lot(s) of {symbol}")
    if len(rebuilt) > len(adjusted):
        typer.echo(f"  {len(rebuilt) - len(adjusted)} lot(s) acquired after {on} left unchanged")
    for warning in symbol_report.warnings:
        typer.echo(f"Warning: {warning.message}", err=True)


@app.command(name="gains")
def gains_cmd(
    account: str = typer.Option(..., "--account", "-a", help="Account holding the symbol"),
    symbol: str = typer.Option(..., "--symbol", "-s", help="Symbol to report"),
    price: str = typer.Option(..., "--price", "-p", help="Current market price per share"),
    as_of: datetime | None = typer.Option(
        None, "--as-of", formats=["%Y-%m-%d"], help="Date used for holding days"
    ),
    db: Path | None = typer.Option(None, "--db", help=DB_HELP),
) -> None:
    """Show realized and unrealized gain/loss for one symbol."""
    current_price = _parse_decimal(price, "--price")
    repo = _open_repository(db)
    stored = repo.get_lots(account, symbol)
    repo.conn.close()

    if not stored:
        typer.echo(f"No lots found for {account}/{symbol}.", err=True)
        raise typer.Exit(1)

    held = gains.open_lots(stored)
    realized = gains.realized_by_term(stored)
    summary = gains.summarize_lots(stored)
    on: date | None = as_of.date() if as_of else None

    console = Console()
    tbl = Table(title=f"{symbol} in {account}", show_header=True)
    tbl.add_column("Field", style="cyan")
    tbl.add_column("Value", style="green", justify="right")
    tbl.add_row("Shares held", _fmt_qty(summary.remaining_quantity))
    tbl.add_row("Remaining cost basis", _fmt(summary.remaining_cost_basis))
    tbl.add_row("Average cost", _fmt(gains.average_cost(held), 4))
    tbl.add_row("Weighted average cost", _fmt(gains.weighted_average_cost(held), 4))
    tbl.add_row("Unrealized gain/loss", _fmt(gains.unrealized_gain_loss(held, current_price)))
    tbl.add_row("Realized short-term", _fmt(realized.short_term))
    tbl.add_row("Realized long-term", _fmt(realized.long_term))
    tbl.add_row("Realized total", _fmt(realized.total))
    console.print(tbl)

    positions = gains.unrealized_positions(held, current_price, on)
    if positions:
        detail = Table(title="Open lots", show_header=True)
        detail.add_column("Lot", style="cyan")
        detail.add_column("Acquired")
        detail.add_column("Quantity", justify="right")
        detail.add_column("Cost basis", justify="right")
        detail.add_column("Value", justify="right")
        detail.add_column("Gain/loss", justify="right")
        detail.add_column("%", justify="right")
        if on:
            detail.add_column("Days", justify="right")
        for position in positions:
            row = [
                position.lot_id,
                position.acquisition_date.isoformat(),
                _fmt_qty(position.quantity),
                _fmt(position.cost_basis),
                _fmt(position.current_value),
                _fmt(position.gain_loss),
                _fmt(position.gain_loss_percent),
            ]
            if on:
                row.append(str(position.holding_days))
            detail.add_row(*row)
        console.print(detail)


if __name__ == "__main__":
    app()
