"""Shared test fixtures for Lot Ledger."""

from datetime import date
from decimal import Decimal

import pytest

from lotledger.db.repository import LotRepository
from lotledger.db.schema import create_schema
from lotledger.models.enums import LotProvenance
from lotledger.models.lot import Lot
from lotledger.models.transaction import Transaction


def _make_buy(
    tx_id: str,
    quantity: str,
    amount: str,
    on: date,
    symbol: str = "ACME",
    account: str = "acct-1",
) -> Transaction:
    return Transaction(
        id=tx_id,
        account=account,
        symbol=symbol,
        transaction_date=on,
        action="Buy",
        quantity=Decimal(quantity),
        amount=Decimal(amount).copy_negate(),
    )


def _make_sell(
    tx_id: str,
    quantity: str,
    amount: str,
    on: date,
    symbol: str = "ACME",
    account: str = "acct-1",
) -> Transaction:
    return Transaction(
        id=tx_id,
        account=account,
        symbol=symbol,
        transaction_date=on,
        action="Sell",
        quantity=Decimal(quantity),
        amount=Decimal(amount),
    )


def _make_lot(
    lot_id: str,
    quantity: str,
    cost_basis: str,
    acquired: date,
    symbol: str = "ACME",
    account: str = "acct-1",
) -> Lot:
    return Lot(
        id=lot_id,
        account=account,
        symbol=symbol,
        acquisition_date=acquired,
        original_quantity=Decimal(quantity),
        remaining_quantity=Decimal(quantity),
        cost_basis=Decimal(cost_basis),
        provenance=LotProvenance.TRANSACTION,
        source_transaction_id=lot_id.removeprefix("lot-"),
    )


@pytest.fixture
def two_lots() -> list[Lot]:
    """10 shares at $10 (Jan 2023) and 10 shares at $20 (Jun 2023)."""
    return [
        _make_lot("lot-buy-1", "10", "100", date(2023, 1, 10)),
        _make_lot("lot-buy-2", "10", "200", date(2023, 6, 10)),
    ]


@pytest.fixture
def sale_15() -> Transaction:
    """Sell 15 shares at $30 on 2024-03-01."""
    return _make_sell("sell-1", "15", "450", date(2024, 3, 1))


@pytest.fixture
def history() -> list[Transaction]:
    return [
        _make_buy("buy-1", "10", "100", date(2023, 1, 10)),
        _make_buy("buy-2", "10", "200", date(2023, 6, 10)),
        _make_sell("sell-1", "15", "450", date(2024, 3, 1)),
        _make_buy("buy-3", "5", "50", date(2023, 2, 1), symbol="WIDG"),
    ]


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "lotledger.db"


@pytest.fixture
def db_conn(db_path):
    conn = create_schema(db_path)
    yield conn
    conn.close()


@pytest.fixture
def repo(db_conn):
    return LotRepository(db_conn)
