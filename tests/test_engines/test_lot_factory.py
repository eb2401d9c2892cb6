"""Tests for lot creation from acquisitions and snapshots."""

from datetime import date
from decimal import Decimal

import pytest

from lotledger.engines.lot_factory import LotFactory
from lotledger.exceptions import InvalidAcquisitionError
from lotledger.models.enums import LotProvenance, LotStatus
from lotledger.models.transaction import SnapshotPosition, Transaction


def _make_buy(tx_id, quantity, amount, on, symbol="ACME", account="acct-1"):
    return Transaction(
        id=tx_id,
        account=account,
        symbol=symbol,
        transaction_date=on,
        action="Buy",
        quantity=Decimal(quantity),
        amount=-Decimal(amount),
    )


def _make_sell(tx_id, quantity, amount, on, symbol="ACME", account="acct-1"):
    return Transaction(
        id=tx_id,
        account=account,
        symbol=symbol,
        transaction_date=on,
        action="Sell",
        quantity=Decimal(quantity),
        amount=Decimal(amount),
    )


class TestCreateLot:
    def setup_method(self):
        self.factory = LotFactory()

    def test_cost_basis_from_amount(self):
        lot = self.factory.create_lot(_make_buy("buy-1", "10", "1000.50", date(2024, 1, 2)))
        assert lot.id == "lot-buy-1"
        assert lot.cost_basis == Decimal("1000.50")
        assert lot.price_per_share == Decimal("100.05")
        assert lot.remaining_quantity == lot.original_quantity == Decimal("10")
        assert lot.status == LotStatus.OPEN
        assert lot.provenance == LotProvenance.TRANSACTION
        assert lot.source_transaction_id == "buy-1"
        assert not lot.low_confidence

    def test_cost_basis_from_price_when_no_amount(self):
        tx = Transaction(
            id="buy-1",
            account="acct-1",
            symbol="ACME",
            transaction_date=date(2024, 1, 2),
            action="Buy",
            quantity=Decimal("3"),
            price=Decimal("12.50"),
        )
        assert self.factory.create_lot(tx).cost_basis == Decimal("37.50")

    def test_non_positive_quantity_rejected(self):
        with pytest.raises(InvalidAcquisitionError):
            self.factory.create_lot(_make_buy("buy-1", "0", "10", date(2024, 1, 2)))

    def test_missing_cost_rejected(self):
        tx = Transaction(
            id="buy-1",
            account="acct-1",
            symbol="ACME",
            transaction_date=date(2024, 1, 2),
            action="Buy",
            quantity=Decimal("3"),
        )
        with pytest.raises(InvalidAcquisitionError):
            self.factory.create_lot(tx)


class TestFromTransactions:
    def test_only_acquisitions_oldest_first(self):
        lots = LotFactory().from_transactions(
            [
                _make_buy("buy-2", "5", "60", date(2024, 2, 1)),
                _make_sell("sell-1", "2", "30", date(2024, 3, 1)),
                _make_buy("buy-1", "5", "50", date(2024, 1, 1)),
                _make_buy("buy-3", "5", "70", date(2024, 2, 1)),
            ]
        )
        assert [lot.id for lot in lots] == ["lot-buy-1", "lot-buy-2", "lot-buy-3"]

    def test_no_acquisitions(self):
        assert LotFactory().from_transactions([]) == []

    def test_ids_are_stable(self):
        txs = [_make_buy("buy-1", "5", "50", date(2024, 1, 1))]
        first = LotFactory().from_transactions(txs)
        second = LotFactory().from_transactions(txs)
        assert first[0].model_dump_json() == second[0].model_dump_json()


class TestFromSnapshot:
    def test_snapshot_lots_are_low_confidence(self):
        positions = [
            SnapshotPosition(
                symbol="ACME",
                quantity=Decimal("10"),
                cost_basis=Decimal("500"),
                snapshot_date=date(2024, 1, 1),
            ),
            SnapshotPosition(symbol="WIDG", quantity=Decimal("2"), snapshot_date=date(2024, 1, 1)),
        ]
        lots = LotFactory().from_snapshot("acct-1", positions)
        assert [lot.id for lot in lots] == [
            "snap-acct-1-ACME-2024-01-01-0",
            "snap-acct-1-WIDG-2024-01-01-0",
        ]
        assert all(lot.low_confidence for lot in lots)
        assert all(lot.provenance == LotProvenance.SNAPSHOT for lot in lots)
        assert lots[0].price_per_share == Decimal("50")
        assert lots[1].cost_basis == Decimal("0")
        assert lots[1].notes == "Cost basis not reported in snapshot"

    def test_explicit_date_overrides_position_date(self):
        position = SnapshotPosition(
            symbol="ACME", quantity=Decimal("1"), snapshot_date=date(2024, 1, 1)
        )
        lots = LotFactory().from_snapshot("acct-1", [position, position], date(2024, 5, 1))
        assert [lot.acquisition_date for lot in lots] == [date(2024, 5, 1)] * 2
        assert lots[1].id.endswith("-1")

    def test_non_positive_quantity_rejected(self):
        position = SnapshotPosition(
            symbol="ACME", quantity=Decimal("0"), snapshot_date=date(2024, 1, 1)
        )
        with pytest.raises(InvalidAcquisitionError):
            LotFactory().from_snapshot("acct-1", [position])
