"""Tests for the in-memory lot store."""

from datetime import date
from decimal import Decimal

import pytest

from lotledger.exceptions import DuplicateLotError, LotInvariantError, LotNotFoundError
from lotledger.ledger.store import LotStore
from lotledger.models.enums import LotProvenance
from lotledger.models.lot import Lot


def _make_lot(lot_id, quantity, cost_basis, acquired, symbol="ACME", account="acct-1"):
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


class TestLotStore:
    def test_lots_keyed_by_account_and_symbol(self, two_lots):
        other = _make_lot("lot-w", "1", "1", date(2023, 1, 1), symbol="WIDG", account="acct-2")
        store = LotStore(two_lots + [other])

        assert len(store) == 3
        assert "lot-buy-1" in store
        assert [lot.id for lot in store.lots_for("acct-1", "ACME")] == ["lot-buy-1", "lot-buy-2"]
        assert store.lots_for("acct-1", "WIDG") == []
        assert store.accounts() == ["acct-1", "acct-2"]
        assert store.symbols("acct-2") == ["WIDG"]
        assert len(store.all_lots("acct-1")) == 2

    def test_duplicate_id_rejects_whole_batch(self, two_lots):
        store = LotStore(two_lots[:1])
        with pytest.raises(DuplicateLotError):
            store.add_all([two_lots[1], two_lots[0]])
        assert len(store) == 1
        assert "lot-buy-2" not in store

    def test_get(self, two_lots):
        store = LotStore(two_lots)
        assert store.get("lot-buy-2") is two_lots[1]
        with pytest.raises(LotNotFoundError):
            store.get("lot-missing")

    def test_replace_swaps_key(self, two_lots):
        store = LotStore(two_lots)
        rebuilt = [_make_lot("lot-buy-9", "3", "30", date(2023, 3, 1))]
        store.replace("acct-1", "ACME", rebuilt)
        assert [lot.id for lot in store.lots_for("acct-1", "ACME")] == ["lot-buy-9"]
        assert "lot-buy-1" not in store

    def test_replace_rejects_foreign_lot(self, two_lots):
        store = LotStore(two_lots)
        foreign = _make_lot("lot-w", "1", "1", date(2023, 1, 1), symbol="WIDG")
        with pytest.raises(LotInvariantError):
            store.replace("acct-1", "ACME", [foreign])
        assert len(store.lots_for("acct-1", "ACME")) == 2

    def test_replace_rejects_id_owned_by_other_key(self, two_lots):
        widg = _make_lot("lot-x", "1", "1", date(2023, 1, 1), symbol="WIDG")
        store = LotStore(two_lots + [widg])
        clash = _make_lot("lot-x", "1", "1", date(2023, 1, 1))
        with pytest.raises(DuplicateLotError):
            store.replace("acct-1", "ACME", [clash])

    def test_open_lots_for(self, two_lots):
        store = LotStore(two_lots)
        assert len(store.open_lots_for("acct-1", "ACME")) == 2
        assert store.has_lots("acct-1", "ACME")
        assert not store.has_lots("acct-1", "WIDG")
