"""Lot factory: build tax lots from acquisitions or from a portfolio snapshot."""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from lotledger.exceptions import InvalidAcquisitionError
from lotledger.models.enums import LotProvenance, TransactionCategory
from lotledger.models.lot import Lot
from lotledger.models.transaction import SnapshotPosition, Transaction


class LotFactory:
    """Creates lots. Each lot is created exactly once, here."""

    def create_lot(self, transaction: Transaction) -> Lot:
        """Create one transaction-derived lot from an acquisition.

        Cost basis is |amount|; quantity x price is used only when the
        transaction carries no amount.
        """
        if transaction.quantity <= 0:
            raise InvalidAcquisitionError(
                transaction.id,
                f"quantity must be positive, got {transaction.quantity}",
                symbol=transaction.symbol,
            )
        if transaction.amount is not None:
            cost_basis = abs(transaction.amount)
        elif transaction.price is not None:
            cost_basis = transaction.quantity * abs(transaction.price)
        else:
            raise InvalidAcquisitionError(
                transaction.id,
                "no amount or price to derive a cost basis from",
                symbol=transaction.symbol,
            )

        return Lot(
            id=f"lot-{transaction.id}",
            account=transaction.account,
            symbol=transaction.symbol,
            acquisition_date=transaction.transaction_date,
            original_quantity=transaction.quantity,
            remaining_quantity=transaction.quantity,
            cost_basis=cost_basis,
            provenance=LotProvenance.TRANSACTION,
            source_transaction_id=transaction.id,
        )

    def from_transactions(self, transactions: Iterable[Transaction]) -> list[Lot]:
        """Create one lot per acquisition, oldest first.

        Ties on date keep input order. No acquisitions means no lots.
        """
        ordered = sorted(transactions, key=lambda t: t.transaction_date)
        return [
            self.create_lot(t)
            for t in ordered
            if t.category == TransactionCategory.ACQUISITION and t.quantity > 0
        ]

    def from_snapshot(
        self,
        account: str,
        positions: Iterable[SnapshotPosition],
        snapshot_date: date | None = None,
    ) -> list[Lot]:
        """Bootstrap one lot per snapshot position.

        Used only when an account/symbol has no transaction history. The
        caller guarantees this runs at most once per account; calling it
        twice creates duplicate lots. Snapshot lots are low confidence: the
        acquisition date is the snapshot date, so holding periods and gains
        are approximations.
        """
        lots: list[Lot] = []
        seen: dict[tuple[str, date], int] = {}
        for position in positions:
            acquired = snapshot_date or position.snapshot_date
            if position.quantity <= 0:
                raise InvalidAcquisitionError(
                    f"snapshot:{account}:{position.symbol}",
                    f"quantity must be positive, got {position.quantity}",
                    symbol=position.symbol,
                )
            index = seen.get((position.symbol, acquired), 0)
            seen[(position.symbol, acquired)] = index + 1

            notes = None
            cost_basis = position.cost_basis
            if cost_basis is None:
                cost_basis = Decimal("0")
                notes = "Cost basis not reported in snapshot"

            lots.append(
                Lot(
                    id=f"snap-{account}-{position.symbol}-{acquired.isoformat()}-{index}",
                    account=account,
                    symbol=position.symbol,
                    acquisition_date=acquired,
                    original_quantity=position.quantity,
                    remaining_quantity=position.quantity,
                    cost_basis=cost_basis,
                    provenance=LotProvenance.SNAPSHOT,
                    low_confidence=True,
                    notes=notes,
                )
            )
        return lots
