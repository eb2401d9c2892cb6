"""Batch processor: build and maintain lots for every symbol in an account.

Each symbol is one unit of work. Its lots are rebuilt or mutated on private
copies and written back to the store only when the whole unit succeeds, so a
failing symbol is reported and leaves its stored lots as they were.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from datetime import date
from decimal import Decimal

from lotledger.config import DEFAULT_LEDGER_CONFIG, LedgerConfig
from lotledger.engines.allocation import AllocationEngine
from lotledger.engines.corporate_actions import CorporateActionAdjuster, split_ratio_from_quantity
from lotledger.engines.lot_factory import LotFactory
from lotledger.exceptions import LedgerError
from lotledger.ledger.store import LotStore
from lotledger.models.enums import (
    CorporateActionType,
    CostBasisMethod,
    LotProvenance,
    TransactionCategory,
)
from lotledger.models.lot import ZERO, Lot
from lotledger.models.results import (
    AdjustmentResult,
    AllocationResult,
    BatchReport,
    SymbolReport,
)
from lotledger.models.transaction import SnapshotPosition, Transaction

logger = logging.getLogger(__name__)

# pydantic's ValidationError is a ValueError.
RECOVERABLE_ERRORS = (LedgerError, ValueError)

SPLIT_ACTIONS = {
    "Stock Split": CorporateActionType.SPLIT,
    "Reverse Split": CorporateActionType.REVERSE_SPLIT,
}


def deduplicate(transactions: Iterable[Transaction]) -> tuple[list[Transaction], int]:
    """Drop transactions imported twice, keeping the first. Returns (kept, dropped)."""
    seen: set[tuple] = set()
    kept: list[Transaction] = []
    dropped = 0
    for transaction in transactions:
        if transaction.signature in seen:
            dropped += 1
            continue
        seen.add(transaction.signature)
        kept.append(transaction)
    return kept, dropped


def pristine_copy(lot: Lot) -> Lot:
    """A snapshot lot as it was when bootstrapped, with its history cleared."""
    quantity = lot.original_quantity
    for adjustment in lot.adjustments:
        quantity /= adjustment.ratio
    return Lot(
        id=lot.id,
        account=lot.account,
        symbol=lot.symbol,
        acquisition_date=lot.acquisition_date,
        original_quantity=quantity,
        remaining_quantity=quantity,
        cost_basis=lot.cost_basis,
        provenance=lot.provenance,
        source_transaction_id=lot.source_transaction_id,
        low_confidence=lot.low_confidence,
        notes=lot.notes,
    )


class LedgerProcessor:
    """Drives the factory, allocation engine, and adjuster against a LotStore."""

    def __init__(self, store: LotStore | None = None, config: LedgerConfig = DEFAULT_LEDGER_CONFIG):
        self.store = store if store is not None else LotStore()
        self.config = config
        self.factory = LotFactory()
        self.allocator = AllocationEngine(config)
        self.adjuster = CorporateActionAdjuster()

    # --- Batch entry points ---

    def process_account(
        self,
        account: str,
        transactions: Iterable[Transaction],
        method: CostBasisMethod | str | None = None,
        specific_lots: Mapping[str, Sequence[str]] | None = None,
    ) -> BatchReport:
        """Rebuild every symbol's lots from its transaction history.

        Steps per symbol:
        1. Drop duplicate transactions
        2. Create one lot per acquisition (plus any bootstrapped snapshot lots)
        3. Replay sales and splits in date order
        4. Replace the symbol's lots in the store

        Args:
            account: Account whose transactions are processed.
            transactions: Transactions for the account; other accounts are ignored.
            method: Cost basis method; defaults to the configured one.
            specific_lots: Sale transaction id -> ordered lot ids, for SPECIFIC_ID.

        Returns:
            BatchReport with one SymbolReport per symbol. A symbol that fails
            carries its error and does not stop the others.
        """
        method = CostBasisMethod(method or self.config.cost_basis_method)
        report = BatchReport(account=account, method=method)

        by_symbol: dict[str, list[Transaction]] = defaultdict(list)
        for transaction in transactions:
            if transaction.account != account:
                continue
            if not transaction.symbol:
                logger.debug("Skipping transaction %s with no symbol", transaction.id)
                continue
            by_symbol[transaction.symbol].append(transaction)

        logger.info(
            "Processing %d symbol(s) for account %s using %s",
            len(by_symbol), account, method.value,
        )
        for symbol in sorted(by_symbol):
            symbol_report = SymbolReport(account=account, symbol=symbol)
            try:
                lots = self._replay_symbol(
                    symbol_report, by_symbol[symbol], method, specific_lots or {}
                )
                self.store.replace(account, symbol, lots)
            except RECOVERABLE_ERRORS as exc:
                self._record_error(symbol_report, exc)
            report.symbols.append(symbol_report)

        if report.errors:
            logger.warning(
                "Account %s: %d symbol(s) failed: %s",
                account, len(report.errors), ", ".join(sorted(report.errors)),
            )
        return report

    def bootstrap_from_snapshot(
        self,
        account: str,
        positions: Iterable[SnapshotPosition],
        snapshot_date: date | None = None,
        transactions: Iterable[Transaction] = (),
    ) -> BatchReport:
        """Create snapshot lots for symbols that have no history at all.

        A symbol with transactions or with lots already in the store is
        skipped and reported, which keeps bootstrap at most once per symbol.
        """
        report = BatchReport(account=account, method=self.config.cost_basis_method)
        traded = {t.symbol for t in transactions if t.account == account}

        by_symbol: dict[str, list[SnapshotPosition]] = defaultdict(list)
        for position in positions:
            by_symbol[position.symbol].append(position)

        for symbol in sorted(by_symbol):
            symbol_report = SymbolReport(account=account, symbol=symbol)
            if symbol in traded:
                symbol_report.skipped = True
                symbol_report.skip_reason = "transaction history exists"
            elif self.store.has_lots(account, symbol):
                symbol_report.skipped = True
                symbol_report.skip_reason = "lots already exist"
            else:
                try:
                    lots = self.factory.from_snapshot(account, by_symbol[symbol], snapshot_date)
                    self.store.add_all(lots)
                    symbol_report.lots_created = len(lots)
                except RECOVERABLE_ERRORS as exc:
                    self._record_error(symbol_report, exc)
            if symbol_report.skipped:
                logger.info("Bootstrap skipped %s/%s: %s", account, symbol, symbol_report.skip_reason)
            report.symbols.append(symbol_report)
        return report

    # --- Single operations ---

    def allocate_sale(
        self,
        sale: Transaction,
        method: CostBasisMethod | str | None = None,
        specific_lot_ids: Sequence[str] | None = None,
    ) -> AllocationResult:
        """Apply one sale to the stored lots of its account/symbol."""
        method = CostBasisMethod(method or self.config.cost_basis_method)
        lots = self._working_copy(sale.account, sale.symbol)
        eligible = [lot for lot in lots if lot.acquisition_date <= sale.transaction_date]
        result = self.allocator.allocate(sale, eligible, method, specific_lot_ids)
        self.store.replace(sale.account, sale.symbol, lots)
        if result.warning:
            logger.warning(result.warning.message)
        return result

    def apply_corporate_action(
        self,
        account: str,
        symbol: str,
        ratio: Decimal | int | float | str,
        effective_date: date,
        action_type: CorporateActionType | str | None = None,
    ) -> AdjustmentResult:
        """Apply one split to the stored lots of an account/symbol."""
        lots = self._working_copy(account, symbol)
        result = self.adjuster.apply(lots, account, symbol, ratio, effective_date, action_type)
        self.store.replace(account, symbol, lots)
        logger.info(
            "Applied %s to %d lot(s) of %s/%s",
            result.records[0].description if result.records else "no-op",
            len(result.adjusted_lot_ids), account, symbol,
        )
        return result

    # --- Internals ---

    def _working_copy(self, account: str, symbol: str) -> list[Lot]:
        return [lot.model_copy(deep=True) for lot in self.store.lots_for(account, symbol)]

    def _replay_symbol(
        self,
        report: SymbolReport,
        transactions: list[Transaction],
        method: CostBasisMethod,
        specific_lots: Mapping[str, Sequence[str]],
    ) -> list[Lot]:
        unique, dropped = deduplicate(transactions)
        report.duplicates_dropped = dropped
        if dropped:
            logger.info("Dropped %d duplicate transaction(s) for %s", dropped, report.symbol)

        ordered = sorted(unique, key=lambda t: t.transaction_date)
        seeded = [
            pristine_copy(lot)
            for lot in self.store.lots_for(report.account, report.symbol)
            if lot.provenance == LotProvenance.SNAPSHOT
        ]
        created = self.factory.from_transactions(ordered)
        lots = seeded + created
        report.lots_created = len(created)

        for transaction in ordered:
            report.transactions_processed += 1
            if transaction.category == TransactionCategory.DISPOSITION:
                eligible = [
                    lot for lot in lots if lot.acquisition_date <= transaction.transaction_date
                ]
                result = self.allocator.allocate(
                    transaction, eligible, method, specific_lots.get(transaction.id)
                )
                report.allocations.append(result)
                report.sales_processed += 1
                if result.warning:
                    report.warnings.append(result.warning)
                    logger.warning(result.warning.message)
            elif transaction.category == TransactionCategory.CORPORATE_ACTION:
                ratio = transaction.ratio
                if ratio is None:
                    held = sum(
                        (
                            lot.remaining_quantity
                            for lot in lots
                            if lot.acquisition_date <= transaction.transaction_date
                        ),
                        ZERO,
                    )
                    ratio = split_ratio_from_quantity(held, transaction.quantity)
                # A row reporting an unchanged holding is a no-op, whatever its action.
                action_type = SPLIT_ACTIONS.get(transaction.action) if ratio != 1 else None
                adjustment = self.adjuster.apply(
                    lots,
                    report.account,
                    report.symbol,
                    ratio,
                    transaction.transaction_date,
                    action_type,
                )
                if adjustment.action_type is not None:
                    report.corporate_actions_applied += 1
                else:
                    logger.debug("Split %s has ratio 1; nothing to adjust", transaction.id)

        return lots

    @staticmethod
    def _record_error(report: SymbolReport, exc: Exception) -> None:
        report.error = str(exc)
        report.error_type = type(exc).__name__
        logger.warning("Error processing %s/%s: %s", report.account, report.symbol, exc)
