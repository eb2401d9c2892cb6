"""Allocation engine: apply a sale to tax lots by FIFO, LIFO, average cost, or specific ID."""

from collections.abc import Sequence
from datetime import date, timedelta
from decimal import ROUND_DOWN, Decimal

from lotledger.config import DEFAULT_LEDGER_CONFIG, LedgerConfig
from lotledger.exceptions import (
    InsufficientLotQuantityError,
    InvalidDispositionError,
    LotNotFoundError,
)
from lotledger.models.enums import CostBasisMethod, HoldingPeriod, TransactionCategory
from lotledger.models.lot import QUANTITY_TOLERANCE, ZERO, Lot, SaleAllocationRecord
from lotledger.models.results import AllocationResult, PartialAllocationWarning
from lotledger.models.transaction import Transaction


def holding_term(acquisition_date: date, sale_date: date) -> HoldingPeriod:
    """Determine holding period per IRS rules.

    Holding period starts the day AFTER acquisition.
    Long-term = held more than 1 year.
    """
    holding_start = acquisition_date + timedelta(days=1)
    try:
        one_year_later = holding_start.replace(year=holding_start.year + 1)
    except ValueError:
        # Handle Feb 29 -> Feb 28
        one_year_later = holding_start.replace(year=holding_start.year + 1, day=28)

    if sale_date >= one_year_later:
        return HoldingPeriod.LONG_TERM
    return HoldingPeriod.SHORT_TERM


class AllocationEngine:
    """Matches a disposal to lots and records the allocation on each lot.

    The engine mutates the lots it is given and nothing else. It never reads
    the clock or a random source, so the same lots, method, and sale always
    produce the same result.
    """

    def __init__(self, config: LedgerConfig = DEFAULT_LEDGER_CONFIG):
        self.quantum = config.quantity_quantum

    def allocate(
        self,
        sale: Transaction,
        lots: Sequence[Lot],
        method: CostBasisMethod | str = CostBasisMethod.FIFO,
        specific_lot_ids: Sequence[str] | None = None,
    ) -> AllocationResult:
        """Apply a sale to lots.

        Args:
            sale: A DISPOSITION transaction with a positive quantity.
            lots: The current lots for the sale's account and symbol.
            method: FIFO, LIFO, AVERAGE_COST, or SPECIFIC_ID.
            specific_lot_ids: Ordered lot ids to consume; SPECIFIC_ID only.

        Returns:
            AllocationResult. An oversold FIFO/LIFO/average-cost sale carries
            a PartialAllocationWarning instead of raising.
        """
        method = CostBasisMethod(method)
        unit_price = self._validate_sale(sale, lots)
        open_lots = [lot for lot in lots if lot.remaining_quantity > 0]

        match method:
            case CostBasisMethod.AVERAGE_COST:
                allocations = self._allocate_average_cost(sale, open_lots, unit_price)
            case CostBasisMethod.SPECIFIC_ID:
                designated = self._designated_lots(sale, lots, specific_lot_ids or [])
                allocations = self._consume(sale, designated, unit_price, method)
            case _:
                ordered = self.order_lots(open_lots, method)
                allocations = self._consume(sale, ordered, unit_price, method)

        return self._build_result(sale, method, allocations)

    @staticmethod
    def order_lots(lots: Sequence[Lot], method: CostBasisMethod) -> list[Lot]:
        """FIFO: oldest first. LIFO: newest first. Equal dates keep input order."""
        if method == CostBasisMethod.LIFO:
            return sorted(lots, key=lambda lot: lot.acquisition_date, reverse=True)
        return sorted(lots, key=lambda lot: lot.acquisition_date)

    # --- Validation ---

    def _validate_sale(self, sale: Transaction, lots: Sequence[Lot]) -> Decimal:
        """Check the sale and lot set; return proceeds per share."""
        if sale.category != TransactionCategory.DISPOSITION:
            raise InvalidDispositionError(sale.id, f"category is {sale.category}")
        if sale.quantity <= 0:
            raise InvalidDispositionError(sale.id, f"quantity must be positive, got {sale.quantity}")
        unit_price = sale.unit_price
        if unit_price is None:
            raise InvalidDispositionError(sale.id, "no amount or price to derive proceeds from")
        for lot in lots:
            if lot.account != sale.account or lot.symbol != sale.symbol:
                raise InvalidDispositionError(
                    sale.id,
                    f"lot {lot.id} belongs to {lot.account}/{lot.symbol}, "
                    f"not {sale.account}/{sale.symbol}",
                )
        return unit_price

    def _designated_lots(
        self, sale: Transaction, lots: Sequence[Lot], lot_ids: Sequence[str]
    ) -> list[Lot]:
        """Resolve specific-ID lots in the caller's order and check they cover the sale."""
        by_id = {lot.id: lot for lot in lots}
        designated: list[Lot] = []
        for lot_id in dict.fromkeys(lot_ids):
            if lot_id not in by_id:
                raise LotNotFoundError(lot_id)
            designated.append(by_id[lot_id])

        available = sum((lot.remaining_quantity for lot in designated), ZERO)
        if available + QUANTITY_TOLERANCE < sale.quantity:
            raise InsufficientLotQuantityError(sale.id, sale.quantity, available)
        return designated

    # --- Matching ---

    def _consume(
        self,
        sale: Transaction,
        ordered: Sequence[Lot],
        unit_price: Decimal,
        method: CostBasisMethod,
    ) -> list[SaleAllocationRecord]:
        """Walk lots in order, taking min(lot remaining, left to sell) from each."""
        remaining = sale.quantity
        allocations: list[SaleAllocationRecord] = []

        for lot in ordered:
            if remaining <= 0:
                break
            if lot.remaining_quantity <= 0:
                continue
            quantity = min(lot.remaining_quantity, remaining)
            # Always the lot's original per-share cost, never a remaining-adjusted one.
            cost = lot.cost_per_share * quantity
            allocation = self._record(lot, sale, quantity, cost, unit_price, method)
            lot.record_sale(allocation)
            allocations.append(allocation)
            remaining -= quantity

        return allocations

    def _allocate_average_cost(
        self, sale: Transaction, open_lots: Sequence[Lot], unit_price: Decimal
    ) -> list[SaleAllocationRecord]:
        """Sell from a pooled projection of the open lots.

        The pool is computed on demand and never stored. The quantity taken
        from the pool is spread back over the real lots in proportion to each
        lot's share of the pooled quantity, at the pool's average cost.
        """
        pool_quantity = sum((lot.remaining_quantity for lot in open_lots), ZERO)
        if pool_quantity <= 0:
            return []
        pool_cost = sum((lot.remaining_cost_basis for lot in open_lots), ZERO)
        average_cost = pool_cost / pool_quantity
        consumed = min(sale.quantity, pool_quantity)

        shares = self._pro_rata(consumed, open_lots, pool_quantity)
        pending = [
            self._record(
                lot, sale, share, average_cost * share, unit_price, CostBasisMethod.AVERAGE_COST
            )
            for lot, share in zip(open_lots, shares)
            if share > 0
        ]
        by_id = {lot.id: lot for lot in open_lots}
        for allocation in pending:
            by_id[allocation.lot_id].record_sale(allocation)
        return pending

    def _pro_rata(
        self, consumed: Decimal, lots: Sequence[Lot], pool_quantity: Decimal
    ) -> list[Decimal]:
        """Split consumed across lots by remaining quantity.

        Shares are rounded down to the configured quantum and the residual is
        handed out by largest rounding remainder, ties in lot order.
        """
        if consumed >= pool_quantity:
            return [lot.remaining_quantity for lot in lots]

        exact = [consumed * lot.remaining_quantity / pool_quantity for lot in lots]
        shares = [
            min(value.quantize(self.quantum, rounding=ROUND_DOWN), lot.remaining_quantity)
            for value, lot in zip(exact, lots)
        ]
        order = sorted(range(len(lots)), key=lambda i: (shares[i] - exact[i], i))

        residual = consumed - sum(shares, ZERO)
        for step_limit in (self.quantum, None):
            for i in order:
                if residual <= 0:
                    break
                capacity = lots[i].remaining_quantity - shares[i]
                step = min(residual, capacity)
                if step_limit is not None:
                    step = min(step, step_limit)
                if step > 0:
                    shares[i] += step
                    residual -= step
        return shares

    @staticmethod
    def _record(
        lot: Lot,
        sale: Transaction,
        quantity: Decimal,
        cost: Decimal,
        unit_price: Decimal,
        method: CostBasisMethod,
    ) -> SaleAllocationRecord:
        proceeds = quantity * unit_price
        return SaleAllocationRecord(
            lot_id=lot.id,
            sale_transaction_id=sale.id,
            sale_date=sale.transaction_date,
            quantity_sold=quantity,
            allocated_cost_basis=cost,
            proceeds=proceeds,
            gain_loss=proceeds - cost,
            holding_period=(sale.transaction_date - lot.acquisition_date).days,
            term=holding_term(lot.acquisition_date, sale.transaction_date),
            method=method,
        )

    @staticmethod
    def _build_result(
        sale: Transaction,
        method: CostBasisMethod,
        allocations: list[SaleAllocationRecord],
    ) -> AllocationResult:
        sold = sum((a.quantity_sold for a in allocations), ZERO)
        proceeds = sum((a.proceeds for a in allocations), ZERO)
        cost = sum((a.allocated_cost_basis for a in allocations), ZERO)
        unfilled = sale.quantity - sold
        if unfilled <= QUANTITY_TOLERANCE:
            unfilled = ZERO

        warning = None
        if unfilled > 0:
            warning = PartialAllocationWarning(
                sale_transaction_id=sale.id,
                symbol=sale.symbol,
                requested_quantity=sale.quantity,
                filled_quantity=sold,
                unfilled_quantity=unfilled,
            )

        return AllocationResult(
            sale_transaction_id=sale.id,
            account=sale.account,
            symbol=sale.symbol,
            sale_date=sale.transaction_date,
            method=method,
            requested_quantity=sale.quantity,
            total_quantity_sold=sold,
            total_proceeds=proceeds,
            total_cost_basis=cost,
            gain_loss=proceeds - cost,
            unfilled_quantity=unfilled,
            allocations=allocations,
            warning=warning,
        )
