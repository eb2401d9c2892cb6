"""Gain engine: read-only cost and gain/loss figures over a set of lots.

Nothing here mutates a lot. Every function returns Decimal("0") (never NaN
or an error) for an empty lot set.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from lotledger.models.enums import LotStatus
from lotledger.models.lot import ZERO, Lot
from lotledger.models.results import LotSummary, RealizedByTerm, UnrealizedPosition

HUNDRED = Decimal("100")


def open_lots(lots: Iterable[Lot]) -> list[Lot]:
    """OPEN and PARTIAL lots, in input order."""
    return [lot for lot in lots if lot.remaining_quantity > 0]


def unrealized_gain_loss(lots: Iterable[Lot], current_price: Decimal) -> Decimal:
    """Market value of the held quantity minus its original cost."""
    total = ZERO
    for lot in lots:
        current_value = lot.remaining_quantity * current_price
        original_cost = lot.cost_per_share * lot.remaining_quantity
        total += current_value - original_cost
    return total


def weighted_average_cost(lots: Iterable[Lot]) -> Decimal:
    """Total cost basis over total original quantity of the lots supplied.

    Callers usually pass only OPEN and PARTIAL lots.
    """
    lots = list(lots)
    total_quantity = sum((lot.original_quantity for lot in lots), ZERO)
    if total_quantity <= 0:
        return ZERO
    total_cost = sum((lot.cost_basis for lot in lots), ZERO)
    return total_cost / total_quantity


def remaining_cost_basis(lots: Iterable[Lot]) -> Decimal:
    return sum((lot.remaining_cost_basis for lot in lots), ZERO)


def average_cost(lots: Iterable[Lot]) -> Decimal:
    """Per-share cost of the quantity still held."""
    lots = list(lots)
    quantity = sum((lot.remaining_quantity for lot in lots), ZERO)
    if quantity <= 0:
        return ZERO
    return remaining_cost_basis(lots) / quantity


def unrealized_positions(
    lots: Iterable[Lot], current_price: Decimal, as_of: date | None = None
) -> list[UnrealizedPosition]:
    """Per-lot unrealized breakdown for lots with shares remaining.

    Holding days are reported only when as_of is given.
    """
    positions = []
    for lot in open_lots(lots):
        cost = lot.remaining_cost_basis
        value = lot.remaining_quantity * current_price
        gain = value - cost
        percent = gain / cost * HUNDRED if cost > 0 else ZERO
        positions.append(
            UnrealizedPosition(
                lot_id=lot.id,
                acquisition_date=lot.acquisition_date,
                quantity=lot.remaining_quantity,
                cost_basis=cost,
                current_value=value,
                gain_loss=gain,
                gain_loss_percent=percent,
                holding_days=(as_of - lot.acquisition_date).days if as_of else None,
            )
        )
    return positions


def realized_gain_loss(lots: Iterable[Lot]) -> Decimal:
    return sum((lot.realized_gain_loss for lot in lots), ZERO)


def realized_by_term(lots: Iterable[Lot]) -> RealizedByTerm:
    """Realized gain/loss split into short- and long-term."""
    result = RealizedByTerm()
    for lot in lots:
        for allocation in lot.sale_allocations:
            result.add(allocation.term, allocation.gain_loss)
    return result


def summarize_lots(lots: Iterable[Lot]) -> LotSummary:
    lots = list(lots)
    return LotSummary(
        total_lots=len(lots),
        open_lots=sum(1 for lot in lots if lot.status == LotStatus.OPEN),
        partial_lots=sum(1 for lot in lots if lot.status == LotStatus.PARTIAL),
        closed_lots=sum(1 for lot in lots if lot.status == LotStatus.CLOSED),
        total_quantity=sum((lot.original_quantity for lot in lots), ZERO),
        remaining_quantity=sum((lot.remaining_quantity for lot in lots), ZERO),
        total_cost_basis=sum((lot.cost_basis for lot in lots), ZERO),
        remaining_cost_basis=remaining_cost_basis(lots),
        realized_gain_loss=realized_gain_loss(lots),
    )


def earliest_acquisition_date(lots: Iterable[Lot]) -> date | None:
    return min((lot.acquisition_date for lot in lots), default=None)


def group_by_acquisition_year(lots: Iterable[Lot]) -> dict[int, list[Lot]]:
    grouped: dict[int, list[Lot]] = defaultdict(list)
    for lot in lots:
        grouped[lot.acquisition_date.year].append(lot)
    return dict(grouped)
