"""Tax lot, sale allocation, and corporate action models."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from lotledger.exceptions import LotInvariantError
from lotledger.models.enums import (
    CorporateActionType,
    CostBasisMethod,
    HoldingPeriod,
    LotProvenance,
    LotStatus,
)

QUANTITY_TOLERANCE = Decimal("1e-9")
ZERO = Decimal("0")


class SaleAllocationRecord(BaseModel):
    """The part of one sale that was matched to one lot."""

    model_config = ConfigDict(frozen=True)

    lot_id: str
    sale_transaction_id: str
    sale_date: date
    quantity_sold: Decimal = Field(gt=0)
    allocated_cost_basis: Decimal
    proceeds: Decimal
    gain_loss: Decimal
    holding_period: int  # days from acquisition to sale
    term: HoldingPeriod
    method: CostBasisMethod


class CorporateActionRecord(BaseModel):
    """A split or reverse split applied to a lot."""

    model_config = ConfigDict(frozen=True)

    action_type: CorporateActionType
    effective_date: date
    ratio: Decimal = Field(gt=0)
    description: str = ""
    allocations_before: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _ratio_matches_type(self):
        if self.action_type == CorporateActionType.SPLIT and self.ratio <= 1:
            raise ValueError("a forward split needs a ratio greater than 1")
        if self.action_type == CorporateActionType.REVERSE_SPLIT and self.ratio >= 1:
            raise ValueError("a reverse split needs a ratio between 0 and 1")
        return self


def derive_status(remaining: Decimal, original: Decimal) -> LotStatus:
    if remaining <= QUANTITY_TOLERANCE:
        return LotStatus.CLOSED
    if remaining >= original:
        return LotStatus.OPEN
    return LotStatus.PARTIAL


class Lot(BaseModel):
    """A discrete, dated acquisition of a security tracked for cost basis.

    cost_basis is the total dollar cost of the lot and never changes.
    price_per_share is frozen at creation and only rescaled by splits.
    Quantities sold before a split are reported in post-split shares by
    sold_quantity; the allocation records themselves are never rewritten.
    """

    id: str
    account: str
    symbol: str
    acquisition_date: date
    original_quantity: Decimal = Field(gt=0)
    remaining_quantity: Decimal = Field(ge=0)
    cost_basis: Decimal = Field(ge=0)
    price_per_share: Decimal | None = None
    status: LotStatus = LotStatus.OPEN
    provenance: LotProvenance
    source_transaction_id: str | None = None
    low_confidence: bool = False
    notes: str | None = None
    adjustments: list[CorporateActionRecord] = Field(default_factory=list)
    sale_allocations: list[SaleAllocationRecord] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_lot(self):
        if self.price_per_share is None:
            self.price_per_share = self.cost_basis / self.original_quantity
        expected = derive_status(self.remaining_quantity, self.original_quantity)
        if "status" in self.model_fields_set and self.status != expected:
            raise ValueError(
                f"status {self.status} does not match remaining "
                f"{self.remaining_quantity} of {self.original_quantity}"
            )
        self.status = expected
        self.check_invariants()
        return self

    # --- Derived figures ---

    @property
    def cost_per_share(self) -> Decimal:
        """Original per-share cost, in current (split-adjusted) shares."""
        return self.cost_basis / self.original_quantity

    @property
    def remaining_cost_basis(self) -> Decimal:
        return self.cost_per_share * self.remaining_quantity

    @property
    def is_open(self) -> bool:
        return self.status != LotStatus.CLOSED

    @property
    def sold_quantity(self) -> Decimal:
        """Total quantity sold from this lot, expressed in current shares."""
        total = ZERO
        for index, allocation in enumerate(self.sale_allocations):
            factor = Decimal("1")
            for adjustment in self.adjustments:
                if adjustment.allocations_before > index:
                    factor *= adjustment.ratio
            total += allocation.quantity_sold * factor
        return total

    @property
    def realized_gain_loss(self) -> Decimal:
        return sum((a.gain_loss for a in self.sale_allocations), ZERO)

    def check_invariants(self) -> None:
        """Raise LotInvariantError if quantities, status, or history disagree."""
        if self.remaining_quantity < 0:
            raise LotInvariantError(self.id, "remaining quantity is negative")
        if self.remaining_quantity > self.original_quantity + QUANTITY_TOLERANCE:
            raise LotInvariantError(self.id, "remaining quantity exceeds original quantity")
        if self.status != derive_status(self.remaining_quantity, self.original_quantity):
            raise LotInvariantError(self.id, f"status {self.status} is stale")
        drift = self.sold_quantity + self.remaining_quantity - self.original_quantity
        if abs(drift) > QUANTITY_TOLERANCE:
            raise LotInvariantError(
                self.id,
                f"sold {self.sold_quantity} + remaining {self.remaining_quantity} "
                f"!= original {self.original_quantity}",
            )

    # --- Mutators ---

    def record_sale(self, allocation: SaleAllocationRecord) -> None:
        """Consume quantity from this lot and append the allocation record."""
        if allocation.lot_id != self.id:
            raise LotInvariantError(self.id, f"allocation is for lot {allocation.lot_id}")
        if allocation.quantity_sold > self.remaining_quantity + QUANTITY_TOLERANCE:
            raise LotInvariantError(
                self.id,
                f"cannot sell {allocation.quantity_sold}, only "
                f"{self.remaining_quantity} remaining",
            )
        remaining = self.remaining_quantity - allocation.quantity_sold
        if remaining <= QUANTITY_TOLERANCE:
            remaining = ZERO
        self.remaining_quantity = remaining
        self.sale_allocations.append(allocation)
        self.status = derive_status(remaining, self.original_quantity)
        self.check_invariants()

    def apply_split(self, adjustment: CorporateActionRecord) -> None:
        """Rescale quantities and per-share price; total cost is unchanged."""
        if adjustment.allocations_before != len(self.sale_allocations):
            raise LotInvariantError(
                self.id, "adjustment was prepared against a different sale history"
            )
        self.original_quantity = self.original_quantity * adjustment.ratio
        self.remaining_quantity = self.remaining_quantity * adjustment.ratio
        self.price_per_share = self.price_per_share / adjustment.ratio
        self.adjustments.append(adjustment)
        self.status = derive_status(self.remaining_quantity, self.original_quantity)
        self.check_invariants()

    def __str__(self) -> str:
        return (
            f"Lot {self.id}: {self.symbol} "
            f"{self.remaining_quantity}/{self.original_quantity} "
            f"@ {self.price_per_share} ({self.status})"
        )
