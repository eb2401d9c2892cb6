"""Result and report models returned by the engines and the batch processor."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from lotledger.models.enums import CorporateActionType, CostBasisMethod, HoldingPeriod
from lotledger.models.lot import CorporateActionRecord, SaleAllocationRecord


class PartialAllocationWarning(BaseModel):
    """A sale that could not be fully matched to lots. Returned, never raised."""

    sale_transaction_id: str
    symbol: str
    requested_quantity: Decimal
    filled_quantity: Decimal
    unfilled_quantity: Decimal

    @property
    def message(self) -> str:
        return (
            f"Sale {self.sale_transaction_id} ({self.symbol}) oversold: "
            f"{self.unfilled_quantity} of {self.requested_quantity} shares "
            f"had no lot to match"
        )


class AllocationResult(BaseModel):
    """Outcome of applying one disposal to a lot set."""

    sale_transaction_id: str
    account: str
    symbol: str
    sale_date: date
    method: CostBasisMethod
    requested_quantity: Decimal
    total_quantity_sold: Decimal
    total_proceeds: Decimal
    total_cost_basis: Decimal
    gain_loss: Decimal
    unfilled_quantity: Decimal = Decimal("0")
    allocations: list[SaleAllocationRecord] = Field(default_factory=list)
    warning: PartialAllocationWarning | None = None

    @property
    def is_partial(self) -> bool:
        return self.warning is not None


class AdjustmentResult(BaseModel):
    """Outcome of applying one corporate action to a lot set."""

    account: str
    symbol: str
    action_type: CorporateActionType | None
    effective_date: date
    ratio: Decimal
    adjusted_lot_ids: list[str] = Field(default_factory=list)
    untouched_lot_ids: list[str] = Field(default_factory=list)
    records: list[CorporateActionRecord] = Field(default_factory=list)


class UnrealizedPosition(BaseModel):
    lot_id: str
    acquisition_date: date
    quantity: Decimal
    cost_basis: Decimal
    current_value: Decimal
    gain_loss: Decimal
    gain_loss_percent: Decimal
    holding_days: int | None = None


class LotSummary(BaseModel):
    total_lots: int = 0
    open_lots: int = 0
    partial_lots: int = 0
    closed_lots: int = 0
    total_quantity: Decimal = Decimal("0")
    remaining_quantity: Decimal = Decimal("0")
    total_cost_basis: Decimal = Decimal("0")
    remaining_cost_basis: Decimal = Decimal("0")
    realized_gain_loss: Decimal = Decimal("0")


class RealizedByTerm(BaseModel):
    short_term: Decimal = Decimal("0")
    long_term: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return self.short_term + self.long_term

    def add(self, term: HoldingPeriod, amount: Decimal) -> None:
        if term == HoldingPeriod.LONG_TERM:
            self.long_term += amount
        else:
            self.short_term += amount


class SymbolReport(BaseModel):
    """Per-symbol outcome of a batch run. A failed symbol carries its error."""

    account: str
    symbol: str
    transactions_processed: int = 0
    duplicates_dropped: int = 0
    lots_created: int = 0
    sales_processed: int = 0
    corporate_actions_applied: int = 0
    allocations: list[AllocationResult] = Field(default_factory=list)
    warnings: list[PartialAllocationWarning] = Field(default_factory=list)
    skipped: bool = False
    skip_reason: str | None = None
    error: str | None = None
    error_type: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchReport(BaseModel):
    account: str
    method: CostBasisMethod
    symbols: list[SymbolReport] = Field(default_factory=list)

    @property
    def processed_symbols(self) -> int:
        return sum(1 for s in self.symbols if s.ok and not s.skipped)

    @property
    def created_lots(self) -> int:
        return sum(s.lots_created for s in self.symbols)

    @property
    def errors(self) -> dict[str, str]:
        return {s.symbol: s.error for s in self.symbols if s.error is not None}

    @property
    def warnings(self) -> list[PartialAllocationWarning]:
        return [w for s in self.symbols for w in s.warnings]

    def for_symbol(self, symbol: str) -> SymbolReport | None:
        for report in self.symbols:
            if report.symbol == symbol:
                return report
        return None


class AuditEntry(BaseModel):
    timestamp: datetime
    engine: str
    operation: str
    inputs: dict
    output: dict
    notes: str | None = None
