"""Data models for Lot Ledger."""

from lotledger.models.enums import (
    CorporateActionType,
    CostBasisMethod,
    HoldingPeriod,
    LotProvenance,
    LotStatus,
    TransactionCategory,
)
from lotledger.models.lot import (
    QUANTITY_TOLERANCE,
    CorporateActionRecord,
    Lot,
    SaleAllocationRecord,
)
from lotledger.models.results import (
    AdjustmentResult,
    AllocationResult,
    AuditEntry,
    BatchReport,
    LotSummary,
    PartialAllocationWarning,
    RealizedByTerm,
    SymbolReport,
    UnrealizedPosition,
)
from lotledger.models.transaction import (
    ACTION_CATEGORIES,
    SnapshotPosition,
    Transaction,
    categorize_action,
)

__all__ = [
    "ACTION_CATEGORIES",
    "AdjustmentResult",
    "AllocationResult",
    "AuditEntry",
    "BatchReport",
    "CorporateActionRecord",
    "CorporateActionType",
    "CostBasisMethod",
    "HoldingPeriod",
    "Lot",
    "LotProvenance",
    "LotStatus",
    "LotSummary",
    "PartialAllocationWarning",
    "QUANTITY_TOLERANCE",
    "RealizedByTerm",
    "SaleAllocationRecord",
    "SnapshotPosition",
    "SymbolReport",
    "Transaction",
    "TransactionCategory",
    "UnrealizedPosition",
    "categorize_action",
]
