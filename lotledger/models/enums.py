"""Enumerations for Lot Ledger."""

from enum import StrEnum


class TransactionCategory(StrEnum):
    ACQUISITION = "ACQUISITION"
    DISPOSITION = "DISPOSITION"
    NEUTRAL = "NEUTRAL"
    CORPORATE_ACTION = "CORPORATE_ACTION"


class LotStatus(StrEnum):
    OPEN = "OPEN"
    PARTIAL = "PARTIAL"
    CLOSED = "CLOSED"


class LotProvenance(StrEnum):
    TRANSACTION = "TRANSACTION"
    SNAPSHOT = "SNAPSHOT"


class CostBasisMethod(StrEnum):
    FIFO = "FIFO"
    LIFO = "LIFO"
    AVERAGE_COST = "AVERAGE_COST"
    SPECIFIC_ID = "SPECIFIC_ID"


class CorporateActionType(StrEnum):
    SPLIT = "SPLIT"
    REVERSE_SPLIT = "REVERSE_SPLIT"


class HoldingPeriod(StrEnum):
    SHORT_TERM = "SHORT_TERM"
    LONG_TERM = "LONG_TERM"
