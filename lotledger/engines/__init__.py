"""Lot accounting engines."""

from lotledger.engines.allocation import AllocationEngine, holding_term
from lotledger.engines.corporate_actions import CorporateActionAdjuster
from lotledger.engines.lot_factory import LotFactory

__all__ = [
    "AllocationEngine",
    "CorporateActionAdjuster",
    "LotFactory",
    "holding_term",
]
