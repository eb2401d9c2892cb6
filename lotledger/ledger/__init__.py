"""Lot store and batch processing."""

from lotledger.ledger.processor import LedgerProcessor
from lotledger.ledger.store import LotStore

__all__ = ["LedgerProcessor", "LotStore"]
