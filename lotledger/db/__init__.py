"""Database layer for Lot Ledger."""

from lotledger.db.repository import LotRepository
from lotledger.db.schema import create_schema

__all__ = ["LotRepository", "create_schema"]
