"""Runtime configuration for Lot Ledger."""

import os
from decimal import Decimal
from pathlib import Path

from pydantic import BaseModel, Field

from lotledger.models.enums import CostBasisMethod

DB_ENV_VAR = "LOTLEDGER_DB"
DEFAULT_DB_PATH = Path.home() / ".lotledger" / "lotledger.db"


def default_db_path() -> Path:
    """Database location: $LOTLEDGER_DB if set, else ~/.lotledger/lotledger.db."""
    override = os.environ.get(DB_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return DEFAULT_DB_PATH


class LedgerConfig(BaseModel):
    """Accounting settings shared by the processor and the CLI."""

    cost_basis_method: CostBasisMethod = CostBasisMethod.FIFO
    # Decimal places used when splitting an average-cost sale across lots.
    quantity_places: int = Field(default=8, ge=0, le=18)

    @property
    def quantity_quantum(self) -> Decimal:
        return Decimal(1).scaleb(-self.quantity_places)


DEFAULT_LEDGER_CONFIG = LedgerConfig()
