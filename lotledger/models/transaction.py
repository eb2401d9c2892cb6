"""Brokerage transaction and snapshot position models."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from lotledger.models.enums import TransactionCategory

# Brokerage action names as they appear in exports, mapped once to a category.
ACTION_CATEGORIES: dict[str, TransactionCategory] = {
    # Increase holdings
    "Buy": TransactionCategory.ACQUISITION,
    "Reinvest Shares": TransactionCategory.ACQUISITION,
    "Assigned": TransactionCategory.ACQUISITION,
    # Decrease holdings
    "Sell": TransactionCategory.DISPOSITION,
    # No change to share holdings
    "Sell to Open": TransactionCategory.NEUTRAL,
    "Reinvest Dividend": TransactionCategory.NEUTRAL,
    "Qual Div Reinvest": TransactionCategory.NEUTRAL,
    "Long Term Cap Gain Reinvest": TransactionCategory.NEUTRAL,
    "Expired": TransactionCategory.NEUTRAL,
    "Cash Dividend": TransactionCategory.NEUTRAL,
    "Qualified Dividend": TransactionCategory.NEUTRAL,
    "Special Qual Div": TransactionCategory.NEUTRAL,
    "Non-Qualified Div": TransactionCategory.NEUTRAL,
    "Bank Interest": TransactionCategory.NEUTRAL,
    "ADR Mgmt Fee": TransactionCategory.NEUTRAL,
    "Cash In Lieu": TransactionCategory.NEUTRAL,
    # Share count changes without a trade
    "Stock Split": TransactionCategory.CORPORATE_ACTION,
    "Reverse Split": TransactionCategory.CORPORATE_ACTION,
}


def categorize_action(action: str) -> TransactionCategory:
    """Map a brokerage action name to its category. Unknown actions are NEUTRAL."""
    return ACTION_CATEGORIES.get(action.strip(), TransactionCategory.NEUTRAL)


class Transaction(BaseModel):
    """A single brokerage transaction. Immutable once constructed."""

    model_config = ConfigDict(frozen=True)

    id: str
    account: str
    symbol: str
    transaction_date: date
    action: str = ""
    category: TransactionCategory
    quantity: Decimal = Decimal("0")
    price: Decimal | None = None
    amount: Decimal | None = None
    ratio: Decimal | None = None  # explicit split ratio for corporate actions
    description: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _derive_category(cls, data):
        if isinstance(data, dict) and not data.get("category"):
            data = {**data, "category": categorize_action(data.get("action") or "")}
        return data

    @property
    def signature(self) -> tuple:
        """Fields that identify the same transaction imported twice."""
        return (
            self.account,
            self.symbol,
            self.transaction_date,
            self.action,
            self.quantity,
            self.amount,
            self.ratio,
        )

    @property
    def unit_price(self) -> Decimal | None:
        """Per-share value: |amount| / quantity, else the reported price."""
        if self.amount is not None and self.quantity > 0:
            return abs(self.amount) / self.quantity
        if self.price is not None:
            return abs(self.price)
        return None


class SnapshotPosition(BaseModel):
    """One holding from a point-in-time portfolio snapshot."""

    symbol: str
    quantity: Decimal
    cost_basis: Decimal | None = Field(default=None, ge=0)
    snapshot_date: date
    description: str | None = None
