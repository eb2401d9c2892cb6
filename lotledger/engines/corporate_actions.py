"""Corporate action adjuster: rescale lots for stock splits and reverse splits.

A split multiplies every share count by the ratio and divides the per-share
price by it. Total dollar cost never changes.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal, InvalidOperation

from lotledger.exceptions import InvalidRatioError
from lotledger.models.enums import CorporateActionType
from lotledger.models.lot import CorporateActionRecord, Lot
from lotledger.models.results import AdjustmentResult


def to_ratio(value: Decimal | int | float | str) -> Decimal:
    """Coerce a ratio to Decimal and reject anything that is not > 0."""
    try:
        ratio = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise InvalidRatioError(None, f"not a number: {value!r}") from None
    if not ratio.is_finite() or ratio <= 0:
        raise InvalidRatioError(ratio)
    return ratio


def split_ratio_from_quantity(held: Decimal, reported: Decimal) -> Decimal:
    """Infer a split ratio from a corporate-action row that reports the new holding.

    Brokerage split rows carry the post-split share count in their quantity
    field, so the ratio is reported / held.
    """
    if held <= 0:
        raise InvalidRatioError(None, "no shares held on the effective date")
    if reported <= 0:
        raise InvalidRatioError(None, f"reported post-split quantity is {reported}")
    return reported / held


def describe_ratio(ratio: Decimal) -> str:
    if ratio > 1:
        return f"{ratio.normalize():f}:1 split"
    return f"1:{(1 / ratio).normalize():f} reverse split"


class CorporateActionAdjuster:
    """Applies splits to the lots of one account/symbol."""

    @staticmethod
    def action_type_for(
        ratio: Decimal, action_type: CorporateActionType | str | None = None
    ) -> CorporateActionType | None:
        """Resolve the action type from the ratio, checking any explicit type."""
        implied = None
        if ratio > 1:
            implied = CorporateActionType.SPLIT
        elif ratio < 1:
            implied = CorporateActionType.REVERSE_SPLIT

        if action_type is None:
            return implied
        action_type = CorporateActionType(action_type)
        if action_type != implied:
            raise InvalidRatioError(ratio, f"ratio does not describe a {action_type}")
        return action_type

    def apply(
        self,
        lots: Sequence[Lot],
        account: str,
        symbol: str,
        ratio: Decimal | int | float | str,
        effective_date: date,
        action_type: CorporateActionType | str | None = None,
    ) -> AdjustmentResult:
        """Rescale every lot of account/symbol acquired on or before effective_date.

        Open, partial, and closed lots are all adjusted so that sale history
        stays comparable. The caller passes the complete lot set for the
        account/symbol once; the adjuster never looks lots up itself.
        A ratio of exactly 1 changes nothing and records nothing.
        """
        ratio = to_ratio(ratio)
        resolved = self.action_type_for(ratio, action_type)
        targets = [lot for lot in lots if lot.account == account and lot.symbol == symbol]
        result = AdjustmentResult(
            account=account,
            symbol=symbol,
            action_type=resolved,
            effective_date=effective_date,
            ratio=ratio,
        )

        if resolved is None:
            result.untouched_lot_ids = [lot.id for lot in targets]
            return result

        for lot in targets:
            if lot.acquisition_date > effective_date:
                result.untouched_lot_ids.append(lot.id)
                continue
            record = CorporateActionRecord(
                action_type=resolved,
                effective_date=effective_date,
                ratio=ratio,
                description=describe_ratio(ratio),
                allocations_before=len(lot.sale_allocations),
            )
            lot.apply_split(record)
            result.adjusted_lot_ids.append(lot.id)
            result.records.append(record)

        return result
