"""In-memory lot store keyed by (account, symbol)."""

from collections.abc import Iterable

from lotledger.exceptions import DuplicateLotError, LotInvariantError, LotNotFoundError
from lotledger.models.lot import Lot

LotKey = tuple[str, str]


class LotStore:
    """Ledger of lots per account and symbol, in insertion order.

    Lots are never deleted. A key's lots can be replaced wholesale when its
    history is rebuilt; the store itself holds no locks.
    """

    def __init__(self, lots: Iterable[Lot] = ()):
        self._lots: dict[LotKey, list[Lot]] = {}
        self._keys_by_id: dict[str, LotKey] = {}
        self.add_all(lots)

    def __len__(self) -> int:
        return len(self._keys_by_id)

    def __contains__(self, lot_id: object) -> bool:
        return lot_id in self._keys_by_id

    def add(self, lot: Lot) -> None:
        self.add_all([lot])

    def add_all(self, lots: Iterable[Lot]) -> None:
        """Add lots; rejects the whole batch if any id is already present."""
        lots = list(lots)
        seen: set[str] = set()
        for lot in lots:
            if lot.id in self._keys_by_id or lot.id in seen:
                raise DuplicateLotError(lot.id)
            seen.add(lot.id)
        for lot in lots:
            key = (lot.account, lot.symbol)
            self._lots.setdefault(key, []).append(lot)
            self._keys_by_id[lot.id] = key

    def replace(self, account: str, symbol: str, lots: Iterable[Lot]) -> None:
        """Swap in a rebuilt lot set for one account/symbol."""
        key = (account, symbol)
        lots = list(lots)
        seen: set[str] = set()
        for lot in lots:
            if (lot.account, lot.symbol) != key:
                raise LotInvariantError(lot.id, f"lot belongs to {lot.account}/{lot.symbol}")
            owner = self._keys_by_id.get(lot.id)
            if lot.id in seen or (owner is not None and owner != key):
                raise DuplicateLotError(lot.id)
            seen.add(lot.id)

        for old in self._lots.get(key, []):
            del self._keys_by_id[old.id]
        self._lots[key] = lots
        for lot in lots:
            self._keys_by_id[lot.id] = key

    def get(self, lot_id: str) -> Lot:
        key = self._keys_by_id.get(lot_id)
        if key is None:
            raise LotNotFoundError(lot_id)
        for lot in self._lots[key]:
            if lot.id == lot_id:
                return lot
        raise LotNotFoundError(lot_id)

    def lots_for(self, account: str, symbol: str) -> list[Lot]:
        """All lots for an account/symbol, any status, in insertion order."""
        return list(self._lots.get((account, symbol), []))

    def open_lots_for(self, account: str, symbol: str) -> list[Lot]:
        return [lot for lot in self.lots_for(account, symbol) if lot.is_open]

    def has_lots(self, account: str, symbol: str) -> bool:
        return bool(self._lots.get((account, symbol)))

    def accounts(self) -> list[str]:
        return sorted({account for account, _ in self._lots})

    def symbols(self, account: str) -> list[str]:
        return sorted(symbol for acct, symbol in self._lots if acct == account and self._lots[(acct, symbol)])

    def all_lots(self, account: str | None = None) -> list[Lot]:
        return [
            lot
            for (acct, _), lots in self._lots.items()
            if account is None or acct == account
            for lot in lots
        ]
