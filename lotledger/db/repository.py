"""Data access layer for Lot Ledger."""

import json
import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from lotledger.ledger.store import LotStore
from lotledger.models.lot import Lot
from lotledger.models.results import AuditEntry
from lotledger.models.transaction import Transaction

logger = logging.getLogger(__name__)

# One lock per (database, account, symbol), shared by every connection in the
# process so two writers never rebuild the same symbol at once.
_KEY_LOCKS: dict[tuple[str, str, str], threading.RLock] = {}
_KEY_LOCKS_GUARD = threading.Lock()


def _key_lock(database: str, account: str, symbol: str) -> threading.RLock:
    with _KEY_LOCKS_GUARD:
        return _KEY_LOCKS.setdefault((database, account, symbol), threading.RLock())


def _dec(value) -> str | None:
    return str(value) if value is not None else None


class LotRepository:
    """Persistence for transactions, lots, and the audit log.

    Writes commit immediately unless they run inside ``unit_of_work``, in
    which case the whole block commits or rolls back together.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._depth = 0
        row = conn.execute("PRAGMA database_list").fetchone()
        self._database = row[2] if row and row[2] else f"memory:{id(conn)}"

    def _commit(self) -> None:
        if self._depth == 0:
            self.conn.commit()

    @contextmanager
    def unit_of_work(self, account: str, symbol: str) -> Iterator["LotRepository"]:
        """Serialize work on one account/symbol and make it atomic.

        The outermost unit opens an immediate transaction, so reads made inside
        it already hold the database write lock. Another connection, in this
        process or another one, cannot change the lots between read and write.
        """
        with _key_lock(self._database, account, symbol):
            if self._depth == 0:
                self.conn.execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self.conn.rollback()
                    logger.debug("Rolled back unit of work for %s/%s", account, symbol)
                raise
            self._depth -= 1
            if self._depth == 0:
                self.conn.commit()

    # --- Transactions ---

    def save_transaction(self, transaction: Transaction) -> bool:
        """Insert a transaction. Returns False if its id was already stored."""
        cursor = self.conn.execute(
            """INSERT OR IGNORE INTO transactions
               (id, account, symbol, transaction_date, action, category,
                quantity, price, amount, ratio, description)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                transaction.id,
                transaction.account,
                transaction.symbol,
                transaction.transaction_date.isoformat(),
                transaction.action,
                transaction.category.value,
                str(transaction.quantity),
                _dec(transaction.price),
                _dec(transaction.amount),
                _dec(transaction.ratio),
                transaction.description,
            ),
        )
        self._commit()
        return cursor.rowcount > 0

    def save_transactions(self, transactions: Iterable[Transaction]) -> int:
        """Insert transactions. Returns how many were new."""
        inserted = 0
        depth, self._depth = self._depth, self._depth + 1
        try:
            for transaction in transactions:
                inserted += self.save_transaction(transaction)
        finally:
            self._depth = depth
        self._commit()
        return inserted

    def get_transactions(self, account: str, symbol: str | None = None) -> list[Transaction]:
        """Transactions for an account in date order, then import order."""
        query = "SELECT * FROM transactions WHERE account = ?"
        params: tuple = (account,)
        if symbol:
            query += " AND symbol = ?"
            params += (symbol,)
        cursor = self.conn.execute(query + " ORDER BY transaction_date, rowid", params)
        columns = [desc[0] for desc in cursor.description]
        transactions = []
        for row in cursor.fetchall():
            record = dict(zip(columns, row))
            record.pop("created_at", None)
            transactions.append(Transaction.model_validate(record))
        return transactions

    def has_transactions(self, account: str, symbol: str | None = None) -> bool:
        query = "SELECT 1 FROM transactions WHERE account = ?"
        params: tuple = (account,)
        if symbol:
            query += " AND symbol = ?"
            params += (symbol,)
        return self.conn.execute(query + " LIMIT 1", params).fetchone() is not None

    def accounts(self) -> list[str]:
        cursor = self.conn.execute(
            "SELECT account FROM transactions UNION SELECT account FROM lots ORDER BY account"
        )
        return [row[0] for row in cursor.fetchall()]

    # --- Lots ---

    def save_lot(self, lot: Lot) -> None:
        """Insert or update a lot, keeping its position within its symbol."""
        self.conn.execute(
            """INSERT OR REPLACE INTO lots
               (id, account, symbol, position, acquisition_date, status,
                provenance, document, updated_at)
               VALUES (?, ?, ?,
                       COALESCE((SELECT position FROM lots WHERE id = ?),
                                (SELECT COALESCE(MAX(position) + 1, 0) FROM lots
                                 WHERE account = ? AND symbol = ?)),
                       ?, ?, ?, ?, datetime('now'))""",
            (
                lot.id,
                lot.account,
                lot.symbol,
                lot.id,
                lot.account,
                lot.symbol,
                lot.acquisition_date.isoformat(),
                lot.status.value,
                lot.provenance.value,
                lot.model_dump_json(),
            ),
        )
        self._commit()

    def save_lots(self, lots: Iterable[Lot]) -> None:
        depth, self._depth = self._depth, self._depth + 1
        try:
            for lot in lots:
                self.save_lot(lot)
        finally:
            self._depth = depth
        self._commit()

    def replace_lots(self, account: str, symbol: str, lots: Iterable[Lot]) -> None:
        """Swap the stored lots of one account/symbol for a rebuilt set."""
        lots = list(lots)
        for lot in lots:
            if (lot.account, lot.symbol) != (account, symbol):
                raise ValueError(f"Lot {lot.id} belongs to {lot.account}/{lot.symbol}")
        self.conn.execute(
            "DELETE FROM lots WHERE account = ? AND symbol = ?", (account, symbol)
        )
        for position, lot in enumerate(lots):
            self.conn.execute(
                """INSERT INTO lots
                   (id, account, symbol, position, acquisition_date, status,
                    provenance, document)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    lot.id,
                    account,
                    symbol,
                    position,
                    lot.acquisition_date.isoformat(),
                    lot.status.value,
                    lot.provenance.value,
                    lot.model_dump_json(),
                ),
            )
        self._commit()

    def get_lots(self, account: str, symbol: str | None = None) -> list[Lot]:
        """Lots for an account, grouped by symbol in stored order."""
        query = "SELECT document FROM lots WHERE account = ?"
        params: tuple = (account,)
        if symbol:
            query += " AND symbol = ?"
            params += (symbol,)
        cursor = self.conn.execute(query + " ORDER BY symbol, position", params)
        return [Lot.model_validate_json(row[0]) for row in cursor.fetchall()]

    def load_store(self, account: str | None = None, symbol: str | None = None) -> LotStore:
        """Hydrate a LotStore from stored lots, narrowed by account and symbol when given."""
        accounts = [account] if account else self.accounts()
        return LotStore(lot for acct in accounts for lot in self.get_lots(acct, symbol))

    # --- Audit log ---

    def save_audit_entry(self, entry: AuditEntry) -> None:
        """Insert an audit log entry."""
        self.conn.execute(
            """INSERT INTO audit_log (timestamp, engine, operation, inputs, output, notes)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                entry.timestamp.isoformat(),
                entry.engine,
                entry.operation,
                json.dumps(entry.inputs, default=str),
                json.dumps(entry.output, default=str),
                entry.notes,
            ),
        )
        self._commit()

    def get_audit_entries(self, engine: str | None = None) -> list[dict]:
        """Retrieve audit log records, oldest first."""
        if engine:
            cursor = self.conn.execute(
                "SELECT * FROM audit_log WHERE engine = ? ORDER BY id", (engine,)
            )
        else:
            cursor = self.conn.execute("SELECT * FROM audit_log ORDER BY id")
        columns = [desc[0] for desc in cursor.description]
        rows = []
        for row in cursor.fetchall():
            record = dict(zip(columns, row))
            record["inputs"] = json.loads(record["inputs"])
            record["output"] = json.loads(record["output"])
            rows.append(record)
        return rows
