"""Tests for CLI commands."""

import json
from decimal import Decimal

import pytest
from typer.testing import CliRunner

from lotledger.cli import app
from lotledger.db.repository import LotRepository
from lotledger.db.schema import create_schema

runner = CliRunner(env={"COLUMNS": "200"})

TRANSACTIONS = [
    {
        "id": "buy-1",
        "account": "acct-1",
        "symbol": "ACME",
        "transaction_date": "2023-01-10",
        "action": "Buy",
        "quantity": "10",
        "amount": "-100",
    },
    {
        "id": "buy-2",
        "account": "acct-1",
        "symbol": "ACME",
        "transaction_date": "2023-06-10",
        "action": "Buy",
        "quantity": "10",
        "amount": "-200",
    },
    {
        "id": "sell-1",
        "account": "acct-1",
        "symbol": "ACME",
        "transaction_date": "2024-03-01",
        "action": "Sell",
        "quantity": "15",
        "amount": "450",
    },
]


@pytest.fixture
def tx_file(tmp_path):
    path = tmp_path / "transactions.json"
    path.write_text(json.dumps(TRANSACTIONS))
    return path


@pytest.fixture
def processed_db(db_path, tx_file):
    assert runner.invoke(app, ["import-transactions", str(tx_file), "--db", str(db_path)]).exit_code == 0
    assert runner.invoke(app, ["process", "--account", "acct-1", "--db", str(db_path)]).exit_code == 0
    return db_path


def _stored_lots(db_path, symbol="ACME"):
    repo = LotRepository(create_schema(db_path))
    lots = repo.get_lots("acct-1", symbol)
    repo.conn.close()
    return lots


class TestCLI:
    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Lot Ledger" in result.output

    @pytest.mark.parametrize(
        "command", ["init", "import-transactions", "process", "bootstrap", "lots", "split", "gains"]
    )
    def test_command_help(self, command):
        result = runner.invoke(app, [command, "--help"])
        assert result.exit_code == 0

    def test_init(self, db_path):
        result = runner.invoke(app, ["init", "--db", str(db_path)])
        assert result.exit_code == 0
        assert db_path.exists()

    def test_db_env_var(self, tmp_path, monkeypatch):
        path = tmp_path / "env.db"
        monkeypatch.setenv("LOTLEDGER_DB", str(path))
        result = runner.invoke(app, ["init"])
        assert result.exit_code == 0
        assert path.exists()

    def test_missing_database(self, tmp_path):
        result = runner.invoke(app, ["lots", "--account", "acct-1", "--db", str(tmp_path / "none.db")])
        assert result.exit_code == 1
        assert "No database found" in result.output


class TestImport:
    def test_import_is_idempotent(self, db_path, tx_file):
        first = runner.invoke(app, ["import-transactions", str(tx_file), "--db", str(db_path)])
        assert first.exit_code == 0
        assert "Imported 3 new transaction(s)" in first.output

        second = runner.invoke(app, ["import-transactions", str(tx_file), "--db", str(db_path)])
        assert "Imported 0 new transaction(s)" in second.output
        assert "3 already present" in second.output

    def test_invalid_json(self, db_path, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{not json")
        result = runner.invoke(app, ["import-transactions", str(bad), "--db", str(db_path)])
        assert result.exit_code == 1

    def test_invalid_transaction(self, db_path, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps([{"id": "x"}]))
        result = runner.invoke(app, ["import-transactions", str(bad), "--db", str(db_path)])
        assert result.exit_code == 1
        assert "invalid transaction" in result.output


class TestProcess:
    def test_process_fifo(self, processed_db):
        lots = _stored_lots(processed_db)
        assert [lot.id for lot in lots] == ["lot-buy-1", "lot-buy-2"]
        assert lots[1].remaining_quantity == Decimal("5")

    def test_process_lifo(self, processed_db):
        result = runner.invoke(
            app, ["process", "--account", "acct-1", "--method", "lifo", "--db", str(processed_db)]
        )
        assert result.exit_code == 0
        assert "LIFO" in result.output
        assert _stored_lots(processed_db)[0].remaining_quantity == Decimal("5")

    def test_failing_symbol_exits_nonzero(self, processed_db):
        result = runner.invoke(
            app,
            ["process", "--account", "acct-1", "--method", "SPECIFIC_ID", "--db", str(processed_db)],
        )
        assert result.exit_code == 1
        assert "InsufficientLotQuantityError" in result.output
        # The failed rebuild leaves the stored lots alone.
        assert _stored_lots(processed_db)[1].remaining_quantity == Decimal("5")

    def test_oversell_warns(self, db_path, tmp_path):
        txs = tmp_path / "oversell.json"
        txs.write_text(json.dumps([TRANSACTIONS[0], {**TRANSACTIONS[2], "quantity": "20"}]))
        runner.invoke(app, ["import-transactions", str(txs), "--db", str(db_path)])
        result = runner.invoke(app, ["process", "--account", "acct-1", "--db", str(db_path)])
        assert result.exit_code == 0
        assert "oversold" in result.output

    def test_audit_entry_written(self, processed_db):
        repo = LotRepository(create_schema(processed_db))
        entries = repo.get_audit_entries("LedgerProcessor")
        repo.conn.close()
        assert entries[-1]["inputs"]["account"] == "acct-1"


class TestLotsAndGains:
    def test_lots_table(self, processed_db):
        result = runner.invoke(app, ["lots", "--account", "acct-1", "--db", str(processed_db)])
        assert result.exit_code == 0
        assert "lot-buy-1" in result.output
        assert "CLOSED" in result.output
        assert "PARTIAL" in result.output

    def test_no_lots(self, processed_db):
        result = runner.invoke(
            app, ["lots", "--account", "acct-1", "--symbol", "NOPE", "--db", str(processed_db)]
        )
        assert result.exit_code == 0
        assert "No lots found" in result.output

    def test_gains(self, processed_db):
        result = runner.invoke(
            app,
            ["gains", "--account", "acct-1", "--symbol", "ACME", "--price", "25",
             "--as-of", "2024-06-10", "--db", str(processed_db)],
        )
        assert result.exit_code == 0
        assert "250.00" in result.output
        assert "Open lots" in result.output

    def test_gains_bad_price(self, processed_db):
        result = runner.invoke(
            app,
            ["gains", "--account", "acct-1", "--symbol", "ACME", "--price", "abc",
             "--db", str(processed_db)],
        )
        assert result.exit_code == 1


class TestSplit:
    def test_split_is_applied_and_replayed(self, processed_db):
        result = runner.invoke(
            app,
            ["split", "--account", "acct-1", "--symbol", "ACME", "--ratio", "2",
             "--date", "2024-06-01", "--db", str(processed_db)],
        )
        assert result.exit_code == 0
        assert "Applied 2:1 split to 2 lot(s) of ACME" in result.output
        assert _stored_lots(processed_db)[1].remaining_quantity == Decimal("10")

        rebuilt = runner.invoke(app, ["process", "--account", "acct-1", "--db", str(processed_db)])
        assert rebuilt.exit_code == 0
        lots = _stored_lots(processed_db)
        assert lots[1].remaining_quantity == Decimal("10")
        assert lots[0].original_quantity == Decimal("20")

    def test_backdated_split_matches_rebuild(self, db_path, tmp_path):
        history = tmp_path / "history.json"
        sell_5 = {**TRANSACTIONS[2], "quantity": "5", "amount": "50"}
        history.write_text(json.dumps([TRANSACTIONS[0], sell_5]))
        runner.invoke(app, ["import-transactions", str(history), "--db", str(db_path)])
        runner.invoke(app, ["process", "--account", "acct-1", "--db", str(db_path)])

        result = runner.invoke(
            app,
            ["split", "--account", "acct-1", "--symbol", "ACME", "--ratio", "2",
             "--date", "2024-01-01", "--db", str(db_path)],
        )
        assert result.exit_code == 0
        lot = _stored_lots(db_path)[0]
        assert lot.original_quantity == Decimal("20")
        assert lot.remaining_quantity == Decimal("15")

        runner.invoke(app, ["process", "--account", "acct-1", "--db", str(db_path)])
        assert _stored_lots(db_path)[0].remaining_quantity == Decimal("15")

    def test_two_splits_on_one_date_are_both_kept(self, processed_db):
        for ratio in ("2", "3"):
            result = runner.invoke(
                app,
                ["split", "--account", "acct-1", "--symbol", "ACME", "--ratio", ratio,
                 "--date", "2024-06-01", "--db", str(processed_db)],
            )
            assert result.exit_code == 0
        assert _stored_lots(processed_db)[1].remaining_quantity == Decimal("30")

        runner.invoke(app, ["process", "--account", "acct-1", "--db", str(processed_db)])
        assert _stored_lots(processed_db)[1].remaining_quantity == Decimal("30")

    def test_repeated_split_is_rejected(self, processed_db):
        args = ["split", "--account", "acct-1", "--symbol", "ACME", "--ratio", "2",
                "--date", "2024-06-01", "--db", str(processed_db)]
        assert runner.invoke(app, args).exit_code == 0
        result = runner.invoke(app, args)
        assert result.exit_code == 1
        assert "already recorded" in result.output
        assert _stored_lots(processed_db)[1].remaining_quantity == Decimal("10")

    def test_invalid_ratio(self, processed_db):
        result = runner.invoke(
            app,
            ["split", "--account", "acct-1", "--symbol", "ACME", "--ratio", "0",
             "--date", "2024-06-01", "--db", str(processed_db)],
        )
        assert result.exit_code == 1
        assert "Invalid corporate action ratio" in result.output

    def test_ratio_one_changes_nothing(self, processed_db):
        result = runner.invoke(
            app,
            ["split", "--account", "acct-1", "--symbol", "ACME", "--ratio", "1",
             "--date", "2024-06-01", "--db", str(processed_db)],
        )
        assert result.exit_code == 0
        assert "nothing to adjust" in result.output


class TestBootstrap:
    def test_bootstrap_skips_traded_symbols(self, processed_db, tmp_path):
        snapshot = tmp_path / "snapshot.json"
        snapshot.write_text(
            json.dumps(
                [
                    {"symbol": "ACME", "quantity": "5", "cost_basis": "100"},
                    {"symbol": "NEW", "quantity": "8"},
                ]
            )
        )
        result = runner.invoke(
            app,
            ["bootstrap", str(snapshot), "--account", "acct-1", "--date", "2022-12-31",
             "--db", str(processed_db)],
        )
        assert result.exit_code == 0
        assert "transaction history exists" in result.output

        new_lots = _stored_lots(processed_db, "NEW")
        assert len(new_lots) == 1
        assert new_lots[0].low_confidence
        assert new_lots[0].cost_basis == Decimal("0")
        assert len(_stored_lots(processed_db)) == 2

    def test_bootstrap_needs_a_date(self, db_path, tmp_path):
        snapshot = tmp_path / "snapshot.json"
        snapshot.write_text(json.dumps([{"symbol": "NEW", "quantity": "8"}]))
        result = runner.invoke(app, ["bootstrap", str(snapshot), "--account", "acct-1", "--db", str(db_path)])
        assert result.exit_code == 1
