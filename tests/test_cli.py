"""Tests for CLI commands."""

import json
from decimal import Decimal

import pytest

from ledgerflow.runner.main import create_cli, main
from ledgerflow.schemas import ObligationKind, ObligationStatus
from ledgerflow.state_store import StateStore


class TestCLICommandRegistry:
    """Tests for CLI command registration."""

    def test_all_commands_registered(self):
        parser = create_cli()
        subparsers_action = next(a for a in parser._actions if a.dest == "command")

        commands = set(subparsers_action.choices)

        assert {"init", "ingest", "parse", "review", "three-way", "learned", "status"} <= commands

    def test_ingest_requires_owner(self):
        with pytest.raises(SystemExit):
            create_cli().parse_args(["ingest", "statement.csv"])

    def test_review_actions(self):
        parser = create_cli()

        args = parser.parse_args(["review", "recategorize", "1", "2", "--category", "Rent"])
        assert args.action == "recategorize"
        assert args.ids == [1, 2]
        assert args.category == "Rent"

        args = parser.parse_args(["review", "match-invoice", "7", "3"])
        assert (args.transaction_id, args.target_id) == (7, 3)

    def test_learned_flags_are_exclusive(self):
        with pytest.raises(SystemExit):
            create_cli().parse_args(["learned", "--owner", "acme", "--rebuild", "--clear"])


class TestCLICommands:
    """Tests for running commands end to end."""

    @pytest.fixture
    def config_path(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(f"state_db_path: {tmp_path / 'cli.db'}\n")
        return path

    @pytest.fixture
    def statement(self, tmp_path, sample_csv_statement):
        path = tmp_path / "march.csv"
        path.write_text(sample_csv_statement, encoding="utf-8")
        return path

    def test_no_command(self):
        assert main([]) == 1

    def test_init(self, tmp_path):
        path = tmp_path / "new.yaml"
        assert main(["-c", str(path), "init"]) == 0
        assert path.exists()
        assert main(["-c", str(path), "init"]) == 1

    def test_parse_prints_json(self, config_path, statement, capsys):
        assert main(["-c", str(config_path), "parse", str(statement), "--owner", "acme"]) == 0

        data = json.loads(capsys.readouterr().out)
        assert len(data["transactions"]) == 4
        assert data["skipped"] == 3

    def test_ingest_and_status(self, config_path, statement, tmp_path, capsys):
        assert main(["-c", str(config_path), "ingest", str(statement), "--owner", "acme"]) == 0
        assert "Parsed:        4" in capsys.readouterr().out

        assert main(["-c", str(config_path), "status", "--owner", "acme"]) == 0
        out = capsys.readouterr().out
        assert "Transactions total:   4" in out
        assert "Runway:" in out

    def test_review_flow(self, config_path, statement, tmp_path, capsys):
        main(["-c", str(config_path), "ingest", str(statement), "--owner", "acme"])
        store = StateStore(tmp_path / "cli.db")
        pending = store.get_pending_reviews("acme")
        capsys.readouterr()

        assert main(["-c", str(config_path), "review", "list", "--owner", "acme"]) == 0
        assert f"{len(pending)} pending" in capsys.readouterr().out

        assert main(["-c", str(config_path), "review", "approve", str(pending[0].id)]) == 0
        assert not store.get_transaction(pending[0].id).needs_review

    def test_match_invoice(self, config_path, tmp_path, capsys):
        text = "Date,Description,Amount\n2024-04-03,Customer payment Initech,4000.00\n"
        statement = tmp_path / "april.csv"
        statement.write_text(text)
        store = StateStore(tmp_path / "cli.db")
        invoice_id = store.create_obligation("acme", ObligationKind.RECEIVABLE, Decimal("10000"))
        main(["-c", str(config_path), "ingest", str(statement), "--owner", "acme"])
        txn = store.get_transactions("acme")[0]

        code = main(
            ["-c", str(config_path), "review", "match-invoice", str(txn.id), str(invoice_id)]
        )

        assert code == 0
        assert "balance 6000" in capsys.readouterr().out
        assert store.get_obligation(invoice_id).status == ObligationStatus.PARTIAL

    def test_errors_are_reported(self, config_path, capsys):
        assert main(["-c", str(config_path), "review", "approve", "999"]) == 1
        assert "not found" in capsys.readouterr().out

    def test_bad_config(self, tmp_path, capsys):
        path = tmp_path / "config.yaml"
        path.write_text("review:\n  auto_approve_threshold: 150\n")

        assert main(["-c", str(path), "status"]) == 1
        assert "Failed to load config" in capsys.readouterr().out

    def test_learned(self, config_path, capsys):
        assert main(["-c", str(config_path), "learned", "--owner", "acme"]) == 0
        assert "Vendor mappings:      0" in capsys.readouterr().out
