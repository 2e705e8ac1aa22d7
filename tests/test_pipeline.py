"""
Tests for the statement pipeline (parse → dedupe → classify → persist → reconcile).
"""

from decimal import Decimal

import pytest

from ledgerflow.schemas import Category, ObligationKind, ObligationStatus, TransactionType
from ledgerflow.services import StatementPipeline


@pytest.fixture
def pipeline(store, config):
    return StatementPipeline(store, config)


class TestPipelineRun:
    """Tests for one statement upload."""

    def test_counts(self, pipeline, store, sample_csv_statement):
        invoice_id = store.create_obligation(
            "acme",
            ObligationKind.RECEIVABLE,
            Decimal("12000"),
            number="INV-1001",
            counterparty="Globex Corp",
        )

        result = pipeline.run(sample_csv_statement.encode("utf-8"), "delimited", "acme")

        assert result.success
        assert result.parsed == 4
        assert result.skipped == 3
        assert result.duplicates == 0
        assert result.auto_approved == 2
        assert result.needs_review == 2
        assert result.matched == 1
        assert store.get_stats("acme")["transactions_total"] == 4

        by_description = {t.description: t for t in result.transactions}
        assert by_description["SALARY TRANSFER"].category == Category.SALARIES
        assert by_description["Office Rent March"].category == Category.RENT
        payment = by_description["Payment from Globex INV-1001"]
        assert payment.matched_receivable_id == invoice_id
        assert payment.transaction_type == TransactionType.INVOICE_PAYMENT
        assert store.get_obligation(invoice_id).status == ObligationStatus.SETTLED
        assert store.get_owner("acme").cash_balance == Decimal("12000")

    def test_reupload_is_deduplicated(self, pipeline, store, sample_csv_statement):
        pipeline.run(sample_csv_statement, "delimited", "acme")

        again = pipeline.run(sample_csv_statement, "delimited", "acme")

        assert again.parsed == 4
        assert again.duplicates == 4
        assert again.transactions == []
        assert store.get_stats("acme")["transactions_total"] == 4

    def test_dedupe_is_per_owner(self, pipeline, store, sample_csv_statement):
        pipeline.run(sample_csv_statement, "delimited", "acme")
        other = pipeline.run(sample_csv_statement, "delimited", "globex")

        assert other.duplicates == 0
        assert store.get_stats("globex")["transactions_total"] == 4

    def test_duplicates_within_one_statement(self, pipeline):
        text = (
            "Date,Description,Amount\n"
            "2024-04-02,Slack subscription,-850.00\n"
            "2024-04-02,Slack subscription,-850.00\n"
        )
        result = pipeline.run(text, "delimited", "acme")

        assert result.parsed == 2
        assert result.duplicates == 1
        assert len(result.transactions) == 1

    def test_dedupe_disabled(self, store, config, sample_csv_statement):
        config.ingest.dedupe = False
        pipeline = StatementPipeline(store, config)
        pipeline.run(sample_csv_statement, "delimited", "acme")

        again = pipeline.run(sample_csv_statement, "delimited", "acme")

        assert again.duplicates == 0
        assert store.get_stats("acme")["transactions_total"] == 8

    def test_document_statement(self, pipeline, sample_document_statement):
        result = pipeline.run(sample_document_statement, "document", "acme")

        assert [t.amount for t in result.transactions] == [
            Decimal("-1200.00"),
            Decimal("15000.00"),
        ]

    def test_creates_owner(self, pipeline, store, sample_signed_statement):
        pipeline.run(sample_signed_statement, "delimited", "newco")
        assert store.get_owner("newco") is not None

    def test_to_dict(self, pipeline, sample_signed_statement):
        data = pipeline.run(sample_signed_statement, "delimited", "acme").to_dict()

        assert data["owner_id"] == "acme"
        assert data["parsed"] == 3
        assert len(data["transaction_ids"]) == 3
        assert data["errors"] == []
