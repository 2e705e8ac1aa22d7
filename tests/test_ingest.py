"""Tests for statement ingestion (normalizer, resolver, builder)."""

from datetime import date
from decimal import Decimal

import pytest

from ledgerflow.config import IngestConfig
from ledgerflow.ingest import (
    ColumnMapping,
    RawRow,
    SkipReason,
    StatementFormat,
    normalize_statement,
    parse_money,
    parse_statement,
    parse_statement_date,
    resolve_columns,
)
from ledgerflow.ingest.normalizer import sniff_delimiter
from ledgerflow.ingest.resolver import resolve_document_line
from ledgerflow.schemas.transaction import Direction


class TestNormalizer:
    """Tests for raw statement normalization."""

    def test_strips_bom_and_trims_headers(self):
        """Byte-order mark and header whitespace are removed."""
        data = "\ufeff Date , Description ,Amount\n2024-01-02,Coffee,-4.50\n".encode()
        statement = normalize_statement(data, StatementFormat.DELIMITED)

        assert statement.headers == ["Date", "Description", "Amount"]
        assert statement.rows[0].values["Date"] == "2024-01-02"

    def test_malformed_line_becomes_error(self):
        """A line with too many fields is reported, not fatal."""
        text = (
            "Date,Description,Amount\n"
            "2024-01-02,Coffee,-4.50\n"
            "2024-01-03,A,B,C,D\n"
            "2024-01-04,Tea,-3\n"
        )
        statement = normalize_statement(text)

        assert len(statement.rows) == 2
        assert len(statement.errors) == 1
        assert statement.errors[0].line == 3
        assert "Expected 3 fields" in statement.errors[0].reason

    def test_bad_quoting_becomes_error(self):
        """A strict-mode CSV error on one line does not abort the rest."""
        text = 'Date,Description,Amount\n2024-01-02,"Coffee"x,-4.50\n2024-01-04,Tea,-3\n'
        statement = normalize_statement(text)

        assert [r.line for r in statement.rows] == [3]
        assert statement.errors[0].line == 2
        assert statement.errors[0].reason.startswith("Malformed record")

    def test_trailing_empty_cells_tolerated(self):
        """Exporters often append an empty trailing cell."""
        text = "Date,Description,Amount\n2024-01-02,Coffee,-4.50,\n"
        statement = normalize_statement(text)

        assert len(statement.rows) == 1
        assert statement.errors == []

    def test_blank_lines_skipped(self):
        text = "Date,Description,Amount\n\n2024-01-02,Coffee,-4.50\n,,\n"
        statement = normalize_statement(text)

        assert len(statement.rows) == 1

    def test_empty_statement(self):
        statement = normalize_statement("")
        assert statement.rows == []
        assert statement.errors == []

    def test_sniff_semicolon(self):
        assert sniff_delimiter("a;b;c\n1;2;3\n") == ";"

    def test_document_lines_need_leading_date(self, sample_document_statement):
        """Only lines starting with a date token become rows."""
        statement = normalize_statement(sample_document_statement, "document")

        assert statement.format == StatementFormat.DOCUMENT
        assert len(statement.rows) == 2
        assert statement.rows[0].values[0] == "05 Mar 2024"
        assert statement.rows[1].values[0] == "12/03/2024"
        assert statement.errors == []


class TestStatementDates:
    """Tests for statement date parsing."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("15/03/2024", date(2024, 3, 15)),
            ("15-03-24", date(2024, 3, 15)),
            ("5.3.2024", date(2024, 3, 5)),
            ("2024-03-15", date(2024, 3, 15)),
            ("2024/3/5", date(2024, 3, 5)),
            ("15 Mar 2024", date(2024, 3, 15)),
            ("15-March-2024", date(2024, 3, 15)),
        ],
    )
    def test_known_formats(self, text, expected):
        assert parse_statement_date(text) == expected

    def test_impossible_day_first_falls_through(self):
        """31/02 is not a date in any format."""
        assert parse_statement_date("31/02/2024") is None

    def test_pure_numbers_are_not_dates(self):
        assert parse_statement_date("12345") is None

    def test_generic_fallback_respects_year_range(self):
        assert parse_statement_date("March 15, 2024") == date(2024, 3, 15)
        assert parse_statement_date("March 15, 1999") is None
        assert parse_statement_date("March 15, 1999", min_year=1990) == date(1999, 3, 15)

    def test_garbage(self):
        assert parse_statement_date("not a date") is None
        assert parse_statement_date("") is None
        assert parse_statement_date(None) is None


class TestMoney:
    """Tests for money cell parsing."""

    def test_thousands_and_symbols(self):
        assert parse_money("₹1,23,456.50") == (Decimal("123456.50"), None)
        assert parse_money("$ 1,000") == (Decimal("1000"), None)

    def test_parenthesized_negative(self):
        assert parse_money("(250.00)") == (Decimal("-250.00"), None)

    def test_cr_dr_markers(self):
        assert parse_money("500.00 Cr") == (Decimal("500.00"), "cr")
        assert parse_money("500.00 DR.") == (Decimal("500.00"), "dr")

    def test_unparseable_is_zero(self):
        assert parse_money("n/a") == (Decimal("0"), None)
        assert parse_money("") == (Decimal("0"), None)
        assert parse_money("-") == (Decimal("0"), None)


class TestColumnResolver:
    """Tests for header → field mapping."""

    def test_debit_credit_headers(self, sample_csv_statement):
        mapping = resolve_columns(normalize_statement(sample_csv_statement))

        assert mapping.date == "Date"
        assert mapping.description == "Description"
        assert mapping.debit == "Debit"
        assert mapping.credit == "Credit"
        assert mapping.amount is None
        assert mapping.balance == "Balance"

    def test_bank_style_headers(self):
        text = "Txn Date,Narration,Withdrawal Amt,Deposit Amt,Closing Balance\n"
        mapping = resolve_columns(normalize_statement(text))

        assert mapping.date == "Txn Date"
        assert mapping.description == "Narration"
        assert mapping.debit == "Withdrawal Amt"
        assert mapping.credit == "Deposit Amt"
        assert mapping.balance == "Closing Balance"

    def test_money_in_out_headers(self):
        text = "Date,Details,Money Out,Money In,Balance\n"
        mapping = resolve_columns(normalize_statement(text))

        assert mapping.description == "Details"
        assert mapping.debit == "Money Out"
        assert mapping.credit == "Money In"

    def test_single_amount_header(self, sample_signed_statement):
        mapping = resolve_columns(normalize_statement(sample_signed_statement))

        assert mapping.amount == "Amount"
        assert mapping.debit is None
        assert mapping.credit is None
        assert mapping.balance == "Closing Balance"

    def test_description_fallback_uses_first_text_column(self):
        text = "When,Payee,Value\n2024-01-02,Coffee Shop,-4.50\n"
        mapping = resolve_columns(normalize_statement(text))

        assert mapping.date == "When"
        assert mapping.description == "Payee"

    def test_amount_marker_sets_sign(self):
        mapping = ColumnMapping(date="Date", description="Desc", amount="Amount")
        row = RawRow(line=2, values={"Date": "2024-01-02", "Desc": "x", "Amount": "120.00 DR"})

        assert mapping.resolve(row).amount == Decimal("-120.00")

    def test_direction_column_detected_from_values(self):
        text = (
            "Date,Description,Amount,Type\n"
            "2024-03-01,AWS Cloud Services,1250.00,DR\n"
            "2024-03-02,Globex Corp payment,4000.00,Cr.\n"
        )
        mapping = resolve_columns(normalize_statement(text))

        assert mapping.direction == "Type"
        assert mapping.amount == "Amount"
        assert mapping.debit is None

    def test_dr_cr_header_is_not_a_debit_column(self):
        mapping = resolve_columns(normalize_statement("Date,Narration,Amount,Dr/Cr\n"))

        assert mapping.direction == "Dr/Cr"
        assert mapping.debit is None
        assert mapping.credit is None

    def test_document_line_credit_marker(self):
        row = RawRow(
            line=5,
            values={0: "12/03/2024", 1: "NEFT CR Globex Corp 15,000.00 CR 63,800.00"},
        )
        fields = resolve_document_line(row)

        assert fields.description == "NEFT CR Globex Corp"
        assert fields.credit == Decimal("15000.00")
        assert fields.debit == Decimal("0")
        assert fields.balance == Decimal("63800.00")

    def test_document_line_ignores_small_reference_numbers(self):
        row = RawRow(line=5, values={0: "05/03/2024", 1: "UPI ref 42 Store 1,250.00"})
        fields = resolve_document_line(row)

        assert fields.debit == Decimal("1250.00")
        assert fields.balance is None


class TestTransactionBuilder:
    """Tests for building canonical transactions."""

    def test_csv_statement(self, sample_csv_statement):
        result = parse_statement(sample_csv_statement, "delimited", "acme")

        amounts = [t.amount for t in result.transactions]
        assert amounts == [
            Decimal("-1250.00"),
            Decimal("-45000.00"),
            Decimal("50000"),
            Decimal("12000.00"),
        ]
        assert result.skipped == 3
        assert result.skip_reasons == {
            SkipReason.BALANCE_ROW: 1,
            SkipReason.INVALID_DATE: 2,
        }

    def test_salary_credit_row(self):
        """Credit column populated, debit empty → positive amount."""
        text = "Date,Description,Debit,Credit\n15/03/2024,SALARY TRANSFER,,50000,\n"
        result = parse_statement(text, "delimited", "acme")

        assert len(result.transactions) == 1
        txn = result.transactions[0]
        assert txn.date == "2024-03-15"
        assert txn.amount == Decimal("50000")
        assert txn.direction == Direction.CREDIT
        assert txn.owner_id == "acme"
        assert txn.fingerprint

    def test_signed_amount_statement(self, sample_signed_statement):
        result = parse_statement(sample_signed_statement, "delimited", "acme")

        assert [t.amount for t in result.transactions] == [
            Decimal("-850.00"),
            Decimal("3500.00"),
            Decimal("-25.00"),
        ]

    def test_direction_column_signs_amounts(self):
        text = (
            "Date,Narration,Amount,Dr/Cr\n"
            "2024-03-01,AWS Cloud Services,1250.00,DR\n"
            "2024-03-02,Globex Corp payment,4000.00,CR\n"
        )
        result = parse_statement(text, "delimited", "acme")

        assert [t.amount for t in result.transactions] == [
            Decimal("-1250.00"),
            Decimal("4000.00"),
        ]
        assert result.transactions[1].direction == Direction.CREDIT
        assert result.transactions[0].balance == Decimal("9150.00")

    def test_document_statement(self, sample_document_statement):
        result = parse_statement(sample_document_statement, "document", "acme")

        assert [(t.date, t.amount) for t in result.transactions] == [
            ("2024-03-05", Decimal("-1200.00")),
            ("2024-03-12", Decimal("15000.00")),
        ]
        assert result.transactions[0].description == "Zoom Video Communications"

    @pytest.mark.parametrize(
        "description", ["Opening Balance", "TOTAL", "totals", "Closing balance"]
    )
    def test_summary_rows_never_build(self, description):
        text = f"Date,Description,Amount\n2024-01-31,{description},100.00\n"
        result = parse_statement(text, "delimited", "acme")

        assert result.transactions == []
        assert result.skip_reasons == {SkipReason.BALANCE_ROW: 1}

    def test_zero_amount_skipped(self):
        text = "Date,Description,Debit,Credit\n2024-01-31,Adjustment,0.00,\n"
        result = parse_statement(text, "delimited", "acme")

        assert result.transactions == []
        assert result.skip_reasons == {SkipReason.ZERO_AMOUNT: 1}

    def test_missing_description_gets_placeholder(self):
        text = "Date,Description,Amount\n2024-01-31,,-10.00\n"
        result = parse_statement(text, "delimited", "acme", IngestConfig())

        assert result.transactions[0].description == "Transaction"
        assert result.transactions[0].vendor_name is None

    def test_credit_wins_over_debit(self):
        text = "Date,Description,Debit,Credit\n2024-01-31,Reversal,10.00,25.00\n"
        result = parse_statement(text, "delimited", "acme")

        assert result.transactions[0].amount == Decimal("25.00")

    def test_parse_errors_reported_with_partial_results(self):
        text = "Date,Description,Amount\n2024-01-02,Coffee,-4.50\n2024-01-03,A,B,C,D\n"
        result = parse_statement(text, "delimited", "acme")

        assert len(result.transactions) == 1
        assert result.to_dict()["errors"] == [
            {"line": 3, "reason": "Expected 3 fields, got 5"}
        ]
