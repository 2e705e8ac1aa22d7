"""Test fixtures and utilities."""

from decimal import Decimal
from pathlib import Path

import pytest

from ledgerflow.config import Config
from ledgerflow.schemas.dedupe import compute_fingerprint
from ledgerflow.schemas.transaction import Direction, Transaction
from ledgerflow.state_store import StateStore

# Debit/credit statement with a running balance and summary rows
SAMPLE_CSV_STATEMENT = "\ufeff" + """Date,Description,Debit,Credit,Balance
01/03/2024,Opening Balance,,,100000.00
05/03/2024,AWS Cloud Services,1250.00,,98750.00
10/03/2024,Office Rent March,45000.00,,53750.00
15/03/2024,SALARY TRANSFER,,50000,103750.00
20/03/2024,Payment from Globex INV-1001,,12000.00,115750.00
not a date,Broken row,10.00,,115740.00
,Total,46250.00,62000.00,
"""

# Single signed amount column, semicolon delimited
SAMPLE_SIGNED_STATEMENT = """Txn Date;Narration;Amount;Closing Balance
2024-04-02;Slack subscription;-850.00;9150.00
2024-04-03;Customer payment Initech;3,500.00;12650.00
2024-04-05;Bank charges;-25.00;12625.00
"""

# Text extracted from a PDF statement
SAMPLE_DOCUMENT_STATEMENT = """
ACME BANK LTD - Account Statement
Account: 0012345678
Date        Description                     Amount      Balance
01-Mar-2024 Opening Balance                             50,000.00
05 Mar 2024 Zoom Video Communications       1,200.00    48,800.00
12/03/2024  NEFT CR Globex Corp             15,000.00 CR 63,800.00
Page 1 of 1
"""


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_state.db"


@pytest.fixture
def store(temp_db) -> StateStore:
    """Fresh state store with migrations applied."""
    return StateStore(temp_db)


@pytest.fixture
def config(temp_db) -> Config:
    """Default configuration pointing at the temporary database."""
    return Config(state_db_path=temp_db)


@pytest.fixture
def sample_csv_statement() -> str:
    return SAMPLE_CSV_STATEMENT


@pytest.fixture
def sample_signed_statement() -> str:
    return SAMPLE_SIGNED_STATEMENT


@pytest.fixture
def sample_document_statement() -> str:
    return SAMPLE_DOCUMENT_STATEMENT


@pytest.fixture
def make_transaction():
    """Factory for canonical transactions (not persisted)."""

    def _make(
        description: str = "Misc payment",
        amount: str | Decimal = "-100.00",
        date: str = "2024-03-15",
        owner_id: str = "acme",
        **kwargs,
    ) -> Transaction:
        amount = Decimal(str(amount))
        return Transaction(
            owner_id=owner_id,
            date=date,
            amount=amount,
            description=description,
            direction=Direction.CREDIT if amount > 0 else Direction.DEBIT,
            fingerprint=compute_fingerprint(owner_id, date, amount, description),
            **kwargs,
        )

    return _make
