"""
Pytest configuration and shared fixtures for Statement Engine tests.

This file is automatically loaded by pytest and provides:
    - Transaction builders (raw and classified)
    - Sample statement fixtures
    - Common test utilities

Author: Statement Engine Team
"""

import pytest
import sys
from pathlib import Path
from datetime import date, timedelta

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from statement_engine.anomaly_types import Severity
from statement_engine.models import ClassifiedTransaction, RawTransaction


# =============================================================================
# Builders
# =============================================================================

def make_raw(narration, withdrawal=0.0, deposit=0.0, when=None, txn_id=""):
    """Build a RawTransaction; `when` is a date or an already formatted string."""
    if when is None:
        when = date(2024, 6, 15)
    date_str = when if isinstance(when, str) else when.strftime("%d/%m/%Y")
    return RawTransaction(
        date=date_str,
        narration=narration,
        value_date=date_str,
        withdrawal=withdrawal,
        deposit=deposit,
        txn_id=txn_id,
    )


def make_txn(
    withdrawal=0.0,
    deposit=0.0,
    when=None,
    merchant="",
    category="Other",
    method="UPI",
    beneficiary="",
    narration="",
    txn_id="",
):
    """Build a ClassifiedTransaction directly, bypassing the classifier."""
    if when is None:
        when = date(2024, 6, 15)
    date_str = when if isinstance(when, str) else when.strftime("%d/%m/%Y")
    return ClassifiedTransaction(
        date=date_str,
        narration=narration or f"UPI-{merchant or 'PAYEE'}-TEST",
        value_date=date_str,
        withdrawal=withdrawal,
        deposit=deposit,
        txn_id=txn_id,
        method=method,
        merchant=merchant,
        beneficiary=beneficiary,
        category=category,
        is_income=deposit > 0 and withdrawal == 0,
    )


# =============================================================================
# Transaction Fixtures
# =============================================================================

@pytest.fixture
def base_date():
    return date(2024, 6, 1)


@pytest.fixture
def grocery_history(base_date):
    """Ten identical grocery payments four days apart."""
    return [
        make_txn(
            withdrawal=1250.0,
            when=base_date + timedelta(days=4 * i),
            merchant="BIGBASKET",
            category="Groceries",
            txn_id=f"g-{i}",
        )
        for i in range(10)
    ]


@pytest.fixture
def mixed_history(base_date):
    """Thirty days of varied everyday spending across a few merchants."""
    merchants = [
        ("ZOMATO", "Food_Delivery", 450.0),
        ("BIGBASKET", "Groceries", 1800.0),
        ("UBER", "Travel", 320.0),
        ("CROMA", "Shopping", 2600.0),
    ]
    history = []
    for i in range(30):
        merchant, category, amount = merchants[i % len(merchants)]
        history.append(make_txn(
            withdrawal=amount + (i % 3) * 25,
            when=base_date + timedelta(days=i),
            merchant=merchant,
            category=category,
            txn_id=f"m-{i}",
        ))
    return history


@pytest.fixture
def salary_history():
    """Salary on the first of January, February and March."""
    return [
        make_txn(
            deposit=100000.0,
            when=date(2024, month, 1),
            merchant="ACME CORP",
            category="Other",
            method="NEFT",
            narration="NEFT CR-ACME CORP PAYROLL",
            txn_id=f"sal-{month}",
        )
        for month in (1, 2, 3)
    ]


# =============================================================================
# Test Utilities
# =============================================================================

def assert_valid_severity(severity) -> None:
    """Assert that severity is one of the five tiers."""
    assert severity in list(Severity), f"Invalid severity: {severity}"


def assert_valid_confidence(confidence: float) -> None:
    """Assert that confidence is in valid range."""
    assert 0 <= confidence <= 1, f"Invalid confidence: {confidence}"
