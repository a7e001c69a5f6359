"""
Test Module: test_scenarios.py
Description: End-to-end statement scenarios, from raw narration to scored result.

Tests:
    - Routine grocery spend stays quiet
    - Large transfer to own account is capped at Low
    - Refund credit is skipped
    - Large gas-company payment is read as an investment
    - Repeated large transfers to one person are flagged
    - Missing salary is flagged mid-month

Author: Statement Engine Team
"""

import pytest
from datetime import date, timedelta

from conftest import make_raw, make_txn, assert_valid_confidence

from statement_engine.anomaly_types import Severity, SignalCode
from statement_engine.classifier import TransactionClassifier
from statement_engine.engine import CAPPED_PREFIX, AnomalyEngine
from statement_engine.models import Category


# =============================================================================
# Routine spend
# =============================================================================

class TestRoutineGroceries:
    """A grocery payment that matches the user's routine raises nothing."""

    @pytest.fixture
    def classified(self):
        start = date(2024, 5, 1)
        rows = [
            make_raw("UPI-BIGBASKET-bigbasket@icici-123-UPI", withdrawal=1250.0,
                     when=start + timedelta(days=4 * i))
            for i in range(11)
        ]
        return TransactionClassifier(customer_name="ANITA DESAI").classify_all(rows)

    def test_classified_as_groceries(self, classified):
        """Test the payment is a UPI grocery purchase from BigBasket."""
        current = classified[-1]
        assert current.method == "UPI"
        assert "BIGBASKET" in current.merchant.upper()
        assert current.category == Category.GROCERIES.value

    def test_marked_recurring(self, classified):
        """Test eleven payments four days apart form a recurring group."""
        assert all(t.is_recurring for t in classified)
        assert classified[-1].recurring_meta.count == 11

    def test_no_signals(self, classified):
        """Test the routine payment produces an empty Info result."""
        engine = AnomalyEngine(history=classified)
        result = engine.evaluate(classified[-1])

        assert result.signals == []
        assert result.final_score == 0
        assert result.severity == Severity.INFO
        assert result.transaction_id == classified[-1].txn_id


# =============================================================================
# Self transfer
# =============================================================================

class TestLargeSelfTransfer:
    """₹5L RTGS to the account holder's own name."""

    NARRATION = "RTGS DR-HDFCR52024061512345678-KALPIT SHARMA-KALPIT SHARMA-REF"

    @pytest.fixture
    def classified(self):
        classifier = TransactionClassifier(customer_name="KALPIT SHARMA")
        return classifier.classify(make_raw(self.NARRATION, withdrawal=500000.0, txn_id="rtgs-1"))

    def test_classified_as_self_transfer(self, classified):
        """Test RTGS to own name lands in Investment."""
        assert classified.method == "RTGS"
        assert classified.beneficiary == "KALPIT SHARMA"
        assert classified.category == Category.INVESTMENT.value
        assert "SELF_TRANSFER" in classified.classification_meta.matched_keywords

    def test_result_capped_at_low(self, classified):
        """Test the high-amount signal is held at Low by the self-transfer cap."""
        result = AnomalyEngine().evaluate(classified)

        assert result.severity == Severity.LOW
        assert result.final_score == 30.0
        assert result.explanation.startswith(CAPPED_PREFIX)
        assert [s.code for s in result.signals] == [SignalCode.HIGH_AMOUNT]
        assert all(s.severity <= Severity.LOW for s in result.signals)
        assert_valid_confidence(result.confidence)


# =============================================================================
# Refund
# =============================================================================

class TestRefundCredit:
    """A refund credit never reaches the detectors."""

    def test_refund_is_income_and_skipped(self):
        """Test the refund is categorised, marked as income and suppressed."""
        txn = TransactionClassifier().classify(
            make_raw("UPI/AMAZON REFUND/123456789/UPI", deposit=2499.0, txn_id="ref-1")
        )
        assert txn.category == Category.REFUND.value
        assert txn.is_income is True

        result = AnomalyEngine().evaluate(txn)
        assert result.signals == []
        assert result.final_score == 0
        assert result.severity == Severity.INFO


# =============================================================================
# Gas company investment
# =============================================================================

class TestLargeGasPayment:
    """₹60,000 to a listed gas utility is a share purchase, not a bill."""

    def test_categorised_as_investment(self):
        """Test the large gas-company payment is an investment with an explanatory reason."""
        txn = TransactionClassifier().classify(
            make_raw("BILLDESK-INDRAPRASTHA GAS-LTD-20240615", withdrawal=60000.0)
        )
        assert txn.category == Category.INVESTMENT.value
        assert "share purchase" in txn.classification_meta.reason

    def test_small_gas_payment_is_a_bill(self):
        """Test a normal gas bill through the same gateway stays a utility bill."""
        txn = TransactionClassifier().classify(
            make_raw("BILLDESK-INDRAPRASTHA GAS-LTD-20240615", withdrawal=1800.0)
        )
        assert txn.category == Category.BILLS_UTILITIES.value


# =============================================================================
# Repeated transfers
# =============================================================================

class TestRepeatedTransfers:
    """Three ₹40,000 IMPS transfers to one person within five days."""

    NARRATION = "IMPS-412345678901-RAVI KUMAR-SBIN-XXXXXXXX1234-REQPAY"

    @pytest.fixture
    def classified(self):
        start = date(2024, 6, 1)
        rows = [
            make_raw(self.NARRATION, withdrawal=40000.0, when=start + timedelta(days=2 * i))
            for i in range(3)
        ]
        return TransactionClassifier(customer_name="ANITA DESAI").classify_all(rows)

    def test_transfer_parsed(self, classified):
        """Test method and beneficiary are read from the IMPS narration."""
        current = classified[-1]
        assert current.method == "IMPS"
        assert current.beneficiary == "RAVI KUMAR"
        assert current.category != Category.INVESTMENT.value

    def test_flagged_as_concentrated_transfers(self, classified):
        """Test the third transfer carries the multiple-transfer signal and flag."""
        engine = AnomalyEngine(history=classified)
        result = engine.evaluate(classified[-1])

        codes = {s.code for s in result.signals}
        assert SignalCode.MULTIPLE_LARGE_TRANSFERS in codes
        assert result.final_score >= 75
        assert result.severity >= Severity.HIGH
        assert "BENEFICIARY_CONCENTRATION" in result.risk_flags

        transfer = next(s for s in result.signals if s.code == SignalCode.MULTIPLE_LARGE_TRANSFERS)
        assert transfer.metadata["count"] == 3
        assert "RAVI KUMAR" in transfer.explanation


# =============================================================================
# Income disruption
# =============================================================================

class TestIncomeDisruption:
    """Only ₹12,000 received by the 28th after three ₹1L months."""

    def test_income_shortfall_flagged(self, salary_history):
        """Test a small credit late in the month raises the income signal at High."""
        current = make_txn(
            deposit=12000.0,
            when=date(2024, 4, 28),
            merchant="ACME CORP",
            category=Category.OTHER.value,
            method="NEFT",
            narration="NEFT CR-ACME CORP PART PAYMENT",
            txn_id="apr-28",
        )
        engine = AnomalyEngine(history=salary_history)
        result = engine.evaluate(current)

        assert [s.code for s in result.signals] == [SignalCode.INCOME_DISRUPTION]
        assert result.signals[0].score == 80
        assert result.severity == Severity.HIGH
        assert result.final_score == pytest.approx(75.37, abs=0.05)
        assert "INCOME_DISRUPTION" in result.risk_flags
