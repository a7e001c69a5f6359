"""
Test Module: test_detectors.py
Description: Unit tests for the signal detectors.

Tests:
    - RuleDetector thresholds and round amounts
    - StatisticalDetector category / overall / merchant / spike tests
    - DuplicateDetector window, tolerance and lookback
    - PatternDetector transfer, repeat and bill patterns
    - IncomeDetector month-to-date shortfall
    - Detector output validation

Author: Statement Engine Team
"""

import pytest
from datetime import date, datetime, timedelta

from conftest import make_txn

from statement_engine.anomaly_types import (
    AnomalySignal,
    SignalCategory,
    SignalCode,
    Severity,
    TransactionContext,
    UserProfile,
)
from statement_engine.config import DuplicateConfig
from statement_engine.dates import try_parse_date
from statement_engine.detectors import (
    DetectorContractError,
    DuplicateDetector,
    IncomeDetector,
    MLDetector,
    PatternDetector,
    RuleDetector,
    StatisticalDetector,
    validate_signals,
)
from statement_engine.profile_builder import ProfileBuilder


def ctx_for(txn, history=(), full_history=None):
    """Context with the timestamp taken from the transaction's own date."""
    return TransactionContext(
        transaction=txn,
        timestamp=try_parse_date(txn.date),
        recent_history=list(history),
        full_history=list(full_history if full_history is not None else history),
    )


def codes(signals):
    return [s.code for s in signals]


EMPTY = UserProfile()


# =============================================================================
# Rule Detector
# =============================================================================

class TestRuleDetector:
    """Tests for fixed-threshold rules."""

    @pytest.fixture
    def detector(self):
        return RuleDetector()

    def test_below_minimum(self, detector):
        txn = make_txn(withdrawal=999.0, category="Other")
        assert detector.detect(ctx_for(txn), EMPTY) == []

    def test_very_large_amount(self, detector):
        """Test 1.2x the very-large limit scores 60 + 1.2 * 10."""
        txn = make_txn(withdrawal=120000.0, merchant="CROMA", category="Shopping")
        signals = detector.detect(ctx_for(txn), EMPTY)

        assert codes(signals) == [SignalCode.HIGH_AMOUNT]
        assert signals[0].score == pytest.approx(72.0)
        assert signals[0].severity == Severity.HIGH

    def test_very_large_score_capped(self, detector):
        txn = make_txn(withdrawal=500000.0, merchant="CROMA", category="Shopping")
        assert detector.detect(ctx_for(txn), EMPTY)[0].score == 90.0

    def test_round_unknown_transfer(self, detector):
        """Test a round amount to nobody in particular raises three signals."""
        txn = make_txn(withdrawal=60000.0, category="Other")
        signals = detector.detect(ctx_for(txn), EMPTY)

        assert codes(signals) == [
            SignalCode.HIGH_AMOUNT,
            SignalCode.ROUND_AMOUNT,
            SignalCode.UNKNOWN_MERCHANT,
        ]
        assert signals[0].score == pytest.approx(58.0)
        assert signals[1].score == 55.0
        assert signals[2].score == 65.0

    def test_round_amount_needs_suspicious_category(self, detector):
        txn = make_txn(withdrawal=30000.0, merchant="CROMA", category="Shopping")
        assert detector.detect(ctx_for(txn), EMPTY) == []

    @pytest.mark.parametrize("amount,expected", [
        (200000, True),
        (60000, True),
        (55000, True),
        (12000, True),
        (12500, False),
        (9000, False),
    ])
    def test_is_round(self, amount, expected):
        assert RuleDetector.is_round(amount) is expected


# =============================================================================
# Statistical Detector
# =============================================================================

class TestStatisticalDetector:
    """Tests for profile-relative amount tests."""

    @pytest.fixture
    def detector(self):
        return StatisticalDetector()

    @pytest.fixture
    def grocery_profile(self, grocery_history):
        return ProfileBuilder().build(grocery_history)

    @pytest.fixture
    def spread_profile(self):
        return UserProfile(
            mean=1000.0,
            std_dev=200.0,
            p95=1300.0,
            p99=1500.0,
            avg_daily_spend=1000.0,
            merchant_frequency={"CROMA": 1},
            total_transactions=30,
        )

    def test_routine_purchase(self, detector, grocery_profile):
        """Test a purchase matching the history raises nothing."""
        txn = make_txn(withdrawal=1250.0, merchant="BIGBASKET", category="Groceries")
        assert detector.detect(ctx_for(txn), grocery_profile) == []

    def test_category_outlier(self, detector, grocery_profile):
        """Test an amount above the category p99 plus a short-window spike."""
        txn = make_txn(withdrawal=5000.0, merchant="BIGBASKET", category="Groceries")
        signals = detector.detect(ctx_for(txn), grocery_profile)

        assert codes(signals) == [SignalCode.UNUSUAL_AMOUNT, SignalCode.SPENDING_SPIKE]
        assert signals[0].score == 92.0
        assert signals[0].metadata["category"] == "Groceries"
        assert signals[1].score == 85.0

    def test_new_merchant(self, detector, grocery_profile):
        txn = make_txn(withdrawal=1500.0, merchant="CROMA", category="Electronics")
        signals = detector.detect(ctx_for(txn), grocery_profile)

        assert codes(signals) == [SignalCode.NEW_MERCHANT]
        assert "First payment to CROMA" in signals[0].explanation

    def test_overall_critical_and_rare_merchant(self, detector, spread_profile):
        """Test the overall profile is used when the category has no history."""
        txn = make_txn(withdrawal=2500.0, merchant="CROMA", category="Shopping")
        signals = detector.detect(ctx_for(txn), spread_profile)

        assert codes(signals) == [SignalCode.UNUSUAL_AMOUNT, SignalCode.RARE_MERCHANT]
        assert signals[0].score == 90.0
        assert signals[1].score == 45.0

    def test_overall_above_p95(self, detector, spread_profile):
        txn = make_txn(withdrawal=1400.0, merchant="CROMA", category="Shopping")
        signals = detector.detect(ctx_for(txn), spread_profile)
        assert codes(signals) == [SignalCode.UNUSUAL_AMOUNT]
        assert signals[0].score == 75.0

    def test_empty_profile(self, detector):
        txn = make_txn(withdrawal=90000.0, merchant="CROMA", category="Shopping")
        assert detector.detect(ctx_for(txn), EMPTY) == []


# =============================================================================
# Duplicate Detector
# =============================================================================

class TestDuplicateDetector:
    """Tests for same-merchant, same-amount repeats."""

    @pytest.fixture
    def detector(self):
        return DuplicateDetector()

    def payment(self, when, amount=2400.0, merchant="BIGBASKET", txn_id=""):
        return make_txn(withdrawal=amount, when=when, merchant=merchant, category="Groceries", txn_id=txn_id)

    def test_repeat_within_window(self, detector):
        earlier = self.payment(date(2024, 6, 8), txn_id="old")
        current = self.payment(date(2024, 6, 10), txn_id="new")
        signals = detector.detect(ctx_for(current, [earlier]), EMPTY)

        assert codes(signals) == [SignalCode.DUPLICATE_PAYMENT]
        assert signals[0].score == 60.0
        assert "2 days ago" in signals[0].explanation

    def test_same_day_repeat(self, detector):
        earlier = self.payment(date(2024, 6, 10), txn_id="old")
        current = self.payment(date(2024, 6, 10), txn_id="new")
        signals = detector.detect(ctx_for(current, [earlier]), EMPTY)

        assert signals[0].score == 85.0
        assert "earlier today" in signals[0].explanation

    def test_several_repeats_report_once(self, detector):
        """Test only the most recent of several matching payments is reported."""
        history = [self.payment(date(2024, 6, day), txn_id=f"old-{day}") for day in (7, 8, 9)]
        current = self.payment(date(2024, 6, 10), txn_id="new")
        signals = detector.detect(ctx_for(current, history), EMPTY)

        assert len(signals) == 1
        assert signals[0].metadata["previous_date"] == "09/06/2024"
        assert signals[0].score == 60.0

    @pytest.mark.parametrize("earlier_kwargs", [
        {"when": date(2024, 6, 5)},
        {"when": date(2024, 6, 9), "amount": 2450.0},
        {"when": date(2024, 6, 9), "merchant": "DMART"},
    ])
    def test_no_match(self, detector, earlier_kwargs):
        """Test outside the window, outside the tolerance or another merchant."""
        earlier = self.payment(txn_id="old", **earlier_kwargs)
        current = self.payment(date(2024, 6, 10), txn_id="new")
        assert detector.detect(ctx_for(current, [earlier]), EMPTY) == []

    def test_transaction_itself_ignored(self, detector):
        """Test the evaluated transaction is not its own duplicate."""
        current = self.payment(date(2024, 6, 10), txn_id="new")
        assert detector.detect(ctx_for(current, [current]), EMPTY) == []

    def test_lookback_limit(self):
        """Test only the last `lookback` history rows are searched."""
        detector = DuplicateDetector(DuplicateConfig(lookback=1))
        match = self.payment(date(2024, 6, 9), txn_id="old")
        other = self.payment(date(2024, 6, 9), merchant="DMART", txn_id="other")
        current = self.payment(date(2024, 6, 10), txn_id="new")
        assert detector.detect(ctx_for(current, [match, other]), EMPTY) == []


# =============================================================================
# Pattern Detector
# =============================================================================

class TestPatternDetector:
    """Tests for multi-transaction patterns."""

    @pytest.fixture
    def detector(self):
        return PatternDetector()

    def transfer(self, when, amount, beneficiary="RAVI KUMAR", txn_id="", category="Other", method="IMPS"):
        return make_txn(
            withdrawal=amount,
            when=when,
            merchant=beneficiary,
            beneficiary=beneficiary,
            category=category,
            method=method,
            txn_id=txn_id,
        )

    def test_three_transfers_in_a_week(self, detector):
        """Test three large transfers to one person plus the repeating amount."""
        history = [
            self.transfer(date(2024, 6, 1), 40000.0, txn_id="t1"),
            self.transfer(date(2024, 6, 3), 40000.0, txn_id="t2"),
        ]
        current = self.transfer(date(2024, 6, 5), 40000.0, txn_id="t3")
        signals = detector.detect(ctx_for(current, history), EMPTY)

        assert codes(signals) == [SignalCode.MULTIPLE_LARGE_TRANSFERS, SignalCode.HIGH_VALUE_RECURRING]
        assert signals[0].score == 90.0
        assert signals[0].metadata["count"] == 3
        assert signals[0].metadata["total"] == 120000.0
        assert "RAVI KUMAR" in signals[0].explanation
        assert signals[1].score == 60.0

    @pytest.mark.parametrize("amount,score", [(60000.0, 75.0), (110000.0, 85.0)])
    def test_two_transfers(self, detector, amount, score):
        history = [self.transfer(date(2024, 6, 3), amount, txn_id="t1")]
        current = self.transfer(date(2024, 6, 5), amount, txn_id="t2")
        signals = detector.detect(ctx_for(current, history), EMPTY)

        assert codes(signals) == [SignalCode.MULTIPLE_LARGE_TRANSFERS]
        assert signals[0].score == score

    def test_below_cumulative_limit(self, detector):
        history = [self.transfer(date(2024, 6, 3), 40000.0, txn_id="t1")]
        current = self.transfer(date(2024, 6, 5), 40000.0, txn_id="t2")
        assert detector.detect(ctx_for(current, history), EMPTY) == []

    def test_outside_window(self, detector):
        history = [self.transfer(date(2024, 5, 20), 60000.0, txn_id="t1")]
        current = self.transfer(date(2024, 6, 5), 60000.0, txn_id="t2")
        assert detector.detect(ctx_for(current, history), EMPTY) == []

    def test_account_number_masked(self, detector):
        """Test account-number beneficiaries are masked in the explanation."""
        history = [self.transfer(date(2024, 6, 3), 60000.0, beneficiary="123456789012", txn_id="t1")]
        current = self.transfer(date(2024, 6, 5), 60000.0, beneficiary="123456789012", txn_id="t2")
        signals = detector.detect(ctx_for(current, history), EMPTY)

        assert "XXXXXX9012" in signals[0].explanation
        assert "123456789012" not in signals[0].explanation

    def test_loan_repeats_are_expected(self, detector):
        """Test EMIs repeating at the same amount are not reported."""
        history = [
            self.transfer(date(2024, 4, 5), 20000.0, beneficiary="HDFC", category="Loan", method="EMI", txn_id="e1"),
            self.transfer(date(2024, 5, 5), 20000.0, beneficiary="HDFC", category="Loan", method="EMI", txn_id="e2"),
        ]
        current = self.transfer(date(2024, 6, 5), 20000.0, beneficiary="HDFC", category="Loan", method="EMI")
        assert detector.detect(ctx_for(current, history), EMPTY) == []

    @pytest.mark.parametrize("amount,score", [(120000.0, 75.0), (60000.0, 65.0)])
    def test_large_bill(self, detector, amount, score):
        txn = make_txn(withdrawal=amount, category="Bills_Utilities")
        signals = detector.detect(ctx_for(txn), EMPTY)

        assert codes(signals) == [SignalCode.LARGE_BILL_PAYMENT]
        assert signals[0].score == score

    def test_card_app_counts_as_bill(self, detector):
        txn = make_txn(withdrawal=55000.0, merchant="CRED", category="Other")
        assert codes(detector.detect(ctx_for(txn), EMPTY)) == [SignalCode.LARGE_BILL_PAYMENT]

    def test_small_bill(self, detector):
        txn = make_txn(withdrawal=40000.0, category="Bills_Utilities")
        assert detector.detect(ctx_for(txn), EMPTY) == []


# =============================================================================
# Income Detector
# =============================================================================

class TestIncomeDetector:
    """Tests for month-to-date income shortfall."""

    @pytest.fixture
    def detector(self):
        return IncomeDetector()

    def credit(self, amount, when):
        return make_txn(deposit=amount, when=when, category="Income", method="NEFT", txn_id=f"cr-{when}")

    def test_shortfall(self, detector, salary_history):
        """Test 12000 by the 28th against a 78000 monthly average."""
        txn = self.credit(12000.0, date(2024, 4, 28))
        signals = detector.detect(ctx_for(txn, full_history=salary_history), EMPTY)

        assert codes(signals) == [SignalCode.INCOME_DISRUPTION]
        assert signals[0].score == 80.0
        assert signals[0].metadata["current_month_income"] == 12000.0
        assert signals[0].metadata["expected_income"] == pytest.approx(72800.0)

    def test_severe_shortfall(self, detector, salary_history):
        txn = self.credit(1000.0, date(2024, 4, 28))
        signals = detector.detect(ctx_for(txn, full_history=salary_history), EMPTY)
        assert signals[0].score == 90.0

    def test_too_early_in_month(self, detector, salary_history):
        txn = self.credit(12000.0, date(2024, 4, 10))
        assert detector.detect(ctx_for(txn, full_history=salary_history), EMPTY) == []

    def test_salary_received(self, detector, salary_history):
        txn = self.credit(100000.0, date(2024, 4, 28))
        assert detector.detect(ctx_for(txn, full_history=salary_history), EMPTY) == []

    def test_debits_ignored(self, detector, salary_history):
        txn = make_txn(withdrawal=5000.0, when=date(2024, 4, 28))
        assert detector.detect(ctx_for(txn, full_history=salary_history), EMPTY) == []


# =============================================================================
# Contract
# =============================================================================

class TestContract:
    """Tests for the ML placeholder and output validation."""

    def test_ml_detector_is_silent(self):
        txn = make_txn(withdrawal=90000.0)
        assert MLDetector().detect(ctx_for(txn), EMPTY) == []

    def test_valid_output_passes(self):
        signal = AnomalySignal.create(SignalCode.HIGH_AMOUNT, SignalCategory.AMOUNT, 50, "Large payment")
        assert validate_signals(RuleDetector(), [signal]) == [signal]

    @pytest.mark.parametrize("output", [None, {"score": 10}, ["not a signal"]])
    def test_invalid_output_rejected(self, output):
        with pytest.raises(DetectorContractError):
            validate_signals(RuleDetector(), output)

    def test_nan_score_rejected(self):
        signal = AnomalySignal(
            code=SignalCode.HIGH_AMOUNT,
            category=SignalCategory.AMOUNT,
            score=float("nan"),
            severity=Severity.LOW,
            explanation="Large payment",
        )
        with pytest.raises(DetectorContractError):
            validate_signals(RuleDetector(), [signal])

    def test_create_clamps_score(self):
        signal = AnomalySignal.create(SignalCode.HIGH_AMOUNT, SignalCategory.AMOUNT, 140, "Large payment")
        assert signal.score == 100.0
        assert signal.severity == Severity.CRITICAL
