"""
Test Module: test_profile_builder.py
Description: Unit tests for the behavioural baseline.

Tests:
    - Overall amount statistics and percentile convention
    - Daily / weekly / monthly averages
    - Merchant, category and calendar distributions
    - Empty and unparseable history

Author: Statement Engine Team
"""

import numpy as np
import pytest
from datetime import date, timedelta

from conftest import make_txn

from statement_engine.profile_builder import ProfileBuilder, percentile_at, summarize_amounts


@pytest.fixture
def builder():
    return ProfileBuilder()


@pytest.fixture
def four_days():
    start = date(2024, 6, 1)  # Saturday
    specs = [
        (100.0, "ZOMATO", "Food_Delivery"),
        (200.0, "ZOMATO", "Food_Delivery"),
        (300.0, "BIGBASKET", "Groceries"),
        (400.0, "", "Other"),
    ]
    return [
        make_txn(withdrawal=amount, when=start + timedelta(days=i), merchant=merchant, category=category)
        for i, (amount, merchant, category) in enumerate(specs)
    ]


# =============================================================================
# Statistics Helper Tests
# =============================================================================

class TestStatisticsHelpers:
    """Tests for percentile_at() and summarize_amounts()."""

    def test_percentile_index_floor(self):
        values = np.array([10.0, 20.0, 30.0, 40.0])
        assert percentile_at(values, 0.95) == 40.0
        assert percentile_at(values, 0.5) == 30.0
        assert percentile_at(np.array([]), 0.95) == 0.0

    def test_summary_population_std(self):
        stats = summarize_amounts([100, 200, 300, 400])
        assert stats["mean"] == 250.0
        assert stats["std_dev"] == pytest.approx(111.803, rel=1e-3)
        assert stats["q1"] == 200.0
        assert stats["q3"] == 400.0

    def test_summary_empty(self):
        assert summarize_amounts([])["mean"] == 0.0


# =============================================================================
# Profile Tests
# =============================================================================

class TestProfileBuilder:
    """Tests for ProfileBuilder.build()."""

    def test_overall_stats(self, builder, four_days):
        profile = builder.build(four_days)

        assert profile.total_transactions == 4
        assert profile.total_spend == 1000.0
        assert profile.mean == 250.0
        assert profile.min == 100.0
        assert profile.max == 400.0
        assert profile.p95 == 400.0

    def test_daily_averages(self, builder, four_days):
        """Test averages are taken over the date span, not the row count."""
        profile = builder.build(four_days)

        assert profile.transaction_days == 3
        assert profile.avg_daily_spend == pytest.approx(1000.0 / 3)
        assert profile.avg_weekly_spend == pytest.approx(profile.avg_daily_spend * 7)
        assert profile.avg_monthly_spend == pytest.approx(profile.avg_daily_spend * 30)

    def test_merchant_frequency(self, builder, four_days):
        """Test empty merchants are left out of the merchant tables."""
        profile = builder.build(four_days)

        assert profile.merchant_frequency == {"ZOMATO": 2, "BIGBASKET": 1}
        assert profile.merchant_amounts["ZOMATO"] == [100.0, 200.0]

    def test_category_profiles(self, builder, four_days):
        profile = builder.build(four_days)
        food = profile.category_profiles["Food_Delivery"]

        assert food.count == 2
        assert food.mean == 150.0
        assert food.iqr == food.q3 - food.q1

    def test_day_of_week_sunday_is_zero(self, builder, four_days):
        profile = builder.build(four_days)
        assert profile.day_of_week_distribution == {0: 1, 1: 1, 2: 1, 6: 1}

    def test_credits_ignored(self, builder, four_days):
        """Test deposits do not contribute to the spending baseline."""
        history = four_days + [make_txn(deposit=90000.0, when=date(2024, 6, 2))]
        assert builder.build(history).total_transactions == 4

    def test_single_row_uses_one_day(self, builder):
        profile = builder.build([make_txn(withdrawal=700.0, merchant="UBER")])
        assert profile.transaction_days == 1
        assert profile.avg_daily_spend == 700.0

    def test_empty_history(self, builder):
        profile = builder.build([])
        assert profile.is_empty
        assert profile.category_profiles == {}

    def test_unparseable_dates_skipped(self, builder, four_days):
        """Test rows with bad dates are dropped; all-bad history gives an empty profile."""
        bad = make_txn(withdrawal=5000.0, when="31/31/2024", merchant="X")
        assert builder.build(four_days + [bad]).total_transactions == 4
        assert builder.build([bad]).is_empty
