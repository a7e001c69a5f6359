"""
Test Module: test_category_classifier.py
Description: Unit tests for the layered category rules.

Tests:
    - Layer priority (known merchant, loan, rent, POS, food delivery, bills, ...)
    - Gas utility vs. share purchase split
    - Confidence composition
    - Intent keywords and evidence-weighted confidence

Author: Statement Engine Team
"""

import pytest

from statement_engine.category_classifier import (
    DEFAULT_REASON,
    CategoryClassifier,
    calculate_confidence,
    detect_intent_keywords,
)
from statement_engine.models import Category


@pytest.fixture
def classifier():
    return CategoryClassifier()


# =============================================================================
# Layer Tests
# =============================================================================

class TestLayers:
    """Tests for individual category layers."""

    def test_known_merchant(self, classifier):
        """Test a known merchant short-circuits the other layers."""
        result = classifier.classify("UPI-BIGBASKET-bigbasket@icici-123-UPI", "BIGBASKET", 1250)
        assert result.category == Category.GROCERIES.value
        assert result.confidence >= 0.9
        assert result.reason.startswith("Known merchant detected")

    def test_emi_with_mandate(self, classifier):
        """Test EMI with a mandate companion is a loan."""
        result = classifier.classify("NACH EMI HDFC BANK 0042", "", 15432)
        assert result.category == Category.LOAN.value
        assert result.matched_keywords == ["EMI"]

    def test_rent(self, classifier):
        """Test rent lands in bills."""
        result = classifier.classify("IMPS-123456-HOUSE RENT JUNE-SBIN", "", 18000)
        assert result.category == Category.BILLS_UTILITIES.value
        assert result.reason == "Rent payment"

    def test_pos_dining(self, classifier):
        """Test card payments at restaurants are dining."""
        result = classifier.classify("POS 512345XXXXXX1234 SAGAR RESTAURANT", "", 850)
        assert result.category == Category.DINING.value

    def test_food_delivery_token(self, classifier):
        """Test gateway-prefixed brand names are food delivery."""
        result = classifier.classify("PAYUZOMATO-ORDER-98765", "", 450)
        assert result.category == Category.FOOD_DELIVERY.value

    def test_card_payment_skips_food_delivery(self, classifier):
        """Test a card swipe at a delivery brand's outlet is not a delivery order."""
        result = classifier.classify("POS 416021XXXXXX1234 FAASOS KORAMANGALA", "", 650.0)
        assert result.category != Category.FOOD_DELIVERY.value
        assert result.reason != "Food delivery app"

    def test_fuel(self, classifier):
        """Test fuel stations."""
        result = classifier.classify("POS 1234 NAYARA FILLING STATION", "", 2000)
        assert result.category == Category.FUEL.value

    def test_electricity_bill_through_bill_gateway(self, classifier):
        """Test a utility through a bill-only gateway is a bill without a BILL keyword."""
        result = classifier.classify("BILLDESK-TATA POWER-123456", "", 3200)
        assert result.category == Category.BILLS_UTILITIES.value
        assert result.reason == "Electricity bill"

    def test_bill_excluded_merchant(self, classifier):
        """Test a pharmacy paid through a gateway is not a bill."""
        result = classifier.classify("BILLDESK-CITY PHARMACY", "", 640)
        assert result.category == Category.HEALTHCARE.value

    def test_insurance_investment(self, classifier):
        """Test investment-linked insurance is an investment."""
        result = classifier.classify("BBPS INSURANCE PREMIUM ULIP PLAN", "", 25000)
        assert result.category == Category.INVESTMENT.value

    def test_entertainment(self, classifier):
        result = classifier.classify("UPI-BOOKMYSHOW-BMS@AXIS-UPI", "BOOKMYSHOW", 700)
        assert result.category == Category.ENTERTAINMENT.value

    def test_investment_platform(self, classifier):
        result = classifier.classify("ACH D- UPSTOX SECURITIES-123", "", 5000)
        assert result.category == Category.INVESTMENT.value

    def test_bank_charge(self, classifier):
        """Test tiny fee debits are bank charges."""
        result = classifier.classify("SMS ALERT CHG QTR", "", 17.7)
        assert result.category == Category.BILLS_UTILITIES.value
        assert result.reason == "Bank charges"

    def test_upi_person_to_person(self, classifier):
        """Test a large UPI payment to a person is Other with a P2P reason."""
        result = classifier.classify("UPI-RAVI KUMAR-ravi@oksbi-123-UPI", "RAVI KUMAR", 8000)
        assert result.category == Category.OTHER.value
        assert result.matched_keywords == ["P2P"]

    def test_default(self, classifier):
        """Test nothing matching yields Other at the base confidence."""
        result = classifier.classify("MISCELLANEOUS ADJUSTMENT", "", 3333)
        assert result.category == Category.OTHER.value
        assert result.confidence == 0.1
        assert result.reason == DEFAULT_REASON


class TestGasSplit:
    """Tests for the gas utility / share purchase split."""

    def test_small_gas_is_bill(self, classifier):
        result = classifier.classify("BILLDESK-INDRAPRASTHA GAS-LTD-20240615", "", 1800)
        assert result.category == Category.BILLS_UTILITIES.value

    def test_large_gas_is_investment(self, classifier):
        result = classifier.classify("BILLDESK-INDRAPRASTHA GAS-LTD-20240615", "", 60000)
        assert result.category == Category.INVESTMENT.value
        assert "share purchase" in result.reason

    def test_threshold(self, classifier):
        """Test exactly the limit is still a utility payment."""
        assert not classifier.is_large_gas_payment("IGL BILL", 25000)
        assert classifier.is_large_gas_payment("IGL BILL", 25001)


# =============================================================================
# Confidence Tests
# =============================================================================

class TestConfidence:
    """Tests for confidence bonuses and helpers."""

    def test_gateway_and_amount_bonus(self, classifier):
        """Test gateway and amount-pattern bonuses are added to the layer base."""
        result = classifier.classify("BILLDESK-TATA POWER-123456", "", 3200)
        # 0.90 base + 0.10 gateway
        assert result.confidence == pytest.approx(1.0)

    def test_confidence_capped(self, classifier):
        result = classifier.classify("BILLDESK ELECTRICITY BILL PAYMENT", "", 1500)
        assert result.confidence <= 1.0

    def test_intent_keywords(self):
        """Test the strongest weight per category is reported."""
        found = detect_intent_keywords("MONTHLY RENT AND MAINTENANCE BILL")
        assert found[Category.BILLS_UTILITIES.value] == 0.4

    def test_intent_short_words_are_whole(self):
        """Test short intent words do not fire inside longer words."""
        assert Category.INVESTMENT.value not in detect_intent_keywords("CARD PAYMENT")

    def test_calculate_confidence(self):
        """Test evidence-weighted confidence."""
        assert calculate_confidence(["A", "B"], gateway="BILLDESK", merchant="X") == 0.65
        assert calculate_confidence(["A"]) == 0.3
        assert calculate_confidence([]) == 0.0
