"""
Module: suppression.py
Description: Suppression policy deciding which transactions skip detection
and which get their severity capped.

Rules are evaluated in order and the first one that applies decides the verdict.

Author: Statement Engine Team
"""

from statement_engine.anomaly_types import Severity, SuppressionRule
from statement_engine.models import Category, ClassifiedTransaction


class Suppressor:
    """Skip or cap detection for beneficial, predictable and trusted transactions."""

    MIN_AMOUNT = 1000.0

    UTILITY_MERCHANTS = frozenset({
        "AIRTEL", "VI", "VODAFONE IDEA", "JIO", "RELIANCE JIO",
        "BSES", "TATA POWER", "ADANI ELECTRICITY", "MAHARASHTRA STATE ELECTRICITY",
        "BEST", "MUMBAI ELECTRICITY",
        "INDANE", "HP GAS", "BHARAT GAS",
        "WATER BOARD", "MUNICIPAL CORPORATION",
        "BROADBAND", "FIBER", "INTERNET",
    })
    UTILITY_CATEGORY_MARKERS = ("BILLS_UTILITIES", "UTILITIES", "BILLS")

    TRUSTED_MERCHANTS = frozenset({
        "CRED", "CRED CLUB", "CRED PAY",
        "PAYTM", "PHONEPE", "GPAY", "GOOGLE PAY",
        "AMAZON PAY", "AMAZONPAY",
        "ZERODHA", "GROWW", "UPSTOX", "ANGEL ONE",
        "HDFC BANK", "ICICI BANK", "SBI BANK", "AXIS BANK", "KOTAK BANK",
        "PAYTM MONEY", "PAYTM PAYMENTS",
    })
    CARD_PAYMENT_WORDS = ("CREDIT", "CARD", "BILL", "PAYMENT")

    SELF_TRANSFER_METHODS = ("SELF_TRANSFER", "IMPS", "NEFT", "RTGS")

    RECURRING_CATEGORIES = frozenset({Category.BILLS_UTILITIES.value, Category.LOAN.value, "EMI", "RD", "SIP"})

    def evaluate(self, txn: ClassifiedTransaction) -> SuppressionRule:
        merchant = txn.merchant.strip().upper()
        category = txn.category
        amount = txn.withdrawal

        if txn.deposit > 0 and txn.withdrawal == 0:
            if category in (Category.REFUND.value, Category.INCOME.value):
                return SuppressionRule(skip=True, reason="Credit to the account")

        if merchant in self.UTILITY_MERCHANTS or self._is_utility_category(category):
            return SuppressionRule(skip=True, reason="Utility payment")

        if 0 < amount < self.MIN_AMOUNT:
            return SuppressionRule(skip=True, reason="Small transaction")

        if category == Category.INCOME.value or txn.method == "Salary":
            return SuppressionRule(max_severity=Severity.INFO, reason="Income")

        if category == Category.INVESTMENT.value and self._is_self_transfer(txn):
            return SuppressionRule(max_severity=Severity.LOW, reason="Transfer between own accounts")

        if merchant in self.TRUSTED_MERCHANTS and self._is_card_payment(category, merchant):
            return SuppressionRule(max_severity=Severity.MEDIUM, reason="Credit card bill payment")

        if category in self.RECURRING_CATEGORIES:
            return SuppressionRule(max_severity=Severity.MEDIUM, reason="Recurring payment category")

        return SuppressionRule()

    def _is_utility_category(self, category: str) -> bool:
        upper = category.upper()
        return any(marker in upper for marker in self.UTILITY_CATEGORY_MARKERS)

    def _is_self_transfer(self, txn: ClassifiedTransaction) -> bool:
        method = txn.method.upper()
        return any(m in method for m in self.SELF_TRANSFER_METHODS)

    def _is_card_payment(self, category: str, merchant: str) -> bool:
        if "CRED" in merchant:
            return True
        if category in (Category.LOAN.value, Category.BILLS_UTILITIES.value):
            return any(word in merchant for word in self.CARD_PAYMENT_WORDS)
        return False
