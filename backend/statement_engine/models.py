"""
Module: models.py
Description: Transaction records flowing through the classification pipeline.

RawTransaction comes from the statement parser, ClassifiedTransaction is what
the assembler produces. Both are frozen: a transaction is immutable once it
leaves the stage that built it.

Author: Statement Engine Team
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


RULE_VERSION = "v1.3.0"


class Category(str, Enum):
    """Transaction categories produced by the classifier."""
    INCOME = "Income"
    REFUND = "Refund"
    REIMBURSEMENT = "Reimbursement"
    INVESTMENT = "Investment"
    LOAN = "Loan"
    SHOPPING = "Shopping"
    DINING = "Dining"
    TRAVEL = "Travel"
    FUEL = "Fuel"
    GROCERIES = "Groceries"
    FOOD_DELIVERY = "Food_Delivery"
    BILLS_UTILITIES = "Bills_Utilities"
    HEALTHCARE = "Healthcare"
    EDUCATION = "Education"
    ENTERTAINMENT = "Entertainment"
    OTHER = "Other"


EXPENSE_CATEGORIES = frozenset({
    Category.SHOPPING.value,
    Category.DINING.value,
    Category.TRAVEL.value,
    Category.FUEL.value,
    Category.GROCERIES.value,
    Category.FOOD_DELIVERY.value,
    Category.BILLS_UTILITIES.value,
    Category.LOAN.value,
    Category.HEALTHCARE.value,
    Category.EDUCATION.value,
    Category.ENTERTAINMENT.value,
})


def is_expense_category(category: str) -> bool:
    return category in EXPENSE_CATEGORIES


@dataclass(frozen=True)
class RawTransaction:
    """One statement row as handed over by the parser."""
    date: str
    narration: str
    cheque_ref: str = ""
    value_date: str = ""
    withdrawal: float = 0.0
    deposit: float = 0.0
    closing_balance: float = 0.0
    txn_id: str = ""

    @property
    def is_credit(self) -> bool:
        """Pure credit: money in, nothing out."""
        return self.deposit > 0 and self.withdrawal == 0

    @property
    def is_debit(self) -> bool:
        return self.withdrawal > 0 and self.deposit == 0

    @property
    def amount(self) -> float:
        """Withdrawal for debits, deposit for credits, the larger one otherwise."""
        if self.is_debit:
            return self.withdrawal
        if self.is_credit:
            return self.deposit
        return max(self.withdrawal, self.deposit)


@dataclass(frozen=True)
class ClassificationMetadata:
    """Explainability record attached to every classified transaction."""
    confidence: float
    matched_keywords: tuple = ()
    gateway: str = ""
    wallet: str = ""
    channel: str = ""
    rule_version: str = RULE_VERSION
    reason: str = ""
    date_parsed: bool = True


@dataclass(frozen=True)
class RecurringMetadata:
    """Recurrence verdict for one transaction."""
    is_recurring: bool = False
    confidence: int = 0
    frequency: str = ""
    first_seen: str = ""
    last_seen: str = ""
    count: int = 0
    pattern: str = ""


@dataclass(frozen=True)
class ClassifiedTransaction(RawTransaction):
    """A RawTransaction plus the facts the classifier derived from its narration."""
    method: str = "Other"
    merchant: str = ""
    beneficiary: str = ""
    category: str = Category.OTHER.value
    is_income: bool = False
    is_recurring: bool = False
    classification_meta: ClassificationMetadata = field(
        default_factory=lambda: ClassificationMetadata(confidence=0.1)
    )
    recurring_meta: Optional[RecurringMetadata] = None


@dataclass(frozen=True)
class RecurringPayment:
    """A detected group of periodic payments to one counterparty."""
    signature: str
    name: str
    amount: float
    day_of_month: int
    pattern: str
    confidence: int
    count: int
    first_seen: str
    last_seen: str
    median_interval_days: float = 0.0
