"""
Module: anomaly_types.py
Description: Signal, context, profile and result types shared by the detectors,
the scorer and the engine.

This module imports nothing from the rest of the package except the transaction
records, so detectors can depend on it without pulling in the engine.

Author: Statement Engine Team
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from statement_engine.models import ClassifiedTransaction


# =============================================================================
# Severity
# =============================================================================

class Severity(str, Enum):
    """Bucketed score tiers, lowest first."""
    INFO = "INFO"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_ORDER = [
    Severity.INFO,
    Severity.LOW,
    Severity.MEDIUM,
    Severity.HIGH,
    Severity.CRITICAL,
]

# Canonical score written over a capped result.
SEVERITY_CAP_SCORES = {
    Severity.CRITICAL: 95.0,
    Severity.HIGH: 80.0,
    Severity.MEDIUM: 60.0,
    Severity.LOW: 30.0,
    Severity.INFO: 10.0,
}


def severity_from_score(score: float) -> Severity:
    """Map a 0-100 score to its severity band."""
    if score >= 90:
        return Severity.CRITICAL
    if score >= 70:
        return Severity.HIGH
    if score >= 45:
        return Severity.MEDIUM
    if score >= 20:
        return Severity.LOW
    return Severity.INFO


def severity_to_score(severity: Severity) -> float:
    return SEVERITY_CAP_SCORES[Severity(severity)]


# =============================================================================
# Signals
# =============================================================================

class SignalCode(str, Enum):
    """Atomic evidence codes a detector can emit."""
    HIGH_AMOUNT = "HIGH_AMOUNT"
    AMOUNT_SPIKE = "AMOUNT_SPIKE"
    UNUSUAL_AMOUNT = "UNUSUAL_AMOUNT"
    ROUND_AMOUNT = "ROUND_AMOUNT"
    NEW_MERCHANT = "NEW_MERCHANT"
    RARE_MERCHANT = "RARE_MERCHANT"
    UNKNOWN_MERCHANT = "UNKNOWN_MERCHANT"
    DUPLICATE_PAYMENT = "DUPLICATE_PAYMENT"
    SPENDING_SPIKE = "SPENDING_SPIKE"
    MULTIPLE_LARGE_TRANSFERS = "MULTIPLE_LARGE_TRANSFERS"
    HIGH_VALUE_RECURRING = "HIGH_VALUE_RECURRING"
    LARGE_BILL_PAYMENT = "LARGE_BILL_PAYMENT"
    INCOME_DISRUPTION = "INCOME_DISRUPTION"
    ML_ANOMALY = "ML_ANOMALY"


class SignalCategory(str, Enum):
    AMOUNT = "Amount"
    FREQUENCY = "Frequency"
    BEHAVIOR = "Behavior"
    MERCHANT = "Merchant"
    PATTERN = "Pattern"
    ML = "ML"


@dataclass
class AnomalySignal:
    """One piece of evidence that a transaction deviates from the baseline."""
    code: SignalCode
    category: SignalCategory
    score: float
    severity: Severity
    explanation: str
    metadata: Dict[str, object] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        code: SignalCode,
        category: SignalCategory,
        score: float,
        explanation: str,
        metadata: Optional[Dict[str, object]] = None,
    ) -> "AnomalySignal":
        """Build a signal with the score clamped to [0, 100] and severity derived from it."""
        score = max(0.0, min(100.0, float(score)))
        return cls(
            code=code,
            category=category,
            score=score,
            severity=severity_from_score(score),
            explanation=explanation,
            metadata=dict(metadata or {}),
        )


# =============================================================================
# Profile
# =============================================================================

@dataclass
class CategoryProfile:
    """Distribution of expense amounts within one category."""
    category: str
    mean: float = 0.0
    median: float = 0.0
    std_dev: float = 0.0
    q1: float = 0.0
    q3: float = 0.0
    iqr: float = 0.0
    p95: float = 0.0
    p99: float = 0.0
    count: int = 0


@dataclass
class UserProfile:
    """Behavioural baseline built from a user's expense history."""
    mean: float = 0.0
    std_dev: float = 0.0
    median: float = 0.0
    min: float = 0.0
    max: float = 0.0
    p95: float = 0.0
    p99: float = 0.0

    avg_daily_spend: float = 0.0
    avg_weekly_spend: float = 0.0
    avg_monthly_spend: float = 0.0
    avg_txn_per_day: float = 0.0

    merchant_frequency: Dict[str, int] = field(default_factory=dict)
    merchant_amounts: Dict[str, List[float]] = field(default_factory=dict)
    hour_distribution: Dict[int, int] = field(default_factory=dict)
    day_of_week_distribution: Dict[int, int] = field(default_factory=dict)
    category_profiles: Dict[str, CategoryProfile] = field(default_factory=dict)

    total_transactions: int = 0
    transaction_days: int = 0
    total_spend: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.total_transactions == 0


# =============================================================================
# Evaluation context and results
# =============================================================================

@dataclass
class TransactionContext:
    """A transaction being evaluated plus the recent history the detectors may read."""
    transaction: ClassifiedTransaction
    timestamp: datetime
    user_id: str = ""
    recent_history: List[ClassifiedTransaction] = field(default_factory=list)
    full_history: List[ClassifiedTransaction] = field(default_factory=list)
    timestamp_parsed: bool = True

    @property
    def amount(self) -> float:
        return self.transaction.withdrawal


@dataclass
class SuppressionRule:
    """Suppressor verdict: skip detection entirely, or cap the result's severity."""
    skip: bool = False
    max_severity: Severity = Severity.CRITICAL
    reason: str = ""


@dataclass
class AnomalyResult:
    """Aggregated outcome of evaluating one transaction."""
    signals: List[AnomalySignal] = field(default_factory=list)
    final_score: float = 0.0
    severity: Severity = Severity.INFO
    top_signals: List[AnomalySignal] = field(default_factory=list)
    explanation: str = ""
    confidence: float = 1.0
    risk_flags: List[str] = field(default_factory=list)
    transaction_id: str = ""


# =============================================================================
# Cancellation
# =============================================================================

class OperationCancelled(RuntimeError):
    """Raised when a caller cancelled an evaluation or embedding batch."""


class CancellationToken:
    """Thread-safe cooperative cancellation flag."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("Operation cancelled by caller")
