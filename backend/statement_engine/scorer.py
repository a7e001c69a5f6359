"""
Module: scorer.py
Description: Aggregates detector signals into one scored AnomalyResult.

    final = 0.6 * max + 0.3 * ln(sum + 1) * 20 + 0.1 * min(n * 10, 50)

capped at 100. The log term keeps many weak signals from outweighing one
strong one; the count term rewards agreement with diminishing returns.

Author: Statement Engine Team
"""

import math
from collections import Counter
from typing import List

from statement_engine.anomaly_types import AnomalyResult, AnomalySignal, Severity, SignalCode, severity_from_score


NO_SIGNALS_EXPLANATION = "No unusual patterns detected"

# Only Critical / High signals produce flags.
FLAG_BY_CODE = {
    SignalCode.HIGH_AMOUNT: "LARGE_AMOUNT",
    SignalCode.AMOUNT_SPIKE: "LARGE_AMOUNT",
    SignalCode.NEW_MERCHANT: "UNKNOWN_MERCHANT",
    SignalCode.UNKNOWN_MERCHANT: "UNKNOWN_MERCHANT",
    SignalCode.DUPLICATE_PAYMENT: "DUPLICATE_TRANSACTION",
    SignalCode.ROUND_AMOUNT: "SUSPICIOUS_PATTERN",
    SignalCode.SPENDING_SPIKE: "UNUSUAL_SPENDING",
    SignalCode.MULTIPLE_LARGE_TRANSFERS: "BENEFICIARY_CONCENTRATION",
    SignalCode.HIGH_VALUE_RECURRING: "HIGH_RECURRING_COMMITMENT",
    SignalCode.LARGE_BILL_PAYMENT: "UNUSUAL_BILL_AMOUNT",
    SignalCode.INCOME_DISRUPTION: "INCOME_DISRUPTION",
}


class Scorer:
    """Weighted max / log-sum / count aggregation."""

    TOP_SIGNALS = 3

    def __init__(self, max_weight: float = 0.6, sum_weight: float = 0.3, count_weight: float = 0.1):
        self.max_weight = max_weight
        self.sum_weight = sum_weight
        self.count_weight = count_weight

    def score(self, signals: List[AnomalySignal]) -> AnomalyResult:
        if not signals:
            return AnomalyResult(
                signals=[],
                final_score=0.0,
                severity=Severity.INFO,
                explanation=NO_SIGNALS_EXPLANATION,
                confidence=1.0,
            )

        ranked = sorted(signals, key=lambda s: -s.score)
        max_score = ranked[0].score
        total = sum(s.score for s in signals)
        count_score = min(len(signals) * 10, 50)
        log_sum = math.log(total + 1) * 20 if total > 0 else 0.0

        final = min(
            max_score * self.max_weight + log_sum * self.sum_weight + count_score * self.count_weight,
            100.0,
        )

        return AnomalyResult(
            signals=list(signals),
            final_score=round(final, 2),
            severity=severity_from_score(final),
            top_signals=ranked[:self.TOP_SIGNALS],
            explanation=self.explain(ranked, final),
            confidence=self.confidence(ranked),
            risk_flags=self.flags(ranked),
        )

    @staticmethod
    def explain(ranked: List[AnomalySignal], final: float) -> str:
        if not ranked:
            return NO_SIGNALS_EXPLANATION
        top = ranked[0]
        if len(ranked) == 1:
            return top.explanation
        if final >= 90:
            return "Multiple spending patterns detected: " + top.explanation
        if final >= 70:
            return "Unusual spending pattern: " + top.explanation
        if len(ranked) > 3:
            return "Multiple pattern changes detected across different categories"
        return top.explanation

    @staticmethod
    def confidence(signals: List[AnomalySignal]) -> float:
        """Average strength, boosted when several signals or categories agree."""
        if not signals:
            return 1.0
        value = sum(s.score for s in signals) / len(signals) / 100.0
        if len(signals) >= 2:
            value = min(value * 1.2, 1.0)
        if max(Counter(s.category for s in signals).values()) >= 2:
            value = min(value * 1.1, 1.0)
        return round(min(value, 1.0), 3)

    @staticmethod
    def flags(signals: List[AnomalySignal]) -> List[str]:
        flags = []
        for signal in signals:
            if signal.severity not in (Severity.CRITICAL, Severity.HIGH):
                continue
            flag = FLAG_BY_CODE.get(signal.code)
            if flag and flag not in flags:
                flags.append(flag)
        return flags
