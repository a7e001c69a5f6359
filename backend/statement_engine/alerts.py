"""
Module: alerts.py
Description: Turns an AnomalyResult into a short, friendly Alert for the user.

Messages compare the payment with the user's own baseline ("2.4× your daily
average") and suggest a next step. They read as spending insights, never as
warnings, and avoid alarming vocabulary.

Author: Statement Engine Team
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from statement_engine.anomaly_types import AnomalyResult, Severity, SignalCode, UserProfile
from statement_engine.models import ClassifiedTransaction


@dataclass
class Alert:
    title: str
    message: str
    severity: Severity
    confidence: float
    action: str = ""


def format_amount(amount: float) -> str:
    """Indian short form: ₹1.2Cr, ₹4.5L, ₹12.5K, ₹850."""
    if amount >= 100000:
        lakhs = amount / 100000
        if lakhs >= 100:
            return f"₹{lakhs / 100:.1f}Cr"
        return f"₹{lakhs:.1f}L"
    if amount >= 1000:
        return f"₹{amount / 1000:.1f}K"
    return f"₹{amount:.0f}"


def build_profile_context(profile: UserProfile, txn: ClassifiedTransaction) -> Dict[str, float]:
    """Baseline numbers the formatter compares a payment against."""
    amount = txn.withdrawal or txn.deposit
    return {
        "avg_daily_spend": profile.avg_daily_spend,
        "avg_txn_amount": profile.mean,
        "amount": amount,
        "current_spend": amount,
        "history_days": profile.transaction_days,
    }


class AlertFormatter:
    """
    Build user-facing alerts.

    Usage:
        formatter = AlertFormatter()
        alert = formatter.format(result, amount=52000, merchant="CROMA",
                                 profile_context=build_profile_context(profile, txn))
    """

    TITLES = {
        Severity.CRITICAL: "Large transaction alert",
        Severity.HIGH: "Spending insight",
        Severity.MEDIUM: "Pattern change",
        Severity.LOW: "Spending update",
    }
    DEFAULT_TITLE = "Transaction insight"

    ACTIONS = {
        Severity.CRITICAL: "Please verify if this matches your intent",
        Severity.HIGH: "Review if this looks correct",
        Severity.MEDIUM: "Just for your awareness",
    }

    # Below this confidence the message carries the percentage.
    CONFIDENCE_NOTE_BELOW = 0.7

    def format(
        self,
        result: AnomalyResult,
        amount: float,
        merchant: str,
        profile_context: Optional[Dict[str, float]] = None,
    ) -> Alert:
        if not result.signals:
            return Alert(
                title="Transaction processed",
                message="No unusual patterns detected in this transaction.",
                severity=Severity.INFO,
                confidence=1.0,
            )

        severity = result.severity
        return Alert(
            title=self.TITLES.get(severity, self.DEFAULT_TITLE),
            message=self._message(result, amount, merchant, profile_context),
            severity=severity,
            confidence=result.confidence,
            action=self.ACTIONS.get(severity, ""),
        )

    def format_batch(
        self,
        results: Sequence[AnomalyResult],
        transactions: Sequence[ClassifiedTransaction],
        contexts: Optional[Sequence[Dict[str, float]]] = None,
    ) -> List[Alert]:
        """Alerts worth showing: above Info and more than 50% confident."""
        contexts = contexts or []
        alerts = []
        for i, result in enumerate(results):
            amount, merchant = 0.0, ""
            if i < len(transactions):
                txn = transactions[i]
                amount = txn.withdrawal or txn.deposit
                merchant = txn.merchant or txn.beneficiary
            context = contexts[i] if i < len(contexts) else None
            alert = self.format(result, amount, merchant, context)
            if alert.severity != Severity.INFO and alert.confidence > 0.5:
                alerts.append(alert)
        return alerts

    def _message(self, result: AnomalyResult, amount: float, merchant: str, context) -> str:
        top = result.top_signals[0] if result.top_signals else result.signals[0]
        amount_str = format_amount(amount)
        payee = merchant or "this payee"
        baseline = self.comparison_baseline(context, top.code)

        if top.code in (SignalCode.HIGH_AMOUNT, SignalCode.AMOUNT_SPIKE):
            message = (f"You spent {amount_str} at {payee}, which is {baseline}. "
                       "This is higher than your usual spending pattern.")
        elif top.code == SignalCode.UNUSUAL_AMOUNT:
            message = (f"Transaction of {amount_str} to {payee} is {baseline}. "
                       "This differs from your typical spending in this category.")
        elif top.code == SignalCode.NEW_MERCHANT:
            message = f"First transaction with {payee} for {amount_str}. This is {baseline}."
        elif top.code == SignalCode.RARE_MERCHANT:
            message = (f"Transaction to {payee} for {amount_str}. "
                       f"You've used this merchant rarely. This is {baseline}.")
        elif top.code == SignalCode.SPENDING_SPIKE:
            message = f"Your spending today is {baseline}. This is higher than your typical daily average."
        elif top.code == SignalCode.DUPLICATE_PAYMENT:
            message = (f"Similar payment of {amount_str} to {payee} was made recently. "
                       "Just a heads-up in case this was unintentional.")
        elif top.code in (
            SignalCode.MULTIPLE_LARGE_TRANSFERS,
            SignalCode.HIGH_VALUE_RECURRING,
            SignalCode.LARGE_BILL_PAYMENT,
            SignalCode.INCOME_DISRUPTION,
        ):
            message = top.explanation
        else:
            message = f"Transaction of {amount_str} to {payee} is {baseline}."

        if result.confidence < self.CONFIDENCE_NOTE_BELOW:
            message += f" (Confidence: {result.confidence * 100:.0f}%)"
        return message

    @staticmethod
    def comparison_baseline(context: Optional[Dict[str, float]], code: SignalCode) -> str:
        if not context:
            return "unusual compared to your history"

        avg_daily = context.get("avg_daily_spend") or 0
        if code == SignalCode.SPENDING_SPIKE and avg_daily > 0:
            return f"{context.get('current_spend', 0) / avg_daily:.1f}× your daily average"

        avg_txn = context.get("avg_txn_amount") or 0
        if code in (SignalCode.HIGH_AMOUNT, SignalCode.UNUSUAL_AMOUNT) and avg_txn > 0:
            return f"{context.get('amount', 0) / avg_txn:.1f}× your average transaction"

        if code in (SignalCode.NEW_MERCHANT, SignalCode.RARE_MERCHANT) and avg_daily > 0:
            return f"{context.get('amount', 0) / avg_daily:.1f}× your daily average spending"

        days = int(context.get("history_days") or 0)
        if days > 0:
            return f"unusual compared to your last {days} days"
        return "unusual compared to your spending history"
