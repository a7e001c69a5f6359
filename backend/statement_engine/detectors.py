"""
Module: detectors.py
Description: Signal detectors run by the anomaly engine.

Detection Methods:
    1. RuleDetector: fixed thresholds (large amount, round amount, unknown merchant)
    2. StatisticalDetector: z-score / IQR / percentile tests against the profile
    3. DuplicateDetector: same merchant, same amount within a few days
    4. PatternDetector: repeated large transfers, high-value repeats, large bills
    5. IncomeDetector: month-to-date income below the usual run rate
    6. MLDetector: placeholder returning no signals

Every detector reads a TransactionContext and a UserProfile and returns a list
of AnomalySignal. Detectors never mutate the profile or the history.

Author: Statement Engine Team
"""

import math
from collections import defaultdict
from typing import List, Optional

from statement_engine.anomaly_types import (
    AnomalySignal,
    SignalCategory,
    SignalCode,
    TransactionContext,
    UserProfile,
)
from statement_engine.config import (
    DuplicateConfig,
    IncomeConfig,
    PatternConfig,
    RuleConfig,
    StatisticalConfig,
)
from statement_engine.dates import try_parse_date
from statement_engine.method_classifier import Method
from statement_engine.models import Category, ClassifiedTransaction
from statement_engine.normalizer import mask_account_number


class DetectorContractError(RuntimeError):
    """A detector returned something other than a list of AnomalySignal."""


def _same_transaction(a: ClassifiedTransaction, b: ClassifiedTransaction) -> bool:
    return a is b or (bool(a.txn_id) and a.txn_id == b.txn_id)


def _days_between(a, b) -> float:
    return abs((a - b).total_seconds()) / 86400.0


def _target(txn: ClassifiedTransaction) -> str:
    """Counterparty used for transfer patterns: beneficiary, else merchant."""
    beneficiary = txn.beneficiary.strip().upper()
    return beneficiary or txn.merchant.strip().upper()


def _display_target(target: str) -> str:
    """Account numbers are masked; names are shown as-is."""
    digits = sum(ch.isdigit() for ch in target)
    if digits >= 6:
        return mask_account_number(target)
    return target


class Detector:
    """Base class. Subclasses set `name` and implement `detect`."""

    name = "detector"

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def detect(self, ctx: TransactionContext, profile: UserProfile) -> List[AnomalySignal]:
        raise NotImplementedError


# =============================================================================
# Rule Detector
# =============================================================================

class RuleDetector(Detector):
    """Static thresholds that need no history."""

    name = "rule"
    SUSPICIOUS_CATEGORIES = frozenset({Category.OTHER.value, "Unknown", ""})

    def __init__(self, config: Optional[RuleConfig] = None, enabled: bool = True):
        super().__init__(enabled)
        self.config = config or RuleConfig()

    def detect(self, ctx: TransactionContext, profile: UserProfile) -> List[AnomalySignal]:
        amount = ctx.amount
        if amount < self.config.min_amount:
            return []

        signals = []
        large = self._large_amount(amount)
        if large:
            signals.append(large)

        if self.is_round(amount) and amount >= self.config.round_amount_min:
            if ctx.transaction.category in self.SUSPICIOUS_CATEGORIES:
                signals.append(AnomalySignal.create(
                    SignalCode.ROUND_AMOUNT,
                    SignalCategory.PATTERN,
                    55,
                    "Round amount transaction - just for your awareness",
                    {"amount": amount},
                ))

        merchant = ctx.transaction.merchant.strip().upper()
        if merchant in ("", "UNKNOWN") and amount >= self.config.unknown_merchant_threshold:
            ratio = amount / self.config.unknown_merchant_threshold
            signals.append(AnomalySignal.create(
                SignalCode.UNKNOWN_MERCHANT,
                SignalCategory.MERCHANT,
                min(65.0, 30 + ratio * 10),
                "Transaction to a merchant not in your usual spending patterns",
                {"amount": amount},
            ))
        return signals

    def _large_amount(self, amount: float) -> Optional[AnomalySignal]:
        if amount >= self.config.very_large_amount:
            ratio = amount / self.config.very_large_amount
            score = min(90.0, 60 + ratio * 10)
        elif amount >= self.config.large_amount:
            ratio = amount / self.config.large_amount
            score = min(70.0, 40 + ratio * 15)
        else:
            return None
        return AnomalySignal.create(
            SignalCode.HIGH_AMOUNT,
            SignalCategory.AMOUNT,
            score,
            f"This is {ratio:.1f}× your typical large transaction threshold",
            {"amount": amount, "ratio": round(ratio, 2)},
        )

    @staticmethod
    def is_round(amount: float) -> bool:
        if amount >= 100000 and amount % 100000 == 0:
            return True
        if amount >= 50000 and amount % 10000 == 0:
            return True
        return amount >= 10000 and amount % 1000 == 0


# =============================================================================
# Statistical Detector
# =============================================================================

class StatisticalDetector(Detector):
    """
    Compare the amount against the user's own distribution.

    Category statistics are used when the category has enough history;
    otherwise the overall profile percentiles apply. Merchant novelty and
    short-window spending spikes are tested independently.
    """

    name = "statistical"

    def __init__(self, config: Optional[StatisticalConfig] = None, enabled: bool = True):
        super().__init__(enabled)
        self.config = config or StatisticalConfig()

    def detect(self, ctx: TransactionContext, profile: UserProfile) -> List[AnomalySignal]:
        amount = ctx.amount
        if amount < self.config.min_amount or profile.is_empty:
            return []

        signals = []
        category = ctx.transaction.category
        cat = profile.category_profiles.get(category)
        if cat is not None and cat.count >= self.config.min_category_count:
            signals.extend(self._category_amount(amount, cat))
        else:
            signals.extend(self._overall_amount(amount, profile))

        signals.extend(self._merchant(ctx, profile))
        signals.extend(self._spike(amount, profile))
        return signals

    def _category_amount(self, amount: float, cat) -> List[AnomalySignal]:
        c = self.config
        z = (amount - cat.mean) / cat.std_dev if cat.std_dev > 0 else 0.0
        upper = cat.q3 + c.iqr_multiplier * cat.iqr
        lower = cat.q1 - c.iqr_multiplier * cat.iqr
        above_p99 = amount > cat.p99
        above_p95 = amount > cat.p95
        meta = {"z_score": round(z, 2), "category": cat.category}

        if above_p99 or abs(z) >= c.z_score_critical or amount > upper * 2:
            score = 92 if above_p99 else 95
            phrase = "significantly higher than usual for this category (top 1% of your transactions)"
        elif above_p95 or abs(z) >= c.z_score_high or amount > upper * 1.5:
            score = 75 if above_p95 else 80
            phrase = "higher than usual for this category (top 5% of your transactions)"
        elif amount > upper or amount < lower or abs(z) >= c.z_score_medium:
            score = 60
            phrase = "unusual for this category compared to your spending history"
        elif abs(z) >= c.z_score_low:
            score = 40
            phrase = "unusual for this category compared to your spending history"
        else:
            return []

        return [AnomalySignal.create(
            SignalCode.UNUSUAL_AMOUNT,
            SignalCategory.AMOUNT,
            score,
            f"This ₹{amount:,.0f} payment is {phrase}",
            meta,
        )]

    def _overall_amount(self, amount: float, profile: UserProfile) -> List[AnomalySignal]:
        if profile.std_dev <= 0 or profile.mean <= 0:
            return []
        c = self.config
        z = (amount - profile.mean) / profile.std_dev
        ratio = amount / profile.mean

        if abs(z) >= c.z_score_critical or amount > profile.p99:
            score = 90
            phrase = f"significantly higher than your average transaction ({ratio:.1f}× your typical amount)"
        elif abs(z) >= c.z_score_high or amount > profile.p95:
            score = 75
            phrase = f"higher than your average transaction ({ratio:.1f}× your typical amount)"
        else:
            return []

        return [AnomalySignal.create(
            SignalCode.UNUSUAL_AMOUNT,
            SignalCategory.AMOUNT,
            score,
            f"This ₹{amount:,.0f} payment is {phrase}",
            {"z_score": round(z, 2)},
        )]

    def _merchant(self, ctx: TransactionContext, profile: UserProfile) -> List[AnomalySignal]:
        merchant = ctx.transaction.merchant.strip().upper()
        if merchant in ("", "UNKNOWN") or profile.avg_daily_spend <= 0:
            return []

        amount = ctx.amount
        ratio = amount / profile.avg_daily_spend
        frequency = profile.merchant_frequency.get(merchant, 0)

        if frequency == 0 and amount > profile.avg_daily_spend * self.config.new_merchant_multiplier:
            return [AnomalySignal.create(
                SignalCode.NEW_MERCHANT,
                SignalCategory.MERCHANT,
                65,
                f"First payment to {merchant}. This is {ratio:.1f}× your daily average spending",
                {"merchant": merchant},
            )]
        if frequency == 1 and amount > profile.avg_daily_spend * self.config.rare_merchant_multiplier:
            return [AnomalySignal.create(
                SignalCode.RARE_MERCHANT,
                SignalCategory.MERCHANT,
                45,
                f"You rarely pay {merchant}. This is {ratio:.1f}× your daily average spending",
                {"merchant": merchant},
            )]
        return []

    def _spike(self, amount: float, profile: UserProfile) -> List[AnomalySignal]:
        if profile.avg_daily_spend <= 0:
            return []
        expected = profile.avg_daily_spend * self.config.spike_window_days
        ratio = amount / expected
        if ratio <= self.config.spike_ratio:
            return []
        return [AnomalySignal.create(
            SignalCode.SPENDING_SPIKE,
            SignalCategory.BEHAVIOR,
            min(85.0, 60 + (ratio - 2) * 10),
            f"This single transaction equals {ratio:.1f}× your typical {self.config.spike_window_days}-day spending",
            {"ratio": round(ratio, 2)},
        )]


# =============================================================================
# Duplicate Detector
# =============================================================================

class DuplicateDetector(Detector):
    """Same merchant and near-identical amount within a short window."""

    name = "duplicate"

    def __init__(self, config: Optional[DuplicateConfig] = None, enabled: bool = True):
        super().__init__(enabled)
        self.config = config or DuplicateConfig()

    def detect(self, ctx: TransactionContext, profile: UserProfile) -> List[AnomalySignal]:
        txn = ctx.transaction
        amount = ctx.amount
        merchant = txn.merchant.strip().upper()
        if amount <= 0 or not merchant or not ctx.recent_history:
            return []

        window = ctx.recent_history[-self.config.lookback:]
        for other in reversed(window):
            if other.withdrawal <= 0 or _same_transaction(other, txn):
                continue
            if other.merchant.strip().upper() != merchant:
                continue
            if abs(amount - other.withdrawal) / amount > self.config.amount_tolerance:
                continue
            other_date = try_parse_date(other.date)
            if other_date is None:
                continue
            days = _days_between(ctx.timestamp, other_date)
            if days > self.config.window_days:
                continue

            # Only the most recent match is reported.
            if days < 1:
                score = 85
                explanation = (
                    f"Similar payment to {merchant} was made earlier today ({other.date}). "
                    "Just a heads-up in case this was unintentional."
                )
            else:
                score = 60
                explanation = (
                    f"Similar payment to {merchant} was made {int(days)} days ago. "
                    "Just a heads-up in case this was unintentional."
                )
            return [AnomalySignal.create(
                SignalCode.DUPLICATE_PAYMENT,
                SignalCategory.FREQUENCY,
                score,
                explanation,
                {"merchant": merchant, "previous_date": other.date, "days_apart": round(days, 2)},
            )]
        return []


# =============================================================================
# Pattern Detector
# =============================================================================

class PatternDetector(Detector):
    """
    Multi-transaction patterns over the recent history.

    - several large transfers to the same account within a week
    - large payments repeating at a similar amount to the same counterparty
    - bill payments far above normal bill sizes
    """

    name = "pattern"

    CARD_BILL_WORDS = ("CRED", "ACH D", "CREDIT CARD", "CARD BILL")
    BILL_MERCHANT_WORDS = ("CRED", "BILL", "UTILITY")

    def __init__(self, config: Optional[PatternConfig] = None, enabled: bool = True):
        super().__init__(enabled)
        self.config = config or PatternConfig()

    def detect(self, ctx: TransactionContext, profile: UserProfile) -> List[AnomalySignal]:
        if ctx.amount <= 0:
            return []
        signals = []
        signals.extend(self._multiple_transfers(ctx))
        signals.extend(self._high_value_recurring(ctx))
        signals.extend(self._large_bill(ctx))
        return signals

    def _multiple_transfers(self, ctx: TransactionContext) -> List[AnomalySignal]:
        c = self.config
        txn = ctx.transaction
        amount = ctx.amount
        target = _target(txn)
        if not target or amount < c.large_transfer_min:
            return []

        count, total = 1, amount
        for other in ctx.recent_history:
            if other.withdrawal < c.large_transfer_min or _same_transaction(other, txn):
                continue
            if _target(other) != target:
                continue
            other_date = try_parse_date(other.date)
            if other_date is None or _days_between(ctx.timestamp, other_date) > c.transfer_window_days:
                continue
            count += 1
            total += other.withdrawal

        if count < 2 or total < c.transfer_cumulative:
            return []

        score = 75
        if count >= 3:
            score = 90
        elif total >= c.transfer_cumulative_high:
            score = 85
        return [AnomalySignal.create(
            SignalCode.MULTIPLE_LARGE_TRANSFERS,
            SignalCategory.PATTERN,
            score,
            f"{count} large transfers (₹{total:,.0f} total) to {_display_target(target)} "
            f"within {c.transfer_window_days} days. Please confirm you made all of these transfers.",
            {"count": count, "total": total, "target": target},
        )]

    def _high_value_recurring(self, ctx: TransactionContext) -> List[AnomalySignal]:
        c = self.config
        txn = ctx.transaction
        amount = ctx.amount
        target = _target(txn)
        if not target or amount < c.recurring_min or self._expected_recurring(txn):
            return []

        matches = 0
        for other in ctx.recent_history:
            if other.withdrawal <= 0 or _same_transaction(other, txn):
                continue
            if _target(other) != target:
                continue
            if abs(other.withdrawal - amount) / amount <= c.recurring_tolerance:
                matches += 1

        if matches < 2:
            return []

        score = 70 if amount >= c.recurring_high else 60
        return [AnomalySignal.create(
            SignalCode.HIGH_VALUE_RECURRING,
            SignalCategory.PATTERN,
            score,
            f"Repeating payment of ₹{amount:,.0f} to {target}. "
            f"Yearly commitment: ₹{amount * 12:,.0f}. Please check this matches your plans.",
            {"occurrences": matches + 1, "annual": amount * 12},
        )]

    def _expected_recurring(self, txn: ClassifiedTransaction) -> bool:
        """EMIs, card bills, rent and insurance are supposed to repeat."""
        category = txn.category
        text = txn.narration.upper()
        if category == Category.LOAN.value or "EMI" in txn.method.upper():
            return True
        if category == Category.BILLS_UTILITIES.value:
            if any(word in text for word in self.CARD_BILL_WORDS) or "RENT" in text:
                return True
        return txn.method == Method.INSURANCE

    def _large_bill(self, ctx: TransactionContext) -> List[AnomalySignal]:
        c = self.config
        txn = ctx.transaction
        amount = ctx.amount
        merchant = txn.merchant.upper()
        is_bill = txn.category == Category.BILLS_UTILITIES.value or any(
            word in merchant for word in self.BILL_MERCHANT_WORDS
        )
        if not is_bill or amount < c.large_bill:
            return []

        score = 75 if amount >= c.very_large_bill else 65
        return [AnomalySignal.create(
            SignalCode.LARGE_BILL_PAYMENT,
            SignalCategory.PATTERN,
            score,
            f"Bill payment of ₹{amount:,.0f} is well above your usual bill size. "
            "Please check the bill amount is correct.",
            {"amount": amount},
        )]


# =============================================================================
# Income Detector
# =============================================================================

class IncomeDetector(Detector):
    """Month-to-date income compared with the average month in the history."""

    name = "income"

    def __init__(self, config: Optional[IncomeConfig] = None, enabled: bool = True):
        super().__init__(enabled)
        self.config = config or IncomeConfig()

    def detect(self, ctx: TransactionContext, profile: UserProfile) -> List[AnomalySignal]:
        txn = ctx.transaction
        if txn.deposit <= 0:
            return []

        history = list(ctx.full_history)
        if not any(_same_transaction(t, txn) for t in history):
            history.append(txn)

        monthly = defaultdict(float)
        for other in history:
            if other.deposit <= 0 or other.category == Category.REFUND.value:
                continue
            when = ctx.timestamp if _same_transaction(other, txn) else try_parse_date(other.date)
            if when is None:
                continue
            monthly[(when.year, when.month)] += other.deposit

        if not monthly:
            return []
        average = sum(monthly.values()) / len(monthly)
        if average <= 0:
            return []

        day = ctx.timestamp.day
        if day < self.config.min_day_of_month:
            return []

        current = monthly.get((ctx.timestamp.year, ctx.timestamp.month), 0.0)
        expected = average / 30.0 * day
        ratio = current / expected
        if ratio >= self.config.disruption_ratio:
            return []

        score = 90 if ratio < self.config.severe_ratio else 80
        return [AnomalySignal.create(
            SignalCode.INCOME_DISRUPTION,
            SignalCategory.BEHAVIOR,
            score,
            f"Income for this month (₹{current:,.0f}) is lower than expected (₹{expected:,.0f}). "
            f"This is {ratio * 100:.0f}% of your typical income by this date. "
            "Please check whether your salary has been received.",
            {"current_month_income": current, "expected_income": round(expected, 2),
             "ratio": round(ratio, 3)},
        )]


# =============================================================================
# ML Detector
# =============================================================================

class MLDetector(Detector):
    """Placeholder for a learned model; emits nothing."""

    name = "ml"

    def detect(self, ctx: TransactionContext, profile: UserProfile) -> List[AnomalySignal]:
        return []


def validate_signals(detector: Detector, output) -> List[AnomalySignal]:
    """Raise DetectorContractError unless `output` is a list of AnomalySignal."""
    if not isinstance(output, list) or not all(isinstance(s, AnomalySignal) for s in output):
        raise DetectorContractError(
            f"{detector.name} detector returned {type(output).__name__}, expected a list of signals"
        )
    if any(math.isnan(s.score) for s in output):
        raise DetectorContractError(f"{detector.name} detector produced a NaN score")
    return output
