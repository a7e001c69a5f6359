"""
Module: recurring_detector.py
Description: Recurring payment detection over a classified statement.

Transactions are grouped by a signature made of the counterparty (canonical
merchant, narration fingerprint or beneficiary) and an amount cluster: a
counterparty's amounts are sorted and a new cluster opens whenever an amount
is more than 10% above the current cluster anchor. Any group with three or
more occurrences is a recurring payment; its median inter-arrival time decides
the pattern label.

Detection runs once per batch and remembers which signature each transaction
landed in, so matching a batch member afterwards is a dictionary lookup.

Author: Statement Engine Team
"""

from bisect import bisect_right
from collections import defaultdict
from typing import Iterable, Optional

import numpy as np

from statement_engine.dates import try_parse_date
from statement_engine.merchant_extractor import first_hit
from statement_engine.models import ClassifiedTransaction, RecurringMetadata, RecurringPayment
from statement_engine.normalizer import (
    fingerprint_narration,
    is_person_to_person_transfer,
    normalize_merchant_name,
)
from statement_engine.observability import logger, metrics


RECURRING_KEYWORDS = (
    "INSTALLMENT", "EMI", "SIP", "RECURRING", "SUBSCRIPTION", "AUTO DEBIT",
    "STANDING INSTRUCTION", "NACH", "ECS",
)


def has_recurring_keyword(narration: str) -> bool:
    return first_hit((narration or "").upper(), RECURRING_KEYWORDS) is not None


class RecurringDetector:
    """
    Detect periodic payments to the same counterparty.

    Usage:
        detector = RecurringDetector()
        groups = detector.detect(classified)
        meta = detector.metadata_for(classified[0])
    """

    MIN_OCCURRENCES = 3
    AMOUNT_TOLERANCE = 0.10

    # (label, min days, max days)
    PATTERNS = (
        ("Weekly", 5, 10),
        ("Monthly", 25, 35),
        ("Yearly", 355, 375),
    )

    GENERIC_MERCHANTS = (
        "UNKNOWN", "MERCHANT", "PAYMENT", "TRANSACTION", "BANK", "ATM", "POS", "UPI", "IMPS", "NEFT",
    )
    FOOD_DELIVERY = ("SWIGGY", "ZOMATO", "UBER EATS")
    P2P_METHODS = ("UPI", "IMPS")

    def __init__(self):
        self._groups: dict[str, RecurringPayment] = {}
        self._anchors: dict[str, list] = {}
        self._members: dict[str, str] = {}

    @property
    def groups(self) -> dict[str, RecurringPayment]:
        return dict(self._groups)

    # -------------------------------------------------------------------------
    # Signatures
    # -------------------------------------------------------------------------

    def counterparty(self, txn: ClassifiedTransaction) -> str:
        """Stable counterparty key: merchant, then narration fingerprint, then beneficiary."""
        merchant = txn.merchant.strip().upper()
        if merchant and not any(g in merchant for g in self.GENERIC_MERCHANTS):
            return "MERCHANT:" + normalize_merchant_name(merchant)
        fingerprint = fingerprint_narration(txn.narration)
        if fingerprint:
            return "FINGERPRINT:" + fingerprint
        beneficiary = txn.beneficiary.strip().upper()
        if beneficiary:
            return "BENEFICIARY:" + beneficiary
        return ""

    def cluster_anchors(self, amounts: Iterable[float]) -> list[float]:
        """Sorted cluster anchors; an amount more than 10% above the current anchor opens a new cluster."""
        anchors = []
        for amount in sorted(amounts):
            if not anchors or amount > anchors[-1] * (1 + self.AMOUNT_TOLERANCE):
                anchors.append(amount)
        return anchors

    def anchor_for(self, counterparty: str, amount: float) -> Optional[float]:
        """Anchor of the cluster `amount` falls into, or None if no cluster covers it."""
        anchors = self._anchors.get(counterparty, [])
        idx = bisect_right(anchors, amount) - 1
        if idx >= 0 and amount <= anchors[idx] * (1 + self.AMOUNT_TOLERANCE):
            return anchors[idx]
        return None

    @staticmethod
    def _key(counterparty: str, anchor: float) -> str:
        return f"{counterparty}|{anchor:.2f}"

    def signature(self, txn: ClassifiedTransaction) -> str:
        amount = txn.withdrawal or txn.deposit
        if amount <= 0:
            return ""
        counterparty = self.counterparty(txn)
        if not counterparty:
            return ""
        anchor = self.anchor_for(counterparty, amount)
        return self._key(counterparty, amount if anchor is None else anchor)

    # -------------------------------------------------------------------------
    # Detection
    # -------------------------------------------------------------------------

    def detect(self, transactions: Iterable[ClassifiedTransaction]) -> dict[str, RecurringPayment]:
        """Cluster each counterparty's amounts and keep every cluster with enough occurrences."""
        by_counterparty = defaultdict(list)
        for txn in transactions:
            amount = txn.withdrawal or txn.deposit
            counterparty = self.counterparty(txn) if amount > 0 else ""
            if counterparty:
                by_counterparty[counterparty].append((amount, txn))

        self._anchors = {
            counterparty: self.cluster_anchors(amount for amount, _ in items)
            for counterparty, items in by_counterparty.items()
        }

        grouped = defaultdict(list)
        members = {}
        for counterparty, items in by_counterparty.items():
            for amount, txn in items:
                sig = self._key(counterparty, self.anchor_for(counterparty, amount))
                grouped[sig].append(txn)
                if txn.txn_id:
                    members[txn.txn_id] = sig

        detected = {}
        for sig, txns in grouped.items():
            if len(txns) < self.MIN_OCCURRENCES or self._should_exclude(txns):
                continue
            detected[sig] = self._build_payment(sig, txns)

        self._groups = detected
        self._members = members
        metrics.gauge("recurring.groups", len(detected))
        logger.debug("Recurring detection complete", groups=len(detected), candidates=len(grouped))
        return dict(detected)

    def match(self, txn: ClassifiedTransaction) -> Optional[RecurringPayment]:
        sig = self._members.get(txn.txn_id) if txn.txn_id else None
        if sig is None:
            sig = self.signature(txn)
        return self._groups.get(sig) if sig else None

    def metadata_for(self, txn: ClassifiedTransaction) -> Optional[RecurringMetadata]:
        """Recurrence verdict for one transaction; None when it is not recurring."""
        payment = self.match(txn)
        if payment is not None:
            return RecurringMetadata(
                is_recurring=True,
                confidence=payment.confidence,
                frequency=payment.pattern,
                first_seen=payment.first_seen,
                last_seen=payment.last_seen,
                count=payment.count,
                pattern=payment.pattern,
            )
        if has_recurring_keyword(txn.narration):
            return keyword_metadata(txn)
        return None

    # -------------------------------------------------------------------------
    # Group analysis
    # -------------------------------------------------------------------------

    def _build_payment(self, sig: str, txns: list) -> RecurringPayment:
        dated = sorted(
            ((try_parse_date(t.date), t) for t in txns),
            key=lambda pair: (pair[0] is None, pair[0] or 0),
        )
        dates = [d for d, _ in dated if d is not None]
        ordered = [t for _, t in dated]
        seen = [t for d, t in dated if d is not None] or ordered

        intervals = [(b - a).days for a, b in zip(dates, dates[1:])]
        median_interval = float(np.median(intervals)) if intervals else 0.0
        pattern = self.label_pattern(median_interval) if intervals else "Irregular"

        amounts = np.array([t.withdrawal or t.deposit for t in txns], dtype=float)
        day_of_month = int(round(np.mean([d.day for d in dates]))) if dates else 0

        return RecurringPayment(
            signature=sig,
            name=self._display_name(ordered),
            amount=round(float(amounts.mean()), 2),
            day_of_month=day_of_month,
            pattern=pattern,
            confidence=self._confidence(ordered, intervals, dates, amounts, pattern),
            count=len(txns),
            first_seen=seen[0].date,
            last_seen=seen[-1].date,
            median_interval_days=median_interval,
        )

    def label_pattern(self, median_interval: float) -> str:
        for label, low, high in self.PATTERNS:
            if low <= median_interval <= high:
                return label
        return "Irregular"

    def _confidence(self, txns, intervals, dates, amounts, pattern) -> int:
        """0-100 score from occurrence count, periodicity, stability, keywords and direction."""
        score = 30
        if len(txns) >= self.MIN_OCCURRENCES:
            score += 10

        score += self._periodicity_score(intervals, pattern)
        score += self._amount_stability_score(amounts)

        keyword_hits = sum(1 for t in txns if has_recurring_keyword(t.narration))
        if keyword_hits == len(txns):
            score += 15
        elif keyword_hits:
            score += 10

        if len(dates) >= 2:
            days = [d.day for d in dates]
            avg_day = sum(days) // len(days)
            if all(abs(day - avg_day) <= 2 for day in days):
                score += 10

        first_is_debit = txns[0].withdrawal > 0 and txns[0].deposit == 0
        if all((t.withdrawal > 0 and t.deposit == 0) == first_is_debit for t in txns):
            score += 5

        return min(score, 100)

    def _periodicity_score(self, intervals: list, pattern: str) -> int:
        if not intervals:
            return 0
        if pattern != "Irregular":
            low, high = next((lo, hi) for label, lo, hi in self.PATTERNS if label == pattern)
            return 25 if all(low <= gap <= high for gap in intervals) else 20
        mean_gap = float(np.mean(intervals))
        spread = float(np.mean([abs(gap - mean_gap) for gap in intervals]))
        return 15 if spread < 5 else 0

    @staticmethod
    def _amount_stability_score(amounts) -> int:
        if len(amounts) < 2 or amounts.mean() <= 0:
            return 0
        max_deviation = float(np.max(np.abs(amounts - amounts.mean()) / amounts.mean()))
        if max_deviation <= 0.03:
            return 20
        if max_deviation <= 0.05:
            return 15
        if max_deviation <= 0.10:
            return 10
        return 0

    def _should_exclude(self, txns: list) -> bool:
        """Person-to-person transfers and variable food-delivery orders are not recurring payments."""
        for txn in txns:
            upper = txn.narration.upper()
            if txn.method in self.P2P_METHODS and "SALARY" not in upper and "PAYROLL" not in upper:
                if is_person_to_person_transfer(txn.narration, txn.merchant, txn.withdrawal):
                    return True
            if first_hit(upper, self.FOOD_DELIVERY) and "SUBSCRIPTION" not in upper:
                if self._has_high_variance(txns):
                    return True
        return False

    @staticmethod
    def _has_high_variance(txns: list) -> bool:
        amounts = np.array([t.withdrawal or t.deposit for t in txns], dtype=float)
        if len(amounts) < 2 or amounts.mean() <= 0:
            return False
        return bool(np.any(np.abs(amounts - amounts.mean()) / amounts.mean() > 0.30))

    @staticmethod
    def _display_name(txns: list) -> str:
        for txn in txns:
            if txn.merchant and txn.merchant.upper() != "UNKNOWN":
                return txn.merchant
        for txn in txns:
            if txn.beneficiary:
                return txn.beneficiary
        narration = txns[0].narration.strip()
        return narration[:40]


def keyword_metadata(txn: ClassifiedTransaction) -> RecurringMetadata:
    """Recurrence implied by the narration alone (EMI, SIP, NACH, ...)."""
    return RecurringMetadata(
        is_recurring=True,
        confidence=50,
        frequency="",
        first_seen=txn.date,
        last_seen=txn.date,
        count=1,
        pattern="Keyword",
    )
