"""
Module: classifier.py
Description: Transaction assembler. Runs normalisation, method, merchant,
beneficiary and category stages over a RawTransaction and applies the
method-driven overrides, self-transfer detection and the credit safeguard.

Usage:
    classifier = TransactionClassifier(customer_name="KALPIT SHARMA")
    classified = classifier.classify_all(raw_transactions)

Author: Statement Engine Team
"""

import dataclasses
from typing import Iterable, Optional

from statement_engine.category_classifier import CategoryClassifier
from statement_engine.dates import parse_date
from statement_engine.merchant_extractor import (
    MerchantExtractor,
    first_hit,
    first_name,
    match_names,
)
from statement_engine.method_classifier import (
    INCOME_METHODS,
    SAVINGS_METHODS,
    TRANSFER_METHODS,
    Method,
    MethodClassifier,
)
from statement_engine.models import (
    RULE_VERSION,
    Category,
    ClassificationMetadata,
    ClassifiedTransaction,
    RawTransaction,
    RecurringMetadata,
    is_expense_category,
)
from statement_engine.normalizer import contains_word, detect_amount_pattern, detect_wallet, normalize
from statement_engine.observability import log_classification_batch, logger, timed
from statement_engine.recurring_detector import RecurringDetector, has_recurring_keyword, keyword_metadata


class TransactionClassifier:
    """Assemble a ClassifiedTransaction from a statement row."""

    REVERSAL_METHODS = frozenset({Method.UPI_REVERSAL, Method.IMPS_REVERSAL, Method.CARD_REVERSAL})

    REFUND_MERCHANTS = (
        "AMAZON", "FLIPKART", "MYNTRA", "AJIO", "MEESHO", "NYKAA", "ZARA", "HNM",
        "SHOPPERS STOP", "LIFESTYLE", "PANTALOONS", "CROMA", "RELIANCE DIGITAL",
        "VIJAY SALES", "SIMPL",
    )
    REFUND_KEYWORDS = ("REFUND", "CASHBACK", "REVERSAL")
    CREDIT_INVESTMENT_KEYWORDS = (
        "INVESTMENT", "BROKERAGE", "DEMAT", "TRADING", "MUTUAL FUND", "SIP", "STOCK", "SHARE",
        "SECURITIES", "BROKING", "BROKER", "FD", "FIXED DEPOSIT", "RD", "RECURRING DEPOSIT",
        "PPF", "NPS", "ZERODHA", "UPSTOX", "GROWW", "COIN",
    )
    EMI_REIMBURSEMENT = (
        "STAFF LOAN EMI REC", "LOAN EMI REC", "EMI REC", "LOAN REC", "EMI REIMB", "LOAN REIMB",
    )
    ULIP_KEYWORDS = (
        "ULIP", "ENDOWMENT", "WHOLE LIFE", "MONEY BACK", "RETIREMENT", "PENSION PLAN", "SAVINGS PLAN",
    )
    OWN_MARKERS = ("-OWN", " OWN", "OWN ")
    ACH_DEBIT = ("ACH D-", "ACH D ", "ACH DR")
    ACH_BANKS = ("HDFC", "ICICI", "SBI", "AXIS", "KOTAK", "IDFC", "BAJAJ", "YES BANK", "INDUSIND")
    CREDIT_CARD_KEYWORDS = ("CREDIT CARD", "CC", "CARD")

    INCOME_CONFIDENCE = {Method.DIVIDEND: 0.98, Method.SALARY: 0.95, Method.INTEREST: 0.95}

    def __init__(self, customer_name: str = ""):
        self.customer_name = (customer_name or "").strip().upper()
        self.method_classifier = MethodClassifier()
        self.merchant_extractor = MerchantExtractor()
        self.category_classifier = CategoryClassifier()
        self.recurring_detector = RecurringDetector()

    # =========================================================================
    # Public API
    # =========================================================================

    def classify(self, raw: RawTransaction, recurring: Optional[RecurringMetadata] = None) -> ClassifiedTransaction:
        """
        Classify one transaction.

        Args:
            raw: statement row
            recurring: recurrence verdict from a batch run; when omitted only the
                narration keywords are consulted

        Returns:
            ClassifiedTransaction carrying the full explainability record.
        """
        n = normalize(raw.narration)
        text = n.text
        method = self.method_classifier.classify(n)
        merchant = self.merchant_extractor.extract_merchant(n)
        net_credit = raw.deposit > 0 and raw.deposit > raw.withdrawal
        debit = raw.withdrawal > 0 and not net_credit
        amount = raw.withdrawal if raw.withdrawal > 0 else raw.deposit

        result = self.category_classifier.classify(n, merchant, amount)
        category, confidence = result.category, result.confidence
        keywords = list(result.matched_keywords)
        reason = result.reason

        def assign(new_category: str, new_confidence: float, keyword: str, new_reason: str):
            nonlocal category, confidence, reason
            category, confidence, reason = new_category, new_confidence, new_reason
            keywords.append(keyword)

        if method in self.REVERSAL_METHODS:
            assign(Category.REFUND.value, 0.95, method, "Reversal of an earlier payment")
        elif net_credit and first_hit(text, self.EMI_REIMBURSEMENT):
            assign(Category.REIMBURSEMENT.value, 0.95, "EMI_REIMBURSEMENT", "Loan EMI reimbursed by employer")

        beneficiary = self.merchant_extractor.extract_beneficiary(n, method)

        if "FD PREMAT" in text:
            if "INT PAID" in text:
                assign(Category.INCOME.value, 0.95, "FD PREMAT", "Interest on prematurely closed fixed deposit")
            elif "PRINCIPAL" in text:
                assign(Category.INVESTMENT.value, 0.95, "FD PREMAT", "Principal of prematurely closed fixed deposit")

        self_transfer = False
        override = self._method_override(method, text, category, debit)
        if override is not None:
            assign(*override)
            self_transfer = method == Method.SELF_TRANSFER

        if method in TRANSFER_METHODS and beneficiary:
            marker = self._self_transfer_marker(text, beneficiary, amount)
            if marker:
                assign(Category.INVESTMENT.value, marker[0], "SELF_TRANSFER", marker[1])
                keywords.append(method)
                self_transfer = True

        income_method = method in INCOME_METHODS
        if income_method:
            assign(Category.INCOME.value, self.INCOME_CONFIDENCE[method], method.upper(), f"{method} credit")

        if net_credit and is_expense_category(category):
            remapped = self._credit_category(text)
            assign(*remapped)
            keywords.append("CREDIT_SAFEGUARD")

        amount_pattern = detect_amount_pattern(amount)
        if amount_pattern:
            keywords.append(amount_pattern)
        keywords = list(dict.fromkeys(k for k in keywords if k))
        if not reason:
            reason = self.generate_reason(category, keywords)

        _, date_ok = parse_date(raw.date)
        if recurring is None and has_recurring_keyword(raw.narration):
            recurring = keyword_metadata(raw)

        if self_transfer:
            logger.debug("Self transfer detected", method=method, txn_id=raw.txn_id)

        return ClassifiedTransaction(
            **{f.name: getattr(raw, f.name) for f in dataclasses.fields(RawTransaction)},
            method=method,
            merchant=merchant,
            beneficiary=beneficiary,
            category=category,
            is_income=income_method or net_credit,
            is_recurring=recurring is not None and recurring.is_recurring,
            classification_meta=ClassificationMetadata(
                confidence=round(min(confidence, 1.0), 3),
                matched_keywords=tuple(keywords),
                gateway=n.gateway,
                wallet=detect_wallet(n.tokens),
                channel=method,
                rule_version=RULE_VERSION,
                reason=reason,
                date_parsed=date_ok,
            ),
            recurring_meta=recurring,
        )

    @timed("classifier.classify_all")
    def classify_all(self, raw_transactions: Iterable[RawTransaction]) -> list[ClassifiedTransaction]:
        """Classify a statement, then mark recurring payments with one detector pass."""
        classified = []
        for i, raw in enumerate(raw_transactions):
            if not raw.txn_id:
                raw = dataclasses.replace(raw, txn_id=f"txn-{i:05d}")
            classified.append(self.classify(raw))

        self.recurring_detector.detect(classified)
        marked = []
        for txn in classified:
            meta = self.recurring_detector.metadata_for(txn)
            marked.append(dataclasses.replace(
                txn,
                is_recurring=meta is not None,
                recurring_meta=meta,
            ))

        other_count = sum(1 for t in marked if t.category == Category.OTHER.value)
        log_classification_batch(len(marked), other_count)
        return marked

    def recurring_payments(self):
        """Recurring groups found by the last classify_all run, most confident first."""
        return sorted(self.recurring_detector.groups.values(), key=lambda p: (-p.confidence, p.signature))

    @staticmethod
    def generate_reason(category: str, keywords: list) -> str:
        if category == Category.OTHER.value and not keywords:
            return "No matching patterns found - classified as Other"
        if keywords:
            return f"Classified as {category} based on: {', '.join(keywords[:3])}"
        return f"Classified as {category}"

    # =========================================================================
    # Overrides and safeguards
    # =========================================================================

    def _method_override(self, method: str, text: str, category: str, debit: bool):
        """(category, confidence, keyword, reason) implied by the channel, or None."""
        if method == Method.SELF_TRANSFER:
            return Category.INVESTMENT.value, 0.98, "SELF_TRANSFER", "Transfer between own accounts"
        if method == Method.ONLINE_SHOPPING and debit:
            return Category.SHOPPING.value, 0.90, method, "Online shopping payment"
        if method == Method.TAX_PAYMENT and debit:
            return Category.BILLS_UTILITIES.value, 0.95, method, "Tax payment"
        if method in SAVINGS_METHODS:
            return Category.INVESTMENT.value, 0.98, method, f"{method} contribution"
        if method == Method.EMI and debit:
            return Category.LOAN.value, 0.95, method, "Loan EMI"
        if method == Method.INSURANCE and first_hit(text, self.ULIP_KEYWORDS):
            return Category.INVESTMENT.value, 0.90, "ULIP", "Investment-linked insurance premium"

        if category == Category.OTHER.value and debit:
            if method == Method.BILL_PAID:
                return Category.BILLS_UTILITIES.value, 0.80, method, "Bill payment"
            if first_hit(text, self.ACH_DEBIT) and first_hit(text, self.ACH_BANKS):
                if first_hit(text, self.CREDIT_CARD_KEYWORDS):
                    return Category.BILLS_UTILITIES.value, 0.90, "ACH", "Credit card auto-debit"
                return Category.LOAN.value, 0.85, "ACH", "Loan auto-debit"
        return None

    def _self_transfer_marker(self, text: str, beneficiary: str, amount: float):
        """(confidence, reason) when a transfer goes to the account holder's own account."""
        if any(marker in text for marker in self.OWN_MARKERS):
            return 0.95, "Transfer to own account"

        if self.customer_name:
            given = first_name(self.customer_name)
            if len(given) >= 3 and contains_word(text, given):
                return 0.97, "Transfer to own account (account holder name)"
            if self.customer_name in text:
                return 0.97, "Transfer to own account (account holder name)"
            if match_names(beneficiary, self.customer_name):
                return 0.98, "Transfer to own account (beneficiary matches account holder)"
            return None

        # Without a known account holder, a round or very large transfer to a
        # named beneficiary is read as moving money between own accounts.
        if beneficiary.upper() in text:
            if (amount >= 10000 and int(amount) % 10000 == 0) or amount >= 50000:
                return 0.95, "Large round transfer to own account"
        return None

    def _credit_category(self, text: str):
        """Non-expense category for a credit that the layers put in an expense bucket."""
        if first_hit(text, self.REFUND_MERCHANTS) or first_hit(text, self.REFUND_KEYWORDS):
            return Category.REFUND.value, 0.90, "REFUND", "Credit from a merchant (refund)"
        if first_hit(text, self.CREDIT_INVESTMENT_KEYWORDS):
            return Category.INVESTMENT.value, 0.85, "INVESTMENT_CREDIT", "Credit from an investment account"
        return Category.INCOME.value, 0.80, "INCOME_CREDIT", "Credit re-classified as income"