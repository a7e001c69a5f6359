"""
Module: method_classifier.py
Description: Payment channel detection from a normalised narration.

Author: Statement Engine Team
"""

import re

from statement_engine.normalizer import NormalizedNarration, normalize, has_any


class Method:
    """Channel tags produced by MethodClassifier."""
    SELF_TRANSFER = "Self_Transfer"
    INSURANCE = "Insurance"
    DIVIDEND = "Dividend"
    INVESTMENT = "Investment"
    RD = "RD"
    FD = "FD"
    SIP = "SIP"
    UPI = "UPI"
    UPI_REVERSAL = "UPIReversal"
    IMPS = "IMPS"
    IMPS_REVERSAL = "IMPSReversal"
    NEFT = "NEFT"
    RTGS = "RTGS"
    ACH = "ACH"
    EMI = "EMI"
    ATM_WITHDRAWAL = "ATMWithdrawal"
    CARD_REVERSAL = "CardReversal"
    CARD_CHARGES = "CardCharges"
    DEBIT_CARD = "DebitCard"
    NET_BANKING = "NetBanking"
    SALARY = "Salary"
    INTEREST = "Interest"
    CHEQUE = "Cheque"
    BILL_PAID = "BillPaid"
    ONLINE_SHOPPING = "OnlineShopping"
    TAX_PAYMENT = "TaxPayment"
    OTHER = "Other"


INCOME_METHODS = frozenset({Method.DIVIDEND, Method.SALARY, Method.INTEREST})
TRANSFER_METHODS = frozenset({Method.IMPS, Method.NEFT, Method.RTGS})
SAVINGS_METHODS = frozenset({Method.RD, Method.FD, Method.SIP})


class MethodClassifier:
    """
    Ordered rule table over the narration; the first rule that fires decides the channel.

    Short bank codes (INF, DC, EAW, BPAY, ...) are matched as whole tokens so that
    words like PRIVATE or POLICY do not trip them. Longer phrases use substring match.
    """

    SELF_TRANSFER_TOKENS = ("INF", "INFT")
    SELF_TRANSFER_PHRASES = ("INTERNET FUND TRANSFER IN LINKED ACCOUNTS", "INTERNAL FUND TRANSFER")

    INSURERS = ("HLIC", "HDFC LIFE", "MAXLIFE", "SBI LIFE", "ICICI PRUDENTIAL", "BAJAJ ALLIANZ")
    INSURANCE_HINTS = ("INSURANCE",)
    INSURANCE_INSTALMENT = ("INST", "INSTALLMENT", "PREMIUM")

    DIVIDEND_TOKENS = ("DIV",)
    DIVIDEND_PHRASES = ("DIVIDEND", "DIV CR")

    CLEARING_PHRASES = (
        "INDIAN CLEARING CORPORATION", "INDIAN C LEARING CORPORATION", "NSDL", "CDSL",
    )
    BROKER_PHRASES = (
        "ZERODHA", "ZERODHABROKING", "ZERODHAMF", "ICCL ZERODHA", "KITE DEPOSIT",
        "HSL SEC", "SOVEREIGN GOLD BOND",
    )
    BROKER_TOKENS = ("KITE", "EBA", "SGB")

    RD_MARKERS = (" RD ", " RD-", "- RD ", "-RD ", "RD INSTALLMENT", "RECURRING DEPOSIT")
    FD_MARKERS = ("FD THROUGH", "FD PREMAT", " FD ", " FD-", "FIXED DEPOSIT")
    SIP_MARKERS = (" SIP ", "SIP ", "SIP-")

    UPI_REVERSAL = ("REV-UPI", "REV UPI", "UPI REVERSAL", "UPI REV", "UPI REFUND")
    UPI_MARKERS = (
        "UPI-", "UPI ", "UPI/", "UPI@", "UPIINTENT", "UPI TRANSACTION",
        "PAYTM", "PHONEPE", "GOOGLEPAY", "BHIM", "AMAZONPAY",
        "@YBL", "@PAYTM", "@OK", "@AXL", "@IBL", "@PTYES", "@IDFCFIRST",
        "@HDFCBANK", "@AXISBANK",
    )
    IMPS_REVERSAL = ("REV-IMPS", "REV IMPS", "IMPS REVERSAL", "IMPS REV", "IMPS REFUND")
    IMPS_MARKERS = ("IMPS", "INSTANT PAYMENT")
    IMPS_TOKENS = ("MMT",)
    NEFT_MARKERS = ("NEFT", "NATIONAL ELECTRONIC FUND TRANSFER")
    NEFT_CHARGES = ("N CHG", "N-CHG")
    RTGS_MARKERS = ("RTGS", "REAL TIME GROSS SETTLEMENT")

    ACH_MARKERS = ("ACH C-", "ACH D-", "ACH CR", "ACH DR", "ACH C ", "ACH D ", "AUTOMATED CLEARING HOUSE")
    ACH_TOKENS = ("ACH",)

    EMI_GATE = ("LOAN", "EMI", "REPAYMENT")
    EMI_PATTERN = re.compile(r"\bEMI(\b|\d)")
    EMI_TOKENS = ("LNPY",)
    EMI_PHRASES = ("LOAN", "REPAYMENT", "LINKED LOAN PAYMENT")
    SAVINGS_EXCLUSIONS = (
        "RECURRING DEPOSIT", "FIXED DEPOSIT", "MUTUAL FUND", "PPF", "ELSS", "RD INSTALLMENT",
    )

    ATM_TOKENS = ("EAW", "ATW", "NWD", "VAT", "MAT", "NFS", "CCWD")
    ATM_PHRASES = ("ATM WITHDRAWAL", "ATM CASH", "ELECTRONIC ATM WITHDRAWAL")

    CARD_REVERSAL = (
        "CRV POS", "POS REVERSAL", "POS REFUND", "REVERSAL POS", "REFUND POS",
        "CARD REVERSAL", "CARD REFUND",
    )
    CARD_CHARGES = ("INTL POS", "INTERNATIONAL POS", "FOREIGN TRANSACTION", "FX MARKUP")

    DEBIT_CARD_TOKENS = ("POS", "DC", "VPS", "IPS", "ATM", "VISA", "MASTERCARD")
    DEBIT_CARD_PHRASES = ("DEBIT CARD", "CARD TRANSACTION", "CASH WITHDRAWAL", "SWIPE")

    NET_BANKING_PHRASES = ("NET BANKING", "ONLINE BANKING", "INTERNET BANKING", "ONLINE TRANSFER")
    NET_BANKING_PREFIXES = re.compile(r"(^|\s)IB[ \-/]")

    SALARY_PHRASES = ("SALARY", "SAL FOR", "PAYROLL", "WAGES", "BONUS")
    INTEREST_PHRASES = ("INTEREST",)
    CHEQUE_TOKENS = ("CHQ",)
    CHEQUE_PHRASES = ("CHEQUE", "LCCBRN CMS", "UCCBRN CMS")

    BILL_PAID_TOKENS = ("BBPS", "BPAY", "RCHG", "TOP", "BIL", "PAVC")
    BILL_PAID_PHRASES = ("BHARAT BILL PAYMENT", "PAY ANY VISA CREDIT CARD")
    ONLINE_SHOPPING_TOKENS = ("ONL",)
    TAX_TOKENS = ("DTAX", "IDTX")
    TAX_PHRASES = ("DIRECT TAX", "INDIRECT TAX")

    def classify(self, narration) -> str:
        """Return the channel tag for a raw string or a NormalizedNarration."""
        n = narration if isinstance(narration, NormalizedNarration) else normalize(narration)
        text = n.text

        if n.has_token(*self.SELF_TRANSFER_TOKENS) or n.contains(*self.SELF_TRANSFER_PHRASES):
            return Method.SELF_TRANSFER

        if self._is_insurance(n):
            return Method.INSURANCE

        if n.has_token(*self.DIVIDEND_TOKENS) or n.contains(*self.DIVIDEND_PHRASES):
            return Method.DIVIDEND

        if (n.contains(*self.CLEARING_PHRASES) or n.contains(*self.BROKER_PHRASES)
                or n.has_token(*self.BROKER_TOKENS)
                or ("HSL" in n.tokens and "SEC" in n.tokens)):
            return Method.INVESTMENT

        savings = self._savings_method(n)
        if savings:
            return savings

        if n.contains(*self.UPI_REVERSAL):
            return Method.UPI_REVERSAL
        if n.contains(*self.UPI_MARKERS):
            return Method.UPI

        if n.contains(*self.IMPS_REVERSAL):
            return Method.IMPS_REVERSAL
        if n.contains(*self.IMPS_MARKERS) or n.has_token(*self.IMPS_TOKENS):
            return Method.IMPS
        if n.contains(*self.NEFT_MARKERS) or n.contains(*self.NEFT_CHARGES):
            return Method.NEFT
        if n.contains(*self.RTGS_MARKERS):
            return Method.RTGS

        if n.contains(*self.ACH_MARKERS) or n.has_token(*self.ACH_TOKENS):
            return Method.ACH

        if has_any(text, self.EMI_GATE) and not n.contains(*self.SAVINGS_EXCLUSIONS):
            if (self.EMI_PATTERN.search(text) or n.has_token(*self.EMI_TOKENS)
                    or n.contains(*self.EMI_PHRASES)):
                return Method.EMI

        if n.has_token(*self.ATM_TOKENS) or n.contains(*self.ATM_PHRASES):
            return Method.ATM_WITHDRAWAL
        if n.contains(*self.CARD_REVERSAL):
            return Method.CARD_REVERSAL
        if n.contains(*self.CARD_CHARGES):
            return Method.CARD_CHARGES
        if n.has_token(*self.DEBIT_CARD_TOKENS) or n.contains(*self.DEBIT_CARD_PHRASES):
            return Method.DEBIT_CARD

        if n.contains(*self.NET_BANKING_PHRASES) or self.NET_BANKING_PREFIXES.search(text):
            return Method.NET_BANKING

        if (text.startswith("P:") and "SALARY" in text) or n.contains(*self.SALARY_PHRASES):
            return Method.SALARY
        if n.contains(*self.INTEREST_PHRASES):
            return Method.INTEREST
        if n.has_token(*self.CHEQUE_TOKENS) or n.contains(*self.CHEQUE_PHRASES):
            return Method.CHEQUE

        if n.has_token(*self.BILL_PAID_TOKENS) or n.contains(*self.BILL_PAID_PHRASES):
            return Method.BILL_PAID
        if n.has_token(*self.ONLINE_SHOPPING_TOKENS) or "ONLINE SHOPPING" in text:
            return Method.ONLINE_SHOPPING
        if n.has_token(*self.TAX_TOKENS) or n.contains(*self.TAX_PHRASES):
            return Method.TAX_PAYMENT

        return Method.OTHER

    def _is_insurance(self, n: NormalizedNarration) -> bool:
        named_insurer = n.contains(*self.INSURERS) or n.has_token("LIC")
        if not (named_insurer or n.contains(*self.INSURANCE_HINTS)):
            return False
        if named_insurer:
            return True
        return n.has_token(*self.INSURANCE_INSTALMENT) or n.contains("INSTALLMENT", "PREMIUM")

    def _savings_method(self, n: NormalizedNarration) -> str:
        """RD / FD / SIP with word boundaries; UPI narrations such as PAYTMQRD never qualify."""
        text = n.text
        if "UPI" in text or "PAYTMQRD" in text:
            return ""
        if n.contains(*self.RD_MARKERS) or text.startswith(("RD ", "RD-")):
            return Method.RD
        if n.contains(*self.FD_MARKERS) or text.startswith(("FD ", "FD-")):
            return Method.FD
        if n.contains(*self.SIP_MARKERS) or text.startswith("SIP "):
            return Method.SIP
        return ""
