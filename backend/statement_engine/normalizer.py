"""
Module: normalizer.py
Description: Narration canonicalisation, tokenisation and small lexical helpers
used by every classification stage.

A narration such as "UPI-BIGBASKET-bigbasket@icici-123-UPI" becomes
    text    = "UPI-BIGBASKET-BIGBASKET@ICICI-123-UPI"
    tokens  = ("UPI", "BIGBASKET", "BIGBASKET", "ICICI", "123", "UPI")
    gateway = ""

Author: Statement Engine Team
"""

import re
import hashlib
from dataclasses import dataclass
from typing import Iterable, Optional


# =============================================================================
# Constants
# =============================================================================

_WHITESPACE = re.compile(r"\s+")
_SEPARATORS = re.compile(r"[-/_@\s]+")

# Fixed-order gateway table; the first hit wins.
GATEWAY_PATTERNS = (
    ("BILLDESK", "BILLDESK"),
    ("BILLDK", "BILLDESK"),
    ("BBPS", "BBPS"),
    ("PAYU", "PAYU"),
    ("RAZP", "RAZORPAY"),
    ("RAZORPAY", "RAZORPAY"),
    ("CCAVENUE", "CCAVENUE"),
    ("PAYGOV", "PAYGOV"),
    ("SBIPG", "SBIPG"),
    ("AXISPG", "AXISPG"),
    ("ICICIPG", "ICICIPG"),
    ("KOTAKPG", "KOTAKPG"),
    ("YESPG", "YESPG"),
    ("WHDF", "BILLDESK"),
)

# Gateways that only ever carry bill payments.
BILL_GATEWAYS = frozenset({
    "BILLDESK", "BBPS", "PAYGOV", "SBIPG", "AXISPG", "ICICIPG", "KOTAKPG", "YESPG",
})

# Statement footer labels that sometimes get glued onto the last narration line.
FOOTER_MARKERS = (
    "Account Branch :",
    "Address        :",
    "City           :",
    "State          :",
    "Phone no.      :",
    "Email          :",
    "OD Limit       :",
    "Account No     :",
    "Account Status :",
    "Statement From :",
    "RTGS/NEFT IFSC :",
    "MICR :",
    "Branch Code    :",
    "Account Type   :",
    "JOINT HOLDERS :",
    "Open Date  :",
    "Nomination :",
)

CHARGE_KEYWORDS = (
    "CHG", "CHARGE", "FEE", "SMS", "ALERT", "INSTA ALERT", "MAINTENANCE",
    "SERVICE CHARGE", "PROCESSING FEE", "CONVENIENCE FEE",
)

WALLETS = {
    "MOBIKWIK": "Mobikwik",
    "PAYTM": "Paytm",
    "PHONEPE": "PhonePe",
    "GPAY": "GooglePay",
    "AMAZONPAY": "AmazonPay",
    "FREECHARGE": "Freecharge",
    "JIO": "JioMoney",
}

COMPRESSED_MERCHANTS = {
    "HDFCLIFE": "HDFC Life Insurance",
    "STANDARDLIFE": "HDFC Standard Life",
    "SBILIFE": "SBI Life Insurance",
    "MAXLIFE": "Max Life Insurance",
    "INDRAPRASTHAGA": "Indraprastha Gas",
    "IGL": "Indraprastha Gas Limited",
    "PVVNL": "Purvanchal Vidyut Vitran Nigam",
    "INDIANCLEARINGCORPORATION": "Indian Clearing Corporation",
    "INDIANCCLEARINGCORPORATION": "Indian Clearing Corporation",
    "INDIANCCLEARINGCORPORATIONLIMITED": "Indian Clearing Corporation Limited",
}

COMPANY_SUFFIXES = (" PVT LTD", " PRIVATE LIMITED", " LIMITED", " LTD", " INC")

BUSINESS_KEYWORDS = (
    "PVT", "LTD", "LIMITED", "LLP", "INC", "CORP", "COMPANY", "COMP",
    "STORE", "SHOP", "MARKET", "TRADERS", "TRADING", "ENTERPRISE",
    "SERVICES", "SERVICE", "SOLUTIONS", "SOL", "TECHNOLOGIES", "TECH",
    "HOTEL", "RESTAURANT", "CAFE", "BAKERY", "PHARMACY", "MEDICAL",
    "HOSPITAL", "CLINIC", "BANK", "FINANCE", "FINSERV",
)


# =============================================================================
# Normalisation
# =============================================================================

@dataclass(frozen=True)
class NormalizedNarration:
    """Canonical view of one narration."""
    text: str
    tokens: tuple
    gateway: str = ""

    def has_token(self, *candidates: str) -> bool:
        return any(token in self.tokens for token in candidates)

    def contains(self, *fragments: str) -> bool:
        return any(fragment in self.text for fragment in fragments)


def strip_statement_footer(narration: str) -> str:
    """Cut account-summary footer text that the statement layout glued onto a narration."""
    for marker in FOOTER_MARKERS:
        idx = narration.find(marker)
        if idx <= 0:
            continue
        tail = narration[idx:]
        if idx >= 200 or any(word in tail for word in ("Account", "Branch", "Address", "Email")):
            return narration[:idx]
    return narration


def normalize_text(narration: str) -> str:
    """Trim, uppercase and collapse whitespace runs."""
    if not narration:
        return ""
    return _WHITESPACE.sub(" ", narration.strip().upper())


def tokenize(text: str) -> list[str]:
    """Split on - / _ @ and whitespace, dropping single-character noise."""
    return [part for part in _SEPARATORS.split(text.upper()) if len(part) >= 2]


def extract_gateway(text: str) -> str:
    upper = text.upper()
    for pattern, gateway in GATEWAY_PATTERNS:
        if pattern in upper:
            return gateway
    return ""


def normalize(narration: str) -> NormalizedNarration:
    """Run the full normalisation: footer strip, canonical text, tokens and gateway."""
    text = normalize_text(strip_statement_footer(narration or ""))
    return NormalizedNarration(text=text, tokens=tuple(tokenize(text)), gateway=extract_gateway(text))


def contains_word(text: str, word: str) -> bool:
    """Whole-word match of `word` inside `text`."""
    return re.search(r"\b" + re.escape(word) + r"\b", text) is not None


def has_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def matched_keywords(text: str, keywords: Iterable[str]) -> list[str]:
    """Keywords found in `text`, in table order, without repeats."""
    found = []
    for keyword in keywords:
        if keyword in text and keyword not in found:
            found.append(keyword)
    return found


# =============================================================================
# Amount and lexical helpers
# =============================================================================

def detect_amount_pattern(amount: float) -> Optional[str]:
    """Classify an amount into CHARGE, FOOD, UTILITY or ROUND; None if nothing fits."""
    if amount <= 0:
        return None
    if 10 <= amount <= 50:
        return "CHARGE"
    if 200 <= amount <= 600:
        return "FOOD"
    if 800 <= amount <= 2500:
        return "UTILITY"
    if amount >= 1000 and int(amount) % 1000 == 0:
        return "ROUND"
    return None


def is_charge(narration: str, amount: float) -> bool:
    """Bank fee heuristics: charge keywords, or a tiny amount outside UPI/Paytm."""
    upper = narration.upper()
    if has_any(upper, CHARGE_KEYWORDS):
        return True
    return 0 < amount < 50 and "UPI" not in upper and "PAYTM" not in upper


def detect_wallet(tokens: Iterable[str]) -> str:
    for token in tokens:
        if token in WALLETS:
            return WALLETS[token]
    return ""


def decode_compressed_merchant(compressed: str) -> str:
    """Expand run-together merchant names such as HDFCLIFE; returns the input if unknown."""
    upper = compressed.upper()
    if upper in COMPRESSED_MERCHANTS:
        return COMPRESSED_MERCHANTS[upper]
    for pattern, merchant in COMPRESSED_MERCHANTS.items():
        if pattern in upper:
            return merchant
    return compressed


def normalize_merchant_name(name: str) -> str:
    name = name.strip().upper()
    for suffix in COMPANY_SUFFIXES:
        if name.endswith(suffix):
            name = name[: -len(suffix)]
    return name.strip()


def mask_account_number(account_no: str) -> str:
    if len(account_no) < 4:
        return "XXXX"
    return "XXXXXX" + account_no[-4:]


def looks_like_person(name: str) -> bool:
    """Two to four alphabetic words with no business keyword."""
    upper = name.upper().strip()
    if not upper or upper == "UNKNOWN" or has_any(upper, BUSINESS_KEYWORDS):
        return False
    words = upper.split()
    return 2 <= len(words) <= 4 and not any(ch.isdigit() for ch in upper)


def is_person_to_person_transfer(narration: str, merchant: str, amount: float) -> bool:
    upper = narration.upper()
    if has_any(upper, ("FUND TRANSFER", "FUNDS TRANSFER", "SELF TRANSFER", "TO SELF")):
        return True
    if looks_like_person(merchant):
        return True
    if amount >= 10000 and ("IMPS" in upper or "UPI" in upper):
        words = merchant.upper().split()
        return (2 <= len(words) <= 4
                and merchant.upper() != "UNKNOWN"
                and not has_any(merchant.upper(), BUSINESS_KEYWORDS))
    return False


# =============================================================================
# Narration fingerprint
# =============================================================================

_FINGERPRINT_STRIP = (
    re.compile(r"\d{1,2}[-/]\d{1,2}[-/]\d{2,4}"),
    re.compile(r"\d{1,2}[-/]\w{3}[-/]\d{2,4}"),
    re.compile(r"\w{3}\s+\d{1,2},?\s+\d{4}"),
    re.compile(r"\d{4}[-/]\d{1,2}[-/]\d{1,2}"),
    re.compile(r"\d{8,}"),
    re.compile(r"X{6,}\d{4}"),
    re.compile(r"\b[A-Z]\d{4,}\b"),
)


def normalize_for_fingerprint(narration: str) -> str:
    """Remove dates, reference numbers, masked accounts and transaction ids."""
    if not narration:
        return ""
    text = narration.strip().upper()
    for pattern in _FINGERPRINT_STRIP:
        text = pattern.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def fingerprint_narration(narration: str) -> str:
    """SHA-256 of the stable part of a narration, or "" when nothing stable remains."""
    normalized = normalize_for_fingerprint(narration)
    if not normalized:
        return ""
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()
