"""
Module: merchant_extractor.py
Description: Merchant and beneficiary extraction, alias canonicalisation and the
known-merchant table.

Matching rule shared by every table in this module: aliases of four characters
or fewer must match as a whole word (OLA must not fire on COLA); longer aliases
match as substrings.

Author: Statement Engine Team
"""

import re
from dataclasses import dataclass
from typing import Optional

from statement_engine.normalizer import NormalizedNarration, normalize


def pattern_hit(text: str, pattern: str) -> bool:
    """Apply the short-alias whole-word rule."""
    if len(pattern) <= 4 and pattern.isalnum():
        return re.search(r"(?<![A-Z0-9])" + re.escape(pattern) + r"(?![A-Z0-9])", text) is not None
    return pattern in text


def first_hit(text: str, patterns) -> Optional[str]:
    """First pattern (in table order) present in `text`."""
    for pattern in patterns:
        if pattern_hit(text, pattern):
            return pattern
    return None


# =============================================================================
# Known merchants
# =============================================================================

@dataclass(frozen=True)
class KnownMerchant:
    """A merchant with a default category and the confidence that category deserves."""
    name: str
    category: str
    confidence: float
    patterns: tuple


KNOWN_MERCHANTS = (
    # Food delivery
    KnownMerchant("Zomato", "Food_Delivery", 0.9, ("ZOMATO", "ZOMATOONLINE", "ZMT")),
    KnownMerchant("Swiggy", "Food_Delivery", 0.9, ("SWIGGY", "SWIGGYINSTAMART")),
    KnownMerchant("Food Delivery Apps", "Food_Delivery", 0.85, ("FAASOS", "EATSURE", "BOX8")),
    # Travel
    KnownMerchant("Uber", "Travel", 0.9, ("UBER", "UBERTRIP")),
    KnownMerchant("Ola", "Travel", 0.9, ("OLA", "OLACABS")),
    KnownMerchant("IRCTC", "Travel", 0.9, ("IRCTC", "IRCTCIPAY")),
    KnownMerchant("MakeMyTrip", "Travel", 0.9, ("MAKEMYTRIP",)),
    KnownMerchant("Travel Booking", "Travel", 0.85, ("GOIBIBO", "YATRA", "CLEARTRIP")),
    KnownMerchant("Oyo", "Travel", 0.85, ("OYO", "OYOROOMS")),
    KnownMerchant("IndiGo Airlines", "Travel", 0.9, ("INDIGO", "INDIGO AIRLINES")),
    # Fuel
    KnownMerchant("Indian Oil", "Fuel", 0.9, ("IOCL", "INDIANOIL")),
    KnownMerchant("Bharat Petroleum", "Fuel", 0.9, ("BPCL", "BHARATPETROLEUM")),
    KnownMerchant("Hindustan Petroleum", "Fuel", 0.9, ("HPCL", "HINDUSTANPETROLEUM")),
    KnownMerchant("Service Station", "Fuel", 0.8, ("SERVICE STATIO", "SERVICE STATION")),
    # Utilities
    KnownMerchant("Indraprastha Gas", "Bills_Utilities", 0.9, ("IGL", "INDRAPRASTHAGA")),
    KnownMerchant("Electricity Board", "Bills_Utilities", 0.9, ("PVVNL", "MSEDCL", "BSES")),
    KnownMerchant("Telecom", "Bills_Utilities", 0.9, ("AIRTEL", "JIO", "VODAFONE", "IDEA", "BSNL")),
    # Investment
    KnownMerchant("Zerodha", "Investment", 0.9, ("ZERODHA", "ZERODHA BROKING")),
    KnownMerchant("Investment Apps", "Investment", 0.85, ("GROWW", "COIN", "UPSTOX")),
    KnownMerchant("Clearing Corporation", "Investment", 0.9, ("INDIAN CLEARING CORPORATION", "NSDL", "CDSL")),
    # Fintech bill collectors
    KnownMerchant("EFPI Technologies", "Bills_Utilities", 0.75, ("EFPI TECHNOLOGIES", "EFPI@RBL")),
    KnownMerchant("AlzaPay", "Bills_Utilities", 0.75, ("ALZAPAY TECHNOLOGY", "LYRA@RBL")),
    # Shopping
    KnownMerchant("Amazon", "Shopping", 0.9, ("AMAZON", "AMAZONPAY")),
    KnownMerchant("Flipkart", "Shopping", 0.9, ("FLIPKART", "FLIPKARTIN")),
    KnownMerchant("Fashion E-commerce", "Shopping", 0.85, ("MYNTRA", "AJIO", "MEESHO")),
    KnownMerchant("Trading Company", "Shopping", 0.75, ("TRADERS", "TRADING")),
    KnownMerchant("Super Market", "Groceries", 0.8, ("SUPER MARKET", "SUPERMARKET")),
    KnownMerchant("Stationery Shop", "Shopping", 0.8, ("STATIONERY", "STATIONARY")),
    KnownMerchant("Watch Shop", "Shopping", 0.75, ("WATCH COMPANY", "WATCH")),
    KnownMerchant("Auto Parts Shop", "Shopping", 0.75, ("BATTERY", "AUTO BATTERY")),
    # Groceries
    KnownMerchant("BigBasket", "Groceries", 0.9, ("BIGBASKET", "BBNOW")),
    KnownMerchant("Grocery Apps", "Groceries", 0.85, ("GROFERS", "BLINKIT")),
    KnownMerchant("Zepto", "Groceries", 0.9, ("ZEPTO", "ZEPTO MARKETPLACE")),
    KnownMerchant("Dairy Product", "Groceries", 0.75, ("PANEER", "KHOA PANEER")),
    # Dining
    KnownMerchant("Catering Service", "Dining", 0.8, ("CATERERS", "CATERING")),
    KnownMerchant("Bakery", "Dining", 0.8, ("BAKERS", "BAKERY")),
    KnownMerchant("Chat Center", "Dining", 0.75, ("CHAT", "CHAT CENTER", "CHAT CENTRE")),
    KnownMerchant("Tea Shop", "Dining", 0.75, ("TEA", "TEA SHOP", "TEA STALL")),
    KnownMerchant("Dairy Shop", "Groceries", 0.85, ("DAIRY", "DAIRY AND SWEE")),
    KnownMerchant("Milk Shop", "Groceries", 0.85, ("MILK SHOP", "MILK STORE", "DOODH")),
    # Healthcare
    KnownMerchant("Hospital Chains", "Healthcare", 0.9, ("APOLLO", "FORTIS", "MAX")),
    KnownMerchant("Fitness Center", "Healthcare", 0.85, ("WAY2FITNESS", "FITNESS", "GYM")),
    KnownMerchant("Pharmacy", "Healthcare", 0.8, ("CHEMISTS", "CHEMIST")),
    KnownMerchant("Medical Store", "Healthcare", 0.75, ("MEDICO", "MEDICAL")),
    # Entertainment
    KnownMerchant("Sony Pictures", "Entertainment", 0.9, ("SONY PICTURES", "SONYPICTURESNETWORK")),
    KnownMerchant("Streaming Services", "Entertainment", 0.9, ("NETFLIX", "AMAZON PRIME", "DISNEY", "HOTSTAR")),
    KnownMerchant("Zee5", "Entertainment", 0.85, ("ZEE5", "ZEE 5")),
    KnownMerchant("Tourism/Heritage Site", "Entertainment", 0.75, ("ARCHAEOLOGICAL", "MUSEUM")),
    KnownMerchant("Park/Recreation", "Entertainment", 0.75, ("PARKS", "PARK")),
    # Education
    KnownMerchant("PhysicsWallah", "Education", 0.9, ("PHYSICSWALLAH",)),
)


def detect_known_merchant(narration: str, merchant: str = "") -> Optional[KnownMerchant]:
    """First known merchant whose pattern appears in the narration or extracted merchant."""
    text = f"{narration} {merchant}".upper()
    for known in KNOWN_MERCHANTS:
        if first_hit(text, known.patterns):
            return known
    return None


# =============================================================================
# Canonicalisation
# =============================================================================

@dataclass(frozen=True)
class CanonicalMerchant:
    key: str
    name: str
    category: str
    aliases: tuple


# Ordered so that canonicalisation is deterministic.
CANONICAL_MERCHANTS = (
    CanonicalMerchant("IGL", "Indraprastha Gas Limited", "UTILITY_GAS",
                      ("IGL", "INDRAPRASTHAGA", "INDRAPRASTHA GAS", "INDRAP GAS LTD", "INDRAPRASTHAGAS")),
    CanonicalMerchant("MGL", "Mahanagar Gas Limited", "UTILITY_GAS",
                      ("MGL", "MAHANAGAR GAS", "MAHANAGAR GAS LIMITED")),
    CanonicalMerchant("MSEDCL", "Maharashtra State Electricity Distribution Company", "UTILITY_ELECTRICITY",
                      ("MSEDCL", "MAHARASHTRA STATE EL", "MAHARASHTRA STATE ELECTRICITY")),
    CanonicalMerchant("BSES", "BSES", "UTILITY_ELECTRICITY",
                      ("BSES", "BSESR", "BSESRAJDHANI", "BSESYAMUNA")),
    CanonicalMerchant("ZOMATO", "Zomato", "Food_Delivery",
                      ("ZOMATO", "ZOMATOONLINE", "ZOMATOINDIA", "ZOMATOORDER", "ZMT")),
    CanonicalMerchant("SWIGGY", "Swiggy", "Food_Delivery",
                      ("SWIGGY", "SWIGGYINSTAMART", "SWIGGYONLINE", "SWIGGYORDER")),
    CanonicalMerchant("ZERODHA", "Zerodha", "Investment",
                      ("ZERODHA", "ZERODHA BROKING", "ZERODHABROKING")),
    CanonicalMerchant("WAZIRX", "WazirX", "Investment",
                      ("WAZIRX", "WAZIRXIN", "ZANMAI", "ZANMAI LABS", "ZANMAILABS")),
    CanonicalMerchant("COINDCX", "CoinDCX", "Investment",
                      ("COINDCX", "NEBULAS", "NEBULAS TECHNOLOGIES", "NEBULASTECHNOLOGIES", "DCX")),
    CanonicalMerchant("COINSWITCH", "CoinSwitch Kuber", "Investment",
                      ("COINSWITCH", "COINSWITCHKUBER", "BITCIPHER", "BITCIPHER LABS")),
    CanonicalMerchant("ZEBPAY", "ZebPay", "Investment",
                      ("ZEBPAY", "ZEB IT SERVICE", "ZEBITSERVICE")),
    CanonicalMerchant("UNOCOIN", "Unocoin", "Investment", ("UNOCOIN", "UNOCOMMERCE")),
    CanonicalMerchant("BINANCE", "Binance", "Investment", ("BINANCE", "BINANCEPAY", "BIFINANCE")),
    CanonicalMerchant("COINBASE", "Coinbase", "Investment", ("COINBASE", "CB PAY", "CBPAY")),
    CanonicalMerchant("KRAKEN", "Kraken", "Investment", ("KRAKEN", "PAYWARD")),
    CanonicalMerchant("CRYPTOCOM", "Crypto.com", "Investment", ("CRYPTOCOM", "FORIS")),
    CanonicalMerchant("KUCOIN", "KuCoin", "Investment", ("KUCOIN", "MEK GLOBAL", "MEKGLOBAL")),
    CanonicalMerchant("BITSTAMP", "Bitstamp", "Investment", ("BITSTAMP",)),
)


def canonicalize_merchant(merchant: str) -> tuple[str, str]:
    """
    Collapse vendor variants to one canonical name.

    Returns:
        (canonical_name, canonical_category). Unknown merchants come back unchanged
        with an empty category.
    """
    upper = merchant.strip().upper()
    if not upper:
        return "", ""
    for canonical in CANONICAL_MERCHANTS:
        if upper == canonical.key:
            return canonical.name, canonical.category
    for canonical in CANONICAL_MERCHANTS:
        if first_hit(upper, canonical.aliases):
            return canonical.name, canonical.category
    return merchant, ""


# =============================================================================
# Name matching
# =============================================================================

HONORIFICS = ("MR.", "MR ", "MRS.", "MRS ", "MS.", "MS ", "DR.", "DR ", "PROF.", "PROF ")
NAME_STOP_WORDS = frozenset({"AND", "THE", "OF", "TO", "FOR"})


def strip_honorific(name: str) -> str:
    name = name.strip().upper()
    for prefix in HONORIFICS:
        if name.startswith(prefix):
            return name[len(prefix):].strip()
    return name


def first_name(full_name: str) -> str:
    words = strip_honorific(full_name or "").split()
    return words[0] if words else ""


def _name_words(name: str) -> list[str]:
    return [w for w in strip_honorific(name).split() if w not in NAME_STOP_WORDS and len(w) > 1]


def match_names(name1: str, name2: str) -> bool:
    """True when every word of the shorter name appears in the longer one, in any order."""
    if not name1 or not name2:
        return False
    words1, words2 = _name_words(name1), _name_words(name2)
    if not words1 or not words2:
        return False
    shorter, longer = (words1, words2) if len(words1) <= len(words2) else (words2, words1)
    return set(shorter) <= set(longer)


# =============================================================================
# Extraction
# =============================================================================

_UPI_PAYEE = re.compile(r"UPI-([^-@]+?)(?:-|@|$)")
_UPI_VPA = re.compile(r"([^@\s\-/]+)@")
_UPI_QR = re.compile(r"UPI-([^-]+)-PAYTMQR")


def extract_upi_details(narration: str) -> tuple[str, str]:
    """
    Split a UPI narration into payee name and VPA handle.

    "UPI-BIGBASKET-BIGBASKET@ICICI-123-UPI" -> ("BIGBASKET", "BIGBASKET")
    """
    text = narration.strip().upper()
    payee, vpa = "", ""
    match = _UPI_PAYEE.search(text)
    if match:
        payee = match.group(1).strip().rstrip("-").strip()
    match = _UPI_VPA.search(text)
    if match:
        vpa = match.group(1).strip()
        if vpa.startswith("PAYTMQR") and not payee:
            qr = _UPI_QR.search(text)
            if qr:
                payee = qr.group(1).strip()
    return payee, vpa


class MerchantExtractor:
    """Channel-aware merchant and beneficiary extraction."""

    # Hand-curated aliases, checked before any regex.
    MERCHANT_ALIASES = (
        ("Amazon", ("AMAZON", "AMZN")),
        ("Flipkart", ("FLIPKART", "FKRT")),
        ("Swiggy", ("SWIGGY",)),
        ("Zomato", ("ZOMATO",)),
        ("Uber", ("UBER",)),
        ("Ola", ("OLA",)),
        ("Netflix", ("NETFLIX",)),
        ("Spotify", ("SPOTIFY",)),
        ("Google Play", ("GOOGLE PLAY", "PLAYSTORE", "PLAY STORE")),
        ("MakeMyTrip", ("MAKE MY TRIP", "MAKEMYTRIP")),
        ("Croma", ("CROMA",)),
        ("Tanishq", ("TANISHQ",)),
        ("Apollo", ("APOLLO",)),
        ("Reliance", ("RELIANCE",)),
        ("DMart", ("DMART", "D MART")),
        ("Big Bazaar", ("BIG BAZAAR",)),
    )

    UNKNOWN = "Unknown"
    GENERIC_NAMES = frozenset({"UNKNOWN", "MERCHANT", "PAYMENT", "TRANSACTION", "BANK", "ATM", "POS"})

    _TRANSFER_IFSC = re.compile(r"(?:IMPS|NEFT|RTGS)\s*(?:CR|DR)?[ -]-?([A-Z]{4}[A-Z0-9]*?\d+)-([A-Z ]+?)-")
    _TRANSFER_REF = re.compile(r"(?:IMPS|NEFT)-(\d+)-([A-Z ]+?)-[A-Z]{4}")

    _BENEFICIARY_HONORIFIC = re.compile(
        r"(?:IMPS|NEFT|RTGS)\s*(?:CR|DR)?[- ]+(?:[^-]+-)?(?:MRS|MR|MS)\.?\s+([A-Z ]+?)"
        r"(?:-|@|$|BANK|SBIN|HDFC|ICICI|AXIS|PNB|SBI|PUNB)"
    )
    _BENEFICIARY_RTGS = re.compile(r"RTGS\s*(?:CR|DR)[- ]+[A-Z0-9]+-([A-Z ]+?)-[A-Z ]+")
    _BENEFICIARY_GENERIC = re.compile(r"(?:IMPS|NEFT|RTGS)\s*(?:CR|DR)?[- ]+[^-]+-([A-Z ]+?)-[A-Z]{4}")
    _SALARY_BANK = re.compile(r"(?:P:[A-Z0-9]+\s+)?([A-Z ]+?)\s+BANK\s+SALARY")
    _SALARY_EMPLOYER = re.compile(r"(?:SALARY|SAL)\s+(?:FOR|FROM)\s+([A-Z ]+)")
    _EMI_FOR = re.compile(r"(?:EMI|LOAN|INSTALLMENT)\s+(?:FOR|OF)\s+([A-Z ]+)")
    _ACH_NAMED = re.compile(r"ACH\s*(?:CR|DR|C|D)[-\s]+([A-Z ]+?)(?:-|LIMITED|LTD|PVT|PRIVATE|INSURA|SECURITIES)")
    _ACH_PLAIN = re.compile(r"ACH\s*(?:CR|DR|C|D)[-\s]+([A-Z ]+?)(?:-|$)")

    LOAN_PROVIDERS = ("HDFC", "SBI", "ICICI", "AXIS", "PNB", "BOI", "HOME LOAN", "PERSONAL LOAN", "CAR LOAN")

    def extract_merchant(self, narration) -> str:
        """Canonical merchant for a narration, or "" when nothing usable was found."""
        n = narration if isinstance(narration, NormalizedNarration) else normalize(narration)
        raw = self._raw_merchant(n.text)
        if raw == self.UNKNOWN:
            return ""
        canonical, _ = canonicalize_merchant(raw)
        return canonical or raw

    def _raw_merchant(self, text: str) -> str:
        for name, patterns in self.MERCHANT_ALIASES:
            if first_hit(text, patterns):
                return name

        payee, _ = extract_upi_details(text)
        if payee:
            return payee

        match = self._TRANSFER_IFSC.search(text)
        if match:
            name = match.group(2).strip()
            if 0 < len(name) < 50:
                return name

        match = self._TRANSFER_REF.search(text)
        if match:
            name = strip_honorific(match.group(2))
            if 0 < len(name) < 50:
                return name

        return self.UNKNOWN

    def extract_beneficiary(self, narration, method: str) -> str:
        """Counterparty name for transfers, UPI payees, salary payers, lenders and ACH mandates."""
        n = narration if isinstance(narration, NormalizedNarration) else normalize(narration)
        text = n.text

        if method in ("IMPS", "NEFT", "RTGS"):
            name = self._transfer_beneficiary(text, method)
            if name:
                return name

        if method == "UPI":
            payee, vpa = extract_upi_details(text)
            if payee or vpa:
                return payee or vpa

        if "SALARY" in text:
            match = self._SALARY_BANK.search(text)
            if match and match.group(1).strip():
                return match.group(1).strip() + " BANK"
            match = self._SALARY_EMPLOYER.search(text)
            if match:
                return match.group(1).strip()

        if method == "EMI":
            match = self._EMI_FOR.search(text)
            if match:
                return match.group(1).strip()
            for provider in self.LOAN_PROVIDERS:
                if provider in text:
                    return provider

        if method == "ACH":
            for pattern in (self._ACH_NAMED, self._ACH_PLAIN):
                match = pattern.search(text)
                if match:
                    name = match.group(1).strip()
                    if name.startswith("TP ACH "):
                        name = name[len("TP ACH "):]
                    if 0 < len(name) < 50:
                        return name

        return ""

    def _transfer_beneficiary(self, text: str, method: str) -> str:
        match = self._BENEFICIARY_HONORIFIC.search(text)
        if match:
            name = match.group(1).strip().rstrip("-").strip()
            if 0 < len(name) < 50:
                return name

        if method == "RTGS":
            match = self._BENEFICIARY_RTGS.search(text)
            if match:
                name = match.group(1).strip()
                if 0 < len(name) < 50:
                    return name

        match = self._BENEFICIARY_GENERIC.search(text)
        if match:
            name = strip_honorific(match.group(1))
            if 0 < len(name) < 50:
                return name
        return ""
