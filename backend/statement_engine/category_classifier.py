"""
Module: category_classifier.py
Description: Layered category decision procedure.

Layers are tried in priority order and the first one that matches returns:

    0  known merchant          6  bills & utilities
    1  loan / EMI              7  lifestyle (entertainment, donations, auto, education)
    2  rent / CRED             8  investment
    3  POS discriminator       9  bank charges
    4  food delivery          10  standing instructions, ATM, person-to-person
    5  everyday spend          -  Other, confidence 0.1

The winning layer supplies a base confidence; `_compose_confidence` adds the intent,
gateway and amount-pattern bonuses and enforces the known-merchant floor.

Author: Statement Engine Team
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from statement_engine.merchant_extractor import (
    KnownMerchant,
    canonicalize_merchant,
    detect_known_merchant,
    first_hit,
    pattern_hit,
)
from statement_engine.models import Category
from statement_engine.normalizer import (
    BILL_GATEWAYS,
    NormalizedNarration,
    decode_compressed_merchant,
    detect_amount_pattern,
    is_charge,
    looks_like_person,
    normalize,
)


DEFAULT_REASON = "No matching patterns found - classified as Other"
LARGE_GAS_REASON = "Large payment to gas utility company (likely share purchase/investment)"

GAS_UTILITY_LIMIT = 25000
LARGE_TRANSFER_LIMIT = 100000


@dataclass
class CategoryResult:
    """Outcome of the category layers."""
    category: str
    confidence: float
    matched_keywords: list = field(default_factory=list)
    reason: str = ""


# =============================================================================
# Intent keywords and confidence helpers
# =============================================================================

INTENT_KEYWORDS = {
    Category.BILLS_UTILITIES.value: {
        "BILL": 0.3, "UTILITY PAYMENT": 0.4, "RECHARGE": 0.3, "PREPAID": 0.3,
        "POSTPAID": 0.3, "RENT": 0.4, "MAINTENANCE": 0.3,
    },
    Category.INVESTMENT.value: {
        "INSTALLMENT": 0.3, "SIP": 0.4, "RD": 0.4, "FD": 0.4, "MUTUAL FUND": 0.5,
        "STOCK": 0.4, "SHARE": 0.4, "DIVIDEND": 0.5,
    },
    Category.LOAN.value: {"EMI": 0.5, "LOAN": 0.4, "OVERDUE": 0.4, "RECOVERED": 0.3},
    Category.FUEL.value: {
        "FUEL": 0.4, "PETROL": 0.4, "DIESEL": 0.4, "SERVICE STATION": 0.3, "PETROL PUMP": 0.4,
    },
    Category.TRAVEL.value: {
        "TRAVEL": 0.3, "FLIGHT": 0.4, "HOTEL": 0.3, "CAB": 0.3, "TAXI": 0.3, "BOOKING": 0.3,
    },
    Category.FOOD_DELIVERY.value: {"ORDER": 0.2, "FOOD DELIVERY": 0.4, "ONLINE FOOD": 0.3},
    Category.DINING.value: {
        "RESTAURANT": 0.3, "CAFE": 0.3, "DINING": 0.3, "EATERY": 0.3, "BAKERY": 0.3,
    },
    Category.SHOPPING.value: {"SHOPPING": 0.2, "PURCHASE": 0.2, "STORE": 0.2, "SHOP": 0.2},
    Category.GROCERIES.value: {
        "GROCERY": 0.3, "GROCERIES": 0.3, "SUPERMARKET": 0.3, "KIRANA": 0.3,
        "VEGETABLE": 0.3, "FRUIT": 0.3,
    },
    Category.HEALTHCARE.value: {
        "MEDICAL": 0.3, "PHARMACY": 0.4, "HOSPITAL": 0.4, "CLINIC": 0.3, "DOCTOR": 0.3,
        "HEALTH": 0.2,
    },
    Category.ENTERTAINMENT.value: {
        "MOVIE": 0.3, "CINEMA": 0.3, "MUSIC": 0.2, "GAME": 0.2, "GAMING": 0.3,
    },
    Category.EDUCATION.value: {
        "SCHOOL": 0.3, "COLLEGE": 0.3, "UNIVERSITY": 0.3, "TUITION": 0.4,
        "EDUCATION": 0.3, "COURSE": 0.3,
    },
}


def detect_intent_keywords(text: str) -> dict[str, float]:
    """Category -> strongest intent-keyword weight found in `text`."""
    upper = text.upper()
    found = {}
    for category, keywords in INTENT_KEYWORDS.items():
        weights = [weight for keyword, weight in keywords.items() if pattern_hit(upper, keyword)]
        if weights:
            found[category] = max(weights)
    return found


def calculate_confidence(
    matched_keywords,
    gateway: str = "",
    merchant: str = "",
    amount_pattern: Optional[str] = None,
    recurring: bool = False,
) -> float:
    """Evidence-weighted confidence for rule paths that have no fixed layer confidence."""
    confidence = min(len(matched_keywords) * 0.15, 0.6)
    if gateway:
        confidence += 0.2
    if merchant:
        confidence += 0.15
    if amount_pattern:
        confidence += 0.05
    if recurring:
        confidence += 0.1
    confidence = min(confidence, 1.0)
    if matched_keywords and confidence < 0.3:
        confidence = 0.3
    return round(confidence, 3)


# =============================================================================
# Classifier
# =============================================================================

class CategoryClassifier:
    """Priority-layered category rules over a normalised narration."""

    # --- shared ---------------------------------------------------------------
    LARGE_GAS_COMPANIES = (
        "IGL", "INDRAPRASTHAGA", "INDRAPRASTHA GAS", "MGL", "MAHANAGAR GAS",
        "ADANIGAS", "ADANI GAS", "GUJGAS", "GUJARAT GAS",
    )

    # --- layer 1: loan --------------------------------------------------------
    EMI_WORD = re.compile(r"(?<![A-Z])EMI(?![A-Z])")
    EMI_NUMBERED = re.compile(r"(?<![A-Z])EMI\s*\d+")
    EMI_COMPANIONS = ("LOAN", "ECS", "NACH", "SI", "MANDATE", "INSTALLMENT")
    LOAN_KEYWORDS = ("LOAN", "EMI", "NACH", "ECS", "MANDATE", "REPAYMENT", "OVERDUE", "LNPY")
    AUTO_DEBIT_EMI = ("ECS EMI", "NACH EMI", "SI EMI", "AUTO EMI", "MANDATE EMI")
    BANK_LOANS = (
        "HDFC LOAN", "HDFCLOAN", "ICICI LOAN", "ICICILOAN", "SBI LOAN", "SBILOAN",
        "AXIS LOAN", "AXISLOAN", "KOTAK LOAN", "KOTAKLOAN", "PNB LOAN", "BOB LOAN",
        "IDFC LOAN", "YES BANK LOAN",
    )
    NBFC_LOANS = (
        "BAJAJ FINSERV", "BAJAJ FIN", "TATA CAPITAL", "HDB FINANCIAL", "HDB", "HOME CREDIT",
        "ADITYA BIRLA FINANCE", "ADITYA BIRLA", "LT FINANCE", "L&T FINANCE",
        "MUTHOOT", "MANAPPURAM", "FULLERTON",
    )
    LOAN_TYPES = (
        "HOME LOAN", "PERSONAL LOAN", "CAR LOAN", "AUTO LOAN", "VEHICLE LOAN",
        "EDUCATION LOAN", "GOLD LOAN", "BUSINESS LOAN", "TWO WHEELER LOAN",
    )
    OVERDUE_LOANS = (
        "OVERDUE LOAN", "LOAN OVERDUE", "EMI RECOVERY", "LOAN RECOVERY", "LOAN PENALTY",
        "EMI BOUNCE", "REPAYMENT",
    )
    GATEWAY_LOANS = (
        "BILLDKHDFCLOAN", "BILLDESKHDFCLOAN", "BILLDKICICILOAN", "BILLDKBAJAJFIN",
        "BILLDKTATACAP", "PAYUBAJAJFIN",
    )
    AMBIGUOUS_LOANS = ("LOAN PAYMENT", "FINANCE PAYMENT", "INSTALLMENT PAID", "MONTHLY INSTALLMENT")

    # --- layer 2: rent / CRED -------------------------------------------------
    CRED_BILL = ("CREDPAY", "PAYMENT ON CRED", "CRED.UBCP", "PWCUBCPUPI", "CRED CLUB", "CREDCLUB")

    # --- layer 3: POS ---------------------------------------------------------
    POS_DINING = (
        "RESTAURANT", "CAFE", "COFFEE", "DHABA", "BAKERY", "BAKERS", "FOOD", "KITCHEN",
        "BISTRO", "DINER", "EATERY", "PIZZA", "BURGER", "STARBUCKS", "MCDONALD", "KFC",
        "DOMINOS", "HALDIRAM", "BIKANERVALA", "SWEETS", "CHAAYOS",
    )
    POS_GROCERY = (
        "GROCERY", "SUPERMARKET", "SUPER MARKET", "MART", "KIRANA", "PROVISION", "DMART",
        "BIG BAZAAR", "RELIANCE FRESH", "MORE RETAIL", "SPENCER", "STAR BAZAAR",
        "VEGETABLE", "FRUIT",
    )
    POS_RETAIL = ("RETAIL", "STORE", "PURCHASE", "AMAZON", "FLIPKART")

    # --- layer 4: food delivery -----------------------------------------------
    FOOD_DELIVERY_APPS = (
        "PAYUZOMATO", "RAZPZOMATO", "PAYUSWIGGY", "RAZPSWIGGY", "ZOMATOONLINE",
        "SWIGGYINSTAMART", "UBER EATS", "UBEREATS", "FOODPANDA", "FAASOS", "EATSURE",
        "BOX8", "DUNZO",
    )
    FOOD_DELIVERY_BRANDS = ("ZOMATO", "SWIGGY")

    # --- layer 5: everyday spend ----------------------------------------------
    FUEL = (
        "IOCL", "INDIANOIL", "INDIAN OIL", "BPCL", "HPCL", "RELIANCE PETROL", "SHELL",
        "ESSAR", "NAYARA", "PETROL", "DIESEL", "FUEL", "SERVICE STATION",
        "FILLING STATION", "PETROLEUM",
    )
    DINING = (
        "RESTAURANT", "CAFE", "COFFEE", "DHABA", "BISTRO", "DINER", "EATERY", "FOOD COURT",
        "BARBEQUE", "PIZZA", "BURGER", "STARBUCKS", "MCDONALD", "KFC", "DOMINOS",
        "HALDIRAM", "CHAAYOS", "SWEETS", "SWEET", "BAKERY", "BAKERS", "CATERERS",
    )
    DINING_EXCLUSIONS = ("PAYU", "RAZP", "ZOMATO", "SWIGGY")
    TRAVEL = (
        "UBER", "OLA", "RAPIDO", "IRCTC", "REDBUS", "MAKEMYTRIP", "GOIBIBO", "YATRA",
        "CLEARTRIP", "OYO", "AIRBNB", "INDIGO", "SPICEJET", "AIR INDIA", "VISTARA", "AKASA",
        "TRAVEL", "FLIGHT", "HOTEL", "CAB", "TAXI", "BOOKING",
    )
    SHOPPING = (
        "AMAZON", "FLIPKART", "MYNTRA", "AJIO", "MEESHO", "NYKAA", "TATACLIQ", "SNAPDEAL",
        "SHOPPERS STOP", "LIFESTYLE", "PANTALOONS", "WESTSIDE", "ZARA", "DECATHLON",
        "IKEA", "CROMA", "RELIANCE DIGITAL", "VIJAY SALES", "TANISHQ", "JEWELLERY",
        "JEWELLERS", "FOOTWEAR", "GARMENTS", "ELECTRONICS",
    )
    GROCERIES = (
        "BIGBASKET", "BLINKIT", "GROFERS", "ZEPTO", "JIOMART", "DMART", "BIG BAZAAR",
        "RELIANCE FRESH", "MORE RETAIL", "SPENCER", "NATURES BASKET", "GROCERY",
        "GROCERIES", "KIRANA", "VEGETABLE", "FRUIT", "DAIRY", "PROVISION", "GENERAL STORE",
        "SUPERMARKET", "SUPER MARKET",
    )
    SHOPPING_GENERIC = ("MALL", "STORE", "SHOP", "BOUTIQUE")
    HEALTH_SPECIALISTS = (
        "DENTIST", "DENTAL", "ORTHO", "CARDIO", "DERMA", "PEDIATRIC", "GYNAE", "EYE CARE",
        "PHYSIOTHERAPY",
    )
    HEALTHCARE = (
        "HOSPITAL", "CLINIC", "PHARMACY", "PHARMA", "MEDICINE", "MEDICAL", "MEDICOS",
        "APOLLO", "FORTIS", "MAX HEALTHCARE", "MEDANTA", "NETMEDS", "PHARMEASY", "1MG",
        "HEALTH", "DOCTOR", "DR.", "DIAGNOSTIC", "PATHOLOGY", "LAB", "CHEMIST",
        "NURSING HOME", "CHIKITSALY",
    )
    LEGAL = ("ADVOCATE", "LAWYER", "LEGAL", "NOTARY", "COURT FEE")

    # --- layer 6: bills -------------------------------------------------------
    PAYTM_UTILITY = ("PAYTM UTILITY", "UTILITYPAYTM")
    GENERIC_GATEWAYS = (
        "PAYTM", "GPAY", "PHONEPE", "AMAZONPAY", "PAYU", "RAZORPAY", "RAZP", "CCAVENUE",
        "VYAPAR", "BHARATPE", "BAJAJPAY", "MOBIKWIK",
    )
    BILL_EXCLUDED_MERCHANTS = (
        "FOOD", "SWEET", "RESTAURANT", "CAFE", "DINING", "EATERY", "BAKERY", "MEDICAL",
        "MEDICOS", "PHARMACY", "CLINIC", "HOSPITAL", "HEALTH", "SALOON", "SALON", "BEAUTY",
        "SPA", "SUPER MARKET", "MARKET", "GROCERY", "KIRANA", "JEWELLERS", "JEWELLERY",
        "WATCH", "SHOP", "STORE", "MALL", "TEA", "COFFEE", "SNACKS", "DAIRY", "TRADERS",
        "TRADING", "ENTERPRISE", "BUSINESS", "CHIKITSALY", "CHEMISTS", "MED", "BAZAR",
        "BAZAAR", "MARKETPLACE", "INN", "HOTEL",
    )
    BILL_KEYWORDS = (
        "BILL", "BBPS", "UTILITY PAYMENT", "RECHARGE", "PREPAID", "POSTPAID",
        "BROADBAND", "DTH", "FASTAG",
    )
    TRANSFER_RAILS = ("RTGS", "IMPS", "NEFT")
    ELECTRICITY = (
        "ELECTRICITY", "BSES", "TATA POWER", "TATAPOWER", "TORRENT POWER", "TORRENTPOWER",
        "ADANI ELECTRICITY", "MSEB", "MSEDCL", "UPPCL", "DVVNL", "PVVNL", "BESCOM", "TNEB",
        "POWER", "DISCOM",
    )
    GAS = (
        "GAS", "INDRAPRASTHAGA", "IGL", "MGL", "ADANIGAS", "GUJGAS", "HPGAS", "HP GAS",
        "INDANE", "BHARAT GAS", "LPG",
    )
    WATER = ("WATER", "JAL BOARD", "JALBOARD", "WATER BOARD")
    TELECOM = (
        "PHONE", "MOBILE", "BROADBAND", "INTERNET", "FIBER", "FIBRE", "AIRTEL", "JIO",
        "VODAFONE", "IDEA", "BSNL", "MTNL", "HATHWAY", "POSTPAID", "PREPAID", "RECHARGE",
    )
    DTH = ("DTH", "TATA SKY", "TATASKY", "TATA PLAY", "DISH TV", "DISHTV", "SUN DIRECT", "D2H")
    TOLL = ("FASTAG", "TOLL", "NHAI")
    GOVERNMENT = ("MUNICIPAL", "GOVT", "GOVERNMENT", "CHALLAN", "PASSPORT", "RTO", "E-STAMP")
    INSURANCE = ("INSURANCE", "PREMIUM", "LIC", "POLICY", "HDFC LIFE", "SBI LIFE", "MAX LIFE", "ICICI PRU")
    INSURANCE_INVESTMENT = (
        "ULIP", "ENDOWMENT", "WHOLE LIFE", "MONEY BACK", "RETIREMENT", "PENSION PLAN",
        "SAVINGS PLAN",
    )
    CREDIT_CARD = ("CREDIT CARD", "CC PAYMENT", "CARD BILL", "CCBILL", "CARD PAYMENT")
    LOAN_BILL = ("LOAN", "EMI")
    HOUSING = ("MAINTENANCE", "SOCIETY", "APARTMENT", "HOUSING", "RENT")
    TAX = ("INCOME TAX", "ADVANCE TAX", "PROPERTY TAX", "TAX", "GST", "TDS")

    # --- layer 7: lifestyle ---------------------------------------------------
    YOUTUBE = ("YOUTUBE", "YOUTUBEPREMIUM", "GOOGLE YOUTUBE")
    ENTERTAINMENT = (
        "NETFLIX", "HOTSTAR", "DISNEY", "PRIME VIDEO", "SPOTIFY", "GAANA", "JIOSAAVN",
        "SONYLIV", "ZEE5", "BOOKMYSHOW", "PVR", "INOX", "CINEPOLIS", "CINEMA", "MOVIE",
        "THEATRE", "THEATER", "GAMING", "PLAYSTATION", "XBOX", "CONCERT", "AMUSEMENT",
    )
    RELIGIOUS = (
        "TEMPLE", "MANDIR", "GURUDWARA", "CHURCH", "MOSQUE", "MASJID", "DONATION", "CHARITY",
        "DEVASTHANAM", "NGO", "FOUNDATION",
    )
    AUTO_SERVICES = (
        "AUTO PARTS", "SPARE PARTS", "SPARES", "AUTOMOBILE", "MOTORS", "TYRE", "TYRES",
        "GARAGE", "CAR WASH", "CAR SERVICE", "BIKE SERVICE", "SERVICE CENTRE", "SERVICE CENTER",
    )
    FITNESS = ("GYM", "FITNESS", "YOGA", "CULTFIT", "CULT.FIT")
    EDUCATION = (
        "SCHOOL", "COLLEGE", "UNIVERSITY", "TUITION", "COACHING", "ACADEMY", "INSTITUTE",
        "EDUCATION", "COURSE", "UDEMY", "COURSERA", "BYJU", "UNACADEMY", "VEDANTU",
        "PHYSICSWALLAH", "EXAM FEE",
    )

    # --- layer 8: investment --------------------------------------------------
    DIVIDEND = ("DIVIDEND", "DIV CR")
    INVESTMENT = (
        "MUTUAL FUND", "MUTUALFUND", "MF ", "GROWW", "UPSTOX", "ZERODHA", "ANGEL ONE",
        "ANGELONE", "5PAISA", "ICICI DIRECT", "ICICIDIRECT", "HDFC SEC", "KOTAK SEC",
        "MOTILAL", "SHAREKHAN", "PAYTM MONEY", "NSE", "BSE", "STOCK", "SHARE", "DEMAT",
        "NPS", "PPF", "ELSS", "SIP", "NSDL", "CDSL", "INDIAN CLEARING", "CLEARING CORP",
        "WAZIRX", "COINDCX", "COINSWITCH", "ZEBPAY", "BINANCE", "COINBASE", "KRAKEN",
        "KUCOIN", "CRYPTO", "BITCOIN", "INVESTMENT", "SOVEREIGN GOLD", "SGB",
        "FIXED DEPOSIT", "RECURRING DEPOSIT",
    )

    # --- layer 10: fallbacks --------------------------------------------------
    STANDING_INSTRUCTION = ("DC SI", "STANDING INSTRUCTION", "SI ")
    SUBSCRIPTION = ("MONTHLY", "SUBSCRIPTION")
    ATM = ("ATW", "EAW", "NWD", "ATM WITHDRAWAL", "CASH WITHDRAWAL")
    PERSON_NAME_HINTS = ("MR", "MRS", "MS", "KUMAR", "SHARMA", "SINGH")

    def classify(self, narration, merchant: str = "", amount: float = 0.0) -> CategoryResult:
        """
        Categorise one narration.

        Args:
            narration: raw narration or NormalizedNarration
            merchant: canonical merchant from the extractor ("" if none)
            amount: withdrawal for debits, deposit for credits

        Returns:
            CategoryResult; never raises.
        """
        n = narration if isinstance(narration, NormalizedNarration) else normalize(narration)
        text = f"{n.text} {merchant.upper()}".strip() if merchant else n.text
        known = detect_known_merchant(n.text, merchant)

        layers = (
            self._known_merchant_layer,
            self._loan_layer,
            self._rent_layer,
            self._pos_layer,
            self._food_delivery_layer,
            self._everyday_spend_layer,
            self._bills_layer,
            self._lifestyle_layer,
            self._investment_layer,
            self._charges_layer,
            self._fallback_layer,
        )
        for layer in layers:
            result = layer(n, text, amount, known)
            if result is not None:
                result.confidence = self._compose_confidence(result, n, text, amount, known)
                return result

        return CategoryResult(Category.OTHER.value, 0.1, [], DEFAULT_REASON)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _match(category: str, confidence: float, text: str, patterns, reason: str) -> Optional[CategoryResult]:
        hit = first_hit(text, patterns)
        if hit is None:
            return None
        return CategoryResult(category, confidence, [hit.strip()], reason)

    def is_large_gas_payment(self, text: str, amount: float) -> bool:
        return amount > GAS_UTILITY_LIMIT and first_hit(text, self.LARGE_GAS_COMPANIES) is not None

    def _compose_confidence(self, result, n, text, amount, known: Optional[KnownMerchant]) -> float:
        confidence = result.confidence
        if result.category in detect_intent_keywords(text):
            confidence += 0.20
        if n.gateway:
            confidence += 0.10
        if detect_amount_pattern(amount):
            confidence += 0.10
        confidence = min(confidence, 1.0)
        if known is not None and known.category == result.category:
            confidence = max(confidence, known.confidence)
        return round(confidence, 3)

    # -------------------------------------------------------------------------
    # Layers
    # -------------------------------------------------------------------------

    def _known_merchant_layer(self, n, text, amount, known):
        if known is None or known.confidence < 0.9:
            return None
        if first_hit(text, ("EMI", "LOAN")) or self.is_large_gas_payment(text, amount):
            return None
        return CategoryResult(
            known.category, known.confidence, [known.name.upper()],
            f"Known merchant detected: {known.name}",
        )

    def _loan_layer(self, n, text, amount, known):
        loan = Category.LOAN.value
        has_emi = self.EMI_WORD.search(text) is not None
        if has_emi and first_hit(text, self.EMI_COMPANIONS):
            return CategoryResult(loan, 0.95, ["EMI"], "EMI payment with loan/mandate indicator")
        if self.EMI_NUMBERED.search(text):
            return CategoryResult(loan, 0.90, ["EMI"], "Numbered EMI instalment")
        if not first_hit(text, self.LOAN_KEYWORDS):
            return None
        return (
            self._match(loan, 0.95, text, self.AUTO_DEBIT_EMI, "Auto-debit EMI mandate")
            or self._match(loan, 0.90, text, self.BANK_LOANS, "Bank loan repayment")
            or self._match(loan, 0.90, text, self.NBFC_LOANS, "NBFC loan repayment")
            or self._match(loan, 0.85, text, self.LOAN_TYPES, "Loan instalment")
            or self._match(loan, 0.85, text, self.OVERDUE_LOANS, "Loan recovery or overdue payment")
            or self._match(loan, 0.90, text, self.GATEWAY_LOANS, "Loan repayment via payment gateway")
            or self._match(loan, 0.75, text, self.AMBIGUOUS_LOANS, "Probable loan instalment")
        )

    def _rent_layer(self, n, text, amount, known):
        if "RENT" in text:
            return CategoryResult(Category.BILLS_UTILITIES.value, 0.90, ["RENT"], "Rent payment")
        return self._match(
            Category.BILLS_UTILITIES.value, 0.85, text, self.CRED_BILL, "Credit card bill paid through CRED",
        )

    @staticmethod
    def _is_card_payment(n, text) -> bool:
        return n.has_token("POS") or "POS " in text

    def _pos_layer(self, n, text, amount, known):
        if not self._is_card_payment(n, text):
            return None
        return (
            self._match(Category.DINING.value, 0.80, text, self.POS_DINING, "Card payment at a restaurant")
            or self._match(Category.GROCERIES.value, 0.80, text, self.POS_GROCERY, "Card payment at a grocery store")
            or self._match(Category.SHOPPING.value, 0.80, text, self.POS_RETAIL, "Card payment at a retail store")
        )

    def _food_delivery_layer(self, n, text, amount, known):
        if self._is_card_payment(n, text):
            return None
        result = self._match(
            Category.FOOD_DELIVERY.value, 0.90, text, self.FOOD_DELIVERY_APPS, "Food delivery app",
        )
        if result:
            return result
        for token in n.tokens:
            for brand in self.FOOD_DELIVERY_BRANDS:
                if brand in token:
                    return CategoryResult(Category.FOOD_DELIVERY.value, 0.85, [brand], "Food delivery app")
        return None

    def _everyday_spend_layer(self, n, text, amount, known):
        result = self._match(Category.FUEL.value, 0.85, text, self.FUEL, "Fuel purchase")
        if result:
            return result
        if not first_hit(text, self.DINING_EXCLUSIONS):
            result = self._match(Category.DINING.value, 0.75, text, self.DINING, "Restaurant or cafe")
            if result:
                return result
        return (
            self._match(Category.TRAVEL.value, 0.85, text, self.TRAVEL, "Travel or commute")
            or self._match(Category.SHOPPING.value, 0.80, text, self.SHOPPING, "Shopping merchant")
            or self._match(Category.GROCERIES.value, 0.75, text, self.GROCERIES, "Grocery purchase")
            or self._match(Category.SHOPPING.value, 0.75, text, self.SHOPPING_GENERIC, "Retail store")
            or self._match(Category.HEALTHCARE.value, 0.85, text, self.HEALTH_SPECIALISTS, "Medical specialist")
            or self._match(Category.HEALTHCARE.value, 0.80, text, self.HEALTHCARE, "Healthcare provider")
            or self._match(Category.BILLS_UTILITIES.value, 0.75, text, self.LEGAL, "Legal services")
        )

    def _bills_layer(self, n, text, amount, known):
        bills = Category.BILLS_UTILITIES.value
        result = self._match(bills, 0.95, text, self.PAYTM_UTILITY, "Utility payment through Paytm")
        if result:
            return result

        if first_hit(text, self.BILL_EXCLUDED_MERCHANTS):
            return None
        if self.is_large_gas_payment(text, amount):
            return None
        if amount > LARGE_TRANSFER_LIMIT:
            return None

        small_gas = amount <= GAS_UTILITY_LIMIT and first_hit(text, self.GAS) is not None
        utility = (first_hit(text, self.ELECTRICITY) or first_hit(text, self.WATER)
                   or first_hit(text, self.TELECOM) or small_gas)
        true_gateway = n.gateway in BILL_GATEWAYS and not first_hit(text, self.GENERIC_GATEWAYS)
        bill_keyword = first_hit(text, self.BILL_KEYWORDS)
        if not (bill_keyword or (true_gateway and utility)):
            return None

        result = (
            self._match(bills, 0.90, text, self.ELECTRICITY, "Electricity bill")
            or (self._match(bills, 0.90, text, self.GAS, "Gas bill") if small_gas else None)
            or self._match(bills, 0.90, text, self.WATER, "Water bill")
            or self._match(bills, 0.90, text, self.TELECOM, "Telecom or internet bill")
            or self._match(bills, 0.90, text, self.DTH, "DTH recharge")
            or self._match(bills, 0.85, text, self.TOLL, "Toll or FASTag recharge")
            or self._match(bills, 0.85, text, self.GOVERNMENT, "Government payment")
        )
        if result:
            return result

        insurance = first_hit(text, self.INSURANCE)
        if insurance:
            if first_hit(text, self.INSURANCE_INVESTMENT):
                return CategoryResult(
                    Category.INVESTMENT.value, 0.90, [insurance], "Investment-linked insurance premium",
                )
            return CategoryResult(bills, 0.90, [insurance], "Insurance premium")

        result = (
            self._match(bills, 0.90, text, self.CREDIT_CARD, "Credit card bill")
            or self._match(bills, 0.90, text, self.LOAN_BILL, "Loan EMI paid via bill gateway")
            or self._match(bills, 0.85, text, self.HOUSING, "Housing or society charges")
            or self._match(bills, 0.85, text, self.TAX, "Tax payment")
        )
        if result:
            return result
        if bill_keyword:
            return CategoryResult(bills, 0.75, [bill_keyword], "Bill payment")
        return CategoryResult(bills, 0.75, [n.gateway], "Utility payment via bill gateway")

    def _lifestyle_layer(self, n, text, amount, known):
        result = (
            self._match(Category.ENTERTAINMENT.value, 0.85, text, self.YOUTUBE, "YouTube subscription")
            or self._match(Category.ENTERTAINMENT.value, 0.75, text, self.ENTERTAINMENT, "Entertainment")
            or self._match(Category.BILLS_UTILITIES.value, 0.70, text, self.RELIGIOUS, "Donation")
            or self._match(Category.SHOPPING.value, 0.75, text, self.AUTO_SERVICES, "Vehicle parts or service")
            or self._match(Category.HEALTHCARE.value, 0.80, text, self.FITNESS, "Fitness membership")
            or self._match(Category.EDUCATION.value, 0.75, text, self.EDUCATION, "Education fees")
        )
        if result:
            return result
        if self.is_large_gas_payment(text, amount):
            return None
        for token in n.tokens:
            decoded = decode_compressed_merchant(token)
            if decoded != token and ("Gas" in decoded or "Vidyut" in decoded):
                return CategoryResult(
                    Category.BILLS_UTILITIES.value, 0.80, [token], f"Utility company: {decoded}",
                )
        return None

    def _investment_layer(self, n, text, amount, known):
        investment = Category.INVESTMENT.value
        if n.has_token("DIV") or first_hit(text, self.DIVIDEND):
            return CategoryResult(investment, 0.90, ["DIVIDEND"], "Dividend")

        if self.is_large_gas_payment(text, amount):
            hit = first_hit(text, self.LARGE_GAS_COMPANIES)
            return CategoryResult(investment, 0.85, [hit], LARGE_GAS_REASON)

        if amount >= 10000:
            if "RTGS" in text or "NEFT" in text:
                if "HDFC" in text:
                    return CategoryResult(investment, 0.95, ["HDFC"], "Large transfer to own bank account")
                if "IDFB" in text or "IDFC" in text:
                    return CategoryResult(investment, 0.95, ["IDFC"], "Large transfer to own bank account")
                if amount >= 50000:
                    return CategoryResult(investment, 0.90, ["LARGE_TRANSFER"], "Large bank transfer")
            if "IMPS" in text and ("IDFB" in text or "IDFC" in text):
                return CategoryResult(investment, 0.95, ["IDFC"], "Transfer to own bank account")
            if "FUNDS TRANSFER" in text and amount >= 100000:
                return CategoryResult(investment, 0.90, ["FUNDS TRANSFER"], "Large funds transfer")

        if "BAJAJ FINANCE" in text:
            return CategoryResult(investment, 0.90, ["BAJAJ FINANCE"], "Fixed deposit with Bajaj Finance")

        result = self._match(investment, 0.90, text, self.INVESTMENT, "Investment platform or instrument")
        if result:
            return result

        merchant_text = text[len(n.text):].strip()
        if merchant_text:
            _, canonical_category = canonicalize_merchant(merchant_text)
            if canonical_category == investment:
                return CategoryResult(investment, 0.90, [merchant_text], "Investment platform or instrument")
        return None

    def _charges_layer(self, n, text, amount, known):
        if 0 < amount <= 50 and is_charge(text, amount):
            return CategoryResult(Category.BILLS_UTILITIES.value, 0.70, ["CHARGE"], "Bank charges")
        return None

    def _fallback_layer(self, n, text, amount, known):
        if first_hit(text, self.STANDING_INSTRUCTION) and first_hit(text, self.SUBSCRIPTION):
            return CategoryResult(
                Category.BILLS_UTILITIES.value, 0.60, ["STANDING_INSTRUCTION"], "Standing-instruction subscription",
            )
        result = self._match(Category.SHOPPING.value, 0.80, text, self.ATM, "Cash withdrawal")
        if result:
            return result
        if "UPI" in text and amount > 5000 and known is None:
            merchant_text = text[len(n.text):].strip()
            if first_hit(text, self.PERSON_NAME_HINTS) or looks_like_person(merchant_text):
                return CategoryResult(Category.OTHER.value, 0.70, ["P2P"], "P2P transfer to an individual")
        return None
