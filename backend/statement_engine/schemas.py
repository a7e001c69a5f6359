"""
Module: schemas.py
Description: Pydantic documents for persisting classification, recurring and
anomaly output as JSON.

Author: Statement Engine Team
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from statement_engine.anomaly_types import Severity, SignalCategory, SignalCode


class ClassificationMetadataOut(BaseModel):
    confidence: float = Field(ge=0, le=1)
    matched_keywords: List[str] = []
    gateway: str = ""
    wallet: str = ""
    channel: str = ""
    rule_version: str
    reason: str = ""
    date_parsed: bool = True

    class Config:
        from_attributes = True


class RecurringMetadataOut(BaseModel):
    is_recurring: bool
    confidence: int
    frequency: str = ""
    first_seen: str = ""
    last_seen: str = ""
    count: int = 0
    pattern: str = ""

    class Config:
        from_attributes = True


class ClassifiedTransactionDocument(BaseModel):
    txn_id: str
    date: str
    narration: str
    cheque_ref: str = ""
    value_date: str = ""
    withdrawal: float = 0.0
    deposit: float = 0.0
    closing_balance: float = 0.0
    method: str
    merchant: str = ""
    beneficiary: str = ""
    category: str
    is_income: bool = False
    is_recurring: bool = False
    classification_meta: ClassificationMetadataOut
    recurring_meta: Optional[RecurringMetadataOut] = None

    class Config:
        from_attributes = True


class RecurringPaymentDocument(BaseModel):
    signature: str
    name: str
    amount: float
    day_of_month: int
    pattern: str
    confidence: int = Field(ge=0, le=100)
    count: int
    first_seen: str
    last_seen: str

    class Config:
        from_attributes = True


class SignalOut(BaseModel):
    code: SignalCode
    category: SignalCategory
    score: float = Field(ge=0, le=100)
    severity: Severity
    explanation: str
    metadata: Dict[str, object] = {}

    class Config:
        from_attributes = True
        use_enum_values = True


class AnomalyDocument(BaseModel):
    """Anomaly output for one transaction, keyed by transaction_id."""
    transaction_id: str
    final_score: float = Field(ge=0, le=100)
    severity: Severity
    explanation: str
    confidence: float = Field(ge=0, le=1)
    risk_flags: List[str] = []
    signals: List[SignalOut] = []
    top_signals: List[SignalOut] = []

    class Config:
        from_attributes = True
        use_enum_values = True


class AlertDocument(BaseModel):
    transaction_id: str = ""
    title: str
    message: str
    severity: Severity
    confidence: float
    action: str = ""

    class Config:
        from_attributes = True
        use_enum_values = True


def to_documents(items, model) -> List[dict]:
    """Validate internal objects against `model` and dump them as JSON-ready dicts."""
    return [model.model_validate(item).model_dump(mode="json") for item in items]
