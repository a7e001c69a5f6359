"""Bank statement classification, recurring payment detection and spending insights."""

from .models import RULE_VERSION, Category, ClassifiedTransaction, RawTransaction, RecurringPayment
from .classifier import TransactionClassifier
from .profile_builder import ProfileBuilder
from .recurring_detector import RecurringDetector
from .config import ConfigError, EngineConfig, Settings, Thresholds
from .anomaly_types import AnomalyResult, CancellationToken, OperationCancelled, Severity
from .engine import AnomalyEngine
from .alerts import Alert, AlertFormatter, build_profile_context, format_amount

__all__ = [
    "RULE_VERSION",
    "Category",
    "RawTransaction",
    "ClassifiedTransaction",
    "RecurringPayment",
    "TransactionClassifier",
    "ProfileBuilder",
    "RecurringDetector",
    "ConfigError",
    "EngineConfig",
    "Settings",
    "Thresholds",
    "AnomalyResult",
    "CancellationToken",
    "OperationCancelled",
    "Severity",
    "AnomalyEngine",
    "Alert",
    "AlertFormatter",
    "build_profile_context",
    "format_amount",
]
