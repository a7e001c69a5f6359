"""
Module: engine.py
Description: Anomaly engine orchestrator.

Flow per transaction:
    1. Suppressor decides skip / severity cap
    2. Every enabled detector runs against the context and the user profile
    3. Scorer aggregates the signals
    4. A non-critical cap downgrades the result and its signals

Detectors are created once at construction and reused. A detector that raises
is logged and contributes nothing; the engine itself never raises to the
caller except when the caller cancels.

Usage:
    engine = AnomalyEngine(EngineConfig(thresholds=Thresholds.conservative()))
    engine.update_profile(classified_history)
    results = engine.evaluate_batch(classified_history, user_id="u-1")

Author: Statement Engine Team
"""

import dataclasses
import os
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Union

from statement_engine.anomaly_types import (
    AnomalyResult,
    AnomalySignal,
    CancellationToken,
    OperationCancelled,
    Severity,
    TransactionContext,
    UserProfile,
    severity_to_score,
)
from statement_engine.config import (
    DuplicateConfig,
    EngineConfig,
    RuleConfig,
    StatisticalConfig,
)
from statement_engine.dates import parse_date
from statement_engine.detectors import (
    Detector,
    DuplicateDetector,
    IncomeDetector,
    MLDetector,
    PatternDetector,
    RuleDetector,
    StatisticalDetector,
    validate_signals,
)
from statement_engine.models import ClassifiedTransaction
from statement_engine.observability import (
    log_detector_failure,
    log_signal_emitted,
    logger,
    metrics,
    timed,
)
from statement_engine.profile_builder import ProfileBuilder
from statement_engine.scorer import Scorer
from statement_engine.suppression import Suppressor


SUPPRESSED_EXPLANATION = "Transaction follows your usual patterns"
CAPPED_PREFIX = "Pattern change detected (trusted/recurring transaction): "


class AnomalyEngine:
    """Suppress, detect, score and cap."""

    def __init__(self, config: Optional[EngineConfig] = None, history: Optional[Sequence[ClassifiedTransaction]] = None):
        self.config = (config or EngineConfig()).check()
        self.suppressor = Suppressor()
        self.scorer = Scorer()
        self.profile_builder = ProfileBuilder()
        self.detectors: List[Detector] = self._build_detectors(self.config)
        self.profile = UserProfile()
        self.history: List[ClassifiedTransaction] = []
        if history:
            self.update_profile(history)

    @staticmethod
    def _build_detectors(config: EngineConfig) -> List[Detector]:
        t = config.thresholds
        if t is not None:
            rule = RuleConfig.from_thresholds(t)
            statistical = StatisticalConfig.from_thresholds(t)
            duplicate = DuplicateConfig.from_thresholds(t, config.duplicate_lookback)
        else:
            rule = RuleConfig()
            statistical = StatisticalConfig()
            duplicate = DuplicateConfig(lookback=config.duplicate_lookback)

        return [
            RuleDetector(rule, enabled=config.enable_rule),
            StatisticalDetector(statistical, enabled=config.enable_statistical),
            MLDetector(enabled=config.enable_ml),
            DuplicateDetector(duplicate, enabled=config.enable_duplicate),
            PatternDetector(enabled=config.enable_pattern),
            IncomeDetector(enabled=config.enable_income),
        ]

    # =========================================================================
    # Profile
    # =========================================================================

    def update_profile(self, history: Sequence[ClassifiedTransaction]) -> UserProfile:
        """Rebuild the baseline; the engine keeps the history for context building."""
        self.history = list(history)
        self.profile = self.profile_builder.build(self.history)
        logger.info(
            "Profile updated",
            transactions=self.profile.total_transactions,
            categories=len(self.profile.category_profiles),
        )
        return self.profile

    def context_for(self, txn: ClassifiedTransaction, user_id: str = "") -> TransactionContext:
        timestamp, ok = parse_date(txn.date)
        return TransactionContext(
            transaction=txn,
            timestamp=timestamp,
            user_id=user_id,
            recent_history=self.history[-self.config.history_size:],
            full_history=self.history,
            timestamp_parsed=ok,
        )

    # =========================================================================
    # Evaluation
    # =========================================================================

    def evaluate(
        self,
        item: Union[TransactionContext, ClassifiedTransaction],
        cancel_token: Optional[CancellationToken] = None,
    ) -> AnomalyResult:
        ctx = item if isinstance(item, TransactionContext) else self.context_for(item)
        txn = ctx.transaction

        rule = self.suppressor.evaluate(txn)
        if rule.skip:
            metrics.increment("engine.suppressed")
            return AnomalyResult(
                final_score=0.0,
                severity=Severity.INFO,
                explanation=SUPPRESSED_EXPLANATION,
                confidence=1.0,
                transaction_id=txn.txn_id,
            )

        signals: List[AnomalySignal] = []
        for detector in self.detectors:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            if not detector.enabled:
                continue
            signals.extend(self._run_detector(detector, ctx))

        result = self.scorer.score(signals)
        if rule.max_severity != Severity.CRITICAL:
            result = self.apply_severity_cap(result, rule.max_severity)

        result.transaction_id = txn.txn_id
        for signal in result.signals:
            log_signal_emitted(signal.code.value, signal.score)
        metrics.increment("engine.evaluated", tags={"severity": result.severity.value})
        return result

    def _run_detector(self, detector: Detector, ctx: TransactionContext) -> List[AnomalySignal]:
        try:
            return validate_signals(detector, detector.detect(ctx, self.profile))
        except OperationCancelled:
            raise
        except Exception as e:
            log_detector_failure(detector.name, e)
            return []

    @staticmethod
    def apply_severity_cap(result: AnomalyResult, cap: Severity) -> AnomalyResult:
        """Hold the result and every signal at or below `cap`."""
        capped = {}
        signals = []
        for signal in result.signals:
            new = dataclasses.replace(signal, severity=cap) if signal.severity > cap else signal
            capped[id(signal)] = new
            signals.append(new)
        top = [capped.get(id(s), s) for s in result.top_signals]

        if result.severity <= cap:
            return dataclasses.replace(result, signals=signals, top_signals=top)

        return dataclasses.replace(
            result,
            signals=signals,
            top_signals=top,
            severity=cap,
            final_score=severity_to_score(cap),
            explanation=CAPPED_PREFIX + result.explanation,
        )

    @timed("engine.evaluate_batch")
    def evaluate_batch(
        self,
        transactions: Sequence[ClassifiedTransaction],
        user_id: str = "",
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[AnomalyResult]:
        """
        Evaluate many transactions on a thread pool.

        Results are returned in input order. Cancelling the token stops
        scheduling and raises OperationCancelled once in-flight work ends.
        """
        contexts = [self.context_for(txn, user_id) for txn in transactions]
        if not contexts:
            return []

        workers = self.config.max_workers or os.cpu_count() or 1

        def run(ctx: TransactionContext) -> AnomalyResult:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            return self.evaluate(ctx, cancel_token)

        with ThreadPoolExecutor(max_workers=min(workers, len(contexts))) as pool:
            results = list(pool.map(run, contexts))

        logger.info(
            "Batch evaluated",
            user_id=user_id,
            transactions=len(results),
            flagged=sum(1 for r in results if r.severity > Severity.INFO),
        )
        return results
