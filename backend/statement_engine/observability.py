"""
Module: observability.py
Description: Structured logging and metrics tracking for the statement engine.

Features:
    - Structured logging with key=value fields
    - Timing decorators for classification and detection stages
    - Thread-safe metrics collection (batch evaluation runs on a pool)

Usage:
    from statement_engine.observability import logger, metrics, timed

    @timed("classify_batch")
    def classify_all(raw_transactions):
        logger.info("Classifying", count=len(raw_transactions))
        ...

Author: Statement Engine Team
"""

import time
import asyncio
import logging
import functools
import threading
from datetime import datetime, timezone
from typing import Dict, Any, Optional, Callable
from collections import defaultdict
from contextlib import contextmanager


# =============================================================================
# Structured Logger
# =============================================================================

class StructuredLogger:
    """
    Structured logger with key=value output.

    Provides:
        - Static context fields (e.g. component name)
        - Per-call fields passed as keyword arguments
        - Log level management
    """

    def __init__(self, name: str = "statement-engine"):
        """Initialize logger with given name."""
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(logging.INFO)
            formatter = logging.Formatter(
                '%(asctime)s | %(levelname)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

        self._context: Dict[str, Any] = {}

    def bind(self, **kwargs) -> "StructuredLogger":
        """Return a child logger carrying extra context fields."""
        child = StructuredLogger.__new__(StructuredLogger)
        child.logger = self.logger
        child._context = {**self._context, **kwargs}
        return child

    def _format_message(self, message: str, **kwargs) -> str:
        """Format message with context and additional fields."""
        fields = {**self._context, **kwargs}
        if fields:
            field_str = " | ".join(f"{k}={v}" for k, v in fields.items())
            return f"{message} | {field_str}"
        return message

    def info(self, message: str, **kwargs) -> None:
        """Log info level message."""
        self.logger.info(self._format_message(message, **kwargs))

    def warning(self, message: str, **kwargs) -> None:
        """Log warning level message."""
        self.logger.warning(self._format_message(message, **kwargs))

    def error(self, message: str, **kwargs) -> None:
        """Log error level message."""
        self.logger.error(self._format_message(message, **kwargs))

    def debug(self, message: str, **kwargs) -> None:
        """Log debug level message."""
        self.logger.debug(self._format_message(message, **kwargs))

    def exception(self, message: str, **kwargs) -> None:
        """Log exception with traceback."""
        self.logger.exception(self._format_message(message, **kwargs))


# =============================================================================
# Metrics Collector
# =============================================================================

class MetricsCollector:
    """
    In-memory metrics collection for monitoring and debugging.

    Collects:
        - Counters (transactions classified, signals emitted, detector failures)
        - Gauges (current values such as profile size)
        - Histograms (timing distributions)

    Note: In production, replace with a Prometheus/StatsD client.
    """

    MAX_TIMINGS = 1000

    def __init__(self):
        """Initialize metrics storage."""
        self.counters: Dict[str, int] = defaultdict(int)
        self.gauges: Dict[str, float] = {}
        self.timings: Dict[str, list] = defaultdict(list)
        self._lock = threading.Lock()
        self._start_time = datetime.now(timezone.utc)

    def increment(self, name: str, value: int = 1, tags: Dict[str, str] = None) -> None:
        """Increment a counter."""
        key = self._make_key(name, tags)
        with self._lock:
            self.counters[key] += value

    def gauge(self, name: str, value: float, tags: Dict[str, str] = None) -> None:
        """Set a gauge value."""
        key = self._make_key(name, tags)
        with self._lock:
            self.gauges[key] = value

    def timing(self, name: str, duration_ms: float, tags: Dict[str, str] = None) -> None:
        """Record a timing measurement."""
        key = self._make_key(name, tags)
        with self._lock:
            self.timings[key].append(duration_ms)
            if len(self.timings[key]) > self.MAX_TIMINGS:
                self.timings[key] = self.timings[key][-self.MAX_TIMINGS:]

    def reset(self) -> None:
        """Drop every recorded value."""
        with self._lock:
            self.counters.clear()
            self.gauges.clear()
            self.timings.clear()

    def _make_key(self, name: str, tags: Optional[Dict[str, str]] = None) -> str:
        """Create metric key with optional tags."""
        if tags:
            tag_str = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
            return f"{name}:{tag_str}"
        return name

    def get_summary(self) -> Dict[str, Any]:
        """Get summary of all metrics."""
        with self._lock:
            counters = dict(self.counters)
            gauges = dict(self.gauges)
            timings = {k: list(v) for k, v in self.timings.items()}

        summary = {
            "uptime_seconds": (datetime.now(timezone.utc) - self._start_time).total_seconds(),
            "counters": counters,
            "gauges": gauges,
            "timings": {},
        }

        for name, values in timings.items():
            if values:
                ordered = sorted(values)
                summary["timings"][name] = {
                    "count": len(values),
                    "avg_ms": sum(values) / len(values),
                    "min_ms": ordered[0],
                    "max_ms": ordered[-1],
                    "p50_ms": ordered[len(values) // 2],
                    "p95_ms": ordered[int(len(values) * 0.95)] if len(values) >= 20 else None,
                }

        return summary


# =============================================================================
# Timing Decorators
# =============================================================================

def timed(name: str = None):
    """
    Decorator to time function execution and record metrics.

    Args:
        name: Metric name (defaults to function name).

    Example:
        @timed("profile_build")
        def build_profile(history):
            ...
    """
    def decorator(func: Callable) -> Callable:
        metric_name = name or func.__name__

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
                metrics.increment(f"{metric_name}.success")
                return result
            except Exception:
                metrics.increment(f"{metric_name}.error")
                raise
            finally:
                duration_ms = (time.perf_counter() - start) * 1000
                metrics.timing(metric_name, duration_ms)
                logger.debug(f"{metric_name} completed", duration_ms=f"{duration_ms:.2f}")

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
                metrics.increment(f"{metric_name}.success")
                return result
            except Exception:
                metrics.increment(f"{metric_name}.error")
                raise
            finally:
                duration_ms = (time.perf_counter() - start) * 1000
                metrics.timing(metric_name, duration_ms)
                logger.debug(f"{metric_name} completed", duration_ms=f"{duration_ms:.2f}")

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


@contextmanager
def timed_block(name: str):
    """
    Context manager for timing code blocks.

    Example:
        with timed_block("detectors.fan_out"):
            run_detectors()
    """
    start = time.perf_counter()
    try:
        yield
        metrics.increment(f"{name}.success")
    except Exception:
        metrics.increment(f"{name}.error")
        raise
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        metrics.timing(name, duration_ms)


# =============================================================================
# Global Instances
# =============================================================================

logger = StructuredLogger()

metrics = MetricsCollector()


# =============================================================================
# Convenience Functions
# =============================================================================

def log_classification_batch(count: int, other_count: int) -> None:
    """Log completion of a classification batch."""
    logger.info("Classification completed", transactions=count, unclassified=other_count)
    metrics.increment("classification.transactions", count)
    metrics.increment("classification.other", other_count)


def log_detector_failure(detector: str, error: Exception) -> None:
    """Log a detector that broke its contract; its output is discarded."""
    logger.error("Detector failed, output ignored", detector=detector, error=repr(error))
    metrics.increment("detector.failures", tags={"detector": detector})


def log_signal_emitted(code: str, score: float) -> None:
    """Log a single signal produced by a detector."""
    logger.debug("Signal emitted", code=code, score=f"{score:.1f}")
    metrics.increment("signals.emitted", tags={"code": code})


def log_embedding_call(index: int, total: int, ok: bool, duration_ms: float = 0.0) -> None:
    """Log an embedding provider call."""
    if ok:
        logger.debug("Embedding generated", item=f"{index + 1}/{total}",
                     duration_ms=f"{duration_ms:.2f}")
        metrics.increment("embeddings.success")
        metrics.timing("embeddings.latency", duration_ms)
    else:
        logger.warning("Embedding failed", item=f"{index + 1}/{total}")
        metrics.increment("embeddings.error")
