"""
Module: profile_builder.py
Description: Builds the behavioural baseline (UserProfile) from classified history.

Only expense rows (withdrawal > 0) contribute. Rows whose date cannot be parsed
are skipped; if every row is rejected the result is an empty profile, which the
detectors accept and early-return on.

Statistics conventions:
    - standard deviation is the population value (ddof=0)
    - percentile p is the element at index floor(p * n) of the sorted amounts
    - Q1 / Q3 are the elements at n // 4 and 3n // 4
    - day-of-week buckets run Sunday=0 .. Saturday=6

Author: Statement Engine Team
"""

from typing import Iterable

import numpy as np
import pandas as pd

from statement_engine.anomaly_types import CategoryProfile, UserProfile
from statement_engine.dates import try_parse_date
from statement_engine.models import Category, ClassifiedTransaction
from statement_engine.observability import logger, metrics, timed


def percentile_at(sorted_values: np.ndarray, p: float) -> float:
    """Index-floor percentile over an already sorted array."""
    if len(sorted_values) == 0:
        return 0.0
    idx = min(int(len(sorted_values) * p), len(sorted_values) - 1)
    return float(sorted_values[idx])


def summarize_amounts(amounts) -> dict:
    """Moments, median and percentiles of a set of amounts."""
    values = np.sort(np.asarray(amounts, dtype=float))
    n = len(values)
    if n == 0:
        return {"mean": 0.0, "std_dev": 0.0, "median": 0.0, "min": 0.0, "max": 0.0,
                "p95": 0.0, "p99": 0.0, "q1": 0.0, "q3": 0.0}
    return {
        "mean": float(values.mean()),
        "std_dev": float(values.std(ddof=0)),
        "median": float(np.median(values)),
        "min": float(values[0]),
        "max": float(values[-1]),
        "p95": percentile_at(values, 0.95),
        "p99": percentile_at(values, 0.99),
        "q1": float(values[min(n // 4, n - 1)]),
        "q3": float(values[min(3 * n // 4, n - 1)]),
    }


class ProfileBuilder:
    """Turn classified history into a read-only UserProfile."""

    @timed("profile.build")
    def build(self, history: Iterable[ClassifiedTransaction]) -> UserProfile:
        frame = self._expense_frame(history)
        if frame.empty:
            logger.debug("Profile build produced an empty profile")
            return UserProfile()

        overall = summarize_amounts(frame["amount"])
        profile = UserProfile(
            mean=overall["mean"],
            std_dev=overall["std_dev"],
            median=overall["median"],
            min=overall["min"],
            max=overall["max"],
            p95=overall["p95"],
            p99=overall["p99"],
        )

        profile.total_transactions = int(len(frame))
        profile.total_spend = float(frame["amount"].sum())

        span = (frame["timestamp"].max() - frame["timestamp"].min()).days
        days = max(abs(span), 1) if len(frame) >= 2 else 1
        profile.transaction_days = days
        profile.avg_daily_spend = profile.total_spend / days
        profile.avg_weekly_spend = profile.avg_daily_spend * 7
        profile.avg_monthly_spend = profile.avg_daily_spend * 30
        profile.avg_txn_per_day = profile.total_transactions / days

        merchants = frame[frame["merchant"] != ""]
        profile.merchant_frequency = {
            name: int(count) for name, count in merchants["merchant"].value_counts(sort=False).items()
        }
        profile.merchant_amounts = {
            name: [float(a) for a in group["amount"]] for name, group in merchants.groupby("merchant", sort=True)
        }

        profile.hour_distribution = {
            int(hour): int(count) for hour, count in frame["timestamp"].dt.hour.value_counts().sort_index().items()
        }
        day_of_week = (frame["timestamp"].dt.dayofweek + 1) % 7
        profile.day_of_week_distribution = {
            int(day): int(count) for day, count in day_of_week.value_counts().sort_index().items()
        }

        for category, group in frame.groupby("category", sort=True):
            stats = summarize_amounts(group["amount"])
            profile.category_profiles[category] = CategoryProfile(
                category=category,
                mean=stats["mean"],
                median=stats["median"],
                std_dev=stats["std_dev"],
                q1=stats["q1"],
                q3=stats["q3"],
                iqr=stats["q3"] - stats["q1"],
                p95=stats["p95"],
                p99=stats["p99"],
                count=int(len(group)),
            )

        metrics.gauge("profile.transactions", profile.total_transactions)
        return profile

    @staticmethod
    def _expense_frame(history: Iterable[ClassifiedTransaction]) -> pd.DataFrame:
        rows = []
        skipped = 0
        for txn in history:
            if txn.withdrawal <= 0:
                continue
            timestamp = try_parse_date(txn.date)
            if timestamp is None:
                skipped += 1
                continue
            merchant = txn.merchant.strip().upper()
            rows.append({
                "amount": float(txn.withdrawal),
                "category": txn.category or Category.OTHER.value,
                "merchant": "" if merchant == "UNKNOWN" else merchant,
                "timestamp": timestamp,
            })
        if skipped:
            logger.warning("Skipped history rows with unparseable dates", skipped=skipped)
        if not rows:
            return pd.DataFrame(columns=["amount", "category", "merchant", "timestamp"])
        frame = pd.DataFrame(rows)
        frame["timestamp"] = pd.to_datetime(frame["timestamp"])
        return frame
