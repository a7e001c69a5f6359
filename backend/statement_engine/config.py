"""
Module: config.py
Description: Detector thresholds, engine configuration and environment settings.

Thresholds and EngineConfig are pydantic models so they can be loaded from JSON
or a dict. Semantic checks (ordering of z-score tiers, positive limits, ...) are
collected by `problems()` and raised together as a ConfigError by `check()`;
the engine calls `check()` at construction time.

Author: Statement Engine Team
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class ConfigError(ValueError):
    """Invalid thresholds or engine configuration."""

    def __init__(self, problems: list):
        self.problems = list(problems)
        super().__init__("Invalid configuration: " + "; ".join(self.problems))


# =============================================================================
# Thresholds
# =============================================================================

class Thresholds(BaseModel):
    """User-tunable detection thresholds."""
    large_amount_threshold: float = 50000.0
    very_large_amount_threshold: float = 100000.0
    z_score_critical: float = 4.5
    z_score_high: float = 3.5
    z_score_medium: float = 3.0
    z_score_low: float = 2.5
    iqr_multiplier: float = 1.5
    duplicate_time_window_days: float = 3.0
    duplicate_amount_tolerance: float = 0.01
    round_amount_min: float = 50000.0
    unknown_merchant_threshold: float = 20000.0
    new_merchant_multiplier: float = 5.0

    @classmethod
    def default(cls) -> "Thresholds":
        return cls()

    @classmethod
    def conservative(cls) -> "Thresholds":
        """Fewer, higher-certainty alerts."""
        return cls(large_amount_threshold=75000.0, very_large_amount_threshold=150000.0)

    @classmethod
    def aggressive(cls) -> "Thresholds":
        """More alerts, looser tiers."""
        return cls(
            large_amount_threshold=30000.0,
            very_large_amount_threshold=75000.0,
            z_score_critical=3.5,
            z_score_high=2.5,
            z_score_medium=2.0,
            z_score_low=1.5,
        )

    @classmethod
    def preset(cls, name: str) -> "Thresholds":
        presets = {
            "default": cls.default,
            "conservative": cls.conservative,
            "aggressive": cls.aggressive,
        }
        key = (name or "default").strip().lower()
        if key not in presets:
            raise ConfigError([f"unknown threshold preset {name!r}"])
        return presets[key]()

    def problems(self) -> list:
        found = []
        for name, value in self.model_dump().items():
            if value <= 0:
                found.append(f"{name} must be positive")
        if not (self.z_score_critical >= self.z_score_high >= self.z_score_medium >= self.z_score_low):
            found.append("z-score tiers must satisfy critical >= high >= medium >= low")
        if self.very_large_amount_threshold < self.large_amount_threshold:
            found.append("very_large_amount_threshold must be >= large_amount_threshold")
        if not 0 < self.duplicate_amount_tolerance < 1:
            found.append("duplicate_amount_tolerance must be in (0, 1)")
        return found

    def check(self) -> "Thresholds":
        found = self.problems()
        if found:
            raise ConfigError(found)
        return self


# =============================================================================
# Per-detector configuration
# =============================================================================

@dataclass(frozen=True)
class RuleConfig:
    min_amount: float = 1000.0
    large_amount: float = 50000.0
    very_large_amount: float = 100000.0
    round_amount_min: float = 25000.0
    unknown_merchant_threshold: float = 10000.0

    @classmethod
    def from_thresholds(cls, t: Thresholds) -> "RuleConfig":
        return cls(
            large_amount=t.large_amount_threshold,
            very_large_amount=t.very_large_amount_threshold,
            round_amount_min=t.round_amount_min,
            unknown_merchant_threshold=t.unknown_merchant_threshold,
        )


@dataclass(frozen=True)
class StatisticalConfig:
    min_amount: float = 1000.0
    min_category_count: int = 5
    z_score_critical: float = 4.5
    z_score_high: float = 3.5
    z_score_medium: float = 3.0
    z_score_low: float = 2.5
    iqr_multiplier: float = 1.5
    new_merchant_multiplier: float = 3.0
    rare_merchant_multiplier: float = 2.0
    spike_ratio: float = 2.0
    spike_window_days: int = 3

    @classmethod
    def from_thresholds(cls, t: Thresholds) -> "StatisticalConfig":
        return cls(
            z_score_critical=t.z_score_critical,
            z_score_high=t.z_score_high,
            z_score_medium=t.z_score_medium,
            z_score_low=t.z_score_low,
            iqr_multiplier=t.iqr_multiplier,
            new_merchant_multiplier=t.new_merchant_multiplier,
        )


@dataclass(frozen=True)
class DuplicateConfig:
    window_days: float = 3.0
    amount_tolerance: float = 0.01
    lookback: int = 50

    @classmethod
    def from_thresholds(cls, t: Thresholds, lookback: int = 50) -> "DuplicateConfig":
        return cls(
            window_days=t.duplicate_time_window_days,
            amount_tolerance=t.duplicate_amount_tolerance,
            lookback=lookback,
        )


@dataclass(frozen=True)
class PatternConfig:
    large_transfer_min: float = 30000.0
    transfer_window_days: int = 7
    transfer_cumulative: float = 100000.0
    transfer_cumulative_high: float = 200000.0
    recurring_min: float = 10000.0
    recurring_high: float = 50000.0
    recurring_tolerance: float = 0.10
    large_bill: float = 50000.0
    very_large_bill: float = 100000.0


@dataclass(frozen=True)
class IncomeConfig:
    min_day_of_month: int = 15
    disruption_ratio: float = 0.70
    severe_ratio: float = 0.10


# =============================================================================
# Engine configuration
# =============================================================================

class EngineConfig(BaseModel):
    """Detector toggles and engine limits."""
    enable_rule: bool = True
    enable_statistical: bool = True
    enable_ml: bool = False
    enable_duplicate: bool = True
    enable_pattern: bool = True
    enable_income: bool = True
    history_size: int = Field(default=100, description="Recent transactions handed to detectors")
    duplicate_lookback: int = 50
    max_workers: Optional[int] = None
    thresholds: Optional[Thresholds] = None

    def problems(self) -> list:
        found = []
        if self.history_size <= 0:
            found.append("history_size must be positive")
        if self.duplicate_lookback <= 0:
            found.append("duplicate_lookback must be positive")
        if self.max_workers is not None and self.max_workers <= 0:
            found.append("max_workers must be positive")
        if self.thresholds is not None:
            found.extend(self.thresholds.problems())
        return found

    def check(self) -> "EngineConfig":
        found = self.problems()
        if found:
            raise ConfigError(found)
        return self


# =============================================================================
# Environment
# =============================================================================

@dataclass(frozen=True)
class Settings:
    """Process settings for the embedding provider and the chunk store."""
    ollama_url: str = "http://localhost:11434"
    embedding_model: str = "llama3"
    embedding_dims: int = 4096
    postgres_dsn: str = ""
    vector_table: str = "statement_chunks"
    threshold_preset: str = "default"

    @classmethod
    def from_env(cls) -> "Settings":
        dims = os.getenv("EMBEDDING_DIMS", "4096")
        try:
            embedding_dims = int(dims)
        except ValueError:
            raise ConfigError([f"EMBEDDING_DIMS must be an integer, got {dims!r}"])
        return cls(
            ollama_url=os.getenv("OLLAMA_URL", "http://localhost:11434").rstrip("/"),
            embedding_model=os.getenv("OLLAMA_EMBEDDING_MODEL", "llama3"),
            embedding_dims=embedding_dims,
            postgres_dsn=os.getenv("POSTGRES_DSN", ""),
            vector_table=os.getenv("VECTOR_TABLE", "statement_chunks"),
            threshold_preset=os.getenv("ANOMALY_THRESHOLD_PRESET", "default"),
        )

    def thresholds(self) -> Thresholds:
        return Thresholds.preset(self.threshold_preset)
