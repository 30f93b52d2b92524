"""Data models for weight observations and trend estimates."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional

from weighttrend.tracking.units import grams_to_kilograms


class Volatility(Enum):
    """Volatility classification of a trend's recent uncertainty."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class Observation:
    """A single weigh-in passed to the estimator (weight in kg)."""

    date: date
    weight: float


@dataclass(frozen=True)
class TrendPoint:
    """Estimated latent weight for one observation."""

    date: date
    observed_weight: float
    trend_weight: float
    trend_std: float
    lower95: float
    upper95: float


@dataclass(frozen=True)
class TrendParams:
    """Model parameters used for one trend computation."""

    drift_per_day: float
    process_variance: float
    measurement_variance: float


@dataclass(frozen=True)
class TrendResult:
    """Complete output of the trend estimator."""

    points: list[TrendPoint] = field(default_factory=list)
    weekly_rate: float = 0.0
    volatility: Volatility = Volatility.LOW
    params: Optional[TrendParams] = None


@dataclass
class ObservationRecord:
    """A stored weigh-in row."""

    observation_id: Optional[int]
    user_id: int
    date: date
    weight_grams: int

    @property
    def weight_kg(self) -> float:
        return grams_to_kilograms(self.weight_grams)


@dataclass
class TrendRow:
    """Materialized trend values for one stored observation."""

    observation_id: int
    user_id: int
    date: date
    trend_weight_grams: int
    trend_ci_lower_grams: int
    trend_ci_upper_grams: int
    trend_std_grams: int
    model_version: int
    computed_at: Optional[datetime] = None

    @property
    def trend_weight(self) -> float:
        return grams_to_kilograms(self.trend_weight_grams)

    @property
    def trend_ci_lower(self) -> float:
        return grams_to_kilograms(self.trend_ci_lower_grams)

    @property
    def trend_ci_upper(self) -> float:
        return grams_to_kilograms(self.trend_ci_upper_grams)

    @property
    def trend_std(self) -> float:
        return grams_to_kilograms(self.trend_std_grams)


@dataclass
class TrendHistoryEntry:
    """An observation joined with its materialized trend (if any)."""

    observation_id: int
    date: date
    weight_grams: int
    trend: Optional[TrendRow] = None

    @property
    def weight_kg(self) -> float:
        return grams_to_kilograms(self.weight_grams)
