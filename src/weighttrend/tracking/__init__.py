"""Weight trend estimation and materialization.

This module turns noisy daily weigh-ins into a latent "true weight" trend
with a 95% confidence band, and keeps per-weigh-in trend rows in storage
consistent with the current model version.

Key components:
- Adaptive scalar Kalman filter (drift and noise estimated from the data)
- Gap-aware EWMA pre-smoother for robust noise estimation
- Materializer with recompute, read-time freshness guard and best-effort
  write-path refresh
"""

from __future__ import annotations

from weighttrend.tracking.estimator import compute_trend
from weighttrend.tracking.materializer import (
    WEIGHT_TREND_MODEL_VERSION,
    RecomputeResult,
    TrendMaterializer,
)
from weighttrend.tracking.models import (
    Observation,
    ObservationRecord,
    TrendParams,
    TrendPoint,
    TrendResult,
    TrendRow,
    Volatility,
)
from weighttrend.tracking.store import SQLiteTrendStore, TrendStore
from weighttrend.tracking.units import WeightUnit

__all__ = [
    "WEIGHT_TREND_MODEL_VERSION",
    "Observation",
    "ObservationRecord",
    "RecomputeResult",
    "SQLiteTrendStore",
    "TrendMaterializer",
    "TrendParams",
    "TrendPoint",
    "TrendResult",
    "TrendRow",
    "TrendStore",
    "Volatility",
    "WeightUnit",
    "compute_trend",
]
