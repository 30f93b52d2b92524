"""Adaptive weight trend estimation.

Turns a user's raw weigh-ins into a latent "true weight" trajectory with a
95% confidence band. A scalar Kalman filter does the tracking, but its
parameters are estimated from the user's own data rather than fixed:

- Drift: recency-weighted least-squares slope of weight over time
  (30-day half-life), so a new diet phase shows up within weeks instead of
  being averaged away by months of older history.
- Measurement noise: robust spread (MAD × 1.4826) of the raw weigh-ins
  around a 7-day EWMA.
- Process noise: robust spread of the EWMA's day-to-day increments after
  removing drift, capped at 35% of the measurement variance so the trend
  does not chase scale noise.

The estimator is pure: it never touches storage and never raises on bad
numbers. Non-finite weights and invalid dates are dropped; too little data
degrades to per-unit defaults.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Optional, Union

import numpy as np

from weighttrend.tracking.ema import DEFAULT_TIME_CONSTANT_DAYS, calculate_ewma
from weighttrend.tracking.kalman import TrendFilter
from weighttrend.tracking.models import (
    Observation,
    TrendParams,
    TrendPoint,
    TrendResult,
    Volatility,
)
from weighttrend.tracking.units import WeightUnit

# Recent window for user-facing weekly-rate and volatility summaries.
RECENT_WINDOW_POINTS = 14

# Keep the trend from overfitting day-to-day scale noise.
MAX_PROCESS_TO_MEASUREMENT_VARIANCE_RATIO = 0.35

DRIFT_HALF_LIFE_DAYS = 30.0
MAD_TO_STD = 1.4826
MIN_OBSERVATIONS_FOR_VARIANCE = 3


@dataclass(frozen=True)
class UnitDefaults:
    """Per-unit fallback values, clamps and volatility thresholds (std units)."""

    measurement_std: float
    process_std: float
    min_measurement_std: float
    max_measurement_std: float
    min_process_std: float
    max_process_std: float
    low_volatility_std: float
    medium_volatility_std: float


UNIT_DEFAULTS: dict[WeightUnit, UnitDefaults] = {
    WeightUnit.KG: UnitDefaults(
        measurement_std=0.9,
        process_std=0.1,
        min_measurement_std=0.25,
        max_measurement_std=3.5,
        min_process_std=0.02,
        max_process_std=0.6,
        low_volatility_std=0.5,
        medium_volatility_std=1.2,
    ),
    WeightUnit.LB: UnitDefaults(
        measurement_std=2.0,
        process_std=0.22,
        min_measurement_std=0.5,
        max_measurement_std=8.0,
        min_process_std=0.05,
        max_process_std=1.3,
        low_volatility_std=1.1,
        medium_volatility_std=2.6,
    ),
}


def default_params(unit: WeightUnit = WeightUnit.KG) -> TrendParams:
    """Parameters used when there is not enough data to estimate any."""
    defaults = UNIT_DEFAULTS[unit]
    return TrendParams(
        drift_per_day=0.0,
        process_variance=defaults.process_std**2,
        measurement_variance=defaults.measurement_std**2,
    )


def compute_trend(
    observations: Iterable[Union[Observation, tuple[Any, Any]]],
    unit: Union[WeightUnit, str] = WeightUnit.KG,
) -> TrendResult:
    """
    Estimate the latent weight trend for one user's weigh-ins.

    Args:
        observations: Observations or (date, weight) tuples in any order.
            Entries with a non-finite weight or a date that is not a
            date/datetime are dropped.
        unit: Unit the weights are expressed in; selects the noise
            defaults, clamps and volatility thresholds.

    Returns:
        TrendResult with one TrendPoint per valid observation, sorted by date

    Example:
        >>> from datetime import date
        >>> result = compute_trend([Observation(date(2025, 1, 1), 80.0)])
        >>> result.points[0].trend_weight
        80.0
    """
    unit = WeightUnit.parse(unit)
    valid = prepare_observations(observations)

    if not valid:
        return TrendResult(
            points=[],
            weekly_rate=0.0,
            volatility=Volatility.LOW,
            params=default_params(unit),
        )

    drift_per_day = estimate_drift_per_day(valid)
    process_variance, measurement_variance = estimate_variances(valid, drift_per_day, unit)
    params = TrendParams(
        drift_per_day=drift_per_day,
        process_variance=process_variance,
        measurement_variance=measurement_variance,
    )

    points = run_kalman_filter(valid, params)

    return TrendResult(
        points=points,
        weekly_rate=recent_weekly_rate(points),
        volatility=classify_volatility([point.trend_std for point in points], unit),
        params=params,
    )


def prepare_observations(
    observations: Iterable[Union[Observation, tuple[Any, Any]]],
) -> list[Observation]:
    """Drop invalid entries and return the rest sorted by date (stable)."""
    valid: list[Observation] = []
    for entry in observations:
        if isinstance(entry, Observation):
            raw_date, raw_weight = entry.date, entry.weight
        elif isinstance(entry, tuple) and len(entry) == 2:
            raw_date, raw_weight = entry
        else:
            continue

        obs_date = _as_calendar_day(raw_date)
        weight = _as_finite_float(raw_weight)
        if obs_date is None or weight is None:
            continue
        valid.append(Observation(date=obs_date, weight=weight))

    return sorted(valid, key=lambda observation: observation.date)


def run_kalman_filter(
    observations: Sequence[Observation], params: TrendParams
) -> list[TrendPoint]:
    """Run the scalar Kalman filter and emit one TrendPoint per observation."""
    if not observations:
        return []

    trend_filter = TrendFilter.start(
        first_weight=observations[0].weight,
        drift_per_day=params.drift_per_day,
        process_variance=params.process_variance,
        measurement_variance=params.measurement_variance,
    )

    points: list[TrendPoint] = []
    for i, observation in enumerate(observations):
        if i == 0:
            # Zero residual, so the trend anchors at the raw weight.
            trend_filter.update(observation.weight)
        else:
            trend_filter.predict_and_update(
                observation.weight, gap_days(observations[i - 1].date, observation.date)
            )

        lower95, upper95 = trend_filter.interval()
        points.append(
            TrendPoint(
                date=observation.date,
                observed_weight=observation.weight,
                trend_weight=trend_filter.mean,
                trend_std=trend_filter.std,
                lower95=lower95,
                upper95=upper95,
            )
        )

    return points


def estimate_drift_per_day(observations: Sequence[Observation]) -> float:
    """
    Estimate daily drift with a recency-weighted least-squares slope.

    Each observation is weighted by 0.5 ** (age / 30 days), with age
    measured from the most recent observation. Falls back to the unweighted
    slope when the weighting degenerates, and to 0 when that does too.
    """
    if len(observations) < 2:
        return 0.0

    start = observations[0].date
    offsets = [float((observation.date - start).days) for observation in observations]
    weights_kg = [observation.weight for observation in observations]

    latest = offsets[-1]
    recency = [0.5 ** ((latest - offset) / DRIFT_HALF_LIFE_DAYS) for offset in offsets]

    slope = least_squares_slope(offsets, weights_kg, recency)
    if slope is None:
        slope = least_squares_slope(offsets, weights_kg)
    return slope if slope is not None else 0.0


def estimate_variances(
    observations: Sequence[Observation],
    drift_per_day: float,
    unit: WeightUnit = WeightUnit.KG,
) -> tuple[float, float]:
    """
    Estimate (process_variance, measurement_variance) from the data.

    Uses residuals around a gap-aware EWMA, summarised with a MAD-based
    robust std so single outlier weigh-ins do not inflate the noise model.
    """
    defaults = UNIT_DEFAULTS[unit]
    if len(observations) < MIN_OBSERVATIONS_FOR_VARIANCE:
        return defaults.process_std**2, defaults.measurement_std**2

    gaps = [1.0] + [
        gap_days(observations[i - 1].date, observations[i].date)
        for i in range(1, len(observations))
    ]
    values = [observation.weight for observation in observations]
    ewma = calculate_ewma(values, gaps, DEFAULT_TIME_CONSTANT_DAYS)

    measurement_residuals = [value - smoothed for value, smoothed in zip(values, ewma)]
    # Smoothed increments reflect underlying drift, not short-term water noise.
    process_residuals = [
        (ewma[i] - ewma[i - 1] - drift_per_day * gaps[i]) / math.sqrt(gaps[i])
        for i in range(1, len(observations))
    ]

    measurement_std = robust_std(measurement_residuals)
    process_std = robust_std(process_residuals)

    measurement_std = _clamp(
        measurement_std if measurement_std is not None else defaults.measurement_std,
        defaults.min_measurement_std,
        defaults.max_measurement_std,
    )
    process_std = _clamp(
        process_std if process_std is not None else defaults.process_std,
        defaults.min_process_std,
        defaults.max_process_std,
    )

    measurement_variance = measurement_std**2
    process_variance = min(
        process_std**2,
        measurement_variance * MAX_PROCESS_TO_MEASUREMENT_VARIANCE_RATIO,
    )
    return process_variance, measurement_variance


def recent_weekly_rate(points: Sequence[TrendPoint]) -> float:
    """Average trend change per week across the recent window of points."""
    if len(points) < 2:
        return 0.0

    start = points[max(0, len(points) - RECENT_WINDOW_POINTS)]
    end = points[-1]
    delta_days = max(1, (end.date - start.date).days)
    per_day = (end.trend_weight - start.trend_weight) / delta_days

    if not math.isfinite(per_day):
        return 0.0
    return per_day * 7


def classify_volatility(
    trend_stds: Sequence[float], unit: WeightUnit = WeightUnit.KG
) -> Volatility:
    """Classify the median trend std over the recent window."""
    if not trend_stds:
        return Volatility.LOW

    defaults = UNIT_DEFAULTS[unit]
    median_std = median(trend_stds[-RECENT_WINDOW_POINTS:])
    if median_std is None:
        median_std = 0.0

    if median_std <= defaults.low_volatility_std:
        return Volatility.LOW
    if median_std <= defaults.medium_volatility_std:
        return Volatility.MEDIUM
    return Volatility.HIGH


def least_squares_slope(
    xs: Sequence[float],
    ys: Sequence[float],
    weights: Optional[Sequence[float]] = None,
) -> Optional[float]:
    """
    Weighted least-squares slope of ys against xs.

    Returns None when the fit is degenerate (fewer than two points, zero
    total weight, no spread in xs, or non-finite intermediates).
    """
    if len(xs) < 2 or len(xs) != len(ys):
        return None

    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    w = np.ones_like(x) if weights is None else np.asarray(weights, dtype=float)

    total_weight = float(w.sum())
    if not math.isfinite(total_weight) or total_weight <= 0:
        return None

    x_mean = float((w * x).sum()) / total_weight
    y_mean = float((w * y).sum()) / total_weight
    x_centered = x - x_mean

    numerator = float((w * x_centered * (y - y_mean)).sum())
    denominator = float((w * x_centered * x_centered).sum())
    if not math.isfinite(numerator) or not math.isfinite(denominator) or denominator <= 0:
        return None

    slope = numerator / denominator
    return slope if math.isfinite(slope) else None


def robust_std(values: Sequence[float]) -> Optional[float]:
    """Median absolute deviation scaled to a normal std (× 1.4826)."""
    finite = np.asarray([value for value in values if math.isfinite(value)], dtype=float)
    if finite.size < 2:
        return None

    center = np.median(finite)
    mad = np.median(np.abs(finite - center))
    return MAD_TO_STD * float(mad)


def median(values: Sequence[float]) -> Optional[float]:
    finite = [value for value in values if math.isfinite(value)]
    if not finite:
        return None
    return float(np.median(finite))


def gap_days(previous: date, current: date) -> float:
    """Days between two observations; duplicates/out-of-order count as one day."""
    diff = (current - previous).days
    if diff <= 0:
        return 1.0
    return float(diff)


def _as_calendar_day(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    return None


def _as_finite_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    return numeric if math.isfinite(numeric) else None


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
