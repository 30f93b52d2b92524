"""Gap-aware exponentially weighted moving average.

The trend estimator uses this EWMA as a pre-smoother: its residuals give a
robust read on scale noise, and its increments give a read on how fast the
underlying weight really moves.

For irregular logging the smoothing factor is derived from a continuous
time constant rather than a fixed per-sample value:
    α = 1 - exp(-Δt / τ)
so a measurement after a long gap is trusted more than one taken the day
after the previous weigh-in. With τ = 7 days a daily measurement gets
α ≈ 0.133.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

# Baseline smoother horizon used for robust residual estimation.
DEFAULT_TIME_CONSTANT_DAYS = 7.0


def time_constant_alpha(
    days_elapsed: float,
    time_constant_days: float = DEFAULT_TIME_CONSTANT_DAYS,
) -> float:
    """
    Smoothing factor for a measurement taken after a gap.

    Args:
        days_elapsed: Days since the previous measurement. Non-positive or
                      non-finite gaps are treated as one day.
        time_constant_days: EWMA time constant τ in days

    Returns:
        α in (0, 1]

    Example:
        >>> round(time_constant_alpha(1), 3)
        0.133
        >>> round(time_constant_alpha(7), 3)
        0.632
    """
    if not math.isfinite(days_elapsed) or days_elapsed <= 0:
        days_elapsed = 1.0
    if time_constant_days <= 0:
        return 1.0
    return 1 - math.exp(-days_elapsed / time_constant_days)


def update_ewma(
    previous: float,
    value: float,
    days_elapsed: float = 1.0,
    time_constant_days: float = DEFAULT_TIME_CONSTANT_DAYS,
) -> float:
    """
    Advance the EWMA by one measurement.

        S_n = S_{n-1} + α × (W_n - S_{n-1})
    """
    alpha = time_constant_alpha(days_elapsed, time_constant_days)
    return previous + alpha * (value - previous)


def calculate_ewma(
    values: Sequence[float],
    gaps: Sequence[float],
    time_constant_days: float = DEFAULT_TIME_CONSTANT_DAYS,
) -> list[float]:
    """
    Calculate the EWMA for a series of measurements.

    The first value seeds the average.

    Args:
        values: Measurements in chronological order
        gaps: Days elapsed before each measurement; gaps[i] is the gap
              between values[i - 1] and values[i]. gaps[0] is ignored.
        time_constant_days: EWMA time constant τ in days

    Returns:
        List of smoothed values, same length as values
    """
    if not values:
        return []

    smoothed = [values[0]]
    for i in range(1, len(values)):
        smoothed.append(update_ewma(smoothed[-1], values[i], gaps[i], time_constant_days))
    return smoothed
