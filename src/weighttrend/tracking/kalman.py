"""Scalar Kalman filter over latent body weight.

The state is a single scalar: the "true" weight hidden under daily scale
noise. Between weigh-ins it drifts linearly and picks up process noise:

    x_t = x_{t-1} + drift × Δt + process_noise
    z_t = x_t + measurement_noise

Each weigh-in z_t pulls the estimate toward the scale reading in proportion
to how uncertain the estimate is relative to the scale.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

# 95% confidence interval for the latent true-weight estimate.
CONFIDENCE_Z_SCORE = 1.96

# Posterior variance floor; keeps the gain from collapsing to exactly zero.
MIN_POSTERIOR_VARIANCE = 1e-8

# Uncertainty and drift are propagated across at most this many days.
MAX_PREDICTION_GAP_DAYS = 14.0


@dataclass
class TrendFilter:
    """
    Scalar Kalman filter for latent weight estimation.

    Attributes:
        mean: Current latent weight estimate (kg)
        variance: Current uncertainty (kg²)
        drift_per_day: Deterministic daily change applied in predict (kg/day)
        process_variance: Variance added per day of prediction (kg²/day)
        measurement_variance: Scale noise variance (kg²)
    """

    mean: float
    variance: float
    drift_per_day: float = 0.0
    process_variance: float = 0.01
    measurement_variance: float = 0.81

    @classmethod
    def start(
        cls,
        first_weight: float,
        drift_per_day: float,
        process_variance: float,
        measurement_variance: float,
    ) -> "TrendFilter":
        """Seed the filter at the first weigh-in with scale-level uncertainty."""
        return cls(
            mean=first_weight,
            variance=measurement_variance,
            drift_per_day=drift_per_day,
            process_variance=process_variance,
            measurement_variance=measurement_variance,
        )

    def predict(self, days: float) -> None:
        """
        Predict step: apply drift and grow uncertainty.

        Args:
            days: Days since the previous weigh-in, capped at
                  MAX_PREDICTION_GAP_DAYS
        """
        days = min(days, MAX_PREDICTION_GAP_DAYS)
        self.mean += self.drift_per_day * days
        self.variance += self.process_variance * days

    def update(self, observed_weight: float) -> float:
        """
        Update step: incorporate one weigh-in.

        Returns:
            Innovation (observed - predicted mean)
        """
        residual = observed_weight - self.mean
        innovation_variance = self.variance + self.measurement_variance
        kalman_gain = self.variance / innovation_variance if innovation_variance > 0 else 0.0

        self.mean += kalman_gain * residual
        self.variance = max(MIN_POSTERIOR_VARIANCE, (1 - kalman_gain) * self.variance)

        return residual

    def predict_and_update(self, observed_weight: float, days: float) -> float:
        self.predict(days)
        return self.update(observed_weight)

    @property
    def std(self) -> float:
        return math.sqrt(self.variance)

    def interval(self) -> tuple[float, float]:
        """Return the (lower, upper) 95% interval around the current mean."""
        half_width = CONFIDENCE_Z_SCORE * self.std
        return self.mean - half_width, self.mean + half_width
