"""Tests for the gap-aware EWMA pre-smoother."""

from __future__ import annotations

import math

import pytest

from weighttrend.tracking.ema import (
    DEFAULT_TIME_CONSTANT_DAYS,
    calculate_ewma,
    time_constant_alpha,
    update_ewma,
)


class TestTimeConstantAlpha:
    """Tests for time_constant_alpha function."""

    def test_daily_alpha(self) -> None:
        """A one-day gap with τ = 7 gives α = 1 - e^(-1/7) ≈ 0.133."""
        assert time_constant_alpha(1) == pytest.approx(1 - math.exp(-1 / 7))
        assert time_constant_alpha(1) == pytest.approx(0.133, abs=0.001)

    def test_weekly_gap(self) -> None:
        """A gap of one time constant gives α = 1 - 1/e."""
        assert time_constant_alpha(DEFAULT_TIME_CONSTANT_DAYS) == pytest.approx(1 - math.exp(-1))

    def test_zero_days_treated_as_one(self) -> None:
        """Zero, negative and non-finite gaps should be treated as 1 day."""
        daily = time_constant_alpha(1)
        assert time_constant_alpha(0) == pytest.approx(daily)
        assert time_constant_alpha(-3) == pytest.approx(daily)
        assert time_constant_alpha(float("nan")) == pytest.approx(daily)

    def test_large_gap_approaches_one(self) -> None:
        """Very large gaps should give α near 1."""
        assert time_constant_alpha(60) > 0.99

    def test_non_positive_time_constant(self) -> None:
        """A non-positive τ means no smoothing at all."""
        assert time_constant_alpha(1, time_constant_days=0) == 1.0


class TestUpdateEwma:
    """Tests for update_ewma function."""

    def test_daily_update(self) -> None:
        """Daily update moves α of the way toward the new value."""
        alpha = time_constant_alpha(1)
        assert update_ewma(80.0, 79.0) == pytest.approx(80.0 - alpha)

    def test_multi_day_gap_gives_more_weight(self) -> None:
        """Longer gaps should give more weight to the new measurement."""
        daily = update_ewma(80.0, 78.0, days_elapsed=1)
        three_day = update_ewma(80.0, 78.0, days_elapsed=3)
        assert three_day < daily


class TestCalculateEwma:
    """Tests for calculate_ewma function."""

    def test_empty(self) -> None:
        assert calculate_ewma([], []) == []

    def test_first_value_seeds(self) -> None:
        """The first smoothed value equals the first measurement."""
        result = calculate_ewma([80.0, 79.0], [1.0, 1.0])
        assert result[0] == 80.0
        assert len(result) == 2

    def test_constant_series_is_flat(self) -> None:
        result = calculate_ewma([75.0] * 10, [1.0] * 10)
        assert all(value == pytest.approx(75.0) for value in result)

    def test_gap_is_respected(self) -> None:
        """A measurement after a long gap pulls the average further."""
        daily = calculate_ewma([80.0, 78.0], [1.0, 1.0])
        gapped = calculate_ewma([80.0, 78.0], [1.0, 10.0])
        assert gapped[1] < daily[1]

    def test_first_gap_is_ignored(self) -> None:
        assert calculate_ewma([80.0, 79.0], [99.0, 1.0]) == calculate_ewma(
            [80.0, 79.0], [1.0, 1.0]
        )
