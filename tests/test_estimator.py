"""Tests for adaptive weight trend estimation."""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta, timezone

import pytest

from weighttrend.tracking.estimator import (
    MAX_PROCESS_TO_MEASUREMENT_VARIANCE_RATIO,
    UNIT_DEFAULTS,
    classify_volatility,
    compute_trend,
    default_params,
    estimate_drift_per_day,
    estimate_variances,
    gap_days,
    least_squares_slope,
    median,
    prepare_observations,
    recent_weekly_rate,
    robust_std,
    run_kalman_filter,
)
from weighttrend.tracking.kalman import CONFIDENCE_Z_SCORE, TrendFilter
from weighttrend.tracking.models import Observation, TrendParams, TrendPoint, Volatility
from weighttrend.tracking.units import WeightUnit


def daily_observations(
    weights: list[float], start: date = date(2025, 1, 1)
) -> list[Observation]:
    return [Observation(start + timedelta(days=i), weight) for i, weight in enumerate(weights)]


def _alternating(count: int, drift: float, up: float, down: float) -> list[Observation]:
    return daily_observations(
        [80 - i * drift + (up if i % 2 == 0 else -down) for i in range(count)]
    )


def _trend_points(trends: list[float]) -> list[TrendPoint]:
    return [
        TrendPoint(
            date(2025, 1, 1) + timedelta(days=i), trend, trend, 0.1, trend - 0.2, trend + 0.2
        )
        for i, trend in enumerate(trends)
    ]


class TestComputeTrendBasics:
    """Tests for output shape and degenerate inputs."""

    def test_empty_input(self) -> None:
        """Empty input returns an empty, low-volatility result without raising."""
        result = compute_trend([])

        assert result.points == []
        assert result.weekly_rate == 0.0
        assert result.volatility is Volatility.LOW
        assert result.params == default_params(WeightUnit.KG)

    def test_single_observation(self) -> None:
        """A single weigh-in anchors the trend with a finite std."""
        result = compute_trend([Observation(date(2025, 1, 1), 80.0)])

        assert len(result.points) == 1
        point = result.points[0]
        assert point.trend_weight == 80.0
        assert math.isfinite(point.trend_std)
        # Seeded with scale variance, then updated once with zero residual
        assert point.trend_std == pytest.approx(math.sqrt(0.9**2 / 2))
        assert result.weekly_rate == 0.0

    def test_single_observation_in_pounds(self) -> None:
        result = compute_trend([(date(2025, 1, 1), 180.0)], WeightUnit.LB)

        point = result.points[0]
        assert point.trend_weight == 180.0
        assert math.isfinite(point.lower95)
        assert math.isfinite(point.upper95)
        assert result.weekly_rate == 0.0

    def test_one_point_per_observation_sorted(self) -> None:
        """Output has one point per valid observation in ascending date order."""
        observations = [
            Observation(date(2025, 1, 3), 79.5),
            Observation(date(2025, 1, 1), 80.0),
            Observation(date(2025, 1, 2), 79.8),
        ]
        result = compute_trend(observations)

        assert [point.date for point in result.points] == [
            date(2025, 1, 1),
            date(2025, 1, 2),
            date(2025, 1, 3),
        ]
        assert [point.observed_weight for point in result.points] == [80.0, 79.8, 79.5]

    def test_first_point_anchors_at_first_weight(self) -> None:
        observations = daily_observations([82.3, 81.0, 81.4, 80.9, 80.2])
        result = compute_trend(observations)
        assert result.points[0].trend_weight == 82.3

    def test_invalid_observations_are_dropped(self) -> None:
        """Non-finite weights and non-dates are filtered, not raised."""
        observations = [
            (date(2025, 1, 1), 80.0),
            (date(2025, 1, 2), float("nan")),
            (date(2025, 1, 3), float("inf")),
            ("2025-01-04", 79.5),
            (None, 79.5),
            (date(2025, 1, 5), "heavy"),
            (date(2025, 1, 6), True),
            (date(2025, 1, 7), 79.4),
        ]
        result = compute_trend(observations)

        assert [point.date for point in result.points] == [date(2025, 1, 1), date(2025, 1, 7)]
        assert result.points[0].trend_weight == 80.0

    def test_all_invalid_is_empty(self) -> None:
        result = compute_trend([(date(2025, 1, 1), float("nan"))])
        assert result.points == []
        assert result.volatility is Volatility.LOW

    def test_unit_accepts_string(self) -> None:
        result = compute_trend([(date(2025, 1, 1), 180.0)], "lb")
        assert result.params == default_params(WeightUnit.LB)

    def test_flat_series_stays_near_level(self) -> None:
        observations = daily_observations([80 + (0.2 if i % 2 == 0 else -0.2) for i in range(10)])
        result = compute_trend(observations)

        assert all(math.isfinite(point.trend_weight) for point in result.points)
        assert abs(result.points[-1].trend_weight - 80) < 1.2


class TestConfidenceInterval:
    """Tests for the 95% band around the trend."""

    def test_interval_is_symmetric_and_derived(self) -> None:
        observations = [
            Observation(
                date(2025, 1, 1) + timedelta(days=i),
                180 - i * 0.06 + (1.1 if i % 2 == 0 else -0.95) + (1.6 if i % 13 == 0 else 0),
            )
            for i in range(90)
        ]
        result = compute_trend(observations, WeightUnit.LB)

        for point in result.points:
            assert point.lower95 == pytest.approx(
                point.trend_weight - CONFIDENCE_Z_SCORE * point.trend_std, abs=1e-9
            )
            assert point.upper95 - point.lower95 == pytest.approx(
                2 * CONFIDENCE_Z_SCORE * point.trend_std, abs=1e-9
            )

    def test_long_gap_keeps_interval_bounded(self) -> None:
        """A 14-year gap does not blow up the interval."""
        observations = [
            Observation(date(2012, 1, 1), 80.7),
            Observation(date(2012, 1, 2), 80.5),
            Observation(date(2026, 1, 1), 77.9),
        ]
        result = compute_trend(observations)

        after_gap = result.points[2]
        assert after_gap.upper95 - after_gap.lower95 < 4

    def test_long_gap_in_pounds(self) -> None:
        observations = [
            (date(2012, 1, 1), 178.0),
            (date(2012, 1, 2), 177.5),
            (date(2026, 1, 1), 171.8),
        ]
        result = compute_trend(observations, WeightUnit.LB)

        after_gap = result.points[2]
        assert after_gap.upper95 - after_gap.lower95 < 8


class TestDamping:
    """Tests for outlier resistance."""

    def test_spike_is_damped(self) -> None:
        """A one-day spike moves the trend the same way, but less than the raw jump."""
        base = [80, 79.8, 79.7, 79.6, 79.5, 81.5, 79.4, 79.3, 79.2]
        result = compute_trend(daily_observations(base))

        spike = 5
        raw_jump = base[spike] - base[spike - 1]
        trend_jump = result.points[spike].trend_weight - result.points[spike - 1].trend_weight

        assert trend_jump > 0
        assert abs(trend_jump) < abs(raw_jump)


class TestVolatility:
    """Tests for noise-driven uncertainty and volatility classification."""

    def test_noisy_input_widens_band(self) -> None:
        low = compute_trend(_alternating(20, 0.08, 0.15, 0.1))
        high = compute_trend(_alternating(20, 0.08, 5.0, 5.0))

        low_median = median([point.trend_std for point in low.points])
        high_median = median([point.trend_std for point in high.points])

        assert high_median > low_median
        assert low.volatility is Volatility.LOW
        assert high.volatility is Volatility.HIGH

    def test_classify_thresholds(self) -> None:
        assert classify_volatility([0.3] * 5) is Volatility.LOW
        assert classify_volatility([0.8] * 5) is Volatility.MEDIUM
        assert classify_volatility([1.5] * 5) is Volatility.HIGH

    def test_classify_uses_unit_thresholds(self) -> None:
        """0.8 is medium in kilograms but low in pounds."""
        assert classify_volatility([0.8] * 5, WeightUnit.LB) is Volatility.LOW

    def test_classify_uses_recent_window(self) -> None:
        """Only the last 14 stds count."""
        stds = [3.0] * 30 + [0.2] * 14
        assert classify_volatility(stds) is Volatility.LOW

    def test_classify_empty(self) -> None:
        assert classify_volatility([]) is Volatility.LOW


class TestDriftEstimation:
    """Tests for recency-weighted drift."""

    def test_recent_loss_outweighs_older_gain(self) -> None:
        """140 days of gain then 45 days of loss gives negative drift."""
        gain_per_day = 0.03
        loss_per_day = 0.1
        weights = [70 + gain_per_day * i for i in range(140)]
        peak = weights[-1]
        weights += [peak - loss_per_day * j for j in range(1, 46)]
        observations = daily_observations(weights)

        offsets = [float(i) for i in range(len(weights))]
        assert least_squares_slope(offsets, weights) > 0

        result = compute_trend(observations)
        assert result.params.drift_per_day < 0

    def test_linear_series(self) -> None:
        observations = daily_observations([80 - 0.1 * i for i in range(30)])
        assert estimate_drift_per_day(observations) == pytest.approx(-0.1)

    def test_single_observation_has_no_drift(self) -> None:
        assert estimate_drift_per_day(daily_observations([80.0])) == 0.0

    def test_same_day_observations_fall_back_to_zero(self) -> None:
        """No spread in time means no slope at all."""
        observations = [Observation(date(2025, 1, 1), 80.0), Observation(date(2025, 1, 1), 81.0)]
        assert estimate_drift_per_day(observations) == 0.0


class TestVarianceEstimation:
    """Tests for noise estimation."""

    def test_too_few_observations_use_defaults(self) -> None:
        process_variance, measurement_variance = estimate_variances(
            daily_observations([80.0, 79.5]), 0.0
        )
        defaults = UNIT_DEFAULTS[WeightUnit.KG]

        assert process_variance == pytest.approx(defaults.process_std**2)
        assert measurement_variance == pytest.approx(defaults.measurement_std**2)

    def test_perfect_line_is_clamped_to_minimums(self) -> None:
        observations = daily_observations([80 - 0.05 * i for i in range(20)])
        process_variance, measurement_variance = estimate_variances(observations, -0.05)
        defaults = UNIT_DEFAULTS[WeightUnit.KG]

        assert measurement_variance >= defaults.min_measurement_std**2 - 1e-12
        assert process_variance >= defaults.min_process_std**2 - 1e-12

    def test_process_variance_capped_by_measurement(self) -> None:
        observations = _alternating(20, 0.08, 5.0, 5.0)
        drift = estimate_drift_per_day(observations)
        process_variance, measurement_variance = estimate_variances(observations, drift)

        assert process_variance <= (
            measurement_variance * MAX_PROCESS_TO_MEASUREMENT_VARIANCE_RATIO + 1e-12
        )
        assert measurement_variance <= UNIT_DEFAULTS[WeightUnit.KG].max_measurement_std**2 + 1e-9


class TestWeeklyRate:
    """Tests for recent_weekly_rate."""

    def test_steady_loss(self) -> None:
        """A clean linear loss of 0.1/day reads close to -0.7/week."""
        result = compute_trend(daily_observations([85 - 0.1 * i for i in range(40)]))
        assert result.weekly_rate == pytest.approx(-0.7, abs=0.1)

    def test_fewer_than_two_points(self) -> None:
        assert recent_weekly_rate([]) == 0.0

    def test_only_recent_window_counts(self) -> None:
        """A steep older section is ignored once 14 flat points follow it."""
        trends = [90 - 0.5 * i for i in range(20)] + [80.0] * 14
        assert recent_weekly_rate(_trend_points(trends)) == pytest.approx(0.0, abs=1e-9)

    def test_window_start_is_fourteenth_from_last(self) -> None:
        """The rate runs from points[n - 14] to the last point."""
        trends = [100.0] * 10 + [80 - 0.1 * i for i in range(14)]
        assert recent_weekly_rate(_trend_points(trends)) == pytest.approx(-0.7)

    def test_same_date_endpoints_count_as_one_day(self) -> None:
        """Endpoints on the same date divide by one day, not zero."""
        same_day = date(2025, 1, 1)
        points = [
            TrendPoint(same_day, 80.0, 80.0, 0.1, 79.8, 80.2),
            TrendPoint(same_day, 79.0, 79.0, 0.1, 78.8, 79.2),
        ]

        assert recent_weekly_rate(points) == pytest.approx(-7.0)


class TestKalmanPass:
    """Tests for run_kalman_filter."""

    def test_matches_step_by_step_filter(self) -> None:
        """Each later weigh-in is one predict over its gap followed by one update."""
        params = TrendParams(drift_per_day=-0.1, process_variance=0.01, measurement_variance=0.25)
        observations = [
            Observation(date(2025, 1, 1), 80.0),
            Observation(date(2025, 1, 4), 79.5),
            Observation(date(2025, 1, 5), 79.6),
        ]

        points = run_kalman_filter(observations, params)

        reference = TrendFilter.start(80.0, -0.1, 0.01, 0.25)
        reference.update(80.0)
        assert points[0].trend_weight == pytest.approx(reference.mean)
        for gap, point in zip([3.0, 1.0], points[1:]):
            reference.predict(gap)
            reference.update(point.observed_weight)
            assert point.trend_weight == pytest.approx(reference.mean)
            assert point.trend_std == pytest.approx(reference.std)

    def test_empty(self) -> None:
        params = TrendParams(drift_per_day=0.0, process_variance=0.01, measurement_variance=0.25)
        assert run_kalman_filter([], params) == []


class TestHelpers:
    """Tests for numeric helpers."""

    def test_gap_days(self) -> None:
        assert gap_days(date(2025, 1, 1), date(2025, 1, 4)) == 3.0
        assert gap_days(date(2025, 1, 1), date(2025, 1, 1)) == 1.0
        assert gap_days(date(2025, 1, 5), date(2025, 1, 1)) == 1.0

    def test_robust_std_ignores_outlier(self) -> None:
        values = [1.0, 1.1, 0.9, 1.0, 1.1, 0.9, 50.0]
        assert robust_std(values) == pytest.approx(1.4826 * 0.1)

    def test_robust_std_needs_two_values(self) -> None:
        assert robust_std([1.0]) is None
        assert robust_std([float("nan"), 1.0]) is None

    def test_least_squares_degenerate(self) -> None:
        assert least_squares_slope([1.0], [2.0]) is None
        assert least_squares_slope([1.0, 1.0], [2.0, 3.0]) is None
        assert least_squares_slope([0.0, 1.0], [2.0, 3.0], [0.0, 0.0]) is None

    def test_least_squares_weighted(self) -> None:
        """Zero weight on a point removes it from the fit."""
        slope = least_squares_slope([0.0, 1.0, 2.0], [0.0, 1.0, 10.0], [1.0, 1.0, 0.0])
        assert slope == pytest.approx(1.0)

    def test_prepare_converts_aware_datetimes_to_utc_day(self) -> None:
        late_evening = datetime(2025, 1, 1, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
        valid = prepare_observations([(late_evening, 80.0)])
        assert valid[0].date == date(2025, 1, 2)
