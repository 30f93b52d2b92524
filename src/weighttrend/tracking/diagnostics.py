"""Progress reporting from materialized weight trends."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from weighttrend.tracking.estimator import (
    RECENT_WINDOW_POINTS,
    classify_volatility,
    least_squares_slope,
)
from weighttrend.tracking.models import TrendHistoryEntry, Volatility
from weighttrend.tracking.queries import TrendQueries
from weighttrend.tracking.units import WeightUnit, kilograms_to_unit

# Losing faster than this is flagged as likely unsustainable.
FAST_LOSS_KG_PER_WEEK = 1.0


@dataclass
class TrendReport:
    """Summary of weight trend progress (all weights in kg)."""

    current_weight: float
    current_trend: float
    trend_lower95: float
    trend_upper95: float
    start_trend: float
    trend_change: float  # vs window start
    weekly_rate: float  # kg/week best fit (negative = losing)
    volatility: Volatility
    period_days: int
    last_date: date
    goal_weight: Optional[float] = None
    remaining: Optional[float] = None
    weeks_to_goal: Optional[float] = None
    projected_goal_date: Optional[date] = None
    notes: list[str] = field(default_factory=list)


def best_fit_weekly_rate(entries: list[TrendHistoryEntry]) -> float:
    """Least-squares slope of trend weight over the recent window, per week."""
    recent = [entry for entry in entries if entry.trend is not None][-RECENT_WINDOW_POINTS:]
    if len(recent) < 2:
        return 0.0

    start = recent[0].date
    offsets = [float((entry.date - start).days) for entry in recent]
    trends = [entry.trend.trend_weight for entry in recent]  # type: ignore[union-attr]

    slope = least_squares_slope(offsets, trends)
    return slope * 7 if slope is not None else 0.0


def project_goal(
    current_trend: float,
    weekly_rate: float,
    goal_weight: float,
    from_date: date,
) -> tuple[float, Optional[float], Optional[date]]:
    """
    Project when the trend reaches a goal weight at the current rate.

    Returns:
        (remaining, weeks_to_goal, projected_date). Remaining is current
        trend minus goal; weeks and date are None unless the trend is
        moving toward the goal.
    """
    remaining = current_trend - goal_weight
    if weekly_rate == 0 or remaining == 0:
        return remaining, None, None

    # Moving toward goal when the rate and the remaining distance have opposite signs.
    if (remaining > 0) == (weekly_rate > 0):
        return remaining, None, None

    weeks = abs(remaining) / abs(weekly_rate)
    return remaining, weeks, from_date + timedelta(days=round(weeks * 7))


def generate_trend_report(
    conn: sqlite3.Connection,
    user_id: int,
    days: Optional[int] = None,
    goal_weight: Optional[float] = None,
    unit: WeightUnit = WeightUnit.KG,
) -> Optional[TrendReport]:
    """
    Build a progress report from materialized trend rows.

    Callers should run TrendMaterializer.ensure_fresh first; weigh-ins
    without a trend row are treated as not yet computed and skipped.

    Args:
        days: If set, only the last N weigh-ins are considered
        goal_weight: Optional goal weight in kg for a date projection
        unit: Display unit for weights quoted in notes
    """
    history = TrendQueries.get_trend_history(conn, user_id, days=days)
    entries = [entry for entry in history if entry.trend is not None]

    if len(entries) < 2:
        return None

    oldest = entries[0]
    latest = entries[-1]
    latest_trend = latest.trend
    oldest_trend = oldest.trend

    period_days = max(1, (latest.date - oldest.date).days)
    weekly_rate = best_fit_weekly_rate(entries)
    volatility = classify_volatility(
        [entry.trend.trend_std for entry in entries],  # type: ignore[union-attr]
        WeightUnit.KG,
    )

    report = TrendReport(
        current_weight=latest.weight_kg,
        current_trend=latest_trend.trend_weight,
        trend_lower95=latest_trend.trend_ci_lower,
        trend_upper95=latest_trend.trend_ci_upper,
        start_trend=oldest_trend.trend_weight,
        trend_change=latest_trend.trend_weight - oldest_trend.trend_weight,
        weekly_rate=weekly_rate,
        volatility=volatility,
        period_days=period_days,
        last_date=latest.date,
    )

    if goal_weight is not None:
        report.goal_weight = goal_weight
        report.remaining, report.weeks_to_goal, report.projected_goal_date = project_goal(
            report.current_trend, weekly_rate, goal_weight, latest.date
        )

    if weekly_rate < -FAST_LOSS_KG_PER_WEEK:
        threshold = kilograms_to_unit(FAST_LOSS_KG_PER_WEEK, unit)
        report.notes.append(
            f"Warning: Losing more than {threshold:.1f} {unit.value}/week. "
            "This pace may not be sustainable."
        )
    if (
        report.remaining is not None
        and report.remaining != 0
        and report.weeks_to_goal is None
        and weekly_rate != 0
    ):
        report.notes.append("Your trend is currently moving away from your goal weight.")
    if volatility is Volatility.HIGH:
        report.notes.append(
            "High volatility: the trend band is wide. More regular weigh-ins will tighten it."
        )

    return report


def format_trend_report(report: TrendReport, unit: WeightUnit = WeightUnit.KG) -> str:
    """Format trend report as text in the given display unit."""
    label = unit.value

    def w(kilograms: float) -> float:
        return kilograms_to_unit(kilograms, unit)

    direction = "lost" if report.trend_change < 0 else "gained"
    rate_dir = "losing" if report.weekly_rate < 0 else "gaining"

    lines = [
        f"Weight Trend Report (last {report.period_days} days)",
        "=" * 45,
        f"Current weight: {w(report.current_weight):.1f} {label}",
        f"Current trend:  {w(report.current_trend):.1f} {label} "
        f"(95% CI {w(report.trend_lower95):.1f} to {w(report.trend_upper95):.1f})",
        f"Trend change:   {abs(w(report.trend_change)):.1f} {label} {direction} "
        f"(from {w(report.start_trend):.1f})",
        f"Rate:           {abs(w(report.weekly_rate)):.2f} {label}/week ({rate_dir})",
        f"Volatility:     {report.volatility.value}",
    ]

    if report.goal_weight is not None:
        lines.append("")
        lines.append(f"Progress toward goal ({w(report.goal_weight):.1f} {label})")
        lines.append("-" * 45)
        if report.remaining is not None:
            lines.append(f"  Remaining: {abs(w(report.remaining)):.1f} {label}")
        if report.weeks_to_goal is not None and report.projected_goal_date is not None:
            lines.append(
                f"  At current rate: ~{report.weeks_to_goal:.0f} weeks "
                f"({report.projected_goal_date.isoformat()})"
            )

    if report.notes:
        lines.append("")
        lines.append("Notes:")
        for note in report.notes:
            lines.append(f"  - {note}")

    return "\n".join(lines)
