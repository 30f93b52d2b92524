"""CLI interface using Typer."""

from __future__ import annotations

import json
import logging
import math
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path
from typing import NoReturn, Optional

import pandas as pd
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from weighttrend.config import get_settings, reload_settings
from weighttrend.db import DatabaseConnection, get_db, set_db
from weighttrend.tracking.estimator import compute_trend
from weighttrend.tracking.materializer import TrendMaterializer
from weighttrend.tracking.models import Observation
from weighttrend.tracking.queries import ObservationQueries, TrendQueries
from weighttrend.tracking.store import SQLiteTrendStore
from weighttrend.tracking.units import (
    WeightUnit,
    grams_to_weight,
    kilograms_to_unit,
    parse_weight_to_grams,
    unit_to_kilograms,
)

app = typer.Typer(
    help="Weight trend tracking with an adaptive Kalman filter",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

weight_app = typer.Typer(help="Log and review weigh-ins")
trend_app = typer.Typer(help="Maintain and report materialized weight trends")

app.add_typer(weight_app, name="weight")
app.add_typer(trend_app, name="trend")


# ============================================================================
# Helpers
# ============================================================================


def output_json(response: dict, file=None) -> None:
    """Output JSON response to stdout or file."""
    json_str = json.dumps(response, indent=2)
    if file:
        file.write(json_str)
    else:
        print(json_str)


def configure_logging(level: str) -> None:
    """Route package logs through a Rich handler on stderr."""
    package_logger = logging.getLogger("weighttrend")
    package_logger.setLevel(level)
    if not any(isinstance(handler, RichHandler) for handler in package_logger.handlers):
        package_logger.addHandler(
            RichHandler(console=err_console, show_path=False, markup=False)
        )


def ensure_tracking_tables() -> None:
    """Ensure tracking tables exist (idempotent)."""
    db = get_db()
    db.initialize_schema()


def get_materializer() -> TrendMaterializer:
    """Build a materializer over the configured database and model version."""
    settings = get_settings()
    return TrendMaterializer(
        SQLiteTrendStore(get_db()),
        model_version=settings.trend.model_version,
    )


def fail(command: str, message: str, json_output: bool) -> NoReturn:
    """Report an error in the requested format and exit with status 1."""
    if json_output:
        output_json({"success": False, "command": command, "errors": [message]})
    else:
        console.print(f"[red]{message}[/red]")
    raise typer.Exit(1)


def resolve_user(user_id: Optional[int]) -> int:
    return user_id if user_id is not None else get_settings().defaults.user_id


def resolve_unit(unit: Optional[str]) -> WeightUnit:
    if unit is None:
        return get_settings().trend.display_unit
    return WeightUnit.parse(unit)


def parse_day(date_str: Optional[str]) -> date:
    """Parse YYYY-MM-DD, defaulting to today's UTC date."""
    if date_str:
        return date.fromisoformat(date_str)
    return datetime.now(timezone.utc).date()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    config_path: Optional[Path] = typer.Option(
        None, "--config", help="Path to an alternative config.yaml"
    ),
) -> None:
    """Load settings and configure logging before any command."""
    if config_path is not None:
        try:
            reload_settings(config_path)
        except ValueError as e:
            err_console.print(f"[red]Invalid configuration: {e}[/red]")
            raise typer.Exit(1)
        set_db(None)

    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.logging.level)


# Callbacks for tracking sub-apps to auto-create tables on first use


@weight_app.callback()
def weight_callback() -> None:
    """Ensure tracking tables exist before any weight command."""
    ensure_tracking_tables()


@trend_app.callback()
def trend_callback() -> None:
    """Ensure tracking tables exist before any trend command."""
    ensure_tracking_tables()


# ============================================================================
# Main Commands
# ============================================================================


@app.command()
def init(
    db_path: Optional[Path] = typer.Option(None, "--db", help="Custom database path"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Initialize the weight tracking database."""
    db = DatabaseConnection(db_path) if db_path else get_db()
    db.initialize_schema()

    if json_output:
        output_json({
            "success": True,
            "command": "init",
            "data": {"db_path": str(db.db_path)},
            "human_summary": f"Initialized database at {db.db_path}",
        })
    else:
        console.print(f"[green]Initialized database at:[/green] {db.db_path}")


# ============================================================================
# Weight Commands
# ============================================================================


@weight_app.command("add")
def weight_add(
    weight: float = typer.Argument(..., help="Weight in the chosen unit"),
    date_str: Optional[str] = typer.Option(
        None, "--date", "-d", help="Date (YYYY-MM-DD, default: today UTC)"
    ),
    unit: Optional[str] = typer.Option(None, "--unit", "-u", help="Unit (kg/lb)"),
    user_id: Optional[int] = typer.Option(None, "--user", help="User ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Record a weigh-in and refresh the user's trend."""
    try:
        weight_unit = resolve_unit(unit)
        measured_on = parse_day(date_str)
        weight_grams = parse_weight_to_grams(weight, weight_unit)
    except ValueError as e:
        fail("weight add", str(e), json_output)

    uid = resolve_user(user_id)
    db = get_db()

    with db.get_connection() as conn:
        record = ObservationQueries.upsert_observation(conn, uid, measured_on, weight_grams)

    # A failed refresh must not fail the weigh-in; it invalidates instead.
    get_materializer().refresh_best_effort(uid)

    with db.get_connection() as conn:
        history = TrendQueries.get_trend_history(conn, uid)
    trend = next(
        (entry.trend for entry in history if entry.observation_id == record.observation_id),
        None,
    )

    trend_value = (
        round(kilograms_to_unit(trend.trend_weight, weight_unit), 2) if trend else None
    )
    label = weight_unit.value

    if json_output:
        output_json({
            "success": True,
            "command": "weight add",
            "data": {
                "observation_id": record.observation_id,
                "date": measured_on.isoformat(),
                "weight": weight,
                "unit": label,
                "trend": trend_value,
            },
            "human_summary": f"Logged {weight:.1f} {label} on {measured_on}",
        })
    else:
        console.print(f"[green]Logged:[/green] {weight:.1f} {label} on {measured_on}")
        if trend_value is not None:
            console.print(f"[blue]Trend:[/blue] {trend_value:.1f} {label}")
        else:
            console.print("[yellow]Trend pending; it will be recomputed on next read[/yellow]")


@weight_app.command("delete")
def weight_delete(
    date_str: str = typer.Argument(..., help="Date of the weigh-in (YYYY-MM-DD)"),
    user_id: Optional[int] = typer.Option(None, "--user", help="User ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Delete a weigh-in and refresh the user's trend."""
    try:
        measured_on = parse_day(date_str)
    except ValueError as e:
        fail("weight delete", str(e), json_output)

    uid = resolve_user(user_id)
    with get_db().get_connection() as conn:
        deleted = ObservationQueries.delete_observation(conn, uid, measured_on)

    if not deleted:
        fail("weight delete", f"No weigh-in found on {measured_on}", json_output)

    get_materializer().refresh_best_effort(uid)

    if json_output:
        output_json({
            "success": True,
            "command": "weight delete",
            "data": {"date": measured_on.isoformat()},
            "human_summary": f"Deleted weigh-in on {measured_on}",
        })
    else:
        console.print(f"[green]Deleted weigh-in on {measured_on}[/green]")


@weight_app.command("import")
def weight_import(
    csv_path: Path = typer.Argument(..., help="CSV file with date and weight columns"),
    unit: Optional[str] = typer.Option(None, "--unit", "-u", help="Unit of the weights (kg/lb)"),
    date_column: str = typer.Option("date", "--date-column", help="Name of the date column"),
    weight_column: str = typer.Option("weight", "--weight-column", help="Name of the weight column"),
    user_id: Optional[int] = typer.Option(None, "--user", help="User ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Import weigh-ins from a CSV file (existing days are overwritten)."""
    try:
        weight_unit = resolve_unit(unit)
    except ValueError as e:
        fail("weight import", str(e), json_output)

    if not csv_path.exists():
        fail("weight import", f"File not found: {csv_path}", json_output)

    try:
        df = pd.read_csv(csv_path)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        fail("weight import", f"Could not read CSV: {e}", json_output)

    missing = [column for column in (date_column, weight_column) if column not in df.columns]
    if missing:
        fail("weight import", f"Missing column(s): {', '.join(missing)}", json_output)

    dates = pd.to_datetime(df[date_column], errors="coerce", utc=True)
    weights = pd.to_numeric(df[weight_column], errors="coerce")

    uid = resolve_user(user_id)
    imported = 0
    skipped = 0

    with get_db().get_connection() as conn:
        for timestamp, value in zip(dates, weights):
            if pd.isna(timestamp) or pd.isna(value):
                skipped += 1
                continue
            try:
                weight_grams = parse_weight_to_grams(float(value), weight_unit)
            except ValueError:
                skipped += 1
                continue
            ObservationQueries.upsert_observation(conn, uid, timestamp.date(), weight_grams)
            imported += 1

    if imported:
        get_materializer().refresh_best_effort(uid)

    if json_output:
        output_json({
            "success": True,
            "command": "weight import",
            "data": {"imported": imported, "skipped": skipped},
            "human_summary": f"Imported {imported} weigh-ins ({skipped} skipped)",
        })
    else:
        console.print(f"[green]Imported {imported} weigh-ins[/green] ({skipped} skipped)")


@weight_app.command("list")
def weight_list(
    days: Optional[int] = typer.Option(None, "--days", "-d", help="Number of weigh-ins to show"),
    unit: Optional[str] = typer.Option(None, "--unit", "-u", help="Display unit (kg/lb)"),
    user_id: Optional[int] = typer.Option(None, "--user", help="User ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """List weigh-ins with trend and 95% confidence band."""
    try:
        weight_unit = resolve_unit(unit)
    except ValueError as e:
        fail("weight list", str(e), json_output)

    uid = resolve_user(user_id)
    limit = days if days is not None else get_settings().defaults.history_days

    try:
        get_materializer().ensure_fresh(uid)
    except sqlite3.Error as e:
        fail("weight list", f"Could not refresh trend: {e}", json_output)

    with get_db().get_connection() as conn:
        history = TrendQueries.get_trend_history(conn, uid, days=limit)

    if not history:
        if json_output:
            output_json({
                "success": True,
                "command": "weight list",
                "data": {"entries": []},
                "human_summary": "No weigh-ins found",
            })
        else:
            console.print("No weigh-ins found")
        return

    def w(kilograms: float) -> float:
        return round(kilograms_to_unit(kilograms, weight_unit), 2)

    if json_output:
        output_json({
            "success": True,
            "command": "weight list",
            "data": {
                "unit": weight_unit.value,
                "entries": [
                    {
                        "date": entry.date.isoformat(),
                        "weight": grams_to_weight(entry.weight_grams, weight_unit),
                        "trend": w(entry.trend.trend_weight) if entry.trend else None,
                        "lower95": w(entry.trend.trend_ci_lower) if entry.trend else None,
                        "upper95": w(entry.trend.trend_ci_upper) if entry.trend else None,
                    }
                    for entry in history
                ],
            },
            "human_summary": f"{len(history)} weigh-ins",
        })
        return

    label = weight_unit.value
    table = Table(title=f"Weight History (last {len(history)} weigh-ins)")
    table.add_column("Date", style="cyan")
    table.add_column(f"Weight ({label})", justify="right")
    table.add_column(f"Trend ({label})", justify="right", style="blue")
    table.add_column("95% CI", justify="right")
    table.add_column("", justify="right")

    prev_trend = None
    for entry in history:
        if entry.trend is None:
            observed = grams_to_weight(entry.weight_grams, weight_unit)
            table.add_row(entry.date.isoformat(), f"{observed:.1f}", "-", "-", "")
            continue

        trend_weight = w(entry.trend.trend_weight)
        delta = f"{trend_weight - prev_trend:+.1f}" if prev_trend is not None else ""
        prev_trend = trend_weight

        table.add_row(
            entry.date.isoformat(),
            f"{grams_to_weight(entry.weight_grams, weight_unit):.1f}",
            f"{trend_weight:.1f}",
            f"{w(entry.trend.trend_ci_lower):.1f}-{w(entry.trend.trend_ci_upper):.1f}",
            delta,
        )

    console.print(table)


# ============================================================================
# Trend Commands
# ============================================================================


@trend_app.command("recompute")
def trend_recompute(
    user_id: Optional[int] = typer.Option(None, "--user", help="User ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Rebuild a user's materialized trend from their full history."""
    uid = resolve_user(user_id)
    materializer = get_materializer()

    try:
        rows_written = materializer.recompute(uid)
    except sqlite3.Error as e:
        fail("trend recompute", f"Trend recompute failed: {e}", json_output)

    if json_output:
        output_json({
            "success": True,
            "command": "trend recompute",
            "data": {
                "user_id": uid,
                "rows_written": rows_written,
                "model_version": materializer.model_version,
            },
            "human_summary": f"Recomputed {rows_written} trend rows",
        })
    else:
        console.print(
            f"[green]Recomputed {rows_written} trend rows[/green] "
            f"(model v{materializer.model_version})"
        )


@trend_app.command("params")
def trend_params(
    unit: Optional[str] = typer.Option(None, "--unit", "-u", help="Display unit (kg/lb)"),
    user_id: Optional[int] = typer.Option(None, "--user", help="User ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Show the model parameters estimated from a user's weigh-ins."""
    try:
        weight_unit = resolve_unit(unit)
    except ValueError as e:
        fail("trend params", str(e), json_output)

    uid = resolve_user(user_id)
    with get_db().get_connection() as conn:
        records = ObservationQueries.get_observations(conn, uid)

    result = compute_trend(
        [Observation(date=record.date, weight=record.weight_kg) for record in records]
    )
    params = result.params

    def w(kilograms: float) -> float:
        return kilograms_to_unit(kilograms, weight_unit)

    data = {
        "unit": weight_unit.value,
        "observations": len(result.points),
        "drift_per_week": round(w(params.drift_per_day) * 7, 3),
        "measurement_std": round(w(math.sqrt(params.measurement_variance)), 3),
        "process_std": round(w(math.sqrt(params.process_variance)), 3),
        "weekly_rate": round(w(result.weekly_rate), 3),
        "volatility": result.volatility.value,
    }

    if json_output:
        output_json({
            "success": True,
            "command": "trend params",
            "data": data,
            "human_summary": (
                f"{data['observations']} weigh-ins, drift {data['drift_per_week']:+.2f} "
                f"{data['unit']}/week, volatility {data['volatility']}"
            ),
        })
        return

    label = weight_unit.value
    table = Table(title="Trend Model Parameters")
    table.add_column("Parameter", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Weigh-ins", str(data["observations"]))
    table.add_row("Drift", f"{data['drift_per_week']:+.3f} {label}/week")
    table.add_row("Scale noise (std)", f"{data['measurement_std']:.3f} {label}")
    table.add_row("Process noise (std/day)", f"{data['process_std']:.3f} {label}")
    table.add_row("Recent weekly rate", f"{data['weekly_rate']:+.3f} {label}/week")
    table.add_row("Volatility", data["volatility"])
    console.print(table)


@trend_app.command("report")
def trend_report(
    days: Optional[int] = typer.Option(None, "--days", "-d", help="Weigh-ins to analyze"),
    goal: Optional[float] = typer.Option(None, "--goal", "-g", help="Goal weight"),
    unit: Optional[str] = typer.Option(None, "--unit", "-u", help="Unit (kg/lb)"),
    user_id: Optional[int] = typer.Option(None, "--user", help="User ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Show trend progress, weekly rate, volatility and goal projection."""
    from weighttrend.tracking.diagnostics import format_trend_report, generate_trend_report

    try:
        weight_unit = resolve_unit(unit)
    except ValueError as e:
        fail("trend report", str(e), json_output)

    uid = resolve_user(user_id)
    limit = days if days is not None else get_settings().defaults.history_days
    goal_kg = unit_to_kilograms(goal, weight_unit) if goal is not None else None

    try:
        get_materializer().ensure_fresh(uid)
    except sqlite3.Error as e:
        fail("trend report", f"Could not refresh trend: {e}", json_output)

    with get_db().get_connection() as conn:
        report = generate_trend_report(
            conn, uid, days=limit, goal_weight=goal_kg, unit=weight_unit
        )

    if report is None:
        fail("trend report", "Not enough data for trend analysis", json_output)

    if json_output:

        def w(kilograms: Optional[float]) -> Optional[float]:
            if kilograms is None:
                return None
            return round(kilograms_to_unit(kilograms, weight_unit), 2)

        output_json({
            "success": True,
            "command": "trend report",
            "data": {
                "unit": weight_unit.value,
                "current_weight": w(report.current_weight),
                "current_trend": w(report.current_trend),
                "trend_lower95": w(report.trend_lower95),
                "trend_upper95": w(report.trend_upper95),
                "trend_change": w(report.trend_change),
                "weekly_rate": w(report.weekly_rate),
                "volatility": report.volatility.value,
                "period_days": report.period_days,
                "goal_weight": w(report.goal_weight),
                "remaining": w(report.remaining),
                "weeks_to_goal": (
                    round(report.weeks_to_goal, 1) if report.weeks_to_goal is not None else None
                ),
                "projected_goal_date": (
                    report.projected_goal_date.isoformat()
                    if report.projected_goal_date
                    else None
                ),
                "notes": report.notes,
            },
            "human_summary": (
                f"Trend: {w(report.current_trend):.1f} {weight_unit.value}, "
                f"{w(report.weekly_rate):+.2f} {weight_unit.value}/week"
            ),
        })
    else:
        console.print(format_trend_report(report, weight_unit))


if __name__ == "__main__":
    app()
