"""Database queries for weigh-ins and materialized weight trends."""

from __future__ import annotations

import sqlite3
from datetime import date, datetime
from typing import Optional

from weighttrend.tracking.models import ObservationRecord, TrendHistoryEntry, TrendRow


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class ObservationQueries:
    """Database queries for raw weigh-ins."""

    @staticmethod
    def upsert_observation(
        conn: sqlite3.Connection,
        user_id: int,
        measured_on: date,
        weight_grams: int,
    ) -> ObservationRecord:
        """
        Record a weigh-in for a day.

        If an entry already exists for this date its weight is replaced, keeping
        the same observation_id (and therefore its trend row linkage).
        A changed weight drops that day's trend row so the user reads as stale.
        """
        conn.execute(
            """
            DELETE FROM weight_trends
            WHERE observation_id IN (
                SELECT observation_id FROM weight_observations
                WHERE user_id = ? AND date = ? AND weight_grams != ?
            )
            """,
            (user_id, measured_on.isoformat(), weight_grams),
        )
        conn.execute(
            """
            INSERT INTO weight_observations (user_id, date, weight_grams)
            VALUES (?, ?, ?)
            ON CONFLICT(user_id, date) DO UPDATE SET weight_grams = excluded.weight_grams
            """,
            (user_id, measured_on.isoformat(), weight_grams),
        )
        row = conn.execute(
            """
            SELECT observation_id FROM weight_observations
            WHERE user_id = ? AND date = ?
            """,
            (user_id, measured_on.isoformat()),
        ).fetchone()
        conn.commit()

        return ObservationRecord(
            observation_id=row[0],
            user_id=user_id,
            date=measured_on,
            weight_grams=weight_grams,
        )

    @staticmethod
    def delete_observation(conn: sqlite3.Connection, user_id: int, measured_on: date) -> bool:
        """Delete the weigh-in for a day. Returns True if a row was removed."""
        cursor = conn.execute(
            "DELETE FROM weight_observations WHERE user_id = ? AND date = ?",
            (user_id, measured_on.isoformat()),
        )
        conn.commit()
        return cursor.rowcount > 0

    @staticmethod
    def get_observations(
        conn: sqlite3.Connection,
        user_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[ObservationRecord]:
        """
        Get a user's weigh-ins in ascending date order.

        Args:
            user_id: User ID
            start_date: If set, return entries on or after this date
            end_date: If set, return entries on or before this date
        """
        query = """
            SELECT observation_id, user_id, date, weight_grams
            FROM weight_observations
            WHERE user_id = ?
        """
        params: list = [user_id]

        if start_date:
            query += " AND date >= ?"
            params.append(start_date.isoformat())
        if end_date:
            query += " AND date <= ?"
            params.append(end_date.isoformat())

        query += " ORDER BY date"

        rows = conn.execute(query, params).fetchall()

        return [
            ObservationRecord(
                observation_id=row[0],
                user_id=row[1],
                date=date.fromisoformat(row[2]),
                weight_grams=row[3],
            )
            for row in rows
        ]


class TrendQueries:
    """Database queries for materialized trend rows."""

    @staticmethod
    def replace_trend_rows(
        conn: sqlite3.Connection, user_id: int, rows: list[TrendRow]
    ) -> None:
        """
        Replace all of a user's trend rows in a single transaction.

        Readers on other connections see either the old set or the new set,
        never the empty state in between. On error nothing is changed.
        """
        try:
            conn.execute("DELETE FROM weight_trends WHERE user_id = ?", (user_id,))
            if rows:
                conn.executemany(
                    """
                    INSERT INTO weight_trends
                    (observation_id, user_id, date, trend_weight_grams,
                     trend_ci_lower_grams, trend_ci_upper_grams, trend_std_grams,
                     model_version)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            row.observation_id,
                            row.user_id,
                            row.date.isoformat(),
                            row.trend_weight_grams,
                            row.trend_ci_lower_grams,
                            row.trend_ci_upper_grams,
                            row.trend_std_grams,
                            row.model_version,
                        )
                        for row in rows
                    ],
                )
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    @staticmethod
    def delete_trend_rows(conn: sqlite3.Connection, user_id: int) -> int:
        """Delete all of a user's trend rows. Returns the number removed."""
        cursor = conn.execute("DELETE FROM weight_trends WHERE user_id = ?", (user_id,))
        conn.commit()
        return cursor.rowcount

    @staticmethod
    def get_trend_rows(conn: sqlite3.Connection, user_id: int) -> list[TrendRow]:
        """Get a user's trend rows in ascending date order."""
        rows = conn.execute(
            """
            SELECT observation_id, user_id, date, trend_weight_grams,
                   trend_ci_lower_grams, trend_ci_upper_grams, trend_std_grams,
                   model_version, computed_at
            FROM weight_trends
            WHERE user_id = ?
            ORDER BY date
            """,
            (user_id,),
        ).fetchall()

        return [
            TrendRow(
                observation_id=row[0],
                user_id=row[1],
                date=date.fromisoformat(row[2]),
                trend_weight_grams=row[3],
                trend_ci_lower_grams=row[4],
                trend_ci_upper_grams=row[5],
                trend_std_grams=row[6],
                model_version=row[7],
                computed_at=_parse_timestamp(row[8]),
            )
            for row in rows
        ]

    @staticmethod
    def has_stale_or_missing(
        conn: sqlite3.Connection, user_id: int, model_version: int
    ) -> bool:
        """True if any weigh-in lacks a trend row or has one from another model version."""
        row = conn.execute(
            """
            SELECT 1
            FROM weight_observations o
            LEFT JOIN weight_trends t ON t.observation_id = o.observation_id
            WHERE o.user_id = ?
              AND (t.observation_id IS NULL OR t.model_version != ?)
            LIMIT 1
            """,
            (user_id, model_version),
        ).fetchone()
        return row is not None

    @staticmethod
    def get_trend_history(
        conn: sqlite3.Connection,
        user_id: int,
        days: Optional[int] = None,
    ) -> list[TrendHistoryEntry]:
        """
        Get weigh-ins joined with their trend rows, oldest first.

        Args:
            user_id: User ID
            days: If set, return only the last N weigh-ins
        """
        query = """
            SELECT o.observation_id, o.date, o.weight_grams,
                   t.trend_weight_grams, t.trend_ci_lower_grams,
                   t.trend_ci_upper_grams, t.trend_std_grams,
                   t.model_version, t.computed_at
            FROM weight_observations o
            LEFT JOIN weight_trends t ON t.observation_id = o.observation_id
            WHERE o.user_id = ?
            ORDER BY o.date DESC
        """
        params: list = [user_id]

        if days:
            query += " LIMIT ?"
            params.append(days)

        rows = conn.execute(query, params).fetchall()

        entries = []
        for row in reversed(rows):  # Return in chronological order
            measured_on = date.fromisoformat(row[1])
            trend = None
            if row[3] is not None:
                trend = TrendRow(
                    observation_id=row[0],
                    user_id=user_id,
                    date=measured_on,
                    trend_weight_grams=row[3],
                    trend_ci_lower_grams=row[4],
                    trend_ci_upper_grams=row[5],
                    trend_std_grams=row[6],
                    model_version=row[7],
                    computed_at=_parse_timestamp(row[8]),
                )
            entries.append(
                TrendHistoryEntry(
                    observation_id=row[0],
                    date=measured_on,
                    weight_grams=row[2],
                    trend=trend,
                )
            )
        return entries
