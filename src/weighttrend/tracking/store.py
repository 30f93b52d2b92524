"""Storage boundary for trend materialization.

The materializer only needs four narrow calls from storage. They are
expressed as a Protocol so the materializer can run against SQLite in the
CLI and against in-memory fakes in tests.
"""

from __future__ import annotations

from typing import Protocol

from weighttrend.db.connection import DatabaseConnection
from weighttrend.tracking.models import ObservationRecord, TrendRow
from weighttrend.tracking.queries import ObservationQueries, TrendQueries


class TrendStore(Protocol):
    """Storage operations consumed by TrendMaterializer."""

    def load_observations(self, user_id: int) -> list[ObservationRecord]:
        """Return the user's full weigh-in history in ascending date order."""
        ...

    def replace_trend_rows(self, user_id: int, rows: list[TrendRow]) -> None:
        """Atomically replace all of the user's trend rows with `rows`."""
        ...

    def delete_trend_rows(self, user_id: int) -> int:
        """Remove all of the user's trend rows."""
        ...

    def has_stale_or_missing(self, user_id: int, model_version: int) -> bool:
        """True if any weigh-in lacks a current-version trend row."""
        ...


class SQLiteTrendStore:
    """TrendStore backed by the SQLite database."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def load_observations(self, user_id: int) -> list[ObservationRecord]:
        with self.db.get_connection() as conn:
            return ObservationQueries.get_observations(conn, user_id)

    def replace_trend_rows(self, user_id: int, rows: list[TrendRow]) -> None:
        with self.db.get_connection() as conn:
            TrendQueries.replace_trend_rows(conn, user_id, rows)

    def delete_trend_rows(self, user_id: int) -> int:
        with self.db.get_connection() as conn:
            return TrendQueries.delete_trend_rows(conn, user_id)

    def has_stale_or_missing(self, user_id: int, model_version: int) -> bool:
        with self.db.get_connection() as conn:
            return TrendQueries.has_stale_or_missing(conn, user_id, model_version)
