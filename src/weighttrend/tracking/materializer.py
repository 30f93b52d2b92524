"""Materialized weight trends.

Trend values are persisted per weigh-in so reads do not rerun the model.
Each user's row set is always the estimator's output over that user's
entire weigh-in history, stamped with one model version:

- recompute: rebuild and replace the full row set (errors propagate)
- ensure_fresh: read-time guard; recompute only if rows are missing or
  carry another model version
- refresh_best_effort: write-path hook; never raises, and on failure
  deletes the user's rows so the next ensure_fresh rebuilds them

Bumping WEIGHT_TREND_MODEL_VERSION makes every user's trend rebuild
lazily on next read, with no migration step.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from weighttrend.tracking.estimator import compute_trend
from weighttrend.tracking.models import Observation, ObservationRecord, TrendRow
from weighttrend.tracking.store import TrendStore
from weighttrend.tracking.units import WeightUnit, kilograms_to_grams

logger = logging.getLogger(__name__)

WEIGHT_TREND_MODEL_VERSION = 1


@dataclass
class RecomputeResult:
    """Outcome of a recompute attempt that captures rather than raises."""

    user_id: int
    ok: bool
    rows_written: int = 0
    error: Optional[Exception] = None


class TrendMaterializer:
    """
    Keeps a user's persisted trend rows consistent with their weigh-ins.

    Same-user recomputes are serialized in-process; different users run
    concurrently. The store's replace is a single transaction, so other
    processes never observe a half-written set.
    """

    def __init__(self, store: TrendStore, model_version: int = WEIGHT_TREND_MODEL_VERSION):
        self.store = store
        self.model_version = model_version
        self._locks: dict[int, threading.Lock] = {}
        self._lock_users: dict[int, int] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _user_lock(self, user_id: int) -> Iterator[None]:
        """Hold the user's lock; the entry is dropped once no caller needs it."""
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
                self._lock_users[user_id] = 0
            self._lock_users[user_id] += 1

        try:
            with lock:
                yield
        finally:
            with self._locks_guard:
                self._lock_users[user_id] -= 1
                if self._lock_users[user_id] == 0:
                    del self._locks[user_id]
                    del self._lock_users[user_id]

    def build_trend_rows(self, observations: list[ObservationRecord]) -> list[TrendRow]:
        """Run the estimator over stored weigh-ins and map points back to rows."""
        result = compute_trend(
            [Observation(date=record.date, weight=record.weight_kg) for record in observations],
            WeightUnit.KG,
        )
        points_by_date = {point.date: point for point in result.points}

        rows = []
        for record in observations:
            point = points_by_date.get(record.date)
            if point is None or record.observation_id is None:
                continue
            rows.append(
                TrendRow(
                    observation_id=record.observation_id,
                    user_id=record.user_id,
                    date=record.date,
                    trend_weight_grams=kilograms_to_grams(point.trend_weight),
                    trend_ci_lower_grams=kilograms_to_grams(point.lower95),
                    trend_ci_upper_grams=kilograms_to_grams(point.upper95),
                    trend_std_grams=kilograms_to_grams(point.trend_std),
                    model_version=self.model_version,
                )
            )
        return rows

    def recompute(self, user_id: int) -> int:
        """
        Recompute and replace one user's trend rows from their full history.

        An empty history leaves the user with zero rows.

        Returns:
            Number of trend rows written

        Raises:
            Any storage error, unchanged
        """
        with self._user_lock(user_id):
            observations = self.store.load_observations(user_id)
            rows = self.build_trend_rows(observations)
            self.store.replace_trend_rows(user_id, rows)

        logger.debug(
            "Recomputed %d trend rows for user %s (model v%d)",
            len(rows),
            user_id,
            self.model_version,
        )
        return len(rows)

    def ensure_fresh(self, user_id: int) -> bool:
        """
        Recompute only if some weigh-in has no current-version trend row.

        Returns:
            True if a recompute ran
        """
        if not self.store.has_stale_or_missing(user_id, self.model_version):
            return False

        logger.info("Trend rows for user %s are stale or missing; recomputing", user_id)
        self.recompute(user_id)
        return True

    def try_recompute(self, user_id: int) -> RecomputeResult:
        """Recompute, returning the failure instead of raising it."""
        try:
            rows_written = self.recompute(user_id)
        except Exception as e:
            return RecomputeResult(user_id=user_id, ok=False, error=e)
        return RecomputeResult(user_id=user_id, ok=True, rows_written=rows_written)

    def refresh_best_effort(self, user_id: int) -> None:
        """
        Refresh trend rows after a weigh-in write without ever failing it.

        If recompute fails, the user's rows are deleted so the next
        ensure_fresh rebuilds them. Exactly one warning is logged per
        failure; nothing is raised.
        """
        result = self.try_recompute(user_id)
        if result.ok:
            return

        recompute_detail = str(result.error)
        try:
            self.store.delete_trend_rows(user_id)
        except Exception as invalidate_error:
            logger.warning(
                "Unable to refresh materialized weight trends for user %s, and stale rows "
                "could not be invalidated. Trend views may remain stale until recompute "
                "succeeds; rerun trend recompute. Recompute detail: %s. "
                "Invalidation detail: %s",
                user_id,
                recompute_detail,
                invalidate_error,
            )
            return

        logger.warning(
            "Unable to refresh materialized weight trends for user %s; existing trend rows "
            "were invalidated and will be recomputed on next trend read. "
            "Detail: %s",
            user_id,
            recompute_detail,
        )
