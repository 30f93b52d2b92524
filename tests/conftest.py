"""Pytest fixtures for weighttrend tests."""

from __future__ import annotations

import tempfile
from datetime import date, timedelta
from pathlib import Path

import pytest

from weighttrend.db.connection import DatabaseConnection
from weighttrend.tracking.queries import ObservationQueries
from weighttrend.tracking.units import kilograms_to_grams


@pytest.fixture
def temp_db():
    """Create a temporary database with schema."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    db = DatabaseConnection(db_path)
    db.initialize_schema()

    yield db

    # Cleanup
    db_path.unlink(missing_ok=True)


@pytest.fixture
def sample_weighins(temp_db):
    """Populate user 1 with two weeks of slowly declining weigh-ins."""
    weights = [80.0, 79.8, 80.1, 79.6, 79.5, 79.7, 79.2, 79.0, 79.3, 78.9, 78.7, 78.9, 78.4, 78.3]
    with temp_db.get_connection() as conn:
        for i, weight in enumerate(weights):
            ObservationQueries.upsert_observation(
                conn, 1, date(2025, 1, 1) + timedelta(days=i), kilograms_to_grams(weight)
            )
    return temp_db
