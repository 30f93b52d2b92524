"""SQLite database schema definitions."""

SCHEMA_SQL = """
-- Raw weigh-ins, one per user per calendar day (weights in grams)
CREATE TABLE IF NOT EXISTS weight_observations (
    observation_id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    date DATE NOT NULL,
    weight_grams INTEGER NOT NULL CHECK (weight_grams > 0),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(user_id, date)
);

CREATE INDEX IF NOT EXISTS idx_weight_observations_user_date
    ON weight_observations(user_id, date);

-- Materialized trend/confidence values per observation, avoiding a model
-- run on every read. Rows are replaced as a set per user.
CREATE TABLE IF NOT EXISTS weight_trends (
    observation_id INTEGER PRIMARY KEY,
    user_id INTEGER NOT NULL,
    date DATE NOT NULL,
    trend_weight_grams INTEGER NOT NULL,
    trend_ci_lower_grams INTEGER NOT NULL,
    trend_ci_upper_grams INTEGER NOT NULL,
    trend_std_grams INTEGER NOT NULL,
    model_version INTEGER NOT NULL DEFAULT 1,
    computed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (observation_id) REFERENCES weight_observations(observation_id)
        ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_weight_trends_user_date ON weight_trends(user_id, date);
"""


def get_schema_sql() -> str:
    """Return the complete schema SQL."""
    return SCHEMA_SQL
