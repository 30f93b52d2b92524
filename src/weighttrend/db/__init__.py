"""SQLite storage for weigh-ins and materialized trends."""

from weighttrend.db.connection import DatabaseConnection, get_db, set_db

__all__ = ["DatabaseConnection", "get_db", "set_db"]
