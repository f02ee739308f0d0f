"""SQLite Database Storage Module for Deep Work Insights.

This module owns the persisted schema used by the insight engine and
provides the two access paths it needs: reading focus sessions for a
window (the record source) and reading/upserting cached insights.

Database Schema:
    sessions table:
        - id: Primary key (autoincrement)
        - activity_type: Activity tag (indexed)
        - duration: Focused seconds
        - start_time / end_time: Unix timestamps
        - description: Optional user note
        - created_at: Unix timestamp when recorded (indexed)

    insights_cache table:
        - id: Primary key (autoincrement)
        - insight_type: daily, weekly, monthly or activity_<name> (indexed)
        - generated_at: Unix timestamp of generation
        - data_hash: Fingerprint of the sessions the text was generated from
        - insight_text: Generated text
        - time_period_start / time_period_end: Window bounds (indexed)
        - UNIQUE(insight_type, time_period_start, time_period_end)

Example:
    >>> storage = InsightStorage("/tmp/deepwork.db")
    >>> session_id = storage.save_session("writing", 1800, start, start + 1800)
    >>> rows = storage.get_sessions_in_range(day_start, day_end)
"""

import logging
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.home() / "deepwork-data"
DEFAULT_DB_NAME = "deepwork.db"


class InsightStorage:
    """SQLite interface for focus sessions and cached insights.

    Opens a fresh connection per operation, so one instance can be shared
    across threads. The schema is created on construction.

    Attributes:
        db_path (str): Absolute path to the SQLite database file
    """

    def __init__(self, db_path: str = None):
        """Initialize InsightStorage and ensure the schema exists.

        Args:
            db_path (str, optional): Path to SQLite database file. If None,
                uses ~/deepwork-data/deepwork.db

        Raises:
            RuntimeError: If the data directory cannot be created
        """
        if db_path is None:
            try:
                DEFAULT_DATA_DIR.mkdir(parents=True, exist_ok=True)
            except PermissionError as e:
                raise RuntimeError(
                    f"Permission denied creating data directory {DEFAULT_DATA_DIR}: {e}"
                ) from e
            db_path = DEFAULT_DATA_DIR / DEFAULT_DB_NAME

        self.db_path = str(db_path)
        self.init_db()

    @contextmanager
    def get_connection(self):
        """Context manager for SQLite database connections.

        Yields:
            sqlite3.Connection: Connection with Row factory enabled

        Raises:
            RuntimeError: If the database file cannot be opened
        """
        try:
            conn = sqlite3.connect(self.db_path, timeout=10)
            conn.row_factory = sqlite3.Row
            try:
                yield conn
            finally:
                conn.close()
        except (sqlite3.OperationalError, PermissionError) as e:
            raise RuntimeError(f"Database access error for {self.db_path}: {e}") from e

    def init_db(self):
        """Create tables and indexes if they don't exist."""
        with self.get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    activity_type TEXT NOT NULL,
                    duration INTEGER NOT NULL,
                    start_time INTEGER NOT NULL,
                    end_time INTEGER NOT NULL,
                    description TEXT,
                    created_at INTEGER NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_sessions_created_at ON sessions(created_at)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_sessions_activity_type ON sessions(activity_type)
            """)

            # Window queries filter on start_time
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_sessions_start_time ON sessions(start_time)
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS insights_cache (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    insight_type TEXT NOT NULL,
                    generated_at INTEGER NOT NULL,
                    data_hash TEXT NOT NULL,
                    insight_text TEXT NOT NULL,
                    time_period_start INTEGER NOT NULL,
                    time_period_end INTEGER NOT NULL,
                    UNIQUE(insight_type, time_period_start, time_period_end)
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_insights_insight_type
                ON insights_cache(insight_type)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_insights_time_period
                ON insights_cache(time_period_start, time_period_end)
            """)

            conn.commit()

    # Sessions

    def save_session(
        self,
        activity_type: str,
        duration: int,
        start_time: int,
        end_time: int,
        description: str = None,
        created_at: int = None,
    ) -> int:
        """Insert a completed focus session.

        Args:
            activity_type: Activity tag.
            duration: Focused seconds.
            start_time: Unix timestamp of session start.
            end_time: Unix timestamp of session end.
            description: Optional user note; blank notes are stored as NULL.
            created_at: Unix timestamp of recording (defaults to now).

        Returns:
            Database ID of the new session.
        """
        if created_at is None:
            created_at = int(time.time())
        if description is not None and not description.strip():
            description = None

        with self.get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO sessions
                    (activity_type, duration, start_time, end_time, description, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (activity_type, duration, start_time, end_time, description, created_at),
            )
            conn.commit()
            return cursor.lastrowid

    def get_session(self, session_id: int) -> Optional[Dict]:
        with self.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT id, activity_type, duration, start_time, end_time,
                       description, created_at
                FROM sessions
                WHERE id = ?
                """,
                (session_id,),
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def get_sessions_in_range(
        self,
        start: int,
        end: int,
        activity_type: str = None,
    ) -> List[Dict]:
        """Get sessions whose start_time falls in ``[start, end)``.

        Args:
            start: Inclusive Unix timestamp.
            end: Exclusive Unix timestamp.
            activity_type: Only return sessions of this activity.

        Returns:
            Session dicts, newest first.
        """
        query = """
            SELECT id, activity_type, duration, start_time, end_time,
                   description, created_at
            FROM sessions
            WHERE start_time >= ? AND start_time < ?
        """
        params = [start, end]
        if activity_type is not None:
            query += " AND activity_type = ?"
            params.append(activity_type)
        query += " ORDER BY start_time DESC, id DESC"

        with self.get_connection() as conn:
            cursor = conn.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    def get_activity_types(self) -> List[str]:
        with self.get_connection() as conn:
            cursor = conn.execute(
                "SELECT DISTINCT activity_type FROM sessions ORDER BY activity_type"
            )
            return [row["activity_type"] for row in cursor.fetchall()]

    def delete_session(self, session_id: int) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
            conn.commit()
            return cursor.rowcount > 0

    # Insight cache

    def get_cached_insight(
        self,
        insight_type: str,
        time_period_start: int,
        time_period_end: int,
    ) -> Optional[Dict]:
        """Get the cached insight for a (type, start, end) key, if any."""
        with self.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT id, insight_type, generated_at, data_hash, insight_text,
                       time_period_start, time_period_end
                FROM insights_cache
                WHERE insight_type = ? AND time_period_start = ? AND time_period_end = ?
                """,
                (insight_type, time_period_start, time_period_end),
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def save_cached_insight(
        self,
        insight_type: str,
        time_period_start: int,
        time_period_end: int,
        data_hash: str,
        insight_text: str,
        generated_at: int = None,
    ) -> int:
        """Insert or overwrite the cached insight for a window.

        Upserts on the unique (insight_type, time_period_start,
        time_period_end) key in a single statement, so concurrent writers
        for the same key leave one row holding the last write.

        Returns:
            Database ID of the inserted or updated row.
        """
        if generated_at is None:
            generated_at = int(time.time())

        with self.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO insights_cache
                    (insight_type, generated_at, data_hash, insight_text,
                     time_period_start, time_period_end)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(insight_type, time_period_start, time_period_end)
                DO UPDATE SET
                    generated_at = excluded.generated_at,
                    data_hash = excluded.data_hash,
                    insight_text = excluded.insight_text
                """,
                (insight_type, generated_at, data_hash, insight_text,
                 time_period_start, time_period_end),
            )
            cursor = conn.execute(
                """
                SELECT id FROM insights_cache
                WHERE insight_type = ? AND time_period_start = ? AND time_period_end = ?
                """,
                (insight_type, time_period_start, time_period_end),
            )
            row = cursor.fetchone()
            conn.commit()
            return row["id"]

    def delete_insights_older_than(self, timestamp: int) -> int:
        """Delete cached insights whose window ended before a timestamp.

        Returns:
            Number of rows removed.
        """
        with self.get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM insights_cache WHERE time_period_end < ?",
                (timestamp,),
            )
            conn.commit()
            deleted = cursor.rowcount
        if deleted:
            logger.info(f"Purged {deleted} cached insights with windows ending before {timestamp}")
        return deleted

    def count_cached_insights(self, insight_type: str = None) -> int:
        query = "SELECT COUNT(*) AS n FROM insights_cache"
        params = ()
        if insight_type is not None:
            query += " WHERE insight_type = ?"
            params = (insight_type,)
        with self.get_connection() as conn:
            return conn.execute(query, params).fetchone()["n"]
