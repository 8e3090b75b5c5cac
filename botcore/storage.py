"""
Storage layer for feature state.

Uses SQLite for persistence. The engine itself keeps nothing here; the
message count feature records per-community activity.
"""

import sqlite3
import logging
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone
from contextlib import contextmanager

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent.parent / "data"
DB_NAME = "bot.db"

_db_path: Optional[Path] = None


def configure_storage(data_dir: Optional[Path] = None) -> Path:
    """Point storage at a data directory and make sure the schema exists."""
    global _db_path
    directory = Path(data_dir) if data_dir is not None else DATA_DIR
    directory.mkdir(parents=True, exist_ok=True)
    _db_path = directory / DB_NAME
    init_database()
    return _db_path


def get_db_path() -> Path:
    """Get the database path, creating the default directory if needed."""
    if _db_path is None:
        return configure_storage()
    return _db_path


@contextmanager
def get_connection():
    """Context manager for database connections."""
    conn = sqlite3.connect(get_db_path())
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_database():
    """Initialize database with required tables."""
    with get_connection() as conn:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS message_counts (
                community_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                count INTEGER NOT NULL DEFAULT 0,
                last_seen TIMESTAMP,
                PRIMARY KEY (community_id, user_id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS count_resets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                community_id TEXT NOT NULL,
                reset_by TEXT NOT NULL,
                note TEXT,
                timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_message_counts_community
            ON message_counts(community_id)
        """)

    logger.info(f"Database initialized at {_db_path}")


class MessageCountStore:
    """Per-community message counters."""

    def increment(self, community_id: str, user_id: str) -> None:
        """Add one message for a user."""
        with get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO message_counts (community_id, user_id, count, last_seen)
                VALUES (?, ?, 1, ?)
                ON CONFLICT(community_id, user_id) DO UPDATE SET
                    count = count + 1,
                    last_seen = excluded.last_seen
            """, (community_id, user_id, datetime.now(timezone.utc).isoformat()))

    def get_count(self, community_id: str, user_id: str) -> int:
        with get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT count FROM message_counts WHERE community_id = ? AND user_id = ?",
                (community_id, user_id)
            )
            row = cursor.fetchone()
            return row["count"] if row else 0

    def top_users(self, community_id: str, limit: int = 10, prefix: str = "") -> list[tuple[str, int]]:
        """Users with the most messages, optionally filtered by user id prefix."""
        with get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT user_id, count FROM message_counts
                WHERE community_id = ? AND user_id LIKE ?
                ORDER BY count DESC, user_id ASC
                LIMIT ?
            """, (community_id, f"{prefix}%", limit))
            return [(row["user_id"], row["count"]) for row in cursor.fetchall()]

    def reset(self, community_id: str, reset_by: str, note: Optional[str] = None) -> int:
        """
        Clear all counts for a community and record who did it.

        Returns:
            Number of user rows removed
        """
        with get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM message_counts WHERE community_id = ?",
                (community_id,)
            )
            removed = cursor.rowcount
            cursor.execute("""
                INSERT INTO count_resets (community_id, reset_by, note)
                VALUES (?, ?, ?)
            """, (community_id, reset_by, note))
            return removed

    def last_reset_note(self, community_id: str) -> Optional[str]:
        with get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT note FROM count_resets
                WHERE community_id = ?
                ORDER BY id DESC LIMIT 1
            """, (community_id,))
            row = cursor.fetchone()
            return row["note"] if row else None

    def set_last_reset_note(self, community_id: str, note: str) -> bool:
        """Attach a note to the most recent reset. Returns False if there is none."""
        with get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                UPDATE count_resets SET note = ?
                WHERE id = (
                    SELECT id FROM count_resets
                    WHERE community_id = ?
                    ORDER BY id DESC LIMIT 1
                )
            """, (note, community_id))
            return cursor.rowcount > 0
