"""
Database schema initialization for ResearchVault.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from researchvault.observability.logging import get_logger

logger = get_logger(__name__)

def init_database(db_path: Path) -> None:
    """
    Initialize database with schema (idempotent)

    Safe to run multiple times - uses CREATE TABLE IF NOT EXISTS.

    Side Effects:
    - Creates the parent directory if needed
    - Creates tables and indexes if they don't exist
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS browsing_history_candidates (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                url TEXT NOT NULL,
                title TEXT,
                favicon TEXT,
                domain TEXT,
                visited_at TEXT,
                visit_count INTEGER DEFAULT 0,
                confidence_score REAL DEFAULT 0,
                suggested_reason TEXT,
                category TEXT,
                is_academic INTEGER DEFAULT 0,
                dismissed INTEGER DEFAULT 0,
                dismissed_at TEXT,
                subject TEXT,
                subject_confidence REAL,
                ai_classified INTEGER DEFAULT 0,
                classification_result TEXT,
                classified_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE(user_id, url)
            );

            CREATE INDEX IF NOT EXISTS idx_candidates_user_dismissed
                ON browsing_history_candidates(user_id, dismissed);

            CREATE INDEX IF NOT EXISTS idx_candidates_user_visited
                ON browsing_history_candidates(user_id, visited_at DESC);
        """)
        conn.commit()
    finally:
        conn.close()

    logger.info("Database schema initialized at %s", db_path)
