"""SQLite database layer for ritual persistence.

Manages the connection and schema. Uses aiosqlite for async access with
WAL mode for concurrent read performance.
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

# One row per ritual; payload_json holds the full final payload and the
# other columns are denormalised for listing
_SCHEMA = """
CREATE TABLE IF NOT EXISTS rituals (
    decision_id     TEXT PRIMARY KEY,
    question        TEXT NOT NULL DEFAULT '',
    question_hash   TEXT NOT NULL,
    status          TEXT NOT NULL,
    consensus_score REAL NOT NULL DEFAULT 0.0,
    verdict         TEXT NOT NULL DEFAULT '',
    total_cost      REAL NOT NULL DEFAULT 0.0,
    error           TEXT,
    created_at      TEXT NOT NULL,
    completed_at    TEXT,
    payload_json    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_rituals_created ON rituals(created_at);
CREATE INDEX IF NOT EXISTS idx_rituals_status ON rituals(status);
"""


async def init_db(db_path: str) -> aiosqlite.Connection:
    """Open the ritual database, creating it and its tables if needed.

    Args:
        db_path: Path to the SQLite database file. Supports ~ expansion.
    """
    resolved = Path(db_path).expanduser()
    resolved.parent.mkdir(parents=True, exist_ok=True)

    db = await aiosqlite.connect(str(resolved))
    await db.execute("PRAGMA journal_mode=WAL")
    await db.executescript(_SCHEMA)
    await db.commit()

    logger.info("Ritual database initialized at %s", resolved)
    return db


async def close_db(db: aiosqlite.Connection) -> None:
    """Close the database connection."""
    await db.close()
