from __future__ import annotations

import logging

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS turns (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    conv_key      TEXT NOT NULL,
    user_text     TEXT NOT NULL,
    bot_text      TEXT NOT NULL,
    timestamp_ms  INTEGER NOT NULL,
    source_kind   TEXT NOT NULL CHECK (source_kind IN ('text', 'image', 'other')),
    expires_at    REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_turns_key ON turns(conv_key, id);
CREATE INDEX IF NOT EXISTS idx_turns_expiry ON turns(expires_at);
"""


async def init_db(db_path: str) -> aiosqlite.Connection:
    """Open the SQLite database backing conversation memory and apply the schema."""
    conn = await aiosqlite.connect(db_path)
    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA synchronous=NORMAL")
    await conn.execute("PRAGMA temp_store=MEMORY")
    await conn.executescript(SCHEMA)
    await conn.commit()
    logger.info("Conversation database ready at %s", db_path)
    return conn
