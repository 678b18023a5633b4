"""Build journal: a SQLite record of every compile run."""

from __future__ import annotations

import aiosqlite

SCHEMA_VERSION = 1

SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- One row per submitted compilation unit
CREATE TABLE IF NOT EXISTS compile_runs (
    id TEXT PRIMARY KEY,
    entry TEXT NOT NULL,
    output_path TEXT NOT NULL,
    state TEXT NOT NULL,
    created_at REAL NOT NULL,
    started_at REAL,
    completed_at REAL,
    error TEXT,
    runtime_version TEXT
);

CREATE INDEX IF NOT EXISTS idx_compile_runs_state ON compile_runs(state);
CREATE INDEX IF NOT EXISTS idx_compile_runs_entry ON compile_runs(entry);
"""


async def init_db(db_path: str) -> aiosqlite.Connection:
    """
    Open the journal and create its schema if needed.

    Args:
        db_path: Path to SQLite file or ":memory:" for in-memory.

    Returns:
        Open database connection.
    """
    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row

    await conn.execute("PRAGMA journal_mode=WAL")

    async with conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
    ) as cursor:
        exists = await cursor.fetchone()

    if not exists:
        await conn.executescript(SCHEMA)
        await conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        await conn.commit()

    return conn


async def save_run(conn: aiosqlite.Connection, run: dict) -> None:
    """Insert or update a compile run."""
    columns = list(run.keys())
    placeholders = ", ".join(["?"] * len(columns))
    column_names = ", ".join(columns)
    updates = ", ".join(f"{c} = excluded.{c}" for c in columns if c != "id")

    await conn.execute(
        f"INSERT INTO compile_runs ({column_names}) VALUES ({placeholders}) "
        f"ON CONFLICT(id) DO UPDATE SET {updates}",
        list(run.values()),
    )
    await conn.commit()


async def get_run(conn: aiosqlite.Connection, run_id: str) -> dict | None:
    async with conn.execute("SELECT * FROM compile_runs WHERE id = ?", (run_id,)) as cursor:
        row = await cursor.fetchone()
        return dict(row) if row else None


async def list_runs(
    conn: aiosqlite.Connection,
    state: str | None = None,
    limit: int = 100,
) -> list[dict]:
    """List compile runs, oldest first, optionally filtered by state."""
    query = "SELECT * FROM compile_runs"
    params: list = []

    if state:
        query += " WHERE state = ?"
        params.append(state)

    query += " ORDER BY created_at, rowid LIMIT ?"
    params.append(limit)

    async with conn.execute(query, params) as cursor:
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]
