"""SQLite persistence backend for the rule store."""

import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite

from .config import get_default_db_path
from .models import DynamicRule, KnowledgeEntry, StaticRule, StoreState

logger = logging.getLogger("hbknowledge.persistence")

SCHEMA = """
CREATE TABLE IF NOT EXISTS static_rules (
    position INTEGER PRIMARY KEY,
    id TEXT NOT NULL UNIQUE,
    pattern TEXT NOT NULL,
    description TEXT NOT NULL,
    severity TEXT NOT NULL,
    correction_id TEXT,
    fix_suggestion TEXT
);

CREATE TABLE IF NOT EXISTS dynamic_rules (
    id TEXT PRIMARY KEY,
    pattern TEXT NOT NULL,
    description TEXT NOT NULL,
    severity TEXT NOT NULL,
    correction_id TEXT,
    fix_suggestion TEXT,
    deprecated_api TEXT NOT NULL,
    source_release TEXT NOT NULL,
    review_status TEXT NOT NULL DEFAULT 'draft',
    generated_at TEXT NOT NULL,
    source TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_dynamic_rules_status ON dynamic_rules(review_status);
CREATE INDEX IF NOT EXISTS idx_dynamic_rules_release ON dynamic_rules(source_release);

CREATE TABLE IF NOT EXISTS knowledge_entries (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    violation_ids JSON NOT NULL DEFAULT '[]',
    version_range TEXT NOT NULL,
    confidence REAL NOT NULL DEFAULT 1.0,
    last_verified_at TEXT,
    source TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS store_meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


class RuleDatabase:
    """Async SQLite backend that round-trips the full logical store state."""

    def __init__(self, db_path: str | None = None):
        self.db_path = Path(os.path.expanduser(db_path or get_default_db_path()))
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @asynccontextmanager
    async def _connection(self, *, commit: bool = False) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection, initialising the schema on first use.

        Args:
            commit: If True, commit on success, rollback on error.
        """
        conn = await aiosqlite.connect(self.db_path)
        conn.row_factory = aiosqlite.Row
        try:
            async with self._init_lock:
                if not self._initialized:
                    logger.info(f"Initializing rule database at {self.db_path}")
                    await conn.executescript(SCHEMA)
                    await conn.commit()
                    self._initialized = True
            yield conn
            if commit:
                await conn.commit()
                logger.debug("Transaction committed")
        except Exception as e:
            if commit:
                await conn.rollback()
                logger.warning(f"Transaction rolled back due to error: {e}")
            raise
        finally:
            await conn.close()

    async def save(self, state: StoreState) -> None:
        """Replace everything stored with ``state`` in a single transaction."""
        async with self._connection(commit=True) as conn:
            await conn.execute("DELETE FROM static_rules")
            await conn.execute("DELETE FROM dynamic_rules")
            await conn.execute("DELETE FROM knowledge_entries")

            await conn.executemany(
                """
                INSERT INTO static_rules (
                    position, id, pattern, description, severity, correction_id, fix_suggestion
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        position,
                        rule.id,
                        rule.pattern,
                        rule.description,
                        rule.severity,
                        rule.correction_id,
                        rule.fix_suggestion,
                    )
                    for position, rule in enumerate(state.static_rules)
                ],
            )
            await conn.executemany(
                """
                INSERT INTO dynamic_rules (
                    id, pattern, description, severity, correction_id, fix_suggestion,
                    deprecated_api, source_release, review_status, generated_at, source
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        rule.id,
                        rule.pattern,
                        rule.description,
                        rule.severity,
                        rule.correction_id,
                        rule.fix_suggestion,
                        rule.deprecated_api,
                        rule.source_release,
                        rule.review_status,
                        rule.generated_at.isoformat(),
                        rule.source,
                    )
                    for rule in state.dynamic_rules
                ],
            )
            await conn.executemany(
                """
                INSERT INTO knowledge_entries (
                    id, title, content, violation_ids, version_range,
                    confidence, last_verified_at, source
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        entry.id,
                        entry.title,
                        entry.content,
                        json.dumps(entry.violation_ids),
                        entry.version_range,
                        entry.confidence,
                        entry.last_verified_at.isoformat() if entry.last_verified_at else None,
                        entry.source,
                    )
                    for entry in state.entries
                ],
            )
            await conn.execute(
                "INSERT OR REPLACE INTO store_meta (key, value) VALUES ('saved_at', ?)",
                (datetime.now(UTC).isoformat(),),
            )
        logger.debug(f"Saved store state to {self.db_path}")

    async def load(self) -> StoreState | None:
        """Read the stored state back, or None if nothing was ever saved."""
        async with self._connection() as conn:
            cursor = await conn.execute("SELECT value FROM store_meta WHERE key = 'saved_at'")
            if await cursor.fetchone() is None:
                return None

            cursor = await conn.execute("SELECT * FROM static_rules ORDER BY position")
            static_rows = await cursor.fetchall()
            cursor = await conn.execute("SELECT * FROM dynamic_rules ORDER BY generated_at, id")
            dynamic_rows = await cursor.fetchall()
            cursor = await conn.execute("SELECT * FROM knowledge_entries ORDER BY id")
            entry_rows = await cursor.fetchall()

        return StoreState(
            static_rules=[self._row_to_static(row) for row in static_rows],
            dynamic_rules=[self._row_to_dynamic(row) for row in dynamic_rows],
            entries=[self._row_to_entry(row) for row in entry_rows],
        )

    async def last_saved_at(self) -> datetime | None:
        async with self._connection() as conn:
            cursor = await conn.execute("SELECT value FROM store_meta WHERE key = 'saved_at'")
            row = await cursor.fetchone()
        return datetime.fromisoformat(row["value"]) if row else None

    def _row_to_static(self, row: aiosqlite.Row) -> StaticRule:
        return StaticRule(
            id=row["id"],
            pattern=row["pattern"],
            description=row["description"],
            severity=row["severity"],
            correction_id=row["correction_id"],
            fix_suggestion=row["fix_suggestion"],
        )

    def _row_to_dynamic(self, row: aiosqlite.Row) -> DynamicRule:
        return DynamicRule(
            id=row["id"],
            pattern=row["pattern"],
            description=row["description"],
            severity=row["severity"],
            correction_id=row["correction_id"],
            fix_suggestion=row["fix_suggestion"],
            deprecated_api=row["deprecated_api"],
            source_release=row["source_release"],
            review_status=row["review_status"],
            generated_at=datetime.fromisoformat(row["generated_at"]),
            source=row["source"],
        )

    def _row_to_entry(self, row: aiosqlite.Row) -> KnowledgeEntry:
        return KnowledgeEntry(
            id=row["id"],
            title=row["title"],
            content=row["content"],
            violation_ids=json.loads(row["violation_ids"]),
            version_range=row["version_range"],
            confidence=row["confidence"],
            last_verified_at=(
                datetime.fromisoformat(row["last_verified_at"]) if row["last_verified_at"] else None
            ),
            source=row["source"],
        )
