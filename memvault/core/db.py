"""
SQLite schema and connection handling for the canonical content store.
"""

import sqlite3
import threading
from contextlib import contextmanager
from typing import Generator, List, Tuple

from .policy import Stage, guarded_call
from .errors import StoreError
from ..util.logging import logger


@contextmanager
def get_db(db_path: str) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


TABLE_STATEMENTS: List[str] = [
    '''
    CREATE TABLE IF NOT EXISTS memories (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        content TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS emails (
        id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        memory_id TEXT NOT NULL,
        sender TEXT,
        recipients TEXT,
        subject TEXT,
        date TEXT,
        company TEXT,
        message_id TEXT,
        in_reply_to TEXT,
        created_at TEXT NOT NULL,
        PRIMARY KEY (id, user_id)
    )
    ''',
]

# Columns added after the first emails schema shipped
EMAIL_MIGRATION_COLUMNS: List[Tuple[str, str]] = [
    ("message_id", "TEXT"),
    ("in_reply_to", "TEXT"),
]

INDEX_STATEMENTS: List[str] = [
    'CREATE INDEX IF NOT EXISTS idx_memories_user_created ON memories(user_id, created_at DESC)',
    'CREATE INDEX IF NOT EXISTS idx_emails_user ON emails(user_id)',
    'CREATE INDEX IF NOT EXISTS idx_emails_memory ON emails(user_id, memory_id)',
    'CREATE INDEX IF NOT EXISTS idx_emails_sender ON emails(user_id, sender)',
    'CREATE INDEX IF NOT EXISTS idx_emails_company ON emails(user_id, company)',
]


class SchemaLatch:
    """
    One-time schema initialization guard.

    All DDL is idempotent, so two callers racing past an unset flag only
    repeat work. A failed run leaves the flag unset so the next call retries.
    """

    def __init__(self, store, timeout: float = None):
        self._store = store
        self._timeout = timeout
        self._ready = False
        self._lock = threading.Lock()

    @property
    def ready(self) -> bool:
        with self._lock:
            return self._ready

    async def ensure(self) -> bool:
        """Create store objects if absent. Returns True when this call ran the DDL."""
        if self.ready:
            return False

        for statement in TABLE_STATEMENTS:
            await self._exec(statement)

        await self._migrate_email_columns()

        for statement in INDEX_STATEMENTS:
            await self._exec(statement)

        with self._lock:
            self._ready = True
        logger.info("Checked/created memories and emails tables")
        return True

    async def _exec(self, statement: str):
        await guarded_call("init_schema", Stage.CONTENT, self._store.exec_ddl(statement), self._timeout)

    async def _migrate_email_columns(self):
        outcome = await guarded_call("init_schema", Stage.CONTENT,
                                     self._store.table_columns("emails"), self._timeout)
        existing = set(outcome.value)

        for column, column_type in EMAIL_MIGRATION_COLUMNS:
            if column in existing:
                continue
            try:
                await self._exec(f"ALTER TABLE emails ADD COLUMN {column} {column_type}")
                logger.info(f"Migrated emails table: added column {column}")
            except StoreError:
                # A concurrent initializer may have added it first
                recheck = await guarded_call("init_schema", Stage.CONTENT,
                                             self._store.table_columns("emails"), self._timeout)
                if column not in recheck.value:
                    raise


def health_check(db_path: str) -> bool:
    """Check database health."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = [row[0] for row in cursor.fetchall()]
            return all(table in table_names for table in ("memories", "emails"))
    except sqlite3.Error:
        return False
