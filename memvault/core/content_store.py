"""
Canonical content store: one row per memory, keyed by id, scoped by owner.
The SQLite implementation is the source of truth the vector index is joined against.
"""

import asyncio
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from .config import ensure_db_directory
from .db import get_db
from .schema import Memory


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class IContentStore(ABC):
    """Abstract interface for the authoritative memory content store."""

    @abstractmethod
    async def put(self, memory_id: str, owner_id: str, content: str) -> Memory:
        """Insert a new memory row."""

    @abstractmethod
    async def get(self, memory_id: str, owner_id: str) -> Optional[Memory]:
        """Get one memory by id within an owner's scope."""

    @abstractmethod
    async def get_many(self, memory_ids: Sequence[str], owner_id: str) -> Dict[str, Memory]:
        """Fetch many memories in a single query, keyed by id. Missing ids are absent."""

    @abstractmethod
    async def delete(self, memory_id: str, owner_id: str) -> int:
        """Delete a memory; returns the number of rows removed."""

    @abstractmethod
    async def list(self, owner_id: str, order_by: str = "created_at") -> List[Memory]:
        """List an owner's memories, newest first."""

    @abstractmethod
    async def update(self, memory_id: str, owner_id: str, content: str) -> int:
        """Replace a memory's content; returns the number of rows changed."""

    @abstractmethod
    async def exec_ddl(self, statement: str) -> None:
        """Execute an idempotent schema statement."""

    async def table_columns(self, table: str) -> List[str]:
        """Column names of a table, used by schema migrations."""
        return []


class SQLiteContentStore(IContentStore):
    """SQLite-backed content store. Blocking driver calls run in a worker thread."""

    ORDERINGS = {
        "created_at": "created_at DESC, rowid DESC",
    }

    def __init__(self, db_path: str):
        self.db_path = db_path
        ensure_db_directory(db_path)

    @staticmethod
    def _row_to_memory(row: sqlite3.Row) -> Memory:
        return Memory(
            id=row["id"],
            owner_id=row["user_id"],
            content=row["content"],
            created_at=row["created_at"],
        )

    async def put(self, memory_id: str, owner_id: str, content: str) -> Memory:
        return await asyncio.to_thread(self._put_sync, memory_id, owner_id, content)

    def _put_sync(self, memory_id: str, owner_id: str, content: str) -> Memory:
        created_at = utc_now()
        with get_db(self.db_path) as conn:
            conn.execute(
                "INSERT INTO memories (id, user_id, content, created_at) VALUES (?, ?, ?, ?)",
                (memory_id, owner_id, content, created_at)
            )
            conn.commit()
        return Memory(id=memory_id, owner_id=owner_id, content=content, created_at=created_at)

    async def get(self, memory_id: str, owner_id: str) -> Optional[Memory]:
        return await asyncio.to_thread(self._get_sync, memory_id, owner_id)

    def _get_sync(self, memory_id: str, owner_id: str) -> Optional[Memory]:
        with get_db(self.db_path) as conn:
            row = conn.execute(
                "SELECT id, user_id, content, created_at FROM memories WHERE id = ? AND user_id = ?",
                (memory_id, owner_id)
            ).fetchone()
        return self._row_to_memory(row) if row else None

    async def get_many(self, memory_ids: Sequence[str], owner_id: str) -> Dict[str, Memory]:
        if not memory_ids:
            return {}
        return await asyncio.to_thread(self._get_many_sync, list(memory_ids), owner_id)

    def _get_many_sync(self, memory_ids: List[str], owner_id: str) -> Dict[str, Memory]:
        placeholders = ",".join("?" * len(memory_ids))
        with get_db(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT id, user_id, content, created_at FROM memories "
                f"WHERE id IN ({placeholders}) AND user_id = ?",
                (*memory_ids, owner_id)
            ).fetchall()
        return {row["id"]: self._row_to_memory(row) for row in rows}

    async def delete(self, memory_id: str, owner_id: str) -> int:
        return await asyncio.to_thread(self._delete_sync, memory_id, owner_id)

    def _delete_sync(self, memory_id: str, owner_id: str) -> int:
        with get_db(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM memories WHERE id = ? AND user_id = ?",
                (memory_id, owner_id)
            )
            conn.commit()
            return cursor.rowcount

    async def list(self, owner_id: str, order_by: str = "created_at") -> List[Memory]:
        if order_by not in self.ORDERINGS:
            raise ValueError(f"Unsupported ordering: {order_by}")
        return await asyncio.to_thread(self._list_sync, owner_id, self.ORDERINGS[order_by])

    def _list_sync(self, owner_id: str, ordering: str) -> List[Memory]:
        with get_db(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT id, user_id, content, created_at FROM memories WHERE user_id = ? ORDER BY {ordering}",
                (owner_id,)
            ).fetchall()
        return [self._row_to_memory(row) for row in rows]

    async def update(self, memory_id: str, owner_id: str, content: str) -> int:
        return await asyncio.to_thread(self._update_sync, memory_id, owner_id, content)

    def _update_sync(self, memory_id: str, owner_id: str, content: str) -> int:
        with get_db(self.db_path) as conn:
            cursor = conn.execute(
                "UPDATE memories SET content = ? WHERE id = ? AND user_id = ?",
                (content, memory_id, owner_id)
            )
            conn.commit()
            return cursor.rowcount

    async def exec_ddl(self, statement: str) -> None:
        await asyncio.to_thread(self._exec_sync, statement)

    def _exec_sync(self, statement: str) -> None:
        with get_db(self.db_path) as conn:
            conn.execute(statement)
            conn.commit()

    async def table_columns(self, table: str) -> List[str]:
        return await asyncio.to_thread(self._table_columns_sync, table)

    def _table_columns_sync(self, table: str) -> List[str]:
        with get_db(self.db_path) as conn:
            rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
        return [row["name"] for row in rows]
