"""
Structured attribute table for email memories.

Rows are keyed by (id, user_id) where id is the memory's id; content lives in
the memories table and is joined in on read.
"""

import asyncio
import sqlite3
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from .config import ensure_db_directory
from .db import get_db
from .schema import EmailRecord

_EMAIL_COLUMNS = (
    "e.id, e.user_id, e.memory_id, e.sender, e.recipients, e.subject, e.date, "
    "e.company, e.message_id, e.in_reply_to, e.created_at"
)


class IEmailStore(ABC):
    """Abstract interface for structured email records."""

    @abstractmethod
    async def put(self, record: EmailRecord) -> EmailRecord:
        """Insert the structured attributes of one email memory."""

    @abstractmethod
    async def get_with_content(self, memory_id: str, owner_id: str) -> Optional[EmailRecord]:
        """Get one email joined with its memory content."""

    @abstractmethod
    async def get_many_with_content(self, memory_ids: Sequence[str], owner_id: str) -> Dict[str, EmailRecord]:
        """Single batched join over a set of ids. Ids without both rows are absent."""

    @abstractmethod
    async def list(self, owner_id: str, company: Optional[str] = None) -> List[EmailRecord]:
        """List an owner's emails by date then creation time, newest first."""

    @abstractmethod
    async def delete(self, memory_id: str, owner_id: str) -> int:
        """Delete one email's structured row; returns the number of rows removed."""


class SQLiteEmailStore(IEmailStore):
    """SQLite implementation sharing the database file with SQLiteContentStore."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        ensure_db_directory(db_path)

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> EmailRecord:
        keys = row.keys()
        return EmailRecord(
            id=row["id"],
            owner_id=row["user_id"],
            memory_id=row["memory_id"],
            sender=row["sender"] or "",
            recipients=row["recipients"] or "",
            subject=row["subject"] or "",
            date=row["date"] or "",
            company=row["company"],
            message_id=row["message_id"] or "",
            in_reply_to=row["in_reply_to"] or "",
            created_at=row["created_at"],
            content=row["content"] if "content" in keys else None,
        )

    async def put(self, record: EmailRecord) -> EmailRecord:
        return await asyncio.to_thread(self._put_sync, record)

    def _put_sync(self, record: EmailRecord) -> EmailRecord:
        with get_db(self.db_path) as conn:
            conn.execute(
                "INSERT INTO emails (id, user_id, memory_id, sender, recipients, subject, date, "
                "company, message_id, in_reply_to, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (record.id, record.owner_id, record.memory_id, record.sender, record.recipients,
                 record.subject, record.date, record.company, record.message_id,
                 record.in_reply_to, record.created_at)
            )
            conn.commit()
        return record

    async def get_with_content(self, memory_id: str, owner_id: str) -> Optional[EmailRecord]:
        return await asyncio.to_thread(self._get_with_content_sync, memory_id, owner_id)

    def _get_with_content_sync(self, memory_id: str, owner_id: str) -> Optional[EmailRecord]:
        with get_db(self.db_path) as conn:
            row = conn.execute(
                f"SELECT {_EMAIL_COLUMNS}, m.content FROM emails e "
                f"JOIN memories m ON e.memory_id = m.id AND m.user_id = e.user_id "
                f"WHERE e.memory_id = ? AND e.user_id = ?",
                (memory_id, owner_id)
            ).fetchone()
        return self._row_to_record(row) if row else None

    async def get_many_with_content(self, memory_ids: Sequence[str], owner_id: str) -> Dict[str, EmailRecord]:
        if not memory_ids:
            return {}
        return await asyncio.to_thread(self._get_many_sync, list(memory_ids), owner_id)

    def _get_many_sync(self, memory_ids: List[str], owner_id: str) -> Dict[str, EmailRecord]:
        placeholders = ",".join("?" * len(memory_ids))
        with get_db(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT {_EMAIL_COLUMNS}, m.content FROM emails e "
                f"JOIN memories m ON e.memory_id = m.id AND m.user_id = e.user_id "
                f"WHERE e.memory_id IN ({placeholders}) AND e.user_id = ?",
                (*memory_ids, owner_id)
            ).fetchall()
        return {row["memory_id"]: self._row_to_record(row) for row in rows}

    async def list(self, owner_id: str, company: Optional[str] = None) -> List[EmailRecord]:
        return await asyncio.to_thread(self._list_sync, owner_id, company)

    def _list_sync(self, owner_id: str, company: Optional[str]) -> List[EmailRecord]:
        query = f"SELECT {_EMAIL_COLUMNS} FROM emails e WHERE e.user_id = ?"
        params = [owner_id]
        if company:
            query += " AND e.company = ?"
            params.append(company)
        query += " ORDER BY e.date DESC, e.created_at DESC"

        with get_db(self.db_path) as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_record(row) for row in rows]

    async def delete(self, memory_id: str, owner_id: str) -> int:
        return await asyncio.to_thread(self._delete_sync, memory_id, owner_id)

    def _delete_sync(self, memory_id: str, owner_id: str) -> int:
        with get_db(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM emails WHERE memory_id = ? AND user_id = ?",
                (memory_id, owner_id)
            )
            conn.commit()
            return cursor.rowcount
