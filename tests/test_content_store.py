"""
Tests for the SQLite content store, email table and schema initialization.
"""

import asyncio
import sqlite3

import pytest

from memvault.core.content_store import SQLiteContentStore
from memvault.core.db import SchemaLatch, get_db, health_check
from memvault.core.email_memory import EmailPayload
from memvault.core.errors import StoreError


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "nested" / "memvault.db")


@pytest.fixture
def store(db_path):
    store = SQLiteContentStore(db_path)
    run(SchemaLatch(store).ensure())
    return store


def test_store_creates_parent_directory(db_path, tmp_path):
    SQLiteContentStore(db_path)
    assert (tmp_path / "nested").is_dir()


def test_put_and_get(store):
    created = run(store.put("m1", "alice", "hello world"))

    fetched = run(store.get("m1", "alice"))
    assert fetched == created
    assert fetched.created_at


def test_get_is_owner_scoped(store):
    run(store.put("m1", "alice", "hello"))

    assert run(store.get("m1", "bob")) is None
    assert run(store.get("missing", "alice")) is None


def test_get_many_returns_only_owned_existing_rows(store):
    run(store.put("m1", "alice", "one"))
    run(store.put("m2", "alice", "two"))
    run(store.put("m3", "bob", "three"))

    rows = run(store.get_many(["m1", "m2", "m3", "missing"], "alice"))

    assert set(rows) == {"m1", "m2"}
    assert rows["m2"].content == "two"
    assert run(store.get_many([], "alice")) == {}


def test_list_newest_first(store):
    for i in range(3):
        run(store.put(f"m{i}", "alice", f"note {i}"))
    run(store.put("b0", "bob", "bob's note"))

    assert [m.id for m in run(store.list("alice"))] == ["m2", "m1", "m0"]


def test_list_rejects_unknown_ordering(store):
    with pytest.raises(ValueError):
        run(store.list("alice", order_by="content"))


def test_update_reports_rows_changed(store):
    run(store.put("m1", "alice", "before"))

    assert run(store.update("m1", "alice", "after")) == 1
    assert run(store.update("m1", "bob", "hijack")) == 0
    assert run(store.update("missing", "alice", "x")) == 0
    assert run(store.get("m1", "alice")).content == "after"


def test_delete_reports_rows_removed(store):
    run(store.put("m1", "alice", "bye"))

    assert run(store.delete("m1", "bob")) == 0
    assert run(store.delete("m1", "alice")) == 1
    assert run(store.delete("m1", "alice")) == 0


def test_duplicate_id_is_rejected(store):
    run(store.put("m1", "alice", "first"))

    with pytest.raises(sqlite3.IntegrityError):
        run(store.put("m1", "alice", "second"))


def test_schema_latch_runs_once(db_path):
    store = SQLiteContentStore(db_path)
    latch = SchemaLatch(store)

    assert not latch.ready
    assert run(latch.ensure()) is True
    assert latch.ready
    assert run(latch.ensure()) is False
    assert health_check(db_path)


def test_schema_latch_is_idempotent_across_instances(db_path):
    store = SQLiteContentStore(db_path)
    run(SchemaLatch(store).ensure())
    run(store.put("m1", "alice", "survives re-init"))

    assert run(SchemaLatch(store).ensure()) is True
    assert run(store.get("m1", "alice")).content == "survives re-init"


def test_schema_latch_migrates_old_emails_table(db_path):
    store = SQLiteContentStore(db_path)
    with get_db(db_path) as conn:
        conn.execute(
            "CREATE TABLE emails (id TEXT NOT NULL, user_id TEXT NOT NULL, memory_id TEXT NOT NULL, "
            "sender TEXT, recipients TEXT, subject TEXT, date TEXT, company TEXT, "
            "created_at TEXT NOT NULL, PRIMARY KEY (id, user_id))"
        )
        conn.commit()

    run(SchemaLatch(store).ensure())

    columns = run(store.table_columns("emails"))
    assert "message_id" in columns
    assert "in_reply_to" in columns


def test_schema_latch_failure_leaves_flag_unset(content_store):
    content_store.fail.add("exec_ddl")
    latch = SchemaLatch(content_store, timeout=1.0)

    with pytest.raises(StoreError):
        run(latch.ensure())
    assert not latch.ready

    content_store.fail.clear()
    assert run(latch.ensure()) is True
    assert latch.ready


def test_health_check_without_schema(db_path):
    SQLiteContentStore(db_path)
    assert health_check(db_path) is False


def test_email_store_on_shared_database(sqlite_services):
    payload = EmailPayload(subject="Standup moved", body="Standup is at 10 tomorrow",
                           sender="lead@team.example.com", recipients=["dev@example.com"])
    memory_id = run(sqlite_services.emails.create_structured(payload, "alice"))

    rows = run(sqlite_services.email_store.get_many_with_content([memory_id, "missing"], "alice"))

    assert list(rows) == [memory_id]
    assert rows[memory_id].content.startswith("Standup moved\n")
    assert run(sqlite_services.email_store.delete(memory_id, "bob")) == 0
