"""
Shared fakes for the content store, email store, vector index and embedding provider.
Each fake counts calls per method and can be told to fail or stall on demand.
"""

import asyncio
import itertools
from collections import Counter

import pytest

from memvault.api.deps import build_services
from memvault.core.content_store import IContentStore, SQLiteContentStore, utc_now
from memvault.core.email_memory import EmailMemoryService
from memvault.core.email_store import IEmailStore, SQLiteEmailStore
from memvault.core.orchestrator import MemoryOrchestrator
from memvault.core.schema import Memory
from memvault.core.search_service import SearchEngine
from memvault.vector.embeddings import DeterministicHashEmbedding
from memvault.vector.index import SimpleInMemoryVectorStore

TEST_TIMEOUTS = {"content": 1.0, "structured": 1.0, "index": 1.0, "embedding": 1.0}


class FaultInjection:
    """Mixin: per-method call counts, forced failures and stalls."""

    def _init_faults(self):
        self.calls = Counter()
        self.fail = set()
        self.stall = set()

    async def _enter(self, name: str):
        self.calls[name] += 1
        if name in self.stall:
            await asyncio.sleep(60)
        if name in self.fail:
            raise RuntimeError(f"{name} unavailable")


class FakeContentStore(FaultInjection, IContentStore):
    def __init__(self):
        self._init_faults()
        self.rows = {}
        self.order = {}
        self.ddl = []
        self._seq = itertools.count()

    async def put(self, memory_id, owner_id, content):
        await self._enter("put")
        memory = Memory(id=memory_id, owner_id=owner_id, content=content, created_at=utc_now())
        self.rows[memory_id] = memory
        self.order[memory_id] = next(self._seq)
        return memory

    async def get(self, memory_id, owner_id):
        await self._enter("get")
        memory = self.rows.get(memory_id)
        return memory if memory and memory.owner_id == owner_id else None

    async def get_many(self, memory_ids, owner_id):
        await self._enter("get_many")
        return {
            mid: self.rows[mid] for mid in memory_ids
            if mid in self.rows and self.rows[mid].owner_id == owner_id
        }

    async def delete(self, memory_id, owner_id):
        await self._enter("delete")
        memory = self.rows.get(memory_id)
        if memory and memory.owner_id == owner_id:
            del self.rows[memory_id]
            return 1
        return 0

    async def list(self, owner_id, order_by="created_at"):
        await self._enter("list")
        owned = [m for m in self.rows.values() if m.owner_id == owner_id]
        return sorted(owned, key=lambda m: (m.created_at, self.order[m.id]), reverse=True)

    async def update(self, memory_id, owner_id, content):
        await self._enter("update")
        memory = self.rows.get(memory_id)
        if memory and memory.owner_id == owner_id:
            memory.content = content
            return 1
        return 0

    async def exec_ddl(self, statement):
        await self._enter("exec_ddl")
        self.ddl.append(statement)


class FakeEmailStore(FaultInjection, IEmailStore):
    """Email rows joined against a FakeContentStore on read."""

    def __init__(self, content_store: FakeContentStore):
        self._init_faults()
        self.content_store = content_store
        self.rows = {}

    def _joined(self, record):
        memory = self.content_store.rows.get(record.memory_id)
        if memory is None or memory.owner_id != record.owner_id:
            return None
        record.content = memory.content
        return record

    async def put(self, record):
        await self._enter("put")
        self.rows[(record.memory_id, record.owner_id)] = record
        return record

    async def get_with_content(self, memory_id, owner_id):
        await self._enter("get_with_content")
        record = self.rows.get((memory_id, owner_id))
        return self._joined(record) if record else None

    async def get_many_with_content(self, memory_ids, owner_id):
        await self._enter("get_many_with_content")
        result = {}
        for mid in memory_ids:
            record = self.rows.get((mid, owner_id))
            if record and self._joined(record):
                result[mid] = record
        return result

    async def list(self, owner_id, company=None):
        await self._enter("list")
        owned = [r for (mid, owner), r in self.rows.items()
                 if owner == owner_id and (not company or r.company == company)]
        return sorted(owned, key=lambda r: (r.date, r.created_at), reverse=True)

    async def delete(self, memory_id, owner_id):
        await self._enter("delete")
        return 1 if self.rows.pop((memory_id, owner_id), None) else 0


class FlakyVectorStore(FaultInjection, SimpleInMemoryVectorStore):
    def __init__(self):
        SimpleInMemoryVectorStore.__init__(self)
        self._init_faults()

    async def upsert(self, record, namespace):
        await self._enter("upsert")
        await SimpleInMemoryVectorStore.upsert(self, record, namespace)

    async def query(self, query_vector, namespace, top_k=5):
        await self._enter("query")
        return await SimpleInMemoryVectorStore.query(self, query_vector, namespace, top_k)

    async def delete(self, record_id, namespace):
        await self._enter("delete")
        await SimpleInMemoryVectorStore.delete(self, record_id, namespace)


class FlakyEmbedding(FaultInjection, DeterministicHashEmbedding):
    def __init__(self, dimension=128):
        DeterministicHashEmbedding.__init__(self, dimension)
        self._init_faults()

    async def embed(self, text):
        await self._enter("embed")
        return self.embed_text(text)


@pytest.fixture
def content_store():
    return FakeContentStore()


@pytest.fixture
def email_store(content_store):
    return FakeEmailStore(content_store)


@pytest.fixture
def vector_store():
    return FlakyVectorStore()


@pytest.fixture
def embedder():
    return FlakyEmbedding()


@pytest.fixture
def orchestrator(content_store, vector_store, embedder):
    return MemoryOrchestrator(content_store, vector_store, embedder, TEST_TIMEOUTS)


@pytest.fixture
def search_engine(content_store, vector_store, embedder):
    return SearchEngine(content_store, vector_store, embedder, TEST_TIMEOUTS, default_top_k=10)


@pytest.fixture
def email_service(orchestrator, search_engine, email_store):
    return EmailMemoryService(orchestrator, search_engine, email_store, TEST_TIMEOUTS)


@pytest.fixture
def sqlite_services(tmp_path):
    """Real SQLite stores on a temporary database, with in-memory vectors."""
    db_path = str(tmp_path / "memvault.db")
    services = build_services(
        SQLiteContentStore(db_path),
        SQLiteEmailStore(db_path),
        SimpleInMemoryVectorStore(),
        DeterministicHashEmbedding(dimension=128),
        timeouts=TEST_TIMEOUTS,
        db_path=db_path,
    )
    asyncio.run(services.schema_latch.ensure())
    return services
