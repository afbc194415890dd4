"""
Service wiring for the HTTP surface: one set of stores and services per process.
"""

import threading
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends

from ..core.config import get_db_path, get_embedding_provider, get_timeouts, get_vector_store, DEFAULT_TOP_K
from ..core.content_store import IContentStore, SQLiteContentStore
from ..core.db import SchemaLatch
from ..core.email_memory import EmailMemoryService
from ..core.email_store import IEmailStore, SQLiteEmailStore
from ..core.orchestrator import MemoryOrchestrator
from ..core.search_service import SearchEngine
from ..vector.embeddings import IEmbeddingProvider
from ..vector.index import IVectorStore


@dataclass
class Services:
    content_store: IContentStore
    email_store: IEmailStore
    vector_store: IVectorStore
    embedding_provider: IEmbeddingProvider
    orchestrator: MemoryOrchestrator
    search_engine: SearchEngine
    emails: EmailMemoryService
    schema_latch: SchemaLatch
    db_path: Optional[str] = None


def build_services(content_store: IContentStore, email_store: IEmailStore, vector_store: IVectorStore,
                   embedding_provider: IEmbeddingProvider, timeouts: dict = None,
                   db_path: Optional[str] = None) -> Services:
    """Assemble the core services over explicit store and provider instances."""
    timeouts = timeouts if timeouts is not None else get_timeouts()
    orchestrator = MemoryOrchestrator(content_store, vector_store, embedding_provider, timeouts)
    search_engine = SearchEngine(content_store, vector_store, embedding_provider, timeouts, DEFAULT_TOP_K)
    return Services(
        content_store=content_store,
        email_store=email_store,
        vector_store=vector_store,
        embedding_provider=embedding_provider,
        orchestrator=orchestrator,
        search_engine=search_engine,
        emails=EmailMemoryService(orchestrator, search_engine, email_store, timeouts),
        schema_latch=SchemaLatch(content_store, timeouts.get("content")),
        db_path=db_path,
    )


def build_default_services() -> Services:
    """Services backed by SQLite and the configured vector/embedding providers."""
    db_path = get_db_path()
    return build_services(
        SQLiteContentStore(db_path),
        SQLiteEmailStore(db_path),
        get_vector_store(),
        get_embedding_provider(),
        db_path=db_path,
    )


_services: Optional[Services] = None
_services_lock = threading.Lock()


def get_services() -> Services:
    global _services
    with _services_lock:
        if _services is None:
            _services = build_default_services()
        return _services


async def ensure_schema(services: Services = Depends(get_services)) -> Services:
    """Request dependency: no-op once the schema latch is set, retries otherwise."""
    await services.schema_latch.ensure()
    return services
