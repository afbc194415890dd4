"""
Memory orchestrator: create/update/delete across the content store and the vector index.

The content store is authoritative. The vector index is written second and is
never rolled back or reconciled here; whether an index failure aborts the
operation is decided by the failure policy table (policy.py):

    create  - index/embedding failure propagates after the content row is
              committed, leaving a content-only memory (gettable, not searchable)
    update  - index/embedding failure is logged; the index entry goes stale
    delete  - index failure is logged; the leftover vector is dropped by search
"""

import uuid
from typing import Dict, List, Mapping, Optional

from .config import get_timeouts
from .content_store import IContentStore
from .errors import NotFoundError, ValidationError
from .policy import Stage, guarded_call
from .schema import Memory
from ..util.logging import logger
from ..vector.embeddings import IEmbeddingProvider
from ..vector.index import IVectorStore
from ..vector.types import VectorRecord

_SCALAR_TYPES = (str, int, float, bool)


def validate_attributes(attributes: Optional[Mapping]) -> Dict[str, object]:
    """Index attributes must be a flat mapping of scalars."""
    if not attributes:
        return {}
    flat = {}
    for key, value in attributes.items():
        if not isinstance(key, str) or not key:
            raise ValidationError(f"Attribute names must be non-empty strings: {key!r}")
        if not isinstance(value, _SCALAR_TYPES):
            raise ValidationError(f"Attribute '{key}' must be a scalar, got {type(value).__name__}")
        flat[key] = value
    return flat


def _require_text(value: Optional[str], field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} cannot be empty")
    return value


class MemoryOrchestrator:
    """Owns the dual-store write protocol for a single generic memory."""

    def __init__(self, content_store: IContentStore, vector_store: IVectorStore,
                 embedding_provider: IEmbeddingProvider, timeouts: Optional[Dict[str, float]] = None):
        self.content_store = content_store
        self.vector_store = vector_store
        self.embedding_provider = embedding_provider
        self.timeouts = timeouts if timeouts is not None else get_timeouts()

    def _timeout(self, stage: Stage) -> Optional[float]:
        return self.timeouts.get(stage.value)

    async def _index(self, operation: str, memory_id: str, owner_id: str, text: str,
                     attributes: Dict[str, object], content_persisted: bool) -> bool:
        """Embed and upsert one memory. Returns False when the policy recovered a failure."""
        embedded = await guarded_call(
            operation, Stage.EMBEDDING, self.embedding_provider.embed(text),
            self._timeout(Stage.EMBEDDING), memory_id, content_persisted
        )
        if not embedded.ok:
            return False

        record = VectorRecord(id=memory_id, vector=embedded.value, metadata=attributes)
        upserted = await guarded_call(
            operation, Stage.INDEX, self.vector_store.upsert(record, owner_id),
            self._timeout(Stage.INDEX), memory_id, content_persisted
        )
        if upserted.ok:
            logger.log_vector_operation("upserted", memory_id, {
                "provider": self.vector_store.__class__.__name__,
                "namespace": owner_id,
                "dimension": len(embedded.value),
                "operation": operation,
            })
        return upserted.ok

    async def create(self, content: str, owner_id: str, attributes: Optional[Mapping] = None) -> str:
        """
        Store a new memory and index it for search.

        Returns:
            The newly minted memory id.

        Raises:
            ValidationError: empty content/owner or non-scalar attributes
            StoreError: content write failed; nothing else was attempted
            EmbeddingError, VectorIndexError: indexing failed after the content
                row was committed (``content_persisted`` is True)
        """
        _require_text(content, "content")
        _require_text(owner_id, "owner_id")
        flat_attributes = validate_attributes(attributes)

        memory_id = str(uuid.uuid4())

        await guarded_call("create", Stage.CONTENT,
                           self.content_store.put(memory_id, owner_id, content),
                           self._timeout(Stage.CONTENT), memory_id)
        logger.log_memory_operation("created", memory_id, owner_id, details={"length": len(content)})

        await self._index("create", memory_id, owner_id, content, flat_attributes, content_persisted=True)
        return memory_id

    async def update(self, memory_id: str, owner_id: str, new_content: str,
                     attributes: Optional[Mapping] = None) -> None:
        """
        Replace a memory's content, then re-embed it.

        The index upsert replaces the entry's attributes with ``attributes``.
        An index failure leaves the old vector in place and is not reported.
        """
        new_content = _require_text(new_content, "content").strip()
        flat_attributes = validate_attributes(attributes)

        outcome = await guarded_call("update", Stage.CONTENT,
                                     self.content_store.update(memory_id, owner_id, new_content),
                                     self._timeout(Stage.CONTENT), memory_id)
        if not outcome.value:
            raise NotFoundError(f"Memory {memory_id} not found for user {owner_id}", memory_id)
        logger.log_memory_operation("updated", memory_id, owner_id, details={"length": len(new_content)})

        indexed = await self._index("update", memory_id, owner_id, new_content, flat_attributes,
                                    content_persisted=True)
        if not indexed:
            logger.log_memory_operation("updated", memory_id, owner_id, status="index_stale")

    async def delete(self, memory_id: str, owner_id: str) -> None:
        """
        Delete a memory from the content store, then best-effort from the index.

        The index delete is attempted even when no content row matched, so
        retrying a delete also clears a leftover vector.
        """
        outcome = await guarded_call("delete", Stage.CONTENT,
                                     self.content_store.delete(memory_id, owner_id),
                                     self._timeout(Stage.CONTENT), memory_id)
        deleted = bool(outcome.value)
        if deleted:
            logger.log_memory_operation("deleted", memory_id, owner_id)

        removed = await guarded_call("delete", Stage.INDEX,
                                     self.vector_store.delete(memory_id, owner_id),
                                     self._timeout(Stage.INDEX), memory_id)
        if removed.ok:
            logger.log_vector_operation("deleted", memory_id, {
                "provider": self.vector_store.__class__.__name__,
                "namespace": owner_id,
            })

        if not deleted:
            raise NotFoundError(f"Memory {memory_id} not found for user {owner_id}", memory_id)

    async def get(self, memory_id: str, owner_id: str) -> Optional[Memory]:
        outcome = await guarded_call("get", Stage.CONTENT,
                                     self.content_store.get(memory_id, owner_id),
                                     self._timeout(Stage.CONTENT), memory_id)
        return outcome.value

    async def list(self, owner_id: str) -> List[Memory]:
        outcome = await guarded_call("list", Stage.CONTENT,
                                     self.content_store.list(owner_id, "created_at"),
                                     self._timeout(Stage.CONTENT))
        return outcome.value
