"""
Semantic search: rank by vector similarity, then join back to the canonical store.

Vector hits whose id no longer resolves to a stored record are dropped, so
entries left behind by failed index deletes never reach the caller.
"""

from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from .config import DEFAULT_TOP_K, get_timeouts
from .content_store import IContentStore
from .policy import Stage, guarded_call
from .schema import SearchHit
from ..util.logging import logger
from ..vector.embeddings import IEmbeddingProvider
from ..vector.index import IVectorStore

# (ids, owner_id) -> {id: record}, one round trip for the whole id set
RecordResolver = Callable[[Sequence[str], str], Awaitable[Dict[str, Any]]]

_MISSING = object()


def _attribute(record: Any, name: str, fallback: Mapping[str, Any]) -> Any:
    """Read an attribute from the merged record, falling back to index metadata."""
    if isinstance(record, Mapping):
        value = record.get(name, _MISSING)
    else:
        value = getattr(record, name, _MISSING)
    if value is _MISSING:
        value = fallback.get(name)
    return value


def matches_filter(record: Any, attribute_filter: Optional[Mapping[str, Any]],
                   index_attributes: Optional[Mapping[str, Any]] = None) -> bool:
    """Exact-match filter; filter entries with empty values are ignored."""
    if not attribute_filter:
        return True
    fallback = index_attributes or {}
    for name, expected in attribute_filter.items():
        if expected is None or expected == "":
            continue
        if _attribute(record, name, fallback) != expected:
            return False
    return True


class SearchEngine:
    """Embeds a query, ranks via the vector index and merges with stored records."""

    def __init__(self, content_store: IContentStore, vector_store: IVectorStore,
                 embedding_provider: IEmbeddingProvider, timeouts: Optional[Dict[str, float]] = None,
                 default_top_k: int = DEFAULT_TOP_K):
        self.content_store = content_store
        self.vector_store = vector_store
        self.embedding_provider = embedding_provider
        self.timeouts = timeouts if timeouts is not None else get_timeouts()
        self.default_top_k = default_top_k

    async def search(
        self,
        query_text: str,
        owner_id: str,
        top_k: Optional[int] = None,
        attribute_filter: Optional[Mapping[str, Any]] = None,
        resolver: Optional[RecordResolver] = None,
        resolver_stage: Stage = Stage.CONTENT,
    ) -> List[SearchHit]:
        """
        Perform semantic search within one owner's namespace.

        Args:
            query_text: Text to embed; emptiness is rejected by callers
            owner_id: Namespace to query and owner scope for the join
            top_k: Candidates requested from the vector index, passed through unchanged
            attribute_filter: Exact-match constraints on the merged record
            resolver: Batched record lookup; defaults to the content store
            resolver_stage: Failure-policy stage of the resolver

        Returns:
            Hits in descending similarity order. Filtering removes hits but never reorders them.
        """
        top_k = self.default_top_k if top_k is None else top_k

        embedded = await guarded_call("search", Stage.EMBEDDING, self.embedding_provider.embed(query_text),
                                      self.timeouts.get(Stage.EMBEDDING.value))
        if not embedded.ok:
            return []

        ranked = await guarded_call("search", Stage.INDEX,
                                    self.vector_store.query(embedded.value, owner_id, top_k),
                                    self.timeouts.get(Stage.INDEX.value))
        matches = ranked.value or []
        if not matches:
            return []

        resolve = resolver or self.content_store.get_many
        resolved = await guarded_call("search", resolver_stage,
                                      resolve([m.id for m in matches], owner_id),
                                      self.timeouts.get(Stage(resolver_stage).value))
        records = resolved.value or {}

        hits = []
        orphans = 0
        for match in matches:
            record = records.get(match.id)
            if record is None:
                orphans += 1
                continue
            if not matches_filter(record, attribute_filter, match.metadata):
                continue
            hits.append(SearchHit(id=match.id, score=float(match.score), record=record,
                                  attributes=dict(match.metadata)))

        logger.log_operation("search", "success", {
            "owner_id": owner_id,
            "candidates": len(matches),
            "orphans_dropped": orphans,
            "returned": len(hits),
        })
        return hits
