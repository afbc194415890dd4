"""
Vector memory overlay - non-canonical, advisory layer over SQLite canonical truth.
"""

import threading
from typing import Dict, List
import numpy as np

from .types import VectorRecord, QueryResult
from .index import IVectorStore, normalize


class _Namespace:
    """One FAISS index plus the string-id bookkeeping for a single namespace."""

    def __init__(self, faiss, dimension: int):
        # Inner product over normalized vectors == cosine similarity
        self.index = faiss.IndexIDMap2(faiss.IndexFlatIP(dimension))
        self.id_to_vector_index: Dict[str, int] = {}
        self.vector_id_map: Dict[int, str] = {}
        self.metadata: Dict[str, dict] = {}
        self.next_vector_index = 0


class FaissVectorStore(IVectorStore):
    """FAISS-backed implementation of IVectorStore with per-namespace indexes."""

    def __init__(self, dimension: int = 384):
        """
        Initialize FAISS vector store.

        Args:
            dimension: Dimension of the vectors (default: 384 for hash embeddings)
        """
        try:
            import faiss
        except ImportError:
            raise ImportError("FAISS not installed. Please install faiss-cpu package.")

        self.faiss = faiss
        self.dimension = dimension
        self._namespaces: Dict[str, _Namespace] = {}
        self._lock = threading.Lock()

    def _namespace(self, namespace: str) -> _Namespace:
        if namespace not in self._namespaces:
            self._namespaces[namespace] = _Namespace(self.faiss, self.dimension)
        return self._namespaces[namespace]

    def _remove(self, ns: _Namespace, record_id: str) -> None:
        vector_index = ns.id_to_vector_index.pop(record_id, None)
        if vector_index is None:
            return
        ns.index.remove_ids(np.array([vector_index], dtype=np.int64))
        ns.vector_id_map.pop(vector_index, None)
        ns.metadata.pop(record_id, None)

    async def upsert(self, record: VectorRecord, namespace: str) -> None:
        if record.vector is None or len(record.vector) == 0:
            raise ValueError(f"Vector record {record.id} has no vector")

        # Check dimension match and normalize vector for cosine similarity
        if len(record.vector) != self.dimension:
            raise ValueError(f"Vector dimension {len(record.vector)} does not match expected dimension {self.dimension}")

        vector_array = normalize(record.vector).reshape(1, -1)

        with self._lock:
            ns = self._namespace(namespace)
            # FAISS has no in-place update: drop the old vector first
            self._remove(ns, record.id)

            vector_index = ns.next_vector_index
            ns.index.add_with_ids(vector_array, np.array([vector_index], dtype=np.int64))
            ns.id_to_vector_index[record.id] = vector_index
            ns.vector_id_map[vector_index] = record.id
            ns.metadata[record.id] = dict(record.metadata)
            ns.next_vector_index += 1

    async def query(self, query_vector, namespace: str, top_k: int = 5) -> List[QueryResult]:
        if top_k <= 0:
            return []

        query_array = normalize(query_vector).reshape(1, -1)
        if not query_array.any():
            return []

        with self._lock:
            ns = self._namespaces.get(namespace)
            if ns is None or not ns.index.ntotal:
                return []

            scores, indices = ns.index.search(query_array, min(top_k, ns.index.ntotal))

            query_results = []
            for score, vector_index in zip(scores[0], indices[0]):
                record_id = ns.vector_id_map.get(int(vector_index))
                if record_id is None:
                    continue
                query_results.append(QueryResult(
                    id=record_id,
                    score=float(score),
                    metadata=dict(ns.metadata.get(record_id, {}))
                ))

        return query_results

    async def delete(self, record_id: str, namespace: str) -> None:
        with self._lock:
            ns = self._namespaces.get(namespace)
            if ns is not None:
                self._remove(ns, record_id)

    async def clear(self) -> None:
        with self._lock:
            self._namespaces.clear()

    def count(self, namespace: str) -> int:
        with self._lock:
            ns = self._namespaces.get(namespace)
            return int(ns.index.ntotal) if ns else 0
