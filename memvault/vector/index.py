"""
Vector memory overlay - non-canonical, advisory layer over SQLite canonical truth.

Entries are partitioned by namespace (the owner id); a query never crosses namespaces.
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, List
import numpy as np

from .types import VectorRecord, QueryResult


class IVectorStore(ABC):
    """Abstract interface for namespaced vector storage operations."""

    @abstractmethod
    async def upsert(self, record: VectorRecord, namespace: str) -> None:
        """Insert a record, replacing any existing record with the same id."""

    @abstractmethod
    async def query(self, query_vector, namespace: str, top_k: int = 5) -> List[QueryResult]:
        """Return up to top_k nearest records, highest score first."""

    @abstractmethod
    async def delete(self, record_id: str, namespace: str) -> None:
        """Delete a vector record by ID. Deleting a missing id is not an error."""

    @abstractmethod
    async def clear(self) -> None:
        """Clear all records from the store."""


def normalize(vector) -> np.ndarray:
    """Unit-normalize a vector; zero vectors are returned unchanged."""
    array = np.asarray(vector, dtype=np.float32)
    norm = np.linalg.norm(array)
    if norm > 0:
        return array / norm
    return array


class SimpleInMemoryVectorStore(IVectorStore):
    """Simple in-memory implementation of IVectorStore using cosine similarity."""

    def __init__(self):
        self._records: Dict[str, Dict[str, VectorRecord]] = {}  # namespace -> id -> record
        self._index: Dict[str, Dict[str, np.ndarray]] = {}      # namespace -> id -> normalized vector
        self._lock = threading.Lock()

    async def upsert(self, record: VectorRecord, namespace: str) -> None:
        if record.vector is None:
            raise ValueError(f"Vector record {record.id} has no vector")

        with self._lock:
            self._records.setdefault(namespace, {})[record.id] = record
            # Store normalized vector for similarity calculations
            self._index.setdefault(namespace, {})[record.id] = normalize(record.vector)

    async def query(self, query_vector, namespace: str, top_k: int = 5) -> List[QueryResult]:
        if top_k <= 0:
            return []

        with self._lock:
            vectors = dict(self._index.get(namespace, {}))
            records = dict(self._records.get(namespace, {}))

        if not vectors:
            return []

        # Normalize the query vector
        normalized_query = normalize(query_vector)
        if not normalized_query.any():
            return []

        similarities = {
            record_id: float(np.dot(normalized_query, stored_vector))
            for record_id, stored_vector in vectors.items()
        }

        # Sort by similarity (descending), id breaks ties deterministically
        ranked = sorted(similarities.items(), key=lambda x: (-x[1], x[0]))

        return [
            QueryResult(id=record_id, score=score, metadata=dict(records[record_id].metadata))
            for record_id, score in ranked[:top_k]
        ]

    async def delete(self, record_id: str, namespace: str) -> None:
        with self._lock:
            self._records.get(namespace, {}).pop(record_id, None)
            self._index.get(namespace, {}).pop(record_id, None)

    async def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._index.clear()

    def count(self, namespace: str) -> int:
        with self._lock:
            return len(self._records.get(namespace, {}))
