"""
Embedding providers: text -> fixed-length vector.
Non-canonical, advisory layer over SQLite canonical truth.
"""

import asyncio
import hashlib
import re
from abc import ABC, abstractmethod
from typing import List

_TOKEN_RE = re.compile(r"[a-z0-9]+")


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_text(self, text: str) -> List[float]:
        """Generate embedding vector for given text."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""

    async def embed(self, text: str) -> List[float]:
        """Embed without blocking the event loop."""
        return await asyncio.to_thread(self.embed_text, text)


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic feature-hashing embedding provider.

    Each lowercase word token is hashed to one dimension with a +/-1 sign, so
    texts sharing vocabulary land close together under cosine similarity.
    Useful for tests and offline deployments without a model download.
    """

    def __init__(self, dimension: int = 384):
        self.dimension = dimension

    def embed_text(self, text: str) -> List[float]:
        """Generate deterministic embedding vector using hash function."""
        vector = [0.0] * self.dimension

        for token in _TOKEN_RE.findall((text or "").lower()):
            digest = hashlib.md5(token.encode()).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign

        return vector

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension

    async def embed(self, text: str) -> List[float]:
        return self.embed_text(text)


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models."""

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self.model_name = model_name
        self._model = None
        self._dimension = None

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed_text(self, text: str) -> List[float]:
        """Generate embedding vector using sentence transformers."""
        embedding = self.model.encode(text, convert_to_tensor=False, normalize_embeddings=True)
        return embedding.tolist()

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        if self._dimension is None:
            self._dimension = self.model.get_sentence_embedding_dimension()
        return self._dimension
