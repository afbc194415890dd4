"""
Error taxonomy for memory operations.

Content-store failures always abort an operation. Vector index and embedding
failures abort only where the failure policy marks them fatal (see policy.py).
"""

from typing import Optional


class MemvaultError(Exception):
    """Base class for all memory service errors."""

    status_code = 500

    def __init__(self, message: str, memory_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.memory_id = memory_id


class ValidationError(MemvaultError):
    """Malformed or missing required input, rejected before any store interaction."""

    status_code = 400


class NotFoundError(MemvaultError):
    """Update/delete target does not exist for the given owner."""

    status_code = 404


class StoreError(MemvaultError):
    """Content store (or structured record table) failure."""


class VectorIndexError(MemvaultError):
    """Vector index failure.

    When raised from a create, the content row is already committed:
    ``content_persisted`` is True and ``memory_id`` names the orphaned row.
    """

    def __init__(self, message: str, memory_id: Optional[str] = None, content_persisted: bool = False):
        super().__init__(message, memory_id)
        self.content_persisted = content_persisted


class EmbeddingError(VectorIndexError):
    """Embedding provider failure; handled under the index policy of the operation."""
