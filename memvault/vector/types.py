"""
Vector memory overlay - non-canonical, advisory layer over SQLite canonical truth.
"""

from typing import Dict, Optional, Sequence, Union
import numpy as np
from dataclasses import dataclass, field

Scalar = Union[str, int, float, bool]


@dataclass
class VectorRecord:
    """Represents a vector record with metadata."""

    id: str
    """Same id as the memory's content row"""

    vector: Optional[Union[np.ndarray, Sequence[float]]]
    """The vector representation of the content"""

    metadata: Dict[str, Scalar] = field(default_factory=dict)
    """Flat scalar attributes kept for filtering and enrichment"""


@dataclass
class QueryResult:
    """Represents a search result from vector store."""

    id: str
    """Identifier for the matching record"""

    score: float
    """Cosine similarity of the match"""

    metadata: Dict[str, Scalar] = field(default_factory=dict)
    """Metadata associated with the matched record"""
