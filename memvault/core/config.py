"""
Configuration for the memory service, read from environment variables.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Database path configuration
DB_PATH = os.getenv("DB_PATH", "./data/memvault.db")

DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Vector index and embedding provider selection
VECTOR_PROVIDER = os.getenv("VECTOR_PROVIDER", "memory")  # memory|faiss
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "hash")  # hash|sentence
EMBED_DIM = int(os.getenv("EMBED_DIM", "384"))
EMBED_MODEL_NAME = os.getenv("EMBED_MODEL_NAME", "all-MiniLM-L6-v2")

# Bounded timeouts for every external call (seconds)
STORE_TIMEOUT_SEC = float(os.getenv("STORE_TIMEOUT_SEC", "5"))
INDEX_TIMEOUT_SEC = float(os.getenv("INDEX_TIMEOUT_SEC", "5"))
EMBED_TIMEOUT_SEC = float(os.getenv("EMBED_TIMEOUT_SEC", "30"))

# Search defaults
DEFAULT_TOP_K = int(os.getenv("DEFAULT_TOP_K", "10"))
MAX_TOP_K = int(os.getenv("MAX_TOP_K", "100"))

# Version string
VERSION = "0.3.0"


def get_db_path() -> str:
    """Current database path; re-read so tests can point at a temporary file."""
    return os.getenv("DB_PATH", DB_PATH)


def get_vector_store():
    """Get configured vector store implementation."""
    provider = os.getenv("VECTOR_PROVIDER", VECTOR_PROVIDER)

    if provider == "faiss":
        from memvault.vector.faiss_store import FaissVectorStore
        return FaissVectorStore(dimension=get_embed_dimension())

    # Default to memory store for unknown providers
    from memvault.vector.index import SimpleInMemoryVectorStore
    return SimpleInMemoryVectorStore()


def get_embedding_provider():
    """Get configured embedding provider implementation."""
    provider = os.getenv("EMBED_PROVIDER", EMBED_PROVIDER)

    if provider == "sentence":
        from memvault.vector.embeddings import SentenceTransformerEmbedding
        return SentenceTransformerEmbedding(os.getenv("EMBED_MODEL_NAME", EMBED_MODEL_NAME))

    from memvault.vector.embeddings import DeterministicHashEmbedding
    return DeterministicHashEmbedding(dimension=get_embed_dimension())


def get_embed_dimension() -> int:
    return int(os.getenv("EMBED_DIM", str(EMBED_DIM)))


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def get_timeouts() -> dict:
    """Per-stage call timeouts in seconds."""
    return {
        "content": float(os.getenv("STORE_TIMEOUT_SEC", str(STORE_TIMEOUT_SEC))),
        "structured": float(os.getenv("STORE_TIMEOUT_SEC", str(STORE_TIMEOUT_SEC))),
        "index": float(os.getenv("INDEX_TIMEOUT_SEC", str(INDEX_TIMEOUT_SEC))),
        "embedding": float(os.getenv("EMBED_TIMEOUT_SEC", str(EMBED_TIMEOUT_SEC))),
    }


def ensure_db_directory(db_path: str = None):
    """Ensure the database directory exists."""
    Path(db_path or get_db_path()).parent.mkdir(parents=True, exist_ok=True)
