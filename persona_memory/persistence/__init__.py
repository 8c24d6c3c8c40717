"""
Persistence layer: SQLite storage, JSONL snapshots and the ChromaDB relevance index
"""

from .sqlite_store import SQLiteMemoryStore, blob_to_embedding, embedding_to_blob
from .jsonl_snapshot import JsonlSnapshot
from .vector_index import ChromaRelevanceIndex

__all__ = [
    "SQLiteMemoryStore",
    "embedding_to_blob",
    "blob_to_embedding",
    "JsonlSnapshot",
    "ChromaRelevanceIndex"
]
