"""
ChromaDB-backed relevance index
"""

import re
from typing import Dict, Optional, Sequence, Tuple

import chromadb
import numpy as np
from chromadb.api import ClientAPI
from chromadb.api.models.Collection import Collection
from chromadb.config import Settings

from ..config import get_config
from ..logging import get_logger
from ..memory.stream import MemoryStream

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


class ChromaRelevanceIndex:
    """Relevance scoring through a cosine-space ChromaDB collection per identity.

    Records are mirrored into the collection lazily, the first time a stream
    is queried after they were inserted. The first sync of a stream, and the
    first after it was rolled back, reconciles the whole collection with it,
    since a persistent collection may hold ids the stream no longer has.
    """

    def __init__(
        self,
        client: Optional[ClientAPI] = None,
        persist_directory: Optional[str] = None,
        collection_prefix: str = "memories"
    ):
        if client is None:
            client = chromadb.PersistentClient(
                path=persist_directory or get_config().database.chromadb_path,
                settings=Settings(anonymized_telemetry=False, allow_reset=True)
            )
        self.client = client
        self.collection_prefix = collection_prefix

        self.collections: Dict[str, Collection] = {}
        self._synced_upto: Dict[str, int] = {}  # highest record id mirrored per owner
        self._synced_stream: Dict[str, Tuple[int, int]] = {}  # (id(stream), revision) last reconciled
        self.logger = get_logger(__name__)

    def _get_collection_name(self, owner_id: str) -> str:
        name = _INVALID_NAME_CHARS.sub("_", f"{self.collection_prefix}_{owner_id}")
        return name[:63].rstrip("_-")

    def _collection(self, owner_id: str) -> Collection:
        if owner_id not in self.collections:
            self.collections[owner_id] = self.client.get_or_create_collection(
                name=self._get_collection_name(owner_id),
                metadata={"hnsw:space": "cosine"},
                embedding_function=None
            )
        return self.collections[owner_id]

    def sync(self, stream: MemoryStream) -> int:
        """Mirror records not yet in the collection. Returns how many were added."""
        collection = self._collection(stream.owner_id)
        if self._synced_stream.get(stream.owner_id) != (id(stream), stream.revision):
            return self._reconcile(stream, collection)

        synced = self._synced_upto.get(stream.owner_id, 0)
        pending = [record for record in stream if record.id > synced]
        if not pending:
            return 0

        self._upsert(collection, pending)
        self._synced_upto[stream.owner_id] = pending[-1].id
        self.logger.debug(f"Indexed {len(pending)} records for '{stream.owner_id}'")
        return len(pending)

    def _reconcile(self, stream: MemoryStream, collection: Collection) -> int:
        existing = set(collection.get(include=[])["ids"])
        stale = existing - {str(record.id) for record in stream}
        if stale:
            collection.delete(ids=sorted(stale))
            self.logger.info(f"Removed {len(stale)} stale vectors for '{stream.owner_id}'")

        records = stream.all()
        if records:
            self._upsert(collection, records)
        self._synced_upto[stream.owner_id] = records[-1].id if records else 0
        self._synced_stream[stream.owner_id] = (id(stream), stream.revision)
        return len(records)

    def _upsert(self, collection: Collection, records):
        collection.upsert(
            ids=[str(record.id) for record in records],
            embeddings=[list(record.embedding) for record in records],
            documents=[record.text for record in records],
            metadatas=[{"kind": record.kind.value, "importance": record.importance} for record in records]
        )

    def similarities(self, stream: MemoryStream, query_embedding: Sequence[float]) -> np.ndarray:
        if len(stream) == 0:
            return np.empty(0, dtype=np.float64)

        query = np.asarray(query_embedding, dtype=np.float64)
        if query.shape[0] != stream.dimension:
            raise ValueError(f"dimension mismatch: query {query.shape[0]} vs stream {stream.dimension}")
        if not np.any(query):
            return np.zeros(len(stream), dtype=np.float64)

        self.sync(stream)
        result = self._collection(stream.owner_id).query(
            query_embeddings=[query.tolist()],
            n_results=len(stream),
            include=["distances"]
        )

        # Cosine distance is 1 - similarity; anything not returned scores 0
        by_id = {
            int(record_id): 1.0 - float(distance)
            for record_id, distance in zip(result["ids"][0], result["distances"][0])
        }
        sims = np.array([by_id.get(record.id, 0.0) for record in stream], dtype=np.float64)
        return np.clip(np.nan_to_num(sims, nan=0.0), -1.0, 1.0)

    def drop(self, owner_id: str):
        """Delete an identity's collection"""
        self.client.delete_collection(self._get_collection_name(owner_id))
        self.collections.pop(owner_id, None)
        self._synced_upto.pop(owner_id, None)
        self._synced_stream.pop(owner_id, None)
