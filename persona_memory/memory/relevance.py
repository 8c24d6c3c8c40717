"""
Relevance backends: cosine similarity between a query embedding and every
record in a stream, returned in insertion order.
"""

from typing import Protocol, Sequence

import numpy as np

from .stream import MemoryStream


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either has zero norm"""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"dimension mismatch: {va.shape[0]} vs {vb.shape[0]}")

    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / denom, -1.0, 1.0))


class RelevanceIndex(Protocol):
    """Contract for anything that can score a query against a whole stream"""

    def similarities(self, stream: MemoryStream, query_embedding: Sequence[float]) -> np.ndarray:
        """Cosine similarity per record, aligned with ``stream.all()``"""
        ...


class NumpyRelevanceIndex:
    """Exact in-process cosine similarity over the stream's embedding matrix"""

    def similarities(self, stream: MemoryStream, query_embedding: Sequence[float]) -> np.ndarray:
        if len(stream) == 0:
            return np.empty(0, dtype=np.float64)

        matrix = stream.embedding_matrix()
        query = np.asarray(query_embedding, dtype=np.float64)
        if query.shape[0] != matrix.shape[1]:
            raise ValueError(f"dimension mismatch: query {query.shape[0]} vs stream {matrix.shape[1]}")

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        with np.errstate(divide="ignore", invalid="ignore"):
            sims = np.where(norms > 0, dots / norms, 0.0)
        return np.clip(sims, -1.0, 1.0)
