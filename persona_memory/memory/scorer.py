"""
Memory scoring: recency, importance and relevance sub-scores

Each sub-score lives in [0, 1]:
- Recency: decay_factor ** hours since the record was last *accessed*
  (not created), so memories that keep getting recalled stay warm
- Importance: the record's importance min-max scaled against the range
  currently present in the stream (1.0 for every record when the range
  is a single value)
- Relevance: cosine similarity to the query embedding, mapped from
  [-1, 1] to [0, 1]

The combined score is the weighted sum using normalized weights.
"""

from datetime import datetime
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..config import get_config
from ..core.models import MemoryRecord, ScoredMemory, ScoringWeights, ensure_utc
from .relevance import NumpyRelevanceIndex, RelevanceIndex, cosine_similarity
from .stream import MemoryStream

SECONDS_PER_HOUR = 3600.0


class MemoryScorer:
    """Recency / importance / relevance scoring for memory records"""

    def __init__(
        self,
        weights: Optional[ScoringWeights] = None,
        decay_factor: Optional[float] = None,
        relevance_index: Optional[RelevanceIndex] = None
    ):
        scoring = get_config().scoring
        if weights is None:
            weights = ScoringWeights(
                recency=scoring.recency_weight,
                importance=scoring.importance_weight,
                relevance=scoring.relevance_weight
            )
        self.weights = weights.normalized()
        self.decay_factor = scoring.decay_factor if decay_factor is None else decay_factor
        if not (0.0 < self.decay_factor < 1.0):
            raise ValueError("decay_factor must be between 0.0 and 1.0 (exclusive)")

        self.relevance_index = relevance_index or NumpyRelevanceIndex()

    def recency(self, record: MemoryRecord, now: datetime) -> float:
        hours = (ensure_utc(now) - record.last_accessed_at).total_seconds() / SECONDS_PER_HOUR
        return self.decay_factor ** max(hours, 0.0)

    @staticmethod
    def scaled_importance(importance: int, importance_range: Optional[Tuple[int, int]]) -> float:
        if importance_range is None:
            return 1.0
        low, high = importance_range
        if high == low:
            return 1.0
        return (importance - low) / (high - low)

    @staticmethod
    def rescale_cosine(cosine: float) -> float:
        return (cosine + 1.0) / 2.0

    def relevance(self, query_embedding: Sequence[float], record: MemoryRecord) -> float:
        return self.rescale_cosine(cosine_similarity(query_embedding, record.embedding))

    def combine(self, recency: float, importance: float, relevance: float) -> float:
        w = self.weights
        return w.recency * recency + w.importance * importance + w.relevance * relevance

    def score(
        self,
        record: MemoryRecord,
        query_embedding: Sequence[float],
        now: datetime,
        importance_range: Optional[Tuple[int, int]] = None
    ) -> ScoredMemory:
        """Score a single record"""
        recency = self.recency(record, now)
        importance = self.scaled_importance(record.importance, importance_range)
        relevance = self.relevance(query_embedding, record)
        return ScoredMemory(
            record=record,
            recency=recency,
            importance=importance,
            relevance=relevance,
            combined=self.combine(recency, importance, relevance)
        )

    def score_all(
        self,
        stream: MemoryStream,
        query_embedding: Sequence[float],
        now: datetime
    ) -> List[ScoredMemory]:
        """Score every record in the stream, in insertion order"""
        if len(stream) == 0:
            return []

        records = stream.all()
        importance_range = stream.importance_range()
        cosines = np.asarray(self.relevance_index.similarities(stream, query_embedding), dtype=np.float64)
        if cosines.shape[0] != len(records):
            raise ValueError(
                f"relevance index returned {cosines.shape[0]} scores for {len(records)} records"
            )

        scored = []
        for record, cosine in zip(records, cosines):
            recency = self.recency(record, now)
            importance = self.scaled_importance(record.importance, importance_range)
            relevance = self.rescale_cosine(float(cosine))
            scored.append(ScoredMemory(
                record=record,
                recency=recency,
                importance=importance,
                relevance=relevance,
                combined=self.combine(recency, importance, relevance)
            ))
        return scored
