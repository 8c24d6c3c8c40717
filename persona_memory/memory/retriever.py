"""
Budget-constrained memory retrieval

Ranks every record in a stream by combined score and greedily packs the
ranked list into a token budget. Packing respects rank order rather than
maximizing fill: the walk stops at the first record that no longer fits,
except that a record too large to fit even on its own is skipped and the
walk moves on to the next one. Selection counts as an access, so every
selected record is touched.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from ..core.exceptions import InvalidRecord
from ..core.models import MemoryKind, MemoryRecord, RetrievalResult, ScoredMemory, ensure_utc, utc_now
from ..llm.base import EmbeddingProvider, TokenCounter, guarded_call
from ..logging import get_logger
from .scorer import MemoryScorer
from .stream import MemoryStream


def rank_key(scored: ScoredMemory):
    """Combined score descending, then newer created_at, then lower id"""
    record = scored.record
    return (-scored.combined, -record.created_at.timestamp(), record.id)


class MemoryRetriever:
    """Scores, ranks and packs memories for a query"""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        token_counter: TokenCounter,
        scorer: Optional[MemoryScorer] = None
    ):
        self.embedder = embedder
        self.token_counter = token_counter
        self.scorer = scorer or MemoryScorer()
        self.logger = get_logger(__name__)

    def rank(self, scored: Iterable[ScoredMemory]) -> List[ScoredMemory]:
        return sorted(scored, key=rank_key)

    def pack(
        self,
        ranked: List[ScoredMemory],
        budget: int,
        max_records: Optional[int] = None
    ) -> Tuple[List[ScoredMemory], List[int], int]:
        """Greedy rank-order packing. Returns (selected, skipped ids, units used)."""
        selected: List[ScoredMemory] = []
        skipped: List[int] = []
        used = 0

        for scored in ranked:
            if max_records is not None and len(selected) >= max_records:
                break
            units = self.token_counter.count_units(scored.record.text)
            if units > budget:
                skipped.append(scored.record.id)
                self.logger.warning(
                    f"Memory {scored.record.id} needs {units} units, budget is {budget}; skipping"
                )
                continue
            if used + units > budget:
                break
            selected.append(scored)
            used += units

        return selected, skipped, used

    async def retrieve_scored(
        self,
        stream: MemoryStream,
        query_text: str,
        budget: int,
        now: Optional[datetime] = None,
        kinds: Optional[Iterable[MemoryKind]] = None,
        max_records: Optional[int] = None
    ) -> RetrievalResult:
        """Retrieve memories with their scores and packing details"""
        if budget < 0:
            raise ValueError("budget must be non-negative")

        if len(stream) == 0:
            self.logger.debug(f"Empty stream for '{stream.owner_id}', nothing to retrieve")
            return RetrievalResult(budget=budget)

        now = ensure_utc(now) if now is not None else utc_now()
        query_embedding = await guarded_call("embed", self.embedder.embed(query_text))

        scored = self.scorer.score_all(stream, query_embedding, now)
        if kinds is not None:
            allowed = set(kinds)
            scored = [s for s in scored if s.record.kind in allowed]

        ranked = self.rank(scored)
        selected, skipped, used = self.pack(ranked, budget, max_records=max_records)

        for item in selected:
            try:
                stream.touch(item.record.id, now)
            except InvalidRecord as e:
                self.logger.warning(f"Leaving access time unchanged: {e}")

        self.logger.debug(
            f"Retrieved {len(selected)}/{len(ranked)} memories for '{stream.owner_id}' "
            f"({used}/{budget} units, {len(skipped)} oversized)"
        )
        return RetrievalResult(selected=selected, skipped_ids=skipped, units_used=used, budget=budget)

    async def retrieve(
        self,
        stream: MemoryStream,
        query_text: str,
        budget: int,
        now: Optional[datetime] = None,
        kinds: Optional[Iterable[MemoryKind]] = None,
        max_records: Optional[int] = None
    ) -> List[MemoryRecord]:
        """Selected records in ranked order (not chronological)"""
        result = await self.retrieve_scored(
            stream, query_text, budget, now=now, kinds=kinds, max_records=max_records
        )
        return result.records
