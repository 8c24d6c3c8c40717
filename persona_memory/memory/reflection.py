"""
Reflection: compressing recent observations into higher-level memories

Importance of incoming observations accumulates until it crosses a
threshold. The engine then retrieves the records most worth reflecting on,
asks the model for insights and writes each insight back into the same
stream as a ``reflection`` citing the records it was drawn from.

Writes are all-or-nothing. Every insight gets its importance and embedding
before any record is inserted, and the accumulated importance is only reset
once the reflections are stored.
"""

import asyncio
from datetime import datetime
from typing import List, Optional, Sequence

from ..config import get_config
from ..core.models import MemoryKind, MemoryRecord, ensure_utc, utc_now
from ..llm.base import EmbeddingProvider, LLMProvider, guarded_call
from ..logging import get_logger
from .elicitation import elicit_memory_fields
from .retriever import MemoryRetriever
from .stream import MemoryStream


class ReflectionEngine:
    """Threshold-triggered synthesis of reflection and plan records"""

    def __init__(
        self,
        llm: LLMProvider,
        embedder: EmbeddingProvider,
        retriever: MemoryRetriever,
        threshold: Optional[int] = None,
        top_k: Optional[int] = None,
        max_insights: Optional[int] = None,
        retrieval_budget: Optional[int] = None,
        query: Optional[str] = None
    ):
        config = get_config()
        self.llm = llm
        self.embedder = embedder
        self.retriever = retriever

        self.threshold = threshold if threshold is not None else config.reflection.importance_threshold
        self.top_k = top_k if top_k is not None else config.reflection.top_k
        self.max_insights = max_insights if max_insights is not None else config.reflection.max_insights
        self.retrieval_budget = (
            retrieval_budget if retrieval_budget is not None else config.reflection.retrieval_budget
        )
        self.query = query or config.reflection.query
        self.plan_max_tokens = config.context.response_max_tokens

        if self.threshold <= 0:
            raise ValueError("threshold must be positive")
        if self.top_k <= 0 or self.max_insights <= 0:
            raise ValueError("top_k and max_insights must be positive")

        self._pending_importance = 0
        self.logger = get_logger(__name__)

    @property
    def pending_importance(self) -> int:
        """Importance accumulated since the last successful reflection"""
        return self._pending_importance

    def record_observation(self, record: MemoryRecord):
        if record.kind == MemoryKind.OBSERVATION:
            self._pending_importance += record.importance

    def is_due(self) -> bool:
        return self._pending_importance >= self.threshold

    def reset(self):
        self._pending_importance = 0

    def restore(self, pending_importance: int):
        """Put the accumulator back to an earlier value, e.g. when a turn is rolled back"""
        self._pending_importance = pending_importance

    async def maybe_reflect(self, stream: MemoryStream, now: Optional[datetime] = None) -> List[MemoryRecord]:
        """Reflect if enough importance has accumulated.

        Returns the stored reflections, or an empty list when not due or when
        nothing could be synthesized. ExternalCallFailure propagates with the
        stream and the accumulated importance left unchanged.
        """
        if not self.is_due():
            return []

        now = ensure_utc(now) if now is not None else utc_now()
        self.logger.info(
            f"Reflecting for '{stream.owner_id}' "
            f"(pending importance {self._pending_importance} >= {self.threshold})"
        )

        sources = await self.retriever.retrieve(
            stream, self.query, self.retrieval_budget, now=now, max_records=self.top_k
        )
        if not sources:
            self.logger.warning(f"Nothing retrieved to reflect on for '{stream.owner_id}'")
            return []

        raw = await guarded_call("synthesize", self.llm.synthesize(sources, self.max_insights))
        insights = [insight.strip() for insight in raw if insight and insight.strip()]
        insights = insights[:self.max_insights]
        if not insights:
            self.logger.warning(f"Model produced no insights for '{stream.owner_id}'")
            return []

        source_ids = frozenset(record.id for record in sources)
        records = await asyncio.gather(*[
            self._prepare(insight, MemoryKind.REFLECTION, source_ids, now)
            for insight in insights
        ])
        stored = self._store_all(stream, records)

        self.reset()
        self.logger.info(f"Stored {len(stored)} reflections for '{stream.owner_id}'")
        return stored

    async def plan(
        self,
        stream: MemoryStream,
        goal: str,
        now: Optional[datetime] = None
    ) -> Optional[MemoryRecord]:
        """Write a single plan record for a goal, grounded in retrieved memories"""
        if not goal.strip():
            raise ValueError("goal must not be empty")

        now = ensure_utc(now) if now is not None else utc_now()
        sources: List[MemoryRecord] = []
        if len(stream) > 0:
            sources = await self.retriever.retrieve(
                stream, goal, self.retrieval_budget, now=now, max_records=self.top_k
            )

        reply = await guarded_call(
            "complete",
            self.llm.complete(self._build_plan_prompt(goal, sources), self.plan_max_tokens)
        )
        text = reply.strip()
        if not text:
            self.logger.warning(f"Model produced an empty plan for '{stream.owner_id}'")
            return None

        record = await self._prepare(
            text, MemoryKind.PLAN, frozenset(r.id for r in sources), now
        )
        return self._store_all(stream, [record])[0]

    async def _prepare(
        self,
        text: str,
        kind: MemoryKind,
        source_ids: frozenset,
        now: datetime
    ) -> MemoryRecord:
        importance, embedding = await elicit_memory_fields(self.llm, self.embedder, text)
        return MemoryRecord(
            text=text,
            embedding=embedding,
            kind=kind,
            importance=importance,
            created_at=now,
            source_ids=source_ids
        )

    def _store_all(self, stream: MemoryStream, records: Sequence[MemoryRecord]) -> List[MemoryRecord]:
        # Records sharing one created_at and citing existing ids can't invalidate each other
        for record in records:
            stream.validate(record)
        return [stream.get(stream.insert(record)) for record in records]

    @staticmethod
    def _build_plan_prompt(goal: str, sources: Sequence[MemoryRecord]) -> str:
        prompt_parts = []
        if sources:
            prompt_parts.append("Relevant memories:")
            prompt_parts.extend(f"- {record.text}" for record in sources)
            prompt_parts.append("")
        prompt_parts.extend([
            f"Goal: {goal}",
            "Write a short, concrete plan for reaching this goal in one paragraph."
        ])
        return "\n".join(prompt_parts)
