"""
Test configuration and utilities
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Union

import pytest

from persona_memory.core.models import MemoryKind, MemoryRecord
from persona_memory.llm.base import LLMProvider
from persona_memory.llm.local import HashEmbeddingProvider, WordTokenCounter
from persona_memory.memory.stream import MemoryStream

# Configure pytest for async tests
pytest_plugins = ('pytest_asyncio',)

FIXED_NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class StubLLM(LLMProvider):
    """Deterministic language model for tests.

    ``importance`` is either a fixed rating or a text -> rating mapping
    (unknown texts rate 5). Operations listed in ``fail_on`` raise.
    """

    def __init__(
        self,
        importance: Union[int, Dict[str, int]] = 5,
        insights: Optional[List[str]] = None,
        response: str = "Understood.",
        fail_on: Sequence[str] = ()
    ):
        self.importance = importance
        self.insights = ["They value honesty.", "They are planning a trip."] if insights is None else insights
        self.response = response
        self.fail_on = set(fail_on)
        self.calls: List[tuple] = []

    def _maybe_fail(self, operation: str):
        if operation in self.fail_on:
            raise RuntimeError(f"stub {operation} unavailable")

    async def complete(self, prompt: str, max_tokens: int) -> str:
        self.calls.append(("complete", prompt, max_tokens))
        self._maybe_fail("complete")
        return self.response

    async def score_importance(self, text: str) -> int:
        self.calls.append(("score_importance", text))
        self._maybe_fail("score_importance")
        if isinstance(self.importance, dict):
            return self.importance.get(text, 5)
        return self.importance

    async def synthesize(self, records, max_insights: int) -> List[str]:
        self.calls.append(("synthesize", [r.id for r in records], max_insights))
        self._maybe_fail("synthesize")
        return list(self.insights)

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)


@pytest.fixture(autouse=True)
def setup_test_logging():
    """Setup logging for tests"""
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Suppress noisy loggers during tests
    logging.getLogger("chromadb").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def embedder() -> HashEmbeddingProvider:
    return HashEmbeddingProvider(dimension=16)


@pytest.fixture
def token_counter() -> WordTokenCounter:
    return WordTokenCounter()


@pytest.fixture
def stub_llm() -> StubLLM:
    return StubLLM()


def make_record(
    text: str,
    importance: int = 5,
    created_at: Optional[datetime] = None,
    embedding: Optional[List[float]] = None,
    kind: MemoryKind = MemoryKind.OBSERVATION,
    source_ids=(),
    dimension: int = 16
) -> MemoryRecord:
    """Unsaved record; embedding defaults to the hash embedding of the text"""
    return MemoryRecord(
        text=text,
        embedding=embedding if embedding is not None else HashEmbeddingProvider(dimension).embed_sync(text),
        kind=kind,
        importance=importance,
        created_at=created_at or FIXED_NOW - timedelta(hours=1),
        source_ids=frozenset(source_ids)
    )


def build_stream(owner_id: str, texts_and_importance, created_at: Optional[datetime] = None) -> MemoryStream:
    stream = MemoryStream(owner_id)
    for text, importance in texts_and_importance:
        stream.insert(make_record(text, importance, created_at=created_at))
    return stream
