"""
Interfaces for the external capabilities the engine depends on

The engine never talks to a model directly: embeddings, completions,
importance elicitation, reflection synthesis and token counting are injected
through these interfaces, so scoring and retrieval can run against
deterministic stubs.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, List, Optional, Sequence, TypeVar

from ..config import get_config
from ..core.exceptions import ExternalCallFailure
from ..core.models import MemoryRecord

T = TypeVar("T")


class EmbeddingProvider(ABC):
    """Text in, fixed-length vector out"""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embed a single text"""
        pass


class LLMProvider(ABC):
    """Abstract base class for language-model providers"""

    @abstractmethod
    async def complete(self, prompt: str, max_tokens: int) -> str:
        """Generate a completion for the prompt"""
        pass

    @abstractmethod
    async def score_importance(self, text: str) -> int:
        """Rate how memorable a piece of text is, 1 (mundane) to 10 (poignant)"""
        pass

    @abstractmethod
    async def synthesize(self, records: Sequence[MemoryRecord], max_insights: int) -> List[str]:
        """Produce high-level insight statements from the given memories"""
        pass


class TokenCounter(ABC):
    """Counts text length in the model's token-equivalent units"""

    @abstractmethod
    def count_units(self, text: str) -> int:
        pass


async def guarded_call(operation: str, awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
    """Await an external call, converting timeouts and adapter errors to ExternalCallFailure.

    No retries happen here; the turn boundary decides what to do.
    """
    if timeout is None:
        timeout = get_config().ollama.timeout_seconds

    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except ExternalCallFailure:
        raise
    except asyncio.TimeoutError:
        raise ExternalCallFailure(operation, f"timed out after {timeout}s") from None
    except Exception as e:
        raise ExternalCallFailure(operation, str(e) or type(e).__name__) from e
