"""
Gathering the model-derived fields of a new memory record
"""

import asyncio
from typing import List, Tuple

from ..config import get_config
from ..llm.base import EmbeddingProvider, LLMProvider, guarded_call


def clamp_importance(value: int) -> int:
    scoring = get_config().scoring
    return max(scoring.importance_min, min(scoring.importance_max, int(value)))


async def elicit_memory_fields(
    llm: LLMProvider,
    embedder: EmbeddingProvider,
    text: str
) -> Tuple[int, List[float]]:
    """Importance and embedding for a text, requested concurrently.

    Raises ExternalCallFailure if either call fails; nothing is returned
    partially.
    """
    importance, embedding = await asyncio.gather(
        guarded_call("score_importance", llm.score_importance(text)),
        guarded_call("embed", embedder.embed(text))
    )
    return clamp_importance(importance), list(embedding)
