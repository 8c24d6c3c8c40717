"""
Memory package for persona-memory

Provides the per-identity memory stream, recency/importance/relevance
scoring, budget-constrained retrieval and reflection.
"""

from .stream import MemoryStream, StreamCheckpoint
from .relevance import NumpyRelevanceIndex, RelevanceIndex, cosine_similarity
from .scorer import MemoryScorer
from .retriever import MemoryRetriever, rank_key
from .elicitation import clamp_importance, elicit_memory_fields
from .reflection import ReflectionEngine

__all__ = [
    'MemoryStream',
    'StreamCheckpoint',
    'RelevanceIndex',
    'NumpyRelevanceIndex',
    'cosine_similarity',
    'MemoryScorer',
    'MemoryRetriever',
    'rank_key',
    'clamp_importance',
    'elicit_memory_fields',
    'ReflectionEngine'
]
