"""
Shared core foundation for persona-memory.

Components:
- models: Memory records, scoring weights, transcript and turn results
- exceptions: Error taxonomy rooted at MemoryEngineError
"""

from .models import (
    MemoryKind,
    MemoryRecord,
    ScoringWeights,
    ScoredMemory,
    RetrievalResult,
    ConversationEntry,
    ConversationBuffer,
    AssembledContext,
    TurnState,
    TurnResult,
    utc_now,
    ensure_utc
)

from .exceptions import (
    MemoryEngineError,
    NotFound,
    InvalidRecord,
    BudgetExceeded,
    ExternalCallFailure
)

__all__ = [
    # Data models
    "MemoryKind",
    "MemoryRecord",
    "ScoringWeights",
    "ScoredMemory",
    "RetrievalResult",
    "ConversationEntry",
    "ConversationBuffer",
    "AssembledContext",
    "TurnState",
    "TurnResult",
    "utc_now",
    "ensure_utc",

    # Errors
    "MemoryEngineError",
    "NotFound",
    "InvalidRecord",
    "BudgetExceeded",
    "ExternalCallFailure"
]
