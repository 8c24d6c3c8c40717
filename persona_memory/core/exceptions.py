"""
Error taxonomy for the memory engine.

Retrieval on an empty stream is not an error and has no exception type:
it simply returns an empty selection.
"""

from typing import Optional


class MemoryEngineError(Exception):
    """Base class for all memory engine errors"""


class NotFound(MemoryEngineError, KeyError):
    """Unknown memory record id"""

    def __init__(self, record_id: int):
        self.record_id = record_id
        super().__init__(f"Memory record {record_id} not found")

    def __str__(self) -> str:
        return self.args[0]


class InvalidRecord(MemoryEngineError, ValueError):
    """Record violates a stream invariant (dangling source ids, time ordering, access monotonicity)"""


class BudgetExceeded(MemoryEngineError):
    """Content can never fit the available budget"""

    def __init__(self, message: str, units: Optional[int] = None, budget: Optional[int] = None):
        self.units = units
        self.budget = budget
        super().__init__(message)


class ExternalCallFailure(MemoryEngineError):
    """Embedding or language-model adapter failed or timed out"""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")
