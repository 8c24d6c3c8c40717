"""
Shared data models for the Persona Memory engine.

Memory records, scoring weights, conversation transcript entries and the
result objects passed between retriever, assembler and turn manager.
"""

from collections import deque
from typing import Deque, Dict, FrozenSet, Iterable, List, Optional, Any
from datetime import datetime, timezone
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MemoryKind(str, Enum):
    """Kinds of memory records"""
    OBSERVATION = "observation"
    REFLECTION = "reflection"
    PLAN = "plan"


class MemoryRecord(BaseModel):
    """Individual memory record

    Everything except ``last_accessed_at`` is frozen once the record exists.
    ``id`` is left unset by callers and assigned by ``MemoryStream.insert``.
    """
    model_config = ConfigDict(use_enum_values=False)

    id: Optional[int] = Field(default=None, frozen=True)
    text: str = Field(frozen=True)
    embedding: List[float] = Field(frozen=True)
    kind: MemoryKind = Field(default=MemoryKind.OBSERVATION, frozen=True)
    importance: int = Field(ge=1, le=10, frozen=True)
    created_at: datetime = Field(default_factory=utc_now, frozen=True)
    last_accessed_at: Optional[datetime] = None
    source_ids: FrozenSet[int] = Field(default_factory=frozenset, frozen=True)
    speaker: Optional[str] = Field(default=None, frozen=True)

    @field_validator("created_at", "last_accessed_at")
    @classmethod
    def _normalize_timestamp(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    @field_validator("embedding")
    @classmethod
    def _non_empty_embedding(cls, value: List[float]) -> List[float]:
        if not value:
            raise ValueError("embedding must not be empty")
        return value

    @model_validator(mode="after")
    def _default_access_time(self) -> "MemoryRecord":
        # A new record counts as accessed at creation
        if self.last_accessed_at is None:
            self.last_accessed_at = self.created_at
        return self

    def to_row(self) -> Dict[str, Any]:
        """Flat record-by-record representation used by persistence backends"""
        return {
            "id": self.id,
            "text": self.text,
            "embedding": list(self.embedding),
            "kind": self.kind.value,
            "importance": self.importance,
            "created_at": self.created_at.isoformat(),
            "last_accessed_at": self.last_accessed_at.isoformat(),
            "source_ids": sorted(self.source_ids),
            "speaker": self.speaker,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "MemoryRecord":
        return cls(
            id=row["id"],
            text=row["text"],
            embedding=row["embedding"],
            kind=MemoryKind(row["kind"]),
            importance=row["importance"],
            created_at=datetime.fromisoformat(row["created_at"]),
            last_accessed_at=datetime.fromisoformat(row["last_accessed_at"]),
            source_ids=frozenset(row.get("source_ids") or ()),
            speaker=row.get("speaker"),
        )


class ScoringWeights(BaseModel):
    """Relative weights for recency, importance and relevance"""
    recency: float = Field(default=1.0, ge=0.0)
    importance: float = Field(default=1.0, ge=0.0)
    relevance: float = Field(default=1.0, ge=0.0)

    @model_validator(mode="after")
    def _not_all_zero(self) -> "ScoringWeights":
        if self.recency + self.importance + self.relevance <= 0:
            raise ValueError("at least one scoring weight must be positive")
        return self

    def normalized(self) -> "ScoringWeights":
        """Weights scaled to sum to 1.0"""
        total = self.recency + self.importance + self.relevance
        return ScoringWeights(
            recency=self.recency / total,
            importance=self.importance / total,
            relevance=self.relevance / total
        )


class ScoredMemory(BaseModel):
    """A record together with its sub-scores at one point in time"""
    record: MemoryRecord
    recency: float
    importance: float
    relevance: float
    combined: float


class RetrievalResult(BaseModel):
    """Selected records in ranked order plus packing details"""
    selected: List[ScoredMemory] = Field(default_factory=list)
    skipped_ids: List[int] = Field(default_factory=list)  # too large to ever fit
    units_used: int = 0
    budget: int = 0

    @property
    def records(self) -> List[MemoryRecord]:
        return [scored.record for scored in self.selected]


class ConversationEntry(BaseModel):
    """One line of the raw transcript"""
    speaker: str
    text: str
    timestamp: datetime = Field(default_factory=utc_now)


class ConversationBuffer:
    """Rolling transcript of the current session, oldest first"""

    def __init__(self, max_entries: int = 20):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._entries: Deque[ConversationEntry] = deque(maxlen=max_entries)

    def append(self, speaker: str, text: str, timestamp: Optional[datetime] = None) -> ConversationEntry:
        entry = ConversationEntry(speaker=speaker, text=text, timestamp=timestamp or utc_now())
        self._entries.append(entry)
        return entry

    def extend(self, entries: Iterable[ConversationEntry]):
        self._entries.extend(entries)

    def tail(self, n: Optional[int] = None) -> List[ConversationEntry]:
        entries = list(self._entries)
        return entries if n is None else entries[-n:] if n > 0 else []

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class AssembledContext(BaseModel):
    """Prompt text produced by the context assembler"""
    prompt: str = ""
    included_memory_ids: List[int] = Field(default_factory=list)
    included_tail_count: int = 0
    units_used: int = 0
    budget: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class TurnState(str, Enum):
    """Turn lifecycle states"""
    IDLE = "idle"
    RECORD_INCOMING = "record_incoming"
    MAYBE_REFLECT = "maybe_reflect"
    RETRIEVE = "retrieve"
    ASSEMBLE = "assemble"
    INVOKE = "invoke"
    RECORD_RESPONSE = "record_response"


class TurnResult(BaseModel):
    """Outcome of one conversation turn"""
    response: str
    incoming_id: int
    response_id: int
    retrieved_ids: List[int] = Field(default_factory=list)
    reflection_ids: List[int] = Field(default_factory=list)
    prompt: str = ""
    correlation_id: Optional[str] = None
    processing_time: float = 0.0  # seconds
