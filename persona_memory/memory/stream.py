"""
Memory stream: the per-identity store of memory records.

Records are kept in insertion order and indexed by id. Ids are assigned
monotonically on insert and ``created_at`` never decreases with id, so a
record can only cite records that already exist. That ordering is what keeps
the reflection provenance graph acyclic.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np

from ..core.exceptions import InvalidRecord, NotFound
from ..core.models import MemoryKind, MemoryRecord, ensure_utc
from ..logging import get_logger


@dataclass(frozen=True)
class StreamCheckpoint:
    next_id: int
    access_times: Dict[int, datetime]


class MemoryStream:
    """Append-mostly collection of memory records owned by one identity"""

    def __init__(self, owner_id: str):
        self.owner_id = owner_id
        self.lock = asyncio.Lock()  # serializes turns for this identity

        self._records: Dict[int, MemoryRecord] = {}  # dicts keep insertion order
        self._next_id = 1
        self._dimension: Optional[int] = None
        self._importance_min: Optional[int] = None
        self._importance_max: Optional[int] = None

        # Embedding matrix cache, rows in insertion order
        self._matrix: Optional[np.ndarray] = None
        self._matrix_rows = 0
        self.revision = 0  # bumped whenever a rollback removes records

        self.logger = get_logger(__name__)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[MemoryRecord]:
        return iter(self._records.values())

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def latest_created_at(self) -> Optional[datetime]:
        if not self._records:
            return None
        return next(reversed(self._records.values())).created_at

    def validate(self, record: MemoryRecord):
        """Raise InvalidRecord if the record could not be appended right now"""
        dangling = [sid for sid in record.source_ids if sid not in self._records]
        if dangling:
            raise InvalidRecord(f"source_ids reference unknown records: {sorted(dangling)}")

        latest = self.latest_created_at()
        if latest is not None and record.created_at < latest:
            raise InvalidRecord(
                f"created_at {record.created_at.isoformat()} precedes latest record "
                f"({latest.isoformat()})"
            )

        if self._dimension is not None and len(record.embedding) != self._dimension:
            raise InvalidRecord(
                f"embedding has dimension {len(record.embedding)}, stream uses {self._dimension}"
            )

        if record.last_accessed_at < record.created_at:
            raise InvalidRecord("last_accessed_at precedes created_at")

    def _append(self, record: MemoryRecord):
        self._records[record.id] = record
        self._next_id = max(self._next_id, record.id + 1)
        if self._dimension is None:
            self._dimension = len(record.embedding)

        if self._importance_min is None or record.importance < self._importance_min:
            self._importance_min = record.importance
        if self._importance_max is None or record.importance > self._importance_max:
            self._importance_max = record.importance

    def insert(self, record: MemoryRecord) -> int:
        """Validate and store a new record, returning its assigned id.

        The stored record is a copy carrying the id; fetch it with ``get``.
        """
        if record.id is not None:
            raise InvalidRecord(f"record already has id {record.id}")

        self.validate(record)

        stored = record.model_copy(update={"id": self._next_id})
        self._append(stored)

        self.logger.debug(
            f"Inserted {stored.kind.value} {stored.id} for '{self.owner_id}' "
            f"(importance: {stored.importance})"
        )
        return stored.id

    def get(self, record_id: int) -> MemoryRecord:
        try:
            return self._records[record_id]
        except KeyError:
            raise NotFound(record_id) from None

    def all(self) -> List[MemoryRecord]:
        """All records in insertion order"""
        return list(self._records.values())

    def by_kind(self, kind: MemoryKind) -> List[MemoryRecord]:
        return [r for r in self._records.values() if r.kind == kind]

    def recent(self, n: int) -> List[MemoryRecord]:
        """The n most recently inserted records, oldest first"""
        if n <= 0:
            return []
        return self.all()[-n:]

    def touch(self, record_id: int, timestamp: datetime):
        """Advance a record's last access time.

        Access time is monotonic per record; an earlier timestamp is the
        caller's bug and is reported rather than corrected.
        """
        record = self.get(record_id)
        timestamp = ensure_utc(timestamp)
        if timestamp < record.last_accessed_at:
            raise InvalidRecord(
                f"touch at {timestamp.isoformat()} precedes last access "
                f"{record.last_accessed_at.isoformat()} of record {record_id}"
            )
        record.last_accessed_at = timestamp

    def checkpoint(self) -> StreamCheckpoint:
        """Capture what a turn may change: the next id and every access time"""
        return StreamCheckpoint(
            next_id=self._next_id,
            access_times={record_id: r.last_accessed_at for record_id, r in self._records.items()}
        )

    def rollback(self, checkpoint: StreamCheckpoint) -> int:
        """Undo inserts and touches made since the checkpoint. Returns how many records were removed."""
        removed = [record_id for record_id in self._records if record_id >= checkpoint.next_id]
        for record_id in removed:
            del self._records[record_id]

        for record_id, accessed_at in checkpoint.access_times.items():
            record = self._records.get(record_id)
            if record is not None:
                record.last_accessed_at = accessed_at

        self._next_id = checkpoint.next_id
        importances = [r.importance for r in self._records.values()]
        self._importance_min = min(importances, default=None)
        self._importance_max = max(importances, default=None)
        if not self._records:
            self._dimension = None

        if self._matrix is not None and self._matrix_rows > len(self._records):
            self._matrix = self._matrix[:len(self._records)] if self._records else None
            self._matrix_rows = len(self._records)

        if removed:
            self.revision += 1
            self.logger.info(f"Rolled back {len(removed)} records for '{self.owner_id}'")
        return len(removed)

    def importance_range(self) -> Optional[Tuple[int, int]]:
        if self._importance_min is None:
            return None
        return self._importance_min, self._importance_max

    def embedding_matrix(self) -> np.ndarray:
        """Embeddings as a (n, D) float array, rows in insertion order"""
        if not self._records:
            return np.empty((0, 0), dtype=np.float64)

        if self._matrix is None or self._matrix_rows != len(self._records):
            # Records are only ever appended, so extend the cached rows
            records = self.all()
            new_rows = np.asarray(
                [r.embedding for r in records[self._matrix_rows:]], dtype=np.float64
            )
            if self._matrix is None:
                self._matrix = new_rows
            else:
                self._matrix = np.vstack([self._matrix, new_rows])
            self._matrix_rows = len(records)

        return self._matrix

    def to_records(self) -> List[Dict[str, Any]]:
        """Record-by-record representation for persistence"""
        return [record.to_row() for record in self._records.values()]

    @classmethod
    def from_records(cls, owner_id: str, rows: Iterable[Dict[str, Any]]) -> "MemoryStream":
        """Rebuild a stream from persisted rows, keeping their ids"""
        stream = cls(owner_id)
        records = sorted((MemoryRecord.from_row(row) for row in rows), key=lambda r: r.id)
        for record in records:
            if record.id is None or record.id < stream._next_id:
                raise InvalidRecord(f"duplicate or out-of-order record id {record.id}")
            stream.validate(record)
            stream._append(record)

        stream.logger.debug(f"Restored {len(stream)} records for '{owner_id}'")
        return stream
