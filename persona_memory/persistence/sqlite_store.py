"""
SQLite persistence for memory streams
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import aiosqlite
import numpy as np

from ..config import get_config
from ..logging import get_logger
from ..memory.stream import MemoryStream

_FLOAT64_LE = np.dtype("<f8")


def embedding_to_blob(embedding: Sequence[float]) -> bytes:
    """Pack an embedding as little-endian float64, the precision records hold in memory"""
    return np.asarray(embedding, dtype=_FLOAT64_LE).tobytes()


def blob_to_embedding(blob: bytes) -> List[float]:
    if len(blob) % _FLOAT64_LE.itemsize:
        raise ValueError(f"embedding blob of {len(blob)} bytes is not a whole number of float64 values")
    return np.frombuffer(blob, dtype=_FLOAT64_LE).tolist()


class SQLiteMemoryStore:
    """Stores memory streams in SQLite, one row per record"""

    def __init__(self, db_path: Optional[str] = None):
        config = get_config().database
        self.db_path = Path(db_path or config.sqlite_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.enable_wal_mode = config.enable_wal_mode
        self.logger = get_logger(__name__)

    async def initialize(self):
        """Initialize database with required tables"""
        async with aiosqlite.connect(self.db_path) as db:
            if self.enable_wal_mode:
                await db.execute("PRAGMA journal_mode=WAL")
            await self._create_tables(db)

    async def _create_tables(self, db: aiosqlite.Connection):
        await db.execute("""
            CREATE TABLE IF NOT EXISTS memory_records (
                owner_id TEXT NOT NULL,
                id INTEGER NOT NULL,
                text TEXT NOT NULL,
                embedding BLOB NOT NULL,      -- little-endian float64
                kind TEXT NOT NULL,
                importance INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                last_accessed_at TEXT NOT NULL,
                source_ids TEXT NOT NULL,     -- JSON array
                speaker TEXT,
                PRIMARY KEY (owner_id, id)
            )
        """)
        await db.commit()

    async def save_stream(self, stream: MemoryStream) -> int:
        """Upsert every record of a stream. Existing rows only get their access time updated."""
        rows = stream.to_records()
        async with aiosqlite.connect(self.db_path) as db:
            await db.executemany("""
                INSERT INTO memory_records
                (owner_id, id, text, embedding, kind, importance,
                 created_at, last_accessed_at, source_ids, speaker)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (owner_id, id) DO UPDATE SET
                    last_accessed_at = excluded.last_accessed_at
            """, [
                (
                    stream.owner_id,
                    row["id"],
                    row["text"],
                    embedding_to_blob(row["embedding"]),
                    row["kind"],
                    row["importance"],
                    row["created_at"],
                    row["last_accessed_at"],
                    json.dumps(row["source_ids"]),
                    row["speaker"]
                )
                for row in rows
            ])
            await db.commit()

        self.logger.debug(f"Saved {len(rows)} records for '{stream.owner_id}'")
        return len(rows)

    async def load_stream(self, owner_id: str) -> MemoryStream:
        """Load an identity's stream. An unknown identity yields an empty stream."""
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("""
                SELECT id, text, embedding, kind, importance,
                       created_at, last_accessed_at, source_ids, speaker
                FROM memory_records WHERE owner_id = ? ORDER BY id
            """, (owner_id,)) as cursor:
                rows = await cursor.fetchall()

        records: List[Dict[str, Any]] = [
            {
                "id": row[0],
                "text": row[1],
                "embedding": blob_to_embedding(row[2]),
                "kind": row[3],
                "importance": row[4],
                "created_at": row[5],
                "last_accessed_at": row[6],
                "source_ids": json.loads(row[7]) if row[7] else [],
                "speaker": row[8]
            }
            for row in rows
        ]
        return MemoryStream.from_records(owner_id, records)

    async def delete_stream(self, owner_id: str) -> int:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("DELETE FROM memory_records WHERE owner_id = ?", (owner_id,))
            deleted = cursor.rowcount
            await db.commit()

        self.logger.info(f"Deleted {deleted} records for '{owner_id}'")
        return deleted

    async def list_owners(self) -> List[str]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT DISTINCT owner_id FROM memory_records ORDER BY owner_id"
            ) as cursor:
                rows = await cursor.fetchall()
        return [row[0] for row in rows]
