"""
JSON Lines snapshots of memory streams, one record per line
"""

import json
from pathlib import Path
from typing import Union

import aiofiles

from ..logging import get_logger
from ..memory.stream import MemoryStream

logger = get_logger(__name__)


class JsonlSnapshot:
    """Exports and restores streams as JSONL files. Embeddings keep full precision."""

    async def export(self, stream: MemoryStream, path: Union[str, Path]) -> int:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        rows = stream.to_records()
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            for row in rows:
                await f.write(json.dumps(row, ensure_ascii=False) + "\n")

        logger.info(f"Exported {len(rows)} records for '{stream.owner_id}' to {path}")
        return len(rows)

    async def load(self, owner_id: str, path: Union[str, Path]) -> MemoryStream:
        rows = []
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            line_number = 0
            async for line in f:
                line_number += 1
                if not line.strip():
                    continue
                try:
                    rows.append(json.loads(line))
                except json.JSONDecodeError as e:
                    raise ValueError(f"{path}:{line_number}: invalid JSON record ({e.msg})") from e

        stream = MemoryStream.from_records(owner_id, rows)
        logger.info(f"Loaded {len(stream)} records for '{owner_id}' from {path}")
        return stream
