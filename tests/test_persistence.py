"""
Unit tests for persona_memory.persistence (SQLite store and JSONL snapshots)
"""

import json
from datetime import timedelta

import numpy as np
import pytest
import pytest_asyncio

from persona_memory.core.exceptions import InvalidRecord
from persona_memory.core.models import MemoryKind, ScoringWeights
from persona_memory.llm.base import EmbeddingProvider
from persona_memory.memory.retriever import MemoryRetriever
from persona_memory.memory.scorer import MemoryScorer
from persona_memory.memory.stream import MemoryStream
from persona_memory.persistence import JsonlSnapshot, SQLiteMemoryStore, blob_to_embedding, embedding_to_blob

from conftest import FIXED_NOW, build_stream, make_record

OBSERVATIONS = [
    ("We walked along the harbor and watched the ferries", 2),
    ("Alice told me she was offered a job in Lisbon", 8),
    ("The bakery on the corner ran out of croissants", 5),
]


def sample_stream(owner_id: str = "alice") -> MemoryStream:
    stream = build_stream(owner_id, OBSERVATIONS, created_at=FIXED_NOW - timedelta(hours=6))
    stream.insert(make_record(
        "Alice is considering moving abroad", 7,
        created_at=FIXED_NOW - timedelta(hours=5),
        kind=MemoryKind.REFLECTION,
        source_ids=[2, 3]
    ))
    stream.touch(2, FIXED_NOW - timedelta(hours=2))
    return stream


@pytest_asyncio.fixture
async def store(tmp_path):
    sqlite_store = SQLiteMemoryStore(str(tmp_path / "memory.db"))
    await sqlite_store.initialize()
    return sqlite_store


class TestEmbeddingBlobs:
    """Test float64 embedding packing"""

    def test_little_endian_float64(self):
        blob = embedding_to_blob([1.0, -2.5])

        assert blob == np.array([1.0, -2.5], dtype="<f8").tobytes()
        assert len(blob) == 16
        assert blob_to_embedding(blob) == [1.0, -2.5]

    def test_full_precision(self):
        values = [0.1, 0.1000000001, -1e-300, 1 / 3]

        assert blob_to_embedding(embedding_to_blob(values)) == values

    def test_truncated_blob_rejected(self):
        with pytest.raises(ValueError):
            blob_to_embedding(b"\x00\x00\x00\x00\x00\x00\x80")


class TestSQLiteMemoryStore:
    """Test SQLite persistence of streams"""

    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        stream = sample_stream()

        assert await store.save_stream(stream) == 4
        restored = await store.load_stream("alice")

        assert len(restored) == 4
        for original, loaded in zip(stream, restored):
            assert loaded.id == original.id
            assert loaded.text == original.text
            assert loaded.kind == original.kind
            assert loaded.importance == original.importance
            assert loaded.created_at == original.created_at
            assert loaded.last_accessed_at == original.last_accessed_at
            assert loaded.source_ids == original.source_ids
            assert loaded.embedding == original.embedding

    @pytest.mark.asyncio
    async def test_save_updates_access_times(self, store):
        stream = sample_stream()
        await store.save_stream(stream)

        stream.touch(1, FIXED_NOW)
        stream.insert(make_record("new memory", 4, created_at=FIXED_NOW))
        await store.save_stream(stream)
        restored = await store.load_stream("alice")

        assert len(restored) == 5
        assert restored.get(1).last_accessed_at == FIXED_NOW

    @pytest.mark.asyncio
    async def test_owners_are_separate(self, store):
        await store.save_stream(sample_stream("alice"))
        await store.save_stream(build_stream("bob", [("Bob likes chess", 6)]))

        assert await store.list_owners() == ["alice", "bob"]
        assert len(await store.load_stream("bob")) == 1

        assert await store.delete_stream("alice") == 4
        assert await store.list_owners() == ["bob"]
        assert len(await store.load_stream("alice")) == 0

    @pytest.mark.asyncio
    async def test_restored_retrieval_matches(self, store, embedder, token_counter):
        retriever = MemoryRetriever(
            embedder, token_counter, MemoryScorer(weights=ScoringWeights(), decay_factor=0.99)
        )
        stream = sample_stream()
        await store.save_stream(stream)
        restored = await store.load_stream("alice")

        original = await retriever.retrieve(stream, "moving to Lisbon", budget=30, now=FIXED_NOW)
        loaded = await retriever.retrieve(restored, "moving to Lisbon", budget=30, now=FIXED_NOW)

        assert [r.id for r in loaded] == [r.id for r in original]

    @pytest.mark.asyncio
    async def test_near_tied_embeddings_keep_their_order(self, store, token_counter):
        class FixedEmbedder(EmbeddingProvider):
            async def embed(self, text):
                return [1.0, 0.0]

        retriever = MemoryRetriever(
            FixedEmbedder(), token_counter, MemoryScorer(weights=ScoringWeights(), decay_factor=0.99)
        )
        stream = MemoryStream("alice")
        # Only the last digits of the embeddings separate these two
        stream.insert(make_record("harbor walk", 5, created_at=FIXED_NOW, embedding=[1.0, 0.1000000001]))
        stream.insert(make_record("ferry ride", 5, created_at=FIXED_NOW, embedding=[1.0, 0.1]))
        await store.save_stream(stream)
        restored = await store.load_stream("alice")

        original = await retriever.retrieve(stream, "boats", budget=100, now=FIXED_NOW)
        loaded = await retriever.retrieve(restored, "boats", budget=100, now=FIXED_NOW)

        assert [r.id for r in original] == [2, 1]
        assert [r.id for r in loaded] == [2, 1]


class TestJsonlSnapshot:
    """Test JSONL export and restore"""

    @pytest.mark.asyncio
    async def test_exact_round_trip(self, tmp_path):
        snapshot = JsonlSnapshot()
        stream = sample_stream()
        path = tmp_path / "snapshots" / "alice.jsonl"

        assert await snapshot.export(stream, path) == 4
        assert len(path.read_text(encoding="utf-8").splitlines()) == 4

        restored = await snapshot.load("alice", path)

        assert restored.all() == stream.all()

    @pytest.mark.asyncio
    async def test_restored_retrieval_identical(self, tmp_path, embedder, token_counter):
        retriever = MemoryRetriever(
            embedder, token_counter, MemoryScorer(weights=ScoringWeights(), decay_factor=0.99)
        )
        snapshot = JsonlSnapshot()
        stream = sample_stream()
        await snapshot.export(stream, tmp_path / "alice.jsonl")
        restored = await snapshot.load("alice", tmp_path / "alice.jsonl")

        original = await retriever.retrieve_scored(stream, "job abroad", budget=25, now=FIXED_NOW)
        loaded = await retriever.retrieve_scored(restored, "job abroad", budget=25, now=FIXED_NOW)

        assert [s.record.id for s in loaded.selected] == [s.record.id for s in original.selected]
        assert [s.combined for s in loaded.selected] == [s.combined for s in original.selected]

    @pytest.mark.asyncio
    async def test_invalid_line(self, tmp_path):
        path = tmp_path / "broken.jsonl"
        path.write_text("{not json}\n", encoding="utf-8")

        with pytest.raises(ValueError):
            await JsonlSnapshot().load("alice", path)

    @pytest.mark.asyncio
    async def test_dangling_source_rejected_on_load(self, tmp_path):
        stream = sample_stream()
        rows = stream.to_records()
        path = tmp_path / "partial.jsonl"
        # Drop record 2, which the reflection cites
        await JsonlSnapshot().export(MemoryStream.from_records("alice", rows[:1]), path)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(rows[3]) + "\n")

        with pytest.raises(InvalidRecord):
            await JsonlSnapshot().load("alice", path)
