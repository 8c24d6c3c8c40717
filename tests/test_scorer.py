"""
Unit tests for persona_memory.memory.scorer and relevance backends
"""

from datetime import timedelta

import numpy as np
import pytest

from persona_memory.core.models import ScoringWeights
from persona_memory.memory.relevance import NumpyRelevanceIndex, cosine_similarity
from persona_memory.memory.scorer import MemoryScorer
from persona_memory.memory.stream import MemoryStream

from conftest import FIXED_NOW, make_record


@pytest.fixture
def scorer():
    return MemoryScorer(weights=ScoringWeights(), decay_factor=0.99)


class TestCosine:
    """Test cosine similarity edge cases"""

    def test_identical_and_opposite(self):
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_zero_norm_is_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])

    def test_numpy_index_matches_pairwise(self):
        stream = MemoryStream("alice")
        embeddings = [[1.0, 0.0], [0.6, 0.8], [0.0, 0.0], [-1.0, 0.5]]
        for i, embedding in enumerate(embeddings):
            stream.insert(make_record(f"m{i}", embedding=embedding))

        query = [0.3, 0.7]
        sims = NumpyRelevanceIndex().similarities(stream, query)

        expected = [cosine_similarity(query, e) for e in embeddings]
        np.testing.assert_allclose(sims, expected, atol=1e-12)

    def test_numpy_index_dimension_mismatch(self):
        stream = MemoryStream("alice")
        stream.insert(make_record("a", embedding=[1.0, 0.0]))

        with pytest.raises(ValueError):
            NumpyRelevanceIndex().similarities(stream, [1.0, 0.0, 0.0])


class TestSubScores:
    """Test the three sub-scores"""

    def test_recency_decays_per_hour_since_access(self, scorer):
        record = make_record("a", created_at=FIXED_NOW - timedelta(hours=10))

        assert scorer.recency(record, FIXED_NOW) == pytest.approx(0.99 ** 10)

    def test_recency_uses_last_access_not_creation(self, scorer):
        record = make_record("a", created_at=FIXED_NOW - timedelta(hours=10))
        record.last_accessed_at = FIXED_NOW - timedelta(hours=1)

        assert scorer.recency(record, FIXED_NOW) == pytest.approx(0.99)

    def test_recency_monotonically_non_increasing(self, scorer):
        record = make_record("a", created_at=FIXED_NOW)
        values = [scorer.recency(record, FIXED_NOW + timedelta(hours=h)) for h in range(0, 200, 7)]

        assert all(a >= b for a, b in zip(values, values[1:]))
        assert all(0.0 < v <= 1.0 for v in values)

    def test_future_access_clamped(self, scorer):
        record = make_record("a", created_at=FIXED_NOW + timedelta(hours=2))

        assert scorer.recency(record, FIXED_NOW) == 1.0

    def test_scaled_importance(self):
        assert MemoryScorer.scaled_importance(2, (2, 8)) == 0.0
        assert MemoryScorer.scaled_importance(8, (2, 8)) == 1.0
        assert MemoryScorer.scaled_importance(5, (2, 8)) == pytest.approx(0.5)

    def test_single_importance_value_scales_to_one(self):
        assert MemoryScorer.scaled_importance(4, (4, 4)) == 1.0
        assert MemoryScorer.scaled_importance(4, None) == 1.0

    def test_relevance_rescaled(self, scorer):
        record = make_record("a", embedding=[1.0, 0.0])

        assert scorer.relevance([1.0, 0.0], record) == pytest.approx(1.0)
        assert scorer.relevance([-1.0, 0.0], record) == pytest.approx(0.0)
        assert scorer.relevance([0.0, 0.0], record) == pytest.approx(0.5)

    def test_combined_uses_normalized_weights(self):
        scorer = MemoryScorer(weights=ScoringWeights(recency=2.0, importance=0.0, relevance=2.0))

        assert scorer.combine(1.0, 1.0, 0.0) == pytest.approx(0.5)


class TestScoreAll:
    """Test whole-stream scoring"""

    def test_empty_stream(self, scorer):
        assert scorer.score_all(MemoryStream("alice"), [1.0, 0.0], FIXED_NOW) == []

    def test_matches_single_record_scoring(self, scorer):
        stream = MemoryStream("alice")
        for text, importance in [("a", 2), ("b", 9), ("c", 4)]:
            stream.insert(make_record(text, importance))

        query = make_record("query").embedding
        scored = scorer.score_all(stream, query, FIXED_NOW)

        assert [s.record.text for s in scored] == ["a", "b", "c"]
        for item in scored:
            single = scorer.score(item.record, query, FIXED_NOW, stream.importance_range())
            assert item.combined == pytest.approx(single.combined)
            assert 0.0 <= item.combined <= 1.0

    def test_invalid_decay_factor(self):
        with pytest.raises(ValueError):
            MemoryScorer(decay_factor=1.0)

    def test_combined_invariant_under_id_relabeling(self, scorer):
        stream = MemoryStream("alice")
        for text, importance in [("a", 3), ("b", 7), ("c", 5)]:
            stream.insert(make_record(text, importance, created_at=FIXED_NOW - timedelta(hours=3)))

        relabeled_rows = []
        for row in stream.to_records():
            row["id"] = row["id"] * 10 + 7
            relabeled_rows.append(row)
        relabeled = MemoryStream.from_records("alice", relabeled_rows)

        query = make_record("b").embedding
        original = {s.record.text: s.combined for s in scorer.score_all(stream, query, FIXED_NOW)}
        renamed = {s.record.text: s.combined for s in scorer.score_all(relabeled, query, FIXED_NOW)}

        assert original == renamed
