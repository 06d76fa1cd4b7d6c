"""Unit tests for cosine similarity and ranking."""

import math

import pytest

from meeting_context.memory.ranker import SimilarityRanker, cosine_similarity


class TestCosineSimilarity:
    """Test the cosine similarity function."""

    def test_identical_vectors(self):
        """Test similarity of a nonzero vector with itself is 1."""
        v = [0.3, -1.2, 4.5, 0.01]
        assert cosine_similarity(v, v) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        """Test orthogonal vectors score 0."""
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self):
        """Test opposite vectors score -1."""
        assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)

    def test_scale_invariance(self):
        """Test similarity ignores magnitude."""
        assert cosine_similarity([1.0, 2.0, 3.0], [10.0, 20.0, 30.0]) == pytest.approx(1.0)

    @pytest.mark.parametrize("a, b", [
        ([0.0, 0.0], [1.0, 2.0]),
        ([1.0, 2.0], [0.0, 0.0]),
        ([1.0, 2.0], [1.0, 2.0, 3.0]),
        ([], []),
        ([], [1.0]),
    ])
    def test_degenerate_vectors(self, a, b):
        """Test zero, empty and mismatched vectors score 0 without raising."""
        assert cosine_similarity(a, b) == 0.0

    def test_non_finite_input(self):
        """Test non-finite results are reported as 0."""
        assert cosine_similarity([math.inf, 1.0], [1.0, 1.0]) == 0.0


class TestSimilarityRanker:
    """Test ranking, thresholding and the threshold sweep."""

    @pytest.fixture
    def ranker(self):
        return SimilarityRanker()

    @pytest.fixture
    def candidates(self):
        return [
            ([0.0, 1.0], "orthogonal"),
            ([1.0, 0.0], "same"),
            ([0.6, 0.8], "mid"),
            ([2.0, 0.0], "same-scaled"),
        ]

    def test_rank_sorted_descending(self, ranker, candidates):
        """Test candidates come back highest similarity first."""
        ranked = ranker.rank([1.0, 0.0], candidates)

        assert [c.payload for c in ranked] == ["same", "same-scaled", "mid", "orthogonal"]
        assert [c.similarity for c in ranked] == pytest.approx([1.0, 1.0, 0.6, 0.0])

    def test_rank_is_deterministic(self, ranker, candidates):
        """Test repeated ranking gives the same order."""
        first = [c.payload for c in ranker.rank([1.0, 0.0], candidates)]
        for _ in range(5):
            assert [c.payload for c in ranker.rank([1.0, 0.0], candidates)] == first

    def test_ties_keep_input_order(self, ranker):
        """Test equal scores keep candidate order."""
        candidates = [([1.0, 1.0], f"c{i}") for i in range(6)]

        ranked = ranker.rank([1.0, 1.0], candidates)

        assert [c.payload for c in ranked] == [f"c{i}" for i in range(6)]

    def test_rank_empty(self, ranker):
        """Test ranking no candidates."""
        assert ranker.rank([1.0, 0.0], []) == []

    def test_top_threshold_and_limit(self, ranker, candidates):
        """Test top filters at or above the threshold, then limits."""
        assert [c.payload for c in ranker.top([1.0, 0.0], candidates, threshold=0.55)] == [
            "same", "same-scaled", "mid"
        ]
        assert [c.payload for c in ranker.top([1.0, 0.0], candidates, threshold=0.5, limit=1)] == [
            "same"
        ]

    def test_top_threshold_monotonic(self, ranker, candidates):
        """Test raising the threshold never increases the result count."""
        counts = [
            len(ranker.top([1.0, 0.0], candidates, threshold=t))
            for t in [-1.0, 0.0, 0.3, 0.6, 0.9, 1.1]
        ]
        assert counts == sorted(counts, reverse=True)

    def test_threshold_sweep(self, ranker, candidates):
        """Test the sweep reports counts per threshold."""
        sweep = ranker.threshold_sweep([1.0, 0.0], candidates, thresholds=[0.8, 0.5, 0.0])

        assert sweep == {0.8: 2, 0.5: 3, 0.0: 4}

    def test_threshold_sweep_defaults(self, ranker, candidates):
        """Test the default sweep thresholds."""
        sweep = ranker.threshold_sweep([1.0, 0.0], candidates)

        assert list(sweep) == [0.8, 0.7, 0.6, 0.5, 0.4, 0.3]
