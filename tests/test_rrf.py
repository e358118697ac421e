import unittest

from application.services.rrf import collect_ranks, fuse, rrf_score
from domain.entities import Chunk, RankedResult


def _chunk(chunk_id: str) -> Chunk:
    return Chunk(id=chunk_id, collection_id="c", document_id="d", text=f"text of {chunk_id}")


class TestReciprocalRankFusion(unittest.TestCase):
    def test_single_ranking_at_first_place_scores_one_over_61(self):
        self.assertAlmostEqual(rrf_score(RankedResult(chunk_id="a", text="", vector_rank=1)), 1 / 61)
        self.assertAlmostEqual(rrf_score(RankedResult(chunk_id="a", text="", keyword_rank=1)), 1 / 61)

    def test_first_in_both_beats_anything_lower_in_both(self):
        ranked = collect_ranks(
            [_chunk("top"), _chunk("x"), _chunk("y")],
            [_chunk("top"), _chunk("y"), _chunk("x")],
        )
        fused = fuse(ranked, limit=10)
        self.assertEqual(fused[0].chunk_id, "top")
        self.assertAlmostEqual(fused[0].score, 2 / 61)
        self.assertTrue(all(item.score < fused[0].score for item in fused[1:]))

    def test_disjoint_rankings_yield_union_capped_at_limit(self):
        vector = [_chunk(f"v{i}") for i in range(3)]
        keyword = [_chunk(f"k{i}") for i in range(3)]
        self.assertEqual(len(fuse(collect_ranks(vector, keyword), limit=10)), 6)
        self.assertEqual(len(fuse(collect_ranks(vector, keyword), limit=4)), 4)

    def test_ranks_are_one_based_and_recorded_per_list(self):
        ranked = {item.chunk_id: item for item in collect_ranks([_chunk("a"), _chunk("b")], [_chunk("b")])}
        self.assertEqual((ranked["a"].vector_rank, ranked["a"].keyword_rank), (1, None))
        self.assertEqual((ranked["b"].vector_rank, ranked["b"].keyword_rank), (2, 1))

    def test_ties_are_broken_by_chunk_id(self):
        fused = fuse(collect_ranks([_chunk("b")], [_chunk("a")]), limit=2)
        self.assertEqual([item.chunk_id for item in fused], ["a", "b"])

    def test_mixed_ranks_order(self):
        fused = fuse(
            collect_ranks([_chunk("c1"), _chunk("c2"), _chunk("c3")], [_chunk("c3"), _chunk("c1")]),
            limit=3,
        )
        self.assertEqual([item.chunk_id for item in fused], ["c1", "c3", "c2"])
        self.assertEqual(fused[0].text, "text of c1")


if __name__ == "__main__":
    unittest.main()
