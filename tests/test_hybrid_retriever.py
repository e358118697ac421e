import unittest

from application.use_cases.search import HybridRetriever
from domain.entities import Chunk
from domain.errors import ProviderError, ValidationError
from fakes import FailingEmbedder
from infrastructure.embedding.hash_embedder import HashEmbedder
from infrastructure.storage.in_memory_chunk_index import InMemoryChunkIndex


class StubIndex(InMemoryChunkIndex):
    def __init__(self, vector: list[Chunk], keyword: list[Chunk]) -> None:
        super().__init__()
        self.vector = vector
        self.keyword = keyword
        self.scopes: list[list[str]] = []

    def vector_search(self, query_embedding, collection_ids=(), limit=10):
        self.scopes.append(list(collection_ids))
        return self.vector[:limit]

    def keyword_search(self, query_text, collection_ids=(), limit=10):
        self.scopes.append(list(collection_ids))
        return self.keyword[:limit]


def _chunk(chunk_id: str, text: str, collection: str = "p1") -> Chunk:
    embedder = HashEmbedder()
    return Chunk(
        id=chunk_id,
        collection_id=collection,
        document_id=f"doc-{chunk_id}",
        text=text,
        embedding=embedder.embed(text),
    )


class TestHybridRetriever(unittest.TestCase):
    def test_empty_index_returns_empty_sequence(self):
        retriever = HybridRetriever(HashEmbedder(), InMemoryChunkIndex())
        self.assertEqual(retriever.search("anything at all"), [])

    def test_fuses_both_rankings_with_rrf(self):
        c1, c2, c3 = _chunk("c1", "one"), _chunk("c2", "two"), _chunk("c3", "three")
        retriever = HybridRetriever(HashEmbedder(), StubIndex([c1, c2, c3], [c3, c1]))
        results = retriever.search_ranked("query", limit=3)
        self.assertEqual([item.chunk_id for item in results], ["c1", "c3", "c2"])
        self.assertAlmostEqual(results[0].score, 1 / 61 + 1 / 62)
        self.assertEqual(retriever.search("query", limit=2), ["one", "three"])

    def test_scope_is_forwarded_to_both_rankings(self):
        index = StubIndex([], [])
        HybridRetriever(HashEmbedder(), index).search("query", ["p7"], 5)
        self.assertEqual(index.scopes, [["p7"], ["p7"]])

    def test_lexical_match_ranks_first_within_scope(self):
        index = InMemoryChunkIndex()
        for chunk in (
            _chunk("a", "open the database connection pool"),
            _chunk("b", "render sidebar items"),
            _chunk("c", "database migrations", collection="p2"),
        ):
            index.insert(chunk)
        retriever = HybridRetriever(HashEmbedder(), index)

        passages = retriever.search("database", ["p1"], 10)
        self.assertIn("open the database connection pool", passages)
        self.assertNotIn("database migrations", passages)
        self.assertEqual(passages[0], "open the database connection pool")

    def test_embedding_failure_propagates(self):
        index = InMemoryChunkIndex()
        index.insert(_chunk("a", "text"))
        with self.assertRaises(ProviderError):
            HybridRetriever(FailingEmbedder(), index).search("text")

    def test_blank_query_is_rejected(self):
        with self.assertRaises(ValidationError):
            HybridRetriever(HashEmbedder(), InMemoryChunkIndex()).search("   ")


if __name__ == "__main__":
    unittest.main()
