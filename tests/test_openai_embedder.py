import os
import unittest
from unittest import mock

import requests

from domain.errors import ProviderError
from infrastructure.embedding.openai_embedder import OpenAIEmbedder, OpenAIEmbedderConfig


def _response(payload):
    response = mock.Mock()
    response.raise_for_status.return_value = None
    response.json.return_value = payload
    return response


class TestOpenAIEmbedder(unittest.TestCase):
    def setUp(self):
        self.session = mock.Mock(spec=requests.Session)
        self.embedder = OpenAIEmbedder(
            OpenAIEmbedderConfig(api_key="sk-test", base_url="https://llm.local/v1/"),
            session=self.session,
        )

    def test_vectors_follow_input_order(self):
        self.session.post.return_value = _response(
            {"data": [{"index": 1, "embedding": [0, 1]}, {"index": 0, "embedding": [1, 0]}]}
        )
        vectors = self.embedder.embed_texts(["first", "second"])

        self.assertEqual(vectors, [[1.0, 0.0], [0.0, 1.0]])
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "https://llm.local/v1/embeddings")
        self.assertEqual(kwargs["json"], {"model": "text-embedding-3-small", "input": ["first", "second"]})
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer sk-test")
        self.assertEqual(self.embedder.dimension, 1536)

    def test_transport_failure_is_a_provider_error(self):
        self.session.post.side_effect = requests.ConnectionError("connection refused")
        with self.assertRaises(ProviderError):
            self.embedder.embed("text")

    def test_http_error_is_a_provider_error(self):
        response = _response({})
        response.raise_for_status.side_effect = requests.HTTPError("429 Too Many Requests")
        self.session.post.return_value = response
        with self.assertRaises(ProviderError):
            self.embedder.embed("text")

    def test_malformed_payload_is_a_provider_error(self):
        self.session.post.return_value = _response({"error": "nope"})
        with self.assertRaises(ProviderError):
            self.embedder.embed("text")
        self.session.post.return_value = _response({"data": []})
        with self.assertRaises(ProviderError):
            self.embedder.embed("text")

    def test_missing_api_key(self):
        embedder = OpenAIEmbedder(OpenAIEmbedderConfig(api_key=None), session=self.session)
        with mock.patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ProviderError):
                embedder.embed("text")
        self.session.post.assert_not_called()


if __name__ == "__main__":
    unittest.main()
