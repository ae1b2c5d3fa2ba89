"""Tests for HTTP backends against a mock transport."""
import asyncio
import json

import httpx
import numpy as np
import pytest

from conftest import make_photo, png_bytes
from scoutai.core.backends import (
    ImageFetcher, LocalFeatureEmbedder, RemoteEmbeddingClient, RemoteSemanticAnalyzer,
    build_backends,
)
from scoutai.core.config import BackendSettings
from scoutai.core.errors import BackendError
from scoutai.core.hashing import compute_sha256


def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_embedding_client_parses_vector():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"embedding": [0.1, 0.2, 0.3]})

    client = RemoteEmbeddingClient("http://embed.test/", client=mock_client(handler))
    vec = asyncio.run(client.embed(make_photo("p1")))
    assert seen["url"] == "http://embed.test/embed"
    assert seen["body"]["photo_id"] == "p1"
    assert np.allclose(vec, [0.1, 0.2, 0.3])


def test_embedding_client_http_error():
    client = RemoteEmbeddingClient(
        "http://embed.test", client=mock_client(lambda r: httpx.Response(503)))
    with pytest.raises(BackendError):
        asyncio.run(client.embed(make_photo("p1")))


def test_embedding_client_malformed_response():
    client = RemoteEmbeddingClient(
        "http://embed.test", client=mock_client(lambda r: httpx.Response(200, json={"vector": []})))
    with pytest.raises(BackendError):
        asyncio.run(client.embed(make_photo("p1")))


def test_semantic_analyzer_returns_description():
    handler = lambda r: httpx.Response(200, json={"description": "metal roof with new flashing"})
    analyzer = RemoteSemanticAnalyzer("http://ai.test", client=mock_client(handler))
    assert asyncio.run(analyzer.describe(make_photo("p1"))) == "metal roof with new flashing"


def test_semantic_analyzer_empty_description():
    handler = lambda r: httpx.Response(200, json={"description": "  "})
    analyzer = RemoteSemanticAnalyzer("http://ai.test", client=mock_client(handler))
    with pytest.raises(BackendError):
        asyncio.run(analyzer.describe(make_photo("p1")))


def test_fetcher_file_hash_prefers_photo_hash():
    def handler(request):
        raise AssertionError("no download expected")

    fetcher = ImageFetcher(client=mock_client(handler))
    assert asyncio.run(fetcher.file_hash(make_photo("p1", hash="cafe"))) == "cafe"


def test_fetcher_file_hash_from_bytes():
    fetcher = ImageFetcher(client=mock_client(lambda r: httpx.Response(200, content=b"jpeg-bytes")))
    assert asyncio.run(fetcher.file_hash(make_photo("p1"))) == compute_sha256(b"jpeg-bytes")


def test_fetcher_missing_image():
    fetcher = ImageFetcher(client=mock_client(lambda r: httpx.Response(404)))
    with pytest.raises(BackendError):
        asyncio.run(fetcher.fetch(make_photo("p1")))


def test_local_embedder_uses_downloaded_image():
    data = png_bytes(stripes=True)
    fetcher = ImageFetcher(client=mock_client(lambda r: httpx.Response(200, content=data)))
    vec = asyncio.run(LocalFeatureEmbedder(fetcher).embed(make_photo("p1")))
    assert vec.ndim == 1 and vec.size > 0


def test_local_embedder_bad_image():
    fetcher = ImageFetcher(client=mock_client(lambda r: httpx.Response(200, content=b"garbage")))
    with pytest.raises(BackendError):
        asyncio.run(LocalFeatureEmbedder(fetcher).embed(make_photo("p1")))


def test_build_backends_defaults_to_local_features():
    fetcher, embedder, analyzer = build_backends(BackendSettings())
    assert isinstance(embedder, LocalFeatureEmbedder)
    assert embedder.fetcher is fetcher
    assert analyzer is None


def test_build_backends_remote():
    settings = BackendSettings(embedding_url="http://e.test", analysis_url="http://a.test")
    _, embedder, analyzer = build_backends(settings)
    assert isinstance(embedder, RemoteEmbeddingClient)
    assert isinstance(analyzer, RemoteSemanticAnalyzer)
