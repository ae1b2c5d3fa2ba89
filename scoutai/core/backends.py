"""Clients for the remote collaborators of the similarity pipeline.

- ImageFetcher: downloads photo renditions (used for hashing and local features)
- RemoteEmbeddingClient: vision-embedding service, returns one vector per photo
- LocalFeatureEmbedder: computes embeddings locally from downloaded bytes
- RemoteSemanticAnalyzer: AI description service for the ai_analysis layer

None of them retry. Every failure surfaces as BackendError so the pipeline
can degrade the affected pairs.
"""
import logging
from typing import Optional, Protocol

import httpx
import numpy as np

from scoutai.core.config import BackendSettings
from scoutai.core.errors import BackendError
from scoutai.core.features import extract_features
from scoutai.core.hashing import compute_sha256
from scoutai.core.models import Photo

log = logging.getLogger("scoutai.backends")


class VisionEmbedder(Protocol):
    async def embed(self, photo: Photo) -> np.ndarray: ...


class SemanticAnalyzer(Protocol):
    async def describe(self, photo: Photo) -> str: ...


class _HttpBackend:
    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        api_key: Optional[str] = None,
    ):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else None
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout, headers=headers)

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()

    async def _post_json(self, url: str, payload: dict) -> dict:
        try:
            response = await self.client.post(url, json=payload)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise BackendError(f"Request to {url} failed: {e}") from e


class ImageFetcher(_HttpBackend):
    """Downloads image bytes for a photo, preferring the web rendition."""

    renditions = ("web", "original", "thumbnail")

    async def fetch(self, photo: Photo) -> bytes:
        uri = photo.uri_for(*self.renditions)
        if not uri:
            raise BackendError(f"Photo {photo.id} has no image URI")
        try:
            response = await self.client.get(uri)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise BackendError(f"Cannot fetch image for {photo.id}: {e}") from e
        return response.content

    async def file_hash(self, photo: Photo) -> str:
        """CompanyCam hash when present, else SHA-256 of the image bytes."""
        if photo.hash:
            return photo.hash
        return compute_sha256(await self.fetch(photo))


class LocalFeatureEmbedder:
    def __init__(self, fetcher: ImageFetcher):
        self.fetcher = fetcher

    async def embed(self, photo: Photo) -> np.ndarray:
        data = await self.fetcher.fetch(photo)
        try:
            return extract_features(data)
        except ValueError as e:
            raise BackendError(f"Cannot extract features for {photo.id}: {e}") from e


class RemoteEmbeddingClient(_HttpBackend):
    """Client for an embedding service exposing POST /embed.

    Request:  {"photo_id": ..., "image_url": ...}
    Response: {"embedding": [float, ...]}
    """

    def __init__(self, service_url: str, **kwargs):
        super().__init__(**kwargs)
        self.service_url = service_url.rstrip("/")
        log.info("RemoteEmbeddingClient initialized: url=%s", self.service_url)

    async def embed(self, photo: Photo) -> np.ndarray:
        image_url = photo.uri_for("web", "original", "thumbnail")
        if not image_url:
            raise BackendError(f"Photo {photo.id} has no image URI")
        result = await self._post_json(
            f"{self.service_url}/embed",
            {"photo_id": photo.id, "image_url": image_url},
        )
        try:
            embedding = np.asarray(result["embedding"], dtype=np.float32)
        except (KeyError, TypeError, ValueError) as e:
            raise BackendError(f"Malformed embedding response for {photo.id}") from e
        if embedding.ndim != 1 or embedding.size == 0:
            raise BackendError(f"Empty embedding for {photo.id}")
        return embedding


class RemoteSemanticAnalyzer(_HttpBackend):
    """Client for an AI description service exposing POST /describe.

    Request:  {"photo_id": ..., "image_url": ..., "description": ...}
    Response: {"description": "..."}
    """

    def __init__(self, service_url: str, **kwargs):
        super().__init__(**kwargs)
        self.service_url = service_url.rstrip("/")
        log.info("RemoteSemanticAnalyzer initialized: url=%s", self.service_url)

    async def describe(self, photo: Photo) -> str:
        result = await self._post_json(
            f"{self.service_url}/describe",
            {
                "photo_id": photo.id,
                "image_url": photo.uri_for("web", "original", "thumbnail"),
                "description": photo.description or "",
            },
        )
        description = result.get("description") if isinstance(result, dict) else None
        if not isinstance(description, str) or not description.strip():
            raise BackendError(f"No description returned for {photo.id}")
        return description


def build_backends(
    settings: BackendSettings,
    client: Optional[httpx.AsyncClient] = None,
) -> tuple[ImageFetcher, VisionEmbedder, Optional[SemanticAnalyzer]]:
    """Wire fetcher, embedder and analyzer from settings.

    Without an embedding URL the embedder falls back to local features.
    """
    kwargs = {"client": client, "timeout": settings.timeout, "api_key": settings.api_key}
    fetcher = ImageFetcher(**kwargs)
    if settings.embedding_url:
        embedder: VisionEmbedder = RemoteEmbeddingClient(settings.embedding_url, **kwargs)
    else:
        embedder = LocalFeatureEmbedder(fetcher)
    analyzer = (
        RemoteSemanticAnalyzer(settings.analysis_url, **kwargs)
        if settings.analysis_url else None
    )
    return fetcher, embedder, analyzer
