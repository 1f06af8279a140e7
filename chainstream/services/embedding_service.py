"""Embedding providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

import httpx

from chainstream.core.config import settings
from chainstream.core.errors import EmbeddingError
from chainstream.core.logging import get_logger

log = get_logger("embedding")

TASK_DOCUMENT = "RETRIEVAL_DOCUMENT"
TASK_QUERY = "RETRIEVAL_QUERY"


class BaseEmbedder(ABC):
    """Turns text into a fixed-dimensionality vector. Never retries internally."""

    name: str
    dimensions: int

    @abstractmethod
    async def embed(self, text: str, task_type: str = TASK_DOCUMENT) -> List[float]:
        """Return the embedding or raise EmbeddingError."""

    async def aclose(self) -> None:
        return None

    def _check(self, vector: object) -> List[float]:
        if not isinstance(vector, list) or not vector:
            raise EmbeddingError(f"{self.name} returned no embedding values")
        if self.dimensions and len(vector) != self.dimensions:
            raise EmbeddingError(f"{self.name} returned {len(vector)} dimensions, expected {self.dimensions}")
        return [float(v) for v in vector]


class GeminiEmbedder(BaseEmbedder):
    name = "gemini"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        dimensions: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.EMBEDDING_API_KEY
        self.base_url = (base_url or settings.EMBEDDING_API_URL).rstrip("/")
        self.model = model or settings.EMBEDDING_MODEL
        self.dimensions = dimensions or settings.EMBEDDING_DIMENSIONS
        self._client = httpx.AsyncClient(timeout=30.0, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def embed(self, text: str, task_type: str = TASK_DOCUMENT) -> List[float]:
        url = f"{self.base_url}/{self.model}:embedContent"
        payload = {
            "model": self.model,
            "content": {"parts": [{"text": text}]},
            "output_dimensionality": self.dimensions,
            "task_type": task_type,
        }
        headers = {"x-goog-api-key": self.api_key or "", "Content-Type": "application/json"}
        try:
            resp = await self._client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"Gemini Embedding Error: {type(exc).__name__} - {exc}") from exc

        if resp.status_code != 200:
            raise EmbeddingError(f"Gemini API Error: {resp.status_code} - {resp.text[:200]}")
        try:
            values = (resp.json().get("embedding") or {}).get("values")
        except ValueError as exc:
            raise EmbeddingError(f"Gemini returned invalid JSON: {exc}") from exc
        return self._check(values)


class OllamaEmbedder(BaseEmbedder):
    """Self-hosted Ollama ``/api/embeddings``; ``task_type`` is not part of its API."""

    name = "ollama"

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        token: str | None = None,
        dimensions: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.EMBEDDING_API_URL).rstrip("/")
        self.model = model or settings.EMBEDDING_MODEL
        self.token = token if token is not None else settings.EMBEDDING_API_KEY
        self.dimensions = dimensions if dimensions is not None else settings.EMBEDDING_DIMENSIONS
        self._client = httpx.AsyncClient(timeout=30.0, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def embed(self, text: str, task_type: str = TASK_DOCUMENT) -> List[float]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            resp = await self._client.post(
                f"{self.base_url}/api/embeddings",
                json={"model": self.model, "prompt": text},
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"Ollama Embedding Error: {type(exc).__name__} - {exc}") from exc

        if resp.status_code != 200:
            raise EmbeddingError(f"Ollama API Error: {resp.status_code} - {resp.text[:200]}")
        try:
            values = resp.json().get("embedding")
        except ValueError as exc:
            raise EmbeddingError(f"Ollama returned invalid JSON: {exc}") from exc
        return self._check(values)


def build_embedder() -> BaseEmbedder:
    if settings.EMBEDDING_PROVIDER == "ollama":
        log.info(f"Using Ollama embeddings ({settings.EMBEDDING_MODEL})")
        return OllamaEmbedder()
    log.info(f"Using Gemini embeddings ({settings.EMBEDDING_MODEL}, {settings.EMBEDDING_DIMENSIONS} dims)")
    return GeminiEmbedder()
