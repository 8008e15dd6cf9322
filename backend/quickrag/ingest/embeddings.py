"""Embedding backends."""

from __future__ import annotations

import asyncio
import hashlib
import math
import os
import re
from abc import ABC, abstractmethod
from typing import Any, Sequence

import requests

from quickrag.core.config import Settings
from quickrag.core.errors import ConfigurationError, EmbeddingError
from quickrag.core.logging import get_logger

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"\w+")

OPENAI_BASE_URL = "https://api.openai.com/v1"
VOYAGE_BASE_URL = "https://api.voyageai.com/v1"
OLLAMA_BASE_URL = "http://localhost:11434"
OLLAMA_PARALLEL_REQUESTS = 5


class EmbeddingProvider(ABC):
    """Turns texts into vectors, one per input and in input order."""

    name: str = "base"

    @property
    @abstractmethod
    def dimensions(self) -> int:
        ...

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        ...

    async def embed(self, text: str) -> list[float]:
        return (await self.embed_batch([text]))[0]

    def close(self) -> None:
        return None


class HashedEmbeddingProvider(EmbeddingProvider):
    """Deterministic offline embeddings built by hashing word tokens."""

    name = "hashed"

    def __init__(self, dim: int = 384) -> None:
        self._dim = dim

    @property
    def dimensions(self) -> int:
        return self._dim

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self.encode(text) for text in texts]

    def encode(self, text: str) -> list[float]:
        vector = [0.0] * self._dim
        for token in _TOKEN_RE.findall(text.lower()):
            vector[_hash_token(token, self._dim)] += 1.0
        _normalize(vector)
        return vector


class HTTPEmbeddingProvider(EmbeddingProvider):
    """Shared plumbing for providers reached over HTTP with ``requests``."""

    def __init__(self, model: str, base_url: str, timeout: float, api_key: str | None = None) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key
        self._session = requests.Session()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _post(self, path: str, payload: dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = self._session.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as exc:
            raise EmbeddingError(f"{self.name} request to {url} failed: {exc}") from exc
        if not resp.ok:
            raise EmbeddingError(f"{self.name} API error: {_error_message(resp)}")
        try:
            return resp.json()
        except ValueError as exc:
            raise EmbeddingError(f"Invalid response from {self.name} API: {exc}") from exc

    async def _post_async(self, path: str, payload: dict[str, Any]) -> Any:
        return await asyncio.to_thread(self._post, path, payload)

    def close(self) -> None:
        self._session.close()


class OpenAIEmbeddingProvider(HTTPEmbeddingProvider):
    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        base_url: str = OPENAI_BASE_URL,
        timeout: float = 300.0,
    ) -> None:
        super().__init__(model=model, base_url=base_url, timeout=timeout, api_key=api_key)
        self._dim = 3072 if "large" in model else 1536

    @property
    def dimensions(self) -> int:
        return self._dim

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        data = await self._post_async("/embeddings", {"model": self.model, "input": texts})
        return _data_embeddings(data, self.name)


class VoyageAIEmbeddingProvider(HTTPEmbeddingProvider):
    name = "voyageai"

    def __init__(
        self,
        api_key: str,
        model: str = "voyage-3",
        base_url: str = VOYAGE_BASE_URL,
        timeout: float = 300.0,
    ) -> None:
        super().__init__(model=model, base_url=base_url, timeout=timeout, api_key=api_key)
        self._dim = 1536 if "large" in model else 1024

    @property
    def dimensions(self) -> int:
        return self._dim

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        data = await self._post_async("/embeddings", {"model": self.model, "input": texts})
        return _data_embeddings(data, self.name)


class OllamaEmbeddingProvider(HTTPEmbeddingProvider):
    """Ollama has no batch endpoint; texts are sent a few at a time."""

    name = "ollama"

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str = OLLAMA_BASE_URL,
        dimensions: int | None = None,
        timeout: float = 300.0,
    ) -> None:
        super().__init__(model=model, base_url=base_url, timeout=timeout)
        self._dim = dimensions or 768
        self._dim_known = dimensions is not None

    @property
    def dimensions(self) -> int:
        return self._dim

    async def embed(self, text: str) -> list[float]:
        data = await self._post_async("/api/embeddings", {"model": self.model, "prompt": text})
        embedding = data.get("embedding") if isinstance(data, dict) else None
        if not isinstance(embedding, list):
            raise EmbeddingError("Invalid response from Ollama API: missing or invalid embedding")
        if not self._dim_known:
            self._dim = len(embedding)
            self._dim_known = True
        elif len(embedding) != self._dim:
            raise EmbeddingError(
                f"Embedding dimension mismatch: expected {self._dim}, got {len(embedding)}"
            )
        return embedding

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        results: list[list[float]] = []
        for offset in range(0, len(texts), OLLAMA_PARALLEL_REQUESTS):
            group = texts[offset : offset + OLLAMA_PARALLEL_REQUESTS]
            results.extend(await asyncio.gather(*(self.embed(text) for text in group)))
        return results


def create_provider(settings: Settings) -> EmbeddingProvider:
    """Build the embedding backend selected in ``settings``."""
    timeout = settings.embed_timeout_seconds
    if settings.provider == "hashed":
        return HashedEmbeddingProvider()
    if settings.provider == "ollama":
        return OllamaEmbeddingProvider(
            model=settings.model,
            base_url=settings.base_url or OLLAMA_BASE_URL,
            timeout=timeout,
        )
    if settings.provider == "openai":
        api_key = settings.api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ConfigurationError("OpenAI provider requires an API key (OPENAI_API_KEY)")
        return OpenAIEmbeddingProvider(
            api_key=api_key,
            model=settings.model,
            base_url=settings.base_url or OPENAI_BASE_URL,
            timeout=timeout,
        )
    if settings.provider == "voyageai":
        api_key = settings.api_key or os.environ.get("VOYAGE_API_KEY")
        if not api_key:
            raise ConfigurationError("VoyageAI provider requires an API key (VOYAGE_API_KEY)")
        return VoyageAIEmbeddingProvider(
            api_key=api_key,
            model=settings.model,
            base_url=settings.base_url or VOYAGE_BASE_URL,
            timeout=timeout,
        )
    raise ConfigurationError(f"Unknown embedding provider: {settings.provider}")


def _data_embeddings(data: Any, provider: str) -> list[list[float]]:
    try:
        items: Sequence[dict[str, Any]] = data["data"]
        ordered = sorted(items, key=lambda item: item.get("index", 0))
        return [list(item["embedding"]) for item in ordered]
    except (KeyError, TypeError) as exc:
        raise EmbeddingError(f"Invalid response from {provider} API: {exc}") from exc


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}: {resp.reason}"
    if not isinstance(body, dict):
        return str(body)
    error = body.get("error")
    if isinstance(error, dict):
        error = error.get("message")
    return str(error or body.get("detail") or f"HTTP {resp.status_code}: {resp.reason}")


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = [
    "EmbeddingProvider",
    "HashedEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "VoyageAIEmbeddingProvider",
    "OllamaEmbeddingProvider",
    "create_provider",
]
