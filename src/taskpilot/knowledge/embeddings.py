"""
Text Embeddings

Embedding backend used for learned-tool matching and in-page semantic
search. Any OpenAI-compatible ``/embeddings`` endpoint works (OpenAI,
OpenRouter, a local server).

Configuration (environment):
    EMBEDDING_API_BASE: Endpoint base URL (embeddings disabled when unset)
    EMBEDDING_API_KEY: Bearer token
    EMBEDDING_MODEL: Model name (default: text-embedding-3-small)
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import List, Optional, Union

import httpx
import numpy as np

logger = logging.getLogger(__name__)

Vector = Union[List[float], np.ndarray]


class EmbeddingError(Exception):
    """The embedding backend could not produce vectors."""


class Embedder(ABC):
    """Turns texts into vectors."""

    @abstractmethod
    async def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Embed a batch of texts.

        Raises:
            EmbeddingError: The backend failed
        """

    async def close(self) -> None:
        pass


class OpenAICompatibleEmbedder(Embedder):
    """Embedder over an OpenAI-compatible HTTP endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        model: str = "text-embedding-3-small",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model = model
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def embed(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            response = await self._client.post("/embeddings", json={"model": self.model, "input": texts})
            response.raise_for_status()
            data = response.json()["data"]
            # Results may come back out of order
            data = sorted(data, key=lambda item: item.get("index", 0))
            return [item["embedding"] for item in data]
        except (httpx.HTTPError, KeyError, TypeError, AttributeError, ValueError) as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e

    async def close(self) -> None:
        await self._client.aclose()


def create_embedder_from_env() -> Optional[Embedder]:
    """Build the embedder from the environment, or None when unconfigured."""
    base_url = os.getenv("EMBEDDING_API_BASE")
    if not base_url:
        return None
    return OpenAICompatibleEmbedder(
        base_url=base_url,
        api_key=os.getenv("EMBEDDING_API_KEY"),
        model=os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
    )


def cosine_similarity(vec1: Vector, vec2: Vector) -> float:
    """Cosine similarity in [-1, 1]; 0.0 when either vector is all zeros."""
    a = np.asarray(vec1, dtype=np.float32)
    b = np.asarray(vec2, dtype=np.float32)
    norm1 = np.linalg.norm(a)
    norm2 = np.linalg.norm(b)
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return float(np.dot(a, b) / (norm1 * norm2))


def batch_cosine_similarity(query_vec: Vector, candidate_vecs: List[Vector]) -> List[float]:
    """Similarity of one query vector against many candidates."""
    if not candidate_vecs:
        return []

    query = np.asarray(query_vec, dtype=np.float32)
    query_norm = np.linalg.norm(query)
    if query_norm == 0:
        return [0.0] * len(candidate_vecs)

    matrix = np.asarray(candidate_vecs, dtype=np.float32)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1
    return np.dot(matrix / norms, query / query_norm).tolist()
