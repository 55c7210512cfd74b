# src/sponsormatch/pipeline/embedding.py
from __future__ import annotations

import asyncio
import logging
from typing import List, Protocol, Sequence

import numpy as np

from sponsormatch.pipeline.errors import EmbeddingError

_log = logging.getLogger("sponsormatch.embedding")

DEFAULT_EMBEDDING_TIMEOUT_S = 5.0


class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> Sequence[float]:
        """Return an embedding vector; raise on any failure."""
        ...


class OpenAIEmbeddingProvider:
    def __init__(
        self,
        api_key: str = "",
        model: str = "text-embedding-3-small",
        timeout: float = DEFAULT_EMBEDDING_TIMEOUT_S,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=self.api_key or None, timeout=self.timeout)
        return self._client

    async def embed(self, text: str) -> List[float]:
        response = await self._get_client().embeddings.create(model=self.model, input=text)
        if not response.data:
            raise EmbeddingError("embedding response contained no vectors")
        return list(response.data[0].embedding)


async def embed_text(
    provider: EmbeddingProvider,
    text: str,
    timeout: float = DEFAULT_EMBEDDING_TIMEOUT_S,
) -> np.ndarray:
    """Embed with a timeout; every failure surfaces as EmbeddingError."""
    try:
        vector = await asyncio.wait_for(provider.embed(text), timeout=timeout)
    except EmbeddingError:
        raise
    except asyncio.TimeoutError as exc:
        raise EmbeddingError(f"embedding timed out after {timeout:.1f}s") from exc
    except Exception as exc:
        raise EmbeddingError(f"embedding provider failed: {exc}") from exc

    arr = np.asarray(vector, dtype=float)
    if arr.ndim != 1 or arr.size == 0:
        raise EmbeddingError(f"embedding has unexpected shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise EmbeddingError("embedding contains non-finite values")
    return arr


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    a = np.asarray(vec_a, dtype=float)
    b = np.asarray(vec_b, dtype=float)
    if a.shape != b.shape:
        raise EmbeddingError(f"embedding dimensions differ: {a.shape} vs {b.shape}")

    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    return float(np.dot(a, b) / norm)
