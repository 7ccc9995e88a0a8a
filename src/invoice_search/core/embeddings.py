"""Embedding gateways turning text into fixed-length vectors."""

import asyncio
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional

import httpx
import numpy as np
from sklearn.feature_extraction.text import HashingVectorizer

from .exceptions import EmbeddingError

logger = logging.getLogger(__name__)

DEFAULT_DIMENSION = 768
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
GEMINI_MODEL = "text-embedding-004"


class EmbeddingGateway(ABC):
    """Port for the external text-to-vector provider."""

    @abstractmethod
    async def generate_embedding(self, text: str) -> np.ndarray:
        """
        Embed one text.

        Raises:
            EmbeddingError: Provider unconfigured, unreachable or returned an empty vector
        """
        raise NotImplementedError

    @property
    def is_configured(self) -> bool:
        return True

    def get_stats(self) -> Dict[str, Any]:
        return {'embedding_backend': type(self).__name__}

    async def close(self) -> None:
        return None


class HashingEmbeddingGateway(EmbeddingGateway):
    """
    Deterministic local embeddings from hashed character n-grams.

    Case-sensitive, so "Gaurav" and "gaurav" embed differently, the same way
    a hosted model would treat them. Needs no fitting and no network.
    """

    def __init__(
        self,
        dimension: int = DEFAULT_DIMENSION,
        ngram_range: tuple = (2, 4),
        executor: Optional[ThreadPoolExecutor] = None
    ):
        """
        Initialize hashing embedding gateway.

        Args:
            dimension: Length of produced vectors
            ngram_range: Character n-gram sizes
            executor: Thread pool for vectorisation
        """
        if dimension <= 0:
            raise ValueError("Embedding dimension must be positive")

        self.dimension = dimension
        self.vectorizer = HashingVectorizer(
            n_features=dimension,
            analyzer='char_wb',
            ngram_range=ngram_range,
            lowercase=False,
            alternate_sign=False,
            norm='l2'
        )
        self._executor = executor or ThreadPoolExecutor(max_workers=2)
        self._owns_executor = executor is None

    async def generate_embedding(self, text: str) -> np.ndarray:
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")

        loop = asyncio.get_running_loop()
        vector = await loop.run_in_executor(self._executor, self._embed_sync, text)
        if not np.any(vector):
            raise EmbeddingError("Empty embedding produced")
        return vector

    def _embed_sync(self, text: str) -> np.ndarray:
        """Vectorise synchronously in thread pool."""
        matrix = self.vectorizer.transform([text])
        return np.asarray(matrix.toarray()[0], dtype=np.float32)

    def get_stats(self) -> Dict[str, Any]:
        return {**super().get_stats(), 'embedding_dimension': self.dimension}

    async def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True)


class GeminiEmbeddingGateway(EmbeddingGateway):
    """
    Google Generative Language ``embedContent`` over REST.

    Without an API key every call fails with the same EmbeddingError; that
    is a permanent condition of the process, not a transient one.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = GEMINI_MODEL,
        timeout: float = 15.0,
        base_url: str = GEMINI_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize Gemini embedding gateway.

        Args:
            api_key: Generative Language API key
            model: Embedding model name
            timeout: Request timeout in seconds
            base_url: API root
            transport: Custom httpx transport
        """
        self.api_key = api_key
        self.model = model
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            transport=transport,
            headers={"User-Agent": "invoice-search/1.0"}
        )
        if not api_key:
            logger.warning("GEMINI_API_KEY not set; embedding requests will fail")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def generate_embedding(self, text: str) -> np.ndarray:
        if not self.api_key:
            raise EmbeddingError("Gemini API not configured. Set GEMINI_API_KEY.")

        payload = {
            "model": f"models/{self.model}",
            "content": {"parts": [{"text": text}]},
        }
        try:
            response = await self._client.post(
                f"/models/{self.model}:embedContent",
                params={"key": self.api_key},
                json=payload
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise EmbeddingError(f"Failed to generate embedding: {e}") from e
        except ValueError as e:
            raise EmbeddingError(f"Invalid embedding response: {e}") from e

        values = (data.get("embedding") or {}).get("values") or []
        if not values:
            raise EmbeddingError("Empty embedding returned from Gemini API")

        return np.asarray(values, dtype=np.float32)

    def get_stats(self) -> Dict[str, Any]:
        return {**super().get_stats(), 'embedding_model': self.model, 'configured': self.is_configured}

    async def close(self) -> None:
        await self._client.aclose()
