"""
Embedding Service for Document Chunks

Generates vector embeddings through an OpenAI-compatible /embeddings endpoint.
Requests are batched; any failure aborts the whole call so a document is never
left partially embedded. Retries are the caller's business.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np
import requests

from ..config import EmbeddingConfig
from ..errors import ConfigurationError, EmptyInputError, ProviderError
from .models import Chunk


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity in [-1, 1].

    Returns 0.0 instead of raising for empty, zero-norm or mismatched vectors.
    """
    if len(a) == 0 or len(b) == 0 or len(a) != len(b):
        return 0.0

    vec1 = np.asarray(a, dtype=np.float64)
    vec2 = np.asarray(b, dtype=np.float64)

    norm1 = np.linalg.norm(vec1)
    norm2 = np.linalg.norm(vec2)
    if norm1 == 0 or norm2 == 0 or not np.isfinite(norm1) or not np.isfinite(norm2):
        return 0.0

    similarity = float(np.dot(vec1, vec2) / (norm1 * norm2))
    return max(-1.0, min(1.0, similarity))


def to_float32(vector: Sequence[float]) -> List[float]:
    """Round a vector to float32 precision, the precision it is stored at."""
    return np.asarray(vector, dtype=np.float32).tolist()


class EmbeddingService:
    """Client for the embedding provider."""

    def __init__(self, config: Optional[EmbeddingConfig] = None, logger: Optional[logging.Logger] = None):
        self.config = config or EmbeddingConfig()
        self.config.validate()
        self.logger = logger or logging.getLogger(__name__)

    @property
    def endpoint(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/embeddings"

    def create_embeddings(self, texts: List[str], timeout: Optional[float] = None) -> List[List[float]]:
        """
        Embed texts in batches of config.batch_size.

        Args:
            texts: Texts to embed, in order
            timeout: Per-request timeout in seconds (defaults to config.timeout_seconds)

        Returns:
            One vector per input text, same order

        Raises:
            ProviderError: Any batch failed; nothing is returned for the others
        """
        batch_size = self.config.batch_size
        embeddings: List[List[float]] = []

        for i in range(0, len(texts), batch_size):
            batch = texts[i:i + batch_size]
            self.logger.debug("Embedding batch %d/%d (%d texts)",
                              i // batch_size + 1, (len(texts) + batch_size - 1) // batch_size, len(batch))
            embeddings.extend(self._embed_batch(batch, timeout))

        return embeddings

    def create_embedding(self, text: str, timeout: Optional[float] = None) -> List[float]:
        """Embed a single text, typically a query."""
        if not text.strip():
            raise EmptyInputError("Cannot embed empty text")
        return self.create_embeddings([text], timeout=timeout)[0]

    def embed_chunks(self, chunks: List[Chunk], timeout: Optional[float] = None) -> List[Chunk]:
        """Return copies of the chunks carrying their embeddings."""
        vectors = self.create_embeddings([chunk.content for chunk in chunks], timeout=timeout)
        return [chunk.with_embedding(vector) for chunk, vector in zip(chunks, vectors)]

    def _embed_batch(self, texts: List[str], timeout: Optional[float]) -> List[List[float]]:
        # The key is only required once a request is made
        if not self.config.api_key:
            raise ConfigurationError("API key required for embedding service (set OPENAI_API_KEY)")

        details = {"model": self.config.model, "batch_size": len(texts)}

        try:
            response = requests.post(
                self.endpoint,
                headers={
                    "Authorization": f"Bearer {self.config.api_key}",
                    "Content-Type": "application/json"
                },
                json={
                    "model": self.config.model,
                    "input": texts
                },
                timeout=timeout if timeout is not None else self.config.timeout_seconds
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout as e:
            raise ProviderError("Embedding request timed out", details) from e
        except requests.exceptions.RequestException as e:
            raise ProviderError("Embedding request failed", {**details, "error": e}) from e
        except ValueError as e:
            raise ProviderError("Embedding response is not valid JSON", details) from e

        try:
            items = sorted(data["data"], key=lambda item: item.get("index", 0))
            vectors = [to_float32(item["embedding"]) for item in items]
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError("Malformed embedding response", {**details, "error": e}) from e

        if len(vectors) != len(texts):
            raise ProviderError("Embedding count mismatch", {**details, "received": len(vectors)})
        if any(len(vector) == 0 for vector in vectors):
            raise ProviderError("Provider returned an empty embedding", details)

        return vectors
