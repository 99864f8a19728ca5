"""
Context Retrieval

Embeds an incoming query and returns the best-matching chunks from the vector
store. "No relevant context" is a normal, empty result; an embedding failure
is raised so the caller can decide how to answer without context.
"""

import logging
from typing import List, Optional

from ..config import RetrievalConfig
from ..errors import EmptyInputError
from .embeddings import EmbeddingService
from .models import RetrievalResult
from .storage import VectorStore


class ContextRetriever:
    """Query embedding plus top-K similarity search."""

    def __init__(self,
                 store: VectorStore,
                 embedder: EmbeddingService,
                 config: Optional[RetrievalConfig] = None,
                 logger: Optional[logging.Logger] = None):
        self.store = store
        self.embedder = embedder
        self.config = config or RetrievalConfig()
        self.logger = logger or logging.getLogger(__name__)

    def retrieve(self, query: str, timeout: Optional[float] = None,
                 top_k: Optional[int] = None, threshold: Optional[float] = None) -> List[RetrievalResult]:
        """
        Find the chunks most similar to a query.

        Args:
            query: Query text (wake word already stripped by the caller)
            timeout: Embedding request timeout in seconds
            top_k: Override for config.top_k
            threshold: Override for config.similarity_threshold

        Raises:
            EmptyInputError: Blank query
            ProviderError: The query could not be embedded
        """
        if not query or not query.strip():
            raise EmptyInputError("Query is empty")

        query_embedding = self.embedder.create_embedding(query, timeout=timeout)

        results = self.store.search(
            query_embedding,
            top_k if top_k is not None else self.config.top_k,
            threshold if threshold is not None else self.config.similarity_threshold
        )

        if results:
            self.logger.debug("Retrieved %d chunks for %r (best score %.3f)", len(results), query[:100], results[0].score)
        else:
            self.logger.debug("No relevant chunks for %r", query[:100])

        return results
