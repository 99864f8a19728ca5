"""
Shared fixtures for the test suite.

FakeEmbeddingService replaces the HTTP call with a bag-of-words vector over a
growing vocabulary, so similarity follows shared words and every run is
deterministic.
"""

import re
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from deeprecall.config import (
    ChunkingConfig,
    DeepRecallConfig,
    EmbeddingConfig,
    RetrievalConfig,
    WatcherConfig,
)
from deeprecall.errors import ProviderError
from deeprecall.indexing.embeddings import EmbeddingService
from deeprecall.indexing.models import Chunk, ChunkMetadata
from deeprecall.indexing.storage import VectorStore

DIMENSIONS = 256


class FakeEmbeddingService(EmbeddingService):
    """EmbeddingService with the provider call swapped for word counting."""

    def __init__(self, batch_size: int = 4):
        super().__init__(EmbeddingConfig(api_key="test-key", batch_size=batch_size))
        self.vocabulary: Dict[str, int] = {}
        self.batches = 0
        self.embedded_texts: List[str] = []
        self.fail_with: Optional[Exception] = None
        self._vocab_lock = threading.Lock()

    def vectorize(self, text: str) -> List[float]:
        vector = [0.0] * DIMENSIONS
        with self._vocab_lock:
            for word in re.findall(r"[a-z]+", text.lower()):
                index = self.vocabulary.setdefault(word, len(self.vocabulary) % DIMENSIONS)
                vector[index] += 1.0
        return vector

    def _embed_batch(self, texts: List[str], timeout: Optional[float]) -> List[List[float]]:
        self.batches += 1
        if self.fail_with is not None:
            raise self.fail_with
        self.embedded_texts.extend(texts)
        return [self.vectorize(text) for text in texts]


def make_chunk(document_id: str, index: int, content: str, embedding: List[float],
               source: str = "doc.txt") -> Chunk:
    return Chunk(
        document_id=document_id,
        content=content,
        index=index,
        metadata=ChunkMetadata(source=source, doc_id=document_id, chunk_index=index),
        embedding=embedding
    )


@pytest.fixture
def context_dir(tmp_path: Path) -> Path:
    folder = tmp_path / "context"
    folder.mkdir()
    return folder


@pytest.fixture
def config(tmp_path: Path, context_dir: Path) -> DeepRecallConfig:
    return DeepRecallConfig(
        folder=str(context_dir),
        chunking=ChunkingConfig(method="fixed", chunk_size=20, chunk_overlap=5, min_chunk_size=5),
        embeddings=EmbeddingConfig(api_key="test-key", cache_dir=str(tmp_path / "cache")),
        retrieval=RetrievalConfig(top_k=3, similarity_threshold=0.0, db_path=str(tmp_path / "vectors.db")),
        watcher=WatcherConfig(debounce_seconds=0.05)
    )


@pytest.fixture
def embedder() -> FakeEmbeddingService:
    return FakeEmbeddingService()


@pytest.fixture
def failing_embedder() -> FakeEmbeddingService:
    service = FakeEmbeddingService()
    service.fail_with = ProviderError("provider unavailable")
    return service


@pytest.fixture
def store(tmp_path: Path):
    vector_store = VectorStore(str(tmp_path / "store.db"))
    yield vector_store
    vector_store.close()


def wait_for(condition, timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll until condition() is truthy or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(interval)
    return bool(condition())
