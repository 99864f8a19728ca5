"""
Context Service

Wires the indexing components together for the application that answers
queries: initial folder scan, watcher-driven updates, and retrieval. It keeps
track of which document version each file currently contributes to the vector
store so that a changed file's previous chunks are replaced, never left
searchable next to the new ones.
"""

import logging
import os
import threading
from typing import Dict, List, Optional, Set

from .config import DeepRecallConfig
from .indexing.embeddings import EmbeddingService
from .indexing.indexer import DocumentIndexer
from .indexing.models import Chunk, RetrievalResult
from .indexing.retriever import ContextRetriever
from .indexing.storage import StorageStats, VectorStore
from .indexing.watcher import FileWatcher, IndexUpdateListener


class ContextService(IndexUpdateListener):
    """Indexing, watching and retrieval over one context folder."""

    def __init__(self,
                 config: DeepRecallConfig,
                 embedder: Optional[EmbeddingService] = None,
                 store: Optional[VectorStore] = None,
                 logger: Optional[logging.Logger] = None):
        self.config = config.validate()
        self.logger = logger or logging.getLogger(__name__)
        self.folder = os.path.abspath(config.folder)

        self.embedder = embedder or EmbeddingService(config.embeddings, logger=self.logger)
        self.indexer = DocumentIndexer(config, self.embedder, logger=self.logger)
        self.store = store or VectorStore(config.retrieval.db_path, logger=self.logger)
        self.retriever = ContextRetriever(self.store, self.embedder, config.retrieval, logger=self.logger)
        self.watcher = FileWatcher(self.indexer, config, logger=self.logger)
        self.watcher.add_listener(self)

        self._paths_lock = threading.Lock()
        # file path -> document ids it currently has in the store
        self._path_documents: Dict[str, Set[str]] = self.store.document_sources()
        self._path_documents.update(self.store.tracked_sources())

    def index_directory(self) -> Dict[str, List[Chunk]]:
        """
        Scan the context folder and bring the store up to date.

        Files that were tracked but no longer exist are removed from the store.
        """
        results = self.indexer.index_directory(self.folder)
        for file_path, chunks in results.items():
            self._apply(file_path, chunks)

        with self._paths_lock:
            tracked = list(self._path_documents)
        for file_path in tracked:
            if _is_within(file_path, self.folder) and not os.path.exists(file_path):
                self.remove_file(file_path)

        return results

    def index_file(self, file_path: str, force_reindex: bool = False) -> List[Chunk]:
        file_path = os.path.abspath(file_path)
        chunks = self.indexer.index_file(file_path, force_reindex=force_reindex)
        self._apply(file_path, chunks)
        return chunks

    def remove_file(self, file_path: str) -> int:
        """Remove a file's chunks from the store. Returns how many were removed."""
        file_path = os.path.abspath(file_path)
        removed = 0
        with self._paths_lock:
            document_ids = self._path_documents.pop(file_path, set())
            claimed = self._claimed_by_others(file_path)
            for document_id in document_ids - claimed:
                removed += self.store.delete_by_document_id(document_id)
            self.store.forget_source(file_path)
        self.indexer.forget(file_path)

        self.logger.info("Removed %d chunks for %s", removed, file_path)
        return removed

    def on_index_update(self, file_path: str, chunks: List[Chunk]):
        self._apply(file_path, chunks)

    def retrieve(self, query: str, timeout: Optional[float] = None) -> List[RetrievalResult]:
        return self.retriever.retrieve(query, timeout=timeout)

    def get_stats(self) -> StorageStats:
        return self.store.get_stats()

    def start_watching(self):
        self.watcher.start()

    def stop_watching(self):
        self.watcher.stop()

    def close(self):
        self.watcher.stop()
        self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _apply(self, file_path: str, chunks: List[Chunk]):
        """Make chunks the file's only version in the store."""
        if not chunks:
            return
        document_id = chunks[0].document_id

        with self._paths_lock:
            previous = self._path_documents.get(file_path, set())
            stale = previous - {document_id} - self._claimed_by_others(file_path)
            self.store.replace_document(chunks, stale, source=file_path)
            self._path_documents[file_path] = {document_id}

    def _claimed_by_others(self, file_path: str) -> Set[str]:
        claimed: Set[str] = set()
        for path, document_ids in self._path_documents.items():
            if path != file_path:
                claimed |= document_ids
        return claimed


def _is_within(path: str, folder: str) -> bool:
    try:
        return os.path.commonpath([path, folder]) == folder
    except ValueError:
        return False
