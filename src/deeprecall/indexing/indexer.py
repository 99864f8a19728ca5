"""
Document Indexer

Orchestrates parsing, chunking, embedding and caching for single files and
whole directory trees. This is where the decision to reprocess a file is made:
an unchanged file (same content hash, mtime not advanced) is served straight
from the content-addressed cache without any parse, chunk or embed work.
"""

import logging
import os
import threading
import time
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from ..config import DeepRecallConfig
from ..errors import DeepRecallError, EmptyInputError
from .cache import IndexCache
from .chunker import TextChunker
from .embeddings import EmbeddingService
from .hashing import file_hash
from .models import Chunk, Document
from .parser import DocumentParser


class DocumentIndexer:
    """Turns files into embedded chunks, reusing cached work when possible."""

    def __init__(self,
                 config: DeepRecallConfig,
                 embedder: EmbeddingService,
                 parser: Optional[DocumentParser] = None,
                 chunker: Optional[TextChunker] = None,
                 cache: Optional[IndexCache] = None,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.embedder = embedder
        self.parser = parser or DocumentParser(logger=self.logger)
        self.chunker = chunker or TextChunker(config.chunking, logger=self.logger)
        self.cache = cache or IndexCache(config.embeddings.cache_dir, logger=self.logger)

        self._docs_lock = threading.Lock()
        self._documents: Dict[str, Document] = {}  # file path -> last indexed document

    def index_file(self, file_path: str, force_reindex: bool = False,
                   timeout: Optional[float] = None) -> List[Chunk]:
        """
        Index one file.

        Args:
            file_path: File to index
            force_reindex: Skip the cache check and reprocess unconditionally
            timeout: Embedding request timeout in seconds

        Returns:
            The file's chunks, each carrying an embedding

        Raises:
            UnsupportedFormatError, FileAccessError, ParseError: Parsing failed
            EmptyInputError: The file produced no text or no chunks
            ProviderError: Embedding failed; nothing was cached
        """
        if not force_reindex:
            cached = self._load_if_unchanged(file_path)
            if cached is not None:
                self.logger.debug("Using cached document: %s", file_path)
                return cached

        self.logger.info("Indexing file: %s", file_path)
        start_time = time.time()

        doc = self.parser.parse_document(file_path)

        chunks = self.chunker.chunk_document(doc)
        if not chunks:
            raise EmptyInputError("No chunks created from document", {"path": file_path})

        reused = self._reuse_embeddings(doc, chunks)
        if reused is not None:
            self.logger.info("Reusing cached embeddings for %s", file_path)
            chunks = reused
        else:
            # Embedding failures propagate before anything is written
            chunks = self.embedder.embed_chunks(chunks, timeout=timeout)

        # Rewritten on reuse too, so the entry records the latest mtime
        try:
            self.cache.save(doc, chunks)
        except (OSError, ValueError) as e:
            self.logger.warning("Failed to cache document %s: %s", file_path, e)

        with self._docs_lock:
            self._documents[file_path] = doc

        self.logger.info("Indexed %s: %d chunks in %.2fs", file_path, len(chunks), time.time() - start_time)
        return chunks

    def _load_if_unchanged(self, file_path: str) -> Optional[List[Chunk]]:
        """Return cached chunks when the file is unchanged, else None."""
        try:
            current_hash = file_hash(file_path)
            current_mtime = datetime.fromtimestamp(os.stat(file_path).st_mtime)
        except (DeepRecallError, OSError):
            # Let the full path raise a proper error for unreadable files
            return None

        with self._docs_lock:
            cached = self._documents.get(file_path)
        if cached is None or cached.hash != current_hash:
            disk_cached = self.cache.load_document(current_hash)
            if disk_cached is not None:
                cached = disk_cached
        if cached is None:
            return None

        # Either signal counts as a change
        if current_hash != cached.hash or current_mtime > cached.file_mod_time:
            return None

        chunks = self.cache.load_chunks(cached.hash)
        if not chunks:
            self.logger.warning("Cache entry for %s has no chunks, reindexing", file_path)
            return None

        if cached.file_path != file_path:
            cached = replace(cached, file_path=file_path)
        with self._docs_lock:
            self._documents[file_path] = cached

        return self._attribute(chunks, file_path)

    def _reuse_embeddings(self, doc: Document, chunks: List[Chunk]) -> Optional[List[Chunk]]:
        """
        Cached chunks for this exact content, if they match the fresh chunking.

        Same hash plus same chunk texts means the embeddings are the ones the
        provider would return again.
        """
        cached = self.cache.load_chunks(doc.hash)
        if not cached or len(cached) != len(chunks):
            return None
        for old, new in zip(cached, chunks):
            if old.index != new.index or old.content != new.content:
                return None
        return self._attribute(cached, doc.file_path)

    @staticmethod
    def _attribute(chunks: List[Chunk], file_path: str) -> List[Chunk]:
        return [chunk if chunk.metadata.source == file_path else chunk.with_source(file_path)
                for chunk in chunks]

    def index_directory(self, root: Optional[str] = None) -> Dict[str, List[Chunk]]:
        """
        Index every supported file under root (defaults to config.folder).

        A file that fails is logged and left out of the result; it never stops
        the walk.
        """
        root = root or self.config.folder
        results: Dict[str, List[Chunk]] = {}
        failures = 0

        for file_path in self.discover_files(root):
            try:
                results[file_path] = self.index_file(file_path, force_reindex=False)
            except DeepRecallError as e:
                failures += 1
                self.logger.error("Failed to index %s: %s", file_path, e)

        total_chunks = sum(len(chunks) for chunks in results.values())
        self.logger.info("Indexed %d files with %d total chunks (%d failed)", len(results), total_chunks, failures)
        return results

    def discover_files(self, root: str) -> List[str]:
        """Supported files under root, recursively, in a stable order."""
        files = []

        def on_error(error: OSError):
            self.logger.warning("Cannot scan %s: %s", error.filename, error)

        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
            dirnames.sort()
            for filename in sorted(filenames):
                path = os.path.join(dirpath, filename)
                if self.config.is_supported(path) and os.path.isfile(path):
                    files.append(path)

        return files

    def cached_document(self, file_path: str) -> Optional[Document]:
        """The document last indexed for a path in this process."""
        with self._docs_lock:
            return self._documents.get(file_path)

    def forget(self, file_path: str) -> Optional[Document]:
        """Drop a path from the in-process map; its cache entry stays valid."""
        with self._docs_lock:
            return self._documents.pop(file_path, None)
