"""
Vector Storage for Document Chunks

Chunks are persisted in a single SQLite file and mirrored in memory for
exhaustive similarity search. Every mutation is a durable transaction followed
by a mirror update under the same exclusive lock; searches take a shared lock,
so they never observe a half-applied add or delete. The mirror is rebuilt from
a full table scan when the store opens.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set

import numpy as np

from ..errors import StoreError
from .embeddings import cosine_similarity
from .models import Chunk, ChunkMetadata, RetrievalResult, make_chunk_id

SOURCE_KEY_PREFIX = "source:"


@dataclass
class StorageStats:
    """Statistics about the vector storage."""
    total_documents: int
    total_chunks: int


class ReadWriteLock:
    """
    Many readers or one writer.

    Writers are preferred: once a writer is waiting, new readers queue behind
    it so a steady stream of searches cannot starve reindexing.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer_active = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self):
        with self._cond:
            while self._writer_active or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer_active or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer_active = True
        try:
            yield
        finally:
            with self._cond:
                self._writer_active = False
                self._cond.notify_all()


def _encode_embedding(embedding: Sequence[float]) -> bytes:
    return np.asarray(embedding, dtype=np.float32).tobytes()


def _decode_embedding(blob: Optional[bytes]) -> List[float]:
    if not blob:
        return []
    return np.frombuffer(blob, dtype=np.float32).tolist()


class VectorStore:
    """Durable chunk table with an in-memory mirror used for search."""

    def __init__(self, db_path: str = ".deeprecall/vectors.db", logger: Optional[logging.Logger] = None):
        self.db_path = Path(db_path)
        self.logger = logger or logging.getLogger(__name__)
        self._lock = ReadWriteLock()
        self._memory: Dict[str, Chunk] = {}

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            # Access is serialised by self._lock, so one connection is shared
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._init_database()
        except (OSError, sqlite3.Error) as e:
            raise StoreError("Failed to open vector store", {"path": str(self.db_path), "error": e}) from e

        self._load_into_memory()

    def _init_database(self):
        with self._conn:
            self._conn.execute('''
                CREATE TABLE IF NOT EXISTS chunks (
                    id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    embedding BLOB
                )
            ''')
            self._conn.execute('''
                CREATE INDEX IF NOT EXISTS idx_chunks_document_id ON chunks(document_id)
            ''')
            # Key/value rows; "source:<path>" rows hold a file's document ids
            self._conn.execute('''
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            ''')

    def _load_into_memory(self):
        """Rebuild the mirror from a full scan of the durable table."""
        try:
            rows = self._conn.execute('SELECT id, document_id, payload, embedding FROM chunks').fetchall()
        except sqlite3.Error as e:
            raise StoreError("Failed to load chunks", {"path": str(self.db_path), "error": e}) from e

        memory = {}
        for row in rows:
            try:
                chunk = self._row_to_chunk(*row)
            except (ValueError, KeyError, TypeError) as e:
                raise StoreError("Corrupt chunk record", {"id": row[0], "error": e}) from e
            memory[chunk.id] = chunk

        with self._lock.write_locked():
            self._memory = memory

        self.logger.info("Loaded %d chunks from %s", len(memory), self.db_path)

    @staticmethod
    def _row_to_chunk(chunk_id: str, document_id: str, payload: str, embedding: Optional[bytes]) -> Chunk:
        data = json.loads(payload)
        return Chunk(
            id=chunk_id,
            document_id=document_id,
            content=data["content"],
            index=data["index"],
            metadata=ChunkMetadata(**data["metadata"]),
            embedding=_decode_embedding(embedding)
        )

    @staticmethod
    def _chunk_to_row(chunk: Chunk):
        payload = json.dumps({
            "content": chunk.content,
            "index": chunk.index,
            "metadata": {
                "source": chunk.metadata.source,
                "doc_id": chunk.metadata.doc_id,
                "chunk_index": chunk.metadata.chunk_index
            }
        })
        return chunk.id, chunk.document_id, payload, _encode_embedding(chunk.embedding)

    def add_chunks(self, chunks: List[Chunk]):
        """Upsert a batch of chunks in one transaction."""
        self.replace_document(chunks, stale_document_ids=())

    def replace_document(self, chunks: List[Chunk], stale_document_ids: Iterable[str] = (),
                         source: Optional[str] = None) -> int:
        """
        Delete every chunk of the stale document versions and upsert the new
        chunks, all in one transaction.

        When source is given, the same transaction records that file as the
        owner of the new document id (see tracked_sources()).

        Returns:
            Number of stale chunks removed
        """
        stale = set(stale_document_ids)
        for chunk in chunks:
            if not chunk.id:
                chunk.id = make_chunk_id(chunk.document_id, chunk.index)

        with self._lock.write_locked():
            removed_ids = [cid for cid, chunk in self._memory.items() if chunk.document_id in stale]
            try:
                with self._conn:
                    for document_id in stale:
                        self._conn.execute('DELETE FROM chunks WHERE document_id = ?', (document_id,))
                    self._conn.executemany(
                        'INSERT OR REPLACE INTO chunks (id, document_id, payload, embedding) VALUES (?, ?, ?, ?)',
                        [self._chunk_to_row(chunk) for chunk in chunks]
                    )
                    if source is not None:
                        self._conn.execute(
                            'INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)',
                            (SOURCE_KEY_PREFIX + source,
                             json.dumps(sorted({chunk.document_id for chunk in chunks})))
                        )
            except sqlite3.Error as e:
                raise StoreError("Failed to write chunks", {"chunks": len(chunks), "error": e}) from e

            for chunk_id in removed_ids:
                del self._memory[chunk_id]
            for chunk in chunks:
                self._memory[chunk.id] = chunk

        if stale:
            self.logger.debug("Replaced %d chunks of %s with %d new chunks",
                              len(removed_ids), ", ".join(sorted(stale)), len(chunks))
        return len(removed_ids)

    def delete_by_document_id(self, document_id: str) -> int:
        """Remove all chunks of a document. Returns how many were removed."""
        with self._lock.write_locked():
            try:
                with self._conn:
                    self._conn.execute('DELETE FROM chunks WHERE document_id = ?', (document_id,))
            except sqlite3.Error as e:
                raise StoreError("Failed to delete chunks", {"document_id": document_id, "error": e}) from e

            removed = [cid for cid, chunk in self._memory.items() if chunk.document_id == document_id]
            for chunk_id in removed:
                del self._memory[chunk_id]

        self.logger.debug("Removed %d chunks for document %s", len(removed), document_id)
        return len(removed)

    def search(self, query_embedding: Sequence[float], top_k: int, threshold: float) -> List[RetrievalResult]:
        """
        Exhaustive cosine search over the mirror.

        Chunks without an embedding are skipped. Results with score >= threshold
        are sorted by descending score (ties by chunk id) and cut to top_k.
        """
        if top_k <= 0:
            return []

        with self._lock.read_locked():
            scored = [
                (cosine_similarity(query_embedding, chunk.embedding), chunk)
                for chunk in self._memory.values()
                if chunk.has_embedding
            ]

        matches = [(score, chunk) for score, chunk in scored if score >= threshold]
        matches.sort(key=lambda item: (-item[0], item[1].id))

        return [
            RetrievalResult(chunk=chunk, score=score, document_id=chunk.document_id, rank=rank)
            for rank, (score, chunk) in enumerate(matches[:top_k], start=1)
        ]

    def get_chunk(self, chunk_id: str) -> Optional[Chunk]:
        with self._lock.read_locked():
            return self._memory.get(chunk_id)

    def get_chunks_by_document(self, document_id: str) -> List[Chunk]:
        with self._lock.read_locked():
            chunks = [chunk for chunk in self._memory.values() if chunk.document_id == document_id]
        return sorted(chunks, key=lambda chunk: chunk.index)

    def document_sources(self) -> Dict[str, Set[str]]:
        """Map each source path to the document ids currently stored for it."""
        sources: Dict[str, Set[str]] = {}
        with self._lock.read_locked():
            for chunk in self._memory.values():
                sources.setdefault(chunk.metadata.source, set()).add(chunk.document_id)
        return sources

    def tracked_sources(self) -> Dict[str, Set[str]]:
        """
        Map each file recorded through replace_document(source=...) to its
        document ids.

        Unlike document_sources(), every file sharing a document id keeps its
        own entry.
        """
        # The connection is only ever used under the exclusive lock
        with self._lock.write_locked():
            try:
                rows = self._conn.execute(
                    'SELECT key, value FROM metadata WHERE key LIKE ?', (SOURCE_KEY_PREFIX + '%',)
                ).fetchall()
            except sqlite3.Error as e:
                raise StoreError("Failed to read tracked sources", {"error": e}) from e

        sources: Dict[str, Set[str]] = {}
        for key, value in rows:
            try:
                sources[key[len(SOURCE_KEY_PREFIX):]] = set(json.loads(value))
            except (TypeError, ValueError) as e:
                raise StoreError("Corrupt source record", {"key": key, "error": e}) from e
        return sources

    def forget_source(self, source: str):
        """Drop the tracking record of a file."""
        with self._lock.write_locked():
            try:
                with self._conn:
                    self._conn.execute('DELETE FROM metadata WHERE key = ?', (SOURCE_KEY_PREFIX + source,))
            except sqlite3.Error as e:
                raise StoreError("Failed to forget source", {"source": source, "error": e}) from e

    def get_stats(self) -> StorageStats:
        with self._lock.read_locked():
            documents = {chunk.document_id for chunk in self._memory.values()}
            return StorageStats(total_documents=len(documents), total_chunks=len(self._memory))

    def clear(self):
        """Remove every chunk."""
        with self._lock.write_locked():
            try:
                with self._conn:
                    self._conn.execute('DELETE FROM chunks')
                    self._conn.execute('DELETE FROM metadata WHERE key LIKE ?', (SOURCE_KEY_PREFIX + '%',))
            except sqlite3.Error as e:
                raise StoreError("Failed to clear vector store", {"error": e}) from e
            self._memory.clear()

    def close(self):
        with self._lock.write_locked():
            self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
