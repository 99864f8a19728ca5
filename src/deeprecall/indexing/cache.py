"""
Content-addressed cache of indexed documents.

Each document hash owns two files in the cache directory:

    <hash>.doc     JSON document metadata (no content)
    <hash>.chunks  NumPy .npz archive with the ordered chunks and embeddings

Entries are keyed by content hash only, so identical files share an entry and
content that reverts to a previously seen version reuses its old entry.
"""

import json
import logging
import os
import shutil
import tempfile
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np

from .models import Chunk, ChunkMetadata, Document, DocumentMetadata

DOC_SUFFIX = ".doc"
CHUNKS_SUFFIX = ".chunks"


def _pack_strings(values: List[str]) -> np.ndarray:
    # Fixed-width unicode arrays drop trailing NULs, so texts travel as JSON bytes
    return np.frombuffer(json.dumps(values).encode('utf-8'), dtype=np.uint8)


def _unpack_strings(array: np.ndarray) -> List[str]:
    values = json.loads(array.tobytes().decode('utf-8'))
    if not isinstance(values, list) or not all(isinstance(value, str) for value in values):
        raise ValueError("Expected a list of strings")
    return values


class IndexCache:
    """Disk cache mapping content hash -> (Document, chunks with embeddings)."""

    def __init__(self, cache_dir: str = ".deeprecall/cache", logger: Optional[logging.Logger] = None):
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.logger = logger or logging.getLogger(__name__)

    def _doc_path(self, doc_hash: str) -> Path:
        return self.cache_dir / f"{doc_hash}{DOC_SUFFIX}"

    def _chunks_path(self, doc_hash: str) -> Path:
        return self.cache_dir / f"{doc_hash}{CHUNKS_SUFFIX}"

    def contains(self, doc_hash: str) -> bool:
        return self._doc_path(doc_hash).exists() and self._chunks_path(doc_hash).exists()

    def save(self, doc: Document, chunks: List[Chunk]):
        """
        Persist a document's metadata and its embedded chunks.

        The chunk file is written first so a .doc file never points at a
        missing chunk set. Both writes are atomic renames.
        """
        dims = {len(chunk.embedding) for chunk in chunks}
        if len(dims) > 1 or 0 in dims:
            raise ValueError(f"Chunks for {doc.id} must share one non-empty embedding dimension")

        dim = dims.pop() if dims else 0
        embeddings = np.array([chunk.embedding for chunk in chunks], dtype=np.float32).reshape(len(chunks), dim)

        def write_chunks(f):
            np.savez(
                f,
                ids=_pack_strings([chunk.id for chunk in chunks]),
                indices=np.array([chunk.index for chunk in chunks], dtype=np.int64),
                contents=_pack_strings([chunk.content for chunk in chunks]),
                sources=_pack_strings([chunk.metadata.source for chunk in chunks]),
                embeddings=embeddings
            )

        self._atomic_write(self._chunks_path(doc.hash), write_chunks)
        self._atomic_write(
            self._doc_path(doc.hash),
            lambda f: f.write(json.dumps(self._document_to_dict(doc), indent=2).encode('utf-8'))
        )

    def load_document(self, doc_hash: str) -> Optional[Document]:
        """Load cached document metadata, or None if absent or corrupt."""
        path = self._doc_path(doc_hash)
        if not path.exists():
            return None

        try:
            with open(path, 'r', encoding='utf-8') as f:
                return self._document_from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            self.logger.warning("Discarding corrupt cache entry %s: %s", path.name, e)
            self._remove_entry(doc_hash)
            return None

    def load_chunks(self, doc_hash: str) -> Optional[List[Chunk]]:
        """Load the cached chunk set in its original order, or None."""
        path = self._chunks_path(doc_hash)
        if not path.exists():
            return None

        try:
            with np.load(path, allow_pickle=False) as data:
                ids = _unpack_strings(data["ids"])
                indices = data["indices"].tolist()
                contents = _unpack_strings(data["contents"])
                sources = _unpack_strings(data["sources"])
                embeddings = data["embeddings"].tolist()
        except (OSError, ValueError, KeyError, EOFError, zipfile.BadZipFile) as e:
            self.logger.warning("Discarding corrupt cache entry %s: %s", path.name, e)
            self._remove_entry(doc_hash)
            return None

        return [
            Chunk(
                id=chunk_id,
                document_id=doc_hash,
                content=content,
                index=index,
                metadata=ChunkMetadata(source=source, doc_id=doc_hash, chunk_index=index),
                embedding=embedding
            )
            for chunk_id, index, content, source, embedding in zip(ids, indices, contents, sources, embeddings)
        ]

    def clear(self):
        """Remove every cache entry."""
        if self.cache_dir.exists():
            shutil.rmtree(self.cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def get_cache_stats(self) -> Dict[str, float]:
        """Entry count and total size on disk."""
        files = [p for p in self.cache_dir.iterdir() if p.suffix in (DOC_SUFFIX, CHUNKS_SUFFIX)]
        total_size = sum(p.stat().st_size for p in files)

        return {
            "cached_documents": sum(1 for p in files if p.suffix == DOC_SUFFIX),
            "total_size_bytes": total_size,
            "total_size_mb": total_size / (1024 * 1024)
        }

    def _atomic_write(self, target: Path, write):
        fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=f".{target.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, 'wb') as f:
                write(f)
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _remove_entry(self, doc_hash: str):
        for path in (self._doc_path(doc_hash), self._chunks_path(doc_hash)):
            try:
                path.unlink()
            except FileNotFoundError:
                pass

    @staticmethod
    def _document_to_dict(doc: Document) -> Dict:
        return {
            "id": doc.id,
            "file_path": doc.file_path,
            "hash": doc.hash,
            "file_mod_time": doc.file_mod_time.isoformat(),
            "parsed_at": doc.parsed_at.isoformat(),
            "metadata": {
                "filename": doc.metadata.filename,
                "extension": doc.metadata.extension,
                "size": doc.metadata.size
            }
        }

    @staticmethod
    def _document_from_dict(data: Dict) -> Document:
        # Content is not cached; a cache hit only ever needs the chunks
        return Document(
            id=data["id"],
            file_path=data["file_path"],
            content="",
            hash=data["hash"],
            file_mod_time=datetime.fromisoformat(data["file_mod_time"]),
            parsed_at=datetime.fromisoformat(data["parsed_at"]),
            metadata=DocumentMetadata(**data["metadata"])
        )
