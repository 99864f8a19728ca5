"""
Data model shared by the indexing pipeline.

Documents are content-addressed: Document.id and Document.hash are the same
SHA-256 digest of the file bytes, so any byte change yields a new identity.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import List


@dataclass(frozen=True)
class DocumentMetadata:
    """File facts recorded when a document is parsed."""
    filename: str
    extension: str
    size: int


@dataclass(frozen=True)
class Document:
    """A parsed document. Superseded, never mutated, on reindex."""
    id: str
    file_path: str
    content: str
    hash: str
    file_mod_time: datetime
    metadata: DocumentMetadata
    parsed_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ChunkMetadata:
    """Where a chunk came from."""
    source: str
    doc_id: str
    chunk_index: int


def make_chunk_id(document_id: str, index: int) -> str:
    return f"{document_id}_{index}"


@dataclass
class Chunk:
    """A fragment of document text, the unit of embedding and retrieval."""
    document_id: str
    content: str
    index: int
    metadata: ChunkMetadata
    embedding: List[float] = field(default_factory=list)
    id: str = ""

    def __post_init__(self):
        if not self.id:
            self.id = make_chunk_id(self.document_id, self.index)

    @property
    def has_embedding(self) -> bool:
        return len(self.embedding) > 0

    def with_embedding(self, embedding: List[float]) -> "Chunk":
        return replace(self, embedding=list(embedding))

    def with_source(self, source: str) -> "Chunk":
        """Copy of the chunk attributed to another file with the same content."""
        return replace(self, metadata=replace(self.metadata, source=source))


@dataclass
class RetrievalResult:
    """A chunk returned from similarity search."""
    chunk: Chunk
    score: float
    document_id: str
    rank: int
