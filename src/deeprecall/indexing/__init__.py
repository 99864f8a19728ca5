"""
Document Indexing and Retrieval

Incremental, content-addressed indexing of a local document folder with
semantic search over the resulting chunks.

Core Components:
- DocumentParser: File -> Document (text + metadata + content hash)
- TextChunker: Fixed-window and recursive chunking
- EmbeddingService: Batched embedding generation
- IndexCache: On-disk cache keyed by content hash
- DocumentIndexer: Parse/chunk/embed orchestration with change detection
- VectorStore: Durable chunk table with an in-memory search mirror
- ContextRetriever: Query embedding and top-K search
- FileWatcher: Debounced reindexing on file changes
"""

from .cache import IndexCache
from .chunker import TextChunker
from .embeddings import EmbeddingService, cosine_similarity
from .hashing import content_hash, file_hash
from .indexer import DocumentIndexer
from .models import Chunk, ChunkMetadata, Document, DocumentMetadata, RetrievalResult
from .parser import DocumentParser
from .retriever import ContextRetriever
from .storage import StorageStats, VectorStore
from .watcher import FileWatcher, IndexUpdateListener

__all__ = [
    "Chunk",
    "ChunkMetadata",
    "ContextRetriever",
    "Document",
    "DocumentIndexer",
    "DocumentMetadata",
    "DocumentParser",
    "EmbeddingService",
    "FileWatcher",
    "IndexCache",
    "IndexUpdateListener",
    "RetrievalResult",
    "StorageStats",
    "TextChunker",
    "VectorStore",
    "content_hash",
    "cosine_similarity",
    "file_hash",
]
