"""
Configuration for the context engine.

A single DeepRecallConfig object is built by the caller and handed to each
component's constructor. Nothing here reads files; from_dict() accepts the
already-parsed mapping (e.g. the "context"/"retrieval" sections of a YAML file).
"""

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

from .errors import ConfigurationError

CHUNKING_METHODS = ("fixed", "recursive")


@dataclass
class ChunkingConfig:
    """How documents are split into chunks."""
    method: str = "recursive"
    chunk_size: int = 512
    chunk_overlap: int = 128
    min_chunk_size: int = 50

    def validate(self):
        if self.method not in CHUNKING_METHODS:
            raise ConfigurationError(
                f"Unknown chunking method: {self.method}",
                {"allowed": ", ".join(CHUNKING_METHODS)}
            )
        if self.chunk_size <= 0:
            raise ConfigurationError("chunk_size must be positive", {"chunk_size": self.chunk_size})
        if self.chunk_overlap < 0:
            raise ConfigurationError("chunk_overlap must not be negative", {"chunk_overlap": self.chunk_overlap})
        if self.min_chunk_size < 0:
            raise ConfigurationError("min_chunk_size must not be negative", {"min_chunk_size": self.min_chunk_size})
        # A non-positive stride would never advance the window
        if self.method == "fixed" and self.chunk_size <= self.chunk_overlap:
            raise ConfigurationError(
                "chunk_size must be greater than chunk_overlap for fixed chunking",
                {"chunk_size": self.chunk_size, "chunk_overlap": self.chunk_overlap}
            )


@dataclass
class EmbeddingConfig:
    """Embedding provider and on-disk cache settings."""
    model: str = "text-embedding-3-small"
    api_key: Optional[str] = None
    base_url: str = "https://api.openai.com/v1"
    batch_size: int = 100
    timeout_seconds: float = 30.0
    cache_dir: str = ".deeprecall/cache"

    def __post_init__(self):
        if self.api_key is None:
            self.api_key = os.getenv("OPENAI_API_KEY")

    def validate(self):
        if self.batch_size <= 0:
            raise ConfigurationError("batch_size must be positive", {"batch_size": self.batch_size})
        if self.timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be positive", {"timeout_seconds": self.timeout_seconds})


@dataclass
class RetrievalConfig:
    """Search parameters and durable vector table location."""
    top_k: int = 5
    similarity_threshold: float = 0.3
    db_path: str = ".deeprecall/vectors.db"

    def validate(self):
        if self.top_k <= 0:
            raise ConfigurationError("top_k must be positive", {"top_k": self.top_k})
        if not -1.0 <= self.similarity_threshold <= 1.0:
            raise ConfigurationError(
                "similarity_threshold must be within [-1, 1]",
                {"similarity_threshold": self.similarity_threshold}
            )


@dataclass
class WatcherConfig:
    """File watcher settings."""
    debounce_seconds: float = 2.0

    def validate(self):
        if self.debounce_seconds < 0:
            raise ConfigurationError("debounce_seconds must not be negative",
                                     {"debounce_seconds": self.debounce_seconds})


@dataclass
class DeepRecallConfig:
    """Top-level configuration passed to every component."""
    folder: str = "./context"
    supported_extensions: Optional[List[str]] = None
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    embeddings: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    watcher: WatcherConfig = field(default_factory=WatcherConfig)

    def __post_init__(self):
        if self.supported_extensions is None:
            self.supported_extensions = ['.pdf', '.txt', '.md']
        self.supported_extensions = [self._normalize_extension(ext) for ext in self.supported_extensions]

    @staticmethod
    def _normalize_extension(ext: str) -> str:
        ext = ext.strip().lower()
        return ext if ext.startswith('.') else f".{ext}"

    def is_supported(self, path: str) -> bool:
        """Check a path against the extension allow-list."""
        return os.path.splitext(path)[1].lower() in self.supported_extensions

    def validate(self) -> "DeepRecallConfig":
        if not self.supported_extensions:
            raise ConfigurationError("supported_extensions must not be empty")
        self.chunking.validate()
        self.embeddings.validate()
        self.retrieval.validate()
        self.watcher.validate()
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeepRecallConfig":
        """Build a config from a nested mapping. Unknown section keys are rejected."""
        sections = {
            "chunking": ChunkingConfig,
            "embeddings": EmbeddingConfig,
            "retrieval": RetrievalConfig,
            "watcher": WatcherConfig,
        }
        kwargs: Dict[str, Any] = {}
        for name, section_cls in sections.items():
            if name in data:
                kwargs[name] = _build_section(section_cls, data[name] or {})
        for key in ("folder", "supported_extensions"):
            if key in data:
                kwargs[key] = data[key]
        return cls(**kwargs)


def _build_section(section_cls, values: Dict[str, Any]):
    known = {f.name for f in fields(section_cls)}
    unknown = set(values) - known
    if unknown:
        raise ConfigurationError(
            f"Unknown keys for {section_cls.__name__}",
            {"keys": ", ".join(sorted(unknown))}
        )
    return section_cls(**values)
