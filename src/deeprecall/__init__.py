"""
DeepRecall context engine

Incremental indexing of a local document folder and semantic retrieval of the
most relevant fragments for a spoken or typed query.
"""

from .config import (
    ChunkingConfig,
    DeepRecallConfig,
    EmbeddingConfig,
    RetrievalConfig,
    WatcherConfig,
)
from .errors import (
    ConfigurationError,
    DeepRecallError,
    EmptyInputError,
    FileAccessError,
    ParseError,
    ProviderError,
    StoreError,
    UnsupportedFormatError,
)
from .service import ContextService

__version__ = "1.0.0"
__all__ = [
    "ChunkingConfig",
    "ConfigurationError",
    "ContextService",
    "DeepRecallConfig",
    "DeepRecallError",
    "EmbeddingConfig",
    "EmptyInputError",
    "FileAccessError",
    "ParseError",
    "ProviderError",
    "RetrievalConfig",
    "StoreError",
    "UnsupportedFormatError",
    "WatcherConfig",
]
