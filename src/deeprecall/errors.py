"""
Exception hierarchy for the DeepRecall context engine.

Every error carries a message plus an optional dictionary of details
(file path, batch size, status code...) so log lines stay informative.
"""

from typing import Any, Dict, Optional


class DeepRecallError(Exception):
    """Base exception for all context engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            formatted = " | ".join(f"{k}: {v}" for k, v in self.details.items())
            return f"{self.message} | {formatted}"
        return self.message


class FileAccessError(DeepRecallError):
    """A file could not be opened, read or stat'ed."""


class UnsupportedFormatError(DeepRecallError):
    """No parser is registered for the file extension."""


class ParseError(DeepRecallError):
    """Format-specific text extraction failed."""


class ProviderError(DeepRecallError):
    """The embedding provider call failed or timed out."""


class EmptyInputError(DeepRecallError):
    """Empty document content, empty query, or no chunks produced."""


class StoreError(DeepRecallError):
    """A durable store transaction failed."""


class ConfigurationError(DeepRecallError):
    """Invalid configuration values."""
