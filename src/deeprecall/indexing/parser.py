"""
Document Parser

Turns a file on disk into a Document: extracted plain text plus file metadata.
Handlers are chosen by extension; the file is read exactly once so the content
hash and the extracted text always describe the same bytes.
"""

import io
import logging
import os
from datetime import datetime
from typing import Callable, Dict, List, Optional

from pypdf import PdfReader

from ..errors import EmptyInputError, FileAccessError, ParseError, UnsupportedFormatError
from .hashing import content_hash
from .models import Document, DocumentMetadata

# (raw bytes, file path) -> newline-delimited text
ParseHandler = Callable[[bytes, str], str]


def normalize_newlines(text: str) -> str:
    return text.replace('\r\n', '\n').replace('\r', '\n')


class DocumentParser:
    """Extension-dispatched document parser."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._handlers: Dict[str, ParseHandler] = {}

        self.register_handler('.txt', self._parse_text)
        self.register_handler('.md', self._parse_text)
        self.register_handler('.pdf', self._parse_pdf)

    def register_handler(self, extension: str, handler: ParseHandler):
        """Register (or replace) the handler for an extension such as '.txt'."""
        self._handlers[extension.lower()] = handler

    @property
    def supported_extensions(self) -> List[str]:
        return sorted(self._handlers)

    def parse_document(self, file_path: str) -> Document:
        """
        Parse a file into a Document.

        Raises:
            UnsupportedFormatError: No handler for the extension
            FileAccessError: The file cannot be stat'ed or read
            ParseError: The handler could not extract text
            EmptyInputError: No text was recovered
        """
        ext = os.path.splitext(file_path)[1].lower()
        handler = self._handlers.get(ext)
        if handler is None:
            raise UnsupportedFormatError("Unsupported file type", {"path": file_path, "extension": ext})

        # mtime is taken before reading: a write racing this parse leaves the
        # recorded mtime older than the file, which forces a later reindex
        try:
            info = os.stat(file_path)
            with open(file_path, 'rb') as f:
                data = f.read()
        except OSError as e:
            raise FileAccessError("Failed to read file", {"path": file_path, "error": e}) from e

        content = handler(data, file_path)
        if not content.strip():
            raise EmptyInputError("Document has no text content", {"path": file_path})

        digest = content_hash(data)
        return Document(
            id=digest,
            file_path=file_path,
            content=content,
            hash=digest,
            file_mod_time=datetime.fromtimestamp(info.st_mtime),
            metadata=DocumentMetadata(
                filename=os.path.basename(file_path),
                extension=ext,
                size=info.st_size
            )
        )

    def _parse_text(self, data: bytes, file_path: str) -> str:
        return normalize_newlines(data.decode('utf-8', errors='replace'))

    def _parse_pdf(self, data: bytes, file_path: str) -> str:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = list(reader.pages)
        except Exception as e:
            raise ParseError("Failed to open PDF", {"path": file_path, "error": e}) from e

        parts = []
        for number, page in enumerate(pages, start=1):
            try:
                text = page.extract_text() or ""
            except Exception as e:
                self.logger.warning("Failed to extract text from page %d of %s: %s", number, file_path, e)
                continue
            parts.append(normalize_newlines(text))
            parts.append("\n")

        return "".join(parts)
