"""
Text Chunking for Parsed Documents

Splits document text into overlapping fragments for embedding. Two strategies
are available: a fixed-width sliding window and a recursive paragraph/sentence
splitter. Sizes are measured in characters (code points).
"""

import logging
from typing import List, Optional

from ..config import ChunkingConfig
from .models import Chunk, ChunkMetadata, Document

SENTENCE_TERMINATORS = '.!?'


def split_sentences(text: str) -> List[str]:
    """Split on '.', '!' or '?' when followed by whitespace."""
    sentences = []
    start = 0

    for i, char in enumerate(text):
        if char in SENTENCE_TERMINATORS and i + 1 < len(text) and text[i + 1].isspace():
            sentence = text[start:i + 1].strip()
            if sentence:
                sentences.append(sentence)
            start = i + 1

    tail = text[start:].strip()
    if tail:
        sentences.append(tail)

    return sentences


def fixed_windows(text: str, size: int, overlap: int) -> List[str]:
    """
    Slide a window of `size` characters over the text with stride size - overlap.

    Windows are returned verbatim, so consecutive windows share exactly
    `overlap` characters and the last window may be shorter.
    """
    stride = size - overlap
    if stride <= 0:
        raise ValueError("chunk size must exceed chunk overlap")

    windows = []
    i = 0
    while i < len(text):
        end = min(i + size, len(text))
        windows.append(text[i:end])
        if end >= len(text):
            break
        i += stride

    return windows


def recursive_split(text: str, size: int, overlap: int) -> List[str]:
    """
    Greedy paragraph accumulation with a sentence-level fallback.

    Paragraphs (blank-line separated) are packed into a running chunk until the
    next one would push it past `size`. A paragraph longer than `size` is fed
    sentence by sentence instead; when a sentence forces a flush, the last
    overlap // 10 words of the flushed chunk seed the next one.
    """
    pieces: List[str] = []
    current = ""

    def flush():
        content = current.strip()
        if content:
            pieces.append(content)

    for paragraph in text.split('\n\n'):
        paragraph = paragraph.strip()
        if not paragraph:
            continue

        if len(paragraph) > size:
            for sentence in split_sentences(paragraph):
                if current and len(current) + len(sentence) > size:
                    flush()
                    words = current.split()
                    keep = min(overlap // 10, len(words))
                    current = " ".join(words[-keep:]) + " " if keep > 0 else ""
                current += sentence + " "
        else:
            if current and len(current) + len(paragraph) > size:
                flush()
                current = ""
            current += paragraph + "\n\n"

    flush()
    return pieces


class TextChunker:
    """Chunks documents according to a ChunkingConfig."""

    def __init__(self, config: Optional[ChunkingConfig] = None, logger: Optional[logging.Logger] = None):
        self.config = config or ChunkingConfig()
        self.config.validate()
        self.logger = logger or logging.getLogger(__name__)

    def chunk_document(self, doc: Document) -> List[Chunk]:
        """
        Split a document into chunks without embeddings.

        Chunks whose stripped content is shorter than min_chunk_size are
        dropped; survivors keep the index they were produced with so chunk ids
        stay stable for a given content version.
        """
        cfg = self.config

        if cfg.method == "fixed":
            pieces = fixed_windows(doc.content, cfg.chunk_size, cfg.chunk_overlap)
        else:
            pieces = recursive_split(doc.content, cfg.chunk_size, cfg.chunk_overlap)

        chunks = []
        for index, piece in enumerate(pieces):
            if len(piece.strip()) < cfg.min_chunk_size:
                continue
            chunks.append(Chunk(
                document_id=doc.id,
                content=piece,
                index=index,
                metadata=ChunkMetadata(source=doc.file_path, doc_id=doc.id, chunk_index=index)
            ))

        dropped = len(pieces) - len(chunks)
        if dropped:
            self.logger.debug("Dropped %d undersized chunks from %s", dropped, doc.file_path)

        return chunks
