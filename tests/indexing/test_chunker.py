from datetime import datetime

import pytest

from deeprecall.config import ChunkingConfig
from deeprecall.errors import ConfigurationError
from deeprecall.indexing.chunker import TextChunker, fixed_windows, recursive_split, split_sentences
from deeprecall.indexing.models import Document, DocumentMetadata


def make_document(content: str, doc_id: str = "abc123", path: str = "/docs/a.txt") -> Document:
    return Document(
        id=doc_id,
        file_path=path,
        content=content,
        hash=doc_id,
        file_mod_time=datetime(2024, 1, 1),
        metadata=DocumentMetadata(filename="a.txt", extension=".txt", size=len(content))
    )


def test_split_sentences():
    assert split_sentences("One. Two! Three? Four") == ["One.", "Two!", "Three?", "Four"]
    assert split_sentences("Version 1.5 is out. Done.") == ["Version 1.5 is out.", "Done."]


def test_fixed_windows_overlap_and_reconstruction():
    text = "".join(chr(ord("a") + i % 26) for i in range(1300))
    windows = fixed_windows(text, 512, 128)

    assert [len(w) for w in windows] == [512, 512, 512, 148]
    for previous, current in zip(windows, windows[1:]):
        assert previous[-128:] == current[:128]

    rebuilt = windows[0] + "".join(w[128:] for w in windows[1:])
    assert rebuilt == text


def test_fixed_windows_short_text_is_single_window():
    assert fixed_windows("short", 512, 128) == ["short"]
    assert fixed_windows("", 512, 128) == []


def test_fixed_windows_rejects_non_positive_stride():
    with pytest.raises(ValueError):
        fixed_windows("anything", 10, 10)


def test_recursive_split_packs_paragraphs():
    text = "First paragraph.\n\nSecond paragraph.\n\nThird paragraph that is longer."
    pieces = recursive_split(text, 40, 0)

    assert pieces == ["First paragraph.\n\nSecond paragraph.", "Third paragraph that is longer."]


def test_recursive_split_long_paragraph_carries_word_overlap():
    paragraph = " ".join(f"Sentence number {i} ends here." for i in range(10))
    pieces = recursive_split(paragraph, 60, 20)

    assert len(pieces) > 1
    for previous, current in zip(pieces, pieces[1:]):
        tail = " ".join(previous.split()[-2:])
        assert current.startswith(tail)


def test_chunker_fixed_grass_example():
    chunker = TextChunker(ChunkingConfig(method="fixed", chunk_size=20, chunk_overlap=5, min_chunk_size=5))
    doc = make_document("The sky is blue. Grass is green.")

    chunks = chunker.chunk_document(doc)

    assert [c.content for c in chunks] == ["The sky is blue. Gra", ". Grass is green."]
    assert [c.id for c in chunks] == ["abc123_0", "abc123_1"]
    assert all(c.metadata.source == "/docs/a.txt" for c in chunks)
    assert all(not c.has_embedding for c in chunks)


def test_chunker_drops_undersized_chunks_and_keeps_indices():
    chunker = TextChunker(ChunkingConfig(method="fixed", chunk_size=10, chunk_overlap=0, min_chunk_size=5))
    doc = make_document("abcdefghij" + "    x     " + "klmnopqrst")

    chunks = chunker.chunk_document(doc)

    assert [c.index for c in chunks] == [0, 2]
    assert [c.metadata.chunk_index for c in chunks] == [0, 2]


def test_chunker_recursive_default():
    chunker = TextChunker()
    doc = make_document("A paragraph long enough to survive the minimum size filter.\n\nAnother one.")

    chunks = chunker.chunk_document(doc)

    assert len(chunks) == 1
    assert chunks[0].content.startswith("A paragraph")


@pytest.mark.parametrize("kwargs", [
    {"method": "semantic"},
    {"chunk_size": 0},
    {"chunk_overlap": -1},
    {"method": "fixed", "chunk_size": 100, "chunk_overlap": 100},
])
def test_chunker_rejects_invalid_config(kwargs):
    with pytest.raises(ConfigurationError):
        TextChunker(ChunkingConfig(**kwargs))
