import os
from pathlib import Path
from unittest.mock import patch

import pytest

from deeprecall.errors import EmptyInputError, ProviderError
from deeprecall.indexing.hashing import file_hash
from deeprecall.indexing.indexer import DocumentIndexer
from deeprecall.indexing.retriever import ContextRetriever

GRASS = "The sky is blue. Grass is green."


@pytest.fixture
def indexer(config, embedder) -> DocumentIndexer:
    return DocumentIndexer(config, embedder)


def write(path: Path, text: str) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return str(path)


def bump_mtime(path: str, seconds: float = 10):
    stat = os.stat(path)
    os.utime(path, (stat.st_atime + seconds, stat.st_mtime + seconds))


def test_index_and_retrieve_grass(indexer, embedder, store, context_dir):
    path = write(context_dir / "colors.txt", GRASS)

    chunks = indexer.index_file(path)
    store.add_chunks(chunks)

    assert [c.content for c in chunks] == ["The sky is blue. Gra", ". Grass is green."]
    assert all(c.has_embedding for c in chunks)

    results = ContextRetriever(store, embedder).retrieve("What color is grass?", top_k=1, threshold=0.0)
    assert len(results) == 1
    assert "Grass is green." in results[0].chunk.content
    assert results[0].chunk.metadata.source == path


def test_unchanged_file_is_served_from_cache(indexer, embedder, context_dir):
    path = write(context_dir / "colors.txt", GRASS)
    first = indexer.index_file(path)
    batches = embedder.batches

    with patch.object(indexer.parser, "parse_document", wraps=indexer.parser.parse_document) as parse, \
            patch.object(indexer.chunker, "chunk_document", wraps=indexer.chunker.chunk_document) as chunk:
        second = indexer.index_file(path)

    parse.assert_not_called()
    chunk.assert_not_called()
    assert embedder.batches == batches
    assert [c.id for c in second] == [c.id for c in first]
    assert [c.embedding for c in second] == [c.embedding for c in first]


def test_cache_survives_restart(config, embedder, context_dir):
    path = write(context_dir / "colors.txt", GRASS)
    DocumentIndexer(config, embedder).index_file(path)
    batches = embedder.batches

    restarted = DocumentIndexer(config, embedder)
    with patch.object(restarted.parser, "parse_document") as parse:
        chunks = restarted.index_file(path)

    parse.assert_not_called()
    assert embedder.batches == batches
    assert len(chunks) == 2


def test_changed_content_is_reembedded(indexer, embedder, context_dir):
    path = write(context_dir / "colors.txt", GRASS)
    first = indexer.index_file(path)

    write(context_dir / "colors.txt", "Roses are red. Violets are blue.")
    second = indexer.index_file(path)

    assert second[0].document_id == file_hash(path)
    assert second[0].document_id != first[0].document_id
    assert "Roses are red. Viole" in embedder.embedded_texts
    assert indexer.cached_document(path).hash == second[0].document_id


def test_touched_file_is_reparsed_but_embeddings_reused(indexer, embedder, context_dir):
    path = write(context_dir / "colors.txt", GRASS)
    first = indexer.index_file(path)
    batches = embedder.batches
    bump_mtime(path)

    with patch.object(indexer.parser, "parse_document", wraps=indexer.parser.parse_document) as parse:
        second = indexer.index_file(path)

    parse.assert_called_once()
    assert embedder.batches == batches
    assert [c.id for c in second] == [c.id for c in first]

    # The cache now records the new mtime, so the next call is a pure hit
    with patch.object(indexer.parser, "parse_document") as parse:
        indexer.index_file(path)
    parse.assert_not_called()


def test_force_reindex_always_parses(indexer, context_dir):
    path = write(context_dir / "colors.txt", GRASS)
    indexer.index_file(path)

    with patch.object(indexer.parser, "parse_document", wraps=indexer.parser.parse_document) as parse:
        indexer.index_file(path, force_reindex=True)

    parse.assert_called_once()


def test_identical_files_share_chunks(indexer, embedder, context_dir):
    first_path = write(context_dir / "one.txt", GRASS)
    second_path = write(context_dir / "two.txt", GRASS)

    first = indexer.index_file(first_path)
    batches = embedder.batches
    second = indexer.index_file(second_path)

    assert [c.id for c in first] == [c.id for c in second]
    assert embedder.batches == batches
    assert all(c.metadata.source == second_path for c in second)
    assert indexer.cache.get_cache_stats()["cached_documents"] == 1


def test_provider_failure_caches_nothing(config, failing_embedder, context_dir):
    indexer = DocumentIndexer(config, failing_embedder)
    path = write(context_dir / "colors.txt", GRASS)

    with pytest.raises(ProviderError):
        indexer.index_file(path)

    assert not indexer.cache.contains(file_hash(path))
    assert indexer.cached_document(path) is None


def test_no_chunks_is_empty_input(indexer, context_dir):
    path = write(context_dir / "tiny.txt", "ok")
    with pytest.raises(EmptyInputError):
        indexer.index_file(path)


def test_index_directory_skips_failures(indexer, context_dir, caplog):
    good = write(context_dir / "colors.txt", GRASS)
    nested = write(context_dir / "nested" / "notes.md", "Markdown notes about the weather today.")
    write(context_dir / "empty.txt", "   ")
    write(context_dir / "image.png", "not indexed")

    results = indexer.index_directory()

    assert sorted(results) == sorted([good, nested])
    assert "empty.txt" in caplog.text


def test_discover_files_is_sorted_and_filtered(indexer, context_dir):
    write(context_dir / "b.md", "b")
    write(context_dir / "a.TXT", "a")
    write(context_dir / "z" / "c.pdf", "c")
    write(context_dir / "skip.docx", "d")

    found = [os.path.relpath(p, context_dir) for p in indexer.discover_files(str(context_dir))]

    assert found == ["a.TXT", "b.md", os.path.join("z", "c.pdf")]


def test_forget(indexer, context_dir):
    path = write(context_dir / "colors.txt", GRASS)
    indexer.index_file(path)

    assert indexer.forget(path) is not None
    assert indexer.cached_document(path) is None
