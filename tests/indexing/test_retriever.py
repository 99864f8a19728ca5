import pytest

from deeprecall.config import RetrievalConfig
from deeprecall.errors import EmptyInputError, ProviderError
from deeprecall.indexing.retriever import ContextRetriever

from conftest import make_chunk


@pytest.fixture
def retriever(store, embedder):
    store.add_chunks([
        make_chunk("weather", 0, "rain", embedder.vectorize("rain is forecast for tomorrow")),
        make_chunk("weather", 1, "sun", embedder.vectorize("sun and clear skies")),
        make_chunk("cooking", 0, "pasta", embedder.vectorize("boil the pasta for ten minutes")),
    ])
    return ContextRetriever(store, embedder, RetrievalConfig(top_k=2, similarity_threshold=0.1))


def test_retrieve_best_match(retriever):
    results = retriever.retrieve("will there be rain tomorrow")

    assert results[0].chunk.id == "weather_0"
    assert results[0].rank == 1
    assert all(r.score >= 0.1 for r in results)


def test_retrieve_respects_config_top_k(retriever):
    assert len(retriever.retrieve("the sun is boiling the rain", threshold=-1.0)) == 2


def test_retrieve_overrides(retriever):
    assert len(retriever.retrieve("rain", top_k=3, threshold=-1.0)) == 3


def test_no_relevant_context_is_empty(retriever):
    assert retriever.retrieve("quantum chromodynamics") == []


@pytest.mark.parametrize("query", ["", "   ", "\n"])
def test_blank_query(retriever, query):
    with pytest.raises(EmptyInputError):
        retriever.retrieve(query)


def test_provider_failure_propagates(retriever, embedder):
    embedder.fail_with = ProviderError("down")
    with pytest.raises(ProviderError):
        retriever.retrieve("rain")
