"""Tests for semantic and hybrid search."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence
    from pathlib import Path

from lexivault.semantic.embedder import EmbeddingError, EmbeddingResult
from lexivault.semantic.search import HybridSearchService, SemanticSearchService
from lexivault.semantic.vector_index import VectorIndex
from lexivault.store.database import Database
from lexivault.store.documents import DocumentStore
from lexivault.store.lexical import LexicalIndex, LexicalIndexSynchronizer
from lexivault.store.models import Word
from lexivault.store.profiles import SemanticProfile

MODEL = "test-embed"
WIDTH = 4

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeEmbeddingClient:
    """Maps known query strings to fixed 2-dim vectors."""

    def __init__(self, vectors: dict[str, list[float]] | None = None, error: bool = False) -> None:
        self.vectors = vectors or {}
        self.error = error
        self.queries: list[str] = []

    def embed(self, texts: Sequence[str], profile: SemanticProfile) -> EmbeddingResult:
        self.queries.extend(texts)
        if self.error:
            raise EmbeddingError("service unavailable", provider=profile.provider)
        return EmbeddingResult(
            vectors=[self.vectors.get(t, [0.0, 1.0]) for t in texts], model=profile.model
        )


class FakeProfiles:
    def __init__(self, profile: SemanticProfile | None) -> None:
        self.profile = profile

    def get_active(self) -> SemanticProfile | None:
        return self.profile


def _profile(**overrides: object) -> SemanticProfile:
    values: dict[str, object] = {
        "model": MODEL,
        "api_key": "sk-test",
        "canonical_width": WIDTH,
        "similarity_threshold": 0.5,
        "result_limit": 10,
    }
    values.update(overrides)
    return SemanticProfile(**values)


@pytest.fixture
def db(tmp_path: Path) -> Iterator[Database]:
    database = Database(tmp_path / "test.db")
    LexicalIndexSynchronizer(database).synchronize()
    yield database
    database.close()


@pytest.fixture
def documents(db: Database) -> DocumentStore:
    return DocumentStore(db)


@pytest.fixture
def vectors(db: Database) -> VectorIndex:
    return VectorIndex(db, width=WIDTH)


def _add(documents: DocumentStore, vectors: VectorIndex, word: str, vector: list[float]) -> str:
    doc_id = documents.add_word(Word(word=word)).id
    vectors.upsert(doc_id, vector, MODEL)
    return doc_id


# ---------------------------------------------------------------------------
# Semantic search
# ---------------------------------------------------------------------------


class TestSemanticSearch:
    def test_finds_similar_words(self, documents: DocumentStore, vectors: VectorIndex) -> None:
        near = _add(documents, vectors, "fleeting", [1.0, 0.0, 0.0, 0.0])
        _add(documents, vectors, "permanent", [0.0, 1.0, 0.0, 0.0])
        client = FakeEmbeddingClient({"short-lived": [1.0, 0.1]})
        service = SemanticSearchService(vectors, client, FakeProfiles(_profile()))

        results = service.search("short-lived")

        assert [m.document.id for m in results] == [near]
        assert results[0].similarity > 0.9

    def test_query_is_reshaped_to_index_width(
        self, documents: DocumentStore, vectors: VectorIndex
    ) -> None:
        _add(documents, vectors, "fleeting", [0.6, 0.8, 0.0, 0.0])
        client = FakeEmbeddingClient({"q": [3.0, 4.0]})
        service = SemanticSearchService(vectors, client, FakeProfiles(_profile()))

        results = service.search("q")

        assert results[0].similarity == pytest.approx(1.0, abs=1e-5)

    def test_blank_query_skips_embedding(
        self, documents: DocumentStore, vectors: VectorIndex
    ) -> None:
        client = FakeEmbeddingClient()
        service = SemanticSearchService(vectors, client, FakeProfiles(_profile()))
        assert service.search("   ") == []
        assert client.queries == []

    def test_query_trimmed(self, vectors: VectorIndex) -> None:
        client = FakeEmbeddingClient()
        service = SemanticSearchService(vectors, client, FakeProfiles(_profile()))
        service.search("  ephemeral \n")
        assert client.queries == ["ephemeral"]

    @pytest.mark.parametrize(
        "profile",
        [None, _profile(enabled=False), _profile(api_key="")],
    )
    def test_missing_configuration_returns_nothing(
        self, vectors: VectorIndex, profile: SemanticProfile | None
    ) -> None:
        client = FakeEmbeddingClient()
        service = SemanticSearchService(vectors, client, FakeProfiles(profile))
        assert service.search("ephemeral") == []
        assert client.queries == []

    def test_provider_error_returns_nothing(
        self, documents: DocumentStore, vectors: VectorIndex
    ) -> None:
        _add(documents, vectors, "fleeting", [1.0, 0.0, 0.0, 0.0])
        service = SemanticSearchService(
            vectors, FakeEmbeddingClient(error=True), FakeProfiles(_profile())
        )
        assert service.search("fleeting") == []

    def test_closed_store_returns_nothing(self, db: Database, vectors: VectorIndex) -> None:
        service = SemanticSearchService(vectors, FakeEmbeddingClient(), FakeProfiles(_profile()))
        db.close()
        assert service.search("ephemeral") == []

    def test_profile_threshold_and_limit_defaults(
        self, documents: DocumentStore, vectors: VectorIndex
    ) -> None:
        for i in range(4):
            _add(documents, vectors, f"w{i}", [1.0, 0.0, 0.0, 0.0])
        client = FakeEmbeddingClient({"q": [1.0, 0.0]})
        service = SemanticSearchService(vectors, client, FakeProfiles(_profile(result_limit=2)))

        assert len(service.search("q")) == 2
        assert len(service.search("q", limit=3)) == 3

    def test_explicit_threshold(self, documents: DocumentStore, vectors: VectorIndex) -> None:
        _add(documents, vectors, "w", [0.6, 0.8, 0.0, 0.0])
        client = FakeEmbeddingClient({"q": [1.0, 0.0]})
        service = SemanticSearchService(vectors, client, FakeProfiles(_profile()))

        assert len(service.search("q", threshold=0.5)) == 1
        assert service.search("q", threshold=0.7) == []

    def test_other_models_ignored(self, documents: DocumentStore, vectors: VectorIndex) -> None:
        doc_id = documents.add_word(Word(word="w")).id
        vectors.upsert(doc_id, [1.0, 0.0, 0.0, 0.0], "older-model")
        client = FakeEmbeddingClient({"q": [1.0, 0.0]})
        service = SemanticSearchService(vectors, client, FakeProfiles(_profile()))
        assert service.search("q") == []


# ---------------------------------------------------------------------------
# Hybrid search
# ---------------------------------------------------------------------------


class TestHybridSearch:
    def _service(
        self, db: Database, vectors: VectorIndex, client: FakeEmbeddingClient
    ) -> HybridSearchService:
        semantic = SemanticSearchService(vectors, client, FakeProfiles(_profile()))
        return HybridSearchService(LexicalIndex(db), semantic)

    def test_lexical_hits_first_then_semantic(
        self, db: Database, documents: DocumentStore, vectors: VectorIndex
    ) -> None:
        exact = _add(documents, vectors, "ephemeral", [0.0, 1.0, 0.0, 0.0])
        related = _add(documents, vectors, "fleeting", [1.0, 0.0, 0.0, 0.0])
        client = FakeEmbeddingClient({"ephemeral": [1.0, 0.0]})

        hits = self._service(db, vectors, client).search("ephemeral")

        assert [(h.document.id, h.source) for h in hits] == [
            (exact, "lexical"),
            (related, "semantic"),
        ]

    def test_no_duplicates(
        self, db: Database, documents: DocumentStore, vectors: VectorIndex
    ) -> None:
        exact = _add(documents, vectors, "ephemeral", [1.0, 0.0, 0.0, 0.0])
        client = FakeEmbeddingClient({"ephemeral": [1.0, 0.0]})

        hits = self._service(db, vectors, client).search("ephemeral")

        assert [(h.document.id, h.source) for h in hits] == [(exact, "lexical")]

    def test_lexical_fills_limit_skips_semantic(
        self, db: Database, documents: DocumentStore, vectors: VectorIndex
    ) -> None:
        for i in range(3):
            _add(documents, vectors, f"common{i}", [1.0, 0.0, 0.0, 0.0])
        client = FakeEmbeddingClient()

        hits = self._service(db, vectors, client).search("common", limit=2)

        assert len(hits) == 2
        assert all(h.source == "lexical" for h in hits)
        assert client.queries == []

    def test_semantic_failure_keeps_lexical(
        self, db: Database, documents: DocumentStore, vectors: VectorIndex
    ) -> None:
        exact = _add(documents, vectors, "ephemeral", [1.0, 0.0, 0.0, 0.0])
        hits = self._service(db, vectors, FakeEmbeddingClient(error=True)).search("ephemeral")
        assert [h.document.id for h in hits] == [exact]

    def test_blank_query(self, db: Database, vectors: VectorIndex) -> None:
        assert self._service(db, vectors, FakeEmbeddingClient()).search("  ") == []
