"""Contract tests run against every in-process store backend.

The Chroma backend runs on an ``EphemeralClient``; each test gets its own
collection so state never leaks between tests.
"""

from __future__ import annotations

from collections.abc import Iterator
from uuid import uuid4

import pytest

from kiosk_rag.config import Settings
from kiosk_rag.errors import DimensionMismatchError, DuplicateChunkError, StoreError
from kiosk_rag.retrieval.base import ChunkStore, validate_dimension
from kiosk_rag.retrieval.factory import create_store
from kiosk_rag.retrieval.memory_store import InMemoryChunkStore, cosine_similarity

DIM = 3


def _memory() -> ChunkStore:
    return InMemoryChunkStore(dimension=DIM)


def _chroma() -> ChunkStore:
    chromadb = pytest.importorskip("chromadb")
    from kiosk_rag.retrieval.chroma_store import ChromaChunkStore

    return ChromaChunkStore(DIM, f"test_{uuid4().hex[:12]}", client=chromadb.EphemeralClient())


@pytest.fixture(params=[_memory, _chroma], ids=["memory", "chroma"])
def store(request: pytest.FixtureRequest) -> Iterator[ChunkStore]:
    with request.param() as opened:
        yield opened


# ── Documents ─────────────────────────────────────────────────────────


class TestDocuments:
    def test_find_missing_returns_none(self, store: ChunkStore) -> None:
        assert store.find_document("Nope", None) is None

    def test_create_then_find(self, store: ChunkStore) -> None:
        doc = store.create_document("Handbook", "https://x.org/h.pdf")
        found = store.find_document("Handbook", "https://x.org/h.pdf")
        assert found is not None
        assert found.id == doc.id
        assert found.source_url == "https://x.org/h.pdf"

    def test_create_is_idempotent(self, store: ChunkStore) -> None:
        first = store.create_document("Handbook", None)
        second = store.create_document("Handbook", None)
        assert first.id == second.id
        assert store.count_documents() == 1

    def test_ensure_reports_whether_it_inserted(self, store: ChunkStore) -> None:
        doc, created = store.ensure_document("Handbook", None)
        again, created_again = store.ensure_document("Handbook", None)
        assert (created, created_again) == (True, False)
        assert again.id == doc.id

    def test_null_and_empty_source_are_distinct(self, store: ChunkStore) -> None:
        none_doc = store.create_document("Handbook", None)
        empty_doc = store.create_document("Handbook", "")
        assert none_doc.id != empty_doc.id
        assert store.find_document("Handbook", None).source_url is None
        assert store.find_document("Handbook", "").source_url == ""
        assert store.count_documents() == 2

    def test_same_title_different_source(self, store: ChunkStore) -> None:
        store.create_document("Guide", "https://a.org")
        store.create_document("Guide", "https://b.org")
        assert store.count_documents() == 2

    def test_delete_cascades_to_chunks(self, store: ChunkStore) -> None:
        doc = store.create_document("Handbook", None)
        store.create_chunk(doc.id, None, "one", [1.0, 0.0, 0.0])
        store.create_chunk(doc.id, None, "two", [0.0, 1.0, 0.0])
        assert store.delete_document(doc.id) is True
        assert store.count_documents() == 0
        assert store.count_chunks() == 0
        assert store.delete_document(doc.id) is False


# ── Chunks ────────────────────────────────────────────────────────────


class TestChunks:
    def test_create_and_find(self, store: ChunkStore) -> None:
        doc = store.create_document("Handbook", None)
        chunk = store.create_chunk(doc.id, "Intro", "Welcome", [0.1, 0.2, 0.3])
        found = store.find_chunk(doc.id, "Welcome")
        assert found is not None
        assert found.id == chunk.id
        assert found.section_title == "Intro"
        assert found.embedding == pytest.approx([0.1, 0.2, 0.3])

    def test_find_is_exact_and_scoped_to_document(self, store: ChunkStore) -> None:
        a = store.create_document("A", None)
        b = store.create_document("B", None)
        store.create_chunk(a.id, None, "Welcome", [1.0, 0.0, 0.0])
        assert store.find_chunk(a.id, "welcome") is None
        assert store.find_chunk(a.id, "Welcome ") is None
        assert store.find_chunk(b.id, "Welcome") is None

    def test_same_content_in_two_documents(self, store: ChunkStore) -> None:
        a = store.create_document("A", None)
        b = store.create_document("B", None)
        store.create_chunk(a.id, None, "Shared", [1.0, 0.0, 0.0])
        store.create_chunk(b.id, None, "Shared", [1.0, 0.0, 0.0])
        assert store.count_chunks() == 2

    def test_duplicate_chunk_rejected(self, store: ChunkStore) -> None:
        doc = store.create_document("Handbook", None)
        store.create_chunk(doc.id, None, "Welcome", [1.0, 0.0, 0.0])
        with pytest.raises(DuplicateChunkError):
            store.create_chunk(doc.id, None, "Welcome", [0.0, 1.0, 0.0])
        assert store.count_chunks() == 1

    def test_unknown_document_rejected(self, store: ChunkStore) -> None:
        with pytest.raises(StoreError):
            store.create_chunk(str(uuid4()), None, "Orphan", [1.0, 0.0, 0.0])

    def test_wrong_dimension_rejected(self, store: ChunkStore) -> None:
        doc = store.create_document("Handbook", None)
        with pytest.raises(DimensionMismatchError):
            store.create_chunk(doc.id, None, "Welcome", [1.0, 0.0])
        assert store.count_chunks() == 0

    def test_update_in_place(self, store: ChunkStore) -> None:
        doc = store.create_document("Handbook", None)
        chunk = store.create_chunk(doc.id, "Old", "Welcome", [1.0, 0.0, 0.0])
        updated = store.update_chunk(chunk.id, "New", [0.0, 1.0, 0.0])
        assert updated.id == chunk.id
        found = store.find_chunk(doc.id, "Welcome")
        assert found.id == chunk.id
        assert found.section_title == "New"
        assert found.embedding == pytest.approx([0.0, 1.0, 0.0])
        assert store.count_chunks() == 1

    def test_update_unknown_chunk(self, store: ChunkStore) -> None:
        with pytest.raises(StoreError):
            store.update_chunk(str(uuid4()), None, [1.0, 0.0, 0.0])


# ── Search ────────────────────────────────────────────────────────────


class TestSearch:
    @pytest.fixture()
    def populated(self, store: ChunkStore) -> ChunkStore:
        handbook = store.create_document("Handbook", "https://x.org/h.pdf")
        faq = store.create_document("FAQ", None)
        store.create_chunk(handbook.id, "Rent", "Rental help", [1.0, 0.0, 0.0])
        store.create_chunk(handbook.id, "Food", "Food pantry", [0.8, 0.6, 0.0])
        store.create_chunk(faq.id, None, "Opening hours", [0.0, 0.0, 1.0])
        return store

    def test_ranked_by_similarity(self, populated: ChunkStore) -> None:
        results = populated.search_by_similarity([1.0, 0.0, 0.0], limit=5, threshold=0.0)
        assert [r.content for r in results][:2] == ["Rental help", "Food pantry"]
        assert results[0].similarity == pytest.approx(1.0, abs=1e-5)
        assert results[1].similarity == pytest.approx(0.8, abs=1e-5)
        assert all(a.similarity >= b.similarity for a, b in zip(results, results[1:]))

    def test_results_joined_with_document(self, populated: ChunkStore) -> None:
        top = populated.search_by_similarity([1.0, 0.0, 0.0], limit=1, threshold=0.5)[0]
        assert top.document_title == "Handbook"
        assert top.source_url == "https://x.org/h.pdf"
        assert top.section_title == "Rent"
        assert top.short_ref() == "[Handbook§Rent]"

    def test_threshold_filters(self, populated: ChunkStore) -> None:
        results = populated.search_by_similarity([1.0, 0.0, 0.0], limit=5, threshold=0.9)
        assert [r.content for r in results] == ["Rental help"]

    def test_limit_truncates(self, populated: ChunkStore) -> None:
        results = populated.search_by_similarity([1.0, 0.0, 0.0], limit=1, threshold=0.0)
        assert len(results) == 1

    def test_nothing_relevant_is_empty(self, populated: ChunkStore) -> None:
        assert populated.search_by_similarity([0.0, 1.0, 0.0], limit=5, threshold=0.7) == []

    def test_empty_store(self, store: ChunkStore) -> None:
        assert store.search_by_similarity([1.0, 0.0, 0.0], limit=5, threshold=0.0) == []

    def test_query_dimension_checked(self, populated: ChunkStore) -> None:
        with pytest.raises(DimensionMismatchError):
            populated.search_by_similarity([1.0, 0.0], limit=5, threshold=0.0)


# ── Backend-specific ──────────────────────────────────────────────────


class TestInMemoryStore:
    def test_cosine_similarity(self) -> None:
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_ties_keep_insertion_order(self, memory_store: InMemoryChunkStore) -> None:
        doc = memory_store.create_document("Doc", None)
        for name in ("first", "second", "third"):
            memory_store.create_chunk(doc.id, None, name, [1.0, 1.0, 0.0])
        results = memory_store.search_by_similarity([1.0, 1.0, 0.0], limit=3, threshold=0.0)
        assert [r.content for r in results] == ["first", "second", "third"]


class TestChromaIds:
    def test_deterministic_ids(self) -> None:
        pytest.importorskip("chromadb")
        from kiosk_rag.retrieval.chroma_store import chunk_id_for, document_id_for

        assert document_id_for("Doc", None) == document_id_for("Doc", None)
        assert document_id_for("Doc", None) != document_id_for("Doc", "")
        doc_id = document_id_for("Doc", None)
        assert chunk_id_for(doc_id, "a") != chunk_id_for(doc_id, "b")


def test_validate_dimension() -> None:
    assert validate_dimension([1, 2, 3], 3) == [1.0, 2.0, 3.0]
    with pytest.raises(DimensionMismatchError) as info:
        validate_dimension([1.0] * 4, 3)
    assert (info.value.expected, info.value.actual) == (3, 4)


class TestFactory:
    def test_memory_backend(self) -> None:
        store = create_store("memory", config=Settings(embedding_dim=7))
        assert isinstance(store, InMemoryChunkStore)
        assert store.dimension == 7

    def test_backend_from_settings(self) -> None:
        store = create_store(config=Settings(store_backend="MEMORY"))
        assert isinstance(store, InMemoryChunkStore)

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError, match="Unsupported store_backend"):
            create_store("redis")
