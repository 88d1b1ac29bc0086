"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import os

import pytest

from kiosk_rag.ingestion.embedder import EmbeddingProvider
from kiosk_rag.retrieval.memory_store import InMemoryChunkStore

DIM = 3


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic provider: known texts map to fixed vectors, others to a default."""

    def __init__(self, vectors: dict[str, list[float]] | None = None, *, dimension: int = DIM) -> None:
        super().__init__(dimension, batch_size=2)
        self.vectors = vectors or {}
        self.calls: list[list[str]] = []

    def _embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self.vectors.get(t, [1.0] + [0.0] * (self.dimension - 1)) for t in texts]


class FakeLLM:
    """Stand-in for a LangChain chat model."""

    def __init__(self, reply: str = "Here is what I found.") -> None:
        self.reply = reply
        self.prompts: list = []

    def invoke(self, messages):  # noqa: ANN001, ANN201
        self.prompts.append(messages)
        return _Reply(self.reply)

    async def ainvoke(self, messages):  # noqa: ANN001, ANN201
        return self.invoke(messages)


class _Reply:
    def __init__(self, content: str) -> None:
        self.content = content


@pytest.fixture()
def memory_store() -> InMemoryChunkStore:
    return InMemoryChunkStore(dimension=DIM)


@pytest.fixture()
def fake_embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture()
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture()
def database_url() -> str:
    url = os.environ.get("KIOSK_RAG_TEST_DATABASE_URL")
    if not url:
        pytest.skip("KIOSK_RAG_TEST_DATABASE_URL not set")
    return url


@pytest.fixture()
def embedder_factory() -> type[FakeEmbeddingProvider]:
    return FakeEmbeddingProvider
