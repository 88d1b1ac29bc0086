"""Embedding provider adapter: text in, fixed-length vectors out.

The adapter validates input *before* calling the provider and wraps every
upstream failure in :class:`~kiosk_rag.errors.ProviderError`.  It never
retries; callers that want retries compose them around :meth:`embed_batch`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

from langchain_openai import OpenAIEmbeddings

from kiosk_rag.config import Settings, settings as default_settings
from kiosk_rag.errors import DimensionMismatchError, EmptyInputError, KioskRagError, ProviderError

logger = logging.getLogger(__name__)


class EmbeddingProvider(ABC):
    """Batching, validating front for an embedding backend.

    Parameters
    ----------
    dimension:
        Length every returned vector must have.
    batch_size:
        Max texts sent to the backend in a single call.
    """

    def __init__(self, dimension: int, batch_size: int = 100) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.dimension = dimension
        self.batch_size = batch_size

    # -- backend hooks --------------------------------------------------------

    @abstractmethod
    def _embed(self, texts: list[str]) -> list[list[float]]:
        """Embed one batch.  May raise anything; the caller wraps it."""
        ...

    async def _aembed(self, texts: list[str]) -> list[list[float]]:
        return self._embed(texts)

    # -- public API -----------------------------------------------------------

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts*, one vector per text, order preserved.

        Raises
        ------
        EmptyInputError
            If any text is blank after trimming (nothing is sent upstream).
        ProviderError
            If the backend call fails for any reason.
        DimensionMismatchError
            If the backend returns a vector of the wrong length.
        """
        batch = self._validate(texts)
        vectors: list[list[float]] = []
        for start in range(0, len(batch), self.batch_size):
            part = batch[start : start + self.batch_size]
            try:
                vectors.extend(self._check(part, self._embed(part)))
            except KioskRagError:
                raise
            except Exception as exc:
                raise ProviderError(f"Failed to generate embeddings: {exc}") from exc
            logger.debug("  embedded %d / %d", len(vectors), len(batch))
        return vectors

    def embed_one(self, text: str) -> list[float]:
        """Embed a single text (a batch of size one)."""
        return self.embed_batch([text])[0]

    async def aembed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Async :meth:`embed_batch` with one suspension point per backend call."""
        batch = self._validate(texts)
        vectors: list[list[float]] = []
        for start in range(0, len(batch), self.batch_size):
            part = batch[start : start + self.batch_size]
            try:
                vectors.extend(self._check(part, await self._aembed(part)))
            except KioskRagError:
                raise
            except Exception as exc:
                raise ProviderError(f"Failed to generate embeddings: {exc}") from exc
        return vectors

    async def aembed_one(self, text: str) -> list[float]:
        return (await self.aembed_batch([text]))[0]

    # -- internals ------------------------------------------------------------

    @staticmethod
    def _validate(texts: Sequence[str]) -> list[str]:
        if isinstance(texts, str):
            raise TypeError("embed_batch expects a sequence of strings, not a single string")
        batch = list(texts)
        for i, text in enumerate(batch):
            if not text or not text.strip():
                raise EmptyInputError(f"All text chunks must be non-empty (index {i} is blank)")
        return batch

    def _check(self, texts: list[str], vectors: list[list[float]]) -> list[list[float]]:
        if len(vectors) != len(texts):
            raise ProviderError(f"Provider returned {len(vectors)} vectors for {len(texts)} texts")
        out: list[list[float]] = []
        for vector in vectors:
            if len(vector) != self.dimension:
                raise DimensionMismatchError(self.dimension, len(vector))
            out.append([float(x) for x in vector])
        return out


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI (or OpenAI-compatible) embeddings via ``langchain_openai``.

    The underlying client is created with ``max_retries=0``: rate limits and
    transient failures surface immediately as :class:`ProviderError`.
    """

    def __init__(
        self,
        model: str = default_settings.embedding_model,
        *,
        dimension: int = default_settings.embedding_dim,
        batch_size: int = default_settings.embed_batch_size,
        api_key: str = default_settings.openai_api_key,
        base_url: str = default_settings.llm_base_url,
    ) -> None:
        super().__init__(dimension, batch_size)
        self.model = model
        kwargs: dict = {
            "model": model,
            "max_retries": 0,
            "chunk_size": batch_size,
        }
        if api_key:
            kwargs["api_key"] = api_key
        if base_url:
            kwargs["base_url"] = base_url
        self._client = OpenAIEmbeddings(**kwargs)

    def _embed(self, texts: list[str]) -> list[list[float]]:
        return self._client.embed_documents(texts)

    async def _aembed(self, texts: list[str]) -> list[list[float]]:
        return await self._client.aembed_documents(texts)


def get_embedding_provider(config: Settings | None = None) -> EmbeddingProvider:
    """Return the configured embedding provider."""
    config = config or default_settings
    logger.info("Using embedding model %s (dim=%d)", config.embedding_model, config.embedding_dim)
    return OpenAIEmbeddingProvider(
        config.embedding_model,
        dimension=config.embedding_dim,
        batch_size=config.embed_batch_size,
        api_key=config.openai_api_key,
        base_url=config.llm_base_url,
    )
