"""FastAPI application exposing search and grounded chat as a REST API."""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from kiosk_rag.answer.answerer import Answer, GroundedAnswerer
from kiosk_rag.answer.prompts import ChatMessage
from kiosk_rag.config import settings
from kiosk_rag.errors import EmptyInputError, ProviderError, StoreError
from kiosk_rag.retrieval.models import SearchResult
from kiosk_rag.retrieval.retriever import SimilaritySearchEngine

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Kiosk RAG API",
    version="0.1.0",
    description="Similarity search and grounded chat over the resource documents.",
)


# ── Dependencies ──────────────────────────────────────────────────────
@lru_cache(maxsize=1)
def get_engine() -> SimilaritySearchEngine:
    """Process-wide search engine built from settings on first request."""
    from kiosk_rag.ingestion.embedder import get_embedding_provider
    from kiosk_rag.retrieval.factory import create_store

    store = create_store()
    store.open()
    return SimilaritySearchEngine(
        store,
        get_embedding_provider(),
        default_limit=settings.search_limit,
        default_threshold=settings.similarity_threshold,
    )


def get_answerer(engine: SimilaritySearchEngine = Depends(get_engine)) -> GroundedAnswerer:
    return GroundedAnswerer(engine)


# ── Request / Response schemas ────────────────────────────────────────
class SearchRequest(BaseModel):
    """Free-text query with optional overrides."""

    query: str = Field(min_length=1)
    limit: int | None = Field(default=None, ge=1)
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)


class SearchResponse(BaseModel):
    results: list[SearchResult] = []


class ChatRequest(BaseModel):
    """Conversation so far; only the latest user turn drives retrieval."""

    messages: list[ChatMessage]


# ── Error mapping ─────────────────────────────────────────────────────
@app.exception_handler(EmptyInputError)
async def empty_input_handler(request: Request, exc: EmptyInputError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
    logger.error("Upstream provider failed: %s", exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("Store failed: %s", exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@app.post("/search", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    engine: SimilaritySearchEngine = Depends(get_engine),
) -> SearchResponse:
    """Rank stored chunks against the query text."""
    results = await engine.asearch(request.query, limit=request.limit, threshold=request.threshold)
    return SearchResponse(results=results)


@app.post("/chat", response_model=Answer)
async def chat(
    request: ChatRequest,
    answerer: GroundedAnswerer = Depends(get_answerer),
) -> Answer:
    """Answer the latest user message from the reference documents."""
    return await answerer.aanswer(request.messages)
