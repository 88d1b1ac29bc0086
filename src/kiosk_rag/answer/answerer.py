"""Grounded answering: retrieve, then let the chat model answer from the references."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, Field

from kiosk_rag.answer.prompts import NO_RESULTS_MESSAGE, ChatMessage, Source, build_answer_prompt, format_sources
from kiosk_rag.errors import EmptyInputError, KioskRagError, ProviderError
from kiosk_rag.retrieval.retriever import SimilaritySearchEngine

logger = logging.getLogger(__name__)


class Answer(BaseModel):
    message: str
    sources: list[Source] = Field(default_factory=list)


def last_user_message(messages: Sequence[ChatMessage]) -> str:
    """Text of the most recent ``user`` turn.

    Raises
    ------
    EmptyInputError
        If there is no user turn or it is blank.
    """
    for message in reversed(messages):
        if message.role == "user":
            if not message.content.strip():
                raise EmptyInputError("Empty user message")
            return message.content
    raise EmptyInputError("No user message found")


class GroundedAnswerer:
    """Answer chat questions strictly from retrieved chunks.

    When the search finds nothing above the threshold the fixed deflection
    message is returned and the chat model is not called.

    Parameters
    ----------
    engine:
        Search engine with an embedding provider attached.
    llm:
        LangChain chat model; created from settings on first use when omitted.
    """

    def __init__(self, engine: SimilaritySearchEngine, llm: Any | None = None) -> None:
        self._engine = engine
        self._llm = llm

    @property
    def llm(self) -> Any:
        if self._llm is None:
            from kiosk_rag.answer.llm import get_llm

            self._llm = get_llm()
        return self._llm

    def answer(self, messages: Sequence[ChatMessage]) -> Answer:
        question = last_user_message(messages)
        results = self._engine.search(question)
        if not results:
            logger.info("No chunk above threshold; returning deflection")
            return Answer(message=NO_RESULTS_MESSAGE)
        try:
            reply = self.llm.invoke(build_answer_prompt(results, messages))
        except KioskRagError:
            raise
        except Exception as exc:
            raise ProviderError(f"Failed to generate answer: {exc}") from exc
        return Answer(message=str(reply.content), sources=format_sources(results))

    async def aanswer(self, messages: Sequence[ChatMessage]) -> Answer:
        """Async :meth:`answer`."""
        question = last_user_message(messages)
        results = await self._engine.asearch(question)
        if not results:
            logger.info("No chunk above threshold; returning deflection")
            return Answer(message=NO_RESULTS_MESSAGE)
        try:
            reply = await self.llm.ainvoke(build_answer_prompt(results, messages))
        except KioskRagError:
            raise
        except Exception as exc:
            raise ProviderError(f"Failed to generate answer: {exc}") from exc
        return Answer(message=str(reply.content), sources=format_sources(results))
