"""Prompt templates for grounded answering.

Keeping prompts in one place makes them easy to audit and version.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from pydantic import BaseModel

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

    from kiosk_rag.retrieval.models import SearchResult

NO_RESULTS_MESSAGE = (
    "I don't have information about that in my resources. Please ask a staff member for help."
)

CRISIS_MESSAGE = "For immediate help, please speak with a staff member right away."

SYSTEM_PROMPT = f"""\
You are a helpful resource navigator for families seeking social services and
support programs. Your role is to answer questions using ONLY the reference
documents provided below.

STRICT RULES:
- ONLY use information from the provided reference documents to answer questions.
- If the reference documents do not contain relevant information, say: "{NO_RESULTS_MESSAGE}"
- NEVER guess, speculate, or provide information not found in the reference documents.
- NEVER provide personalized advice, medical advice, legal advice, or mental health counseling.
- NEVER handle crisis situations; instead say: "{CRISIS_MESSAGE}"
- Do NOT make up programs, phone numbers, addresses, or eligibility requirements.
- Do NOT include citations or references in your response. The sources will be displayed separately.
- Keep answers clear, concise, and easy to understand.
- If a question is outside the scope of available documents, politely direct the user to speak with staff.
"""


class ChatMessage(BaseModel):
    """One turn of the conversation as sent by the client."""

    role: str
    content: str


class Source(BaseModel):
    """A document cited alongside an answer."""

    title: str
    section_title: str | None = None
    url: str | None = None


def build_context_prompt(results: Sequence[SearchResult]) -> str:
    """Render retrieved chunks as a numbered reference block."""
    if not results:
        return "No relevant reference documents were found for this question."

    sections: list[str] = []
    for i, result in enumerate(results, 1):
        source = (
            f"Source: {result.document_title} ({result.source_url})"
            if result.source_url
            else f"Source: {result.document_title}"
        )
        lines = [f"--- Reference {i} ---", source]
        if result.section_title:
            lines.append(f"Section: {result.section_title}")
        lines.append(result.content)
        sections.append("\n".join(lines))
    return "REFERENCE DOCUMENTS:\n\n" + "\n\n".join(sections)


def format_sources(results: Sequence[SearchResult]) -> list[Source]:
    """One :class:`Source` per document, in rank order of its best chunk."""
    seen: set[str] = set()
    sources: list[Source] = []
    for result in results:
        if result.document_id in seen:
            continue
        seen.add(result.document_id)
        sources.append(
            Source(title=result.document_title, section_title=result.section_title, url=result.source_url)
        )
    return sources


def build_answer_prompt(results: Sequence[SearchResult], messages: Sequence[ChatMessage]) -> list[BaseMessage]:
    """System prompt with the reference block, followed by the conversation."""
    prompt: list[BaseMessage] = [
        SystemMessage(content=f"{SYSTEM_PROMPT}\n{build_context_prompt(results)}")
    ]
    for message in messages:
        if message.role == "user":
            prompt.append(HumanMessage(content=message.content))
        elif message.role == "assistant":
            prompt.append(AIMessage(content=message.content))
    return prompt
