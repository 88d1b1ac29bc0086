"""Chat model for grounded kiosk answers.

The kiosk talks to an OpenAI-compatible chat endpoint: OpenAI itself when
``LLM_BASE_URL`` is unset, otherwise the configured server.
"""

from __future__ import annotations

import logging

from langchain_openai import ChatOpenAI

from kiosk_rag.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


def get_llm(temperature: float = 0.0, *, config: Settings | None = None) -> ChatOpenAI:
    """Return the configured chat model.

    When ``llm_base_url`` is set the client is pointed at that endpoint and a
    placeholder key (``"EMPTY"``) is used if none is configured.
    """
    config = config or default_settings
    kwargs: dict = {
        "model": config.llm_model_name,
        "temperature": temperature,
    }

    if config.llm_base_url:
        logger.info("Using OpenAI-compatible endpoint: %s", config.llm_base_url)
        kwargs["base_url"] = config.llm_base_url
        # self-hosted servers often ignore the key; LangChain requires a non-empty value
        kwargs["api_key"] = config.openai_api_key or "EMPTY"
    else:
        kwargs["api_key"] = config.openai_api_key

    return ChatOpenAI(**kwargs)
