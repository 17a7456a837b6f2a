"""
LLM factory — maps agent profile model names to LangChain chat models.

Model names starting with "claude" go to Anthropic; everything else is sent
to an OpenAI-compatible endpoint (OPENAI_BASE_URL may point at any
compatible server).
"""

import os
from typing import Any, Optional

from langchain_anthropic import ChatAnthropic
from langchain_openai import ChatOpenAI

DEFAULT_MODEL = os.environ.get("AGENTCHAIN_DEFAULT_MODEL", "gpt-4o-mini")
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1000


def get_chat_model(
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> Any:
    """Instantiate a LangChain chat model for an agent profile."""
    model = model or DEFAULT_MODEL
    temperature = DEFAULT_TEMPERATURE if temperature is None else temperature
    max_tokens = max_tokens or DEFAULT_MAX_TOKENS

    if model.startswith("claude"):
        return ChatAnthropic(
            model=model,
            api_key=os.environ.get("ANTHROPIC_API_KEY"),
            temperature=temperature,
            max_tokens=max_tokens,
        )

    return ChatOpenAI(
        model=model,
        api_key=os.environ.get("OPENAI_API_KEY"),
        base_url=os.environ.get("OPENAI_BASE_URL") or None,
        temperature=temperature,
        max_tokens=max_tokens,
    )
