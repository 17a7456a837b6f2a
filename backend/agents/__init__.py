"""Agent execution for AgentChain."""

from .executor import LLMAgentExecutor
from .llm import get_chat_model

__all__ = ["LLMAgentExecutor", "get_chat_model"]
