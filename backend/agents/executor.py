"""
LLM Agent Executor — runs a stored agent profile against an input string.

Implements the AgentExecutor interface consumed by the execution controller:
the profile's system prompt and the effective input are sent to the chat
model, and the reply comes back with a short list of execution logs. Log
lines after the opening one are also reported through `on_log` as they happen
so a running marker can show progress. Every failure (unknown agent,
missing credentials, provider error) is raised as ExecutorFailure.
"""

import logging
from typing import Callable, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agents.llm import get_chat_model
from errors import ExecutorFailure
from services.agent_service import get_agent
from services.execution import AgentResult, ProgressCallback

logger = logging.getLogger(__name__)


def _reply_text(response) -> str:
    content = response.content
    if isinstance(content, list):
        # Anthropic replies may arrive as content blocks
        content = "".join(
            block.get("text", "") if isinstance(block, dict) else str(block)
            for block in content
        )
    return content or "No response generated"


class LLMAgentExecutor:
    def __init__(self, session_factory: Callable[[], AsyncSession]) -> None:
        self._session_factory = session_factory

    async def execute_agent(
        self,
        agent_id: str,
        user_input: str,
        on_log: Optional[ProgressCallback] = None,
    ) -> AgentResult:
        try:
            async with self._session_factory() as session:
                profile = await get_agent(session, agent_id)
        except SQLAlchemyError as exc:
            raise ExecutorFailure(f"Could not load agent '{agent_id}': {exc}") from exc

        if profile is None:
            raise ExecutorFailure(f"Agent '{agent_id}' not found.")

        logs = [f"Starting {profile.name}..."]

        def step(line: str) -> None:
            logs.append(line)
            if on_log is not None:
                on_log(line)

        step(f"Sending request to {profile.model}...")
        try:
            llm = get_chat_model(profile.model, profile.temperature, profile.max_tokens)
            response = await llm.ainvoke([
                SystemMessage(content=profile.system_prompt),
                HumanMessage(content=user_input),
            ])
        except Exception as exc:  # noqa: BLE001
            logger.warning("Agent execution failed: agent=%s error=%s", agent_id, exc)
            raise ExecutorFailure(f"Agent execution failed: {exc}") from exc

        step("Processing response...")
        step("Execution completed")
        return AgentResult(output=_reply_text(response), logs=logs)
