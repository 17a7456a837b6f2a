"""
Shared fakes for AgentChain tests.

FakeExecutor and FakeStore stand in for the LLM executor and the SQL
conversation store so the node state machine can be exercised without
network or database access.
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
from datetime import datetime, timezone
from typing import List, Optional

import pytest

from errors import ExecutorFailure, PersistenceFailure
from models.conversation import ConversationMessage
from services.execution import AgentResult
from state import AgentRef


class FakeExecutor:
    """
    Replays scripted outcomes in call order.

    Each script entry is an AgentResult (returned) or an Exception (raised).
    Lines in `progress` are reported through on_log at the start of every call.
    When `gate` is set, every call then waits on it before answering.
    """

    def __init__(self, *script) -> None:
        self.script = list(script)
        self.calls: List[tuple] = []
        self.gate: Optional[asyncio.Event] = None
        self.progress: List[str] = []

    async def execute_agent(self, agent_id: str, user_input: str, on_log=None) -> AgentResult:
        self.calls.append((agent_id, user_input))
        if on_log is not None:
            for line in self.progress:
                on_log(line)
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.script.pop(0) if self.script else AgentResult(output="ok", logs=["done"])
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeConversation:
    def __init__(self, conversation_id: str, title: str) -> None:
        self.id = conversation_id
        self.title = title


class FakeStore:
    """In-memory ConversationStore; set fail_writes to make appends fail."""

    def __init__(self) -> None:
        self.conversations = {}
        self.messages: List[ConversationMessage] = []
        self.fail_writes = False
        self._ids = 0

    def _next_id(self, prefix: str) -> str:
        self._ids += 1
        return f"{prefix}-{self._ids}"

    async def create_conversation(self, title: str) -> str:
        if self.fail_writes:
            raise PersistenceFailure("store offline")
        conversation = FakeConversation(self._next_id("conv"), title)
        self.conversations[conversation.id] = conversation
        return conversation.id

    async def get_conversation(self, conversation_id: str):
        return self.conversations.get(conversation_id)

    async def append_message(self, conversation_id, node_type, content, sort, agent_id):
        if self.fail_writes:
            raise PersistenceFailure("store offline")
        message = make_message(
            node_type, content, sort, agent_id,
            message_id=self._next_id("msg"), conversation_id=conversation_id,
        )
        self.messages.append(message)
        return message

    async def list_messages(self, conversation_id: str):
        return [m for m in self.messages if m.conversation_id == conversation_id]

    async def save_conversation(self, conversation_id, title, messages) -> str:
        if self.fail_writes:
            raise PersistenceFailure("store offline")
        if conversation_id not in self.conversations:
            conversation_id = await self.create_conversation(title)
        self.conversations[conversation_id].title = title
        self.messages = [m for m in self.messages if m.conversation_id != conversation_id]
        for m in messages:
            await self.append_message(
                conversation_id, m["node_type"], m["content"], m["sort"], m["agent_id"]
            )
        return conversation_id

    def types_for(self, conversation_id: str) -> List[str]:
        ordered = sorted(
            (m for m in self.messages if m.conversation_id == conversation_id),
            key=lambda m: m.sort,
        )
        return [m.node_type for m in ordered]


def make_message(
    node_type: str,
    content: str,
    sort: float,
    agent_id: Optional[str] = "agent-a",
    message_id: Optional[str] = None,
    conversation_id: str = "conv-1",
) -> ConversationMessage:
    return ConversationMessage(
        id=message_id or f"m{sort:g}",
        conversation_id=conversation_id,
        node_type=node_type,
        content=content,
        sort=sort,
        agent_id=agent_id,
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def agent() -> AgentRef:
    return AgentRef(id="agent-a", name="Analyst")


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def executor_failure() -> ExecutorFailure:
    return ExecutorFailure("quota exceeded")
