"""
Persistence adapter — the conversation store as seen by a live session.

SqlConversationStore maps the conversation service onto the narrow interface
sessions need and turns database errors into PersistenceFailure.
MessageJournal tracks the conversation a session is appending to and hands
out monotonically increasing sort values.
"""

import logging
from typing import Any, Callable, List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import PersistenceFailure
from services import conversation_service
from state import MessageType

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New conversation"
TITLE_LENGTH = 60


class ConversationStore(Protocol):
    async def create_conversation(self, title: str) -> str:
        ...

    async def get_conversation(self, conversation_id: str) -> Optional[Any]:
        ...

    async def append_message(
        self,
        conversation_id: str,
        node_type: str,
        content: str,
        sort: float,
        agent_id: Optional[str],
    ) -> Any:
        ...

    async def list_messages(self, conversation_id: str) -> List[Any]:
        ...

    async def save_conversation(
        self,
        conversation_id: Optional[str],
        title: str,
        messages: List[dict],
    ) -> str:
        ...


class SqlConversationStore:
    """ConversationStore backed by SQLAlchemy; one short session per call."""

    def __init__(self, session_factory: Callable[[], AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_conversation(self, title: str) -> str:
        try:
            async with self._session_factory() as session:
                conversation = await conversation_service.create_conversation(session, title)
                return conversation.id
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Could not create conversation: {exc}") from exc

    async def get_conversation(self, conversation_id: str):
        try:
            async with self._session_factory() as session:
                return await conversation_service.get_conversation(session, conversation_id)
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Could not read conversation: {exc}") from exc

    async def append_message(self, conversation_id, node_type, content, sort, agent_id):
        try:
            async with self._session_factory() as session:
                return await conversation_service.append_message(
                    session, conversation_id, node_type, content, sort, agent_id
                )
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Could not append {node_type} message: {exc}") from exc

    async def list_messages(self, conversation_id: str):
        try:
            async with self._session_factory() as session:
                return await conversation_service.list_messages(session, conversation_id)
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Could not read messages: {exc}") from exc

    async def save_conversation(self, conversation_id, title, messages) -> str:
        try:
            async with self._session_factory() as session:
                conversation = None
                if conversation_id is not None:
                    conversation = await conversation_service.rename_conversation(
                        session, conversation_id, title
                    )
                if conversation is None:
                    conversation = await conversation_service.create_conversation(session, title)
                await conversation_service.replace_messages(session, conversation.id, messages)
                return conversation.id
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Could not save conversation: {exc}") from exc


def make_title(text: str) -> str:
    line = " ".join(text.split())
    if not line:
        return DEFAULT_TITLE
    if len(line) <= TITLE_LENGTH:
        return line
    return line[: TITLE_LENGTH - 3].rstrip() + "..."


class MessageJournal:
    """
    Append-only writer for one conversation.

    The conversation record is created on the first write. Sort values are
    reserved before any await, so they follow the order in which record() is
    called. Failed writes are collected in `failures` instead of raised.
    """

    def __init__(
        self,
        store: ConversationStore,
        conversation_id: Optional[str] = None,
        next_sort: float = 0.0,
    ) -> None:
        self.store = store
        self.conversation_id = conversation_id
        self.next_sort = next_sort
        self.failures: List[PersistenceFailure] = []

    async def record(
        self,
        node_type: MessageType,
        content: str,
        agent_id: Optional[str],
        title: Optional[str] = None,
    ) -> Optional[Any]:
        sort = self.next_sort
        self.next_sort += 1

        try:
            if self.conversation_id is None:
                self.conversation_id = await self.store.create_conversation(
                    make_title(title or content)
                )
            return await self.store.append_message(
                self.conversation_id, node_type.value, content, sort, agent_id
            )
        except PersistenceFailure as exc:
            logger.warning("Journal write failed: type=%s sort=%s error=%s", node_type.value, sort, exc)
            self.failures.append(exc)
            return None
