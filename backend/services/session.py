"""
ConversationSession — owns one user's live conversation chain.

The session holds the node sequence, the selected agent, the execution
controller (and with it the busy flag) and the message journal of the
conversation being appended to. All chain mutations go through its methods.
"""

import logging
import uuid
from typing import Optional

from errors import ConversationNotFound, PreconditionViolation
from services.execution import AgentExecutor, ExecutionController, PendingRound, RoundResult
from services.history import reconstruct_history, snapshot_messages
from services.persistence import ConversationStore, MessageJournal, make_title
from state import AgentRef, ConversationNode, NodeSequence, ResourceRef, new_input_node

logger = logging.getLogger(__name__)


class ConversationSession:
    def __init__(
        self,
        executor: AgentExecutor,
        store: ConversationStore,
        session_id: Optional[str] = None,
    ) -> None:
        self.id = session_id or str(uuid.uuid4())
        self.store = store
        self.nodes = NodeSequence()
        self.selected_agent: Optional[AgentRef] = None
        self.journal = MessageJournal(store)
        self.controller = ExecutionController(self.nodes, executor, self.journal)

    @property
    def busy(self) -> bool:
        return self.controller.busy

    @property
    def conversation_id(self) -> Optional[str]:
        return self.journal.conversation_id

    def _require_current_input(self) -> ConversationNode:
        current = self.nodes.current_input()
        if current is None:
            raise PreconditionViolation("There is no editable input in this conversation.")
        return current

    # ------------------------------------------------------------------
    # Editing the current input
    # ------------------------------------------------------------------

    def attach_resource(self, resource: ResourceRef) -> ConversationNode:
        """Attach a resource to the current input; attaching twice is a no-op."""
        current = self._require_current_input()
        if any(r.id == resource.id for r in current.resources):
            return current
        updated = current.model_copy(update={"resources": current.resources + (resource,)})
        self.nodes.replace(updated)
        return updated

    def detach_resource(self, resource_id: str) -> ConversationNode:
        current = self._require_current_input()
        updated = current.model_copy(update={
            "resources": tuple(r for r in current.resources if r.id != resource_id),
        })
        self.nodes.replace(updated)
        return updated

    def edit_current_input(self, text: str) -> ConversationNode:
        current = self._require_current_input()
        updated = current.model_copy(update={"content": text})
        self.nodes.replace(updated)
        return updated

    def select_agent(self, agent: Optional[AgentRef]) -> None:
        if self.busy:
            raise PreconditionViolation("The agent cannot change while an execution is running.")
        self.selected_agent = agent

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def begin_execute(self, agent: Optional[AgentRef] = None) -> PendingRound:
        pending = self.controller.begin_execute(agent or self.selected_agent)
        self.selected_agent = None
        return pending

    def begin_retry(self, marker_id: str) -> PendingRound:
        return self.controller.begin_retry(marker_id)

    async def run_round(self, pending: PendingRound) -> RoundResult:
        return await self.controller.run_round(pending)

    async def execute(self, agent: Optional[AgentRef] = None) -> RoundResult:
        return await self.run_round(self.begin_execute(agent))

    async def retry(self, marker_id: str) -> RoundResult:
        return await self.run_round(self.begin_retry(marker_id))

    # ------------------------------------------------------------------
    # Whole-chain operations
    # ------------------------------------------------------------------

    def _start_over(self, nodes, journal: MessageJournal) -> None:
        self.nodes.reset(nodes)
        self.selected_agent = None
        self.journal = journal
        self.controller.reset(journal)

    def clear(self) -> None:
        """Start a fresh conversation; persisted records stay in storage."""
        self._start_over([new_input_node()], MessageJournal(self.store))
        logger.info("Session cleared: session=%s", self.id)

    async def load_conversation(self, conversation_id: str) -> None:
        """Replace the chain with one rebuilt from a persisted conversation."""
        if self.busy:
            raise PreconditionViolation("Cannot load a conversation while an execution is running.")
        if await self.store.get_conversation(conversation_id) is None:
            raise ConversationNotFound(conversation_id)

        messages = await self.store.list_messages(conversation_id)
        nodes = reconstruct_history(messages)
        if not any(node.is_current_input for node in nodes):
            nodes.append(new_input_node())

        next_sort = max((float(m.sort) for m in messages), default=-1.0) + 1
        self._start_over(nodes, MessageJournal(self.store, conversation_id, next_sort))
        logger.info(
            "Conversation loaded: session=%s conversation=%s messages=%d nodes=%d",
            self.id, conversation_id, len(messages), len(nodes),
        )

    async def save(self, title: Optional[str] = None) -> str:
        """Persist the chain as query/answer messages and return the conversation id."""
        if self.busy:
            raise PreconditionViolation("Cannot save while an execution is running.")

        messages = snapshot_messages(self.nodes)
        if not title:
            title = make_title(messages[0]["content"] if messages else "")
        conversation_id = await self.store.save_conversation(
            self.journal.conversation_id, title, messages
        )
        self.journal.conversation_id = conversation_id
        self.journal.next_sort = float(len(messages))
        logger.info("Conversation saved: session=%s conversation=%s", self.id, conversation_id)
        return conversation_id

    def snapshot(self) -> dict:
        """JSON-friendly view of the session state."""
        return {
            "session_id": self.id,
            "conversation_id": self.conversation_id,
            "busy": self.busy,
            "selected_agent": self.selected_agent.model_dump() if self.selected_agent else None,
            "nodes": [node.model_dump(mode="json") for node in self.nodes],
            "persistence_errors": [str(exc) for exc in self.journal.failures],
        }
