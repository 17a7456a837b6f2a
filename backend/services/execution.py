"""
Execution lifecycle — drives one round of agent execution over a node chain.

A round is split in two:

    begin_execute / begin_retry  (synchronous)
        Precondition checks and transition 1: the current input is frozen and a
        running marker is appended (or a failed marker is reset to running).
        Nothing is mutated when a precondition fails.

    run_round  (asynchronous)
        Persists the query and start log and awaits the agent executor, whose
        progress lines are appended to the running marker as they arrive. It then
        flips the marker to completed and appends the new editable output node, or
        flips the marker to error.

Only one round may be in flight per controller; a second begin_* call while
busy is rejected, not queued.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, List, Optional, Protocol, Sequence

from pydantic import BaseModel, Field

from errors import ExecutorFailure, PersistenceFailure, PreconditionViolation
from state import (
    RESOURCE_HEADER,
    AgentRef,
    ConversationNode,
    MessageType,
    NodeKind,
    NodeSequence,
    NodeStatus,
    ResourceRef,
    completion_log,
    new_marker_node,
    new_output_node,
    start_log,
)

if TYPE_CHECKING:
    from services.persistence import MessageJournal


logger = logging.getLogger(__name__)


class AgentResult(BaseModel):
    output: str
    logs: List[str] = Field(default_factory=list)


ProgressCallback = Callable[[str], None]


class AgentExecutor(Protocol):
    async def execute_agent(
        self,
        agent_id: str,
        user_input: str,
        on_log: Optional[ProgressCallback] = None,
    ) -> AgentResult:
        ...


@dataclass
class PendingRound:
    """A round that passed its preconditions and awaits dispatch."""

    marker_id: str
    agent: AgentRef
    effective_input: str
    epoch: int
    journal: "MessageJournal"
    is_retry: bool = False
    title_hint: str = ""


@dataclass
class RoundResult:
    marker: Optional[ConversationNode]
    output: Optional[ConversationNode] = None
    error: Optional[ExecutorFailure] = None
    persistence_errors: List[PersistenceFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.output is not None


def build_effective_input(content: str, resources: Sequence[ResourceRef]) -> str:
    """
    Combine node text and attached resources into the prompt sent to an agent.

    Resources render as "[title]: content" blocks separated by blank lines, in
    attachment order. With blank text the blocks alone are the input.
    """
    if not resources:
        return content

    blocks = "\n\n".join(f"[{r.title}]: {r.content}" for r in resources)
    if not content.strip():
        return blocks
    return f"{content}\n\n{RESOURCE_HEADER}\n{blocks}"


def find_retry_source(nodes: NodeSequence, marker_index: int) -> Optional[ConversationNode]:
    """Nearest non-marker node before the marker: the input the round consumed."""
    for index in range(marker_index - 1, -1, -1):
        if nodes[index].kind is not NodeKind.MARKER:
            return nodes[index]
    return None


class ExecutionController:
    """Owns the busy flag and applies round transitions to a NodeSequence."""

    def __init__(
        self,
        nodes: NodeSequence,
        executor: AgentExecutor,
        journal: "MessageJournal",
    ) -> None:
        self.nodes = nodes
        self.executor = executor
        self.journal = journal
        self.busy = False
        self._epoch = 0

    def reset(self, journal: "MessageJournal") -> None:
        """Forget any in-flight round; its late results will not touch the chain."""
        self.journal = journal
        self.busy = False
        self._epoch += 1

    # ------------------------------------------------------------------
    # Transition 1
    # ------------------------------------------------------------------

    def begin_execute(self, agent: Optional[AgentRef]) -> PendingRound:
        if self.busy:
            raise PreconditionViolation("An execution is already in progress.")
        if agent is None:
            raise PreconditionViolation("Select an agent before executing.")

        current = self.nodes.current_input()
        if current is None:
            raise PreconditionViolation("There is no current input to execute.")
        if not current.has_payload():
            raise PreconditionViolation("The current input is empty.")

        effective_input = build_effective_input(current.content, current.resources)
        marker = new_marker_node(agent)

        self.nodes.replace(current.frozen())
        self.nodes.append(marker)
        self.busy = True

        logger.info("Round started: agent=%s marker=%s", agent.id, marker.id)
        return PendingRound(
            marker_id=marker.id,
            agent=agent,
            effective_input=effective_input,
            epoch=self._epoch,
            journal=self.journal,
            title_hint=current.content.strip() or effective_input,
        )

    def begin_retry(self, marker_id: str) -> PendingRound:
        if self.busy:
            raise PreconditionViolation("An execution is already in progress.")

        index = self.nodes.index_of(marker_id)
        marker = self.nodes[index]
        if marker.kind is not NodeKind.MARKER or marker.status is not NodeStatus.ERROR:
            raise PreconditionViolation("Only a failed round can be retried.")
        if marker.agent is None:
            raise PreconditionViolation("The failed round has no agent to retry with.")

        source = find_retry_source(self.nodes, index)
        if source is None:
            raise PreconditionViolation("No input precedes the failed round.")

        agent = marker.agent
        self.nodes.replace(marker.model_copy(update={
            "status": NodeStatus.RUNNING,
            "content": f"Using {agent.label} to process...",
            "logs": (start_log(agent),),
        }))
        self.busy = True

        logger.info("Retrying round: agent=%s marker=%s", agent.id, marker_id)
        return PendingRound(
            marker_id=marker_id,
            agent=agent,
            effective_input=build_effective_input(source.content, source.resources),
            epoch=self._epoch,
            journal=self.journal,
            is_retry=True,
        )

    # ------------------------------------------------------------------
    # Transition 2
    # ------------------------------------------------------------------

    async def run_round(self, pending: PendingRound) -> RoundResult:
        journal = pending.journal
        agent = pending.agent
        first_failure = len(journal.failures)

        try:
            if not pending.is_retry:
                await journal.record(
                    MessageType.QUERY, pending.effective_input, agent.id, title=pending.title_hint
                )
                await journal.record(MessageType.LOG, start_log(agent), agent.id)

            try:
                result = await self.executor.execute_agent(
                    agent.id,
                    pending.effective_input,
                    on_log=lambda line: self._progress(pending, line),
                )
            except Exception as exc:  # noqa: BLE001
                failure = exc if isinstance(exc, ExecutorFailure) else ExecutorFailure(str(exc))
                logger.warning("Round failed: agent=%s error=%s", agent.id, failure)
                return RoundResult(
                    marker=self._fail(pending, str(failure)),
                    error=failure,
                    persistence_errors=journal.failures[first_failure:],
                )

            marker, output = self._complete(pending, result)
            await journal.record(MessageType.ANSWER, result.output, agent.id)
            await journal.record(
                MessageType.LOG, completion_log(agent, result.output, result.logs), agent.id
            )
            logger.info("Round completed: agent=%s marker=%s", agent.id, pending.marker_id)
            return RoundResult(
                marker=marker,
                output=output,
                persistence_errors=journal.failures[first_failure:],
            )
        except asyncio.CancelledError:
            self._fail(pending, "Execution cancelled")
            raise
        finally:
            if pending.epoch == self._epoch:
                self.busy = False

    def append_log(self, marker_id: str, line: str) -> Optional[ConversationNode]:
        """Add a progress line to a running marker; other markers are left as they are."""
        marker = self.nodes.get(marker_id)
        if marker.status is not NodeStatus.RUNNING:
            return None
        updated = marker.model_copy(update={"logs": marker.logs + (line,)})
        self.nodes.replace(updated)
        return updated

    def _progress(self, pending: PendingRound, line: str) -> None:
        if not self._is_stale(pending):
            self.append_log(pending.marker_id, line)

    def _is_stale(self, pending: PendingRound) -> bool:
        return pending.epoch != self._epoch

    def _fail(self, pending: PendingRound, message: str) -> Optional[ConversationNode]:
        if self._is_stale(pending):
            return None
        marker = self.nodes.get(pending.marker_id)
        if marker.status is not NodeStatus.RUNNING:
            return marker
        failed = marker.model_copy(update={
            "status": NodeStatus.ERROR,
            "content": f"Error: {message}",
        })
        self.nodes.replace(failed)
        return failed

    def _complete(self, pending: PendingRound, result: AgentResult):
        if self._is_stale(pending):
            logger.info("Discarding result of a cleared round: marker=%s", pending.marker_id)
            return None, None
        marker = self.nodes.get(pending.marker_id).model_copy(update={
            "status": NodeStatus.COMPLETED,
            "content": "Processing completed",
            "logs": tuple(result.logs),
        })
        output = new_output_node(pending.agent, result.output)
        self.nodes.replace(marker)
        self.nodes.append(output)
        return marker, output
