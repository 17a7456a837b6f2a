"""
ConversationNode — the central data structure of a conversation chain.

A session holds an ordered NodeSequence of input, marker and output nodes.
Nodes are immutable; every change is a value replacement of one node inside
the sequence. At most one node is the current input, and it is never a marker.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Iterator, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from errors import PreconditionViolation


class NodeKind(str, Enum):
    INPUT = "input"
    OUTPUT = "output"
    MARKER = "marker"


class NodeStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class MessageType(str, Enum):
    """Roles of persisted conversation messages."""

    QUERY = "query"
    ANSWER = "answer"
    LOG = "log"


# A completion log is matched to an answer whose sort lies within this distance
COMPLETION_LOG_WINDOW = 2.0

START_LOG_PREFIX = "Starting"
COMPLETION_LOG_PREFIX = "Completed"

RESOURCE_HEADER = "Reference Resources:"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResourceRef(BaseModel):
    """A reference document attached to an input node."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    content: str
    type: Literal["pdf", "md", "text"] = "text"


class AgentRef(BaseModel):
    """The agent that produced an output or is running behind a marker."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: Optional[str] = None

    @property
    def label(self) -> str:
        return self.name or self.id


class ConversationNode(BaseModel):
    """
    A single entry of the conversation chain.

    Fields:
        id:               Opaque identifier, stable for the node's lifetime.
        kind:             input | output | marker.
        content:          User/agent text, or a status line for markers.
        resources:        Attached reference documents, in prompt order.
        agent:            Producing agent (outputs) or running agent (markers).
        status:           running | completed | error for markers and outputs.
        logs:             Diagnostic lines accumulated during execution.
        is_current_input: The one node the user can still edit and execute.
        is_editable:      Updated together with is_current_input.
        timestamp:        Creation time (UTC).
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: NodeKind
    content: str = ""
    resources: Tuple[ResourceRef, ...] = ()
    agent: Optional[AgentRef] = None
    status: Optional[NodeStatus] = None
    logs: Tuple[str, ...] = ()
    is_current_input: bool = False
    is_editable: bool = False
    timestamp: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _markers_are_never_current(self) -> "ConversationNode":
        if self.kind is NodeKind.MARKER and (self.is_current_input or self.is_editable):
            raise ValueError("A marker node can never be the current input.")
        return self

    def has_payload(self) -> bool:
        """True when the node carries non-blank text or at least one resource."""
        return bool(self.content.strip()) or bool(self.resources)

    def frozen(self) -> "ConversationNode":
        return self.model_copy(update={"is_current_input": False, "is_editable": False})

    def made_current(self) -> "ConversationNode":
        return self.model_copy(update={"is_current_input": True, "is_editable": True})


def new_input_node() -> ConversationNode:
    """A blank, editable current-input node."""
    return ConversationNode(kind=NodeKind.INPUT, is_current_input=True, is_editable=True)


def new_marker_node(agent: AgentRef) -> ConversationNode:
    return ConversationNode(
        kind=NodeKind.MARKER,
        content=f"Using {agent.label} to process...",
        agent=agent,
        status=NodeStatus.RUNNING,
        logs=(start_log(agent),),
    )


def new_output_node(agent: AgentRef, content: str) -> ConversationNode:
    return ConversationNode(
        kind=NodeKind.OUTPUT,
        content=content,
        agent=agent,
        status=NodeStatus.COMPLETED,
        is_current_input=True,
        is_editable=True,
    )


def start_log(agent: AgentRef) -> str:
    return f"{START_LOG_PREFIX} {agent.label}..."


def completion_log(agent: AgentRef, output: str, logs: List[str]) -> str:
    return (
        f"{COMPLETION_LOG_PREFIX} {agent.label}: "
        f"{len(logs)} step(s), {len(output)} characters of output"
    )


def is_completion_log(content: str) -> bool:
    return content.startswith(COMPLETION_LOG_PREFIX)


class NodeSequence:
    """
    The live, ordered node list of a session.

    Only the owning session (and its execution controller) mutates it, and only
    through these methods, so the single-current-input invariant holds after
    every call.
    """

    def __init__(self, nodes: Optional[List[ConversationNode]] = None) -> None:
        self._nodes: List[ConversationNode] = []
        self.reset(nodes if nodes is not None else [new_input_node()])

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[ConversationNode]:
        return iter(list(self._nodes))

    def __getitem__(self, index: int) -> ConversationNode:
        return self._nodes[index]

    @property
    def nodes(self) -> Tuple[ConversationNode, ...]:
        return tuple(self._nodes)

    def index_of(self, node_id: str) -> int:
        for index, node in enumerate(self._nodes):
            if node.id == node_id:
                return index
        raise PreconditionViolation(f"Node '{node_id}' is not part of this conversation.")

    def get(self, node_id: str) -> ConversationNode:
        return self._nodes[self.index_of(node_id)]

    def current_input(self) -> Optional[ConversationNode]:
        for node in reversed(self._nodes):
            if node.is_current_input:
                return node
        return None

    def append(self, node: ConversationNode) -> None:
        if node.is_current_input and self.current_input() is not None:
            raise PreconditionViolation("The conversation already has a current input.")
        self._nodes.append(node)

    def replace(self, node: ConversationNode) -> None:
        """Swap the node with the same id for the given value, touching nothing else."""
        index = self.index_of(node.id)
        if node.is_current_input:
            current = self.current_input()
            if current is not None and current.id != node.id:
                raise PreconditionViolation("The conversation already has a current input.")
        self._nodes[index] = node

    def reset(self, nodes: List[ConversationNode]) -> None:
        if sum(1 for node in nodes if node.is_current_input) > 1:
            raise PreconditionViolation("A conversation can have at most one current input.")
        self._nodes = list(nodes)
