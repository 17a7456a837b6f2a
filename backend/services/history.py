"""
History reconstruction — rebuilds a display chain from persisted messages.

Execution rounds append query, log and answer messages to an append-only log,
including failed and retried rounds. Reopening a conversation must hide that
bookkeeping: only the final answer survives, start logs disappear, and each
completion log is shown right before the answer it describes.

reconstruct_history() is a pure function of its input and never raises on
malformed data.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from services.execution import build_effective_input
from state import (
    COMPLETION_LOG_WINDOW,
    AgentRef,
    ConversationNode,
    MessageType,
    NodeKind,
    NodeStatus,
    is_completion_log,
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Display keys are (anchor sort, rank, own sort); rank 0 puts a completion log
# ahead of the answer it is anchored to.
_BEFORE_ANCHOR = 0
_AT_ANCHOR = 1


def _sort_of(message: Any) -> float:
    try:
        return float(message.sort)
    except (TypeError, ValueError):
        return 0.0


def _type_of(message: Any) -> Optional[MessageType]:
    try:
        return MessageType(message.node_type)
    except ValueError:
        return None


def _match_answer(log: Any, answers: Sequence[Any]) -> Optional[Any]:
    """
    Find the answer a completion log describes.

    Candidates share the log's agent id and lie within COMPLETION_LOG_WINDOW.
    An answer the log follows wins over one it precedes, then the nearest.
    """
    log_sort = _sort_of(log)
    candidates = [
        answer
        for answer in answers
        if answer.agent_id == log.agent_id
        and abs(log_sort - _sort_of(answer)) <= COMPLETION_LOG_WINDOW
    ]
    if not candidates:
        return None
    return min(
        candidates,
        key=lambda answer: (_sort_of(answer) >= log_sort, abs(log_sort - _sort_of(answer))),
    )


def _to_node(message: Any, message_type: MessageType, position: int) -> ConversationNode:
    agent = AgentRef(id=message.agent_id) if message.agent_id else None
    key = message.id if message.id is not None else position
    timestamp = message.created_at or _EPOCH
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)

    if message_type is MessageType.QUERY:
        return ConversationNode(
            id=f"input-{key}",
            kind=NodeKind.INPUT,
            content=message.content or "",
            agent=agent,
            timestamp=timestamp,
        )
    if message_type is MessageType.ANSWER:
        return ConversationNode(
            id=f"output-{key}",
            kind=NodeKind.OUTPUT,
            content=message.content or "",
            agent=agent,
            status=NodeStatus.COMPLETED,
            timestamp=timestamp,
        )
    return ConversationNode(
        id=f"marker-{key}",
        kind=NodeKind.MARKER,
        content="Processing completed",
        agent=agent,
        status=NodeStatus.COMPLETED,
        logs=(message.content or "",),
        timestamp=timestamp,
    )


def reconstruct_history(messages: Iterable[Any]) -> List[ConversationNode]:
    """
    Convert a persisted message list into the display sequence of nodes.

    Args:
        messages: Objects exposing id, node_type, content, sort, agent_id and
                  created_at (ConversationMessage rows), in any order.

    Returns:
        The node list. The last output node, if any, is the current input.
    """
    ordered = sorted(messages, key=_sort_of)
    answers = [m for m in ordered if _type_of(m) is MessageType.ANSWER]
    final_answer = answers[-1] if answers else None

    keyed: List[Tuple[float, int, float, Any, MessageType]] = []
    for message in ordered:
        message_type = _type_of(message)
        own_sort = _sort_of(message)

        if message_type is MessageType.QUERY:
            keyed.append((own_sort, _AT_ANCHOR, own_sort, message, message_type))
        elif message_type is MessageType.ANSWER:
            if message is final_answer:
                keyed.append((own_sort, _AT_ANCHOR, own_sort, message, message_type))
        elif message_type is MessageType.LOG and final_answer is not None:
            if not is_completion_log(message.content or ""):
                continue
            owner = _match_answer(message, answers)
            if owner is None:
                keyed.append((own_sort, _AT_ANCHOR, own_sort, message, message_type))
            elif owner is final_answer:
                keyed.append((_sort_of(owner), _BEFORE_ANCHOR, own_sort, message, message_type))

    keyed.sort(key=lambda entry: entry[:3])
    nodes = [
        _to_node(message, message_type, position)
        for position, (_, _, _, message, message_type) in enumerate(keyed)
    ]

    for index in range(len(nodes) - 1, -1, -1):
        if nodes[index].kind is NodeKind.OUTPUT:
            nodes[index] = nodes[index].made_current()
            break

    return nodes


def snapshot_messages(nodes: Iterable[ConversationNode]) -> List[dict]:
    """
    Serialize a live chain into query/answer messages, one sort per position.

    Markers and blank nodes are skipped; input and output nodes are stored with
    attached resources folded into the text.
    """
    messages: List[dict] = []
    for node in nodes:
        if node.kind is NodeKind.MARKER or not node.has_payload():
            continue
        node_type = MessageType.QUERY if node.kind is NodeKind.INPUT else MessageType.ANSWER
        messages.append({
            "node_type": node_type.value,
            "content": build_effective_input(node.content, node.resources),
            "sort": float(len(messages)),
            "agent_id": node.agent.id if node.agent else None,
        })
    return messages
