"""Tests for history reconstruction and chain snapshots."""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from conftest import make_message
from services.history import reconstruct_history, snapshot_messages
from state import (
    AgentRef,
    ConversationNode,
    NodeKind,
    NodeStatus,
    ResourceRef,
    new_input_node,
    new_output_node,
)


def _two_round_log():
    return [
        make_message("query", "Analyze X", 0),
        make_message("log", "Starting Analyst...", 1),
        make_message("log", "Completed Analyst: 4 step(s)", 2),
        make_message("answer", "First answer", 3),
        make_message("query", "Refine it", 4),
        make_message("log", "Starting Analyst...", 5),
        make_message("log", "Completed Analyst: 4 step(s)", 6),
        make_message("answer", "Second answer", 7),
    ]


class TestReconstructHistory:
    def test_collapses_superseded_rounds(self):
        nodes = reconstruct_history(_two_round_log())

        assert [n.kind for n in nodes] == [
            NodeKind.INPUT,
            NodeKind.INPUT,
            NodeKind.MARKER,
            NodeKind.OUTPUT,
        ]
        assert [n.id for n in nodes] == ["input-m0", "input-m4", "marker-m6", "output-m7"]
        assert nodes[3].content == "Second answer"
        assert nodes[3].is_current_input and nodes[3].is_editable
        assert all(not n.is_current_input for n in nodes[:3])

    def test_input_order_does_not_matter(self):
        messages = _two_round_log()
        assert reconstruct_history(list(reversed(messages))) == reconstruct_history(messages)

    def test_reconstruction_is_idempotent(self):
        messages = _two_round_log()
        assert reconstruct_history(messages) == reconstruct_history(messages)

    def test_completion_log_moves_before_its_answer(self):
        # Live sessions persist the answer first, then the completion log
        messages = [
            make_message("query", "Q", 0),
            make_message("log", "Starting Analyst...", 1),
            make_message("answer", "A", 2),
            make_message("log", "Completed Analyst: done", 3),
        ]
        nodes = reconstruct_history(messages)

        assert [n.kind for n in nodes] == [NodeKind.INPUT, NodeKind.MARKER, NodeKind.OUTPUT]
        marker = nodes[1]
        assert marker.status is NodeStatus.COMPLETED
        assert marker.logs == ("Completed Analyst: done",)
        assert marker.agent == AgentRef(id="agent-a")

    def test_live_two_round_log(self):
        messages = [
            make_message("query", "Q1", 0),
            make_message("log", "Starting Analyst...", 1),
            make_message("answer", "A1", 2),
            make_message("log", "Completed Analyst: done", 3),
            make_message("query", "Q2", 4),
            make_message("log", "Starting Analyst...", 5),
            make_message("answer", "A2", 6),
            make_message("log", "Completed Analyst: done", 7),
        ]
        nodes = reconstruct_history(messages)

        assert [n.id for n in nodes] == ["input-m0", "input-m4", "marker-m7", "output-m6"]

    def test_retried_round(self):
        # query, start log, failure (nothing written), retry success
        messages = [
            make_message("query", "Analyze X", 0),
            make_message("log", "Starting Analyst...", 1),
            make_message("answer", "Retried answer", 2),
            make_message("log", "Completed Analyst: done", 3),
        ]
        nodes = reconstruct_history(messages)

        assert [n.kind for n in nodes] == [NodeKind.INPUT, NodeKind.MARKER, NodeKind.OUTPUT]
        assert not any(n.status is NodeStatus.ERROR for n in nodes)

    def test_without_answer_shows_queries_only(self):
        messages = [
            make_message("query", "Q", 0),
            make_message("log", "Starting Analyst...", 1),
            make_message("log", "Completed Analyst: done", 2),
        ]
        nodes = reconstruct_history(messages)

        assert [n.kind for n in nodes] == [NodeKind.INPUT]
        assert nodes[0].content == "Q"
        assert not nodes[0].is_current_input

    def test_unmatched_completion_log_keeps_its_position(self):
        messages = [
            make_message("query", "Q", 0),
            make_message("log", "Completed Other: done", 1, agent_id="agent-b"),
            make_message("query", "Q2", 5),
            make_message("answer", "A", 10),
        ]
        nodes = reconstruct_history(messages)

        assert [n.id for n in nodes] == ["input-m0", "marker-m1", "input-m5", "output-m10"]

    def test_log_matched_to_other_agent_is_not_attached(self):
        messages = [
            make_message("query", "Q", 0),
            make_message("answer", "A", 2, agent_id="agent-a"),
            make_message("log", "Completed B: done", 3, agent_id="agent-b"),
        ]
        nodes = reconstruct_history(messages)

        assert [n.id for n in nodes] == ["input-m0", "output-m2", "marker-m3"]
        # The last output is still current even when a marker follows it
        assert nodes[1].is_current_input

    def test_several_logs_for_one_answer_keep_their_order(self):
        messages = [
            make_message("query", "Q", 0),
            make_message("answer", "A", 2),
            make_message("log", "Completed Analyst: first", 3),
            make_message("log", "Completed Analyst: second", 4),
        ]
        nodes = reconstruct_history(messages)

        assert [n.id for n in nodes] == ["input-m0", "marker-m3", "marker-m4", "output-m2"]

    def test_empty_log(self):
        assert reconstruct_history([]) == []

    def test_unknown_message_types_are_ignored(self):
        messages = [
            make_message("query", "Q", 0),
            make_message("system", "???", 1),
            make_message("answer", "A", 2),
        ]
        nodes = reconstruct_history(messages)
        assert [n.kind for n in nodes] == [NodeKind.INPUT, NodeKind.OUTPUT]


class TestSnapshotMessages:
    def test_serializes_inputs_and_outputs_in_order(self):
        agent = AgentRef(id="agent-a", name="Analyst")
        nodes = [
            ConversationNode(kind=NodeKind.INPUT, content="Q"),
            ConversationNode(kind=NodeKind.MARKER, agent=agent, status=NodeStatus.COMPLETED),
            ConversationNode(
                kind=NodeKind.OUTPUT,
                content="A",
                agent=agent,
                is_current_input=True,
                is_editable=True,
            ),
        ]
        messages = snapshot_messages(nodes)

        assert messages == [
            {"node_type": "query", "content": "Q", "sort": 0.0, "agent_id": None},
            {"node_type": "answer", "content": "A", "sort": 1.0, "agent_id": "agent-a"},
        ]

    def test_blank_input_is_skipped(self):
        assert snapshot_messages([new_input_node()]) == []

    def test_resources_are_folded_into_query(self):
        node = ConversationNode(
            kind=NodeKind.INPUT,
            resources=(ResourceRef(id="r1", title="A", content="foo"),),
        )
        assert snapshot_messages([node])[0]["content"] == "[A]: foo"

    def test_resources_on_output_head_are_kept(self):
        agent = AgentRef(id="agent-a")
        head = new_output_node(agent, "A1").model_copy(update={
            "resources": (ResourceRef(id="r1", title="R", content="ref"),),
        })
        messages = snapshot_messages([head])
        assert messages[0]["node_type"] == "answer"
        assert messages[0]["content"] == "A1\n\nReference Resources:\n[R]: ref"
