"""
Shared fixtures for the campaign sequence engine tests.

The "scenario" sequence used throughout:

    root (email, "Hi {{first_name}}")
      └─ opened (email-opened)
           ├─ yes: call (manual-task, "Call {{name}}")
           └─ no:  follow (email, "Follow up")
"""

import pytest

from schemas.sequence import Branch, NodeKind, ParentRef
from services.sequence_graph import SequenceGraph


@pytest.fixture
def scenario_graph() -> SequenceGraph:
    graph = SequenceGraph()

    graph.add_node(NodeKind.ACTION, "email", node_id="root")
    graph.update_content("root", {"subject": "Hi {{first_name}}"})

    graph.add_node(NodeKind.CONDITION, "email-opened", ParentRef(id="root"), node_id="opened")

    graph.add_node(NodeKind.ACTION, "manual-task", ParentRef(id="opened", branch=Branch.YES), node_id="call")
    graph.update_content("call", {"taskTitle": "Call {{name}}"})

    graph.add_node(NodeKind.ACTION, "email", ParentRef(id="opened", branch=Branch.NO), node_id="follow")
    graph.update_content("follow", {"subject": "Follow up"})

    return graph


@pytest.fixture
def scenario_steps():
    """The scenario in stored (flat) form, without positions."""
    return [
        {"id": "root", "stepType": "email",
         "content": {"subject": "Hi {{first_name}}", "message": "", "delay": 0, "delayUnit": "days"}},
        {"id": "opened", "stepType": "email-opened", "parentId": "root", "parentBranch": "main",
         "content": {"delay": 1, "delayUnit": "days"}},
        {"id": "call", "stepType": "manual-task", "parentId": "opened", "parentBranch": "yes",
         "content": {"taskTitle": "Call {{name}}", "priority": "high", "delay": 1, "delayUnit": "days"}},
        {"id": "follow", "stepType": "email", "parentId": "opened", "parentBranch": "no",
         "content": {"subject": "Follow up", "delay": 2, "delayUnit": "days"}},
    ]
