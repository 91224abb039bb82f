"""
Step ID Service

Generates opaque ids for new sequence steps and numbers the action steps
in the order a reader follows the sequence.
"""

import uuid
from typing import Dict, Sequence

from schemas.sequence import SequenceNode, NodeKind
from services.sequence_layout import preorder


def new_step_id() -> str:
    """
    Generate a new opaque step id.

    Ids are only ever compared for equality; nothing may parse them.
    """
    return f"step-{uuid.uuid4().hex[:12]}"


def number_steps(nodes: Sequence[SequenceNode]) -> Dict[str, int]:
    """
    Number action steps 1, 2, 3 ... following the flow (pre-order, main < yes < no).
    Condition nodes are decision points, not steps, and get no number.

    Args:
        nodes: All nodes of the sequence

    Returns:
        Dict[str, int]: Step number per action node id
    """
    numbers: Dict[str, int] = {}
    counter = 1
    for node, _level in preorder(nodes):
        if node.kind == NodeKind.CONDITION:
            continue
        numbers[node.id] = counter
        counter += 1
    return numbers
