"""
React Flow Translator

Converts a SequenceGraph to the React Flow JSON the sequence editor renders.
Positions come from the graph (or a fresh layout); styling and labels are
decided here deterministically.
"""

from typing import Dict, Any, Optional

from schemas.sequence import SequenceNode, NodeKind, ActionType, Branch, Position
from services.sequence_graph import SequenceGraph
from services.sequence_layout import layout_positions
from services.step_id import number_steps


class ReactFlowTranslator:
    """
    Deterministic translator from SequenceGraph to React Flow format.
    Handles styling, edge labels and branch handles.
    """

    def __init__(self):
        # Node styling per action type; conditions share one style
        self.action_styles = {
            ActionType.EMAIL: {
                "width": 240,
                "height": 90,
                "borderRadius": "8px",
                "border": "2px solid #2563eb",
                "background": "#ffffff",
                "color": "#333"
            },
            ActionType.LINKEDIN_MESSAGE: {
                "width": 240,
                "height": 90,
                "borderRadius": "8px",
                "border": "2px solid #0a66c2",
                "background": "#ffffff",
                "color": "#333"
            },
            ActionType.LINKEDIN_INVITATION: {
                "width": 240,
                "height": 90,
                "borderRadius": "8px",
                "border": "2px solid #0a66c2",
                "background": "#f3f8fd",
                "color": "#333"
            },
            ActionType.LINKEDIN_VISIT: {
                "width": 240,
                "height": 70,
                "borderRadius": "8px",
                "border": "2px dashed #0a66c2",
                "background": "#ffffff",
                "color": "#333"
            },
            ActionType.MANUAL_TASK: {
                "width": 240,
                "height": 90,
                "borderRadius": "8px",
                "border": "2px solid #f59e0b",
                "background": "#ffffff",
                "color": "#333"
            },
        }
        self.condition_style = {
            "width": 200,
            "height": 80,
            "borderRadius": "40px",
            "border": "2px solid #7c3aed",
            "background": "#faf5ff",
            "color": "#333"
        }
        self.unknown_style = {
            "width": 240,
            "height": 70,
            "borderRadius": "8px",
            "border": "2px dashed #dc3545",
            "background": "#ffffff",
            "color": "#333"
        }

        self.branch_colors = {
            Branch.MAIN: "#6b7280",
            Branch.YES: "#16a34a",
            Branch.NO: "#dc2626",
        }

        self.marker_end = {
            "type": "ArrowClosed",
            "width": 20,
            "height": 20
        }

    def translate(self, graph: SequenceGraph, relayout: bool = False) -> Dict[str, Any]:
        """
        Convert SequenceGraph to React Flow format.

        Args:
            graph: Sequence to render
            relayout: Use freshly computed layout positions instead of the
                stored ones (the graph itself is not changed)

        Returns:
            Dict containing nodes and edges in React Flow format
        """
        positions: Optional[Dict[str, Position]] = layout_positions(graph.nodes) if relayout else None
        numbers = number_steps(graph.nodes)

        react_nodes = []
        for node in graph.nodes:
            position = positions[node.id] if positions else node.position
            react_nodes.append(self._convert_node(node, position, numbers.get(node.id)))

        react_edges = []
        for node in graph.nodes:
            if node.parent_id is not None and node.parent_id in graph:
                react_edges.append(self._convert_edge(node))

        return {
            "nodes": react_nodes,
            "edges": react_edges,
            "metadata": {
                "step_count": len(numbers),
                "condition_count": len(graph) - len(numbers),
                "roots": graph.roots(),
                "relayout": relayout
            }
        }

    def _convert_node(self, node: SequenceNode, position: Position, step_number: Optional[int]) -> Dict[str, Any]:
        """Convert SequenceNode to React Flow node format"""
        return {
            "id": node.id,
            "type": self._get_react_flow_type(node),
            "position": {"x": position.x, "y": position.y},
            "data": {
                "label": self._label(node, step_number),
                "stepType": node.step_type,
                "kind": node.kind.value,
                "stepNumber": step_number,
                "content": node.content.model_dump(mode="json", by_alias=True, exclude_none=True),
                "variables": list(node.content.variables)
            },
            "style": self._get_style(node).copy()
        }

    def _convert_edge(self, node: SequenceNode) -> Dict[str, Any]:
        """Convert the parent pointer of a node to a React Flow edge"""
        branch = node.parent_branch or Branch.MAIN
        react_edge = {
            "id": f"{node.parent_id}-{branch.value}-{node.id}",
            "source": node.parent_id,
            "target": node.id,
            "sourceHandle": branch.value,
            "type": "smoothstep",
            "style": {"strokeWidth": 2, "stroke": self.branch_colors[branch]},
            "markerEnd": self.marker_end.copy()
        }

        # Only condition branches are labelled
        if branch != Branch.MAIN:
            react_edge["label"] = "Yes" if branch == Branch.YES else "No"
            react_edge["labelStyle"] = {
                "fontSize": 12,
                "fontWeight": "bold",
                "fill": self.branch_colors[branch]
            }
            react_edge["labelBgStyle"] = {
                "fill": "#fff",
                "fillOpacity": 0.8,
                "rx": 4,
                "ry": 4
            }

        return react_edge

    def _get_react_flow_type(self, node: SequenceNode) -> str:
        """Map a step to the editor's React Flow component type"""
        if node.kind == NodeKind.CONDITION:
            return "condition"
        if node.action_type is None:
            return "unknown"
        return "action"

    def _get_style(self, node: SequenceNode) -> Dict[str, Any]:
        if node.kind == NodeKind.CONDITION:
            return self.condition_style
        if node.action_type is None:
            return self.unknown_style
        return self.action_styles[node.action_type]

    def _label(self, node: SequenceNode, step_number: Optional[int]) -> str:
        title = node.step_type.replace("-", " ").capitalize()
        if node.kind == NodeKind.CONDITION:
            return f"{title}?"
        if step_number is None:
            return title
        return f"{step_number}. {title}"
