"""Graph structures: work items, status events, and structural validation."""

from cannoli.graph.nodes import CallNode, ContentNode, DisplayNode, FloatingNode, ReferenceNode
from cannoli.graph.objects import CannoliEdge, CannoliGroup, CannoliObject, CannoliVertex
from cannoli.graph.status import ObjectStatus, StatusChannel, StatusEvent
from cannoli.graph.validator import find_cycle, is_dag

__all__ = [
    "CallNode",
    "CannoliEdge",
    "CannoliGroup",
    "CannoliObject",
    "CannoliVertex",
    "ContentNode",
    "DisplayNode",
    "FloatingNode",
    "ObjectStatus",
    "ReferenceNode",
    "StatusChannel",
    "StatusEvent",
    "find_cycle",
    "is_dag",
]
