"""Canvas sink - where the run sends visual updates for work items."""

from collections import deque
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol, runtime_checkable


class NodeColor(StrEnum):
    """Canvas color codes used for call nodes."""

    WAITING = "0"
    EXECUTING = "3"
    DONE = "4"


@runtime_checkable
class Canvas(Protocol):
    """Fire-and-forget visual updates keyed by object id."""

    def enqueue_change_node_color(self, node_id: str, color: str) -> None: ...

    def enqueue_change_node_text(self, node_id: str, text: str) -> None: ...

    def enqueue_add_error_node(self, node_id: str, message: str) -> None: ...

    def enqueue_add_warning_node(self, node_id: str, message: str) -> None: ...

    def enqueue_remove_all_error_nodes(self) -> None: ...


@dataclass
class CanvasOperation:
    action: str
    node_id: str | None = None
    value: str | None = None


@dataclass
class CanvasQueue:
    """
    A Canvas that queues operations for a UI layer to apply later.

    Operations are kept in enqueue order; ``drain()`` hands them over and
    empties the queue.
    """

    operations: deque[CanvasOperation] = field(default_factory=deque)

    def enqueue_change_node_color(self, node_id: str, color: str) -> None:
        self.operations.append(CanvasOperation("color", node_id, str(color)))

    def enqueue_change_node_text(self, node_id: str, text: str) -> None:
        self.operations.append(CanvasOperation("text", node_id, text))

    def enqueue_add_error_node(self, node_id: str, message: str) -> None:
        self.operations.append(CanvasOperation("error", node_id, message))

    def enqueue_add_warning_node(self, node_id: str, message: str) -> None:
        self.operations.append(CanvasOperation("warning", node_id, message))

    def enqueue_remove_all_error_nodes(self) -> None:
        self.operations.append(CanvasOperation("remove_errors"))

    def drain(self) -> list[CanvasOperation]:
        drained = list(self.operations)
        self.operations.clear()
        return drained
