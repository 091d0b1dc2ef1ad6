"""
Work items - the objects a run schedules.

A work item reports its dependencies, executes once, and emits status
transitions on its own ``StatusChannel``. The run decides *when* an item
executes; the item decides *what* executing means by overriding
``process()``.

Capabilities the run checks instead of concrete types:
- ``is_vertex``: carries user-visible error/warning annotations
- ``is_call_node``: recolored on the canvas while it waits/executes/finishes
- ``renders_text``: its ``text`` is written back to the canvas on completion
- ``members``: a container; see the DAG validator's exemption
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cannoli.graph.status import ObjectStatus, StatusChannel, StatusHandler

if TYPE_CHECKING:
    from cannoli.runtime.run import Run

logger = logging.getLogger(__name__)


class CannoliObject:
    """Base work item. Subclasses override ``process()``."""

    kind = "object"
    is_vertex = False
    is_call_node = False
    renders_text = False

    def __init__(self, id: str, dependencies: list[str] | None = None):
        self.id = id
        self.dependencies: list[str] = list(dependencies or [])
        self.status = ObjectStatus.PENDING
        self.run: Run | None = None
        self._channel = StatusChannel(id)

    # === WIRING ===

    def set_run(self, run: Run) -> None:
        self.run = run

    def on_update(self, handler: StatusHandler) -> str:
        """Subscribe to this object's status events."""
        return self._channel.subscribe(handler)

    def off_update(self, subscription_id: str) -> bool:
        return self._channel.unsubscribe(subscription_id)

    def get_all_dependencies(self) -> list[str]:
        """Dependencies used for cycle detection. Includes structural ones."""
        return list(self.dependencies)

    def execution_dependencies(self) -> list[str]:
        """
        Dependencies that gate execution. A container never waits on its own
        members, which may in turn depend on the container.
        """
        members = set(getattr(self, "members", None) or ())
        return [d for d in self.dependencies if d not in members]

    def dependency_objects(self) -> list[CannoliObject]:
        if self.run is None:
            return []
        return [self.run.graph[d] for d in self.dependencies if d in self.run.graph]

    # === LIFECYCLE ===

    def reset(self) -> None:
        self._set_status(ObjectStatus.PENDING)

    def validate(self) -> None:
        """Check the object's own structure. Vertices report problems via ``error()``."""

    async def execute(self) -> None:
        self.executing()
        await self.process()
        # process() may already have rejected or failed the object
        if self.status is ObjectStatus.EXECUTING:
            self.complete()

    async def process(self) -> None:
        """The object's work. Default: nothing."""

    # === STATUS TRANSITIONS ===

    def executing(self) -> None:
        self._set_status(ObjectStatus.EXECUTING)

    def complete(self) -> None:
        self._set_status(ObjectStatus.COMPLETE)

    def reject(self) -> None:
        self._set_status(ObjectStatus.REJECTED)

    def _set_status(self, status: ObjectStatus, message: str | None = None) -> None:
        if status is not ObjectStatus.WARNING:
            self.status = status
        self._channel.emit(status, message)

    def log_details(self) -> str:
        deps = ", ".join(self.dependencies) or "-"
        return f"[{self.kind}] {self.id} status={self.status.value} deps=({deps})"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"


class CannoliVertex(CannoliObject):
    """A node-like object with text and error/warning annotations."""

    kind = "vertex"
    is_vertex = True

    def __init__(self, id: str, text: str = "", dependencies: list[str] | None = None):
        super().__init__(id, dependencies)
        self.text = text

    @property
    def output(self) -> str:
        """What outgoing edges carry once this vertex completes."""
        return self.text

    def incoming_edges(self) -> list[CannoliEdge]:
        return [
            obj
            for obj in self.dependency_objects()
            if isinstance(obj, CannoliEdge) and obj.target == self.id
        ]

    def incoming_content(self) -> list[str]:
        """Content delivered by completed incoming edges, in dependency order."""
        return [
            edge.content
            for edge in self.incoming_edges()
            if edge.status is ObjectStatus.COMPLETE and edge.content is not None
        ]

    def error(self, message: str) -> None:
        """Fail this vertex. A subscribed run turns this into a fatal run error."""
        self._set_status(ObjectStatus.ERROR, message)

    def warning(self, message: str) -> None:
        """Annotate this vertex without changing its status."""
        self._set_status(ObjectStatus.WARNING, message)


class CannoliEdge(CannoliObject):
    """
    Carries a vertex's output to another vertex.

    A labelled edge leaving a vertex that made a choice only delivers when
    its label matches the choice; otherwise it rejects, and the rejection
    propagates to everything downstream.
    """

    kind = "edge"

    def __init__(self, id: str, source: str, target: str, label: str | None = None):
        super().__init__(id, [source])
        self.source = source
        self.target = target
        self.label = label
        self.content: str | None = None

    def reset(self) -> None:
        self.content = None
        super().reset()

    async def process(self) -> None:
        source = self.run.graph[self.source] if self.run else None
        if source is None:
            return

        choice = getattr(source, "choice", None)
        if self.label is not None and choice is not None and self.label != choice:
            self.reject()
            return

        self.content = getattr(source, "output", None)

    def log_details(self) -> str:
        label = f" [{self.label}]" if self.label else ""
        return f"[edge] {self.id}: {self.source} -> {self.target}{label} status={self.status.value}"


class CannoliGroup(CannoliVertex):
    """
    A container. Members normally list the group among their dependencies,
    and the group lists its members as structural dependencies, so the two
    refer to each other without forming a cycle.
    """

    kind = "group"

    def __init__(
        self,
        id: str,
        members: list[str] | None = None,
        text: str = "",
        dependencies: list[str] | None = None,
    ):
        super().__init__(id, text, dependencies)
        self.members: list[str] = list(members or [])

    def get_all_dependencies(self) -> list[str]:
        return self.dependencies + [m for m in self.members if m not in self.dependencies]

    def validate(self) -> None:
        if self.run is None:
            return
        missing = [m for m in self.members if m not in self.run.graph]
        if missing:
            self.error(f"Group {self.id} references unknown members: {', '.join(missing)}")

    def log_details(self) -> str:
        return f"{super().log_details()} members=({', '.join(self.members) or '-'})"
