"""
Status channel - per-object publish/subscribe of status transitions.

Every work item owns one channel. The run is its only external subscriber.
Delivery is synchronous: ``emit()`` returns after every handler has run, so
events of one object are processed in emission order and one event is
handled start to finish before the next. Handler exceptions propagate to
the emitter; the run relies on this to unwind a fatal error.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class ObjectStatus(StrEnum):
    """Lifecycle of a work item. WARNING is an annotation, not a state change."""

    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETE = "complete"
    REJECTED = "rejected"
    ERROR = "error"
    WARNING = "warning"

    def is_finished(self) -> bool:
        """Finished for run termination purposes (ERROR stops the run instead)."""
        return self in (ObjectStatus.COMPLETE, ObjectStatus.REJECTED)


@dataclass
class StatusEvent:
    """A status transition emitted by a work item."""

    object_id: str
    status: ObjectStatus
    message: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "object_id": self.object_id,
            "status": self.status.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


StatusHandler = Callable[[StatusEvent], None]


class StatusChannel:
    """
    Synchronous pub/sub channel for one object's status events.

    Example:
        channel = StatusChannel("node-1")
        sub_id = channel.subscribe(lambda event: print(event.status))
        channel.emit(ObjectStatus.EXECUTING)
        channel.unsubscribe(sub_id)
    """

    def __init__(self, object_id: str):
        self.object_id = object_id
        self._subscriptions: dict[str, StatusHandler] = {}
        self._subscription_counter = 0

    def subscribe(self, handler: StatusHandler) -> str:
        """Register a handler. Returns the subscription id for ``unsubscribe``."""
        self._subscription_counter += 1
        sub_id = f"sub_{self._subscription_counter}"
        self._subscriptions[sub_id] = handler
        logger.debug(f"Subscription {sub_id} registered on {self.object_id}")
        return sub_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove a handler. Returns True if it was registered."""
        if subscription_id in self._subscriptions:
            del self._subscriptions[subscription_id]
            return True
        return False

    def clear(self) -> None:
        self._subscriptions.clear()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def emit(self, status: ObjectStatus, message: str | None = None) -> StatusEvent:
        """Deliver a status event to every handler, in subscription order."""
        event = StatusEvent(object_id=self.object_id, status=status, message=message)
        # Copy so a handler may unsubscribe while we iterate
        for handler in list(self._subscriptions.values()):
            handler(event)
        return event
