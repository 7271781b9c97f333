"""
Behavior Events

Typed events emitted while a trigger travels from detection to delivery,
plus a small synchronous emitter that isolates listeners from each other.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("emcee.common.events")


class BehaviorEventType(str, enum.Enum):
    """Every significant step of the behavior processor."""
    TRIGGER_DETECTED = "trigger-detected"
    TRIGGER_IGNORED = "trigger-ignored"
    RESPONSE_GENERATED = "response-generated"
    RESPONSE_QUEUED = "response-queued"
    RESPONSE_APPROVED = "response-approved"
    RESPONSE_REJECTED = "response-rejected"
    RESPONSE_DISMISSED = "response-dismissed"
    RESPONSE_SENDING = "response-sending"
    RESPONSE_SENT = "response-sent"
    RESPONSE_FAILED = "response-failed"
    HAND_RAISED = "hand-raised"
    HAND_LOWERED = "hand-lowered"


@dataclass
class BehaviorEvent:
    """A single event. ``data`` carries the type-specific payload."""
    type: BehaviorEventType
    pending_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "pending_id": self.pending_id,
            "timestamp": self.timestamp.isoformat(),
            **self.data,
        }


EventListener = Callable[[BehaviorEvent], None]


class EventEmitter:
    """Synchronous fan-out of BehaviorEvents.

    Usage
    -----
    >>> emitter = EventEmitter()
    >>> unsubscribe = emitter.add_listener(print)
    >>> emitter.emit(BehaviorEvent(BehaviorEventType.RESPONSE_SENT, pending_id="pr-1"))
    >>> unsubscribe()
    """

    def __init__(self) -> None:
        self._listeners: List[EventListener] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add_listener(self, listener: EventListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass  # already removed

        return _remove

    def emit(self, event: BehaviorEvent) -> None:
        """Deliver *event* to every listener.

        A listener that raises is logged and skipped; the remaining
        listeners still receive the event.
        """
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Error in behavior event listener for %s", event.type.value)

    def clear(self) -> None:
        self._listeners.clear()
