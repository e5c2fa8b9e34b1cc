import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from loguru import logger
from pydantic import BaseModel, Field


class LifecycleEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    event_type: str
    operation: str
    payload: Dict[str, Any]


class EventBus:
    """A lightweight, synchronous event bus for lifecycle progress reporting."""

    def __init__(self):
        self._subscribers: List[Callable[[LifecycleEvent], None]] = []

    def subscribe(self, callback: Callable[[LifecycleEvent], None]) -> None:
        """Register a callback to be executed when an event is emitted."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[LifecycleEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def emit(self, event_type: str, operation: str, payload: Dict[str, Any]) -> LifecycleEvent:
        """Construct and broadcast a LifecycleEvent to all subscribers."""
        event = LifecycleEvent(
            event_type=event_type,
            operation=operation,
            payload=payload,
        )

        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                # A failing subscriber (like a bad file write) must not abort the operation
                logger.warning(f"[EVENTS] Subscriber failed on {event_type}: {e}")

        return event


# Global singleton instance for easy imports across the project
bus = EventBus()
