from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Event:
    """One status/change notification from a monitor or scheduler."""

    kind: str
    source: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        payload = {}
        for key, value in self.data.items():
            payload[key] = value.to_dict() if hasattr(value, "to_dict") else value
        return {
            "kind": self.kind,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
            "data": payload,
        }


Listener = Callable[[Event], None]


class EventChannel:
    """Fan-out of events to asyncio queues and plain listeners.

    Events are delivered in publish order. A listener that raises is logged
    and does not prevent delivery to the others.
    """

    def __init__(self, source: str = "") -> None:
        self.source = source
        self._queues: List[asyncio.Queue] = []
        self._listeners: List[Listener] = []

    def subscribe(self, maxsize: int = 0) -> "asyncio.Queue[Event]":
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._queues.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(self, kind: str, **data: Any) -> Event:
        event = Event(kind=kind, source=data.pop("source", self.source), data=data)
        for queue in list(self._queues):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Dropping %s event for a full subscriber queue", kind)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed for %s", kind)
        return event
