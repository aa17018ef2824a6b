"""In-process publish/subscribe for pipeline events."""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field, fields

from gallevr_sync.domain.events import PipelineEvent

_logger = logging.getLogger(__name__)


@dataclass
class EventBus:
    """Fans every published event out to each subscriber's queue."""

    history_limit: int = 100
    _subscribers: list["asyncio.Queue[PipelineEvent]"] = field(
        default_factory=list, init=False
    )
    _history: deque[PipelineEvent] = field(init=False)

    def __post_init__(self) -> None:
        self._history = deque(maxlen=self.history_limit)

    def subscribe(self, maxsize: int = 0) -> "asyncio.Queue[PipelineEvent]":
        queue: asyncio.Queue[PipelineEvent] = asyncio.Queue(maxsize=maxsize)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: "asyncio.Queue[PipelineEvent]") -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, event: PipelineEvent) -> None:
        """Deliver without blocking; a full subscriber queue drops the event."""
        self._history.append(event)
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                _logger.warning("Subscriber queue full, dropping %s", event)

    def recent(self, limit: int = 50) -> list[PipelineEvent]:
        return list(self._history)[-limit:]


def describe_event(event: PipelineEvent) -> dict[str, object]:
    """Return a JSON-friendly view of an event."""
    summary: dict[str, object] = {"type": type(event).__name__}
    for item in fields(event):
        value = getattr(event, item.name)
        if item.name == "metadata":
            world = value.world
            summary["world"] = world.name if world else None
            summary["players"] = [player.name for player in value.players]
        elif value is None or isinstance(value, int | str):
            summary[item.name] = value
        else:
            summary[item.name] = str(value)
    return summary
