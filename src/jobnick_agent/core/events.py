"""Status event channel between the agent and its observers."""

import asyncio
from collections import deque
from typing import Deque, List, Optional

from jobnick_agent.core.models import Severity, StatusEvent
from jobnick_agent.utils.logging import get_logger

logger = get_logger(__name__)


class StatusChannel:
    """
    Fire-and-forget status stream.

    Publishers never block: each subscriber owns a bounded queue and, when it
    is full, the oldest queued event is dropped to make room. A ring buffer of
    recent events is kept for observers that poll instead of subscribing.
    """

    def __init__(self, buffer_size: int = 200, subscriber_queue_size: int = 100):
        self.buffer_size = buffer_size
        self.subscriber_queue_size = subscriber_queue_size
        self._recent: Deque[StatusEvent] = deque(maxlen=buffer_size)
        self._subscribers: List[asyncio.Queue] = []
        self.dropped_count = 0
        self.logger = logger.bind(component="status_channel")

    def publish(self, message: str, severity: Severity = Severity.INFO) -> StatusEvent:
        """Record an event and fan it out to subscribers."""
        event = StatusEvent(message=message, severity=severity)
        self._recent.append(event)
        self._log(event)

        for queue in list(self._subscribers):
            try:
                if queue.full():
                    queue.get_nowait()
                    self.dropped_count += 1
                queue.put_nowait(event)
            except (asyncio.QueueEmpty, asyncio.QueueFull):
                self.dropped_count += 1
        return event

    def info(self, message: str) -> StatusEvent:
        return self.publish(message, Severity.INFO)

    def success(self, message: str) -> StatusEvent:
        return self.publish(message, Severity.SUCCESS)

    def warning(self, message: str) -> StatusEvent:
        return self.publish(message, Severity.WARNING)

    def error(self, message: str) -> StatusEvent:
        return self.publish(message, Severity.ERROR)

    def subscribe(self, maxsize: Optional[int] = None) -> asyncio.Queue:
        """Register a new observer queue."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize or self.subscriber_queue_size)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def recent(self, limit: Optional[int] = None) -> List[StatusEvent]:
        events = list(self._recent)
        if limit is not None:
            events = events[-limit:]
        return events

    @property
    def last_event(self) -> Optional[StatusEvent]:
        return self._recent[-1] if self._recent else None

    def _log(self, event: StatusEvent) -> None:
        if event.severity == Severity.ERROR:
            self.logger.error("Status", message=event.message)
        elif event.severity == Severity.WARNING:
            self.logger.warning("Status", message=event.message)
        else:
            self.logger.info("Status", message=event.message, severity=event.severity.value)
