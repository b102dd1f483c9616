import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Set
from visualrag.config.settings import settings
from visualrag.models.task import TERMINAL_STAGES, ProgressEvent

logger = logging.getLogger(__name__)

class ProgressPublisher(ABC):
    @abstractmethod
    def publish(self, event: ProgressEvent) -> None:
        """Delivers an event best-effort. Must never block or raise into the caller."""
        pass

class NullProgressPublisher(ProgressPublisher):
    def publish(self, event: ProgressEvent) -> None:
        pass

class ProgressBroker(ProgressPublisher):
    """
    In-process fan-out of progress events to per-task subscribers.
    - Each subscriber owns a bounded asyncio.Queue; when it is full the event
      is dropped for that subscriber only.
    - Terminal events are always delivered; the oldest queued event makes room.
    - The latest event per task is kept so late subscribers start from the
      current state.
    """

    def __init__(self, queue_size: Optional[int] = None):
        self.queue_size = queue_size or settings.server.progress_queue_size
        self._subscribers: Dict[str, Set[asyncio.Queue]] = {}
        self._latest: Dict[str, ProgressEvent] = {}

    def publish(self, event: ProgressEvent) -> None:
        self._latest[event.task_id] = event
        terminal = event.stage in TERMINAL_STAGES
        for queue in list(self._subscribers.get(event.task_id, ())):
            if queue.full() and terminal:
                # Evict the oldest so the terminal event fits
                queue.get_nowait()
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.debug(f"[{event.task_id}] Dropping progress event for a slow subscriber")

    def subscribe(self, task_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.setdefault(task_id, set()).add(queue)
        latest = self._latest.get(task_id)
        if latest is not None:
            queue.put_nowait(latest)
        return queue

    def unsubscribe(self, task_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(task_id)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[task_id]

    def latest(self, task_id: str) -> Optional[ProgressEvent]:
        return self._latest.get(task_id)
