"""
Change notification for the task filesystem.

TaskVFS publishes a FileEvent after every successful write, read, delete and
mkdir; watch subscriptions publish ``file:change`` events for native
filesystem notifications. Listeners register per event type (or ``*`` for
all) on the ChangeNotifier owned by each TaskVFS instance.
"""

import asyncio
import inspect
import logging
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Union

from .utils import utc_now

logger = logging.getLogger(__name__)

FILE_WRITE = "file:write"
FILE_READ = "file:read"
FILE_DELETE = "file:delete"
FILE_MKDIR = "file:mkdir"
FILE_CHANGE = "file:change"
ALL_EVENTS = "*"

Listener = Callable[["FileEvent"], Union[None, Awaitable[None]]]


@dataclass
class FileEvent:
    """A single filesystem effect reported to listeners."""
    event_type: str  # One of the FILE_* constants
    path: str  # Logical path
    scope: str
    full_path: Optional[str] = None
    size: Optional[int] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()), kw_only=True)
    timestamp: str = field(default_factory=utc_now, kw_only=True)
    metadata: Dict[str, Any] = field(default_factory=dict, kw_only=True)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "type": self.event_type,
            "path": self.path,
            "scope": self.scope,
            "fullPath": self.full_path,
            "timestamp": self.timestamp,
        }
        if self.size is not None:
            result["size"] = self.size
        if self.metadata:
            result.update(self.metadata)
        return result


class ChangeNotifier:
    """
    Per-filesystem event channel.

    Keeps a bounded history of recent events and drops listeners that keep
    failing.
    """

    def __init__(self, history_size: int = 100):
        self.events: Deque[FileEvent] = deque(maxlen=history_size)
        self.listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._listener_errors: Dict[str, int] = defaultdict(int)
        self._max_listener_errors = 5

    def subscribe(self, event_type: str, listener: Listener) -> None:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: One of the FILE_* constants, or ``*`` for every event
            listener: Sync or async callable receiving the FileEvent
        """
        if listener not in self.listeners[event_type]:
            self.listeners[event_type].append(listener)
            logger.debug(f"Subscribed listener to {event_type}")

    def unsubscribe(self, event_type: str, listener: Listener) -> None:
        if listener in self.listeners.get(event_type, []):
            self.listeners[event_type].remove(listener)
            logger.debug(f"Unsubscribed listener from {event_type}")

    def clear_listeners(self, event_type: Optional[str] = None) -> None:
        if event_type:
            self.listeners.pop(event_type, None)
        else:
            self.listeners.clear()
            self._listener_errors.clear()

    def get_listener_count(self, event_type: Optional[str] = None) -> int:
        if event_type:
            return len(self.listeners.get(event_type, []))
        return sum(len(listeners) for listeners in self.listeners.values())

    def get_event_count(self, event_type: Optional[str] = None) -> int:
        if event_type:
            return sum(1 for e in self.events if e.event_type == event_type)
        return len(self.events)

    def _targets(self, event: FileEvent) -> List[Listener]:
        return list(self.listeners.get(event.event_type, [])) + list(self.listeners.get(ALL_EVENTS, []))

    def _record_failure(self, event: FileEvent, listener: Listener, error: Exception) -> None:
        listener_id = f"{event.event_type}:{id(listener)}"
        self._listener_errors[listener_id] += 1
        logger.error(f"Error in file event listener for {event.event_type}: {error}")

        if self._listener_errors[listener_id] >= self._max_listener_errors:
            logger.warning(
                f"Removing failing listener after {self._max_listener_errors} errors"
            )
            for key in (event.event_type, ALL_EVENTS):
                if listener in self.listeners.get(key, []):
                    self.listeners[key].remove(listener)

    async def publish(self, event: FileEvent) -> None:
        """
        Deliver an event to every matching listener.

        Listener failures are logged and never propagate to the publisher.
        """
        self.events.append(event)
        for listener in self._targets(event):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self._record_failure(event, listener, e)

    def publish_sync(self, event: FileEvent) -> None:
        """Deliver an event from a thread that has no running event loop."""
        self.events.append(event)
        for listener in self._targets(event):
            try:
                result = listener(event)
                if inspect.iscoroutine(result):
                    asyncio.run(result)
            except Exception as e:
                self._record_failure(event, listener, e)
