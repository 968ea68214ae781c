"""
Watch subscriptions backed by watchdog.

A WatchSubscription owns one watchdog observer bound to one resolved path.
Directory targets are watched directly; file targets are watched through
their parent directory with events filtered down to the file. Watching is
never recursive.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import threading
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Set

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..events import FILE_CHANGE, ChangeNotifier, FileEvent
from ..utils import utc_now

logger = logging.getLogger(__name__)

WatchCallback = Callable[[Dict[str, Any]], Any]


class _SubscriptionHandler(FileSystemEventHandler):
    """Forwards every watchdog event to its subscription."""

    def __init__(self, subscription: "WatchSubscription"):
        super().__init__()
        self._subscription = subscription

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._subscription._handle(event)


class WatchSubscription:
    """
    Live handle on a watched path.

    The only terminal state is closed; ``close()`` is idempotent and is the
    only way to release the observer thread.

    Example:
        >>> sub = await vfs.watch("inbox", "task", on_event=print)
        >>> ...
        >>> sub.close()
    """

    def __init__(
        self,
        target: Path,
        logical_path: str,
        scope: str,
        callback: WatchCallback,
        event_types: Iterable[str],
        notifier: Optional[ChangeNotifier] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        """
        Args:
            target: Resolved host path being watched
            logical_path: Caller's logical path, echoed in every event
            scope: Scope of the watched path
            callback: Sync or async callable receiving event dictionaries
            event_types: watchdog event kinds to forward
            notifier: Optional notifier that also receives ``file:change`` events
            loop: Event loop to deliver callbacks on (None delivers on the watcher thread)
        """
        self.target = target
        self.logical_path = logical_path
        self.scope = scope
        self.event_types = set(event_types)
        self.events_delivered = 0
        self._callback = callback
        self._notifier = notifier
        self._loop = loop
        self._closed = False
        self._lock = threading.Lock()
        self._tasks: Set[asyncio.Future] = set()

        if target.is_dir():
            self._watch_dir = target
            self._file_filter: Optional[Path] = None
        else:
            self._watch_dir = target.parent
            self._file_filter = target

        self._observer = Observer()
        self._observer.schedule(_SubscriptionHandler(self), str(self._watch_dir), recursive=False)

    def start(self) -> "WatchSubscription":
        self._observer.start()
        logger.debug(f"Watching {self.scope}:{self.logical_path} ({self._watch_dir})")
        return self

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop watching and release the observer. Safe to call repeatedly."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        self._observer.stop()
        if self._observer.is_alive() and threading.current_thread() is not self._observer:
            self._observer.join(timeout=5)
        logger.debug(f"Closed watch on {self.scope}:{self.logical_path}")

    def __enter__(self) -> "WatchSubscription":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _matches(self, event: FileSystemEvent) -> bool:
        if event.event_type not in self.event_types:
            return False
        if self._file_filter is None:
            return True
        candidates = [event.src_path, getattr(event, "dest_path", "")]
        return any(c and Path(os.fsdecode(c)) == self._file_filter for c in candidates)

    def _handle(self, event: FileSystemEvent) -> None:
        if self._closed or not self._matches(event):
            return

        payload = {
            "event": event.event_type,
            "filename": Path(os.fsdecode(event.src_path)).name,
            "path": self.logical_path,
            "scope": self.scope,
            "timestamp": utc_now(),
        }

        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._deliver, payload)
        else:
            self._deliver_sync(payload)

    def _change_event(self, payload: Dict[str, Any]) -> FileEvent:
        return FileEvent(
            FILE_CHANGE,
            self.logical_path,
            self.scope,
            full_path=str(self.target),
            metadata={"event": payload["event"], "filename": payload["filename"]},
        )

    @property
    def pending_tasks(self) -> int:
        """Scheduled coroutine deliveries that have not finished yet."""
        return len(self._tasks)

    def _track(self, awaitable: Awaitable[Any], label: str) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)

        def _finished(done: asyncio.Future) -> None:
            self._tasks.discard(done)
            if done.cancelled():
                return
            error = done.exception()
            if error is not None:
                logger.error(f"{label} failed for {self.scope}:{self.logical_path}: {error}")

        task.add_done_callback(_finished)

    def _deliver(self, payload: Dict[str, Any]) -> None:
        """Runs on the subscriber's event loop."""
        if self._closed:
            return
        self.events_delivered += 1
        try:
            result = self._callback(payload)
            if inspect.isawaitable(result):
                self._track(result, "Watch callback")
        except Exception as e:
            logger.error(f"Watch callback failed for {self.scope}:{self.logical_path}: {e}")

        if self._notifier is not None:
            self._track(self._notifier.publish(self._change_event(payload)), "Change event publish")

    def _deliver_sync(self, payload: Dict[str, Any]) -> None:
        """Runs on the watchdog thread when no event loop was captured."""
        self.events_delivered += 1
        try:
            result = self._callback(payload)
            if inspect.iscoroutine(result):
                asyncio.run(result)
        except Exception as e:
            logger.error(f"Watch callback failed for {self.scope}:{self.logical_path}: {e}")

        if self._notifier is not None:
            self._notifier.publish_sync(self._change_event(payload))
