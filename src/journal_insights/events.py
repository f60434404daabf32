"""EventSink — in-process publish/subscribe for "check again" signals.

Events are not queued or replayed: a subscriber added after a publish
never sees it.  When the sink is bound to an event loop (typically the
one that owns UI state), every delivery is re-dispatched onto that loop
with ``call_soon_threadsafe``; otherwise handlers run inline on the
publisher's thread.

Usage:
    sink = EventSink(loop=ui_loop)
    unsubscribe = sink.subscribe(INSIGHTS_UPDATED, lambda e: refresh(e.job_kind))
    sink.publish(INSIGHTS_UPDATED, CompletionEvent(JobKind.SUMMARY, now))
"""

from __future__ import annotations
import asyncio
import logging
import threading
from collections import defaultdict
from typing import Any, Callable

from .errors import SinkUnavailable

logger = logging.getLogger(__name__)

INSIGHTS_UPDATED = "insightsUpdated"

Handler = Callable[[Any], None]


class EventSink:
    """Multi-producer, multi-consumer event channel."""

    __slots__ = ("_loop", "_handlers", "_lock")

    def __init__(self, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_name: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler``; returns a callable that removes it again."""
        with self._lock:
            self._handlers[event_name].append(handler)
        return lambda: self.unsubscribe(event_name, handler)

    def unsubscribe(self, event_name: str, handler: Handler) -> bool:
        with self._lock:
            handlers = self._handlers.get(event_name, [])
            if handler in handlers:
                handlers.remove(handler)
                return True
        return False

    def subscriber_count(self, event_name: str) -> int:
        with self._lock:
            return len(self._handlers.get(event_name, []))

    def publish(self, event_name: str, event: Any = None) -> int:
        """Deliver ``event`` to the current subscribers of ``event_name``.

        Returns the number of handlers it was handed to.

        Raises:
            SinkUnavailable: no subscribers, or the target loop is closed.
        """
        with self._lock:
            handlers = list(self._handlers.get(event_name, []))
        if not handlers:
            raise SinkUnavailable(f"no subscribers for {event_name!r}")

        if self._loop is None:
            for handler in handlers:
                _deliver(handler, event_name, event)
            return len(handlers)

        try:
            for handler in handlers:
                self._loop.call_soon_threadsafe(_deliver, handler, event_name, event)
        except RuntimeError as exc:   # loop closed
            raise SinkUnavailable(f"cannot deliver {event_name!r}: {exc}") from exc
        return len(handlers)


def _deliver(handler: Handler, event_name: str, event: Any) -> None:
    try:
        handler(event)
    except Exception:
        logger.exception("Handler %r failed for %s", handler, event_name)
