"""
Event Bus implementation for device state-change events.

The Event Bus is a simple, synchronous dispatcher. Each event is delivered
to every matching handler before the next event is considered.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Callable, Deque, FrozenSet, Iterable, List, Optional

from home_rules.core.devices import DeviceReference
import logging
import threading

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    """Get current UTC time (for default factory)."""
    return datetime.now(UTC)


class EventKind(Enum):
    """Message kinds carried by state-change events."""

    COMMAND = "command"  # Outgoing command, does not change state by itself
    UPDATE = "update"  # State update
    STATUS_CHANGE = "status_change"  # Thing connectivity change
    PERIODIC = "periodic"  # Synthetic retrigger tick (no device)


@dataclass(frozen=True)
class StateChangeEvent:
    """
    A state change of one device.

    Attributes:
        ref: The device the event is about (None for periodic ticks)
        kind: Command, update, status change or periodic tick
        new_value: Value carried by the event
        old_value: Previous value, when known
        timestamp: When the event occurred
        source: Who produced the event (e.g., "platform", "harness", "rule:<name>")
    """

    ref: Optional[DeviceReference]
    kind: EventKind
    new_value: Any = None
    old_value: Any = None
    timestamp: datetime = field(default_factory=_utc_now)
    source: str = "platform"

    @property
    def changes_state(self) -> bool:
        """True if the event updates the device's state."""
        return self.kind in (EventKind.UPDATE, EventKind.STATUS_CHANGE)


class EventFilter:
    """
    Filter for event subscriptions.

    Allows subscribers to filter events by device reference and message kind.
    """

    def __init__(
        self,
        ref: Optional[DeviceReference] = None,
        kinds: Optional[Iterable[EventKind]] = None,
    ):
        """
        Initialize an event filter.

        Args:
            ref: Filter by device (None = all devices)
            kinds: Filter by event kinds (None = all kinds)
        """
        self.ref = ref
        self.kinds: Optional[FrozenSet[EventKind]] = frozenset(kinds) if kinds else None

    def matches(self, event: StateChangeEvent) -> bool:
        """
        Check if an event matches this filter.

        Args:
            event: The event to check

        Returns:
            True if the event matches the filter
        """
        if self.kinds is not None and event.kind not in self.kinds:
            return False
        if self.ref is not None and event.ref != self.ref:
            return False
        return True

    def __repr__(self) -> str:
        return f"EventFilter(ref={self.ref}, kinds={self.kinds})"


EventHandler = Callable[[StateChangeEvent], None]


class EventBus:
    """
    Simple, synchronous event bus for state-change events.

    Events published while a dispatch is in progress (e.g., commands sent by
    a rule action) are queued and delivered after the current event, so
    handlers never see interleaved events.

    Handlers are wrapped in try/except to prevent one bad subscriber from
    breaking dispatch.
    """

    def __init__(self) -> None:
        """Initialize the event bus."""
        self._handlers: List[tuple[EventFilter, EventHandler]] = []
        self._queue: Deque[StateChangeEvent] = deque()
        self._dispatching = False
        self._lock = threading.Lock()

    def subscribe(
        self,
        handler: EventHandler,
        event_filter: Optional[EventFilter] = None,
    ) -> None:
        """
        Subscribe to events.

        Args:
            handler: Callable that receives StateChangeEvent objects
            event_filter: Optional filter for events (None = receive all events)
        """
        if event_filter is None:
            event_filter = EventFilter()

        self._handlers.append((event_filter, handler))
        logger.debug(f"Subscribed handler {_name_of(handler)} with filter {event_filter}")

    def publish(self, event: StateChangeEvent) -> None:
        """
        Publish an event to all matching subscribers.

        Handlers are called synchronously and wrapped in try/except. An event
        published while another dispatch is running (from a handler or from
        another thread) is queued and delivered by the dispatching thread.

        Args:
            event: The event to publish
        """
        with self._lock:
            self._queue.append(event)
            if self._dispatching:
                logger.debug(f"Queued event: {event.kind.value} for {event.ref}")
                return
            self._dispatching = True

        try:
            while True:
                with self._lock:
                    if not self._queue:
                        self._dispatching = False
                        return
                    next_event = self._queue.popleft()
                self._dispatch(next_event)
        except BaseException:
            with self._lock:
                self._dispatching = False
            raise

    def _dispatch(self, event: StateChangeEvent) -> None:
        logger.debug(f"Publishing event: {event.kind.value} for {event.ref} from {event.source}")

        for event_filter, handler in list(self._handlers):
            if event_filter.matches(event):
                try:
                    handler(event)
                except Exception as e:
                    logger.error(
                        f"Error in event handler {_name_of(handler)} "
                        f"for event {event.kind.value}: {e}",
                        exc_info=True,
                    )

    def unsubscribe(self, handler: EventHandler) -> None:
        """
        Unsubscribe a handler from all events.

        Args:
            handler: The handler to unsubscribe
        """
        self._handlers = [(f, h) for f, h in self._handlers if h != handler]
        logger.debug(f"Unsubscribed handler {_name_of(handler)}")


def _name_of(handler: EventHandler) -> str:
    return getattr(handler, "__name__", repr(handler))
