"""
Append-only event log with observer subscribers.

Every state change the orchestrator makes is recorded here as an Event.
``record`` stamps the next sequence number and appends under a lock, so
concurrent callers still produce one total order. Subscribers are called for
every appended event in log order. A subscriber that raises is isolated: the
failure is kept in ``subscriber_failures`` and printed, and recording
continues for everyone else.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from .logging_utils import (
    LOG_TAG_DETERMINISTIC,
    LOG_TAG_ERROR,
    LOG_TAG_INFO,
    LOG_TAG_SUCCESS,
    Color,
    colored,
)
from .schemas import Event, EventKind


EventHandler = Callable[[Event], None]


@dataclass(frozen=True)
class SubscriberFailure:
    """A subscriber exception, kept outside the event log."""

    handler: str
    sequence: int
    error: str


class EventSystem:
    """Thread-safe, append-only event log."""

    def __init__(self) -> None:
        self._events: List[Event] = []
        self._subscribers: List[EventHandler] = []
        self._append_lock = threading.Lock()
        self._dispatch_lock = threading.Lock()
        self._dispatching = threading.local()
        self._dispatched = 0
        self.subscriber_failures: List[SubscriberFailure] = []

    # Recording -----------------------------------------------------------------

    def record(self, event: Event) -> Event:
        """Stamp ``event`` with the next sequence number and append it.

        Returns the stamped event. Subscribers have seen it (and every event
        before it) by the time this returns, unless it was recorded by a
        subscriber, in which case it is delivered right after the event being
        dispatched.
        """

        with self._append_lock:
            stamped = event.model_copy(update={"sequence": len(self._events)})
            self._events.append(stamped)
        self._dispatch_pending()
        return stamped

    def record_all(self, events: List[Event]) -> List[Event]:
        return [self.record(event) for event in events]

    def _dispatch_pending(self) -> None:
        # Only one thread dispatches at a time; it drains everything appended
        # so far, so handlers always see events in sequence order. A handler
        # that records from inside dispatch only appends: the outer loop
        # delivers that event once every handler has seen the current one.
        if getattr(self._dispatching, "active", False):
            return
        with self._dispatch_lock:
            self._dispatching.active = True
            try:
                self._drain()
            finally:
                self._dispatching.active = False

    def _drain(self) -> None:
        while True:
            with self._append_lock:
                if self._dispatched >= len(self._events):
                    return
                event = self._events[self._dispatched]
                self._dispatched += 1
                subscribers = list(self._subscribers)
            for handler in subscribers:
                try:
                    handler(event)
                except Exception as exc:
                    failure = SubscriberFailure(
                        handler=getattr(handler, "__qualname__", None) or type(handler).__name__,
                        sequence=event.sequence if event.sequence is not None else -1,
                        error=f"{type(exc).__name__}: {exc}",
                    )
                    self.subscriber_failures.append(failure)
                    print(
                        colored(
                            f"  {LOG_TAG_ERROR} [Events] Subscriber {failure.handler} failed on event "
                            f"#{failure.sequence}: {failure.error}",
                            Color.RED,
                        )
                    )

    # Subscribers ---------------------------------------------------------------

    def subscribe(self, handler: EventHandler) -> None:
        with self._append_lock:
            self._subscribers.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        with self._append_lock:
            if handler in self._subscribers:
                self._subscribers.remove(handler)

    # Queries -------------------------------------------------------------------

    @property
    def events(self) -> List[Event]:
        with self._append_lock:
            return list(self._events)

    def events_of_kind(self, kind: EventKind) -> List[Event]:
        return [event for event in self.events if event.kind is kind]

    def events_for_agent(self, agent_id: str) -> List[Event]:
        return [event for event in self.events if event.agent_id == agent_id]

    def events_for_tick(self, tick: int) -> List[Event]:
        return [event for event in self.events if event.tick == tick]

    def events_since(self, sequence: int) -> List[Event]:
        with self._append_lock:
            return list(self._events[sequence:])

    def last(self) -> Optional[Event]:
        with self._append_lock:
            return self._events[-1] if self._events else None

    def __len__(self) -> int:
        with self._append_lock:
            return len(self._events)


_KIND_STYLE = {
    EventKind.CHOICE_MADE: (LOG_TAG_SUCCESS, Color.GREEN),
    EventKind.SIMULATION_COMPLETED: (LOG_TAG_SUCCESS, Color.GREEN),
    EventKind.DECISION_FAILED: (LOG_TAG_ERROR, Color.RED),
    EventKind.VALIDATION_VIOLATION: (LOG_TAG_ERROR, Color.RED),
    EventKind.SIMULATION_HALTED: (LOG_TAG_ERROR, Color.RED),
    EventKind.ENVIRONMENT_UPDATED: (LOG_TAG_DETERMINISTIC, Color.BLUE),
}


class ConsoleEventSink:
    """Subscriber that prints events as they are recorded.

    Args:
        kinds: only print these kinds (None = all)
    """

    def __init__(self, kinds: Optional[List[EventKind]] = None) -> None:
        self.kinds = set(kinds) if kinds is not None else None

    def __call__(self, event: Event) -> None:
        if self.kinds is not None and event.kind not in self.kinds:
            return
        tag, color = _KIND_STYLE.get(event.kind, (LOG_TAG_INFO, Color.CYAN))
        print(colored(f"  {tag} [t={event.tick} #{event.sequence}] {event.description}", color))


__all__ = ["EventHandler", "SubscriberFailure", "EventSystem", "ConsoleEventSink"]
