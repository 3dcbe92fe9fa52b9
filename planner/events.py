from datetime import datetime
from typing import Callable, Dict, List, NamedTuple

__all__ = [
    'Event', 'EventBus', 'Handler', 'make_event',
    'LIST_CHANGED', 'SYNC_FAILED', 'SESSION_STARTED', 'SESSION_ENDED',
]


class Event(NamedTuple):
    name: str
    ts: str
    payload: dict


Handler = Callable[[Event, dict], object]


def make_event(name: str, payload: dict) -> Event:
    return Event(name=name, ts=datetime.now().isoformat(), payload=payload)


class EventBus:
    """Synchronous publish/subscribe keyed by event name.

    Handlers run in subscription order on the publisher's stack; a handler that
    raises propagates to the publisher.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> Callable[[], None]:
        self._subscribers.setdefault(name, []).append(handler)

        def unsubscribe() -> None:
            self.unsubscribe(name, handler)

        return unsubscribe

    def publish(self, name: str, payload: dict) -> List[object]:
        handlers = list(self._subscribers.get(name, ()))
        if not handlers:
            return []
        event = make_event(name, payload)
        return [handler(event, payload) for handler in handlers]

    def unsubscribe(self, name: str, handler: Handler) -> None:
        if handler in self._subscribers.get(name, ()):
            self._subscribers[name].remove(handler)

    def clear(self) -> None:
        self._subscribers.clear()

    def subscriber_count(self, name: str) -> int:
        return len(self._subscribers.get(name, ()))


LIST_CHANGED = "LIST_CHANGED"
SYNC_FAILED = "SYNC_FAILED"
SESSION_STARTED = "SESSION_STARTED"
SESSION_ENDED = "SESSION_ENDED"
