"""
Event bus for identity change notifications.

Synchronous in-process pub/sub. Handlers execute immediately in the same
thread as the publisher. Handler errors are logged but never propagate:
the state transition (storage write + in-memory update) has already settled.
"""

import logging
from typing import Callable, Dict, List

from core.events import IdentityEvent

logger = logging.getLogger(__name__)


class EventBus:
    """
    In-process event bus for identity events.

    Subscribe by event class name (string), publish by event instance.
    Handlers are called synchronously in subscription order.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, callback: Callable):
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Name of event class to subscribe to (e.g. 'SessionChanged')
            callback: Function to call when event is published
        """
        if event_type not in self._subscribers:
            self._subscribers[event_type] = []
        self._subscribers[event_type].append(callback)

    def unsubscribe(self, event_type: str, callback: Callable) -> bool:
        """Remove a callback. Returns False if it was not subscribed."""
        callbacks = self._subscribers.get(event_type, [])
        if callback not in callbacks:
            return False
        callbacks.remove(callback)
        return True

    def publish(self, event: IdentityEvent):
        """
        Publish an event to all subscribers of that type.

        Handler errors are logged and swallowed; the publisher's state
        change has already happened.
        """
        event_type = event.__class__.__name__

        if event_type not in self._subscribers:
            return

        for callback in list(self._subscribers[event_type]):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Handler %s failed for %s (event_id=%s)",
                    getattr(callback, "__name__", repr(callback)),
                    event_type,
                    event.event_id,
                )
