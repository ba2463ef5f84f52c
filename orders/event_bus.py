"""
Event bus for order lifecycle events.

Synchronous in-process pub/sub. Handlers execute immediately in the same
thread as the publisher, after the order transaction has committed.
Handler errors are logged but never propagate: a failed receipt print
must not undo a recorded payment.
"""

import logging
from typing import Callable, Dict, List

from orders.events import LifecycleEvent

logger = logging.getLogger(__name__)


class EventBus:
    """
    In-process event bus for order lifecycle events.

    Subscribe by event class name (string) or class, publish by event
    instance. Subscribing to a category class (e.g. 'RefundEvent') receives
    every event derived from it. Handlers are called in subscription order,
    most specific class first.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str | type, callback: Callable):
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Event class or its name (e.g. 'InvoicePaid')
            callback: Function to call when event is published
        """
        name = event_type if isinstance(event_type, str) else event_type.__name__
        self._subscribers.setdefault(name, []).append(callback)

    def handlers_for(self, event: LifecycleEvent) -> List[Callable]:
        """Callbacks that would receive this event, in call order."""
        handlers = []
        for cls in type(event).__mro__:
            handlers.extend(self._subscribers.get(cls.__name__, []))
        return handlers

    def publish(self, event: LifecycleEvent):
        """
        Publish an event to all subscribers of its type and base types.

        Args:
            event: LifecycleEvent instance to publish
        """
        event_type = event.__class__.__name__

        for callback in self.handlers_for(event):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Handler %s failed for %s (event_id=%s)",
                    getattr(callback, "__name__", repr(callback)),
                    event_type,
                    event.event_id,
                )
