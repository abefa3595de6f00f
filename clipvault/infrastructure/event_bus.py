from typing import Type, Callable, List, Dict, Any, Optional
from clipvault.domain.events import Event

Callback = Callable[[Any], None]

class EventBus:
    """Synchronous pub/sub used between the pipeline, progress reporter and console view.

    Callbacks run on the publishing thread in subscription order; an exception
    raised by a callback propagates to the publisher.
    """

    def __init__(self):
        self._subscribers: Dict[Type[Event], List[Callback]] = {}

    def subscribe(self, event_type: Type[Event], callback: Optional[Callback] = None):
        """Registers ``callback`` for ``event_type``. Without a callback, returns a decorator."""
        if callback is None:
            def decorator(func: Callback):
                self.subscribe(event_type, func)
                return func
            return decorator

        self._subscribers.setdefault(event_type, []).append(callback)
        return callback

    def unsubscribe(self, event_type: Type[Event], callback: Callback) -> bool:
        """Removes a callback; returns False if it was not registered."""
        callbacks = self._subscribers.get(event_type, [])
        if callback not in callbacks:
            return False
        callbacks.remove(callback)
        return True

    def publish(self, event: Event):
        # Snapshot so a callback may unsubscribe itself while being notified.
        for callback in list(self._subscribers.get(type(event), ())):
            callback(event)
