import logging
from typing import Callable, List

from knowledge_tracker.models.events import KnowledgeEvent

logger = logging.getLogger(__name__)

Listener = Callable[[KnowledgeEvent], None]


class KnowledgeEventBus:
    """Synchronous subscribe/notify channel for knowledge changes.

    Listeners run in subscription order on the caller's stack, so a listener
    registered later sees every change made by the ones before it.
    """

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: KnowledgeEvent) -> None:
        # Copy so listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    f"Listener {getattr(listener, '__name__', listener)} failed "
                    f"on {event.type.value}: {str(e)}"
                )

    def __len__(self) -> int:
        return len(self._listeners)
