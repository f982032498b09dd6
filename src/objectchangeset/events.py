"""
Named hooks a changeset fires for its owner.

Deliberately small: a dict of callback lists keyed by event name. Firing is
best-effort; a failing subscriber is logged and skipped.
"""
from typing import Any, Callable, Dict, List
import logging

logger = logging.getLogger(__name__)

# Fired with the key path (or "changes"/"errors") whose resolved value changed
PROPERTY_CHANGED = 'property_changed'
# Fired with the key path about to be / just validated
BEFORE_VALIDATION = 'before_validation'
AFTER_VALIDATION = 'after_validation'
# Fired with no arguments
AFTER_ROLLBACK = 'after_rollback'

EVENT_NAMES = (PROPERTY_CHANGED, BEFORE_VALIDATION, AFTER_VALIDATION, AFTER_ROLLBACK)


class EventHooks:
    """Callback registry for the changeset's named events."""

    def __init__(self):
        self._callbacks: Dict[str, List[Callable[..., Any]]] = {name: [] for name in EVENT_NAMES}

    def _callbacks_for(self, event: str) -> List[Callable[..., Any]]:
        if event not in self._callbacks:
            raise ValueError(f"Unknown event {event!r}. Expected one of {EVENT_NAMES}")
        return self._callbacks[event]

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        """Subscribe callback to event."""
        callbacks = self._callbacks_for(event)
        if callback not in callbacks:
            callbacks.append(callback)

    def off(self, event: str, callback: Callable[..., Any]) -> None:
        """Unsubscribe callback from event."""
        callbacks = self._callbacks_for(event)
        if callback in callbacks:
            callbacks.remove(callback)

    def has_listeners(self, event: str) -> bool:
        return bool(self._callbacks_for(event))

    def trigger(self, event: str, *args: Any) -> None:
        """Fire all callbacks registered for event."""
        for callback in list(self._callbacks_for(event)):
            try:
                callback(*args)
            except Exception as e:
                logger.warning(f"Error in {event} callback: {e}")

    def clear(self) -> None:
        for callbacks in self._callbacks.values():
            callbacks.clear()
