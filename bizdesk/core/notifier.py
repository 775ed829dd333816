"""In-process change notifier.

Maps an entity type to the zero-argument callbacks interested in it. The
data service publishes after every write, the local store watcher publishes
when another process rewrites a blob, and the Supabase realtime channels
publish on server-pushed changes.
"""

import logging
from collections.abc import Callable

from bizdesk.models.enums import EntityType

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[], None]
Unsubscribe = Callable[[], None]


class ChangeNotifier:
    """Publish/subscribe registry keyed by entity type."""

    def __init__(self) -> None:
        self._subscribers: dict[EntityType, list[ChangeCallback]] = {}

    def subscribe(self, entity_type: EntityType, callback: ChangeCallback) -> Unsubscribe:
        """Register a callback and return a handle that removes it.

        The same callable may be registered more than once; each
        registration fires and is removed independently.
        """
        entity_type = EntityType(entity_type)
        # Wrap so the handle removes this registration, not an equal callable
        registration = _Registration(callback)
        self._subscribers.setdefault(entity_type, []).append(registration)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(entity_type)
            if not callbacks:
                return
            for index, registered in enumerate(callbacks):
                if registered is registration:
                    del callbacks[index]
                    break
            if not callbacks:
                del self._subscribers[entity_type]

        return unsubscribe

    def publish(self, entity_type: EntityType) -> None:
        """Invoke every callback registered for ``entity_type``, in order."""
        entity_type = EntityType(entity_type)
        for callback in list(self._subscribers.get(entity_type, [])):
            try:
                callback()
            except Exception:
                logger.exception(
                    "Change subscriber failed",
                    extra={"entity_type": entity_type.value},
                )

    def subscriber_count(self, entity_type: EntityType) -> int:
        return len(self._subscribers.get(EntityType(entity_type), []))

    def clear(self) -> None:
        self._subscribers.clear()


class _Registration:
    """One registered callback; identity marks the registration."""

    __slots__ = ("callback",)

    def __init__(self, callback: ChangeCallback) -> None:
        self.callback = callback

    def __call__(self) -> None:
        self.callback()
