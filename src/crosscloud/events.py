"""EventBus and event types for share and key lifecycle changes."""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[["ShareEvent"], Any]


class EventType(Enum):
    """Committed state changes that other components may react to."""

    SHARE_CREATED = "share_created"
    SHARE_UPDATED = "share_updated"
    SHARE_DELETED = "share_deleted"
    SHARE_KEYS_INITIALIZED = "share_keys_initialized"
    SHARE_KEY_ADDED = "share_key_added"
    USER_REMOVED_FROM_SHARE = "user_removed_from_share"
    USER_KEY_INITIALIZED = "user_key_initialized"
    DEVICE_APPROVAL_REQUESTED = "device_approval_requested"
    DEVICE_APPROVED = "device_approved"
    DEVICE_DECLINED = "device_declined"
    USER_KEYS_RESET = "user_keys_reset"


@dataclass(frozen=True, slots=True)
class ShareEvent:
    """Immutable record of a committed change.

    Attributes:
        event_type: The kind of change.
        user_id: The user who made the change.
        subject_id: The user the change was about, when different
            (key recipient, reset target).
        share_id: Database id of the affected share, when known.
        storage_type: Storage type of the affected share.
        unique_id: Provider-side id of the affected share.
        organization_id: Organization the change happened in.
        device_id: Device involved in a key exchange event.
    """

    event_type: EventType
    user_id: str
    subject_id: str | None = None
    share_id: str | None = None
    storage_type: str | None = None
    unique_id: str | None = None
    organization_id: str | None = None
    device_id: str | None = None


class EventBus:
    """Fans committed changes out to listeners.

    A handler registered for ``None`` receives every event, after the
    handlers registered for the event's own type.  Handlers may be plain
    callables or coroutine functions and run one after another.  A
    handler that raises is logged and skipped: the change it reports has
    already been committed.
    """

    def __init__(self) -> None:
        self._handlers: defaultdict[EventType | None, list[Handler]] = defaultdict(list)

    def register(self, event_type: EventType | None, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def unregister(self, event_type: EventType | None, handler: Handler) -> bool:
        """Remove the first registration of *handler*. Return True if it was registered."""
        handlers = self._handlers.get(event_type, [])
        if handler not in handlers:
            return False
        handlers.remove(handler)
        return True

    def handlers_for(self, event_type: EventType) -> list[Handler]:
        return [*self._handlers.get(event_type, ()), *self._handlers.get(None, ())]

    async def emit(self, event: ShareEvent) -> None:
        for handler in self.handlers_for(event.event_type):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.warning(
                    "Event handler %r raised on %s by %s",
                    handler,
                    event.event_type.value,
                    event.user_id,
                    exc_info=True,
                )

    @property
    def handler_count(self) -> int:
        return sum(len(handlers) for handlers in self._handlers.values())

    def clear(self) -> None:
        self._handlers.clear()
