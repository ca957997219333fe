"""
In-process change notifications, keyed by resource name ("orders", "order_items", "payments", ...).
Listeners are awaited in turn; a failing listener is logged and never breaks delivery to the others.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Awaitable, Callable, Iterable

from pos_terminal.schemas.sync import SyncEvent

logger = logging.getLogger(__name__)

Listener = Callable[[SyncEvent], Awaitable[None]]
WILDCARD = "*"


class ChangeFeed:
    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def subscribe(self, resources: Iterable[str], listener: Listener) -> Callable[[], None]:
        """Register `listener` for each resource; returns a callable that unsubscribes it again."""
        resources = list(resources)
        for resource in resources:
            self._listeners[resource].append(listener)

        def unsubscribe() -> None:
            for resource in resources:
                if listener in self._listeners.get(resource, []):
                    self._listeners[resource].remove(listener)

        return unsubscribe

    def listener_count(self, resource: str) -> int:
        return len(self._listeners.get(resource, []))

    async def publish(self, event: SyncEvent) -> int:
        """Deliver `event`; returns how many listeners ran successfully."""
        listeners = [*self._listeners.get(event.resource, []), *self._listeners.get(WILDCARD, [])]
        # one refetch per listener even when subscribed to several matching resources
        unique = list(dict.fromkeys(listeners))
        delivered = 0
        for listener in unique:
            try:
                await listener(event)
                delivered += 1
            except Exception:
                logger.exception("sync_listener_failed", extra={"resource": event.resource})
        return delivered
