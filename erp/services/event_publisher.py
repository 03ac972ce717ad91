"""
Domain event publisher: queue during the command, dispatch after the save.

Commands call ``publish()`` while the aggregate is being changed; nothing is
delivered until the caller has persisted the aggregate and awaits
``dispatch_pending()``. Subscribers are async callables keyed by event class.
A subscriber exception stops dispatch and propagates; the failing event and
everything behind it stay queued for the next dispatch, so subscribers must
tolerate redelivery.
"""

from collections import defaultdict, deque
from typing import Awaitable, Callable, Deque, Dict, List, Type

import structlog

from erp.domain.events import DomainEvent

logger = structlog.get_logger()

EventHandler = Callable[[DomainEvent], Awaitable[None]]


class DomainEventPublisher:
    def __init__(self):
        self._subscribers: Dict[Type[DomainEvent], List[EventHandler]] = defaultdict(list)
        self._pending: Deque[DomainEvent] = deque()

    def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        self._subscribers[event_type].append(handler)
        logger.debug(
            "event_handler_subscribed",
            event_type=event_type.__name__,
            handler=getattr(handler, "__qualname__", repr(handler)),
        )

    def publish(self, event: DomainEvent) -> None:
        self._pending.append(event)
        logger.debug("event_queued", event_type=event.event_type, event_id=str(event.event_id))

    @property
    def pending(self) -> List[DomainEvent]:
        return list(self._pending)

    def clear(self) -> None:
        """Drop queued events, e.g. after the originating transaction rolled back."""
        self._pending.clear()

    async def dispatch_pending(self) -> int:
        delivered = 0
        while self._pending:
            event = self._pending[0]
            handlers = self._subscribers.get(type(event), [])
            if not handlers:
                logger.debug("event_without_subscribers", event_type=event.event_type)
            for handler in handlers:
                await handler(event)
            self._pending.popleft()
            delivered += 1
            logger.info(
                "event_dispatched",
                event_type=event.event_type,
                event_id=str(event.event_id),
                handlers=len(handlers),
            )
        return delivered
