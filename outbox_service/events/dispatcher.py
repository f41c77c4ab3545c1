import logging
from abc import ABC, abstractmethod
from typing import Dict, Generic, Iterable, List, Type, TypeVar

from outbox_service.events.domain_event import DomainEvent

log = logging.getLogger("domain_event_dispatcher")

TEvent = TypeVar("TEvent", bound=DomainEvent)


class DomainEventHandler(ABC, Generic[TEvent]):
    """Handles one concrete domain event type inside the committing transaction."""

    @abstractmethod
    async def handle(self, event: TEvent) -> None:
        ...


class DomainEventDispatcher:
    """
    In-process fan-out of harvested domain events to the handlers registered for their concrete type.

    Events are dispatched one at a time, in the order given, and each event's handlers
    run in registration order. A failing handler stops the whole batch: later events
    may depend on the durable side effects of earlier ones.
    """

    def __init__(self):
        self._handlers: Dict[Type[DomainEvent], List[DomainEventHandler]] = {}

    def register(self, event_type: Type[DomainEvent], handler: DomainEventHandler):
        self._handlers.setdefault(event_type, []).append(handler)
        return handler

    def handlers_for(self, event_type: Type[DomainEvent]) -> List[DomainEventHandler]:
        # Exact type match only; a subclass event needs its own registration
        return list(self._handlers.get(event_type, ()))

    async def dispatch(self, events: Iterable[DomainEvent]):
        events = list(events)
        if not events:
            return

        log.info(f"Dispatching {len(events)} domain events")
        for event in events:
            await self._dispatch_event(event)
        log.info(f"Successfully dispatched {len(events)} domain events")

    async def _dispatch_event(self, event: DomainEvent):
        event_name = type(event).__name__
        handlers = self.handlers_for(type(event))
        if not handlers:
            log.warning(f"No handlers registered for domain event: {event_name}")
            return

        for handler in handlers:
            try:
                await handler.handle(event)
            except Exception:
                log.exception(f"Error executing handler {type(handler).__name__} for event {event_name}")
                raise
            log.debug(f"Successfully executed handler {type(handler).__name__} for event {event_name}")
