import logging
from abc import abstractmethod

from outbox_service.events.dispatcher import DomainEventDispatcher, DomainEventHandler, TEvent
from outbox_service.events.integration_events import (
    IntegrationEvent,
    OrderCancelledIntegrationEvent,
    OrderPlacedIntegrationEvent,
    OrderStatusChangedIntegrationEvent,
)
from outbox_service.events.order_events import (
    OrderCancelledDomainEvent,
    OrderPlacedDomainEvent,
    OrderStatusChangedDomainEvent,
)
from outbox_service.repositories.outbox_repository import OutboxRepository

log = logging.getLogger("outbox_handlers")


class DomainEventToOutboxHandler(DomainEventHandler[TEvent]):
    """
    Converts one domain event into exactly one integration event and appends it to the outbox.

    The append runs on whatever transaction is current, so when dispatched from
    UnitOfWork.commit() the outbox row commits or rolls back with the business write.
    Conversion errors propagate; an event that should become durable is never dropped.
    """

    def __init__(self, outbox: OutboxRepository):
        self._outbox = outbox

    async def handle(self, event: TEvent) -> None:
        log.debug(f"Converting domain event {type(event).__name__} to integration event")

        integration_event = await self.to_integration_event(event)
        await self._outbox.add(integration_event)

        log.debug(f"Added integration event {integration_event.event_name()} to outbox")

    @abstractmethod
    async def to_integration_event(self, event: TEvent) -> IntegrationEvent:
        ...


class OrderPlacedToOutboxHandler(DomainEventToOutboxHandler[OrderPlacedDomainEvent]):
    async def to_integration_event(self, event: OrderPlacedDomainEvent) -> IntegrationEvent:
        return OrderPlacedIntegrationEvent(
            occurred_on=event.occurred_on,
            order_id=event.order_id,
            user_id=event.user_id,
            restaurant_id=event.restaurant_id,
            total_amount=event.total_amount,
            items=event.items,
        )


class OrderStatusChangedToOutboxHandler(DomainEventToOutboxHandler[OrderStatusChangedDomainEvent]):
    async def to_integration_event(self, event: OrderStatusChangedDomainEvent) -> IntegrationEvent:
        return OrderStatusChangedIntegrationEvent(
            occurred_on=event.occurred_on,
            order_id=event.order_id,
            user_id=event.user_id,
            old_status=event.old_status,
            new_status=event.new_status,
        )


class OrderCancelledToOutboxHandler(DomainEventToOutboxHandler[OrderCancelledDomainEvent]):
    async def to_integration_event(self, event: OrderCancelledDomainEvent) -> IntegrationEvent:
        return OrderCancelledIntegrationEvent(
            occurred_on=event.occurred_on,
            order_id=event.order_id,
            user_id=event.user_id,
            reason=event.reason,
            items=event.items,
        )


def build_domain_event_dispatcher(outbox: OutboxRepository = None) -> DomainEventDispatcher:
    """Wires every order domain event to its outbox converter."""
    if outbox is None:
        outbox = OutboxRepository()
    dispatcher = DomainEventDispatcher()
    dispatcher.register(OrderPlacedDomainEvent, OrderPlacedToOutboxHandler(outbox))
    dispatcher.register(OrderStatusChangedDomainEvent, OrderStatusChangedToOutboxHandler(outbox))
    dispatcher.register(OrderCancelledDomainEvent, OrderCancelledToOutboxHandler(outbox))
    return dispatcher
