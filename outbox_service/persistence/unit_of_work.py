import logging
from enum import Enum
from typing import Any, List, Optional, Protocol, Tuple, final
from tortoise import models, timezone
from tortoise.transactions import in_transaction

from outbox_service.events.dispatcher import DomainEventDispatcher
from outbox_service.events.domain_event import DomainEvent
from outbox_service.models.base import AggregateRoot, AuditableEntity

log = logging.getLogger("unit_of_work")

SYSTEM_USERNAME = "system"


class CurrentUser(Protocol):
    """Identity used for audit stamping."""
    username: Optional[str]


class SystemUser:
    username = SYSTEM_USERNAME


class EntityState(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"


class UnitOfWork:
    """
    Commits a set of tracked entities atomically and dispatches the domain events they raised.

    Commit sequence: stamp audit fields, harvest and clear pending domain events, save
    every tracked entity in one transaction, then dispatch the harvested events on that
    same transaction. Events are dispatched only if the save succeeded.

    Usage:
        async with UnitOfWork(dispatcher, current_user) as uow:
            uow.register_new(order)
            await uow.commit()

    Leaving the block commits the transaction, or rolls it back if anything raised.
    """

    def __init__(self, dispatcher: DomainEventDispatcher, current_user: Optional[CurrentUser] = None,
                 connection_name: Optional[str] = None):
        self._dispatcher = dispatcher
        username = getattr(current_user or SystemUser(), "username", None)
        self.username = username if username and username.strip() else SYSTEM_USERNAME
        self._connection_name = connection_name
        self._tracked: List[Tuple[models.Model, EntityState]] = []
        self._transaction = None
        self.connection: Any = None

    async def __aenter__(self) -> "UnitOfWork":
        self._transaction = in_transaction(self._connection_name)
        self.connection = await self._transaction.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        transaction, self._transaction = self._transaction, None
        self.connection = None
        try:
            return await transaction.__aexit__(exc_type, exc_val, exc_tb)
        finally:
            self._tracked.clear()

    # ----------- Tracking -----------

    def _track(self, entity: models.Model, state: EntityState):
        for tracked, _ in self._tracked:
            if tracked is entity:
                return
        self._tracked.append((entity, state))

    def register_new(self, entity: models.Model):
        """Tracks an entity to be inserted on commit."""
        self._track(entity, EntityState.ADDED)
        return entity

    def register_dirty(self, entity: models.Model):
        """Tracks a loaded entity to be updated on commit."""
        self._track(entity, EntityState.MODIFIED)
        return entity

    @property
    def tracked(self) -> List[Tuple[models.Model, EntityState]]:
        return list(self._tracked)

    # ----------- Commit -----------

    @final
    async def commit(self) -> int:
        """Runs the commit sequence and returns the number of entities written."""
        if self.connection is not None:
            return await self.__commit_on(self.connection)

        async with in_transaction(self._connection_name) as conn:
            return await self.__commit_on(conn)

    async def __commit_on(self, conn) -> int:
        self.__stamp_audit_fields()
        events = self.__harvest_domain_events()

        # A failed save discards the harvested events; the aggregates must not be reused
        written = await self.__persist(conn)
        log.debug(f"Persisted {written} entities, dispatching {len(events)} domain events")

        try:
            await self._dispatcher.dispatch(events)
        except Exception:
            log.error(f"Domain event dispatch failed after persisting {written} entities; the transaction will roll back")
            raise

        self._tracked.clear()
        return written

    def __stamp_audit_fields(self):
        # Name-mangled so subclasses cannot skip the audit trail
        now = timezone.now()
        for entity, state in self._tracked:
            if not isinstance(entity, AuditableEntity):
                continue
            if state == EntityState.ADDED:
                entity.set_created_info(self.username, now)
            else:
                entity.set_updated_info(self.username, now)

    def __harvest_domain_events(self) -> List[DomainEvent]:
        aggregates = [
            entity for entity, _ in self._tracked
            if isinstance(entity, AggregateRoot) and entity.domain_events
        ]
        events = [event for aggregate in aggregates for event in aggregate.domain_events]
        for aggregate in aggregates:
            aggregate.clear_domain_events()
        return events

    async def __persist(self, conn) -> int:
        for entity, state in self._tracked:
            await entity.save(using_db=conn, force_create=state == EntityState.ADDED)
        return len(self._tracked)
