import logging
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional
from uuid import UUID
from tortoise import timezone

from outbox_service.events.integration_events import IntegrationEvent
from outbox_service.models.outbox import OutboxMessage

log = logging.getLogger("outbox_repository")


class PendingOutboxMessage(NamedTuple):
    """The fields the processor needs to publish one message."""
    id: UUID
    type: str
    content: str
    retry_count: int


class OutboxState(str, Enum):
    PENDING = "pending"
    FAILED = "failed"        # Retry ceiling reached, kept for inspection
    PROCESSED = "processed"


class OutboxRepository:
    """
    Append, fetch and status updates over the outbox table.

    With conn=None every call runs on the current Tortoise connection, which inside
    `async with in_transaction()` is the open transaction. Passing conn pins the
    repository to that connection explicitly.
    """

    def __init__(self, conn: Any = None):
        self._conn = conn

    def _messages(self):
        query = OutboxMessage.all()
        return query.using_db(self._conn) if self._conn is not None else query

    async def add(self, integration_event: IntegrationEvent) -> OutboxMessage:
        """Inserts a pending message for the integration event."""
        return await OutboxMessage.create(
            type=integration_event.event_name(),
            content=integration_event.model_dump_json(),
            occurred_on=integration_event.occurred_on,
            processed_on=None,
            error=None,
            retry_count=0,
            using_db=self._conn,
        )

    async def get_unprocessed(self, batch_size: int, max_retries: Optional[int] = None) -> List[PendingOutboxMessage]:
        """
        Returns up to batch_size unprocessed messages, oldest occurred_on first.
        When max_retries is given, messages whose retry_count reached it are skipped.
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be positive.")

        query = self._messages().filter(processed_on__isnull=True)
        if max_retries is not None:
            query = query.filter(retry_count__lt=max_retries)

        rows = await query.order_by("occurred_on").limit(batch_size).values_list(
            "id", "type", "content", "retry_count"
        )
        return [PendingOutboxMessage(*row) for row in rows]

    async def mark_as_processed(self, message_id: UUID) -> bool:
        """
        Sets processed_on and clears the last error.
        Only touches unprocessed rows, so a second call changes nothing.
        """
        updated = await self._messages().filter(id=message_id, processed_on__isnull=True).update(
            processed_on=timezone.now(),
            error=None,
        )
        if not updated:
            log.debug(f"Outbox message {message_id} was already processed or does not exist")
        return bool(updated)

    async def mark_as_failed(self, message_id: UUID, error: str, retry_count: int) -> bool:
        """Overwrites error and retry_count; processed_on stays null."""
        # retry_count never goes backwards and a processed row is never failed again
        updated = await self._messages().filter(
            id=message_id,
            processed_on__isnull=True,
            retry_count__lte=retry_count,
        ).update(error=error, retry_count=retry_count)
        return bool(updated)

    def _by_state(self, state: OutboxState, max_retries: int):
        if state == OutboxState.PROCESSED:
            return self._messages().filter(processed_on__isnull=False)
        query = self._messages().filter(processed_on__isnull=True)
        if state == OutboxState.FAILED:
            return query.filter(retry_count__gte=max_retries)
        return query.filter(retry_count__lt=max_retries)

    async def list_messages(self, state: OutboxState, max_retries: int, limit: int = 50) -> List[OutboxMessage]:
        """Messages in one lifecycle state, for operator inspection."""
        ordering = "-processed_on" if state == OutboxState.PROCESSED else "occurred_on"
        return await self._by_state(state, max_retries).order_by(ordering).limit(limit)

    async def count_by_state(self, max_retries: int) -> Dict[str, int]:
        return {
            state.value: await self._by_state(state, max_retries).count()
            for state in OutboxState
        }
