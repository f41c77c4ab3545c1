import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from outbox_service.core.config import OutboxProcessorSettings
from outbox_service.events.integration_events import OrderStatusChangedIntegrationEvent
from outbox_service.models.outbox import OutboxMessage
from outbox_service.repositories.outbox_repository import OutboxRepository, PendingOutboxMessage
from outbox_service.workers.outbox_processor import MAX_RETRIES_EXCEEDED, OutboxProcessor

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _settings(**overrides):
    values = {"poll_interval": 0.01, "batch_size": 10, "max_retries": 3, "warmup_delay": 0}
    values.update(overrides)
    return OutboxProcessorSettings(**values)


async def _add_message(minutes=0):
    return await OutboxRepository().add(OrderStatusChangedIntegrationEvent(
        occurred_on=BASE_TIME + timedelta(minutes=minutes),
        order_id=uuid.uuid4(),
        user_id="user-abc",
        old_status="PLACED",
        new_status="PREPARING",
    ))


@pytest.fixture
def publisher():
    mock = MagicMock()
    mock.publish = AsyncMock()
    return mock


class TestProcessBatch:

    @pytest.mark.asyncio
    async def test_published_message_is_marked_processed(self, db, publisher):
        message = await _add_message()

        result = await OutboxProcessor(publisher, _settings()).process_batch()

        assert result.fetched == 1
        assert result.published == 1
        publisher.publish.assert_awaited_once_with("OrderStatusChangedIntegrationEvent", message.content)
        stored = await OutboxMessage.get(id=message.id)
        assert stored.processed_on is not None
        assert stored.error is None

    @pytest.mark.asyncio
    async def test_empty_outbox_publishes_nothing(self, db, publisher):
        result = await OutboxProcessor(publisher, _settings()).process_batch()

        assert result.fetched == 0
        publisher.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_publish_increments_retry_count(self, db, publisher):
        message = await _add_message()
        publisher.publish.side_effect = ConnectionError("broker unreachable")

        result = await OutboxProcessor(publisher, _settings()).process_batch()

        assert result.failed == 1
        stored = await OutboxMessage.get(id=message.id)
        assert stored.retry_count == 1
        assert stored.error == "broker unreachable"
        assert stored.processed_on is None
        assert len(await OutboxRepository().get_unprocessed(10, max_retries=3)) == 1

    @pytest.mark.asyncio
    async def test_message_is_given_up_after_max_retries(self, db, publisher):
        message = await _add_message()
        publisher.publish.side_effect = ConnectionError("broker unreachable")
        processor = OutboxProcessor(publisher, _settings(max_retries=2))

        first = await processor.process_batch()
        second = await processor.process_batch()
        third = await processor.process_batch()

        assert first.failed == 1
        assert second.exhausted == 1
        assert third.fetched == 0
        assert publisher.publish.await_count == 2

        stored = await OutboxMessage.get(id=message.id)
        assert stored.retry_count == 2
        assert stored.error.startswith(MAX_RETRIES_EXCEEDED)
        assert "exceeded" in stored.error
        assert stored.processed_on is None

    @pytest.mark.asyncio
    async def test_one_failure_does_not_block_the_rest_of_the_batch(self, db, publisher):
        failing = await _add_message(minutes=1)
        healthy = await _add_message(minutes=2)

        async def publish(event_type, content):
            if content == failing.content:
                raise RuntimeError("rejected")

        publisher.publish.side_effect = publish

        result = await OutboxProcessor(publisher, _settings()).process_batch()

        assert (result.published, result.failed) == (1, 1)
        assert (await OutboxMessage.get(id=healthy.id)).processed_on is not None
        assert (await OutboxMessage.get(id=failing.id)).processed_on is None

    @pytest.mark.asyncio
    async def test_failure_to_record_error_is_contained(self, publisher):
        repository = MagicMock()
        repository.get_unprocessed = AsyncMock(return_value=[
            PendingOutboxMessage(uuid.uuid4(), "A", "{}", 0),
            PendingOutboxMessage(uuid.uuid4(), "B", "{}", 0),
        ])
        repository.mark_as_processed = AsyncMock(side_effect=[RuntimeError("db gone"), True])
        repository.mark_as_failed = AsyncMock(side_effect=RuntimeError("db still gone"))

        result = await OutboxProcessor(publisher, _settings(), repository_factory=lambda: repository).process_batch()

        assert result.published == 1
        assert publisher.publish.await_count == 2


class TestProcessorLoop:

    @pytest.mark.asyncio
    async def test_loop_survives_a_failing_cycle(self, publisher):
        cycles = asyncio.Event()
        calls = []

        async def get_unprocessed(batch_size, max_retries=None):
            calls.append(batch_size)
            if len(calls) == 1:
                raise RuntimeError("database unavailable")
            cycles.set()
            return []

        repository = MagicMock()
        repository.get_unprocessed = get_unprocessed
        processor = OutboxProcessor(publisher, _settings(), repository_factory=lambda: repository)

        processor.start()
        await asyncio.wait_for(cycles.wait(), timeout=2)
        await processor.stop(timeout=2)

        assert len(calls) >= 2
        assert not processor.is_running

    @pytest.mark.asyncio
    async def test_stop_during_warmup_skips_polling(self, publisher):
        factory = MagicMock()
        processor = OutboxProcessor(publisher, _settings(warmup_delay=60), repository_factory=factory)

        processor.start()
        await asyncio.sleep(0)
        assert processor.is_running
        await processor.stop(timeout=2)

        assert not processor.is_running
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_stop_without_start_is_a_no_op(self, publisher):
        processor = OutboxProcessor(publisher, _settings())

        await processor.stop()

        assert not processor.is_running

    @pytest.mark.asyncio
    async def test_stop_cancels_a_cycle_that_overruns_the_timeout(self, publisher):
        started = asyncio.Event()

        async def get_unprocessed(batch_size, max_retries=None):
            started.set()
            await asyncio.sleep(60)

        repository = MagicMock()
        repository.get_unprocessed = get_unprocessed
        processor = OutboxProcessor(publisher, _settings(), repository_factory=lambda: repository)

        task = processor.start()
        await asyncio.wait_for(started.wait(), timeout=2)
        await processor.stop(timeout=0.05)

        assert task.cancelled()
