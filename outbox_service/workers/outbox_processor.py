import asyncio
import contextlib
import logging
import signal
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from outbox_service.core.config import OutboxProcessorSettings
from outbox_service.repositories.outbox_repository import OutboxRepository, PendingOutboxMessage

log = logging.getLogger("outbox_processor")

MAX_RETRIES_EXCEEDED = "Max retries exceeded"


class MessagePublisher(Protocol):
    async def publish(self, event_type: str, message: str) -> None:
        ...


@dataclass
class OutboxBatchResult:
    fetched: int = 0
    published: int = 0
    failed: int = 0      # Failed, will be retried next cycle
    exhausted: int = 0   # Failed for the last time


class OutboxProcessor:
    """
    Background loop that publishes pending outbox messages.

    Waits a warm-up delay, then forever: fetch a batch, publish each message on its
    own, sleep the poll interval. A message that fails is retried on later cycles
    until its retry count reaches max_retries, then it is left unprocessed with a
    "Max retries exceeded" error and no longer fetched. Errors escaping a batch are
    logged and the loop carries on. stop() ends the loop after the current step.
    """

    def __init__(self, publisher: MessagePublisher, settings: Optional[OutboxProcessorSettings] = None,
                 repository_factory: Callable[[], OutboxRepository] = OutboxRepository):
        self._publisher = publisher
        self._settings = settings or OutboxProcessorSettings()
        # A fresh repository per cycle, nothing storage-bound lives as long as the loop
        self._repository_factory = repository_factory
        self._stopping = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def settings(self) -> OutboxProcessorSettings:
        return self._settings

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ----------- Lifecycle -----------

    def start(self) -> asyncio.Task:
        if self.is_running:
            log.warning("Outbox processor already running")
            return self._task
        self._stopping.clear()
        self._task = asyncio.create_task(self.run(), name="outbox-processor")
        return self._task

    def request_stop(self):
        self._stopping.set()

    async def stop(self, timeout: float = 30.0):
        """Signals the loop to stop and waits for it; cancels it if it overruns timeout."""
        self.request_stop()
        task, self._task = self._task, None
        if task is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            log.warning("Outbox processor shutdown timed out, cancelling")
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _sleep(self, seconds: float) -> bool:
        """Sleeps unless stop is requested first. Returns True when stopping."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        return self._stopping.is_set()

    async def run(self):
        settings = self._settings
        log.info(
            f"Outbox Processor started - Interval: {settings.poll_interval}s, "
            f"BatchSize: {settings.batch_size}, MaxRetries: {settings.max_retries}"
        )

        stopping = await self._sleep(settings.warmup_delay)
        while not stopping:
            try:
                await self.process_batch()
            except Exception:
                log.exception("Error in outbox processor loop")
            stopping = await self._sleep(settings.poll_interval)

        log.info("Outbox Processor stopped")

    # ----------- Batch processing -----------

    async def process_batch(self) -> OutboxBatchResult:
        repository = self._repository_factory()
        messages = await repository.get_unprocessed(
            self._settings.batch_size,
            max_retries=self._settings.max_retries,
        )
        result = OutboxBatchResult(fetched=len(messages))
        if not messages:
            return result

        log.info(f"Processing {len(messages)} outbox messages")
        for message in messages:
            await self._process_message(repository, message, result)

        log.info(
            f"Completed processing {len(messages)} outbox messages - published: {result.published}, "
            f"failed: {result.failed}, exhausted: {result.exhausted}"
        )
        return result

    async def _process_message(self, repository: OutboxRepository, message: PendingOutboxMessage,
                               result: OutboxBatchResult):
        try:
            await self._publisher.publish(message.type, message.content)
            await repository.mark_as_processed(message.id)
        except Exception as e:
            log.exception(f"Failed to process outbox message {message.id} of type {message.type}")
            try:
                await self._record_failure(repository, message, e, result)
            except Exception:
                # Keep going: the other messages in the batch are independent
                log.exception(f"Could not record failure for outbox message {message.id}")
            return

        result.published += 1
        log.debug(f"Successfully processed outbox message {message.id} of type {message.type}")

    async def _record_failure(self, repository: OutboxRepository, message: PendingOutboxMessage,
                              error: Exception, result: OutboxBatchResult):
        max_retries = self._settings.max_retries
        new_retry_count = message.retry_count + 1
        reason = str(error) or type(error).__name__

        if new_retry_count < max_retries:
            await repository.mark_as_failed(message.id, reason, new_retry_count)
            result.failed += 1
            log.warning(f"Marked outbox message {message.id} as failed (retry {new_retry_count}/{max_retries})")
        else:
            await repository.mark_as_failed(message.id, f"{MAX_RETRIES_EXCEEDED}: {reason}", new_retry_count)
            result.exhausted += 1
            log.error(f"Outbox message {message.id} failed permanently after {new_retry_count} attempts")


async def start_outbox_processor():
    """Runs the processor as its own process, outside the API."""
    from outbox_service.core.db import close_db, init_db
    from outbox_service.core.log_config import setup_logging
    from outbox_service.messaging.rabbitmq_publisher import RabbitMqPublisher

    setup_logging()
    await init_db()
    publisher = RabbitMqPublisher()
    processor = OutboxProcessor(publisher)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, processor.request_stop)

    try:
        await processor.run()
    finally:
        await publisher.close()
        await close_db()


if __name__ == "__main__":
    asyncio.run(start_outbox_processor())
