import asyncio
import logging
from typing import Awaitable, Callable, Optional

import aio_pika
from aio_pika import DeliveryMode, ExchangeType, Message
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractExchange

from outbox_service.core.config import RabbitMqSettings

log = logging.getLogger("rabbitmq_publisher")

ConnectionFactory = Callable[..., Awaitable[AbstractConnection]]


class RabbitMqPublisher:
    """
    Publishes serialized integration events to a durable topic exchange.

    Owns one lazily opened connection/channel pair. The pair is reused while both
    are open; otherwise the next publish reconnects under a lock, so concurrent
    callers never open duplicate connections or redeclare the exchange.
    """

    def __init__(self, settings: Optional[RabbitMqSettings] = None, connection_factory: ConnectionFactory = aio_pika.connect):
        self._settings = settings or RabbitMqSettings()
        self._connection_factory = connection_factory
        self._connection: Optional[AbstractConnection] = None
        self._channel: Optional[AbstractChannel] = None
        self._exchange: Optional[AbstractExchange] = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return (
            self._connection is not None and not self._connection.is_closed
            and self._channel is not None and not self._channel.is_closed
            and self._exchange is not None
        )

    async def ensure_connected(self):
        # Fast path without the lock
        if self.is_connected:
            return

        async with self._lock:
            if self.is_connected:
                return

            await self._dispose_connection()
            settings = self._settings
            connection = channel = None
            try:
                log.info(f"Connecting to RabbitMQ at {settings.host}:{settings.port}")
                connection = await self._connection_factory(
                    host=settings.host,
                    port=settings.port,
                    login=settings.username,
                    password=settings.password,
                    virtualhost=settings.virtual_host,
                )
                channel = await connection.channel()
                # Idempotent declaration
                exchange = await channel.declare_exchange(
                    settings.exchange,
                    ExchangeType.TOPIC,
                    durable=True,
                    auto_delete=False,
                )
            except Exception:
                log.exception("Failed to connect to RabbitMQ")
                await self._close_quietly(channel, connection)
                raise

            # Published only once complete, the lock-free fast path never sees a half-open pair
            self._connection, self._channel, self._exchange = connection, channel, exchange
            log.info(f"Connected to RabbitMQ and declared exchange: {settings.exchange}")

    async def publish(self, event_type: str, message: str):
        """Publishes one message; errors are logged and re-raised so the caller can count a failed attempt."""
        await self.ensure_connected()
        if self._exchange is None:
            raise RuntimeError("RabbitMQ exchange is not initialized")

        try:
            await self._exchange.publish(
                Message(
                    body=message.encode("utf-8"),
                    content_type="application/json",
                    delivery_mode=DeliveryMode.PERSISTENT,  # Survives a broker restart
                    type=event_type,
                ),
                routing_key=self._settings.routing_key,
            )
        except Exception:
            log.exception(f"Failed to publish message to RabbitMQ - EventType: {event_type}")
            raise

        log.info(
            f"Published message to RabbitMQ - Exchange: {self._settings.exchange}, "
            f"RoutingKey: {self._settings.routing_key}, EventType: {event_type}"
        )

    async def _dispose_connection(self):
        channel, self._channel = self._channel, None
        connection, self._connection = self._connection, None
        self._exchange = None
        await self._close_quietly(channel, connection)

    async def _close_quietly(self, channel, connection):
        # Stale handles may already be broken; closing them must not mask the reconnect
        if channel is not None and not channel.is_closed:
            try:
                await channel.close()
            except Exception as e:
                log.warning(f"Ignoring error while closing RabbitMQ channel: {e}")
        if connection is not None and not connection.is_closed:
            try:
                await connection.close()
            except Exception as e:
                log.warning(f"Ignoring error while closing RabbitMQ connection: {e}")

    async def close(self):
        async with self._lock:
            await self._dispose_connection()
        log.info("RabbitMQ publisher closed")
