import asyncio
from decimal import Decimal
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from tortoise import Tortoise

from outbox_service.core.db import MODELS_MODULES
from outbox_service.core.security import UserContext
from outbox_service.events.dispatcher import DomainEventDispatcher, DomainEventHandler
from outbox_service.events.order_events import (
    OrderCancelledDomainEvent,
    OrderPlacedDomainEvent,
    OrderStatusChangedDomainEvent,
)
from outbox_service.models.order import MenuItem, Restaurant


# --- DATABASE ---

@pytest_asyncio.fixture
async def db():
    """Fresh in-memory SQLite database per test."""
    await Tortoise.init(db_url="sqlite://:memory:", modules={"models": MODELS_MODULES})
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


@pytest_asyncio.fixture
async def catalog(db):
    """One active restaurant with two menu items."""
    restaurant = await Restaurant.create(name="Demo Restaurant", created_by="fixture")
    wrap = await MenuItem.create(restaurant=restaurant, name="Paneer Wrap", price=Decimal("149.00"))
    drink = await MenuItem.create(restaurant=restaurant, name="Cold Drink", price=Decimal("49.00"))
    return restaurant, wrap, drink


@pytest.fixture
def user():
    return UserContext(username="user-abc")


# --- DOMAIN EVENT HANDLERS ---

class RecordingHandler(DomainEventHandler):
    """Appends every handled event to a shared list, optionally failing on one event type."""

    def __init__(self, received: List, fail_on=None):
        self.received = received
        self.fail_on = fail_on

    async def handle(self, event):
        if self.fail_on is not None and isinstance(event, self.fail_on):
            raise RuntimeError(f"handler failed for {type(event).__name__}")
        self.received.append(event)


@pytest.fixture
def recording_dispatcher():
    """A dispatcher recording every order domain event instead of writing to the outbox."""
    received = []
    dispatcher = DomainEventDispatcher()
    handler = RecordingHandler(received)
    for event_type in (OrderPlacedDomainEvent, OrderStatusChangedDomainEvent, OrderCancelledDomainEvent):
        dispatcher.register(event_type, handler)
    return dispatcher, received


# --- BROKER FAKES ---

class FakeAmqp:
    """Stands in for aio_pika: a connection factory plus the connection/channel/exchange it hands out."""

    def __init__(self, connect_error=None, declare_gate=None):
        self.connect_error = connect_error
        # When set, declare_exchange suspends until the gate opens
        self.declare_gate = declare_gate
        self.declare_entered = asyncio.Event()
        self.connect_calls = []
        self.connections = []
        self.exchange = MagicMock()
        self.exchange.publish = AsyncMock()

    def _new_connection(self):
        channel = MagicMock()
        channel.is_closed = False
        async def declare_exchange(*args, **kwargs):
            return await self._declare_exchange(*args, **kwargs)

        channel.declare_exchange = AsyncMock(side_effect=declare_exchange)
        channel.close = AsyncMock()

        connection = MagicMock()
        connection.is_closed = False
        connection.channel = AsyncMock(return_value=channel)
        connection.close = AsyncMock()
        connection.test_channel = channel
        return connection

    async def _declare_exchange(self, *args, **kwargs):
        self.declare_entered.set()
        if self.declare_gate is not None:
            await self.declare_gate.wait()
        return self.exchange

    async def connect(self, **kwargs):
        # Yield so concurrent callers interleave inside the connect step
        await asyncio.sleep(0)
        self.connect_calls.append(kwargs)
        if self.connect_error is not None:
            raise self.connect_error
        connection = self._new_connection()
        self.connections.append(connection)
        return connection


@pytest.fixture
def fake_amqp():
    return FakeAmqp()
