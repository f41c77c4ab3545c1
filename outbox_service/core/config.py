import os
from pydantic import BaseModel, Field

# Database Configuration
# Uses default credentials for local Docker Compose setup
DB_URL = os.getenv("DATABASE_URL", "postgres://user:password@db:5432/orders_db")

# Application Metadata
PROJECT_NAME = "Order Outbox Service"
VERSION = "1.0.0"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))

# Outbox Processor Configuration
OUTBOX_PROCESSOR_ENABLED = os.getenv("OUTBOX_PROCESSOR_ENABLED", "true").lower() in ("1", "true", "yes")
POLL_INTERVAL = float(os.getenv("OUTBOX_POLL_INTERVAL", 5)) # Processor checks for pending messages every N seconds
BATCH_SIZE = int(os.getenv("OUTBOX_BATCH_SIZE", 100)) # How many messages to fetch per poll
MAX_RETRIES = int(os.getenv("OUTBOX_MAX_RETRIES", 3)) # Failed publishes allowed before a message is given up
WARMUP_DELAY = float(os.getenv("OUTBOX_WARMUP_DELAY", 10)) # Lets the host finish starting before the first poll

# RabbitMQ Configuration
RABBITMQ_HOST = os.getenv("RABBITMQ_HOST", "rabbitmq")
RABBITMQ_PORT = int(os.getenv("RABBITMQ_PORT", 5672))
RABBITMQ_USERNAME = os.getenv("RABBITMQ_USERNAME", "guest")
RABBITMQ_PASSWORD = os.getenv("RABBITMQ_PASSWORD", "guest")
RABBITMQ_VIRTUAL_HOST = os.getenv("RABBITMQ_VIRTUAL_HOST", "/")
RABBITMQ_EXCHANGE = os.getenv("RABBITMQ_EXCHANGE", "orders.events")
RABBITMQ_ROUTING_KEY = os.getenv("RABBITMQ_ROUTING_KEY", "orders.integration")


class OutboxProcessorSettings(BaseModel):
    """Background outbox processor configuration."""
    poll_interval: float = Field(POLL_INTERVAL, gt=0, description="Seconds between poll cycles.")
    batch_size: int = Field(BATCH_SIZE, gt=0, description="Maximum messages processed per cycle.")
    max_retries: int = Field(MAX_RETRIES, ge=1, description="Failed attempts before a message is given up.")
    warmup_delay: float = Field(WARMUP_DELAY, ge=0, description="Seconds to wait before the first poll.")


class RabbitMqSettings(BaseModel):
    """RabbitMQ connection and publishing configuration."""
    host: str = RABBITMQ_HOST
    port: int = Field(RABBITMQ_PORT, gt=0)
    username: str = RABBITMQ_USERNAME
    password: str = RABBITMQ_PASSWORD
    virtual_host: str = RABBITMQ_VIRTUAL_HOST
    exchange: str = RABBITMQ_EXCHANGE
    routing_key: str = RABBITMQ_ROUTING_KEY
