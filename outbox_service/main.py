import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, status
from outbox_service.core.db import init_db, close_db
from outbox_service.core.log_config import setup_logging
from outbox_service.api.v1.orders import router as orders_router
from outbox_service.api.v1.restaurants import router as restaurants_router
from outbox_service.api.v1.outbox import router as outbox_router
from outbox_service.core.config import PROJECT_NAME, VERSION, OUTBOX_PROCESSOR_ENABLED, HOST, PORT, LOG_LEVEL
from outbox_service.core.exception_handlers import setup_exception_handlers
from outbox_service.messaging.rabbitmq_publisher import RabbitMqPublisher
from outbox_service.workers.outbox_processor import OutboxProcessor

log = logging.getLogger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles startup and shutdown events."""
    setup_logging()
    log.info(f"Starting {PROJECT_NAME} v{VERSION}...")
    await init_db() # Connect to DB and generate schemas

    publisher = processor = None
    if OUTBOX_PROCESSOR_ENABLED:
        publisher = RabbitMqPublisher()
        processor = OutboxProcessor(publisher)
        processor.start()
    app.state.outbox_processor = processor

    yield

    # Stop publishing before the database goes away
    if processor is not None:
        await processor.stop()
        await publisher.close()
    await close_db()
    log.info(f"{PROJECT_NAME} stopped.")

app = FastAPI(
    title=PROJECT_NAME,
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Include routers for modular API structure
app.include_router(orders_router, prefix="/api/v1/orders", tags=["Order Management"])
app.include_router(restaurants_router, prefix="/api/v1/restaurants", tags=["Catalog"])
app.include_router(outbox_router, prefix="/api/v1/outbox", tags=["Outbox Operations"])


setup_exception_handlers(app)

@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Simple health check endpoint."""
    processor = getattr(app.state, "outbox_processor", None)
    return {
        "status": "ok",
        "app_name": PROJECT_NAME,
        "outbox_processor": "running" if processor is not None and processor.is_running else "stopped",
    }


def run():
    """Serves the API with uvicorn; the processor starts inside the lifespan."""
    import uvicorn

    uvicorn.run("outbox_service.main:app", host=HOST, port=PORT, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
