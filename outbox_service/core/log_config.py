import logging
from outbox_service.core.config import LOG_LEVEL

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = LOG_LEVEL):
    """Configures root logging once for the API process and the standalone processor."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # Keep ORM chatter at INFO even when the service runs at DEBUG
    logging.getLogger('tortoise').setLevel(logging.INFO)
    logging.getLogger('aio_pika').setLevel(logging.WARNING)
