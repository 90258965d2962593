"""
RQ Worker bootstrap - Consumes the notification queue
"""

import logging

from rq import Worker

from payloom.infrastructure.logging_config import setup_logging
from payloom.infrastructure.redis_client import get_queue, get_redis
from payloom.infrastructure.settings import get_settings
from payloom.workers import jobs  # noqa: F401  (jobs are resolved by dotted path)

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    redis_conn = get_redis()
    queue = get_queue(settings.NOTIFICATION_QUEUE, connection=redis_conn)
    logger.info("Notification worker starting", extra={"queue": queue.name})
    Worker([queue], connection=redis_conn).work()


if __name__ == "__main__":
    main()
