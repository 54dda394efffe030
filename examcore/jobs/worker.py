"""Run with ``python -m examcore.jobs.worker``; the scheduler is needed for ``enqueue_in`` jobs."""
import logging

from rq import Worker

from examcore.core.config import settings
from examcore.jobs.queue import get_queue, get_redis

logger = logging.getLogger(__name__)


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    queue = get_queue()
    logger.info(f"Worker listening on {queue.name} at {settings.REDIS_URL}")
    Worker([queue], connection=get_redis()).work(with_scheduler=True)


if __name__ == "__main__":
    main()
