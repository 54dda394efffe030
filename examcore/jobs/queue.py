"""Redis connection and the rq queue that carries timeout finalize jobs."""
from functools import lru_cache

from redis import Redis
from rq import Queue

from examcore.core.config import settings


@lru_cache()
def get_redis() -> Redis:
    return Redis.from_url(settings.REDIS_URL)


@lru_cache()
def get_queue() -> Queue:
    # Connections are opened on first use, so importing this module never touches Redis.
    return Queue(settings.RQ_QUEUE, connection=get_redis())
