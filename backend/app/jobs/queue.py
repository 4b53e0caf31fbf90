from __future__ import annotations

import logging

from redis import Redis
from rq import Queue
from rq.job import Job

from app.config.settings import settings
from app.jobs.market_refresh import run_batch_refresh

logger = logging.getLogger(__name__)

REFRESH_JOB_TIMEOUT = 300
REFRESH_RESULT_TTL = 3600


def get_queue(name: str | None = None) -> Queue:
    connection = Redis.from_url(settings.redis_url)
    return Queue(name=name or settings.refresh_queue_name, connection=connection)


def enqueue_batch_refresh(symbols: list[str], queue: Queue | None = None) -> Job:
    queue = queue or get_queue()
    job = queue.enqueue(
        run_batch_refresh,
        symbols=symbols,
        job_timeout=REFRESH_JOB_TIMEOUT,
        result_ttl=REFRESH_RESULT_TTL,
        description=f"market batch refresh ({len(symbols)} symbols)",
    )
    logger.info("Enqueued batch refresh %s on %s", job.id, queue.name)
    return job
