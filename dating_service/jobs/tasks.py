"""Celery tasks. One task per job type, each running its async processor on a fresh event loop."""

import asyncio
import logging
from typing import Any, Dict

from .. import redis_bus
from ..config import get_settings
from ..db import create_client
from .celery_app import JOB_TYPES, celery_app
from .processors import PROCESSORS, Processor
from .queue import DEFAULT_JOB_OPTIONS

LOGGER = logging.getLogger("celery.task")


async def _run_with_db(processor: Processor, data: Dict[str, Any]) -> Dict[str, Any]:
    settings = get_settings()
    client = create_client(settings.mongo_uri or settings.mongo_alt_uri)
    try:
        return await processor(client[settings.mongo_db], data)
    finally:
        client.close()
        # The Redis client is bound to this run's event loop
        await redis_bus.stop()


def _make_task(job_type: str, processor: Processor):
    @celery_app.task(
        name=job_type,
        bind=True,
        autoretry_for=(Exception,),
        dont_autoretry_for=(ValueError,),
        max_retries=DEFAULT_JOB_OPTIONS["attempts"] - 1,
        retry_backoff=DEFAULT_JOB_OPTIONS["backoff_ms"] // 1000,
        retry_jitter=False,
    )
    def _task(self, data: Dict[str, Any]) -> Dict[str, Any]:
        LOGGER.info("Job %s started (id=%s, attempt=%s)", job_type, self.request.id, self.request.retries + 1)
        result = asyncio.run(_run_with_db(processor, data or {}))
        LOGGER.info("Job %s completed (id=%s)", job_type, self.request.id)
        return result

    return _task


TASKS = {job_type: _make_task(job_type, PROCESSORS[job_type]) for job_type in JOB_TYPES}
