import asyncio
import hmac

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from .. import redis_cache
from ..cache import cache as local_cache
from ..cache_bus import publish_invalidate
from ..config import get_settings
from ..db import get_db
from ..db.mongo import ensure_all_indexes
from ..jobs.queue import queue_service
from ..utils.http import api_success


async def require_admin(x_admin_token: str = Header(default="")) -> None:
    expected = get_settings().admin_token
    if not expected or not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=403, detail="admin token required")


router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


@router.post("/ensure-indexes")
async def ensure_indexes():
    await ensure_all_indexes(get_db())
    return api_success(message="Indexes ensured")


@router.post("/cache/purge")
async def purge_cache(prefix: str = Query(default="")):
    removed = await redis_cache.delete_prefix(prefix)
    if prefix:
        await publish_invalidate(prefix)
    else:
        await local_cache.clear()
    return api_success({"removed": removed}, "Cache purged")


@router.get("/queues")
async def queue_metrics():
    try:
        metrics = await asyncio.to_thread(queue_service.get_all_metrics)
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"Queue broker unavailable: {exc}") from exc
    return api_success(metrics)


@router.get("/queues/{queue}")
async def single_queue_metrics(queue: str):
    try:
        metrics = await asyncio.to_thread(queue_service.get_queue_metrics, queue)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"Queue broker unavailable: {exc}") from exc
    return api_success(metrics)


@router.post("/queues/{queue}/pause")
async def pause_queue(queue: str):
    try:
        await asyncio.to_thread(queue_service.pause_queue, queue)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return api_success({"queue": queue, "paused": True})


@router.post("/queues/{queue}/resume")
async def resume_queue(queue: str):
    try:
        await asyncio.to_thread(queue_service.resume_queue, queue)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return api_success({"queue": queue, "paused": False})


@router.post("/queues/{queue}/purge")
async def purge_queue(queue: str):
    try:
        purged = await asyncio.to_thread(queue_service.purge_queue, queue)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return api_success({"queue": queue, "purged": purged})


@router.get("/jobs/{job_id}")
async def job_status(job_id: str):
    return api_success(await asyncio.to_thread(queue_service.get_job_status, job_id))


@router.delete("/jobs/{job_id}")
async def remove_job(job_id: str):
    await asyncio.to_thread(queue_service.remove_job, job_id)
    return api_success({"id": job_id, "removed": True})
