"""Queue facade over Celery: enqueue, schedule, inspect and control jobs."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import timezone
from typing import Any, Dict, Iterable, List, Optional

from celery.result import AsyncResult
from celery.schedules import crontab

from ..config import get_settings
from .celery_app import JOB_TYPES, QUEUES, celery_app, queue_name

LOGGER = logging.getLogger("uvicorn.error")

DEFAULT_JOB_OPTIONS: Dict[str, Any] = {
    "attempts": 3,
    "backoff_ms": 2000,
}

# Celery state -> job state reported to callers
_STATE_MAP = {
    "PENDING": "waiting",
    "RECEIVED": "waiting",
    "STARTED": "active",
    "RETRY": "delayed",
    "SUCCESS": "completed",
    "FAILURE": "failed",
    "REVOKED": "removed",
}


class QueueService:
    def __init__(self, app=celery_app) -> None:
        self._app = app
        self._paused: set[str] = set()

    @staticmethod
    def _validate(queue: str, job_type: str) -> None:
        if queue not in QUEUES.values():
            raise ValueError(f"Unknown queue: {queue}")
        if job_type not in JOB_TYPES:
            raise ValueError(f"Unknown job type: {job_type}")

    def add_job(
        self,
        queue: str,
        job_type: str,
        data: Dict[str, Any],
        options: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Publish a job. Returns ``{id, queue, type}`` or ``None`` when publishing failed.

        Options: ``priority`` (lower runs first), ``delay`` in milliseconds,
        ``job_id`` for an explicit id.
        """

        self._validate(queue, job_type)
        if not get_settings().jobs_enabled:
            LOGGER.debug("Jobs disabled; dropping %s", job_type)
            return None
        options = options or {}
        send_kwargs: Dict[str, Any] = {"args": [data], "queue": queue_name(queue)}
        if options.get("priority") is not None:
            send_kwargs["priority"] = max(0, min(9, int(options["priority"])))
        if options.get("delay"):
            send_kwargs["countdown"] = max(0.0, float(options["delay"]) / 1000.0)
        if options.get("job_id"):
            send_kwargs["task_id"] = str(options["job_id"])
        try:
            result = self._app.send_task(job_type, **send_kwargs)
        except Exception as exc:
            LOGGER.error("Failed to add job %s to %s: %s", job_type, queue, exc)
            return None
        LOGGER.debug("Job %s added to %s queue: %s", job_type, queue, result.id)
        return {"id": result.id, "queue": queue, "type": job_type}

    def add_bulk_jobs(self, jobs: Iterable[Dict[str, Any]]) -> List[Optional[Dict[str, Any]]]:
        return [
            self.add_job(job["queue"], job["type"], job.get("data") or {}, job.get("options"))
            for job in jobs
        ]

    def schedule_job(
        self,
        queue: str,
        job_type: str,
        data: Dict[str, Any],
        delay_ms: int,
        options: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        return self.add_job(queue, job_type, data, {**(options or {}), "delay": delay_ms})

    def add_repeatable_job(
        self,
        queue: str,
        job_type: str,
        data: Dict[str, Any],
        *,
        minute: str = "0",
        hour: str = "*",
        day_of_week: str = "*",
        day_of_month: str = "*",
        name: Optional[str] = None,
    ) -> str:
        """Register a cron entry on the beat schedule. Picked up by beat on its next start."""
        self._validate(queue, job_type)
        key = name or f"{job_type}-{minute}-{hour}-{day_of_week}-{day_of_month}"
        self._app.conf.beat_schedule[key] = {
            "task": job_type,
            "schedule": crontab(minute=minute, hour=hour, day_of_week=day_of_week, day_of_month=day_of_month),
            "args": (data,),
            "options": {"queue": queue_name(queue)},
        }
        return key

    def get_job_status(self, job_id: str) -> Dict[str, Any]:
        result = AsyncResult(job_id, app=self._app)
        state = result.state
        status: Dict[str, Any] = {
            "id": job_id,
            "state": _STATE_MAP.get(state, state.lower()),
            "result": None,
            "failedReason": None,
            "finishedOn": None,
        }
        if state == "SUCCESS":
            status["result"] = result.result
        elif state == "FAILURE":
            status["failedReason"] = str(result.result)
        if result.date_done is not None:
            done = result.date_done
            if done.tzinfo is None:
                done = done.replace(tzinfo=timezone.utc)
            status["finishedOn"] = int(done.timestamp() * 1000)
        return status

    def remove_job(self, job_id: str) -> bool:
        self._app.control.revoke(job_id)
        AsyncResult(job_id, app=self._app).forget()
        return True

    def _count_from_workers(self, replies: Optional[Dict[str, List[Dict[str, Any]]]], queue: str) -> int:
        target = queue_name(queue)
        total = 0
        for tasks in (replies or {}).values():
            for task in tasks:
                info = task.get("delivery_info") or (task.get("request") or {}).get("delivery_info") or {}
                if info.get("routing_key") == target:
                    total += 1
        return total

    def get_queue_metrics(self, queue: str) -> Dict[str, Any]:
        if queue not in QUEUES.values():
            raise ValueError(f"Unknown queue: {queue}")
        with self._app.connection_or_acquire() as conn:
            declared = conn.default_channel.queue_declare(queue=queue_name(queue), passive=True)
            waiting = int(declared.message_count)
        inspector = self._app.control.inspect(timeout=1.0)
        return {
            "queue": queue,
            "waiting": waiting,
            "active": self._count_from_workers(inspector.active(), queue),
            "delayed": self._count_from_workers(inspector.scheduled(), queue),
            "paused": queue in self._paused,
        }

    def get_all_metrics(self) -> List[Dict[str, Any]]:
        return [self.get_queue_metrics(queue) for queue in QUEUES.values()]

    def pause_queue(self, queue: str) -> None:
        if queue not in QUEUES.values():
            raise ValueError(f"Unknown queue: {queue}")
        self._app.control.cancel_consumer(queue_name(queue))
        self._paused.add(queue)
        LOGGER.info("Queue %s paused", queue)

    def resume_queue(self, queue: str) -> None:
        if queue not in QUEUES.values():
            raise ValueError(f"Unknown queue: {queue}")
        self._app.control.add_consumer(queue_name(queue))
        self._paused.discard(queue)
        LOGGER.info("Queue %s resumed", queue)

    def purge_queue(self, queue: str) -> int:
        if queue not in QUEUES.values():
            raise ValueError(f"Unknown queue: {queue}")
        with self._app.connection_or_acquire() as conn:
            purged = conn.default_channel.queue_purge(queue_name(queue)) or 0
        LOGGER.info("Purged %s jobs from %s", purged, queue)
        return int(purged)

    def close(self) -> None:
        self._app.close()


queue_service = QueueService()


async def dispatch(
    queue: str,
    job_type: str,
    data: Dict[str, Any],
    options: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    """Publish from async code without blocking the event loop."""
    return await asyncio.to_thread(queue_service.add_job, queue, job_type, data, options)


async def send_push_notification(
    user_id: str,
    title: str,
    body: str,
    data: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    return await dispatch(
        QUEUES["PUSH_NOTIFICATIONS"],
        "send-push-notification",
        {"userId": user_id, "title": title, "body": body, "data": data or {}},
    )


async def process_match(match_id: str, user1_id: str, user2_id: str) -> Optional[Dict[str, Any]]:
    return await dispatch(
        QUEUES["MATCHES"],
        "process-match",
        {"matchId": match_id, "user1Id": user1_id, "user2Id": user2_id},
    )


async def send_email(to: str, template: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return await dispatch(QUEUES["EMAILS"], "send-email", {"to": to, "template": template, "data": data})


async def moderate_image(user_id: str, image_url: str, photo_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    return await dispatch(
        QUEUES["MODERATION"],
        "moderate-image",
        {"userId": user_id, "imageUrl": image_url, "photoId": photo_id},
        {"priority": 2},
    )


async def track_event(
    user_id: str,
    event_type: str,
    event_data: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    return await dispatch(
        QUEUES["ANALYTICS"],
        "track-event",
        {
            "userId": user_id,
            "eventType": event_type,
            "eventData": event_data or {},
            "timestamp": int(time.time() * 1000),
        },
        {"priority": 10},
    )


__all__ = [
    "DEFAULT_JOB_OPTIONS",
    "QueueService",
    "dispatch",
    "moderate_image",
    "process_match",
    "queue_service",
    "send_email",
    "send_push_notification",
    "track_event",
]
