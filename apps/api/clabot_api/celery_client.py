"""Celery client the API uses to enqueue worker tasks.

Configured to match the worker (JSON serializer, UTC, Redis broker and
result backend) so tasks can be sent by name without importing the worker.
"""

import logging
from typing import Optional

from celery import Celery

from clabot_api.settings import get_settings

logger = logging.getLogger(__name__)

CONVERGE_TASK = "clabot_worker.tasks.converge_pull_requests"

_celery_app: Optional[Celery] = None


def get_celery_app() -> Celery:
    """Get or create the singleton Celery app."""
    global _celery_app

    if _celery_app is None:
        settings = get_settings()
        _celery_app = Celery("clabot_api")
        _celery_app.conf.update(
            broker_url=settings.redis_url,
            result_backend=settings.redis_url,
            task_serializer="json",
            accept_content=["json"],
            result_serializer="json",
            timezone="UTC",
            enable_utc=True,
            task_track_started=True,
            task_time_limit=30 * 60,  # matches worker config
            task_soft_time_limit=25 * 60,
        )
        logger.info("Initialized Celery client for clabot_api")

    return _celery_app


def send_convergence_task(kwargs: dict, task_id: str) -> None:
    get_celery_app().send_task(CONVERGE_TASK, kwargs=kwargs, task_id=task_id)
