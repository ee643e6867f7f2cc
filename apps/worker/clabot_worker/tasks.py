"""Celery tasks for background convergence."""

import logging
from typing import Optional

from celery import Task
from sqlalchemy.orm import Session

from clabot_worker.celery_app import celery_app
from clabot_worker.db import get_db

logger = logging.getLogger(__name__)


class DatabaseTask(Task):
    """Task with database session."""

    _db: Optional[Session] = None

    @property
    def db(self) -> Session:
        """Get database session."""
        if self._db is None:
            self._db = next(get_db())
        return self._db

    def after_return(self, *args, **kwargs):
        """Close database session after task."""
        if self._db:
            self._db.close()
            self._db = None


@celery_app.task(base=DatabaseTask, bind=True, max_retries=0)
def converge_pull_requests(self, **request_kwargs) -> dict:
    """Reconcile open pull requests after an organization-level change.

    Failed runs are not retried; the next triggering event schedules a new run.
    """
    from clabot_api.convergence.request import ConvergenceRequest
    from clabot_api.convergence.runner import ConvergenceRunner

    request = ConvergenceRequest.from_dict(request_kwargs)
    log_extra = {
        "task": "converge_pull_requests",
        "run_id": request.run_id,
        "trigger": request.trigger,
    }
    logger.info("Convergence run started", extra=log_extra)

    try:
        summary = ConvergenceRunner(self.db).run(request)
    except Exception as e:
        self.db.rollback()
        logger.exception("Convergence run failed", extra=log_extra)
        ConvergenceRunner(self.db).mark_failed(request, str(e))
        raise

    logger.info(f"Convergence run {summary.status}", extra=log_extra)
    return summary.to_dict()
