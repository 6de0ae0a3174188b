"""Submission of run jobs to the worker queue.

The API does not import the worker package: jobs are sent by task name
through a producer-only Celery app pointed at the same broker.
"""

import logging
from typing import Optional

from celery import Celery

from insightforge_core.config import Settings

logger = logging.getLogger(__name__)

PROCESS_RUN_TASK = "runs.process_run"


class RunQueue:
    """Producer side of the run queue."""

    def __init__(self, settings: Settings, app: Optional[Celery] = None):
        self.queue_name = settings.run_queue
        self.app = app or Celery(
            "insightforge_api",
            broker=settings.celery_broker_url,
            backend=settings.celery_result_backend,
        )

    def enqueue_run(self, run_id: int) -> str:
        """Send ``runs.process_run(run_id)``; returns the task id."""
        result = self.app.send_task(PROCESS_RUN_TASK, args=[run_id], queue=self.queue_name)
        logger.info(f"Enqueued run {run_id} as task {result.id}")
        return result.id
