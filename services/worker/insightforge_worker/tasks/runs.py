"""Run processing task.

One invocation processes one dequeued job for a run:
- Pending (user still logging in): re-submits itself once with a countdown
- RunFailedError (run already marked failed): fails the task, no retry
- Other errors (database, browser provisioning): retried with exponential backoff
"""

import asyncio
import logging

from insightforge_worker.celery_app import app
from insightforge_worker.context import get_context
from insightforge_worker.run_processor import (
    Dropped,
    Pending,
    RunFailedError,
    RunProcessor,
)
from insightforge_worker.util.retry import RUN_RETRY, exponential_backoff

logger = logging.getLogger(__name__)

PROCESS_RUN_TASK = "runs.process_run"


@app.task(
    bind=True,
    name=PROCESS_RUN_TASK,
    max_retries=RUN_RETRY.max_attempts,
)
def process_run(self, run_id: int) -> dict:
    """
    Process one run job.

    Args:
        run_id: ID of the run to process

    Returns:
        dict: Outcome with status (completed, pending, dropped)
    """
    context = get_context()
    db = context.database.session()

    try:
        processor = RunProcessor(db, context.dependencies, task_id=self.request.id)
        outcome = asyncio.run(processor.process(run_id))
    except RunFailedError as exc:
        logger.error(f"Run {run_id} failed: {exc.reason}")
        raise
    except Exception as exc:
        retry_count = self.request.retries
        if retry_count < self.max_retries:
            countdown = exponential_backoff(retry_count + 1, RUN_RETRY)
            logger.warning(
                f"Retrying run {run_id} in {countdown:.0f}s "
                f"(attempt {retry_count + 1}/{self.max_retries}): {exc}"
            )
            raise self.retry(exc=exc, countdown=countdown)
        logger.error(f"All retries exhausted for run {run_id}")
        raise
    finally:
        db.close()

    if isinstance(outcome, Pending):
        process_run.apply_async(args=[run_id], countdown=outcome.delay_seconds)
        return {
            "status": "pending",
            "run_id": run_id,
            "reason": outcome.reason,
            "countdown": outcome.delay_seconds,
        }

    if isinstance(outcome, Dropped):
        return {"status": "dropped", "run_id": run_id, "reason": outcome.reason}

    return {
        "status": "completed",
        "run_id": run_id,
        "artifacts": outcome.artifact_types,
        "token_estimate": outcome.token_estimate,
        "cost_estimate": outcome.cost_estimate,
    }
