"""Celery application configuration for InsightForge Worker."""

from celery import Celery
from celery.signals import worker_process_init, worker_process_shutdown

from insightforge_core.config import get_settings
from insightforge_core.observability import configure_logging

settings = get_settings()

app = Celery(
    "insightforge_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["insightforge_worker.tasks.runs"],
)

# Celery configuration
app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution: a run is acknowledged only once processing returns,
    # so a crashed or killed worker leaves it for redelivery
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Time limits (seconds); the hard limit is the run lease
    task_soft_time_limit=settings.run_max_minutes * 60 - 30,
    task_time_limit=settings.run_max_minutes * 60,
    broker_transport_options={"visibility_timeout": settings.run_max_minutes * 60 + 60},
    # Retry settings
    task_default_retry_delay=30,
    # Queue routing
    task_default_queue=settings.run_queue,
    task_routes={
        "runs.*": {"queue": settings.run_queue},
    },
    # Worker settings: one run at a time per process
    worker_prefetch_multiplier=1,
    worker_hijack_root_logger=False,
)


@worker_process_init.connect
def init_worker_process(**kwargs) -> None:
    """Configure logging and build the run context in each worker process."""
    from insightforge_worker.context import init_context

    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name="insightforge-worker",
    )
    init_context(settings)


@worker_process_shutdown.connect
def shutdown_worker_process(**kwargs) -> None:
    from insightforge_worker.context import reset_context

    reset_context()


if __name__ == "__main__":
    app.start()
