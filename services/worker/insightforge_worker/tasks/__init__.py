"""InsightForge Worker Tasks."""

# Import all tasks to register them with Celery
from insightforge_worker.tasks import runs  # noqa: F401
