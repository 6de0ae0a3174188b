"""Unit tests for the run processing task and worker context.

Tests cover:
- Task registration and routing
- Outcome handling (completed, pending re-submission, dropped)
- Retry policy (failed runs are final, other errors back off)
- Worker context construction
"""

import asyncio
from contextlib import contextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from celery.exceptions import Retry

from insightforge_core.config import ConfigurationError, Settings
from insightforge_core.infrastructure.crypto import CryptoService

from insightforge_worker import context as worker_context
from insightforge_worker.celery_app import app
from insightforge_worker.run_processor import Completed, Dropped, Pending, RunFailedError
from insightforge_worker.tasks.runs import PROCESS_RUN_TASK
from insightforge_worker.util.retry import RUN_RETRY


@pytest.fixture
def task():
    return app.tasks[PROCESS_RUN_TASK]


@pytest.fixture
def mock_context() -> MagicMock:
    context = MagicMock()
    context.database.session.return_value = MagicMock()
    return context


@contextmanager
def _processing(mock_context, outcome=None, error=None):
    """Patch the context and RunProcessor used by the task."""
    processor = MagicMock()
    processor.process = AsyncMock(return_value=outcome, side_effect=error)
    with patch("insightforge_worker.tasks.runs.get_context", return_value=mock_context), patch(
        "insightforge_worker.tasks.runs.RunProcessor", return_value=processor
    ) as processor_cls:
        yield processor_cls


# =============================================================================
# REGISTRATION
# =============================================================================


class TestProcessRunTask:
    def test_task_is_registered(self, task):
        assert task.name == "runs.process_run"

    def test_task_retries(self, task):
        assert task.max_retries == RUN_RETRY.max_attempts

    def test_routed_to_run_queue(self):
        assert app.conf.task_routes["runs.*"]["queue"] == app.conf.task_default_queue

    def test_acks_late(self):
        assert app.conf.task_acks_late is True
        assert app.conf.worker_prefetch_multiplier == 1


# =============================================================================
# OUTCOMES
# =============================================================================


class TestOutcomes:
    """Tests for how processor outcomes map to task results."""

    def test_completed(self, task, mock_context):
        outcome = Completed(artifact_types=["instructions"], token_estimate=120, cost_estimate=0.0018)

        with _processing(mock_context, outcome) as processor_cls:
            result = task.run(7)

        assert result == {
            "status": "completed",
            "run_id": 7,
            "artifacts": ["instructions"],
            "token_estimate": 120,
            "cost_estimate": 0.0018,
        }
        processor_cls.assert_called_once()
        mock_context.database.session.return_value.close.assert_called_once()

    def test_pending_resubmits_once(self, task, mock_context):
        with _processing(mock_context, Pending(delay_seconds=5, reason="waiting")), patch.object(
            task, "apply_async"
        ) as apply_async:
            result = task.run(7)

        assert result["status"] == "pending"
        assert result["countdown"] == 5
        apply_async.assert_called_once_with(args=[7], countdown=5)

    def test_dropped(self, task, mock_context):
        with _processing(mock_context, Dropped("completed")), patch.object(
            task, "apply_async"
        ) as apply_async:
            result = task.run(7)

        assert result == {"status": "dropped", "run_id": 7, "reason": "completed"}
        apply_async.assert_not_called()


# =============================================================================
# RETRIES
# =============================================================================


class TestRetries:
    def test_failed_run_is_not_retried(self, task, mock_context):
        with _processing(mock_context, error=RunFailedError(7, "boom")), patch.object(
            task, "retry"
        ) as retry:
            with pytest.raises(RunFailedError):
                task.run(7)

        retry.assert_not_called()
        mock_context.database.session.return_value.close.assert_called_once()

    def test_other_errors_retry_with_backoff(self, task, mock_context):
        error = ConnectionError("database unavailable")

        with _processing(mock_context, error=error), patch.object(
            task, "retry", return_value=Retry()
        ) as retry:
            with pytest.raises(Retry):
                task.run(7)

        retry.assert_called_once_with(exc=error, countdown=RUN_RETRY.base_delay)

    def test_gives_up_after_max_retries(self, task, mock_context):
        task.push_request(retries=RUN_RETRY.max_attempts)
        try:
            with _processing(mock_context, error=ConnectionError("down")), patch.object(
                task, "retry"
            ) as retry:
                with pytest.raises(ConnectionError):
                    task.run(7)
        finally:
            task.pop_request()

        retry.assert_not_called()


# =============================================================================
# WORKER CONTEXT
# =============================================================================


@pytest.fixture
def worker_settings(tmp_path) -> Settings:
    return Settings(
        mysql_url="sqlite://",
        artifacts_path=str(tmp_path / "artifacts"),
        session_encryption_key=CryptoService.generate_key(),
        browserless_http_url="http://browserless.test",
        browserless_ws_url="ws://browserless.test",
        browserless_token="browserless-token",
    )


class TestWorkerContext:
    """Tests for building the per-process context."""

    def test_missing_settings_fail_fast(self, worker_settings):
        worker_settings.browserless_token = None

        with pytest.raises(ConfigurationError) as exc_info:
            worker_context.build_context(worker_settings)

        assert exc_info.value.missing == ["BROWSERLESS_TOKEN"]

    def test_keyword_mode_without_llm(self, worker_settings):
        context = worker_context.build_context(worker_settings)
        try:
            assert context.dependencies.analyzer_factory().llm_enabled is False
            assert context.dependencies.artifacts_path == worker_settings.artifacts_path
            assert context.dependencies.requeue_delay_seconds == worker_settings.run_requeue_delay_seconds
        finally:
            context.dispose()

    def test_llm_mode(self, worker_settings):
        worker_settings.inference_url = "https://llm.test"
        worker_settings.inference_api_key = "key"

        analyzer = worker_context.build_analyzer(worker_settings)

        assert analyzer.llm_enabled is True

    def test_set_and_reset(self, worker_settings):
        context = worker_context.build_context(worker_settings)
        worker_context.set_context(context)

        assert worker_context.get_context() is context

        worker_context.reset_context()
        assert worker_context._context is None

    def test_get_context_requires_init(self):
        worker_context.set_context(None)

        with pytest.raises(worker_context.WorkerContextError):
            worker_context.get_context()

    def test_each_job_gets_its_own_clients(self, worker_settings):
        worker_settings.inference_url = "https://llm.test"
        worker_settings.inference_api_key = "key"
        context = worker_context.build_context(worker_settings)
        http_clients = []

        async def _job():
            analyzer = context.dependencies.analyzer_factory()
            http_clients.append(analyzer.client.http_client)
            await analyzer.close()

        try:
            # Each Celery job runs under its own event loop
            asyncio.run(_job())
            asyncio.run(_job())
        finally:
            context.dispose()

        first, second = http_clients
        assert first is not second
        assert first.is_closed and second.is_closed
