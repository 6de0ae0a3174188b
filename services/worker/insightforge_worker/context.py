"""Process-wide collaborators of the worker.

The context is built once per worker process (``worker_process_init``)
after validating the settings the worker cannot run without, and handed to
every ``RunProcessor`` the tasks create. Anything bound to an event loop
(the analyzer and its HTTP clients) is only a factory here; each job builds
its own under its own ``asyncio.run``.
"""

import logging
from dataclasses import dataclass
from functools import partial
from typing import Optional

from insightforge_core.config import Settings, get_settings
from insightforge_core.domain.services.external_content import ArticleFetcher, ContentEnricher
from insightforge_core.domain.services.formatting import MarkdownFormatter
from insightforge_core.domain.services.images import ImageFetcher
from insightforge_core.domain.services.inference import build_inference_client
from insightforge_core.domain.services.insight_analyzer import (
    AnalyzerConfig,
    InsightAnalyzer,
    ResourceSuggester,
)
from insightforge_core.infra.db import Database
from insightforge_core.infrastructure.crypto import CryptoService
from insightforge_core.providers.browserless import (
    BrowserlessLoginBroker,
    browserless_scraper_factory,
)

from insightforge_worker.run_processor import RunDependencies

logger = logging.getLogger(__name__)

_context: Optional["WorkerContext"] = None


class WorkerContextError(RuntimeError):
    """A task ran in a process whose context was never initialised."""

    pass


@dataclass
class WorkerContext:
    settings: Settings
    database: Database
    dependencies: RunDependencies

    def dispose(self) -> None:
        self.database.dispose()


def build_analyzer(settings: Settings) -> InsightAnalyzer:
    """LLM analyzer when an endpoint is configured, keyword fallback otherwise."""
    client = build_inference_client(settings)
    suggester = ResourceSuggester(client, settings.relevance_model) if client else None
    enricher = ContentEnricher(
        fetcher=ArticleFetcher(),
        suggester=suggester,
        fetch_limit=settings.article_fetch_limit,
    )
    return InsightAnalyzer(
        client=client,
        config=AnalyzerConfig.from_settings(settings),
        image_fetcher=ImageFetcher() if client else None,
        enricher=enricher,
    )


def build_context(settings: Optional[Settings] = None) -> WorkerContext:
    """
    Raises:
        ConfigurationError: If required worker settings are missing.
    """
    settings = settings or get_settings()
    settings.validate_worker_requirements()

    dependencies = RunDependencies(
        analyzer_factory=partial(build_analyzer, settings),
        formatter=MarkdownFormatter(),
        login_broker=BrowserlessLoginBroker(
            http_url=settings.browserless_http_url,
            token=settings.browserless_token,
            session_timeout_minutes=settings.login_session_ttl_minutes,
        ),
        scraper_factory=browserless_scraper_factory(
            settings.browserless_ws_url, settings.browserless_token
        ),
        crypto=CryptoService(settings.session_encryption_key),
        artifacts_path=settings.artifacts_path,
        requeue_delay_seconds=settings.run_requeue_delay_seconds,
        cost_per_million_tokens=settings.cost_per_million_tokens,
        token_limit=settings.token_limit,
        use_scrape_cache=settings.use_scrape_cache,
    )
    logger.info(
        f"Worker context ready (analysis mode: {'ai' if settings.llm_enabled else 'keyword'})"
    )
    return WorkerContext(
        settings=settings,
        database=Database.from_settings(settings),
        dependencies=dependencies,
    )


def init_context(settings: Optional[Settings] = None) -> WorkerContext:
    global _context
    _context = build_context(settings)
    return _context


def get_context() -> WorkerContext:
    """
    Raises:
        WorkerContextError: If neither ``worker_process_init`` nor the entry
            point called ``init_context``.
    """
    if _context is None:
        raise WorkerContextError(
            "Worker context is not initialised; call init_context() at process start"
        )
    return _context


def set_context(context: Optional[WorkerContext]) -> None:
    global _context
    _context = context


def reset_context() -> None:
    """Dispose the process context (worker shutdown)."""
    global _context
    if _context is not None:
        _context.dispose()
    _context = None
