"""Run lifecycle processing.

One invocation of ``RunProcessor.process`` handles one dequeued job for a
run and returns what the queue should do next:

- ``Dropped``: the run is gone or no longer this job's to process.
- ``Pending``: the user still has to log in; re-submit after ``delay_seconds``.
- ``Completed``: artifacts are stored and the run is marked completed.

Failures after the run started are recorded on the run (status ``failed``
plus a ``status_failed`` event) and surface as ``RunFailedError``. Errors
before that point (database, browser provisioning) propagate unchanged so
the task can retry them.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

from sqlalchemy.orm import Session

from insightforge_core.domain.models import Run, RunEventType, RunStatus
from insightforge_core.domain.schemas.aggregation import (
    AggregationConfig,
    ExpertAnalysis,
    ExpertProfile,
)
from insightforge_core.domain.schemas.runs import RunConfig
from insightforge_core.domain.services.aggregation import aggregate
from insightforge_core.domain.services.artifacts import ArtifactStore
from insightforge_core.domain.services.domain_profiles import resolve_profile
from insightforge_core.domain.services.formatting import Formatter
from insightforge_core.domain.services.insight_analyzer import Analyzer
from insightforge_core.domain.services.knowledge_bundle import build_knowledge_bundle
from insightforge_core.domain.services.login_sessions import LoginSessionService
from insightforge_core.domain.services.runs import RunService, can_transition
from insightforge_core.domain.services.usage import UsageService
from insightforge_core.infrastructure.crypto import CryptoService
from insightforge_core.observability import RunContext, get_logger
from insightforge_core.providers.base import (
    BrowserSession,
    LoginBroker,
    ProfileScraper,
    ScrapeResult,
    ScraperFactory,
    SessionExpiredError,
    profile_username,
)

logger = get_logger(__name__)


# =============================================================================
# OUTCOMES
# =============================================================================


@dataclass(frozen=True)
class Dropped:
    reason: str


@dataclass(frozen=True)
class Pending:
    """The run is waiting for the user; process it again after a delay."""

    delay_seconds: int
    reason: str


@dataclass(frozen=True)
class Completed:
    artifact_types: list[str] = field(default_factory=list)
    token_estimate: int = 0
    cost_estimate: float = 0.0


RunOutcome = Union[Dropped, Pending, Completed]


class RunFailedError(Exception):
    """The run was marked failed; the job must not be retried."""

    def __init__(self, run_id: int, reason: str):
        self.run_id = run_id
        self.reason = reason
        super().__init__(f"Run {run_id} failed: {reason}")


# =============================================================================
# DEPENDENCIES
# =============================================================================


@dataclass
class RunDependencies:
    """Collaborators injected into every RunProcessor.

    ``analyzer_factory`` is called once per job: the analyzer's HTTP clients
    belong to the event loop of that job.
    """

    analyzer_factory: Callable[[], Analyzer]
    formatter: Formatter
    login_broker: LoginBroker
    scraper_factory: ScraperFactory
    crypto: CryptoService
    artifacts_path: str
    requeue_delay_seconds: int = 5
    cost_per_million_tokens: float = 15.0
    token_limit: int = 50000
    use_scrape_cache: bool = True


def estimate_cost(tokens: int, cost_per_million_tokens: float) -> float:
    return round(tokens / 1_000_000 * cost_per_million_tokens, 4)


def aggregation_topic(topics: list[str]) -> str:
    return ", ".join(topics) if topics else resolve_profile(topics).title


def _session_expired(session: BrowserSession, now: datetime) -> bool:
    if not session.expires_at:
        return False
    try:
        expires = datetime.fromisoformat(session.expires_at.replace("Z", "+00:00"))
    except ValueError:
        return False
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires <= now


# =============================================================================
# PROCESSOR
# =============================================================================


class RunProcessor:
    """Drives one run through login handoff, scraping, analysis and storage."""

    def __init__(self, db: Session, deps: RunDependencies, task_id: Optional[str] = None):
        self.db = db
        self.deps = deps
        self.task_id = task_id
        self.runs = RunService(db)
        self.login_sessions = LoginSessionService(db, deps.crypto)
        self.usage = UsageService(db)
        self.artifacts = ArtifactStore(db, deps.artifacts_path)

    def _pending(self, ctx: RunContext, reason: str) -> Pending:
        logger.info(f"Run waiting: {reason}", context=ctx)
        return Pending(delay_seconds=self.deps.requeue_delay_seconds, reason=reason)

    async def process(self, run_id: int) -> RunOutcome:
        ctx = RunContext(run_id=run_id, task_id=self.task_id, stage="load")
        run = self.runs.get_run(run_id)
        if run is None:
            logger.warning("Run not found, dropping job", context=ctx)
            return Dropped("missing")
        if run.status in RunStatus.TERMINAL:
            logger.info(f"Run already {run.status}, dropping job", context=ctx)
            return Dropped(run.status)

        ctx = RunContext(run_id=run_id, user_id=run.user_id, task_id=self.task_id, stage="login")
        session = self.login_sessions.get_active_session(run.user_id)
        if session is not None:
            return await self._execute(run, session.cookies, session.expires_at, ctx)

        outcome = await self._login_handoff(run, ctx)
        if not isinstance(outcome, list):
            return outcome
        return await self._execute(run, outcome, None, ctx)

    async def _login_handoff(
        self, run: Run, ctx: RunContext
    ) -> Union[RunOutcome, list[dict[str, Any]]]:
        """Provision a login browser, or capture cookies from the pending one.

        Returns the captured cookies when the user has logged in, otherwise
        the outcome to hand back to the queue.

        Raises:
            RunFailedError: If the run is already running and its login
                session is gone; a running run cannot wait for login again.
        """
        if not can_transition(run.status, RunStatus.NEEDS_LOGIN):
            reason = "login session no longer active"
            logger.warning(f"Run is {run.status} without an active login session", context=ctx)
            self.runs.mark_failed(run.id, reason)
            raise RunFailedError(run.id, reason)

        event = self.runs.latest_event(run.id, RunEventType.NEEDS_LOGIN)
        pending = BrowserSession.from_payload(event.payload_json) if event else None

        if pending is None or _session_expired(pending, datetime.now(timezone.utc)):
            browser = await self.deps.login_broker.provision_session()
            if not self.runs.mark_needs_login(run.id, browser.connect_url):
                current = self.runs.get_run(run.id)
                status = current.status if current is not None else "missing"
                logger.warning(f"Run moved to {status} while provisioning login", context=ctx)
                return Dropped(status)
            self.runs.record_event(run.id, RunEventType.NEEDS_LOGIN, browser.to_payload())
            return self._pending(ctx, f"login session {browser.session_id} provisioned")

        try:
            cookies = await self.deps.login_broker.capture_cookies(pending)
        except Exception as e:
            logger.warning(f"Login session not ready: {e}", context=ctx)
            return self._pending(ctx, "cookie capture failed")
        if not cookies:
            return self._pending(ctx, "user has not logged in yet")

        self.login_sessions.save_session(run.user_id, cookies)
        self.runs.record_event(
            run.id,
            RunEventType.LOGIN_CAPTURED,
            {"session_id": pending.session_id, "cookies": len(cookies)},
        )
        logger.info(f"Captured {len(cookies)} cookies", context=ctx)
        return cookies

    async def _execute(
        self,
        run: Run,
        cookies: list[dict[str, Any]],
        session_expires_at: Optional[datetime],
        ctx: RunContext,
    ) -> RunOutcome:
        if not self.runs.mark_running(run.id):
            return Dropped("terminal")
        ctx = ctx.with_stage("scrape")

        scraper: Optional[ProfileScraper] = None
        analyzer = self.deps.analyzer_factory()
        try:
            config = self.runs.load_config(run)
            scraped = self._load_cached_posts(run.id, config)
            if scraped is None:
                scraper = self.deps.scraper_factory(cookies)
                await scraper.init()
                scraped = await scraper.scrape_profiles(
                    config.profile_urls, config.post_limit, config.topics
                )
                self._cache_posts(run.id, scraped)
            logger.info(
                f"Scraped {len(scraped.all_posts)} posts from {len(scraped.by_expert)} experts",
                context=ctx,
            )

            ctx = ctx.with_stage("analyze")
            artifact_types, tokens = await self._analyze_and_store(
                run, config, scraped, analyzer, ctx
            )

            # Refreshed cookies are saved before the run can be completed
            if scraper is not None:
                refreshed = await scraper.export_cookies()
                if refreshed:
                    self.login_sessions.save_session(
                        run.user_id, refreshed, expires_at=session_expires_at
                    )

            completed = self._complete(run, scraped, artifact_types, tokens)
        except Exception as e:
            reason = str(e) or type(e).__name__
            logger.error(f"Run processing failed: {reason}", context=ctx, exc_info=True)
            if isinstance(e, SessionExpiredError):
                self.login_sessions.deactivate_sessions(run.user_id)
            self.db.rollback()
            self.runs.mark_failed(run.id, reason)
            raise RunFailedError(run.id, reason) from e
        finally:
            try:
                if scraper is not None:
                    await scraper.close()
            finally:
                await analyzer.close()

        logger.info(
            f"Run completed: {len(completed.artifact_types)} artifacts, "
            f"{completed.token_estimate} tokens",
            context=ctx.with_stage("done"),
        )
        return completed

    async def _analyze_and_store(
        self,
        run: Run,
        config: RunConfig,
        scraped: ScrapeResult,
        analyzer: Analyzer,
        ctx: RunContext,
    ) -> tuple[list[str], int]:
        """Analyze, build the bundle and store it; returns artifact types and tokens."""
        usernames = list(scraped.by_expert)

        aggregate_analysis, *per_expert = await asyncio.gather(
            analyzer.analyze(scraped.all_posts, config.topics),
            *(
                analyzer.analyze(scraped.by_expert[username], config.topics, username)
                for username in usernames
            ),
        )
        expert_analyses = [
            ExpertAnalysis(
                expert=ExpertProfile(username=username, post_limit=config.post_limit),
                analysis=analysis,
            )
            for username, analysis in zip(usernames, per_expert)
        ]

        aggregated = None
        if len(expert_analyses) > 1:
            aggregated = aggregate(
                expert_analyses,
                AggregationConfig(
                    topic=aggregation_topic(config.topics),
                    experts=[ea.expert for ea in expert_analyses],
                    token_limit=self.deps.token_limit,
                ),
            )

        ctx = ctx.with_stage("store")
        bundle = build_knowledge_bundle(
            aggregate_analysis,
            expert_analyses,
            self.deps.formatter,
            config.topics,
            posts_by_expert=scraped.by_expert,
            aggregated=aggregated,
            token_limit=self.deps.token_limit,
        )
        for document in bundle.documents:
            self.artifacts.store(run.id, document.artifact_type, document.content)
        logger.info(f"Stored {len(bundle.documents)} artifacts", context=ctx)

        tokens = aggregate_analysis.token_usage.total_tokens + sum(
            analysis.token_usage.total_tokens for analysis in per_expert
        )
        return bundle.artifact_types, tokens

    def _complete(
        self, run: Run, scraped: ScrapeResult, artifact_types: list[str], tokens: int
    ) -> Completed:
        cost = estimate_cost(tokens, self.deps.cost_per_million_tokens)
        self.usage.increment_usage(run.user_id, tokens)
        self.runs.complete_run(
            run.id,
            token_estimate=tokens,
            cost_estimate=cost,
            payload={
                "tokens_used": tokens,
                "experts_analyzed": len(scraped.by_expert),
                "posts_analyzed": len(scraped.all_posts),
                "artifacts": artifact_types,
            },
        )
        return Completed(artifact_types=artifact_types, token_estimate=tokens, cost_estimate=cost)

    # -------------------------------------------------------------------------
    # Scrape cache
    # -------------------------------------------------------------------------

    def _load_cached_posts(self, run_id: int, config: RunConfig) -> Optional[ScrapeResult]:
        """Cached posts for every profile of the run, or None on any miss."""
        if not self.deps.use_scrape_cache:
            return None
        result = ScrapeResult()
        for profile_url in config.profile_urls:
            username = profile_username(profile_url)
            posts = self.artifacts.load_scrape_cache(run_id, username)
            if posts is None:
                return None
            result.add(username, posts)
        logger.info(f"Reusing cached posts for run {run_id}")
        return result

    def _cache_posts(self, run_id: int, scraped: ScrapeResult) -> None:
        if not self.deps.use_scrape_cache:
            return
        for username, posts in scraped.by_expert.items():
            self.artifacts.save_scrape_cache(run_id, username, posts)


__all__ = [
    "Completed",
    "Dropped",
    "Pending",
    "RunDependencies",
    "RunFailedError",
    "RunOutcome",
    "RunProcessor",
    "estimate_cost",
]
