"""Pytest configuration and fixtures for worker tests.

These fixtures enable testing run processing without requiring:
- Running Redis/Celery
- A MySQL server (SQLite in-memory instead)
- A remote browser or LLM endpoint (fakes instead)
"""

import os
from datetime import datetime, timezone
from typing import Any, Callable, Generator
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment variables before importing celery_app
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("MYSQL_URL", "sqlite://")

from sqlalchemy import StaticPool, create_engine, event  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from insightforge_core.domain.models import Base, Run, RunStatus, User  # noqa: E402
from insightforge_core.domain.schemas.content import Engagement, Post  # noqa: E402
from insightforge_core.domain.schemas.insights import (  # noqa: E402
    Insight,
    InsightAnalysis,
    InsightCategory,
    TokenUsage,
)
from insightforge_core.domain.schemas.runs import RunConfig  # noqa: E402
from insightforge_core.domain.services.formatting import MarkdownFormatter  # noqa: E402
from insightforge_core.infra.db import Database  # noqa: E402
from insightforge_core.infrastructure.crypto import CryptoService  # noqa: E402
from insightforge_core.providers.base import (  # noqa: E402
    BrowserSession,
    ScrapeResult,
    profile_username,
)

from insightforge_worker.run_processor import RunDependencies  # noqa: E402

JANE = "https://www.linkedin.com/in/jane-doe"


# -----------------------------------------------------------------------------
# Database Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def sync_engine():
    """SQLite in-memory engine shared by every session of a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # SQLite only autoincrements INTEGER PRIMARY KEY, so compile BIGINT as INTEGER
    from sqlalchemy.dialects import sqlite

    original_visit = sqlite.dialect.type_compiler_cls.visit_BIGINT
    sqlite.dialect.type_compiler_cls.visit_BIGINT = lambda self, type_, **kw: "INTEGER"
    try:
        Base.metadata.create_all(bind=engine)
    finally:
        sqlite.dialect.type_compiler_cls.visit_BIGINT = original_visit

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def database(sync_engine) -> Database:
    return Database("sqlite://", engine=sync_engine)


@pytest.fixture
def db_session(database) -> Generator[Session, None, None]:
    session = database.session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db_session) -> Callable[..., User]:
    counter = iter(range(1, 1000))

    def _make_user() -> User:
        user = User(email=f"user{next(counter)}@example.com")
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_run(db_session, make_user) -> Callable[..., Run]:
    def _make_run(
        status: str = RunStatus.QUEUED,
        profile_urls: list[str] = None,
        user: User = None,
        **config: Any,
    ) -> Run:
        user = user or make_user()
        run_config = RunConfig(
            profile_urls=profile_urls or [JANE],
            topics=["cold outreach"],
            **config,
        )
        run = Run(user_id=user.id, status=status, config_json=run_config.model_dump())
        db_session.add(run)
        db_session.commit()
        return run

    return _make_run


@pytest.fixture
def make_post() -> Callable[..., Post]:
    counter = iter(range(1, 10000))

    def _make_post(author: str = "jane-doe", content: str = "Open with a question") -> Post:
        number = next(counter)
        return Post(
            id=f"urn:li:activity:{number}",
            content=content,
            published_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
            engagement=Engagement(likes=10, comments=2),
            url=f"https://www.linkedin.com/feed/update/urn:li:activity:{number}",
            author=author,
        )

    return _make_post


# -----------------------------------------------------------------------------
# Collaborator Fakes
# -----------------------------------------------------------------------------


@pytest.fixture
def crypto() -> CryptoService:
    return CryptoService(CryptoService.generate_key())


@pytest.fixture
def mock_analyzer() -> MagicMock:
    """Analyzer returning one insight and 120 tokens per call."""

    async def _analyze(posts, focus_topics, username=""):
        return InsightAnalysis(
            insights=[
                Insight(
                    id=f"{username or 'all'}-1",
                    category=InsightCategory.TACTICS,
                    text="Open cold emails with a question",
                    confidence=0.8,
                    source_post_id=posts[0].id if posts else None,
                )
            ],
            actionable_items=["Ask a question in the first line"],
            summary=f"{len(posts)} posts analyzed",
            total_posts=len(posts),
            relevant_posts=len(posts),
            token_usage=TokenUsage(prompt_tokens=100, completion_tokens=20),
            analysis_mode="ai",
        )

    analyzer = MagicMock()
    analyzer.analyze = AsyncMock(side_effect=_analyze)
    analyzer.close = AsyncMock()
    return analyzer


@pytest.fixture
def login_session() -> BrowserSession:
    return BrowserSession(
        session_id="bl-1",
        connect_url="https://browserless.test/live/bl-1",
        ws_endpoint="wss://browserless.test/session/bl-1",
    )


@pytest.fixture
def mock_login_broker(login_session) -> MagicMock:
    broker = MagicMock()
    broker.provision_session = AsyncMock(return_value=login_session)
    broker.capture_cookies = AsyncMock(return_value=[{"name": "li_at", "value": "captured"}])
    return broker


@pytest.fixture
def mock_scraper(make_post) -> MagicMock:
    """Scraper returning two posts per profile."""

    async def _scrape(profile_urls, post_limit, focus_topics):
        result = ScrapeResult()
        for url in profile_urls:
            username = profile_username(url)
            result.add(username, [make_post(author=username), make_post(author=username)])
        return result

    scraper = MagicMock()
    scraper.init = AsyncMock()
    scraper.scrape_profiles = AsyncMock(side_effect=_scrape)
    scraper.export_cookies = AsyncMock(return_value=[{"name": "li_at", "value": "refreshed"}])
    scraper.close = AsyncMock()
    return scraper


@pytest.fixture
def deps(tmp_path, mock_analyzer, mock_login_broker, mock_scraper, crypto) -> RunDependencies:
    return RunDependencies(
        analyzer_factory=MagicMock(return_value=mock_analyzer),
        formatter=MarkdownFormatter(),
        login_broker=mock_login_broker,
        scraper_factory=MagicMock(return_value=mock_scraper),
        crypto=crypto,
        artifacts_path=str(tmp_path / "artifacts"),
        requeue_delay_seconds=5,
        cost_per_million_tokens=15.0,
    )
