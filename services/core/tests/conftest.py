"""Pytest configuration and fixtures for InsightForge Core tests.

This module provides fixtures for:
- Database: SQLite in-memory engine shared through StaticPool
- Settings: safe defaults pointing at a temporary artifacts directory
- Data helpers: users, runs and posts
"""

from collections.abc import Generator
from datetime import datetime, timezone
from typing import Any, Callable

import pytest
from sqlalchemy import StaticPool, create_engine, event
from sqlalchemy.orm import Session

from insightforge_core.config import Settings
from insightforge_core.domain.models import Base, Run, RunStatus, User
from insightforge_core.domain.schemas.content import Engagement, Post
from insightforge_core.domain.schemas.runs import RunConfig
from insightforge_core.infra.db import Database
from insightforge_core.infrastructure.crypto import CryptoService


# -----------------------------------------------------------------------------
# Test Settings
# -----------------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        mysql_url="sqlite://",
        celery_broker_url="memory://",
        celery_result_backend="cache+memory://",
        artifacts_path=str(tmp_path / "artifacts"),
        session_encryption_key=CryptoService.generate_key(),
        api_token="test-api-token",
        browserless_http_url="http://browserless.test",
        browserless_ws_url="ws://browserless.test",
        browserless_token="browserless-token",
        run_limit_per_month=3,
        max_profiles_per_run=2,
        log_json=False,
    )


@pytest.fixture
def crypto(test_settings) -> CryptoService:
    return CryptoService(test_settings.session_encryption_key)


# -----------------------------------------------------------------------------
# Database Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def sync_engine():
    """Create a synchronous SQLite in-memory engine for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key support for SQLite
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
    """Database wrapper around the shared in-memory engine."""
    return Database("sqlite://", engine=sync_engine)


@pytest.fixture
def db_session(database) -> Generator[Session, None, None]:
    """Create a synchronous database session for testing."""
    session = database.session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# -----------------------------------------------------------------------------
# Test Data Helpers
# -----------------------------------------------------------------------------


@pytest.fixture
def make_user(db_session) -> Callable[..., User]:
    counter = iter(range(1, 1000))

    def _make_user(email: str = "") -> User:
        user = User(email=email or f"user{next(counter)}@example.com")
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_run(db_session, make_user) -> Callable[..., Run]:
    def _make_run(
        user: User = None,
        status: str = RunStatus.QUEUED,
        profile_urls: list[str] = None,
        topics: list[str] = None,
        **config: Any,
    ) -> Run:
        user = user or make_user()
        run_config = RunConfig(
            profile_urls=profile_urls or ["https://www.linkedin.com/in/jane-doe"],
            topics=topics if topics is not None else ["cold outreach"],
            **config,
        )
        run = Run(
            user_id=user.id,
            status=status,
            config_json=run_config.model_dump(),
            nickname=run_config.nickname,
        )
        db_session.add(run)
        db_session.commit()
        return run

    return _make_run


@pytest.fixture
def make_post() -> Callable[..., Post]:
    counter = iter(range(1, 10000))

    def _make_post(content: str = "A post about sales", **kwargs: Any) -> Post:
        number = next(counter)
        defaults: dict[str, Any] = {
            "id": f"urn:li:activity:{number}",
            "content": content,
            "published_at": datetime(2025, 1, 1, tzinfo=timezone.utc),
            "engagement": Engagement(likes=10, comments=2, shares=1),
            "url": f"https://www.linkedin.com/feed/update/urn:li:activity:{number}",
            "author": "jane-doe",
        }
        defaults.update(kwargs)
        return Post(**defaults)

    return _make_post


# -----------------------------------------------------------------------------
# Cleanup Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset the settings cache before each test."""
    from insightforge_core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
