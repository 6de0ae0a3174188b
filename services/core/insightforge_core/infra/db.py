"""Database infrastructure for InsightForge Core.

Engines and session factories are owned by an explicit ``Database`` object
built by the process entry point (API lifespan or worker init) and passed
to whatever needs it.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from insightforge_core.config import Settings


class Database:
    """Synchronous engine plus session factory for one process."""

    def __init__(self, url: str, engine: Optional[Engine] = None, echo: bool = False):
        self.url = url
        if engine is None:
            engine = create_engine(
                url,
                pool_pre_ping=True,
                pool_recycle=3600,
                echo=echo,
            )
        self.engine = engine
        self.session_factory: sessionmaker[Session] = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(settings.mysql_url)

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def session(self) -> Session:
        """Open a new session; the caller owns closing it."""
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Session that commits on success and rolls back on error."""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
