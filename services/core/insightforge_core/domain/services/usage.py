"""Monthly usage accounting.

Counters live in ``usage_counters``, one row per user per calendar month.
Increments are a single INSERT ... ON DUPLICATE KEY UPDATE (MySQL) or
INSERT ... ON CONFLICT DO UPDATE (SQLite, PostgreSQL) statement, so two
workers finishing runs for the same user at the same time never lose an
update.

Usage:
    service = UsageService(db=session)
    service.increment_usage(user_id=1, tokens=12_500)
    service.check_run_limit(user_id=1, limit=50)
"""

import logging
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from insightforge_core.domain.models import UsageCounter

logger = logging.getLogger(__name__)


class UsageError(Exception):
    """Base exception for usage accounting."""

    pass


class RunLimitExceededError(UsageError):
    """Raised when a user has used up their monthly run allowance."""

    def __init__(self, runs_used: int, limit: int):
        self.runs_used = runs_used
        self.limit = limit
        super().__init__(f"Monthly run limit reached ({runs_used}/{limit})")


def period_start(now: Optional[datetime] = None) -> date:
    """First day of the UTC calendar month containing ``now``."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return date(now.year, now.month, 1)


class UsageService:
    """Per-user monthly run and token counters."""

    def __init__(self, db: Session):
        self.db = db

    @property
    def dialect_name(self) -> str:
        return self.db.get_bind().dialect.name

    def _upsert(self, user_id: int, runs: int, tokens: int, now: Optional[datetime]) -> None:
        values = {
            "user_id": user_id,
            "period_start": period_start(now),
            "runs_used": runs,
            "tokens_used": tokens,
        }
        table = UsageCounter.__table__
        dialect = self.dialect_name

        if dialect == "mysql":
            from sqlalchemy.dialects.mysql import insert as mysql_insert

            stmt = mysql_insert(table).values(**values)
            stmt = stmt.on_duplicate_key_update(
                runs_used=table.c.runs_used + stmt.inserted.runs_used,
                tokens_used=table.c.tokens_used + stmt.inserted.tokens_used,
            )
        elif dialect in ("sqlite", "postgresql"):
            if dialect == "sqlite":
                from sqlalchemy.dialects.sqlite import insert as dialect_insert
            else:
                from sqlalchemy.dialects.postgresql import insert as dialect_insert

            stmt = dialect_insert(table).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.user_id, table.c.period_start],
                set_={
                    "runs_used": table.c.runs_used + stmt.excluded.runs_used,
                    "tokens_used": table.c.tokens_used + stmt.excluded.tokens_used,
                },
            )
        else:
            raise UsageError(f"Atomic usage upsert not supported on dialect {dialect!r}")

        self.db.execute(stmt)
        self.db.commit()

    def increment_usage(
        self, user_id: int, tokens: int, now: Optional[datetime] = None
    ) -> None:
        """Add ``tokens`` to the user's counter for the current month."""
        if tokens < 0:
            raise ValueError("tokens must be non-negative")
        self._upsert(user_id, runs=0, tokens=tokens, now=now)
        logger.info(f"Recorded {tokens} tokens for user {user_id}")

    def increment_run_usage(self, user_id: int, now: Optional[datetime] = None) -> None:
        self._upsert(user_id, runs=1, tokens=0, now=now)

    def get_usage(self, user_id: int, now: Optional[datetime] = None) -> UsageCounter:
        """Counter row for the current month (unsaved zero row if none yet)."""
        start = period_start(now)
        counter = (
            self.db.query(UsageCounter)
            .filter(UsageCounter.user_id == user_id, UsageCounter.period_start == start)
            .populate_existing()
            .first()
        )
        if counter is None:
            return UsageCounter(user_id=user_id, period_start=start, runs_used=0, tokens_used=0)
        return counter

    def check_run_limit(
        self, user_id: int, limit: int, now: Optional[datetime] = None
    ) -> None:
        """
        Raises:
            RunLimitExceededError: If the user already used ``limit`` runs this month.
        """
        counter = self.get_usage(user_id, now)
        if counter.runs_used >= limit:
            raise RunLimitExceededError(counter.runs_used, limit)


__all__ = [
    "RunLimitExceededError",
    "UsageError",
    "UsageService",
    "period_start",
]
