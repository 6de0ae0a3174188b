"""Domain models for InsightForge.

SQLAlchemy ORM models for runs, their events and artifacts, stored login
sessions and monthly usage counters.
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DATETIME columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# =============================================================================
# ENUMS
# =============================================================================


class RunStatus(str):
    """Run status values."""

    QUEUED = "queued"
    NEEDS_LOGIN = "needs_login"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    ALL = (QUEUED, NEEDS_LOGIN, RUNNING, COMPLETED, FAILED)
    TERMINAL = (COMPLETED, FAILED)


class RunEventType(str):
    """Event types written to the run event log."""

    NEEDS_LOGIN = "needs_login"
    LOGIN_CAPTURED = "login_captured"
    STATUS_RUNNING = "status_running"
    STATUS_NEEDS_LOGIN = "status_needs_login"
    STATUS_COMPLETED = "status_completed"
    STATUS_FAILED = "status_failed"
    COMPLETED = "completed"


class OutputFormat(str):
    """Requested output styles."""

    AI_READY = "ai-ready"
    BRIEFING = "briefing"


# =============================================================================
# MODELS
# =============================================================================


class User(Base):
    """Account that submits runs."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    runs: Mapped[list["Run"]] = relationship(back_populates="user")


class Run(Base):
    """One requested extraction job."""

    __tablename__ = "runs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    status: Mapped[str] = mapped_column(
        Enum(*RunStatus.ALL, name="run_status_enum"),
        nullable=False,
        default=RunStatus.QUEUED,
    )
    config_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    nickname: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    needs_login_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    token_estimate: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cost_estimate: Mapped[Optional[float]] = mapped_column(
        Numeric(10, 4, asdecimal=False), nullable=True
    )
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    user: Mapped["User"] = relationship(back_populates="runs")
    events: Mapped[list["RunEvent"]] = relationship(
        back_populates="run", order_by="RunEvent.id"
    )
    artifacts: Mapped[list["RunArtifact"]] = relationship(back_populates="run")

    __table_args__ = (
        Index("idx_runs_user_created", "user_id", "created_at"),
        Index("idx_runs_status", "status"),
    )


class RunEvent(Base):
    """Append-only log of what happened to a run."""

    __tablename__ = "run_events"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("runs.id"), nullable=False)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    run: Mapped["Run"] = relationship(back_populates="events")

    __table_args__ = (Index("idx_run_events_run_type", "run_id", "event_type"),)


class RunArtifact(Base):
    """Generated document persisted for a run."""

    __tablename__ = "run_artifacts"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("runs.id"), nullable=False)
    artifact_type: Mapped[str] = mapped_column(String(128), nullable=False)
    storage_path: Mapped[str] = mapped_column(String(512), nullable=False)
    content_sha256: Mapped[str] = mapped_column(String(64), nullable=False)
    bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    run: Mapped["Run"] = relationship(back_populates="artifacts")

    __table_args__ = (
        UniqueConstraint("run_id", "artifact_type", name="uq_run_artifact_type"),
    )


class LoginSession(Base):
    """Captured, encrypted browser cookies for one user."""

    __tablename__ = "login_sessions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    provider: Mapped[str] = mapped_column(String(32), nullable=False, default="browserless")
    encrypted_payload: Mapped[str] = mapped_column(Text, nullable=False)
    encryption_algorithm: Mapped[str] = mapped_column(String(32), nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (Index("idx_login_sessions_user_active", "user_id", "is_active"),)


class UsageCounter(Base):
    """Per-user run and token counters for one calendar month."""

    __tablename__ = "usage_counters"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    runs_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tokens_used: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("user_id", "period_start", name="uq_usage_user_period"),
    )


__all__ = [
    "Base",
    "LoginSession",
    "OutputFormat",
    "Run",
    "RunArtifact",
    "RunEvent",
    "RunEventType",
    "RunStatus",
    "UsageCounter",
    "User",
    "utcnow",
]
