"""Run ledger service.

Creates runs, moves them through their lifecycle and keeps the event log.

Every status change is a conditional UPDATE that only matches when the run
is in one of the statuses allowed to precede the target, so a terminal run
can never be overwritten even if two workers race on it. A successful
change writes one ``status_<status>`` event row in the same commit.

    queued -> needs_login -> running -> completed | failed
"""

import logging
from typing import Any, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from insightforge_core.domain.models import (
    Run,
    RunEvent,
    RunEventType,
    RunStatus,
    User,
    utcnow,
)
from insightforge_core.domain.schemas.runs import RunConfig, RunStatusView

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 100

# Target status -> statuses it may be entered from
ALLOWED_TRANSITIONS: dict[str, tuple[str, ...]] = {
    RunStatus.NEEDS_LOGIN: (RunStatus.QUEUED, RunStatus.NEEDS_LOGIN),
    RunStatus.RUNNING: (RunStatus.QUEUED, RunStatus.NEEDS_LOGIN, RunStatus.RUNNING),
    RunStatus.COMPLETED: (RunStatus.RUNNING,),
    RunStatus.FAILED: (RunStatus.QUEUED, RunStatus.NEEDS_LOGIN, RunStatus.RUNNING),
}


class RunServiceError(Exception):
    """Base exception for run service errors."""

    pass


class RunNotFoundError(RunServiceError):
    """Raised when a run does not exist (or is not visible to the caller)."""

    pass


def can_transition(current: str, target: str) -> bool:
    return current in ALLOWED_TRANSITIONS.get(target, ())


class RunService:
    """Service for run records and their event log."""

    def __init__(self, db: Session):
        self.db = db

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    def get_or_create_user(self, email: str) -> User:
        email = email.strip().lower()
        user = self.db.query(User).filter(User.email == email).first()
        if user is None:
            user = User(email=email)
            self.db.add(user)
            self.db.commit()
            logger.info(f"Created user {user.id}")
        return user

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def create_run(self, user_id: int, config: RunConfig) -> Run:
        run = Run(
            user_id=user_id,
            status=RunStatus.QUEUED,
            config_json=config.model_dump(),
            nickname=config.nickname,
        )
        self.db.add(run)
        self.db.commit()
        logger.info(f"Created run {run.id} for user {user_id}")
        return run

    def get_run(self, run_id: int) -> Optional[Run]:
        # Status updates bypass the identity map, so always reload
        return self.db.get(Run, run_id, populate_existing=True)

    def get_user_run(self, user_id: int, run_id: int) -> Run:
        """
        Raises:
            RunNotFoundError: If the run does not exist or belongs to another user.
        """
        run = self.get_run(run_id)
        if run is None or run.user_id != user_id:
            raise RunNotFoundError(f"Run {run_id} not found")
        return run

    def list_runs(self, user_id: int, limit: int = DEFAULT_LIST_LIMIT) -> list[Run]:
        return (
            self.db.query(Run)
            .filter(Run.user_id == user_id)
            .order_by(Run.created_at.desc(), Run.id.desc())
            .limit(limit)
            .all()
        )

    def load_config(self, run: Run) -> RunConfig:
        return RunConfig.model_validate(run.config_json)

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def record_event(
        self,
        run_id: int,
        event_type: str,
        payload: Optional[dict[str, Any]] = None,
        commit: bool = True,
    ) -> RunEvent:
        event = RunEvent(run_id=run_id, event_type=event_type, payload_json=payload)
        self.db.add(event)
        if commit:
            self.db.commit()
        return event

    def latest_event(self, run_id: int, event_type: str) -> Optional[RunEvent]:
        return (
            self.db.query(RunEvent)
            .filter(RunEvent.run_id == run_id, RunEvent.event_type == event_type)
            .order_by(RunEvent.id.desc())
            .first()
        )

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def transition(
        self,
        run_id: int,
        status: str,
        event_payload: Optional[dict[str, Any]] = None,
        **fields: Any,
    ) -> bool:
        """Move a run to ``status`` if the transition is allowed.

        Extra keyword arguments are written to the run row alongside the
        status (e.g. ``needs_login_url``, ``failure_reason``).

        Returns:
            True if the row was updated, False if the run is missing or its
            current status does not allow the transition.
        """
        if status not in ALLOWED_TRANSITIONS:
            raise ValueError(f"Cannot transition to {status!r}")

        now = utcnow()
        values: dict[str, Any] = {"status": status, "updated_at": now, **fields}
        if status == RunStatus.RUNNING:
            values["started_at"] = func.coalesce(Run.started_at, now)
        if status in RunStatus.TERMINAL:
            values["completed_at"] = now

        result = self.db.execute(
            update(Run)
            .where(Run.id == run_id, Run.status.in_(ALLOWED_TRANSITIONS[status]))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            logger.warning(f"Run {run_id}: transition to {status} rejected")
            return False

        self.record_event(run_id, f"status_{status}", event_payload, commit=False)
        self.db.commit()
        logger.info(f"Run {run_id} -> {status}")
        return True

    def mark_needs_login(self, run_id: int, login_url: str) -> bool:
        return self.transition(
            run_id,
            RunStatus.NEEDS_LOGIN,
            event_payload={"url": login_url},
            needs_login_url=login_url,
        )

    def mark_running(self, run_id: int) -> bool:
        return self.transition(run_id, RunStatus.RUNNING, needs_login_url=None)

    def complete_run(
        self,
        run_id: int,
        token_estimate: int,
        cost_estimate: float,
        payload: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Mark a running run completed and write the ``completed`` event."""
        updated = self.transition(
            run_id,
            RunStatus.COMPLETED,
            token_estimate=token_estimate,
            cost_estimate=cost_estimate,
            failure_reason=None,
        )
        if updated:
            self.record_event(run_id, RunEventType.COMPLETED, payload)
        return updated

    def mark_failed(self, run_id: int, reason: str) -> bool:
        return self.transition(
            run_id,
            RunStatus.FAILED,
            event_payload={"reason": reason},
            failure_reason=reason,
        )

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    @staticmethod
    def to_status_view(run: Run) -> RunStatusView:
        return RunStatusView(
            id=run.id,
            status=run.status,
            nickname=run.nickname,
            needs_login_url=run.needs_login_url,
            token_estimate=run.token_estimate,
            cost_estimate=run.cost_estimate,
            failure_reason=run.failure_reason,
            created_at=run.created_at,
            started_at=run.started_at,
            completed_at=run.completed_at,
        )


__all__ = [
    "ALLOWED_TRANSITIONS",
    "RunNotFoundError",
    "RunService",
    "RunServiceError",
    "can_transition",
]
