"""Runs API routes.

Provides endpoints for:
- POST /runs - Submit a run
- GET /runs - List the caller's runs
- GET /runs/{run_id} - Get a run's status
"""

import logging

from fastapi import APIRouter, HTTPException, status

from insightforge_core.api.deps import AppSettings, CurrentUser, DBSession, RunQueueDep
from insightforge_core.api.schemas.runs import ErrorResponse, RunListResponse, RunResponse
from insightforge_core.domain.schemas.runs import RunConfig
from insightforge_core.domain.services.runs import RunNotFoundError, RunService
from insightforge_core.domain.services.usage import RunLimitExceededError, UsageService

router = APIRouter(prefix="/runs", tags=["runs"])
logger = logging.getLogger(__name__)


@router.post(
    "",
    response_model=RunResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Too many profiles"},
        429: {"model": ErrorResponse, "description": "Monthly run limit reached"},
    },
)
def create_run(
    config: RunConfig,
    user: CurrentUser,
    db: DBSession,
    settings: AppSettings,
    queue: RunQueueDep,
) -> RunResponse:
    """Validate, record and enqueue a new run."""
    if len(config.profile_urls) > settings.max_profiles_per_run:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"You can analyze up to {settings.max_profiles_per_run} experts per run",
        )

    usage = UsageService(db)
    try:
        usage.check_run_limit(user.id, settings.run_limit_per_month)
    except RunLimitExceededError as e:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(e))

    runs = RunService(db)
    run = runs.create_run(user.id, config)
    usage.increment_run_usage(user.id)
    queue.enqueue_run(run.id)

    return RunResponse(run=runs.to_status_view(run))


@router.get("", response_model=RunListResponse)
def list_runs(user: CurrentUser, db: DBSession) -> RunListResponse:
    runs = RunService(db)
    return RunListResponse(runs=[runs.to_status_view(r) for r in runs.list_runs(user.id)])


@router.get(
    "/{run_id}",
    response_model=RunResponse,
    responses={404: {"model": ErrorResponse, "description": "Run not found"}},
)
def get_run(run_id: int, user: CurrentUser, db: DBSession) -> RunResponse:
    runs = RunService(db)
    try:
        run = runs.get_user_run(user.id, run_id)
    except RunNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return RunResponse(run=runs.to_status_view(run))
