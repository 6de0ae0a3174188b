"""Usage API routes.

Provides endpoints for:
- GET /usage - Current month's run and token counters
"""

from fastapi import APIRouter

from insightforge_core.api.deps import AppSettings, CurrentUser, DBSession
from insightforge_core.api.schemas.runs import UsageResponse
from insightforge_core.domain.schemas.runs import UsageView
from insightforge_core.domain.services.usage import UsageService

router = APIRouter(prefix="/usage", tags=["usage"])


@router.get("", response_model=UsageResponse)
def get_usage(user: CurrentUser, db: DBSession, settings: AppSettings) -> UsageResponse:
    counter = UsageService(db).get_usage(user.id)
    return UsageResponse(
        usage=UsageView(
            period_start=counter.period_start.isoformat(),
            runs_used=counter.runs_used,
            tokens_used=counter.tokens_used,
            run_limit=settings.run_limit_per_month,
        )
    )
