"""Domain services for InsightForge."""

from insightforge_core.domain.services.artifacts import ArtifactError, ArtifactStore
from insightforge_core.domain.services.login_sessions import ActiveSession, LoginSessionService
from insightforge_core.domain.services.runs import RunNotFoundError, RunService
from insightforge_core.domain.services.usage import RunLimitExceededError, UsageService

__all__ = [
    "ActiveSession",
    "ArtifactError",
    "ArtifactStore",
    "LoginSessionService",
    "RunLimitExceededError",
    "RunNotFoundError",
    "RunService",
    "UsageService",
]
