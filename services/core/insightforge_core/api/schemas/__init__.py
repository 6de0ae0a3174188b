"""API schemas."""

from insightforge_core.api.schemas.runs import (
    ErrorResponse,
    RunListResponse,
    RunResponse,
    UsageResponse,
)

__all__ = [
    "ErrorResponse",
    "RunListResponse",
    "RunResponse",
    "UsageResponse",
]
