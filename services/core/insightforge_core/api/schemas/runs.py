"""Runs and usage API schemas."""

from pydantic import BaseModel, Field

from insightforge_core.domain.schemas.runs import RunStatusView, UsageView


class RunResponse(BaseModel):
    """Response schema for a single run."""

    run: RunStatusView


class RunListResponse(BaseModel):
    """Response schema for listing runs, newest first."""

    runs: list[RunStatusView] = Field(default_factory=list)


class UsageResponse(BaseModel):
    """Response schema for the current month's usage."""

    usage: UsageView


class ErrorResponse(BaseModel):
    """Error body returned by the API."""

    detail: str
