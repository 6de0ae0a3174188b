"""Run submission and status schemas."""

from datetime import datetime
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, Field, field_validator

MAX_TOPICS = 24
MIN_POST_LIMIT = 10
MAX_POST_LIMIT = 200


def canonicalize_profile_url(url: str) -> str:
    """Trim, drop query and fragment, drop trailing slashes."""
    parts = urlsplit(url.strip())
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


class RunConfig(BaseModel):
    """Input configuration of a run, stored as ``runs.config_json``."""

    profile_urls: list[str] = Field(..., min_length=1)
    topics: list[str] = Field(default_factory=list, max_length=MAX_TOPICS)
    output_format: str = Field(default="ai-ready", pattern=r"^(ai-ready|briefing)$")
    nickname: Optional[str] = Field(default=None, max_length=80)
    post_limit: int = Field(default=MAX_POST_LIMIT, ge=MIN_POST_LIMIT, le=MAX_POST_LIMIT)

    @field_validator("profile_urls")
    @classmethod
    def canonical_unique_urls(cls, v: list[str]) -> list[str]:
        seen: list[str] = []
        for raw in v:
            url = canonicalize_profile_url(raw)
            parts = urlsplit(url)
            if parts.scheme not in ("http", "https") or not parts.netloc:
                raise ValueError(f"Invalid profile URL: {raw!r}")
            if url not in seen:
                seen.append(url)
        return seen

    @field_validator("topics")
    @classmethod
    def strip_topics(cls, v: list[str]) -> list[str]:
        return [t.strip() for t in v if t and t.strip()]


class RunStatusView(BaseModel):
    """Run state exposed to API callers."""

    id: int
    status: str
    nickname: Optional[str] = None
    needs_login_url: Optional[str] = None
    token_estimate: Optional[int] = None
    cost_estimate: Optional[float] = None
    failure_reason: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class UsageView(BaseModel):
    period_start: str
    runs_used: int
    tokens_used: int
    run_limit: int
