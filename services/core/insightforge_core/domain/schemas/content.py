"""Scraped posts and fetched external articles."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ContentType(str, Enum):
    """What kind of content a scraped post carries."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    ARTICLE = "article"
    DOCUMENT = "document"
    REPOST = "repost"


class Engagement(BaseModel):
    """Reaction counters of a post."""

    likes: int = Field(default=0, ge=0)
    comments: int = Field(default=0, ge=0)
    shares: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.likes + self.comments + self.shares


class Post(BaseModel):
    """One externally authored content item."""

    id: str = Field(..., description="Unique within one author's scraped set")
    content: str = Field(default="")
    published_at: Optional[datetime] = None
    engagement: Engagement = Field(default_factory=Engagement)
    url: str = Field(default="", description="Canonical URL of the post")
    author: str = Field(default="", description="Author username")
    content_type: ContentType = ContentType.TEXT
    links: list[str] = Field(default_factory=list)
    image_urls: list[str] = Field(default_factory=list)


class ExternalArticle(BaseModel):
    """Readable article fetched from a link found in posts."""

    url: str
    title: str
    excerpt: str = ""
    content: str = ""
    source_type: str = Field(default="referenced", description="blog, referenced or website")
    source_domain: str = ""
    published_at: Optional[str] = None
    fetched_at: datetime
