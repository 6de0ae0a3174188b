"""Base browser provider interface and DTOs.

This module defines the provider-agnostic interfaces the run processor
talks to, along with the data transfer objects they exchange:
- BrowserSession: Handle of a provisioned remote browser session
- ScrapeResult: Posts scraped from a set of profiles
- LoginBroker: Provisions a browser for the user to log in, then captures cookies
- ProfileScraper: Drives an authenticated browser over profile activity pages

Usage:
    class BrowserlessLoginBroker(LoginBroker):
        async def provision_session(self) -> BrowserSession:
            ...

        async def capture_cookies(self, session: BrowserSession) -> list[dict]:
            ...
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Optional
from urllib.parse import urlsplit

from insightforge_core.domain.schemas.content import Post


# =============================================================================
# EXCEPTIONS
# =============================================================================


class ProviderError(Exception):
    """Base exception for browser provider failures."""

    pass


class BrowserProvisionError(ProviderError):
    """Raised when a remote browser session cannot be provisioned."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class ScrapeError(ProviderError):
    """Raised when profile scraping fails (e.g. the session is no longer valid)."""

    pass


class SessionExpiredError(ScrapeError):
    """Raised when the stored cookies no longer authenticate the browser."""

    pass


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class BrowserSession:
    """Handle of a provisioned remote browser session.

    Stored as the payload of the ``needs_login`` run event so a later
    invocation can reconnect to the same browser and capture its cookies.
    """

    session_id: str
    connect_url: str
    ws_endpoint: str
    expires_at: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "BrowserSession":
        return cls(
            session_id=str(payload["session_id"]),
            connect_url=payload["connect_url"],
            ws_endpoint=payload["ws_endpoint"],
            expires_at=payload.get("expires_at"),
        )


@dataclass
class ScrapeResult:
    """Posts scraped for a run, flattened and grouped by expert username."""

    all_posts: list[Post] = field(default_factory=list)
    by_expert: dict[str, list[Post]] = field(default_factory=dict)

    def add(self, username: str, posts: list[Post]) -> None:
        self.by_expert[username] = posts
        self.all_posts.extend(posts)


def profile_username(profile_url: str) -> str:
    """Last path segment of a profile URL (``/in/<username>``)."""
    path = urlsplit(profile_url).path.rstrip("/")
    return path.rsplit("/", 1)[-1] if path else profile_url


# =============================================================================
# PROVIDER INTERFACES
# =============================================================================


class LoginBroker(ABC):
    """Provisions interactive browser sessions and captures their cookies."""

    @abstractmethod
    async def provision_session(self) -> BrowserSession:
        """Start a remote browser the user can log in through.

        Raises:
            BrowserProvisionError: If the browser service refuses the request.
        """
        ...

    @abstractmethod
    async def capture_cookies(self, session: BrowserSession) -> list[dict[str, Any]]:
        """Cookies of the site the user logs in to.

        Returns:
            The cookies; an empty list means the user has not logged in yet.
        """
        ...


class ProfileScraper(ABC):
    """Scrapes profile activity with an authenticated browser.

    Lifecycle: ``init()``, any number of ``scrape_profiles``, then
    ``close()``, which must be safe to call even if ``init`` failed.
    """

    @abstractmethod
    async def init(self) -> None:
        ...

    @abstractmethod
    async def scrape_profiles(
        self,
        profile_urls: list[str],
        post_limit: int,
        focus_topics: list[str],
    ) -> ScrapeResult:
        """
        Raises:
            ScrapeError: If the session is invalid or a page cannot be read.
        """
        ...

    @abstractmethod
    async def export_cookies(self) -> list[dict[str, Any]]:
        """Current cookies, refreshed by the site during scraping."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


ScraperFactory = Callable[[list[dict[str, Any]]], ProfileScraper]
