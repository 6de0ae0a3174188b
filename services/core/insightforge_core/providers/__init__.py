"""Browser provider integrations for InsightForge.

This package contains provider-specific implementations:
- Base: Abstract login broker and scraper interfaces plus DTOs
- Browserless: Remote browser sessions, cookie capture and profile scraping
"""

from insightforge_core.providers.base import (
    BrowserProvisionError,
    BrowserSession,
    LoginBroker,
    ProfileScraper,
    ProviderError,
    ScrapeError,
    ScrapeResult,
    ScraperFactory,
    SessionExpiredError,
    profile_username,
)

__all__ = [
    "BrowserProvisionError",
    "BrowserSession",
    "LoginBroker",
    "ProfileScraper",
    "ProviderError",
    "ScrapeError",
    "ScrapeResult",
    "ScraperFactory",
    "SessionExpiredError",
    "profile_username",
]
