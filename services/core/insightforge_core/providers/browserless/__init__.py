"""Browserless-backed browser provider.

- client: Session provisioning (httpx) and the login broker (Playwright over CDP)
- scraper: Profile activity scraper
- activity_parser: HTML to Post parsing
"""

from insightforge_core.providers.browserless.client import (
    BrowserlessClient,
    BrowserlessLoginBroker,
)
from insightforge_core.providers.browserless.scraper import (
    BrowserlessProfileScraper,
    browserless_scraper_factory,
)

__all__ = [
    "BrowserlessClient",
    "BrowserlessLoginBroker",
    "BrowserlessProfileScraper",
    "browserless_scraper_factory",
]
