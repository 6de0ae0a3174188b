"""Profile scraper driving a headless Browserless browser with Playwright."""

import logging
from typing import Any, Optional

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from insightforge_core.domain.schemas.content import Post
from insightforge_core.providers.base import (
    ProfileScraper,
    ScrapeError,
    ScrapeResult,
    SessionExpiredError,
    profile_username,
)
from insightforge_core.providers.browserless.activity_parser import SITE_URL, parse_activity_html
from insightforge_core.providers.browserless.client import with_token

logger = logging.getLogger(__name__)

FEED_URL = "https://www.linkedin.com/feed/"
ACTIVITY_URL_TEMPLATE = "https://www.linkedin.com/in/{username}/recent-activity/all/"
LOGGED_IN_SELECTOR = ".global-nav__primary-link, .scaffold-layout__nav"
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
NAVIGATION_TIMEOUT_MS = 45_000
SCROLL_ROUNDS = 6
SCROLL_PAUSE_MS = 2_000
SAME_SITE_VALUES = ("Strict", "Lax", "None")


def to_cookie_params(cookies: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Stored cookies in the shape ``BrowserContext.add_cookies`` accepts."""
    params = []
    for cookie in cookies:
        if not cookie.get("name") or cookie.get("value") is None:
            continue
        param: dict[str, Any] = {
            "name": cookie["name"],
            "value": cookie["value"],
            "domain": cookie.get("domain") or ".linkedin.com",
            "path": cookie.get("path") or "/",
            "httpOnly": bool(cookie.get("httpOnly", False)),
            "secure": bool(cookie.get("secure", False)),
        }
        if cookie.get("sameSite") in SAME_SITE_VALUES:
            param["sameSite"] = cookie["sameSite"]
        expires = cookie.get("expires")
        if isinstance(expires, (int, float)) and expires > 0:
            param["expires"] = expires
        params.append(param)
    return params


class BrowserlessProfileScraper(ProfileScraper):
    """Scrapes recent activity pages with the user's captured cookies."""

    def __init__(self, ws_endpoint: str, token: str, cookies: list[dict[str, Any]]):
        self.ws_endpoint = ws_endpoint
        self.token = token
        self.cookies = cookies
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._page: Optional[Page] = None

    async def init(self) -> None:
        if self._page is not None:
            return
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.connect_over_cdp(
            with_token(self.ws_endpoint, self.token)
        )
        context = await self._browser.new_context(
            user_agent=USER_AGENT,
            viewport={"width": 1440, "height": 900},
            ignore_https_errors=True,
        )
        params = to_cookie_params(self.cookies)
        if params:
            await context.add_cookies(params)
        self._page = await context.new_page()

    def _require_page(self) -> Page:
        if self._page is None:
            raise ScrapeError("Scraper not initialized")
        return self._page

    async def ensure_logged_in(self) -> None:
        page = self._require_page()
        await page.goto(FEED_URL, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
        if await page.query_selector(LOGGED_IN_SELECTOR) is None:
            raise SessionExpiredError("Login session is no longer valid")

    async def scrape_profile(self, username: str, post_limit: int) -> list[Post]:
        page = self._require_page()
        await page.goto(
            ACTIVITY_URL_TEMPLATE.format(username=username),
            wait_until="domcontentloaded",
            timeout=NAVIGATION_TIMEOUT_MS,
        )
        await page.wait_for_timeout(SCROLL_PAUSE_MS)
        for _ in range(SCROLL_ROUNDS):
            await page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
            await page.wait_for_timeout(SCROLL_PAUSE_MS)
        html = await page.content()
        return parse_activity_html(html, username)[:post_limit]

    async def scrape_profiles(
        self,
        profile_urls: list[str],
        post_limit: int,
        focus_topics: list[str],
    ) -> ScrapeResult:
        result = ScrapeResult()
        try:
            await self.ensure_logged_in()
            for profile_url in profile_urls:
                username = profile_username(profile_url)
                posts = await self.scrape_profile(username, post_limit)
                logger.info(f"Scraped {len(posts)} posts from {username}")
                result.add(username, posts)
        except PlaywrightError as e:
            raise ScrapeError(f"Browser error while scraping: {e}") from e
        return result

    async def export_cookies(self) -> list[dict[str, Any]]:
        if self._page is None:
            return []
        cookies = await self._page.context.cookies(SITE_URL)
        return [dict(cookie) for cookie in cookies]

    async def close(self) -> None:
        try:
            if self._browser is not None:
                await self._browser.close()
        finally:
            self._browser = None
            self._page = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None


def browserless_scraper_factory(ws_endpoint: str, token: str):
    """ScraperFactory building a fresh scraper per run."""

    def factory(cookies: list[dict[str, Any]]) -> BrowserlessProfileScraper:
        return BrowserlessProfileScraper(ws_endpoint, token, cookies)

    return factory
