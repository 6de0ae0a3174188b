"""Browserless session provisioning and login broker.

Sessions are provisioned over the Browserless HTTP API with httpx; the
browser itself is driven with Playwright over CDP.

Usage:
    broker = BrowserlessLoginBroker(
        http_url="https://browserless.internal",
        token="...",
        session_timeout_minutes=30,
    )
    session = await broker.provision_session()   # user logs in via session.connect_url
    cookies = await broker.capture_cookies(session)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional
from urllib.parse import urlencode

import httpx
from playwright.async_api import Browser, async_playwright

from insightforge_core.providers.base import BrowserProvisionError, BrowserSession, LoginBroker
from insightforge_core.providers.browserless.activity_parser import SITE_URL

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 30.0
COOKIE_SETTLE_SECONDS = 2.0
# Present only once the user is signed in
AUTH_COOKIE = "li_at"


def with_token(endpoint: str, token: str) -> str:
    separator = "&" if "?" in endpoint else "?"
    return f"{endpoint}{separator}{urlencode({'token': token})}"


@asynccontextmanager
async def connect_browser(ws_endpoint: str, token: str) -> AsyncIterator[Browser]:
    """Playwright browser attached over CDP; disconnects on exit."""
    async with async_playwright() as playwright:
        browser = await playwright.chromium.connect_over_cdp(with_token(ws_endpoint, token))
        try:
            yield browser
        finally:
            await browser.close()


class BrowserlessClient:
    """Thin httpx wrapper around the Browserless session API."""

    def __init__(
        self,
        http_url: str,
        token: str,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.http_url = http_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._http_client = http_client

    async def _post(self, path: str, body: dict[str, Any]) -> httpx.Response:
        url = f"{self.http_url}{path}"
        params = {"token": self.token}
        if self._http_client is not None:
            return await self._http_client.post(url, params=params, json=body, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(url, params=params, json=body)

    async def create_session(
        self, headless: bool = False, keep_alive: bool = True, timeout_ms: int = 0
    ) -> BrowserSession:
        """
        Raises:
            BrowserProvisionError: On transport errors, non-2xx responses or
                a response without the session fields.
        """
        body: dict[str, Any] = {
            "headless": headless,
            "keepAlive": keep_alive,
            "blockAds": True,
            "recordVideo": False,
        }
        if timeout_ms:
            body["timeout"] = timeout_ms

        try:
            response = await self._post("/sessions", body)
        except httpx.HTTPError as e:
            raise BrowserProvisionError(f"Browserless request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(
                f"Browserless session provisioning failed: {response.status_code} {response.text[:200]}"
            )
            raise BrowserProvisionError(
                "Browserless session provisioning failed", response.status_code
            )

        try:
            data = response.json()
            return BrowserSession(
                session_id=str(data["id"]),
                connect_url=data["connectUrl"],
                ws_endpoint=data["wsEndpoint"],
                expires_at=data.get("expiresAt"),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise BrowserProvisionError(f"Malformed Browserless session response: {e}") from e


class BrowserlessLoginBroker(LoginBroker):
    """LoginBroker backed by a headful Browserless session."""

    def __init__(
        self,
        http_url: str,
        token: str,
        session_timeout_minutes: int = 30,
        client: Optional[BrowserlessClient] = None,
        site_url: str = SITE_URL,
    ):
        self.token = token
        self.session_timeout_minutes = session_timeout_minutes
        self.client = client or BrowserlessClient(http_url, token)
        self.site_url = site_url

    async def provision_session(self) -> BrowserSession:
        session = await self.client.create_session(
            headless=False,
            keep_alive=True,
            timeout_ms=self.session_timeout_minutes * 60 * 1000,
        )
        logger.info(f"Provisioned Browserless session {session.session_id}")
        return session

    async def capture_cookies(self, session: BrowserSession) -> list[dict[str, Any]]:
        async with connect_browser(session.ws_endpoint, self.token) as browser:
            if browser.contexts:
                context = browser.contexts[0]
            else:
                context = await browser.new_context()
            await asyncio.sleep(COOKIE_SETTLE_SECONDS)
            cookies = await context.cookies(self.site_url)
        if not any(cookie.get("name") == AUTH_COOKIE for cookie in cookies):
            logger.info(f"Session {session.session_id} is not signed in yet")
            return []
        logger.info(f"Captured {len(cookies)} cookies from session {session.session_id}")
        return [dict(cookie) for cookie in cookies]
