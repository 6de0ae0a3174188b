"""External article enrichment for scraped posts.

Experts often link to long-form writing (blogs, playbooks, newsletters)
that holds more detail than the post itself. This module picks candidate
links out of posts, fetches them and extracts readable text.

Enrichment is best effort: every fetch failure is logged and skipped, and
webinar or event registration pages are never fetched.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Optional
from urllib.parse import urlsplit, urlunsplit

import httpx
from bs4 import BeautifulSoup

from insightforge_core.domain.schemas.content import ExternalArticle, Post

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

EVENT_PLATFORM_DOMAINS = (
    "zoom.us",
    "eventbrite.com",
    "hopin.com",
    "brighttalk.com",
    "on24.com",
    "webex.com",
    "gotomeeting.com",
    "demio.com",
    "livestorm.com",
)

EVENT_PATH_KEYWORDS = (
    "/webinar",
    "/event",
    "/register",
    "/registration",
    "/rsvp",
    "/live-event",
    "/upcoming-event",
    "/join-webinar",
    "/watch-webinar",
)

EVENT_QUERY_KEYS = ("register=", "event=")

MAIN_CONTENT_SELECTORS = (
    "article",
    "main",
    ".post-content",
    ".entry-content",
    ".blog-post",
    ".blog-post-content",
    ".content-area",
    "#content",
)

SOURCE_NETWORK_DOMAIN = "linkedin.com"
BLOG_LINK_PATTERN = re.compile(r"blog|insight|playbook|guide", re.IGNORECASE)

MAX_CANDIDATE_LINKS = 20
DEFAULT_FETCH_LIMIT = 15
FALLBACK_PARAGRAPHS = 15
EXCERPT_SENTENCES = 3
DEFAULT_TIMEOUT = 15.0
DEFAULT_BATCH_SIZE = 5
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)


# =============================================================================
# URL HELPERS
# =============================================================================


def is_webinar_or_event_url(url: str) -> bool:
    """True for event platforms and registration-style pages."""
    lower = url.lower()
    parts = urlsplit(lower)
    host = parts.netloc.split(":")[0]

    if any(host == d or host.endswith("." + d) for d in EVENT_PLATFORM_DOMAINS):
        return True
    if any(keyword in parts.path for keyword in EVENT_PATH_KEYWORDS):
        return True
    query = parts.query
    return any(query.startswith(key) or f"&{key}" in query for key in EVENT_QUERY_KEYS)


def strip_query(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def url_domain(url: str) -> str:
    return urlsplit(url).netloc.split(":")[0]


def collect_candidate_links(posts: Iterable[Post], limit: int = MAX_CANDIDATE_LINKS) -> list[str]:
    """Outbound links worth fetching, in first-seen order.

    Links back into the source network and event pages are dropped, and
    query strings are removed before de-duplication.
    """
    seen: list[str] = []
    for post in posts:
        for link in post.links:
            if not link or not link.startswith("http"):
                continue
            if SOURCE_NETWORK_DOMAIN in link:
                continue
            if is_webinar_or_event_url(link):
                logger.debug(f"Skipping webinar/event link: {link}")
                continue
            url = strip_query(link)
            if url not in seen:
                seen.append(url)
    return seen[:limit]


# =============================================================================
# HTML EXTRACTION
# =============================================================================


def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def _meta(soup: BeautifulSoup, *keys: str) -> Optional[str]:
    for key in keys:
        tag = soup.find("meta", attrs={"property": key}) or soup.find(
            "meta", attrs={"name": key}
        )
        if tag and tag.get("content"):
            return _clean(tag["content"])
    return None


def _first_sentences(text: str, count: int) -> str:
    sentences = re.findall(r"[^.!?]+[.!?]+", text)
    if not sentences:
        return text[:300]
    return _clean(" ".join(sentences[:count]))


def extract_article(
    html: str, url: str, source_type: str, fetched_at: Optional[datetime] = None
) -> Optional[ExternalArticle]:
    """Turn an HTML page into an ExternalArticle, or None if it has no text."""
    soup = BeautifulSoup(html, "lxml")

    for tag in soup(["script", "style", "noscript", "nav", "footer", "header", "aside"]):
        tag.decompose()

    title = _meta(soup, "og:title", "twitter:title")
    if not title and soup.title and soup.title.string:
        title = _clean(soup.title.string)

    content = ""
    for selector in MAIN_CONTENT_SELECTORS:
        node = soup.select_one(selector)
        if node:
            content = _clean(node.get_text(" "))
            if content:
                break

    if not content:
        paragraphs = [_clean(p.get_text(" ")) for p in soup.find_all("p")[:FALLBACK_PARAGRAPHS]]
        content = "\n\n".join(p for p in paragraphs if p)

    if not content:
        return None

    excerpt = _meta(soup, "description", "og:description") or _first_sentences(
        content, EXCERPT_SENTENCES
    )

    published_at = _meta(soup, "article:published_time")
    if not published_at:
        time_tag = soup.find("time", attrs={"datetime": True})
        if time_tag:
            published_at = time_tag["datetime"]

    return ExternalArticle(
        url=url,
        title=title or url,
        excerpt=excerpt,
        content=content,
        source_type=source_type,
        source_domain=url_domain(url),
        published_at=published_at,
        fetched_at=fetched_at or datetime.now(timezone.utc),
    )


# =============================================================================
# FETCHER
# =============================================================================


class ArticleFetcher:
    """Fetches pages over HTTP and extracts article text."""

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self._http_client = http_client
        self.timeout = timeout
        self.batch_size = max(1, batch_size)

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def fetch_article(self, url: str, source_type: str) -> Optional[ExternalArticle]:
        """Fetch one article; None on any network or parse problem."""
        if is_webinar_or_event_url(url):
            logger.debug(f"Not fetching webinar/event URL {url}")
            return None

        client = self._get_http_client()
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch article {url}: {e}")
            return None

        content_type = response.headers.get("content-type", "")
        if content_type and "html" not in content_type:
            logger.debug(f"Skipping non-HTML content at {url} ({content_type})")
            return None

        article = extract_article(response.text, url, source_type)
        if article is None:
            logger.debug(f"No readable content at {url}")
        return article

    async def fetch_articles(self, urls: list[str], source_type: str) -> list[ExternalArticle]:
        """Fetch URLs concurrently in fixed-size batches, skipping failures."""
        articles: list[ExternalArticle] = []
        for start in range(0, len(urls), self.batch_size):
            batch = urls[start:start + self.batch_size]
            results = await asyncio.gather(
                *(self.fetch_article(url, source_type) for url in batch),
                return_exceptions=True,
            )
            for url, result in zip(batch, results):
                if isinstance(result, Exception):
                    logger.warning(f"Article extraction failed for {url}: {result}")
                elif result is not None:
                    articles.append(result)
        return articles


# =============================================================================
# ENRICHER
# =============================================================================


@dataclass
class ResourceSuggestion:
    """External resources an LLM associates with an expert."""

    primary_website: Optional[str] = None
    blog_urls: list[str] = field(default_factory=list)
    other_resources: list[str] = field(default_factory=list)


ResourceSuggester = Callable[[str, list[str]], Awaitable[Optional[ResourceSuggestion]]]


class ContentEnricher:
    """Collects external articles and source domains for a set of posts."""

    def __init__(
        self,
        fetcher: ArticleFetcher,
        suggester: Optional[ResourceSuggester] = None,
        fetch_limit: int = DEFAULT_FETCH_LIMIT,
    ):
        self.fetcher = fetcher
        self.suggester = suggester
        self.fetch_limit = fetch_limit

    async def close(self) -> None:
        await self.fetcher.close()

    async def enrich(
        self,
        posts: list[Post],
        username: str,
        seed_articles: Optional[list[ExternalArticle]] = None,
    ) -> tuple[list[ExternalArticle], list[str]]:
        """Return ``(articles, source_domains)`` for the given posts."""
        articles: list[ExternalArticle] = list(seed_articles or [])
        sources: list[str] = []

        def add_source(domain: str) -> None:
            if domain and domain not in sources:
                sources.append(domain)

        for article in articles:
            add_source(article.source_domain)

        links = collect_candidate_links(posts)

        blog_urls: list[str] = []
        resource_urls: list[str] = []
        if self.suggester and links:
            try:
                suggestion = await self.suggester(username, links)
            except Exception as e:
                logger.warning(f"Resource suggestion failed for {username}: {e}")
                suggestion = None
            if suggestion:
                if suggestion.primary_website:
                    resource_urls.append(suggestion.primary_website)
                blog_urls.extend(suggestion.blog_urls)
                resource_urls.extend(suggestion.other_resources)

        blog_urls.extend(link for link in links if BLOG_LINK_PATTERN.search(link))

        to_fetch: list[str] = []
        for url in blog_urls:
            if url and url not in to_fetch and not is_webinar_or_event_url(url):
                to_fetch.append(url)
        to_fetch = to_fetch[: self.fetch_limit]

        if to_fetch:
            logger.info(f"Fetching {len(to_fetch)} external articles for {username}")
            for article in await self.fetcher.fetch_articles(to_fetch, "external"):
                if all(existing.url != article.url for existing in articles):
                    articles.append(article)
                    add_source(article.source_domain)

        for url in resource_urls:
            if url:
                add_source(url_domain(url))

        return articles, sources
