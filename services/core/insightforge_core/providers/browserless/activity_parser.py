"""Turns a rendered profile activity page into ``Post`` objects."""

import logging
import re
from datetime import datetime, timezone
from typing import Optional

from bs4 import BeautifulSoup, Tag

from insightforge_core.domain.schemas.content import ContentType, Engagement, Post

logger = logging.getLogger(__name__)

SITE_URL = "https://www.linkedin.com/"
POST_URL_TEMPLATE = "https://www.linkedin.com/feed/update/{urn}"

ACTIVITY_SELECTOR = '[data-urn*="urn:li:activity"]'
TEXT_SELECTOR = '[dir="ltr"]'
LIKES_SELECTORS = ('[aria-label*="reaction"]', ".social-counts-reactions span")
COMMENTS_SELECTORS = ('[aria-label*="comment"]', ".social-counts-comments span")
SHARES_SELECTORS = ('[aria-label*="share"]', ".social-counts-shares span")

# Count with an optional K/M suffix directly after it ("1.2K", "3 M", not "45 comments")
_NUMBER = re.compile(r"(\d+(?:[.,]\d+)?)\s*([KM])?(?![A-Za-z])", re.IGNORECASE)


def parse_count(text: str) -> int:
    """``"1.2K"`` -> 1200, ``"3M"`` -> 3000000, no digits -> 0."""
    match = _NUMBER.search(text)
    if not match:
        return 0
    value = float(match.group(1).replace(",", ""))
    suffix = (match.group(2) or "").upper()
    if suffix == "M":
        value *= 1_000_000
    elif suffix == "K":
        value *= 1_000
    return round(value)


def _first_count(element: Tag, selectors: tuple[str, ...]) -> int:
    for selector in selectors:
        found = element.select_one(selector)
        if found is None:
            continue
        text = found.get_text(" ", strip=True) or found.get("aria-label", "")
        if text:
            return parse_count(text)
    return 0


def _published_at(element: Tag) -> Optional[datetime]:
    time_tag = element.find("time")
    value = time_tag.get("datetime") if time_tag else None
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _content_type(element: Tag, image_urls: list[str]) -> ContentType:
    if element.find("video"):
        return ContentType.VIDEO
    if element.select_one("article, .feed-shared-article"):
        return ContentType.ARTICLE
    if element.select_one(".feed-shared-document"):
        return ContentType.DOCUMENT
    if image_urls:
        return ContentType.IMAGE
    return ContentType.TEXT


def parse_activity_html(html: str, username: str) -> list[Post]:
    """Posts found on an activity page, in page order, skipping empty ones."""
    soup = BeautifulSoup(html, "lxml")
    posts: list[Post] = []
    seen: set[str] = set()

    for element in soup.select(ACTIVITY_SELECTOR):
        urn = element.get("data-urn", "")
        text_tag = element.select_one(TEXT_SELECTOR)
        content = text_tag.get_text(" ", strip=True) if text_tag else ""
        if not urn or not content or urn in seen:
            continue
        seen.add(urn)

        links = [
            a["href"]
            for a in element.find_all("a", href=True)
            if a["href"].startswith(("http://", "https://"))
        ]
        image_urls = [
            img["src"]
            for img in element.find_all("img", src=True)
            if img["src"].startswith("https://") and "profile-displayphoto" not in img["src"]
        ]

        posts.append(
            Post(
                id=urn,
                content=content,
                published_at=_published_at(element) or datetime.now(timezone.utc),
                engagement=Engagement(
                    likes=_first_count(element, LIKES_SELECTORS),
                    comments=_first_count(element, COMMENTS_SELECTORS),
                    shares=_first_count(element, SHARES_SELECTORS),
                ),
                url=POST_URL_TEMPLATE.format(urn=urn),
                author=username,
                content_type=_content_type(element, image_urls),
                links=list(dict.fromkeys(links)),
                image_urls=list(dict.fromkeys(image_urls)),
            )
        )

    logger.debug(f"Parsed {len(posts)} posts for {username}")
    return posts
