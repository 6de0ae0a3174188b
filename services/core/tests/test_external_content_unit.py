"""Unit tests for external article enrichment."""

from unittest.mock import AsyncMock

import httpx
import pytest

from insightforge_core.domain.services.external_content import (
    ArticleFetcher,
    ContentEnricher,
    ResourceSuggestion,
    collect_candidate_links,
    extract_article,
    is_webinar_or_event_url,
)

ARTICLE_HTML = """
<html>
  <head>
    <title>Fallback title</title>
    <meta property="og:title" content="The Cold Email Playbook">
    <meta name="description" content="How to write emails that get replies.">
    <meta property="article:published_time" content="2025-03-01T10:00:00Z">
  </head>
  <body>
    <nav>Home | Blog</nav>
    <article><p>Keep it short.</p><p>Lead with them, not you.</p></article>
    <script>track()</script>
  </body>
</html>
"""


class TestWebinarDetection:
    """Tests for webinar and event URL exclusion."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://zoom.us/j/123",
            "https://us02web.zoom.us/webinar/register/abc",
            "https://www.eventbrite.com/e/sales-summit",
            "https://example.com/webinar/q3-pipeline",
            "https://example.com/events/2025?register=1",
            "https://example.com/page?utm=x&event=launch",
        ],
    )
    def test_event_urls(self, url):
        assert is_webinar_or_event_url(url) is True

    @pytest.mark.parametrize(
        "url",
        [
            "https://example.com/blog/cold-email",
            "https://notzoom.us.example.com/guide",
            "https://example.com/post?ref=eventful",
        ],
    )
    def test_regular_urls(self, url):
        assert is_webinar_or_event_url(url) is False


class TestCollectCandidateLinks:
    def test_filters_and_dedupes(self, make_post):
        posts = [
            make_post(links=[
                "https://example.com/blog/a?utm_source=li",
                "https://www.linkedin.com/in/someone",
                "https://zoom.us/j/1",
                "mailto:x@example.com",
            ]),
            make_post(links=["https://example.com/blog/a", "https://other.com/guide"]),
        ]

        assert collect_candidate_links(posts) == [
            "https://example.com/blog/a",
            "https://other.com/guide",
        ]


class TestExtractArticle:
    def test_extracts_fields(self):
        article = extract_article(ARTICLE_HTML, "https://example.com/blog/a", "external")

        assert article.title == "The Cold Email Playbook"
        assert article.content == "Keep it short. Lead with them, not you."
        assert article.excerpt == "How to write emails that get replies."
        assert article.published_at == "2025-03-01T10:00:00Z"
        assert article.source_domain == "example.com"
        assert "track" not in article.content

    def test_paragraph_fallback_and_excerpt(self):
        html = "<html><body><div><p>First point. Second point.</p><p>Third.</p></div></body></html>"

        article = extract_article(html, "https://example.com/x", "external")

        assert article.title == "https://example.com/x"
        assert article.content == "First point. Second point.\n\nThird."
        assert article.excerpt.startswith("First point.")

    def test_empty_page(self):
        assert extract_article("<html><body></body></html>", "https://e.com", "external") is None


class TestArticleFetcher:
    """Tests for ArticleFetcher with a mock transport."""

    def _fetcher(self, handler) -> ArticleFetcher:
        return ArticleFetcher(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    @pytest.mark.asyncio
    async def test_fetch_skips_failures(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/ok":
                return httpx.Response(200, text=ARTICLE_HTML, headers={"content-type": "text/html"})
            if request.url.path == "/pdf":
                return httpx.Response(200, content=b"%PDF", headers={"content-type": "application/pdf"})
            return httpx.Response(404)

        fetcher = self._fetcher(handler)

        articles = await fetcher.fetch_articles(
            ["https://a.com/ok", "https://a.com/missing", "https://a.com/pdf"], "external"
        )

        assert [a.url for a in articles] == ["https://a.com/ok"]
        await fetcher.close()

    @pytest.mark.asyncio
    async def test_webinar_never_requested(self):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, text=ARTICLE_HTML)

        fetcher = self._fetcher(handler)

        assert await fetcher.fetch_article("https://example.com/webinar/x", "external") is None
        assert requested == []


class TestContentEnricher:
    """Tests for ContentEnricher.enrich."""

    @pytest.mark.asyncio
    async def test_blog_links_and_suggestions(self, make_post):
        fetcher = ArticleFetcher(
            http_client=httpx.AsyncClient(
                transport=httpx.MockTransport(
                    lambda request: httpx.Response(200, text=ARTICLE_HTML, headers={"content-type": "text/html"})
                )
            )
        )
        suggester = AsyncMock(
            return_value=ResourceSuggestion(
                primary_website="https://janedoe.com",
                blog_urls=["https://janedoe.com/essays/one", "https://janedoe.com/webinar/live"],
                other_resources=["https://podcast.example.org/jane"],
            )
        )
        posts = [make_post(links=["https://example.com/blog/a", "https://example.com/pricing"])]

        articles, sources = await ContentEnricher(fetcher, suggester).enrich(posts, "jane-doe")

        assert sorted(a.url for a in articles) == [
            "https://example.com/blog/a",
            "https://janedoe.com/essays/one",
        ]
        assert set(sources) == {"example.com", "janedoe.com", "podcast.example.org"}
        suggester.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_suggester_failure_is_ignored(self, make_post):
        fetcher = ArticleFetcher()
        fetcher.fetch_articles = AsyncMock(return_value=[])
        suggester = AsyncMock(side_effect=RuntimeError("llm down"))
        posts = [make_post(links=["https://example.com/guide/x"])]

        articles, sources = await ContentEnricher(fetcher, suggester).enrich(posts, "jane")

        assert articles == []
        assert sources == []
        fetcher.fetch_articles.assert_awaited_once_with(["https://example.com/guide/x"], "external")

    @pytest.mark.asyncio
    async def test_no_links_means_no_fetch(self, make_post):
        fetcher = ArticleFetcher()
        fetcher.fetch_articles = AsyncMock()

        result = await ContentEnricher(fetcher).enrich([make_post()], "jane")

        assert result == ([], [])
        fetcher.fetch_articles.assert_not_awaited()
