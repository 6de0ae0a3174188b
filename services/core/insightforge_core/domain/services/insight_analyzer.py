"""Two-pass insight analysis of scraped posts.

Pass 1 asks a fast model how relevant each post is to the focus topics.
Pass 2 sends only posts scoring above the threshold, with their images, to
a stronger model for structured extraction. Without an LLM client the
keyword extractor runs instead.

Failures stay local: a post that cannot be scored gets a neutral score, a
post that cannot be extracted contributes nothing, and the batch goes on.

Usage:
    analyzer = InsightAnalyzer(client=client, config=AnalyzerConfig.from_settings(settings))
    analysis = await analyzer.analyze(posts, ["cold outreach"], username="jane-doe")
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol

from pydantic import ValidationError

from insightforge_core.config import Settings
from insightforge_core.domain.schemas.content import Post
from insightforge_core.domain.schemas.insights import (
    ExtractionResult,
    Insight,
    InsightAnalysis,
    Methodology,
    RawExtraction,
    RawRelevance,
    RawResourceSuggestions,
    TokenUsage,
    clamp_unit,
)
from insightforge_core.domain.services.external_content import (
    ContentEnricher,
    ResourceSuggestion,
)
from insightforge_core.domain.services.extraction import build_summary, merge_results
from insightforge_core.domain.services.images import ImageFetcher
from insightforge_core.domain.services.inference import (
    ImageInput,
    InferenceClient,
    InferenceError,
)
from insightforge_core.domain.services.json_repair import JsonRepairError, parse_json_response
from insightforge_core.domain.services.keyword_extractor import KeywordExtractor

logger = logging.getLogger(__name__)

NEUTRAL_RELEVANCE = 0.5


class Analyzer(Protocol):
    """Turns posts into an InsightAnalysis."""

    async def analyze(
        self, posts: list[Post], focus_topics: list[str], username: str = ""
    ) -> InsightAnalysis: ...

    async def close(self) -> None:
        """Release HTTP connections opened while analyzing."""
        ...


@dataclass
class AnalyzerConfig:
    relevance_model: str = "claude-haiku-4-5"
    extraction_model: str = "claude-sonnet-4-5"
    relevance_threshold: float = 0.6
    relevance_batch_size: int = 10
    extraction_batch_size: int = 5
    batch_delay_seconds: float = 2.0
    max_images_per_post: int = 5
    relevance_text_chars: int = 1500
    relevance_max_tokens: int = 200
    extraction_max_tokens: int = 2000

    @classmethod
    def from_settings(cls, settings: Settings) -> "AnalyzerConfig":
        return cls(
            relevance_model=settings.relevance_model,
            extraction_model=settings.extraction_model,
            relevance_threshold=settings.relevance_threshold,
            relevance_batch_size=settings.relevance_batch_size,
            extraction_batch_size=settings.extraction_batch_size,
            batch_delay_seconds=settings.batch_delay_seconds,
            max_images_per_post=settings.max_images_per_post,
        )


# =============================================================================
# PROMPTS
# =============================================================================


def build_relevance_prompt(post: Post, focus_topics: list[str], max_chars: int) -> str:
    topics = ", ".join(focus_topics) if focus_topics else "actionable professional advice"
    return f"""Rate how relevant this social media post is to these topics: {topics}.

POST:
\"\"\"{post.content[:max_chars]}\"\"\"

Score 0.0 to 1.0. Posts that teach a concrete strategy, technique or framework on
the topics score high. Recruiting posts, product launches, event announcements
and personal updates score low.

Respond with JSON only: {{"score": 0.0, "reason": "one short sentence"}}"""


def build_extraction_prompt(post: Post, focus_topics: list[str], image_count: int) -> str:
    links = "\n".join(f"  {i + 1}. {link}" for i, link in enumerate(post.links[:3]))
    topics = (
        f"Focus on insights related to: {', '.join(focus_topics)}." if focus_topics else ""
    )
    images = ""
    if image_count:
        images = (
            f"IMAGES: This post contains {image_count} image(s). Extract frameworks, "
            "step-by-step processes, checklists, templates and any text they show, "
            "with the same weight as the post text.\n"
        )

    return f"""Analyze this social media post for actionable insights, strategies and tactics.

POST CONTENT:
\"{post.content}\"

POST TYPE: {post.content_type.value}

POST METRICS:
- Likes: {post.engagement.likes}
- Comments: {post.engagement.comments}
- Shares: {post.engagement.shares}

LINKS MENTIONED:
{links or '  (no external links captured)'}

{images}{topics}

Extract:
1. INSIGHTS: specific strategies or techniques. Categorize each as PROSPECTING,
   DISCOVERY, NURTURE, CLOSING, SALES_COMMS, CADENCES, STRATEGY, TEMPLATES or
   TACTICS, state it in 1-2 sentences and rate confidence 0.1-1.0.
2. TEMPLATES: reusable scripts or copy.
3. ACTIONABLE ITEMS: specific actions someone could take.
4. METHODOLOGIES: named frameworks or systematic approaches.

Respond in this exact JSON format:
{{
  "insights": [{{"category": "CATEGORY_NAME", "insight": "...", "confidence": 0.8}}],
  "templates": ["..."],
  "actionableItems": ["..."],
  "methodologies": [{{"name": "...", "description": "...", "application": "..."}}]
}}

Only include what the post actually contains. Leave arrays empty when nothing applies."""


def build_resource_prompt(username: str, links: list[str]) -> str:
    numbered = "\n".join(f"{i + 1}. {link}" for i, link in enumerate(links[:20]))
    return f"""You are mapping additional content sources for the expert "{username}".

External URLs referenced in their posts:
{numbered}

Identify their primary official website (if any), up to 5 blog, newsletter or
long-form content URLs worth reading, and other high-value resources.
Prefer URLs from the list; leave fields empty when unsure.

Respond in strict JSON with keys: primaryWebsite (string), blogUrls (array of
strings), otherResources (array of strings)."""


# =============================================================================
# RESPONSE CONVERSION
# =============================================================================


def _as_strings(items: list[Any]) -> list[str]:
    return [item.strip() for item in items if isinstance(item, str) and item.strip()]


def to_extraction_result(raw: RawExtraction, post: Post) -> ExtractionResult:
    templates = _as_strings(raw.templates)
    actionable_items = _as_strings(raw.actionableItems)

    insights = []
    for index, item in enumerate(raw.insights):
        if not item.insight or not item.insight.strip():
            continue
        insights.append(
            Insight(
                id=f"{post.id}-ai-{index}",
                category=item.category,
                text=item.insight.strip(),
                confidence=NEUTRAL_RELEVANCE if item.confidence is None else item.confidence,
                source_post_id=post.id,
                actionable_items=actionable_items,
                templates=templates,
            )
        )

    methodologies = [
        Methodology(
            name=m.name.strip(),
            description=m.description.strip(),
            application=m.application.strip() if isinstance(m.application, str) and m.application.strip() else None,
        )
        for m in raw.methodologies
        if m.name and m.name.strip()
    ]

    return ExtractionResult(
        insights=insights,
        templates=templates,
        actionable_items=actionable_items,
        methodologies=methodologies,
    )


# =============================================================================
# ANALYZER
# =============================================================================


class ResourceSuggester:
    """Asks the fast model which linked sites are the expert's own content."""

    def __init__(self, client: InferenceClient, model: str):
        self.client = client
        self.model = model

    async def __call__(self, username: str, links: list[str]) -> Optional[ResourceSuggestion]:
        if not links:
            return None
        try:
            response = await self.client.complete(
                build_resource_prompt(username, links), model=self.model, max_tokens=1000
            )
            raw = RawResourceSuggestions.model_validate(parse_json_response(response.content))
        except (InferenceError, JsonRepairError, ValidationError) as e:
            logger.warning(f"Resource discovery failed for {username}: {e}")
            return None
        return ResourceSuggestion(
            primary_website=raw.primaryWebsite or None,
            blog_urls=raw.blogUrls,
            other_resources=raw.otherResources,
        )


class InsightAnalyzer:
    """Analyzer with an LLM two-pass path and a keyword fallback."""

    def __init__(
        self,
        client: Optional[InferenceClient] = None,
        config: Optional[AnalyzerConfig] = None,
        image_fetcher: Optional[ImageFetcher] = None,
        enricher: Optional[ContentEnricher] = None,
        keyword_extractor: Optional[KeywordExtractor] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.config = config or AnalyzerConfig()
        self.image_fetcher = image_fetcher
        self.enricher = enricher
        self.keyword_extractor = keyword_extractor or KeywordExtractor()
        self._sleep = sleep

    @property
    def llm_enabled(self) -> bool:
        return self.client is not None

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
        if self.image_fetcher is not None:
            await self.image_fetcher.close()
        if self.enricher is not None:
            await self.enricher.close()

    async def analyze(
        self, posts: list[Post], focus_topics: list[str], username: str = ""
    ) -> InsightAnalysis:
        usage = TokenUsage()

        if self.llm_enabled:
            logger.info(f"AI analysis of {len(posts)} posts for {username or 'aggregate'}")
            result, relevant_count = await self._analyze_with_llm(posts, focus_topics, usage)
            mode = "ai"
        else:
            logger.info(f"Keyword analysis of {len(posts)} posts for {username or 'aggregate'}")
            result = self.keyword_extractor.extract(posts, focus_topics)
            relevant_count = len(posts)
            mode = "keyword"

        articles, sources = [], []
        if self.enricher is not None:
            articles, sources = await self.enricher.enrich(posts, username)

        return InsightAnalysis(
            insights=result.insights,
            templates=result.templates,
            actionable_items=result.actionable_items,
            methodologies=result.methodologies,
            summary=build_summary(result.insights, len(posts)),
            total_posts=len(posts),
            relevant_posts=relevant_count,
            external_articles=articles,
            external_sources=sources,
            token_usage=usage,
            analysis_mode=mode,
        )

    async def _analyze_with_llm(
        self, posts: list[Post], focus_topics: list[str], usage: TokenUsage
    ) -> tuple[ExtractionResult, int]:
        scores = await self.score_posts(posts, focus_topics, usage)
        relevant = [
            post for post, score in zip(posts, scores)
            if score > self.config.relevance_threshold
        ]
        logger.info(
            f"{len(relevant)}/{len(posts)} posts above relevance threshold "
            f"{self.config.relevance_threshold}"
        )
        if not relevant:
            return ExtractionResult.empty(), 0

        results = await self._in_batches(
            relevant,
            self.config.extraction_batch_size,
            lambda post: self.extract_post(post, focus_topics, usage),
        )
        merged = merge_results(r for r in results if r is not None)
        return merged, len(relevant)

    async def _in_batches(self, posts: list[Post], batch_size: int, func) -> list[Any]:
        """Run ``func`` concurrently per batch, pausing between batches."""
        results: list[Any] = []
        for start in range(0, len(posts), batch_size):
            if start:
                await self._sleep(self.config.batch_delay_seconds)
            batch = posts[start:start + batch_size]
            outcomes = await asyncio.gather(*(func(post) for post in batch), return_exceptions=True)
            for post, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    logger.error(f"Unexpected analysis error for post {post.id}: {outcome!r}")
                    results.append(None)
                else:
                    results.append(outcome)
        return results

    # -------------------------------------------------------------------------
    # Pass 1: relevance
    # -------------------------------------------------------------------------

    async def score_posts(
        self, posts: list[Post], focus_topics: list[str], usage: TokenUsage
    ) -> list[float]:
        scores = await self._in_batches(
            posts,
            self.config.relevance_batch_size,
            lambda post: self.score_post(post, focus_topics, usage),
        )
        return [NEUTRAL_RELEVANCE if s is None else s for s in scores]

    async def score_post(self, post: Post, focus_topics: list[str], usage: TokenUsage) -> float:
        if not post.content.strip() and not post.image_urls:
            return 0.0

        prompt = build_relevance_prompt(post, focus_topics, self.config.relevance_text_chars)
        try:
            response = await self.client.complete(
                prompt,
                model=self.config.relevance_model,
                max_tokens=self.config.relevance_max_tokens,
            )
        except InferenceError as e:
            logger.warning(f"Relevance scoring failed for post {post.id}: {e}")
            return NEUTRAL_RELEVANCE

        usage.add(response.model_info.input_tokens, response.model_info.output_tokens)

        try:
            data = parse_json_response(response.content)
        except JsonRepairError as e:
            logger.warning(f"Unparseable relevance score for post {post.id}: {e}")
            return NEUTRAL_RELEVANCE

        if isinstance(data, dict):
            raw = RawRelevance.model_validate(data)
            return clamp_unit(raw.score, default=NEUTRAL_RELEVANCE)
        return clamp_unit(data, default=NEUTRAL_RELEVANCE)

    # -------------------------------------------------------------------------
    # Pass 2: extraction
    # -------------------------------------------------------------------------

    async def _download_images(self, post: Post) -> list[ImageInput]:
        if self.image_fetcher is None or not post.image_urls:
            return []
        urls = post.image_urls[: self.config.max_images_per_post]
        downloaded = await asyncio.gather(*(self.image_fetcher.fetch(url) for url in urls))
        return [image for image in downloaded if image is not None]

    async def extract_post(
        self, post: Post, focus_topics: list[str], usage: TokenUsage
    ) -> ExtractionResult:
        images = await self._download_images(post)

        try:
            response = await self.client.complete(
                build_extraction_prompt(post, focus_topics, len(images)),
                images=images or None,
                model=self.config.extraction_model,
                max_tokens=self.config.extraction_max_tokens,
            )
        except InferenceError as e:
            if not images:
                logger.warning(f"Extraction failed for post {post.id}: {e}")
                return ExtractionResult.empty()
            logger.warning(f"Extraction with images failed for post {post.id}, retrying text only: {e}")
            try:
                response = await self.client.complete(
                    build_extraction_prompt(post, focus_topics, 0),
                    model=self.config.extraction_model,
                    max_tokens=self.config.extraction_max_tokens,
                )
            except InferenceError as retry_error:
                logger.warning(f"Text-only extraction failed for post {post.id}: {retry_error}")
                return ExtractionResult.empty()

        usage.add(response.model_info.input_tokens, response.model_info.output_tokens)

        try:
            data = parse_json_response(response.content)
            raw = RawExtraction.model_validate(data)
        except (JsonRepairError, ValidationError) as e:
            logger.warning(f"Unparseable extraction for post {post.id}: {e}")
            return ExtractionResult.empty()

        return to_extraction_result(raw, post)
